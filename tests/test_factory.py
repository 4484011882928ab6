"""Wiring of the full agent stack from settings."""

from biomed_agents.factory import build_research_stack
from biomed_agents.judge_loop import JudgeLoop
from biomed_agents.research_agent import ResearchAgent
from biomed_agents.settings import Settings
from conftest import FakeToolClient


def test_stack_builds_with_default_roles(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    research_agent, judge_loop = build_research_stack(FakeToolClient(), Settings())

    assert isinstance(research_agent, ResearchAgent)
    assert isinstance(judge_loop, JudgeLoop)


def test_stack_builds_without_the_front_desk(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    settings = Settings(front_desk_enabled=False, max_attempts=1)

    research_agent, judge_loop = build_research_stack(FakeToolClient(), settings)

    assert judge_loop.max_attempts == 1
    assert isinstance(research_agent, ResearchAgent)
