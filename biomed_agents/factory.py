"""Wires the agents around one shared tool server connection."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

from .judge_loop import JudgeLoop
from .query_guard import LanguageDetectionAgent, QueryClassifier
from .research_agent import ResearchAgent
from .research_evaluator_agent import QualityJudgeAgent
from .router_agent import FrontDeskAgent, SpecialistRouter
from .settings import Settings
from .specialist_agents import BiomedicalSearchAgent, PMIDDetailsAgent, ToolClient
from .translator_agent import BiomedicalTranslatorAgent

logger = logging.getLogger(__name__)


def build_research_stack(
    tool_client: ToolClient,
    settings: Optional[Settings] = None,
) -> Tuple[ResearchAgent, JudgeLoop]:
    settings = settings or Settings.from_env()
    roles = settings.roles

    router = SpecialistRouter(
        pmid_agent=PMIDDetailsAgent(
            tool_client=tool_client,
            role=roles["pmid"],
            max_tool_iterations=settings.max_tool_iterations,
            context_buffer_size=settings.context_buffer_size,
        ),
        search_agent=BiomedicalSearchAgent(
            tool_client=tool_client,
            role=roles["search"],
            max_tool_iterations=settings.max_tool_iterations,
            context_buffer_size=settings.context_buffer_size,
        ),
        front_desk=FrontDeskAgent(role=roles["front_desk"]) if settings.front_desk_enabled else None,
    )
    research_agent = ResearchAgent(
        classifier=QueryClassifier(LanguageDetectionAgent(role=roles["language"])),
        translator=BiomedicalTranslatorAgent(role=roles["translator"]),
        router=router,
        log_dir=Path(settings.interaction_log_dir) if settings.interaction_log_dir else None,
    )
    judge_loop = JudgeLoop(
        research_agent=research_agent,
        judge=QualityJudgeAgent(role=roles["judge"]),
        max_attempts=settings.max_attempts,
    )
    logger.info("Research stack ready (judge max attempts: %d)", settings.max_attempts)
    return research_agent, judge_loop
