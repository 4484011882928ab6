"""Recoverable agent-side failures.

Each of these is raised where a model call fails and caught by the stage
that owns the fallback; none of them reaches the user.
"""

from __future__ import annotations


class AgentDegraded(RuntimeError):
    """A model-backed stage could not produce a usable result."""


class ClassificationDegraded(AgentDegraded):
    """Language detection failed; classification falls back to English."""


class TranslationNoop(AgentDegraded):
    """Translation failed or was empty; the original query is reused."""


class JudgeUnavailable(AgentDegraded):
    """The quality judge produced no parseable evaluation."""
