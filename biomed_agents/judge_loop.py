"""
Judged research: retry the research pass with the judge's feedback until it
passes or the attempt budget runs out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol

from autogen_core import CancellationToken

from session_state_manager import SessionState

from .errors import JudgeUnavailable
from .research_agent import FEEDBACK_END, FEEDBACK_START, ResearchAgent
from .schemas import QualityEvaluation, QualityScore
from .settings import DEFAULT_MAX_ATTEMPTS

logger = logging.getLogger(__name__)


class Judge(Protocol):
    async def evaluate(
        self,
        question: str,
        answer: str,
        *,
        tool_calls: Optional[list] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> QualityEvaluation: ...


class JudgeOutcome(str, Enum):
    PASSED = "passed"
    EXHAUSTED = "exhausted"
    JUDGE_UNAVAILABLE = "judge_unavailable"
    RESEARCH_FAILED = "research_failed"


@dataclass(slots=True)
class JudgeLoopResult:
    final_result: str
    session: SessionState
    attempts_used: int
    outcome: JudgeOutcome
    evaluations: List[QualityEvaluation] = field(default_factory=list)


def build_feedback_block(evaluation: QualityEvaluation, attempt: int) -> str:
    lines = [FEEDBACK_START, f"Attempt {attempt} was rated '{evaluation.score.value}'."]
    lines.append(f"Feedback: {evaluation.feedback}")
    if evaluation.suggestions:
        lines.append("Suggestions:")
        lines.extend(f"- {suggestion}" for suggestion in evaluation.suggestions)
    lines.append(FEEDBACK_END)
    return "\n".join(lines)


class JudgeLoop:
    """RUNNING(n) -> PASSED | EXHAUSTED.

    A judge failure ends the loop with the latest result; a failed research pass
    ends it with the last answer that was produced, if any.
    """

    def __init__(
        self,
        *,
        research_agent: ResearchAgent,
        judge: Judge,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        self._research_agent = research_agent
        self._judge = judge
        self.max_attempts = max_attempts

    async def run(
        self,
        query: str,
        session: SessionState,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> JudgeLoopResult:
        if not query or not query.strip():
            raise ValueError("Query must be a non-empty string.")
        original = query.strip()
        current_query = original
        evaluations: List[QualityEvaluation] = []
        result = ""
        attempt = 0

        while True:
            attempt += 1
            logger.info("Judge loop attempt %d/%d", attempt, self.max_attempts)
            research = await self._research_agent.ainvoke(current_query, session, cancellation_token)
            if research.error is not None:
                logger.warning("Research attempt %d failed: %s", attempt, research.error)
                if attempt == 1:
                    result = research.result
                return JudgeLoopResult(result, session, attempt, JudgeOutcome.RESEARCH_FAILED, evaluations)
            session = research.session
            result = research.result

            try:
                evaluation = await self._judge.evaluate(
                    original,
                    result,
                    tool_calls=research.run.tool_calls if research.run else None,
                    cancellation_token=cancellation_token,
                )
            except JudgeUnavailable as exc:
                logger.warning("Judge unavailable; returning the latest result: %s", exc)
                return JudgeLoopResult(result, session, attempt, JudgeOutcome.JUDGE_UNAVAILABLE, evaluations)

            evaluations.append(evaluation)
            logger.info("Judge critique (%s): %s", evaluation.score.value, evaluation.feedback)

            if evaluation.score is QualityScore.PASS:
                logger.info("Quality check passed.")
                return JudgeLoopResult(result, session, attempt, JudgeOutcome.PASSED, evaluations)
            if attempt >= self.max_attempts:
                logger.warning("Max attempts reached. Returning last result.")
                return JudgeLoopResult(result, session, attempt, JudgeOutcome.EXHAUSTED, evaluations)

            logger.info("Quality check failed. Retrying with feedback...")
            current_query = f"{original}\n\n{build_feedback_block(evaluation, attempt)}"
