"""
Biomedical Research Agent (PubTator3 + OpenAI)

- Built on Microsoft AutoGen (agentchat/core/ext stack).
- One research pass: classify -> translate (when needed) -> route to a specialist.
- PubTator3 tools are served by the stdio tool server in `mcp_servers`.

Required env:
  - OPENAI_API_KEY
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple
from uuid import uuid4

from autogen_core import CancellationToken

from session_state_manager import SessionState

from .model_client import make_serializable
from .schemas import QueryClassification
from .specialist_agents import SpecialistRun

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No results found."
FEEDBACK_START = "[Quality Feedback]"
FEEDBACK_END = "[End Quality Feedback]"


class Classifier(Protocol):
    async def classify(
        self, query: str, cancellation_token: Optional[CancellationToken] = None
    ) -> QueryClassification: ...


class Translator(Protocol):
    async def translate(self, query: str, cancellation_token: Optional[CancellationToken] = None) -> str: ...


class Router(Protocol):
    async def route(
        self,
        query: str,
        classification: QueryClassification,
        *,
        resume_state: Optional[str] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> SpecialistRun: ...


@dataclass(slots=True)
class ResearchResult:
    result: str
    session: SessionState
    classification: QueryClassification
    routed_query: str
    run: Optional[SpecialistRun] = None
    error: Optional[str] = None


def split_feedback(query: str) -> Tuple[str, str]:
    """Separate the user's question from an appended quality-feedback block."""

    index = query.find(FEEDBACK_START)
    if index == -1:
        return query, ""
    return query[:index].rstrip(), query[index:]


class ResearchAgent:
    """Runs one non-judged research pass and returns the updated session."""

    def __init__(
        self,
        *,
        classifier: Classifier,
        translator: Translator,
        router: Router,
        resume_runs: bool = True,
        log_dir: Optional[Path] = None,
    ) -> None:
        self._classifier = classifier
        self._translator = translator
        self._router = router
        self._resume_runs = resume_runs
        self._log_dir = Path(log_dir) if log_dir else None
        self._current_log: Optional[Dict[str, Any]] = None
        self._current_log_path: Optional[Path] = None
        self._last_run: Optional[SpecialistRun] = None

    async def ainvoke(
        self,
        query: str,
        session: SessionState,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> ResearchResult:
        if not query or not query.strip():
            raise ValueError("Query must be a non-empty string.")
        token = cancellation_token or CancellationToken()
        question, feedback = split_feedback(query.strip())
        self._start_interaction_log(query)
        logger.info("Received query: %s", question)

        classification = await self._classifier.classify(question, token)
        self._log_agent_context("query_guard", classification.model_dump(mode="json"))

        history: List[Dict[str, Any]] = []
        routed = question
        if classification.needs_translation:
            logger.info("Translating %s query to English...", classification.detected_language)
            routed = await self._translator.translate(question, token)
            history.append(
                {
                    "type": "TranslationExchange",
                    "source": "biomedical_translator",
                    "input": question,
                    "output": routed,
                }
            )
            self._log_agent_context("biomedical_translator", {"input": question, "output": routed})
        if feedback:
            routed = f"{routed}\n\n{feedback}"

        resume_state = session.last_run_state if self._resume_runs else None
        try:
            run = await self._router.route(
                routed,
                classification,
                resume_state=resume_state,
                cancellation_token=token,
            )
        except Exception as exc:
            logger.exception("Specialist routing failed; session left unchanged.")
            self._finalize_interaction_log(final_response=None, error=str(exc))
            self._last_run = None
            return ResearchResult(
                result=NO_RESULTS_MESSAGE,
                session=session,
                classification=classification,
                routed_query=routed,
                error=str(exc) or type(exc).__name__,
            )
        self._last_run = run
        self._log_agent_context(
            run.agent,
            {"routed_query": routed, "tool_calls": run.tool_calls, "output": run.output},
        )

        result = run.output.strip() or NO_RESULTS_MESSAGE
        history.extend(run.transcript)
        updated = session.advanced(history=history, run_state=run.state)
        self._finalize_interaction_log(final_response=result)
        logger.info("Research pass complete (%d interactions in session).", updated.total_interactions)
        return ResearchResult(
            result=result,
            session=updated,
            classification=classification,
            routed_query=routed,
            run=run,
        )

    @property
    def action_history(self) -> List[Dict[str, Any]]:
        """Return the tool invocations performed during the last run."""

        return list(self._last_run.tool_calls) if self._last_run else []

    # ------------------------------------------------------------------
    # Logging helpers
    # ------------------------------------------------------------------
    def _start_interaction_log(self, question: str) -> None:
        if self._log_dir is None:
            return
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - filesystem issues
            logger.warning("Unable to create log directory %s: %s", self._log_dir, exc)
            return
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        self._current_log_path = self._log_dir / f"research_agent_{timestamp}_{uuid4().hex[:8]}.json"
        self._current_log = {"timestamp": timestamp, "question": question, "steps": []}

    def _log_agent_context(self, agent_name: str, context: Dict[str, Any]) -> None:
        if not self._current_log:
            return
        entry = {
            "agent": agent_name,
            "timestamp": datetime.utcnow().isoformat(timespec="seconds") + "Z",
            "context": make_serializable(context),
        }
        self._current_log.setdefault("steps", []).append(entry)

    def _finalize_interaction_log(self, *, final_response: Optional[str], error: Optional[str] = None) -> None:
        if not self._current_log or not self._current_log_path:
            return
        if final_response is not None:
            self._current_log["final_response"] = final_response
        if error:
            self._current_log["error"] = error
        try:
            serialized = json.dumps(self._current_log, indent=2, ensure_ascii=False)
            self._current_log_path.write_text(serialized, encoding="utf-8")
            logger.info("Wrote interaction log to %s", self._current_log_path)
        except OSError as exc:  # pragma: no cover - filesystem issues
            logger.warning("Failed to write interaction log %s: %s", self._current_log_path, exc)
        finally:
            self._current_log = None
            self._current_log_path = None
