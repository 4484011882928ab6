"""
Session state supporting the research workflow, and its JSON-file store.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_SESSION_FILE = "orchestrated-research-memory.json"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(slots=True)
class SessionState:
    """One conversation; subroutines return a new version instead of mutating it."""

    conversation_id: str
    session_started: str = field(default_factory=_utc_now)
    total_interactions: int = 0
    conversation_history: List[Dict[str, Any]] = field(default_factory=list)
    last_run_state: Optional[str] = None

    @classmethod
    def new(cls) -> "SessionState":
        return cls(conversation_id=f"session_{int(time.time() * 1000)}")

    def advanced(
        self,
        *,
        history: List[Dict[str, Any]],
        run_state: Optional[str],
    ) -> "SessionState":
        """Version after one completed research call."""
        return replace(
            self,
            total_interactions=self.total_interactions + 1,
            conversation_history=list(history),
            last_run_state=run_state,
        )

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {
            "conversationId": self.conversation_id,
            "sessionStarted": self.session_started,
            "totalInteractions": self.total_interactions,
            "conversationHistory": self.conversation_history,
        }
        if self.last_run_state is not None:
            document["lastRunState"] = self.last_run_state
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "SessionState":
        if not isinstance(document, dict) or not document.get("conversationId"):
            raise ValueError("Session document is missing 'conversationId'.")
        history = document.get("conversationHistory") or []
        if not isinstance(history, list):
            raise ValueError("'conversationHistory' must be a list.")
        return cls(
            conversation_id=str(document["conversationId"]),
            session_started=str(document.get("sessionStarted") or _utc_now()),
            total_interactions=int(document.get("totalInteractions") or 0),
            conversation_history=history,
            last_run_state=document.get("lastRunState"),
        )


class SessionStore:
    """Loads, saves and clears the session document on disk."""

    def __init__(self, path: Union[str, Path] = DEFAULT_SESSION_FILE) -> None:
        self.path = Path(path)

    def load(self) -> SessionState:
        """Restore the saved session, or start a new one when there is none."""
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
            state = SessionState.from_document(document)
        except FileNotFoundError:
            state = SessionState.new()
            logger.info("New session created: %s", state.conversation_id)
            return state
        except (OSError, ValueError) as exc:
            state = SessionState.new()
            logger.warning(
                "Unreadable session document %s (%s); starting new session %s",
                self.path,
                exc,
                state.conversation_id,
            )
            return state
        logger.info("Session loaded: %s", state.conversation_id)
        return state

    def save(self, state: SessionState) -> bool:
        """Write the session document; failures are logged and reported as False."""
        try:
            serialized = json.dumps(state.to_document(), indent=2, ensure_ascii=False)
            self.path.write_text(serialized, encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Failed to save session memory to %s: %s", self.path, exc)
            return False
        logger.debug("Saved session %s to %s", state.conversation_id, self.path)
        return True

    def clear(self) -> SessionState:
        """Delete the session document and return a fresh session."""
        try:
            self.path.unlink()
            logger.info("Session memory cleared.")
        except FileNotFoundError:
            logger.info("No session memory file to clear.")
        except OSError as exc:
            logger.error("Failed to clear session memory %s: %s", self.path, exc)
        return SessionState.new()
