"""Runtime configuration read from the environment (`.env` is loaded by the entry points)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from session_state_manager import DEFAULT_SESSION_FILE

DEFAULT_MAX_ATTEMPTS = 3


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class ModelRole:
    """Model name and sampling temperature for one agent role."""

    model: str
    temperature: Optional[float] = None
    function_calling: bool = False


def _default_roles() -> Dict[str, ModelRole]:
    return {
        "language": ModelRole(os.getenv("LANGUAGE_MODEL", "gpt-4.1-nano"), 0.0),
        "translator": ModelRole(os.getenv("TRANSLATOR_MODEL", "gpt-4.1-nano"), 0.1),
        "search": ModelRole(os.getenv("SEARCH_MODEL", "gpt-4o-mini"), 0.2, function_calling=True),
        "pmid": ModelRole(os.getenv("PMID_MODEL", "gpt-4o"), 0.1, function_calling=True),
        "judge": ModelRole(os.getenv("JUDGE_MODEL", "gpt-4o-mini"), 0.0),
        "front_desk": ModelRole(os.getenv("FRONT_DESK_MODEL", "gpt-4.1-nano"), 0.0),
    }


@dataclass(slots=True)
class Settings:
    roles: Dict[str, ModelRole] = field(default_factory=_default_roles)
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    max_tool_iterations: int = 6
    context_buffer_size: int = 20
    front_desk_enabled: bool = True
    session_file: str = DEFAULT_SESSION_FILE
    tool_server_command: Optional[str] = None
    interaction_log_dir: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            roles=_default_roles(),
            max_attempts=int(os.getenv("JUDGE_MAX_ATTEMPTS", str(DEFAULT_MAX_ATTEMPTS))),
            max_tool_iterations=int(os.getenv("MAX_TOOL_ITERATIONS", "6")),
            context_buffer_size=int(os.getenv("SPECIALIST_CONTEXT_MESSAGES", "20")),
            front_desk_enabled=_env_bool("FRONT_DESK_ENABLED", True),
            session_file=os.getenv("SESSION_FILE", DEFAULT_SESSION_FILE),
            tool_server_command=os.getenv("PUBTATOR_SERVER_COMMAND"),
            interaction_log_dir=os.getenv("INTERACTION_LOG_DIR"),
        )
