"""Shared AutoGen plumbing: model clients, message extraction and transcript dumps."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

from autogen_agentchat.messages import BaseChatMessage
from autogen_core.models import ChatCompletionClient, ModelInfo
from autogen_ext.models.openai import OpenAIChatCompletionClient
from pydantic import ValidationError

from .settings import ModelRole

logger = logging.getLogger(__name__)


def build_openai_client(role: ModelRole) -> ChatCompletionClient:
    if not os.getenv("OPENAI_API_KEY"):
        raise EnvironmentError("OPENAI_API_KEY is not set.")
    model_info: ModelInfo = {
        "vision": False,
        "function_calling": role.function_calling,
        "json_output": False,
        "structured_output": False,
        "family": "openai",
    }
    client_kwargs: Dict[str, Any] = {
        "model": role.model,
        "api_key": os.environ["OPENAI_API_KEY"],
        "base_url": os.getenv("OPENAI_API_BASE_URL", "https://api.openai.com/v1"),
        "include_name_in_message": False,
        "model_info": model_info,
    }
    if role.temperature is not None:
        client_kwargs["temperature"] = role.temperature
    logger.info("Building OpenAI client for model '%s'", role.model)
    return OpenAIChatCompletionClient(**client_kwargs)


def last_chat_message(messages: Iterable[Any], preferred_source: Optional[str] = None) -> BaseChatMessage:
    candidate: Optional[BaseChatMessage] = None
    for message in reversed(list(messages)):
        if not isinstance(message, BaseChatMessage):
            continue
        if preferred_source and getattr(message, "source", None) == preferred_source:
            return message
        if candidate is None:
            candidate = message
    if candidate:
        return candidate
    raise RuntimeError("Assistant did not produce a chat response.")


def extract_text(messages: Iterable[Any], preferred_source: Optional[str] = None) -> str:
    final_message = last_chat_message(messages, preferred_source=preferred_source)
    if getattr(final_message, "source", None) == "user":
        return ""
    return final_message.to_text().strip()


def dump_messages(messages: Iterable[Any]) -> List[Dict[str, Any]]:
    """Serialise AutoGen messages and events for the session document."""

    transcript: List[Dict[str, Any]] = []
    for message in messages:
        dump_method = getattr(message, "dump", None)
        if callable(dump_method):
            try:
                transcript.append(make_serializable(dump_method()))
                continue
            except ValidationError:
                pass
        transcript.append({"type": type(message).__name__, "repr": repr(message)})
    return transcript


def make_serializable(data: Any) -> Any:
    try:
        json.dumps(data)
        return data
    except TypeError:
        if isinstance(data, dict):
            return {str(key): make_serializable(value) for key, value in data.items()}
        if isinstance(data, (list, set, tuple)):
            return [make_serializable(item) for item in data]
        return repr(data)

