"""BiomedicalTranslatorAgent: turns non-English queries into English search terms."""

from __future__ import annotations

import logging
from typing import Optional

from autogen_agentchat.agents import AssistantAgent
from autogen_core import CancellationToken
from autogen_core.models import ChatCompletionClient

from .errors import TranslationNoop
from .model_client import build_openai_client, extract_text
from .research_prompts import TRANSLATOR_PROMPT
from .settings import ModelRole, Settings

logger = logging.getLogger(__name__)


class BiomedicalTranslatorAgent:
    """Translation never blocks the pipeline: on any failure the original query is returned."""

    def __init__(
        self,
        *,
        model_client: Optional[ChatCompletionClient] = None,
        role: Optional[ModelRole] = None,
    ) -> None:
        self._model_client = model_client or build_openai_client(role or Settings().roles["translator"])
        self._assistant = AssistantAgent(
            name="biomedical_translator",
            model_client=self._model_client,
            system_message=TRANSLATOR_PROMPT,
            description="Translates biomedical terms into common English names.",
        )

    async def translate(self, query: str, cancellation_token: Optional[CancellationToken] = None) -> str:
        try:
            translated = await self._translate(query, cancellation_token)
        except TranslationNoop as exc:
            logger.warning("Translation skipped, reusing original query: %s", exc)
            return query
        logger.info("Translated query: %s", translated)
        return translated

    async def _translate(self, query: str, cancellation_token: Optional[CancellationToken]) -> str:
        token = cancellation_token or CancellationToken()
        try:
            await self._assistant.on_reset(token)
            result = await self._assistant.run(task=query, cancellation_token=token)
            text = extract_text(result.messages, preferred_source=self._assistant.name)
        except Exception as exc:
            raise TranslationNoop(f"translator call failed: {exc}") from exc
        cleaned = text.strip().strip('"').strip("'").strip()
        if not cleaned:
            raise TranslationNoop("translator returned no text")
        return cleaned
