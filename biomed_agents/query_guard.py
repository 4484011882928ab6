"""Query guardrail: cheap local pattern matching first, one model call for the language."""

from __future__ import annotations

import logging
import re
from typing import Optional, Tuple

from autogen_agentchat.agents import AssistantAgent
from autogen_core import CancellationToken
from autogen_core.models import ChatCompletionClient

from .errors import ClassificationDegraded
from .model_client import build_openai_client, extract_text
from .research_prompts import LANGUAGE_DETECTION_PROMPT
from .schemas import (
    LanguageDetectionResult,
    ModelOutput,
    QueryClassification,
    QueryType,
    parse_model_output,
)
from .settings import ModelRole, Settings

logger = logging.getLogger(__name__)

PMID_PATTERN = re.compile(r"\b(\d{7,9})\b")
GREETING_PATTERN = re.compile(r"\b(hello|hi|help|what can you|how are you)\b", re.IGNORECASE)

MODEL_CONFIDENCE = 0.95
FALLBACK_CONFIDENCE = 0.5


class LanguageDetectionAgent:
    """Asks the model for `{language, isEnglish}` about a piece of text."""

    def __init__(
        self,
        *,
        model_client: Optional[ChatCompletionClient] = None,
        role: Optional[ModelRole] = None,
    ) -> None:
        self._model_client = model_client or build_openai_client(role or Settings().roles["language"])
        self._assistant = AssistantAgent(
            name="language_detector",
            model_client=self._model_client,
            system_message=LANGUAGE_DETECTION_PROMPT,
            description="Detects the primary language of a query.",
        )

    async def detect(
        self,
        text: str,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> ModelOutput[LanguageDetectionResult]:
        token = cancellation_token or CancellationToken()
        await self._assistant.on_reset(token)
        result = await self._assistant.run(task=text, cancellation_token=token)
        raw = extract_text(result.messages, preferred_source=self._assistant.name)
        logger.debug("Language detector raw output: %s", raw)
        return parse_model_output(raw, LanguageDetectionResult)


def classify_locally(query: str) -> Tuple[QueryType, Optional[str]]:
    """Identifier beats greeting, greeting beats the general-search default."""

    match = PMID_PATTERN.search(query)
    if match:
        return QueryType.IDENTIFIER_DETAILS, match.group(1)
    if GREETING_PATTERN.search(query):
        return QueryType.GENERAL_QUESTION, None
    return QueryType.GENERAL_SEARCH, None


class QueryClassifier:
    """Builds a `QueryClassification`; model failures degrade to an English default instead of raising."""

    def __init__(self, language_detector: LanguageDetectionAgent) -> None:
        self._language_detector = language_detector

    async def classify(
        self,
        query: str,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> QueryClassification:
        query_type, identifier = classify_locally(query)

        try:
            detection = await self._detect_language(query, cancellation_token)
        except ClassificationDegraded as exc:
            logger.warning("Language detection degraded, defaulting to English: %s", exc)
            return QueryClassification(
                query_type=query_type,
                extracted_identifier=identifier,
                needs_translation=False,
                detected_language="English",
                confidence=FALLBACK_CONFIDENCE,
            )

        classification = QueryClassification(
            query_type=query_type,
            extracted_identifier=identifier,
            needs_translation=not detection.is_english,
            detected_language=detection.language,
            confidence=MODEL_CONFIDENCE,
        )
        logger.info(
            "Classification: %s | Language: %s",
            classification.query_type.value,
            classification.detected_language,
        )
        return classification

    async def _detect_language(
        self,
        query: str,
        cancellation_token: Optional[CancellationToken],
    ) -> LanguageDetectionResult:
        try:
            output = await self._language_detector.detect(query, cancellation_token)
        except Exception as exc:
            raise ClassificationDegraded(f"language detection call failed: {exc}") from exc
        if not output.ok:
            raise ClassificationDegraded(f"unparseable language detection output: {output.raw!r}")
        return output.parsed
