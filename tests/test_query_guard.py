"""Query guardrail and translator with scripted model clients."""

import asyncio

import pytest
from pydantic import ValidationError

from biomed_agents.query_guard import (
    FALLBACK_CONFIDENCE,
    MODEL_CONFIDENCE,
    LanguageDetectionAgent,
    QueryClassifier,
    classify_locally,
)
from biomed_agents.schemas import QueryClassification, QueryType
from biomed_agents.translator_agent import BiomedicalTranslatorAgent
from conftest import replay

ENGLISH = '{"language": "English", "isEnglish": true}'
PORTUGUESE = '```json\n{"language": "Portuguese", "isEnglish": false}\n```'


def _classifier(*responses: str) -> QueryClassifier:
    return QueryClassifier(LanguageDetectionAgent(model_client=replay(responses)))


def test_identifier_wins_over_greeting():
    assert classify_locally("hi, can you help me with 12345678?") == (QueryType.IDENTIFIER_DETAILS, "12345678")


def test_greeting_and_default_classes():
    assert classify_locally("Hello, what can you do?") == (QueryType.GENERAL_QUESTION, None)
    assert classify_locally("lavender and anxiety") == (QueryType.GENERAL_SEARCH, None)
    # Six digits is not a PMID.
    assert classify_locally("trial 123456 results") == (QueryType.GENERAL_SEARCH, None)


def test_classification_uses_model_language():
    classification = asyncio.run(_classifier(PORTUGUESE).classify("lavanda para ansiedade"))

    assert classification.query_type is QueryType.GENERAL_SEARCH
    assert classification.needs_translation is True
    assert classification.detected_language == "Portuguese"
    assert classification.confidence == MODEL_CONFIDENCE


def test_classification_is_stable_for_the_same_query():
    classifier = _classifier(ENGLISH, ENGLISH)

    async def twice():
        first = await classifier.classify("details for PMID 34567890")
        second = await classifier.classify("details for PMID 34567890")
        return first, second

    first, second = asyncio.run(twice())

    assert first == second
    assert first.extracted_identifier == "34567890"
    assert first.query_type is QueryType.IDENTIFIER_DETAILS


@pytest.mark.parametrize("responses", [["I think it is English."], []])
def test_model_failure_degrades_to_english(responses):
    classification = asyncio.run(_classifier(*responses).classify("hello there"))

    assert classification.query_type is QueryType.GENERAL_QUESTION
    assert classification.needs_translation is False
    assert classification.detected_language == "English"
    assert classification.confidence == FALLBACK_CONFIDENCE


def test_identifier_requires_identifier_details():
    with pytest.raises(ValidationError):
        QueryClassification(
            query_type=QueryType.GENERAL_SEARCH,
            extracted_identifier="12345678",
            confidence=0.9,
        )


def test_translator_returns_clean_translation():
    translator = BiomedicalTranslatorAgent(model_client=replay(['"lavender, anxiety"']))

    assert asyncio.run(translator.translate("lavanda para ansiedade")) == "lavender, anxiety"


@pytest.mark.parametrize("responses", [["   "], []])
def test_translator_falls_back_to_original_query(responses):
    translator = BiomedicalTranslatorAgent(model_client=replay(responses))

    assert asyncio.run(translator.translate("lavanda para ansiedade")) == "lavanda para ansiedade"
