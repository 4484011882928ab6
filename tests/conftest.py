"""Shared fakes for the research agent tests."""

from typing import Any, Dict, List, Optional, Sequence

import pytest
from autogen_ext.models.replay import ReplayChatCompletionClient

from biomed_agents.schemas import QueryClassification, QueryType
from biomed_agents.specialist_agents import SpecialistRun

TOOL_MODEL_INFO = {
    "vision": False,
    "function_calling": True,
    "json_output": False,
    "family": "unknown",
    "structured_output": False,
}


def replay(responses: Sequence[str], *, tools: bool = False) -> ReplayChatCompletionClient:
    """Scripted model client; agents with tools need a function-calling model."""
    if tools:
        return ReplayChatCompletionClient(list(responses), model_info=TOOL_MODEL_INFO)
    return ReplayChatCompletionClient(list(responses))


class FakeToolClient:
    """Stands in for the stdio tool server; responses may be values or exceptions."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None) -> None:
        self.responses = responses or {}
        self.calls: List[tuple] = []

    async def call_tool(self, tool_name: str, **arguments: Any) -> Any:
        self.calls.append((tool_name, arguments))
        response = self.responses.get(tool_name, "")
        if isinstance(response, Exception):
            raise response
        return response


class FakeClassifier:
    def __init__(self, classification: QueryClassification) -> None:
        self.classification = classification
        self.queries: List[str] = []

    async def classify(self, query, cancellation_token=None):
        self.queries.append(query)
        return self.classification


class FakeTranslator:
    def __init__(self, translation: str) -> None:
        self.translation = translation
        self.queries: List[str] = []

    async def translate(self, query, cancellation_token=None):
        self.queries.append(query)
        return self.translation


class FakeRouter:
    """Scripted router; an exception in `outputs` is raised on that call."""

    def __init__(self, outputs: Optional[List[Any]] = None, error: Optional[BaseException] = None) -> None:
        self.outputs = list(outputs or ["Findings [PMID: 12345678]"])
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def route(self, query, classification, *, resume_state=None, cancellation_token=None):
        self.calls.append(
            {
                "query": query,
                "classification": classification,
                "resume_state": resume_state,
                "cancellation_token": cancellation_token,
            }
        )
        if self.error is not None:
            raise self.error
        output = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        if isinstance(output, Exception):
            raise output
        return SpecialistRun(
            agent="biomedical_search_specialist",
            output=output,
            transcript=[{"type": "TextMessage", "source": "biomedical_search_specialist", "content": output}],
            state=f"state-{len(self.calls)}",
            tool_calls=[{"tool": "find_entity", "arguments": {"query": "lavender"}}],
        )


@pytest.fixture
def english_search() -> QueryClassification:
    return QueryClassification(
        query_type=QueryType.GENERAL_SEARCH,
        needs_translation=False,
        detected_language="English",
        confidence=0.95,
    )


@pytest.fixture
def portuguese_search() -> QueryClassification:
    return QueryClassification(
        query_type=QueryType.GENERAL_SEARCH,
        needs_translation=True,
        detected_language="Portuguese",
        confidence=0.95,
    )
