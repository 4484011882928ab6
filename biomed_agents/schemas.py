"""
Typed records exchanged between the research agents.

Model calls return free text.  Consumers never assume its shape: they call
`parse_model_output` which yields a `ModelOutput` carrying either the
validated object (`parsed`) or only the `raw` text, and branch on it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class QueryType(str, Enum):
    IDENTIFIER_DETAILS = "identifier_details"
    GENERAL_SEARCH = "general_search"
    GENERAL_QUESTION = "general_question"


class QueryClassification(BaseModel):
    """Result of the query guardrail; produced fresh for every query."""

    model_config = ConfigDict(frozen=True)

    query_type: QueryType
    extracted_identifier: Optional[str] = Field(None, pattern=r"^\d{7,9}$")
    needs_translation: bool = False
    detected_language: str = "English"
    confidence: float = Field(ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _identifier_implies_details(self) -> "QueryClassification":
        if self.extracted_identifier is not None and self.query_type is not QueryType.IDENTIFIER_DETAILS:
            raise ValueError("an extracted identifier requires query_type 'identifier_details'")
        return self


class LanguageDetectionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    language: str = Field(min_length=1)
    is_english: bool = Field(alias="isEnglish")


class QualityScore(str, Enum):
    PASS = "pass"
    NEEDS_IMPROVEMENT = "needs_improvement"
    FAIL = "fail"


class QualityEvaluation(BaseModel):
    """Judge verdict for one research attempt."""

    score: QualityScore
    feedback: str = ""
    suggestions: List[str] = Field(default_factory=list)


T = TypeVar("T", bound=BaseModel)


@dataclass
class ModelOutput(Generic[T]):
    """Tagged model result: `parsed` when the text validated, otherwise only `raw`."""

    raw: str
    parsed: Optional[T] = None

    @property
    def ok(self) -> bool:
        return self.parsed is not None


_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def parse_model_output(text: Optional[str], model: Type[T]) -> ModelOutput[T]:
    raw = (text or "").strip()
    if not raw:
        return ModelOutput(raw="")
    candidates = [_FENCE_RE.sub("", raw).strip()]
    match = _OBJECT_RE.search(raw)
    if match and match.group(0) not in candidates:
        candidates.append(match.group(0))
    for candidate in candidates:
        try:
            return ModelOutput(raw=raw, parsed=model.model_validate_json(candidate))
        except ValidationError:
            continue
    return ModelOutput(raw=raw)
