"""
Helpers for composing PubTator3 search strings.

PubTator3 accepts two kinds of search text:

  - free-text boolean queries, where parenthesised groups are allowed
    (`(lavender OR linalool) AND anxiety`);
  - entity-identifier queries (`@CHEMICAL_Linalool AND @DISEASE_Anxiety`),
    which only support a flat chain of AND terms.

Anything composed purely of entity identifiers must therefore never carry
parentheses.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence

from .errors import InvalidArgument

BOOLEAN_OPERATORS = {"AND", "OR", "NOT"}
RELATION_TYPES = (
    "ANY",
    "associate",
    "cause",
    "compare",
    "convert",
    "cotreat",
    "drug_interact",
    "inhibit",
    "interact",
    "negative_correlate",
    "positive_correlate",
    "prevent",
    "stimulate",
    "treat",
)

_TOKEN_RE = re.compile(r"[()]|[^\s()]+")


def is_entity_id(token: str) -> bool:
    return token.startswith("@") and len(token) > 1


def build_entity_query(entity_ids: Iterable[str]) -> str:
    """Join resolved entity identifiers into a flat `A AND B AND C` chain."""

    ids: List[str] = []
    for raw in entity_ids:
        entity_id = (raw or "").strip()
        if not entity_id:
            continue
        if not is_entity_id(entity_id):
            raise InvalidArgument(f"Not an entity identifier: {entity_id!r}")
        if any(ch in entity_id for ch in "() \t"):
            raise InvalidArgument(f"Entity identifier must be a single bare token: {entity_id!r}")
        if entity_id not in ids:
            ids.append(entity_id)
    if not ids:
        raise InvalidArgument("At least one entity identifier is required.")
    return " AND ".join(ids)


def build_text_query(groups: Sequence[Sequence[str]]) -> str:
    """Build a free-text query: terms inside a group are ORed, groups are ANDed."""

    clauses: List[str] = []
    for group in groups:
        terms = [term.strip() for term in group if term and term.strip()]
        if not terms:
            continue
        if any(is_entity_id(term) for term in terms) and len(terms) > 1:
            raise InvalidArgument("Entity identifiers cannot be grouped; use build_entity_query.")
        quoted = [f'"{term}"' if " " in term else term for term in terms]
        clause = " OR ".join(quoted)
        clauses.append(f"({clause})" if len(quoted) > 1 else clause)
    if not clauses:
        raise InvalidArgument("At least one search term is required.")
    return " AND ".join(clauses)


def relation_query(entity_id: str, relation_type: str = "ANY", target: str = "ANY") -> str:
    """Return the `relations:TYPE|E1|E2` search syntax."""

    if not is_entity_id(entity_id):
        raise InvalidArgument(f"Not an entity identifier: {entity_id!r}")
    if relation_type not in RELATION_TYPES:
        raise InvalidArgument(f"Unsupported relation type: {relation_type}")
    return f"relations:{relation_type}|{entity_id}|{target}"


def is_identifier_only(query: str) -> bool:
    """True when every term of the query is an entity identifier or a boolean operator."""

    tokens = [tok for tok in _TOKEN_RE.findall(query) if tok not in "()"]
    if not tokens:
        return False
    has_entity = False
    for token in tokens:
        if token.upper() in BOOLEAN_OPERATORS:
            continue
        if not is_entity_id(token):
            return False
        has_entity = True
    return has_entity


def validate_search_query(query: str) -> str:
    cleaned = (query or "").strip()
    if not cleaned:
        raise InvalidArgument("Search query must be a non-empty string.")
    if cleaned.startswith("relations:"):
        return cleaned
    if is_identifier_only(cleaned) and ("(" in cleaned or ")" in cleaned):
        raise InvalidArgument(
            "Entity-identifier queries only support a flat AND chain; remove the parentheses."
        )
    return cleaned
