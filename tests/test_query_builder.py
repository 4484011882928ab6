"""Search-string composition for PubTator3."""

import pytest

from domain.errors import InvalidArgument
from domain.query_builder import (
    build_entity_query,
    build_text_query,
    is_identifier_only,
    relation_query,
    validate_search_query,
)


def test_entity_query_is_a_flat_and_chain():
    query = build_entity_query(["@CHEMICAL_Linalool", "@DISEASE_Anxiety", "@CHEMICAL_Linalool"])

    assert query == "@CHEMICAL_Linalool AND @DISEASE_Anxiety"
    assert "(" not in query and ")" not in query


def test_entity_query_rejects_parenthesised_or_plain_terms():
    with pytest.raises(InvalidArgument):
        build_entity_query(["(@DISEASE_Anxiety)"])
    with pytest.raises(InvalidArgument):
        build_entity_query(["lavender"])
    with pytest.raises(InvalidArgument):
        build_entity_query([])


def test_text_query_groups_alternatives():
    query = build_text_query([["lavender", "linalool"], ["anxiety"]])

    assert query == "(lavender OR linalool) AND anxiety"


def test_text_query_quotes_multi_word_terms():
    assert build_text_query([["tea tree oil"]]) == '"tea tree oil"'


def test_relation_query_syntax():
    assert relation_query("@CHEMICAL_Linalool", "treat", "@DISEASE_Anxiety") == (
        "relations:treat|@CHEMICAL_Linalool|@DISEASE_Anxiety"
    )
    with pytest.raises(InvalidArgument):
        relation_query("@CHEMICAL_Linalool", "heals")


def test_identifier_only_detection():
    assert is_identifier_only("@CHEMICAL_Linalool AND @DISEASE_Anxiety")
    assert is_identifier_only("(@CHEMICAL_Linalool OR @CHEMICAL_Lavender)")
    assert not is_identifier_only("(lavender OR linalool) AND @DISEASE_Anxiety")
    assert not is_identifier_only("AND")


def test_validate_rejects_grouped_identifier_queries():
    with pytest.raises(InvalidArgument, match="parentheses"):
        validate_search_query("(@CHEMICAL_Linalool OR @CHEMICAL_Lavender) AND @DISEASE_Anxiety")


def test_validate_accepts_free_text_groups_and_relations():
    assert validate_search_query(" (lavender OR linalool) AND anxiety ") == "(lavender OR linalool) AND anxiety"
    assert validate_search_query("relations:ANY|@CHEMICAL_Linalool|ANY").startswith("relations:")
    with pytest.raises(InvalidArgument):
        validate_search_query("   ")
