# tests/test_filters.py
import pytest

from homematch.filters import (
    And, Eq, ILike, In, Or, build_city_state_or_clause, build_text_search_clause,
    join_predicates, sanitize_filter_value, validate_column,
)


@pytest.mark.parametrize("raw", [
    "Austin", "San,Fran(cisco)", "  (x)  ", "O'Hare; DROP", "a/b\\c`d\"e", "", "))((", "x,y,z",
])
def test_sanitize_is_idempotent_and_strips_structural_chars(raw):
    once = sanitize_filter_value(raw)
    assert sanitize_filter_value(once) == once
    assert not set(once) & set("(),\"'`;\\/")
    assert once == once.strip()


def test_sanitize_none_and_numbers():
    assert sanitize_filter_value(None) == ""
    assert sanitize_filter_value(42) == "42"


def test_city_state_clause_basic():
    assert build_city_state_or_clause([{"city": "Austin", "state": "TX"}]) == "and(city.eq.Austin,state.eq.TX)"


def test_city_state_clause_neutralizes_structure():
    clause = build_city_state_or_clause([{"city": "San,Fran(cisco)", "state": "CA"}])
    assert clause == "and(city.eq.San Fran cisco,state.eq.CA)"


def test_city_state_clause_dedupes_case_insensitively_first_wins():
    clause = build_city_state_or_clause([
        {"city": "Austin", "state": "TX"},
        {"city": "austin", "state": "tx"},
        ("Denver", "CO"),
    ])
    assert clause == "and(city.eq.Austin,state.eq.TX),and(city.eq.Denver,state.eq.CO)"


@pytest.mark.parametrize("pairs", [None, [], [{"city": "", "state": "TX"}], [{"city": "()", "state": ","}]])
def test_city_state_clause_empty_is_none(pairs):
    assert build_city_state_or_clause(pairs) is None


def test_text_search_clause():
    assert build_text_search_clause("lake view") == (
        "address.ilike.%lake view%,city.ilike.%lake view%,description.ilike.%lake view%"
    )
    assert build_text_search_clause("(),,") is None
    assert build_text_search_clause(None) is None


def test_injection_attempt_stays_a_single_value():
    clause = build_text_search_clause("x),price.gt.0,or(id.eq.1")
    assert clause.count("ilike") == 3
    assert ")" not in clause and "(" not in clause


def test_predicate_rendering():
    assert Eq("is_active", True).to_postgrest() == "is_active.eq.true"
    assert In("property_type", ("condo", "land", "")).to_postgrest() == "property_type.in.(condo,land)"
    assert ILike("city", "aus").to_postgrest() == "city.ilike.%aus%"
    nested = Or((And((Eq("a", 1), Eq("b", "x"))), Eq("c", 2.5)))
    assert nested.to_postgrest() == "or(and(a.eq.1,b.eq.x),c.eq.2.5)"
    assert join_predicates([Eq("a", ""), Eq("b", 1)]) == "b.eq.1"


def test_validate_column_rejects_garbage():
    assert validate_column("properties.city") == "properties.city"
    with pytest.raises(ValueError):
        validate_column("city;drop")
