"""Tests for credsearch.query_parser — search string to ParsedQuery."""
from __future__ import annotations

import pytest

from credsearch.query_parser import (
    ParsedQuery,
    SearchGroup,
    SearchTerm,
    detect_query_type,
    has_operators,
    parse_search_query,
    parse_term,
    parsed_query_from_json,
    parsed_query_to_json,
)


# ───────────────────────────── parse_term ──────────────────────────────


class TestParseTerm:
    def test_plain_contains(self) -> None:
        term, has_prefix = parse_term("admin")
        assert term == SearchTerm(value="admin", match_type="contains")
        assert has_prefix is False

    def test_trims_whitespace(self) -> None:
        term, _ = parse_term("  example.com  ")
        assert term is not None
        assert term.value == "example.com"

    def test_exact(self) -> None:
        term, _ = parse_term('"admin@example.com"')
        assert term is not None
        assert term.match_type == "exact"
        assert term.value == "admin@example.com"

    def test_exact_skips_field_prefix(self) -> None:
        term, has_prefix = parse_term('"domain:example.com"')
        assert term is not None
        assert term.field is None
        assert term.value == "domain:example.com"
        assert term.match_type == "exact"
        assert has_prefix is False

    def test_exact_keeps_star_literal(self) -> None:
        term, _ = parse_term('"a*b"')
        assert term is not None
        assert term.match_type == "exact"

    def test_wildcard(self) -> None:
        term, _ = parse_term("admin*@gmail.com")
        assert term is not None
        assert term.match_type == "wildcard"
        assert term.value == "admin*@gmail.com"

    def test_field_prefix(self) -> None:
        term, has_prefix = parse_term("domain:example.com")
        assert term is not None
        assert term.field == "domain"
        assert term.value == "example.com"
        assert has_prefix is True

    @pytest.mark.parametrize(
        ("alias", "kind"),
        [
            ("d", "domain"),
            ("u", "user"),
            ("USERNAME", "user"),
            ("Email", "user"),
            ("url", "url"),
            ("b", "browser"),
            ("pass", "password"),
            ("p", "password"),
        ],
    )
    def test_field_aliases(self, alias: str, kind: str) -> None:
        term, _ = parse_term(f"{alias}:value")
        assert term is not None
        assert term.field == kind

    def test_field_prefix_with_quoted_value(self) -> None:
        term, _ = parse_term('domain:"exact.com"')
        assert term is not None
        assert term.field == "domain"
        assert term.match_type == "exact"
        assert term.value == "exact.com"

    def test_field_prefix_with_wildcard(self) -> None:
        term, _ = parse_term("u:admin*")
        assert term is not None
        assert term.field == "user"
        assert term.match_type == "wildcard"

    def test_unknown_field_is_literal(self) -> None:
        term, has_prefix = parse_term("foo:bar")
        assert term is not None
        assert term.field is None
        assert term.value == "foo:bar"
        assert has_prefix is False

    def test_url_value_is_not_a_field(self) -> None:
        # "https" is not an alias, so the colon stays in the value.
        term, _ = parse_term("https://example.com")
        assert term is not None
        assert term.field is None
        assert term.value == "https://example.com"

    def test_unbalanced_quote_is_literal(self) -> None:
        term, _ = parse_term('"admin')
        assert term is not None
        assert term.match_type == "contains"
        assert term.value == '"admin'

    def test_local_exclude_marker(self) -> None:
        term, _ = parse_term("-spam.com")
        assert term is not None
        assert term.operator == "exclude"
        assert term.value == "spam.com"

    @pytest.mark.parametrize("raw", ["", "   ", "-", '""', "user:", "d:  ", 'u:""'])
    def test_empty_tokens_dropped(self, raw: str) -> None:
        term, has_prefix = parse_term(raw)
        assert term is None
        assert has_prefix is False


# ───────────────────────────── parse_search_query ──────────────────────────


class TestParseSearchQuery:
    def test_empty(self) -> None:
        parsed = parse_search_query("")
        assert parsed.groups == ()
        assert parsed.terms == ()
        assert parsed.is_empty

    def test_whitespace_only(self) -> None:
        assert parse_search_query("  , ,  ").groups == ()

    def test_single_term(self) -> None:
        parsed = parse_search_query("example.com")
        assert len(parsed.groups) == 1
        assert parsed.include_terms == (SearchTerm(value="example.com"),)
        assert parsed.original_query == "example.com"

    def test_or_groups(self) -> None:
        parsed = parse_search_query("a.com, b.com")
        assert len(parsed.include_groups) == 2
        assert all(len(g.terms) == 1 for g in parsed.groups)
        assert parsed.has_and_groups is False

    def test_and_group(self) -> None:
        parsed = parse_search_query("a.com + b.com")
        assert len(parsed.groups) == 1
        assert [t.value for t in parsed.groups[0].terms] == ["a.com", "b.com"]
        assert parsed.has_and_groups is True

    def test_mixed_precedence(self) -> None:
        parsed = parse_search_query("a.com + b.com, c.com")
        assert [len(g.terms) for g in parsed.groups] == [2, 1]

    def test_not_group(self) -> None:
        parsed = parse_search_query("-spam.com")
        assert len(parsed.exclude_groups) == 1
        assert parsed.include_groups == ()
        assert parsed.exclude_terms[0].value == "spam.com"
        assert parsed.exclude_terms[0].operator == "exclude"

    def test_not_group_stamps_every_term(self) -> None:
        parsed = parse_search_query("a.com, -x.com + y.com")
        group = parsed.exclude_groups[0]
        assert [t.operator for t in group.terms] == ["exclude", "exclude"]
        # Exclude groups never make has_and_groups true.
        assert parsed.has_and_groups is False

    def test_group_operator_overrides_term_marker(self) -> None:
        parsed = parse_search_query("a.com + -b.com")
        assert [t.operator for t in parsed.terms] == ["include", "include"]
        assert parsed.terms[1].value == "b.com"

    def test_lone_dash_segment_dropped(self) -> None:
        parsed = parse_search_query("a.com, -")
        assert len(parsed.groups) == 1

    def test_empty_and_parts_dropped(self) -> None:
        parsed = parse_search_query("a.com + + b.com +")
        assert [t.value for t in parsed.terms] == ["a.com", "b.com"]

    def test_fully_empty_group_dropped(self) -> None:
        parsed = parse_search_query('a.com, "" + user:')
        assert len(parsed.groups) == 1

    def test_has_field_prefixes(self) -> None:
        assert parse_search_query("domain:example.com").has_field_prefixes is True
        assert parse_search_query("example.com").has_field_prefixes is False
        assert parse_search_query('"domain:example.com"').has_field_prefixes is False

    def test_derived_views(self) -> None:
        parsed = parse_search_query("a.com + b.com, c.com, -d.com")
        assert [t.value for t in parsed.terms] == ["a.com", "b.com", "c.com", "d.com"]
        assert [t.value for t in parsed.include_terms] == ["a.com", "b.com", "c.com"]
        assert [t.value for t in parsed.exclude_terms] == ["d.com"]

    def test_never_raises_on_garbage(self) -> None:
        for raw in ['"', "-,-,+", ":::", "u:\"", "*", "'; DROP TABLE x;--"]:
            parse_search_query(raw)


# ───────────────────────────── model invariants ──────────────────────────


class TestModelInvariants:
    def test_empty_value_rejected(self) -> None:
        with pytest.raises(ValueError):
            SearchTerm(value="")

    def test_wildcard_requires_star(self) -> None:
        with pytest.raises(ValueError):
            SearchTerm(value="abc", match_type="wildcard")

    def test_group_rejects_mismatched_operator(self) -> None:
        with pytest.raises(ValueError):
            SearchGroup(terms=(SearchTerm(value="a"),), operator="exclude")

    def test_group_rejects_empty(self) -> None:
        with pytest.raises(ValueError):
            SearchGroup(terms=(), operator="include")

    def test_group_of_stamps_operator(self) -> None:
        group = SearchGroup.of([SearchTerm(value="a"), SearchTerm(value="b")], "exclude")
        assert all(t.operator == "exclude" for t in group.terms)

    def test_parsed_query_is_frozen(self) -> None:
        parsed = parse_search_query("a.com")
        with pytest.raises(AttributeError):
            parsed.groups = ()  # type: ignore[misc]


# ───────────────────────────── detection helpers ──────────────────────────


class TestDetectQueryType:
    def test_email(self) -> None:
        assert detect_query_type(parse_search_query("admin@example.com")) == "email"

    def test_domain(self) -> None:
        assert detect_query_type(parse_search_query("example.com")) == "domain"

    def test_mixed_terms(self) -> None:
        parsed = parse_search_query("admin@example.com, example.org")
        assert detect_query_type(parsed) == "mixed"

    def test_field_prefix_is_mixed(self) -> None:
        assert detect_query_type(parse_search_query("u:admin")) == "mixed"

    def test_bare_word_defaults_to_domain(self) -> None:
        assert detect_query_type(parse_search_query("admin")) == "domain"


class TestHasOperators:
    @pytest.mark.parametrize(
        "query",
        ["a.com, b.com", "a + b", '"x"', "adm*", "-spam.com", "a.com, -b.com", "u:admin"],
    )
    def test_detects(self, query: str) -> None:
        assert has_operators(query) is True

    @pytest.mark.parametrize("query", ["example.com", "admin@example.com", "a-b.com"])
    def test_plain(self, query: str) -> None:
        assert has_operators(query) is False


# ───────────────────────────── JSON round-trip ──────────────────────────


class TestJson:
    def test_to_json_shape(self) -> None:
        data = parsed_query_to_json(parse_search_query("a.com + u:bob, -spam.com"))
        assert data == {
            "query": "a.com + u:bob, -spam.com",
            "groups": [
                {
                    "op": "include",
                    "terms": [
                        {"value": "a.com", "match": "contains"},
                        {"value": "bob", "match": "contains", "field": "user"},
                    ],
                },
                {"op": "exclude", "terms": [{"value": "spam.com", "match": "contains"}]},
            ],
        }

    def test_round_trip(self) -> None:
        parsed = parse_search_query('"x@y.com" + d:*.a.com, -b.com')
        assert parsed_query_from_json(parsed_query_to_json(parsed)) == parsed

    def test_empty_payload(self) -> None:
        assert parsed_query_from_json({"groups": []}) == ParsedQuery()

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"groups": "nope"},
            {"groups": [{"op": "maybe", "terms": [{"value": "a"}]}]},
            {"groups": [{"op": "include", "terms": []}]},
            {"groups": [{"op": "include", "terms": [{"nope": 1}]}]},
            {"groups": [{"op": "include", "terms": [{"value": ""}]}]},
            {"groups": [{"op": "include", "terms": [{"value": "a", "field": "zip"}]}]},
        ],
    )
    def test_malformed(self, payload: object) -> None:
        with pytest.raises(ValueError):
            parsed_query_from_json(payload)
