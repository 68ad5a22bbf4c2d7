"""Tests for credsearch.domain — normalisation and domain conditions."""
from __future__ import annotations

from typing import Any

import pytest

from credsearch.dialect import CLICKHOUSE, DUCKDB
from credsearch.domain import build_domain_condition, normalize_domain, wildcard_to_like
from credsearch.fields import SearchColumns


class TestNormalizeDomain:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("example.com", "example.com"),
            ("HTTPS://WWW.Api.Example.com/v1", "api.example.com"),
            ("http://example.com/", "example.com"),
            ("www.example.com", "example.com"),
            ("example.com:8443", "example.com"),
            ("https://example.com:8443/login?x=1", "example.com"),
            ("  Example.COM  ", "example.com"),
            ("ftp://example.com", "ftp"),
        ],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_domain(raw) == expected

    def test_only_leading_www_stripped(self) -> None:
        assert normalize_domain("mail.www.example.com") == "mail.www.example.com"


class TestWildcardToLike:
    def test_replaces_every_star(self) -> None:
        assert wildcard_to_like("*.a*b.com*") == "%.a%b.com%"

    def test_leaves_other_characters(self) -> None:
        assert wildcard_to_like("a_b%c'd") == "a_b%c'd"


class TestBuildDomainCondition:
    def test_exact(self) -> None:
        params: dict[str, Any] = {}
        sql = build_domain_condition("WWW.Example.com", "exact", "t0", params)
        assert sql == "c.domain = {t0_d:String}"
        assert params == {"t0_d": "example.com"}

    def test_wildcard(self) -> None:
        params: dict[str, Any] = {}
        sql = build_domain_condition("*.example.com", "wildcard", "t3", params)
        assert sql == "(c.domain ILIKE {t3_dw:String} OR c.url ILIKE {t3_dw:String})"
        assert params == {"t3_dw": "%.example.com"}

    def test_contains_four_shapes(self) -> None:
        params: dict[str, Any] = {}
        sql = build_domain_condition("example.com", "contains", "t0", params)
        assert sql == (
            "(c.domain = {t0_d:String}"
            " OR c.domain ILIKE concat('%.', {t0_d:String})"
            " OR c.url ILIKE {t0_p1:String}"
            " OR c.url ILIKE {t0_p2:String}"
            " OR c.url ILIKE {t0_p3:String}"
            " OR c.url ILIKE {t0_p4:String})"
        )
        assert params == {
            "t0_d": "example.com",
            "t0_p1": "%://example.com/%",
            "t0_p2": "%://example.com:%",
            "t0_p3": "%://%.example.com/%",
            "t0_p4": "%://%.example.com:%",
        }

    def test_duckdb_placeholders(self) -> None:
        params: dict[str, Any] = {}
        sql = build_domain_condition("example.com", "exact", "x1", params, dialect=DUCKDB)
        assert sql == "c.domain = $x1_d"

    def test_custom_columns(self) -> None:
        params: dict[str, Any] = {}
        cols = SearchColumns(domain="cred.host", url="cred.link")
        sql = build_domain_condition(
            "*x*", "wildcard", "t0", params, columns=cols, dialect=CLICKHOUSE,
        )
        assert sql == "(cred.host ILIKE {t0_dw:String} OR cred.link ILIKE {t0_dw:String})"

    def test_value_never_in_sql(self) -> None:
        params: dict[str, Any] = {}
        sql = build_domain_condition("evil'; DROP--", "contains", "t0", params)
        assert "evil" not in sql
        assert "DROP" not in sql
