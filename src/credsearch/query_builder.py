"""Search query builder — parameterised WHERE clauses from a ``ParsedQuery``.

Every builder returns a ``BuiltClause``: a SQL condition **without** the
leading ``WHERE`` keyword plus the bind values it references.  User input
only ever reaches the engine through ``params``; the SQL text contains
column expressions, operators and placeholder names.

Builders:

* ``build_search_condition`` — row-level filter for the credentials table.
* ``build_device_id_subquery`` — device ids whose credential rows jointly
  satisfy the query (AND across rows).
* ``build_recon_condition`` — keyword recon against hostname or full URL.
* ``build_domain_recon_condition`` — recon where every term is a domain.

An empty query compiles to ``1=1`` (match everything).
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from credsearch.dialect import CLICKHOUSE, SqlDialect
from credsearch.domain import build_domain_condition, wildcard_to_like
from credsearch.fields import DEFAULT_COLUMNS, SearchColumns
from credsearch.query_parser import MatchType, ParsedQuery, SearchTerm

SearchType: TypeAlias = Literal["email", "domain"]
ReconMode: TypeAlias = Literal["domain-only", "full-url"]

SEARCH_TYPES: frozenset[str] = frozenset({"email", "domain"})
RECON_MODES: frozenset[str] = frozenset({"domain-only", "full-url"})

MATCH_ALL = "1=1"

_COLUMN_IDENT_RE = re.compile(r"^[A-Za-z_]\w*(\.[A-Za-z_]\w*)?$")
_TABLE_IDENT_RE = re.compile(
    r"^[A-Za-z_]\w*(\.[A-Za-z_]\w*)?(\s+(AS\s+)?[A-Za-z_]\w*)?$", re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class BuiltClause:
    """SQL condition (never empty, no ``WHERE``) and its named bind values."""

    condition: str
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.condition.strip():
            raise ValueError("BuiltClause condition must not be empty")


# ---------------------------------------------------------------------------
# Single-term conditions
# ---------------------------------------------------------------------------

def _pattern_for(value: str, match_type: MatchType) -> str:
    if match_type == "exact":
        return value
    if match_type == "wildcard":
        return wildcard_to_like(value)
    return f"%{value}%"


def _column_condition(
    column: str,
    value: str,
    match_type: MatchType,
    key: str,
    params: dict[str, Any],
    dialect: SqlDialect,
) -> str:
    params[key] = _pattern_for(value, match_type)
    op = "=" if match_type == "exact" else "ILIKE"
    return f"{column} {op} {dialect.placeholder(key)}"


def build_term_condition(
    term: SearchTerm,
    prefix: str,
    search_type: SearchType,
    params: dict[str, Any],
    *,
    columns: SearchColumns = DEFAULT_COLUMNS,
    dialect: SqlDialect = CLICKHOUSE,
) -> str:
    """Route one term to the right builder.

    Field-prefixed terms target their column (``domain:`` goes through the
    subdomain-aware builder).  Bare terms follow *search_type*.
    """
    if term.field == "domain" or (term.field is None and search_type == "domain"):
        return build_domain_condition(
            term.value, term.match_type, prefix, params,
            columns=columns, dialect=dialect,
        )
    if term.field is not None:
        return _column_condition(
            columns.column_for(term.field), term.value, term.match_type,
            f"{prefix}_f", params, dialect,
        )
    return _column_condition(
        columns.user, term.value, term.match_type, f"{prefix}_e", params, dialect,
    )


# ---------------------------------------------------------------------------
# Combination helpers
# ---------------------------------------------------------------------------

TermBuilder: TypeAlias = Callable[[SearchTerm, str, dict[str, Any]], str]


@dataclass(frozen=True, slots=True)
class _CompiledTerms:
    """Per-term conditions, grouped the way the parsed query groups them."""

    include_groups: list[list[str]]
    excludes: list[str]
    params: dict[str, Any]


def _compile_terms(
    parsed: ParsedQuery,
    build: TermBuilder,
    include_prefix: str,
    exclude_prefix: str,
) -> _CompiledTerms:
    params: dict[str, Any] = {}
    include_groups: list[list[str]] = []
    idx = 0
    for group in parsed.include_groups:
        conds: list[str] = []
        for term in group.terms:
            conds.append(build(term, f"{include_prefix}{idx}", params))
            idx += 1
        include_groups.append(conds)
    excludes = [
        build(term, f"{exclude_prefix}{i}", params)
        for i, term in enumerate(parsed.exclude_terms)
    ]
    return _CompiledTerms(include_groups=include_groups, excludes=excludes, params=params)


def _join(parts: list[str], joiner: str) -> str:
    """Join with *joiner*; a single part is returned unwrapped."""
    if len(parts) == 1:
        return parts[0]
    return "(" + joiner.join(parts) + ")"


def _combine(compiled: _CompiledTerms) -> str:
    """Build ``(g1 OR g2 …) AND NOT (x1) AND NOT (x2) …``; empty string if no terms."""
    condition = ""
    if compiled.include_groups:
        condition = _join(
            [_join(conds, " AND ") for conds in compiled.include_groups], " OR ",
        )
    if compiled.excludes:
        not_parts = " AND ".join(f"NOT ({c})" for c in compiled.excludes)
        condition = f"{condition} AND {not_parts}" if condition else not_parts
    return condition


def _check_search_type(search_type: str) -> None:
    if search_type not in SEARCH_TYPES:
        raise ValueError(
            f"Invalid search type: {search_type!r} (expected 'email' or 'domain')"
        )


# ---------------------------------------------------------------------------
# Row-level search
# ---------------------------------------------------------------------------

def build_search_condition(
    parsed: ParsedQuery,
    search_type: SearchType,
    *,
    columns: SearchColumns = DEFAULT_COLUMNS,
    dialect: SqlDialect = CLICKHOUSE,
) -> BuiltClause:
    """Build the credential-row WHERE condition for *parsed*.

    Include groups are OR-joined, terms inside a group are AND-joined against
    the *same row*, and each exclude term is appended as ``AND NOT (...)``.
    """
    _check_search_type(search_type)

    def build(term: SearchTerm, prefix: str, params: dict[str, Any]) -> str:
        return build_term_condition(
            term, prefix, search_type, params, columns=columns, dialect=dialect,
        )

    compiled = _compile_terms(parsed, build, "t", "x")
    return BuiltClause(condition=_combine(compiled) or MATCH_ALL, params=compiled.params)


# ---------------------------------------------------------------------------
# Device-level search (AND across rows)
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class SimpleFilter:
    """No AND groups: a plain row filter finds the same devices."""

    where: BuiltClause


@dataclass(frozen=True, slots=True)
class AggregateAndFilter:
    """AND groups: pre-filter rows, then decide per device with ``countIf``."""

    where: str
    having: str
    params: dict[str, Any]


DeviceSubqueryPlan: TypeAlias = SimpleFilter | AggregateAndFilter


def _plan_simple(
    parsed: ParsedQuery,
    search_type: SearchType,
    columns: SearchColumns,
    dialect: SqlDialect,
) -> SimpleFilter:
    return SimpleFilter(
        where=build_search_condition(parsed, search_type, columns=columns, dialect=dialect),
    )


def _plan_aggregate(
    parsed: ParsedQuery,
    search_type: SearchType,
    columns: SearchColumns,
    dialect: SqlDialect,
) -> AggregateAndFilter:
    def build(term: SearchTerm, prefix: str, params: dict[str, Any]) -> str:
        return build_term_condition(
            term, prefix, search_type, params, columns=columns, dialect=dialect,
        )

    compiled = _compile_terms(parsed, build, "t", "x")

    all_conditions = [c for conds in compiled.include_groups for c in conds]
    all_conditions.extend(compiled.excludes)
    where = " OR ".join(all_conditions) if all_conditions else MATCH_ALL

    group_having = [
        _join([dialect.count_if_positive(c) for c in conds], " AND ")
        for conds in compiled.include_groups
    ]
    having = _join(group_having, " OR ") if group_having else ""
    if compiled.excludes:
        not_parts = " AND ".join(
            f"NOT ({dialect.count_if_positive(c)})" for c in compiled.excludes
        )
        having = f"{having} AND {not_parts}" if having else not_parts

    return AggregateAndFilter(where=where, having=having or MATCH_ALL, params=compiled.params)


def plan_device_subquery(
    parsed: ParsedQuery,
    search_type: SearchType,
    *,
    columns: SearchColumns = DEFAULT_COLUMNS,
    dialect: SqlDialect = CLICKHOUSE,
) -> DeviceSubqueryPlan:
    """Pick the device-subquery strategy for *parsed*.

    ``has_and_groups`` is the only thing that decides: without multi-term
    include groups no cross-row logic is needed.
    """
    _check_search_type(search_type)
    if parsed.has_and_groups:
        return _plan_aggregate(parsed, search_type, columns, dialect)
    return _plan_simple(parsed, search_type, columns, dialect)


def render_device_subquery(
    plan: DeviceSubqueryPlan,
    *,
    entity_column: str = "device_id",
    source_table: str = "credentials c",
) -> BuiltClause:
    """Render a plan as a complete ``SELECT`` returning *entity_column*."""
    if not _COLUMN_IDENT_RE.match(entity_column):
        raise ValueError(f"Invalid entity column identifier: {entity_column!r}")
    if not _TABLE_IDENT_RE.match(source_table.strip()):
        raise ValueError(f"Invalid source table identifier: {source_table!r}")
    table = source_table.strip()

    if isinstance(plan, SimpleFilter):
        return BuiltClause(
            condition=(
                f"SELECT DISTINCT {entity_column} FROM {table}"
                f" WHERE {plan.where.condition}"
            ),
            params=plan.where.params,
        )
    return BuiltClause(
        condition=(
            f"SELECT {entity_column} FROM {table}"
            f" WHERE {plan.where}"
            f" GROUP BY {entity_column}"
            f" HAVING {plan.having}"
        ),
        params=plan.params,
    )


def build_device_id_subquery(
    parsed: ParsedQuery,
    search_type: SearchType,
    *,
    entity_column: str = "device_id",
    source_table: str = "credentials c",
    columns: SearchColumns = DEFAULT_COLUMNS,
    dialect: SqlDialect = CLICKHOUSE,
) -> BuiltClause:
    """Subquery selecting devices whose credential rows satisfy *parsed*.

    For ``a.com + b.com`` a device qualifies when *some* row matches
    ``a.com`` and *some* (possibly different) row matches ``b.com``.
    """
    plan = plan_device_subquery(parsed, search_type, columns=columns, dialect=dialect)
    return render_device_subquery(
        plan, entity_column=entity_column, source_table=source_table,
    )


# ---------------------------------------------------------------------------
# Recon
# ---------------------------------------------------------------------------

def build_recon_condition(
    parsed: ParsedQuery,
    mode: ReconMode = "full-url",
    *,
    columns: SearchColumns = DEFAULT_COLUMNS,
    dialect: SqlDialect = CLICKHOUSE,
) -> BuiltClause:
    """Keyword recon condition.

    ``domain-only`` matches the hostname extracted from the URL column,
    ``full-url`` matches the raw URL.  Non-exact terms also match the domain
    column.  Rows without a URL never match.
    """
    if mode not in RECON_MODES:
        raise ValueError(
            f"Invalid recon mode: {mode!r} (expected 'domain-only' or 'full-url')"
        )
    target = dialect.hostname_expr(columns.url) if mode == "domain-only" else columns.url

    def build(term: SearchTerm, prefix: str, params: dict[str, Any]) -> str:
        key = f"{prefix}_k"
        params[key] = _pattern_for(term.value, term.match_type)
        ph = dialect.placeholder(key)
        if term.match_type == "exact":
            return f"{target} = {ph}"
        return f"({target} ILIKE {ph} OR {columns.domain} ILIKE {ph})"

    compiled = _compile_terms(parsed, build, "k", "kx")
    condition = _combine(compiled)
    not_null = f"{columns.url} IS NOT NULL"
    if condition:
        return BuiltClause(condition=f"({condition}) AND {not_null}", params=compiled.params)
    return BuiltClause(condition=not_null, params=compiled.params)


def build_domain_recon_condition(
    parsed: ParsedQuery,
    *,
    not_null_check: bool = False,
    columns: SearchColumns = DEFAULT_COLUMNS,
    dialect: SqlDialect = CLICKHOUSE,
) -> BuiltClause:
    """Domain recon condition: every term is a domain, whatever it looks like."""

    def build(term: SearchTerm, prefix: str, params: dict[str, Any]) -> str:
        return build_domain_condition(
            term.value, term.match_type, prefix, params,
            columns=columns, dialect=dialect,
        )

    compiled = _compile_terms(parsed, build, "d", "dx")
    condition = _combine(compiled)
    if condition and not_null_check:
        condition = f"({condition}) AND {columns.domain} IS NOT NULL"
    return BuiltClause(condition=condition or MATCH_ALL, params=compiled.params)
