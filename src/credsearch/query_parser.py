"""Search query parser — compact search strings to a structured query model.

Operators:

==============  ===============  ===================================
Operator        Syntax           Example
==============  ===============  ===================================
OR              ``,``            ``example.com, test.com``
AND             ``+``            ``example.com + test.com``
NOT             ``-`` (prefix)   ``example.com, -staging.example.com``
Wildcard        ``*``            ``*.example.com``, ``admin*@gmail.com``
Exact match     ``"..."``        ``"admin@example.com"``
Field prefix    ``field:value``  ``domain:example.com``, ``u:admin``
==============  ===============  ===================================

Precedence: commas separate OR groups, ``+`` joins AND terms inside a group.
``a.com + b.com, c.com`` reads as ``(a.com AND b.com) OR c.com``.

Parsing never raises.  Malformed input degrades to fewer (or zero) terms:
empty segments are skipped, unknown field prefixes stay in the literal value
and unbalanced quotes are searched for literally.

Public API:

* ``parse_search_query(query)`` — raw string to ``ParsedQuery``.
* ``parse_term(raw)`` — one AND part to ``SearchTerm``.
* ``detect_query_type(parsed)`` — ``"email"`` / ``"domain"`` / ``"mixed"``.
* ``has_operators(query)`` — does the raw string use any operator syntax.
* ``parsed_query_to_json`` / ``parsed_query_from_json`` — JSON round-trip.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

from credsearch.fields import FIELD_KINDS, FieldKind, resolve_field_alias

log = logging.getLogger(__name__)

Operator: TypeAlias = Literal["include", "exclude"]
MatchType: TypeAlias = Literal["exact", "contains", "wildcard"]
QueryType: TypeAlias = Literal["email", "domain", "mixed"]

OPERATORS: frozenset[str] = frozenset({"include", "exclude"})
MATCH_TYPES: frozenset[str] = frozenset({"exact", "contains", "wildcard"})

_FIELD_PREFIX_RE = re.compile(r"^(\w+):(.*)$", re.DOTALL)
_OPERATOR_CHARS_RE = re.compile(r'[,*"+]')
_EXCLUDE_AFTER_COMMA_RE = re.compile(r",\s*-")
_FIELD_SYNTAX_RE = re.compile(r"\w+:\S")


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class SearchTerm:
    """One atomic search value with its match semantics."""

    value: str
    operator: Operator = "include"
    match_type: MatchType = "contains"
    field: FieldKind | None = None

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("SearchTerm value must not be empty")
        if self.operator not in OPERATORS:
            raise ValueError(f"Invalid term operator: {self.operator!r}")
        if self.match_type not in MATCH_TYPES:
            raise ValueError(f"Invalid match type: {self.match_type!r}")
        if self.match_type == "wildcard" and "*" not in self.value:
            raise ValueError("Wildcard term must contain '*'")
        if self.field is not None and self.field not in FIELD_KINDS:
            raise ValueError(f"Unknown search field: {self.field!r}")


@dataclass(frozen=True, slots=True)
class SearchGroup:
    """AND-joined terms sharing one include/exclude polarity."""

    terms: tuple[SearchTerm, ...]
    operator: Operator = "include"

    def __post_init__(self) -> None:
        if not self.terms:
            raise ValueError("SearchGroup must contain at least one term")
        if self.operator not in OPERATORS:
            raise ValueError(f"Invalid group operator: {self.operator!r}")
        for term in self.terms:
            if term.operator != self.operator:
                raise ValueError(
                    f"Term {term.value!r} has operator {term.operator!r}, "
                    f"group has {self.operator!r}"
                )

    @classmethod
    def of(cls, terms: Iterable[SearchTerm], operator: Operator) -> SearchGroup:
        """Build a group, overwriting every term's operator with *operator*."""
        stamped = tuple(
            t if t.operator == operator else dataclasses.replace(t, operator=operator)
            for t in terms
        )
        return cls(terms=stamped, operator=operator)


@dataclass(frozen=True, slots=True)
class ParsedQuery:
    """Canonical parse result.  Everything but ``groups`` is derived."""

    groups: tuple[SearchGroup, ...] = ()
    original_query: str = ""

    @property
    def terms(self) -> tuple[SearchTerm, ...]:
        return tuple(t for g in self.groups for t in g.terms)

    @property
    def include_groups(self) -> tuple[SearchGroup, ...]:
        return tuple(g for g in self.groups if g.operator == "include")

    @property
    def exclude_groups(self) -> tuple[SearchGroup, ...]:
        return tuple(g for g in self.groups if g.operator == "exclude")

    @property
    def include_terms(self) -> tuple[SearchTerm, ...]:
        return tuple(t for g in self.include_groups for t in g.terms)

    @property
    def exclude_terms(self) -> tuple[SearchTerm, ...]:
        return tuple(t for g in self.exclude_groups for t in g.terms)

    @property
    def has_field_prefixes(self) -> bool:
        return any(t.field is not None for t in self.terms)

    @property
    def has_and_groups(self) -> bool:
        """True if any include group needs AND semantics (more than one term)."""
        return any(len(g.terms) > 1 for g in self.include_groups)

    @property
    def is_empty(self) -> bool:
        return not self.groups


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _unquote(value: str) -> str | None:
    """Return the inside of a ``"..."`` wrapped value, else ``None``."""
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return None


def parse_term(raw: str) -> tuple[SearchTerm | None, bool]:
    """Parse one AND part into a ``SearchTerm``.

    Returns ``(term, has_field_prefix)``.  *term* is ``None`` when nothing
    searchable is left (``-``, ``""``, ``user:``).
    """
    token = raw.strip()
    if not token:
        return (None, False)

    operator: Operator = "include"
    match_type: MatchType | None = None
    field: FieldKind | None = None

    # Term-local NOT; the owning group's operator overrides it.
    if token.startswith("-"):
        operator = "exclude"
        token = token[1:].strip()
        if not token:
            log.debug("Dropping bare '-' token in %r", raw)
            return (None, False)

    quoted = _unquote(token)
    if quoted is not None:
        # Exact tokens never carry a field prefix: "domain:x.com" is literal.
        match_type = "exact"
        token = quoted
    else:
        m = _FIELD_PREFIX_RE.match(token)
        if m:
            resolved = resolve_field_alias(m.group(1))
            if resolved is not None:
                field = resolved
                token = m.group(2).strip()
                quoted = _unquote(token)
                if quoted is not None:
                    match_type = "exact"
                    token = quoted

    if not token:
        log.debug("Dropping empty term from %r", raw)
        return (None, False)

    if match_type is None:
        match_type = "wildcard" if "*" in token else "contains"

    term = SearchTerm(value=token, operator=operator, match_type=match_type, field=field)
    return (term, field is not None)


def _split_group(segment: str) -> SearchGroup | None:
    """Parse one comma-separated segment into a group (``None`` if empty)."""
    operator: Operator = "include"
    content = segment
    if segment.startswith("-") and len(segment) > 1:
        operator = "exclude"
        content = segment[1:].strip()

    terms: list[SearchTerm] = []
    for part in content.split("+"):
        term, _has_prefix = parse_term(part)
        if term is not None:
            terms.append(term)

    if not terms:
        log.debug("Dropping empty group %r", segment)
        return None
    return SearchGroup.of(terms, operator)


def parse_search_query(query: str) -> ParsedQuery:
    """Parse a raw search string.  Never raises.

    Comma-separated segments are OR groups; ``+`` inside a segment creates
    AND terms; a leading ``-`` on a segment excludes every term in it.
    """
    groups: list[SearchGroup] = []
    for segment in query.split(","):
        trimmed = segment.strip()
        if not trimmed:
            continue
        group = _split_group(trimmed)
        if group is not None:
            groups.append(group)
    return ParsedQuery(groups=tuple(groups), original_query=query)


# ---------------------------------------------------------------------------
# Query classification
# ---------------------------------------------------------------------------

def detect_query_type(parsed: ParsedQuery) -> QueryType:
    """Guess whether bare tokens look like emails, domains, or both."""
    if parsed.has_field_prefixes:
        return "mixed"

    has_email = any("@" in t.value for t in parsed.terms)
    has_domain = any("." in t.value and "@" not in t.value for t in parsed.terms)

    if has_email and has_domain:
        return "mixed"
    if has_email:
        return "email"
    return "domain"


def has_operators(query: str) -> bool:
    """Return True when *query* uses any operator syntax."""
    return bool(
        _OPERATOR_CHARS_RE.search(query)
        or query.strip().startswith("-")
        or _EXCLUDE_AFTER_COMMA_RE.search(query)
        or _FIELD_SYNTAX_RE.search(query)
    )


# ---------------------------------------------------------------------------
# JSON serialization
# ---------------------------------------------------------------------------

def _term_to_json(term: SearchTerm) -> dict[str, Any]:
    d: dict[str, Any] = {"value": term.value, "match": term.match_type}
    if term.field is not None:
        d["field"] = term.field
    return d


def parsed_query_to_json(parsed: ParsedQuery) -> dict[str, Any]:
    """Serialize a ``ParsedQuery`` to a JSON-compatible dict::

        {"query": "a.com + u:bob, -spam.com",
         "groups": [
            {"op": "include", "terms": [{"value": "a.com", "match": "contains"},
                                        {"value": "bob", "match": "contains",
                                         "field": "user"}]},
            {"op": "exclude", "terms": [{"value": "spam.com", "match": "contains"}]}]}

    Term operators are implied by their group.
    """
    return {
        "query": parsed.original_query,
        "groups": [
            {"op": g.operator, "terms": [_term_to_json(t) for t in g.terms]}
            for g in parsed.groups
        ],
    }


def parsed_query_from_json(data: Any) -> ParsedQuery:
    """Deserialize the output of ``parsed_query_to_json``.

    Raises ``ValueError`` on malformed input.
    """
    if not isinstance(data, dict):
        raise ValueError("Parsed query payload must be an object")
    raw_groups = data.get("groups", [])
    if not isinstance(raw_groups, list):
        raise ValueError("'groups' must be a list")

    groups: list[SearchGroup] = []
    for i, raw_group in enumerate(raw_groups):
        if not isinstance(raw_group, dict):
            raise ValueError(f"groups.{i} must be an object")
        op = str(raw_group.get("op", "include")).lower()
        if op not in OPERATORS:
            raise ValueError(f"groups.{i}: invalid operator {op!r}")
        raw_terms = raw_group.get("terms")
        if not isinstance(raw_terms, list) or not raw_terms:
            raise ValueError(f"groups.{i}: 'terms' must be a non-empty list")

        terms: list[SearchTerm] = []
        for j, raw_term in enumerate(raw_terms):
            if not isinstance(raw_term, dict) or "value" not in raw_term:
                raise ValueError(f"groups.{i}.terms.{j} must be an object with 'value'")
            field = raw_term.get("field")
            try:
                terms.append(SearchTerm(
                    value=str(raw_term["value"]),
                    operator=op,  # type: ignore[arg-type]
                    match_type=str(raw_term.get("match", "contains")),  # type: ignore[arg-type]
                    field=str(field) if field is not None else None,  # type: ignore[arg-type]
                ))
            except ValueError as exc:
                raise ValueError(f"groups.{i}.terms.{j}: {exc}") from exc
        groups.append(SearchGroup.of(terms, op))  # type: ignore[arg-type]

    return ParsedQuery(groups=tuple(groups), original_query=str(data.get("query", "")))
