"""Guardrails for parsed search queries.

``validate_parsed_query`` reports limit violations as structured errors and
never raises; callers decide whether an error is fatal.
``estimate_query_cost`` gives a weighted cost so callers can warn before
sending an expensive query to the engine.
"""
from __future__ import annotations

from dataclasses import dataclass

from credsearch.query_parser import ParsedQuery

MAX_TERMS = 50
MAX_GROUPS = 25
MAX_WILDCARDS = 10


@dataclass(frozen=True, slots=True)
class QueryValidationError:
    """Structured error from query validation."""

    code: str  # "max_terms" | "max_groups" | "max_wildcards" | "match_all_wildcard"
    message: str
    path: str = ""  # e.g. "groups.1.terms.0"


def validate_parsed_query(
    parsed: ParsedQuery,
    *,
    max_terms: int = MAX_TERMS,
    max_groups: int = MAX_GROUPS,
    max_wildcards: int = MAX_WILDCARDS,
) -> list[QueryValidationError]:
    """Check *parsed* against size limits.  Returns a possibly empty list."""
    errors: list[QueryValidationError] = []

    term_count = len(parsed.terms)
    if term_count > max_terms:
        errors.append(QueryValidationError(
            code="max_terms",
            message=f"Query has {term_count} terms, maximum is {max_terms}",
        ))

    group_count = len(parsed.groups)
    if group_count > max_groups:
        errors.append(QueryValidationError(
            code="max_groups",
            message=f"Query has {group_count} groups, maximum is {max_groups}",
        ))

    wildcard_count = sum(1 for t in parsed.terms if t.match_type == "wildcard")
    if wildcard_count > max_wildcards:
        errors.append(QueryValidationError(
            code="max_wildcards",
            message=f"Query has {wildcard_count} wildcard terms, maximum is {max_wildcards}",
        ))

    for gi, group in enumerate(parsed.groups):
        for ti, term in enumerate(group.terms):
            # A pattern that is nothing but wildcards matches every row.
            if term.match_type == "wildcard" and not term.value.strip("*"):
                errors.append(QueryValidationError(
                    code="match_all_wildcard",
                    message=f"Term {term.value!r} matches everything",
                    path=f"groups.{gi}.terms.{ti}",
                ))

    return errors


def estimate_query_cost(parsed: ParsedQuery) -> int:
    """Weighted cost: 1 per term, +2 per wildcard, +1 per group, +1 per AND group."""
    cost = 0
    for group in parsed.groups:
        cost += 1
        if len(group.terms) > 1:
            cost += 1
        for term in group.terms:
            cost += 1
            if term.match_type == "wildcard":
                cost += 2
    return cost
