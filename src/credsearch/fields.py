"""Field resolver for ``field:value`` search prefixes.

Maps the short aliases users type (``u:``, ``domain:``, ``p:`` …) to a
logical field kind, and each field kind to a physical column expression.

The alias table is a read-only mapping built once at import time.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal, TypeAlias

FieldKind: TypeAlias = Literal["domain", "user", "url", "browser", "password"]
FieldCategory: TypeAlias = Literal["domain", "identity", "url", "browser", "secret"]

# ---------------------------------------------------------------------------
# Alias table
# ---------------------------------------------------------------------------

FIELD_ALIASES: Mapping[str, FieldKind] = MappingProxyType({
    "domain": "domain",
    "d": "domain",
    "user": "user",
    "username": "user",
    "email": "user",
    "u": "user",
    "url": "url",
    "browser": "browser",
    "b": "browser",
    "password": "password",
    "pass": "password",
    "p": "password",
})

FIELD_CATEGORIES: Mapping[FieldKind, FieldCategory] = MappingProxyType({
    "domain": "domain",
    "user": "identity",
    "url": "url",
    "browser": "browser",
    "password": "secret",
})

FIELD_KINDS: frozenset[str] = frozenset(FIELD_CATEGORIES)


def resolve_field_alias(name: str) -> FieldKind | None:
    """Return the field kind for *name* (case-insensitive), or ``None``."""
    return FIELD_ALIASES.get(name.strip().lower())


# ---------------------------------------------------------------------------
# Physical columns
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class SearchColumns:
    """Column expressions of the credentials table the compilers target."""

    domain: str = "c.domain"
    user: str = "c.username"
    url: str = "c.url"
    browser: str = "c.browser"
    password: str = "c.password"

    def column_for(self, field: FieldKind) -> str:
        if field not in FIELD_KINDS:
            raise ValueError(f"Unknown search field: {field!r}")
        column: str = getattr(self, field)
        return column


DEFAULT_COLUMNS = SearchColumns()
