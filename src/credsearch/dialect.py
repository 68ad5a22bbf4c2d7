"""SQL dialect settings for the search compilers.

The compilers only ever emit parameter *names* into SQL text; how a name is
rendered as a placeholder, which conditional-count aggregate exists and how a
hostname is pulled out of a URL column differ per engine.

Two dialects ship:

* ``clickhouse`` — ``{name:String}`` placeholders, ``countIf``, native
  ``domain()`` with a regex fallback.  This is the production engine.
* ``duckdb`` — ``$name`` placeholders, ``count_if``, regex host extraction.
  Used for local tooling and the test-suite.

``get_dialect()`` with no argument reads ``CREDSEARCH_SQL_DIALECT`` and falls
back to ``clickhouse``.
"""
from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass

DIALECT_ENV_VAR = "CREDSEARCH_SQL_DIALECT"
DEFAULT_DIALECT = "clickhouse"


@dataclass(frozen=True, slots=True)
class SqlDialect:
    """Engine-specific rendering rules."""

    name: str
    placeholder_template: str  # str.format template with a ``name`` field
    count_if: str
    hostname_template: str  # str.format template with a ``url`` field

    def placeholder(self, name: str) -> str:
        return self.placeholder_template.format(name=name)

    def hostname_expr(self, url_column: str) -> str:
        """Expression yielding the host part of *url_column*."""
        return self.hostname_template.format(url=url_column)

    def count_if_positive(self, condition: str) -> str:
        return f"{self.count_if}({condition}) > 0"


CLICKHOUSE = SqlDialect(
    name="clickhouse",
    placeholder_template="{{{name}:String}}",
    count_if="countIf",
    hostname_template=(
        "if(length(domain({url})) > 0, domain({url}), "
        "extract({url}, '^(?:https?://)?([^/:]+)'))"
    ),
)

DUCKDB = SqlDialect(
    name="duckdb",
    placeholder_template="${name}",
    count_if="count_if",
    hostname_template=(
        "coalesce(nullif(regexp_extract({url}, '://([^/:?#]+)', 1), ''), "
        "regexp_extract({url}, '^([^/:?#]+)', 1))"
    ),
)

_DIALECTS: dict[str, SqlDialect] = {
    CLICKHOUSE.name: CLICKHOUSE,
    DUCKDB.name: DUCKDB,
}

DIALECT_NAMES: frozenset[str] = frozenset(_DIALECTS)


def get_dialect(
    name: str | None = None,
    *,
    getenv: Callable[[str], str | None] = os.environ.get,
) -> SqlDialect:
    """Resolve a dialect by name, then by environment, then the default.

    Raises ``ValueError`` for unknown names.
    """
    resolved = name or getenv(DIALECT_ENV_VAR) or DEFAULT_DIALECT
    dialect = _DIALECTS.get(resolved.strip().lower())
    if dialect is None:
        raise ValueError(
            f"Unknown SQL dialect: {resolved!r} (expected one of {sorted(DIALECT_NAMES)})"
        )
    return dialect
