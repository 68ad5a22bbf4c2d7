"""Domain normalisation and subdomain-aware domain conditions."""
from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from credsearch.dialect import CLICKHOUSE, SqlDialect
from credsearch.fields import DEFAULT_COLUMNS, SearchColumns

if TYPE_CHECKING:
    from credsearch.query_parser import MatchType

_SCHEME_RE = re.compile(r"^https?://")
_HOST_END_RE = re.compile(r"[/:]")


def normalize_domain(value: str) -> str:
    """Reduce a domain-like string to a bare lowercase host.

    >>> normalize_domain("HTTPS://WWW.Api.Example.com/v1")
    'api.example.com'
    """
    nd = value.strip().lower()
    nd = _SCHEME_RE.sub("", nd, count=1)
    nd = nd.removeprefix("www.")
    nd = nd.removesuffix("/")
    return _HOST_END_RE.split(nd, maxsplit=1)[0]


def wildcard_to_like(value: str) -> str:
    """Translate user ``*`` wildcards to the SQL multi-character wildcard."""
    return value.replace("*", "%")


def build_domain_condition(
    domain: str,
    match_type: MatchType,
    prefix: str,
    params: dict[str, Any],
    *,
    columns: SearchColumns = DEFAULT_COLUMNS,
    dialect: SqlDialect = CLICKHOUSE,
) -> str:
    """Build a condition matching *domain* and, for contains, its subdomains.

    Bind values are written into *params* under keys namespaced by *prefix*;
    the returned SQL only references them by placeholder.

    * ``exact`` — domain column equals the normalised host.
    * ``wildcard`` — ``ILIKE`` against both the domain and the URL column.
    * ``contains`` — domain equals the host, domain ends with ``.host``, or a
      URL carries the host (or a subdomain of it) followed by ``/`` or ``:``.
    """
    nd = normalize_domain(domain)
    dom = columns.domain
    url = columns.url

    if match_type == "exact":
        key = f"{prefix}_d"
        params[key] = nd
        return f"{dom} = {dialect.placeholder(key)}"

    if match_type == "wildcard":
        key = f"{prefix}_dw"
        params[key] = wildcard_to_like(nd)
        ph = dialect.placeholder(key)
        return f"({dom} ILIKE {ph} OR {url} ILIKE {ph})"

    params[f"{prefix}_d"] = nd
    params[f"{prefix}_p1"] = f"%://{nd}/%"
    params[f"{prefix}_p2"] = f"%://{nd}:%"
    params[f"{prefix}_p3"] = f"%://%.{nd}/%"
    params[f"{prefix}_p4"] = f"%://%.{nd}:%"

    ph_d = dialect.placeholder(f"{prefix}_d")
    parts = [
        f"{dom} = {ph_d}",
        f"{dom} ILIKE concat('%.', {ph_d})",
    ]
    parts.extend(
        f"{url} ILIKE {dialect.placeholder(f'{prefix}_p{n}')}" for n in range(1, 5)
    )
    return "(" + " OR ".join(parts) + ")"
