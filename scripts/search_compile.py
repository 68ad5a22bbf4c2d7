#!/usr/bin/env python3
"""Compile a credential search string into parameterised SQL.

Prints a JSON object with the compiled condition, its bind parameters, the
parsed query and any guardrail warnings to stdout; status lines go to stderr.

Usage:
    python3 scripts/search_compile.py --query "example.com + u:admin, -test.com" \
      --type domain --target device --dialect duckdb
"""
from __future__ import annotations

import argparse
import json
import logging
import sys

try:
    import orjson

    def dump_json(obj: object) -> None:
        sys.stdout.buffer.write(orjson.dumps(obj, option=orjson.OPT_INDENT_2))
        sys.stdout.buffer.write(b"\n")
except ImportError:

    def dump_json(obj: object) -> None:
        json.dump(obj, sys.stdout, indent=2, default=str)
        print()


from credsearch.dialect import DIALECT_NAMES, get_dialect
from credsearch.guardrails import estimate_query_cost, validate_parsed_query
from credsearch.query_builder import (
    BuiltClause,
    build_domain_recon_condition,
    build_recon_condition,
    build_search_condition,
    plan_device_subquery,
    render_device_subquery,
)
from credsearch.query_parser import (
    detect_query_type,
    parse_search_query,
    parsed_query_to_json,
)

log = logging.getLogger("search_compile")

TARGETS = ("row", "device", "recon-domain", "recon-url", "domain-recon")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compile a credential search string into parameterised SQL."
    )
    parser.add_argument("--query", required=True, help="Raw search string")
    parser.add_argument(
        "--type",
        choices=("email", "domain", "auto"),
        default="auto",
        help="How bare tokens are searched (default: auto-detect)",
    )
    parser.add_argument(
        "--target",
        choices=TARGETS,
        default="row",
        help="Which compiler to run (default: row)",
    )
    parser.add_argument(
        "--dialect",
        choices=sorted(DIALECT_NAMES),
        default=None,
        help="SQL dialect (default: $CREDSEARCH_SQL_DIALECT or clickhouse)",
    )
    parser.add_argument(
        "--entity-column",
        default="device_id",
        help="Entity id column for --target device (default: device_id)",
    )
    parser.add_argument(
        "--source-table",
        default="credentials c",
        help="Source table for --target device (default: 'credentials c')",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 2 when guardrail checks fail",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Verbose logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        dialect = get_dialect(args.dialect)
    except ValueError as exc:
        log.error("%s", exc)
        return 1

    parsed = parse_search_query(args.query)
    search_type = args.type
    if search_type == "auto":
        # "mixed" queries search bare tokens as domains.
        search_type = "email" if detect_query_type(parsed) == "email" else "domain"
    log.info(
        "Parsed %d group(s), %d term(s); searching bare tokens as %s",
        len(parsed.groups), len(parsed.terms), search_type,
    )

    errors = validate_parsed_query(parsed)
    for err in errors:
        log.warning("%s: %s", err.code, err.message)
    if errors and args.strict:
        return 2

    clause: BuiltClause
    strategy: str | None = None
    try:
        if args.target == "row":
            clause = build_search_condition(parsed, search_type, dialect=dialect)
        elif args.target == "device":
            plan = plan_device_subquery(parsed, search_type, dialect=dialect)
            strategy = type(plan).__name__
            clause = render_device_subquery(
                plan,
                entity_column=args.entity_column,
                source_table=args.source_table,
            )
        elif args.target == "domain-recon":
            clause = build_domain_recon_condition(parsed, dialect=dialect)
        else:
            mode = "domain-only" if args.target == "recon-domain" else "full-url"
            clause = build_recon_condition(parsed, mode, dialect=dialect)
    except ValueError as exc:
        log.error("%s", exc)
        return 1

    payload: dict[str, object] = {
        "dialect": dialect.name,
        "target": args.target,
        "search_type": search_type,
        "condition": clause.condition,
        "params": clause.params,
        "parsed": parsed_query_to_json(parsed),
        "query_cost": estimate_query_cost(parsed),
        "warnings": [
            {"code": e.code, "message": e.message, "path": e.path} for e in errors
        ],
    }
    if strategy is not None:
        payload["strategy"] = strategy
    dump_json(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
