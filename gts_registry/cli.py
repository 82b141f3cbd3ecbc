"""
Command-line front end for the GTS registry.

Commands mirror the operation facade:
- validate-id / parse-id / uuid: Inspect a single identifier
- match-id: Match an identifier against a wildcard pattern
- extract-id: Show which identifier fields a JSON file resolves to
- validate-instance / graph / compatibility / cast / query / attr / list:
  Operate on entities loaded from --path
- server: Serve the HTTP API

Usage:
    gts --path ./examples validate-instance --id gts.x.core.events.type.v1~x.app.ev.created.v1
    gts --path ./examples query --expr "gts.x.core.*[status=active]"
    gts --path ./examples server --port 8000

Invariants:
    - Output is indented JSON on stdout
    - Exit code is 1 when the operation reports a failure

How to change safely:
    - Add new commands, don't rename existing ones
    - Keep output keys aligned with the HTTP API
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Tuple

from .config import Settings, setup_logging
from .ops import GtsOps

logger = logging.getLogger(__name__)


class GtsCLI:
    """Dispatches parsed arguments to GtsOps.

    Example:
        >>> cli = GtsCLI(GtsOps(Settings(paths=["./examples"])))
        >>> payload, ok = cli.run(parser.parse_args(["uuid", "--id", "gts.x.a.b.c.v1~"]))
    """

    def __init__(self, ops: GtsOps) -> None:
        self.ops = ops

    def run(self, args: argparse.Namespace) -> Tuple[Dict[str, Any], bool]:
        """Execute one command.

        Returns:
            Tuple of (JSON payload, success flag)
        """
        ops = self.ops
        command = args.command

        if command == "validate-id":
            result = ops.validate_id(args.id)
            return result.to_dict(), result.valid

        elif command == "parse-id":
            result = ops.parse_id(args.id)
            return result.to_dict(), result.ok

        elif command == "uuid":
            result = ops.id_to_uuid(args.id)
            return result.to_dict(), not result.error

        elif command == "match-id":
            result = ops.match_id_pattern(args.candidate, args.pattern)
            return result.to_dict(), not result.error

        elif command == "extract-id":
            with open(args.file) as f:
                content = json.load(f)
            result = ops.extract_id(content)
            return result.to_dict(), bool(result.id)

        elif command == "validate-instance":
            result = ops.validate_instance(args.id)
            return result.to_dict(), result.ok

        elif command == "graph":
            node = ops.schema_graph(args.id)
            return node.to_dict(), not node.errors

        elif command == "compatibility":
            report = ops.compatibility(args.old, args.new)
            return report.to_dict(), report.is_fully_compatible

        elif command == "cast":
            result = ops.cast(args.instance, args.to)
            return result.to_dict(), "error" not in result.to_dict()

        elif command == "query":
            result = ops.query(args.expr, args.limit)
            return result.to_dict(), not result.error

        elif command == "attr":
            result = ops.attr(args.selector)
            return result.to_dict(), result.resolved

        elif command == "list":
            result = ops.list_entities(args.limit)
            return result.to_dict(), True

        raise ValueError(f"Unknown command: {command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gts", description="GTS identifier and schema registry tool")
    parser.add_argument(
        "--path", "-p", action="append", default=[],
        help="File or directory of JSON entities to load (repeatable)",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: GTS_LOG_LEVEL or INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("validate-id", "Validate an identifier"),
        ("parse-id", "Decompose an identifier into segments"),
        ("uuid", "Derive the UUIDv5 of an identifier"),
        ("validate-instance", "Validate an instance against its schema"),
        ("graph", "Resolve the relationship graph of an entity"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--id", required=True, help="GTS identifier")

    match_parser = subparsers.add_parser("match-id", help="Match an identifier against a pattern")
    match_parser.add_argument("--candidate", required=True, help="Identifier to test")
    match_parser.add_argument("--pattern", required=True, help="Identifier or wildcard pattern")

    extract_parser = subparsers.add_parser("extract-id", help="Extract identity fields from a JSON file")
    extract_parser.add_argument("--file", "-f", required=True, help="Path to a JSON object")

    compat_parser = subparsers.add_parser("compatibility", help="Compare two schema versions")
    compat_parser.add_argument("--old", required=True, help="Old schema identifier")
    compat_parser.add_argument("--new", required=True, help="New schema identifier")

    cast_parser = subparsers.add_parser("cast", help="Cast an instance to another schema version")
    cast_parser.add_argument("--instance", required=True, help="Instance identifier")
    cast_parser.add_argument("--to", required=True, help="Target schema identifier")

    query_parser = subparsers.add_parser("query", help="Query entities by pattern and filters")
    query_parser.add_argument("--expr", "-e", required=True, help="Query expression")
    query_parser.add_argument("--limit", type=int, default=None, help="Maximum results")

    attr_parser = subparsers.add_parser("attr", help="Read an attribute with id@path")
    attr_parser.add_argument("--selector", "-s", required=True, help="Selector, e.g. gts.x.a.b.c.v1~@properties")

    list_parser = subparsers.add_parser("list", help="List loaded entities")
    list_parser.add_argument("--limit", type=int, default=None, help="Maximum entities")

    server_parser = subparsers.add_parser("server", help="Serve the HTTP API")
    server_parser.add_argument("--host", default=None, help="Bind address (default: GTS_HOST)")
    server_parser.add_argument("--port", type=int, default=None, help="Port (default: GTS_PORT)")

    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides: Dict[str, Any] = {}
    if args.path:
        overrides["paths"] = args.path
    if args.log_level:
        overrides["log_level"] = args.log_level
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    return Settings(**overrides)


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = _settings_from_args(args)
    setup_logging(settings)

    if args.command == "server":
        import uvicorn

        from .server import create_app

        logger.info(f"Starting GTS server on {settings.host}:{settings.port}")
        uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
        return

    cli = GtsCLI(GtsOps(settings))
    try:
        payload, ok = cli.run(args)
    except (OSError, json.JSONDecodeError) as e:
        print(json.dumps({"error": str(e)}, indent=2))
        sys.exit(1)

    print(json.dumps(payload, indent=2, default=str))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
