"""Command-line access to a schema over JSON data."""

from __future__ import annotations

import argparse
import importlib
import json
import sys
from dataclasses import asdict
from datetime import date, datetime
from pathlib import Path
from typing import Any

from uritree.backings.memory import MemoryStore
from uritree.completions import complete
from uritree.config import UriTreeConfig, load_config
from uritree.errors import ConfigError, SchemaError
from uritree.logging import configure_logging, get_logger
from uritree.parsing.schema_parser import SchemaParser
from uritree.router import Resolver, SchemeRegistry
from uritree.specifier import Specifier

logger = get_logger(__name__)


def _json_default(value: Any) -> Any:
    """Serialize what resolve() can return beyond plain JSON."""
    if isinstance(value, Specifier):
        return {"$ref": value.uri()}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dump(value: Any) -> None:
    print(json.dumps(value, indent=2, default=_json_default))


def _load_functions(module_name: str | None) -> dict[str, Any]:
    """Computed-property and mutation functions from a module's SCHEMA_FUNCTIONS."""
    if module_name is None:
        return {}
    module = importlib.import_module(module_name)
    return dict(getattr(module, "SCHEMA_FUNCTIONS", {}))


def build_resolver(
    schema_text: str,
    data: dict[str, Any],
    scheme: str,
    config: UriTreeConfig | None = None,
    functions: dict[str, Any] | None = None,
) -> Resolver:
    """Parse a schema, back it with `data` and register it under `scheme`."""
    config = config or UriTreeConfig()
    registry = SchemaParser(functions).parse(schema_text)
    store = MemoryStore(data, scheme=scheme)
    schemes = SchemeRegistry()
    schemes.register_scheme(scheme, store.root, registry.root())
    return Resolver(schemes, config.resolver)


def run_command(resolver: Resolver, command: str, target: str) -> int:
    """Execute one subcommand against a built resolver, printing JSON."""
    if command == "complete":
        _dump([asdict(c) for c in complete(resolver, target)])
        return 0

    if command == "canonical":
        result = resolver.canonical_uri(target)
    else:
        found = resolver.specifier_from_uri(target)
        if not found.ok:
            print(f"Error: {found.message}", file=sys.stderr)
            return 1
        if command == "exists":
            _dump(found.value.exists())
            return 0
        result = found.value.resolve()

    if not result.ok:
        print(f"Error: {result.message}", file=sys.stderr)
        return 1
    _dump(result.value)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    arg_parser = argparse.ArgumentParser(
        description="Resolve resource URIs against a schema over JSON data"
    )
    arg_parser.add_argument(
        "-s", "--schema",
        type=Path,
        required=True,
        help="Path to the schema definition file",
    )
    arg_parser.add_argument(
        "-d", "--data",
        type=Path,
        required=True,
        help="Path to a JSON file holding the data tree",
    )
    arg_parser.add_argument(
        "--scheme",
        default="memory",
        help="URI scheme to register the data under (default: memory)",
    )
    arg_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML config file",
    )
    arg_parser.add_argument(
        "--functions",
        default=None,
        help="Module whose SCHEMA_FUNCTIONS mapping supplies computed and mutation functions",
    )
    subparsers = arg_parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("resolve", "Resolve a URI and print its value"),
        ("exists", "Print whether a URI addresses something that exists"),
        ("canonical", "Rewrite index addresses to stable id or name addresses"),
        ("complete", "Print completions for a partial URI"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("uri", help="Resource URI" if name != "complete" else "Partial URI")

    args = arg_parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    configure_logging(config=config.logging)

    for path in (args.schema, args.data):
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            return 1

    try:
        data = json.loads(args.data.read_text())
    except json.JSONDecodeError as e:
        print(f"Error loading data: {e}", file=sys.stderr)
        return 1
    if not isinstance(data, dict):
        print("Error loading data: top level must be a JSON object", file=sys.stderr)
        return 1

    try:
        functions = _load_functions(args.functions)
        resolver = build_resolver(
            args.schema.read_text(), data, args.scheme, config, functions
        )
    except ImportError as e:
        print(f"Error loading functions: {e}", file=sys.stderr)
        return 1
    except (SyntaxError, SchemaError) as e:
        print(f"Schema error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.debug("cli_command", command=args.command, uri=args.uri)
    return run_command(resolver, args.command, args.uri)


if __name__ == "__main__":
    sys.exit(main())
