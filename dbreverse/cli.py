# File: dbreverse/cli.py
"""
dbreverse - Command-Line Interface
====================================

CLI built with the standard-library ``argparse`` module.

Usage examples::

    # Reverse-engineer a database described by a config file
    dbreverse generate --config dbreverse.yaml

    # Straight from a URL, with overrides
    dbreverse generate --url sqlite:///app.db -o ./models \\
        --type-override interval=string --strict-relations -v

    # Entities and their relations
    dbreverse list-entities --url postgresql://localhost/shop
    dbreverse list-entities --module my_project.models

    # New project skeleton
    dbreverse new "My Project" --engine mysql --host db.local

Exit codes:
    0 — success
    1 — database connection error
    2 — introspection (catalog) error
    3 — model or type-resolution error
    4 — generation/write error
    5 — input/argument error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, NoReturn, Optional, Sequence, Tuple, Type

from dbreverse.errors import (
    DatabaseConnectionError,
    DbReverseError,
    IntrospectionError,
    ModelConsistencyError,
    TypeResolutionError,
)

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_CONNECTION_ERROR: int = 1
EXIT_INTROSPECTION_ERROR: int = 2
EXIT_MODEL_ERROR: int = 3
EXIT_GENERATION_ERROR: int = 4
EXIT_INPUT_ERROR: int = 5


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root dbreverse logger based on verbosity level.

    Args:
        verbosity: 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("dbreverse")
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


class _ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors with the input-error exit code."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_INPUT_ERROR, f"{self.prog}: error: {message}\n")


def _add_verbosity(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("verbosity")
    group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )


def _add_connection(parser: argparse.ArgumentParser, with_config: bool = True) -> None:
    group = parser.add_argument_group("connection")
    if with_config:
        group.add_argument(
            "-c", "--config",
            type=str,
            default=None,
            metavar="PATH",
            help="YAML or JSON file with 'connection' and 'generation' sections.",
        )
    group.add_argument("--url", type=str, default=None, help="Full SQLAlchemy URL.")
    group.add_argument(
        "--engine",
        type=str,
        default=None,
        choices=["postgresql", "mysql", "mariadb", "sqlite", "mssql", "oracle"],
        help="Database engine kind.",
    )
    group.add_argument("--driver", type=str, default=None, help="DBAPI driver name.")
    group.add_argument("--host", type=str, default=None)
    group.add_argument("--port", type=int, default=None)
    group.add_argument("--username", type=str, default=None)
    group.add_argument("--password", type=str, default=None)
    group.add_argument(
        "--database", type=str, default=None, help="Database name (file for SQLite)."
    )
    group.add_argument(
        "--schema",
        dest="schema_name",
        type=str,
        default=None,
        help="Catalog schema to introspect.",
    )
    group.add_argument(
        "--connect-timeout",
        type=int,
        default=None,
        metavar="SECONDS",
        help="Connection timeout.",
    )


def _add_generation(parser: argparse.ArgumentParser) -> None:
    cases: List[str] = ["preserve", "camel", "pascal", "snake"]
    group = parser.add_argument_group("generation")
    group.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        metavar="DIR",
        help="Output directory for generated code.",
    )
    group.add_argument("--entity-case", choices=cases, default=None)
    group.add_argument("--property-case", choices=cases, default=None)
    group.add_argument("--file-case", choices=cases, default=None)
    group.add_argument(
        "--no-pluralize",
        dest="pluralize",
        action="store_const",
        const=False,
        default=None,
        help="Keep table names as-is for entity and relation names.",
    )
    group.add_argument("--input-suffix", type=str, default=None, metavar="SUFFIX")
    group.add_argument(
        "--type-override",
        action="append",
        default=None,
        metavar="DBTYPE=SCALAR",
        help="Map a database type to a scalar kind (repeatable).",
    )
    group.add_argument(
        "--lazy-relations",
        action="store_const",
        const=True,
        default=None,
        help="Load relations on access instead of eagerly.",
    )
    group.add_argument(
        "--strict-relations",
        action="store_const",
        const=True,
        default=None,
        help="Fail on foreign keys whose target table is not generated.",
    )
    group.add_argument(
        "--tables", nargs="+", default=None, metavar="PATTERN",
        help="Only these tables (glob patterns).",
    )
    group.add_argument(
        "--exclude", nargs="+", default=None, metavar="PATTERN",
        help="Skip these tables (glob patterns).",
    )
    group.add_argument("--concurrency", type=int, default=None, metavar="N")
    group.add_argument("--line-length", type=int, default=None, metavar="N")
    group.add_argument(
        "--no-format",
        dest="format_output",
        action="store_const",
        const=False,
        default=None,
        help="Skip the black formatting pass.",
    )
    group.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Run the full pipeline but don't write files to disk.",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from dbreverse import __version__

    parser: argparse.ArgumentParser = _ArgumentParser(
        prog="dbreverse",
        description=(
            "dbreverse: reverse-engineer a relational schema into "
            "SQLAlchemy 2.0 entities and Pydantic V2 input models."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s generate --config dbreverse.yaml\n"
            "  %(prog)s generate --url sqlite:///app.db -o ./models\n"
            "  %(prog)s list-entities --module my_project.models\n"
            "  %(prog)s new my-project\n"
        ),
    )
    parser.add_argument(
        "--version", action="version", version=f"dbreverse v{__version__}"
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    generate = subparsers.add_parser(
        "generate", help="Generate entity and input modules from a live schema."
    )
    _add_connection(generate)
    _add_generation(generate)
    _add_verbosity(generate)
    generate.set_defaults(handler=_run_generate)

    listing = subparsers.add_parser(
        "list-entities", help="List entities and the entities they relate to."
    )
    _add_connection(listing)
    listing.add_argument(
        "--module",
        type=str,
        default=None,
        metavar="MODULE",
        help="Importable module holding a SQLAlchemy declarative base.",
    )
    listing.add_argument(
        "--path",
        type=str,
        default=".",
        metavar="DIR",
        help="Directory prepended to the import path for --module.",
    )
    _add_verbosity(listing)
    listing.set_defaults(handler=_run_list_entities)

    new = subparsers.add_parser("new", help="Create a new project skeleton.")
    new.add_argument("name", type=str, help="Project name (folder is kebab-case).")
    new.add_argument(
        "-d", "--directory",
        type=str,
        default=".",
        metavar="DIR",
        help="Parent directory of the new project.",
    )
    _add_connection(new, with_config=False)
    _add_verbosity(new)
    new.set_defaults(handler=_run_new)

    return parser


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_CONNECTION_FLAGS: List[str] = [
    "url",
    "engine",
    "driver",
    "host",
    "port",
    "username",
    "password",
    "database",
    "schema_name",
    "connect_timeout",
]


def _connection_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {name: getattr(args, name) for name in _CONNECTION_FLAGS}


def _parse_type_overrides(items: Optional[List[str]]) -> Optional[Dict[str, str]]:
    """Turn ``["tsvector=string", ...]`` into a mapping."""
    if not items:
        return None
    overrides: Dict[str, str] = {}
    for item in items:
        db_type, sep, scalar = item.partition("=")
        if not sep or not db_type.strip() or not scalar.strip():
            raise ValueError(f"Invalid --type-override '{item}'; expected DBTYPE=SCALAR.")
        overrides[db_type.strip()] = scalar.strip().lower()
    return overrides


def _generation_overrides(
    args: argparse.Namespace, raw: Dict[str, Any]
) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {
        "output_dir": args.output,
        "entity_case": args.entity_case,
        "property_case": args.property_case,
        "file_case": args.file_case,
        "pluralize": args.pluralize,
        "input_suffix": args.input_suffix,
        "lazy_relations": args.lazy_relations,
        "strict_relations": args.strict_relations,
        "include_tables": args.tables,
        "exclude_tables": args.exclude,
        "concurrency": args.concurrency,
        "line_length": args.line_length,
        "format_output": args.format_output,
    }
    cli_types: Optional[Dict[str, str]] = _parse_type_overrides(args.type_override)
    if cli_types:
        section: Any = raw.get("generation") or {}
        file_types: Any = section.get("type_overrides") if isinstance(section, dict) else None
        merged: Dict[str, Any] = dict(file_types) if isinstance(file_types, dict) else {}
        merged.update(cli_types)
        overrides["type_overrides"] = merged
    return overrides


def _load_settings(args: argparse.Namespace, with_generation: bool = True) -> Any:
    """Config file (optional) merged with CLI flags."""
    from dbreverse.generator import load_config_file, parse_config

    raw: Dict[str, Any] = {}
    if args.config is not None:
        raw = load_config_file(Path(args.config).resolve())
    generation: Optional[Dict[str, Any]] = (
        _generation_overrides(args, raw) if with_generation else None
    )
    return parse_config(raw, _connection_overrides(args), generation)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _run_generate(args: argparse.Namespace) -> int:
    """Run the full generation pipeline."""
    from dbreverse.generator import GenerationReport, ReverseGenerator

    connection, options = _load_settings(args)
    logger.info("Connection: %r", connection)
    logger.info("Output:     %s", Path(options.output_dir).resolve())
    if args.dry_run:
        logger.info("Dry-run mode: files will not be written to disk.")

    report: GenerationReport = ReverseGenerator(dry_run=args.dry_run).generate(
        connection, options
    )
    print(report.summary())
    return EXIT_SUCCESS if report.success else EXIT_GENERATION_ERROR


def _run_list_entities(args: argparse.Namespace) -> int:
    from dbreverse.inspection import (
        EntitySummary,
        render_entity_table,
        summarize_connection,
        summarize_module,
    )

    summaries: List[EntitySummary]
    if args.module is not None:
        search_path: str = str(Path(args.path).resolve())
        if search_path not in sys.path:
            sys.path.insert(0, search_path)
        summaries = summarize_module(args.module)
    else:
        connection, options = _load_settings(args, with_generation=False)
        summaries = summarize_connection(connection, options)

    print(render_entity_table(summaries))
    return EXIT_SUCCESS


def _run_new(args: argparse.Namespace) -> int:
    from dbreverse.models import ConnectionDescriptor
    from dbreverse.scaffold import ScaffoldResult, create_project, project_names

    fields: Dict[str, Any] = {
        k: v for k, v in _connection_overrides(args).items() if v is not None
    }
    connection: Optional[ConnectionDescriptor] = None
    if fields:
        fields.setdefault("database", project_names(args.name)[1])
        connection = ConnectionDescriptor.model_validate(fields)

    result: ScaffoldResult = create_project(args.name, Path(args.directory), connection)
    print(f"Created {result.project_dir}")
    for path in result.files:
        print(f"  {path.relative_to(result.project_dir)}")
    return EXIT_SUCCESS


# Most specific first: the first matching class decides the exit code.
_ERROR_EXIT_CODES: List[Tuple[Type[BaseException], int]] = [
    (DatabaseConnectionError, EXIT_CONNECTION_ERROR),
    (IntrospectionError, EXIT_INTROSPECTION_ERROR),
    (ModelConsistencyError, EXIT_MODEL_ERROR),
    (TypeResolutionError, EXIT_MODEL_ERROR),
    (DbReverseError, EXIT_GENERATION_ERROR),
    (ValueError, EXIT_INPUT_ERROR),
    (OSError, EXIT_INPUT_ERROR),
]


def _run_command(handler: Callable[[argparse.Namespace], int], args: argparse.Namespace) -> int:
    """Run a command handler and map its exceptions to exit codes."""
    try:
        return handler(args)
    except tuple(cls for cls, _ in _ERROR_EXIT_CODES) as exc:
        code: int = next(c for cls, c in _ERROR_EXIT_CODES if isinstance(exc, cls))
        logger.debug("Command failed.", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return code


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    if args.quiet:
        verbosity: int = -1
        logging.disable(logging.CRITICAL)
    else:
        verbosity = args.verbose
        logging.disable(logging.NOTSET)

    _setup_logging(verbosity)

    exit_code: int = _run_command(args.handler, args)
    if exit_code != EXIT_SUCCESS:
        logger.error("%s failed with exit code %d.", args.command, exit_code)

    sys.exit(exit_code)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "cli_main",
    "EXIT_SUCCESS",
    "EXIT_CONNECTION_ERROR",
    "EXIT_INTROSPECTION_ERROR",
    "EXIT_MODEL_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_INPUT_ERROR",
]

logger.debug("dbreverse.cli loaded.")
