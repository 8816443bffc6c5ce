# File: dbreverse/introspector.py
"""
dbreverse - Schema Introspector
=================================
Reads the raw catalog of a live database through SQLAlchemy's
``Inspector`` and freezes it into a ``SchemaSnapshot``.

    ConnectionDescriptor
          │  IntrospectionSession (engine + connection + Inspector)
          ▼
    read_table() × N  ──▶  SchemaSnapshot  ──▶  validate_snapshot()
                                                     │
                                        include/exclude filtering
                                                     ▼
                                              SchemaSnapshot

The session object is the only holder of the connection and is handed
explicitly to every read.  Nothing is written to the database.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

import sqlalchemy as sa
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.engine.reflection import Inspector
from sqlalchemy.exc import ArgumentError, CompileError, SQLAlchemyError

from dbreverse.errors import DatabaseConnectionError, IntrospectionError
from dbreverse.models import (
    ColumnInfo,
    ConnectionDescriptor,
    ForeignKeyInfo,
    GenerationOptions,
    IndexInfo,
    SchemaSnapshot,
    TableInfo,
)
from dbreverse.validators import ValidationResult, validate_snapshot

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse.introspector")

# Name of the connect-timeout argument understood by each DBAPI family.
_TIMEOUT_ARGUMENT: Dict[str, str] = {
    "postgresql": "connect_timeout",
    "mysql": "connect_timeout",
    "mariadb": "connect_timeout",
    "sqlite": "timeout",
    "mssql": "timeout",
}


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class IntrospectionSession:
    """
    One read-only schema session: engine, open connection and inspector.

    Usage:
        with IntrospectionSession(descriptor) as session:
            names = session.inspector.get_table_names(schema=session.schema)
    """

    def __init__(self, descriptor: ConnectionDescriptor) -> None:
        self.descriptor: ConnectionDescriptor = descriptor
        self.schema: Optional[str] = descriptor.schema_name
        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None
        self._inspector: Optional[Inspector] = None

    # -- Lifecycle ----------------------------------------------------------

    def open(self) -> "IntrospectionSession":
        """Connect, mapping every driver/auth/network failure to one error."""
        url: URL = self._url()
        safe_url: str = url.render_as_string(hide_password=True)
        connect_args: Dict[str, Any] = {}
        timeout_arg: Optional[str] = _TIMEOUT_ARGUMENT.get(url.get_backend_name())
        if timeout_arg is not None:
            connect_args[timeout_arg] = self.descriptor.connect_timeout

        logger.info("Connecting to %s (timeout %ds)", safe_url, self.descriptor.connect_timeout)
        try:
            self._engine = sa.create_engine(url, connect_args=connect_args)
            self._connection = self._engine.connect()
            self._inspector = sa.inspect(self._connection)
        except (SQLAlchemyError, ImportError) as exc:
            self.close()
            raise DatabaseConnectionError(
                f"Cannot connect to {safe_url}: {exc}"
            ) from exc

        logger.debug("Connected; dialect=%s", self.dialect_name)
        return self

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        self._inspector = None

    def __enter__(self) -> "IntrospectionSession":
        return self.open()

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.close()

    # -- Accessors ----------------------------------------------------------

    @property
    def inspector(self) -> Inspector:
        if self._inspector is None:
            raise RuntimeError("IntrospectionSession is not open.")
        return self._inspector

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("IntrospectionSession is not open.")
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def _url(self) -> URL:
        try:
            return self.descriptor.to_url()
        except ArgumentError as exc:
            raise DatabaseConnectionError(f"Invalid database URL: {exc}") from exc

    def __repr__(self) -> str:
        state: str = "open" if self._connection is not None else "closed"
        return f"<IntrospectionSession {self.descriptor!r} {state}>"


# ---------------------------------------------------------------------------
# Catalog readers
# ---------------------------------------------------------------------------


def _raw_type(session: IntrospectionSession, col_type: Any) -> Tuple[str, Tuple[str, ...]]:
    """Dialect spelling of a reflected type plus its enum values, if any."""
    if isinstance(col_type, sa.Enum):
        return "enum", tuple(col_type.enums)
    try:
        return col_type.compile(dialect=session.engine.dialect), ()
    except (CompileError, NotImplementedError):
        return type(col_type).__name__, ()


def _int_attr(col_type: Any, name: str) -> Optional[int]:
    value: Any = getattr(col_type, name, None)
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def _is_generated(
    column: Dict[str, Any],
    primary_key: Tuple[str, ...],
    fk_columns: FrozenSet[str],
) -> bool:
    """
    Auto-increment / identity / computed detection.

    A single-column integer primary key counts as generated unless the
    catalog explicitly says it is not auto-incrementing or the key is also a
    foreign key.
    """
    autoincrement: Any = column.get("autoincrement")
    if autoincrement is True or column.get("identity") or column.get("computed"):
        return True
    default: Any = column.get("default")
    if default is not None and "nextval(" in str(default).lower():
        return True
    return (
        primary_key == (column["name"],)
        and isinstance(column["type"], sa.Integer)
        and autoincrement is not False
        and column["name"] not in fk_columns
    )


def read_columns(
    session: IntrospectionSession,
    table_name: str,
    primary_key: Tuple[str, ...],
    fk_columns: FrozenSet[str] = frozenset(),
) -> Tuple[ColumnInfo, ...]:
    """Columns of one table in physical ordinal order."""
    columns: List[ColumnInfo] = []
    for raw in session.inspector.get_columns(table_name, schema=session.schema):
        data_type, enum_values = _raw_type(session, raw["type"])
        default: Any = raw.get("default")
        columns.append(
            ColumnInfo(
                name=raw["name"],
                data_type=data_type,
                enum_values=enum_values,
                length=_int_attr(raw["type"], "length"),
                precision=_int_attr(raw["type"], "precision"),
                scale=_int_attr(raw["type"], "scale"),
                nullable=bool(raw.get("nullable", True)) and raw["name"] not in primary_key,
                generated=_is_generated(raw, primary_key, fk_columns),
                default=str(default) if default is not None else None,
                comment=raw.get("comment"),
            )
        )
    return tuple(columns)


def read_foreign_keys(
    session: IntrospectionSession,
    table_name: str,
    ordinals: Optional[Dict[str, int]] = None,
) -> Tuple[ForeignKeyInfo, ...]:
    """FKs with their full column-pair lists, sorted by (first column ordinal, name)."""
    fks: List[ForeignKeyInfo] = []
    for raw in session.inspector.get_foreign_keys(table_name, schema=session.schema):
        if not raw.get("constrained_columns") or not raw.get("referred_table"):
            continue
        options: Dict[str, Any] = raw.get("options") or {}
        fks.append(
            ForeignKeyInfo(
                name=raw.get("name"),
                table=table_name,
                columns=tuple(raw["constrained_columns"]),
                referred_table=raw["referred_table"],
                referred_schema=raw.get("referred_schema"),
                referred_columns=tuple(raw["referred_columns"]),
                on_delete=options.get("ondelete"),
                on_update=options.get("onupdate"),
            )
        )
    return sort_foreign_keys(fks, ordinals or {})


def sort_foreign_keys(
    fks: Iterable[ForeignKeyInfo], ordinals: Dict[str, int]
) -> Tuple[ForeignKeyInfo, ...]:
    return tuple(
        sorted(fks, key=lambda fk: (ordinals.get(fk.columns[0], len(ordinals)), fk.name or ""))
    )


def read_indexes(
    session: IntrospectionSession,
    table_name: str,
) -> Tuple[Tuple[IndexInfo, ...], Tuple[IndexInfo, ...]]:
    """(indexes, unique constraints).  Expression indexes are skipped."""
    indexes: List[IndexInfo] = []
    for raw in session.inspector.get_indexes(table_name, schema=session.schema):
        cols: List[Optional[str]] = list(raw.get("column_names") or [])
        if not cols or any(c is None for c in cols):
            logger.debug("Skipping expression index %s on %s", raw.get("name"), table_name)
            continue
        indexes.append(
            IndexInfo(name=raw.get("name"), columns=tuple(cols), unique=bool(raw.get("unique")))
        )

    uniques: List[IndexInfo] = []
    try:
        raw_uniques: List[Dict[str, Any]] = session.inspector.get_unique_constraints(
            table_name, schema=session.schema
        )
    except NotImplementedError:
        raw_uniques = []
    for raw in raw_uniques:
        if raw.get("column_names"):
            uniques.append(
                IndexInfo(name=raw.get("name"), columns=tuple(raw["column_names"]), unique=True)
            )

    return tuple(indexes), tuple(uniques)


def _table_comment(session: IntrospectionSession, table_name: str) -> Optional[str]:
    try:
        return session.inspector.get_table_comment(table_name, schema=session.schema).get("text")
    except NotImplementedError:
        return None


def read_table(session: IntrospectionSession, table_name: str) -> TableInfo:
    """Read every catalog fact about one table."""
    pk_raw: Dict[str, Any] = session.inspector.get_pk_constraint(table_name, schema=session.schema)
    primary_key: Tuple[str, ...] = tuple(pk_raw.get("constrained_columns") or ())
    foreign_keys: Tuple[ForeignKeyInfo, ...] = read_foreign_keys(session, table_name)
    fk_columns: FrozenSet[str] = frozenset(c for fk in foreign_keys for c in fk.columns)
    columns: Tuple[ColumnInfo, ...] = read_columns(session, table_name, primary_key, fk_columns)
    ordinals: Dict[str, int] = {c.name: i for i, c in enumerate(columns)}
    indexes, uniques = read_indexes(session, table_name)

    return TableInfo(
        name=table_name,
        schema_name=session.schema,
        columns=columns,
        primary_key=primary_key,
        foreign_keys=sort_foreign_keys(foreign_keys, ordinals),
        indexes=indexes,
        unique_constraints=uniques,
        comment=_table_comment(session, table_name),
    )


def read_snapshot(session: IntrospectionSession) -> SchemaSnapshot:
    """Read all tables of the session's schema, sorted by name."""
    try:
        names: List[str] = sorted(session.inspector.get_table_names(schema=session.schema))
        logger.info("Found %d table(s) in schema %s", len(names), session.schema or "<default>")
        tables: List[TableInfo] = [read_table(session, name) for name in names]
    except PydanticValidationError as exc:
        raise IntrospectionError(f"Catalog metadata is malformed: {exc}") from exc
    except SQLAlchemyError as exc:
        raise IntrospectionError(f"Failed to read catalog: {exc}") from exc

    return SchemaSnapshot(
        tables=tuple(tables),
        dialect=session.dialect_name,
        schema_name=session.schema,
    )


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def _selected(name: str, options: GenerationOptions) -> bool:
    if options.include_tables and not any(
        fnmatch.fnmatchcase(name, p) for p in options.include_tables
    ):
        return False
    return not any(fnmatch.fnmatchcase(name, p) for p in options.exclude_tables)


def filter_snapshot(snapshot: SchemaSnapshot, options: GenerationOptions) -> SchemaSnapshot:
    """
    Apply include/exclude patterns.  FKs pointing into dropped tables are
    kept; the builder decides what to do with them.
    """
    if not options.include_tables and not options.exclude_tables:
        return snapshot
    kept: Tuple[TableInfo, ...] = tuple(t for t in snapshot.tables if _selected(t.name, options))
    logger.info("Table filters kept %d of %d table(s)", len(kept), len(snapshot.tables))
    return SchemaSnapshot(
        tables=kept,
        dialect=snapshot.dialect,
        schema_name=snapshot.schema_name,
    )


def prepare_snapshot(
    snapshot: SchemaSnapshot,
    options: Optional[GenerationOptions] = None,
) -> SchemaSnapshot:
    """
    Validate the full catalog, then apply the table filters.

    Raises ``IntrospectionError`` carrying the ``ValidationResult`` when
    the catalog is inconsistent.
    """
    result: ValidationResult = validate_snapshot(snapshot, options)
    if result.has_errors:
        raise IntrospectionError(
            f"Catalog of '{snapshot.dialect}' schema is inconsistent "
            f"({result.error_count} error(s)).",
            result,
        )
    if options is not None:
        snapshot = filter_snapshot(snapshot, options)
    return snapshot


# ---------------------------------------------------------------------------
# Public facade
# ---------------------------------------------------------------------------


class SchemaIntrospector:
    """
    Reads, validates and filters one schema.

    Usage:
        snapshot = SchemaIntrospector(descriptor).introspect(options)
    """

    def __init__(self, connection: ConnectionDescriptor) -> None:
        self.connection: ConnectionDescriptor = connection

    def introspect(self, options: Optional[GenerationOptions] = None) -> SchemaSnapshot:
        """
        Raises:
            DatabaseConnectionError: data source unreachable or misconfigured.
            IntrospectionError: catalog unreadable or inconsistent.
        """
        with IntrospectionSession(self.connection) as session:
            snapshot: SchemaSnapshot = read_snapshot(session)
        return prepare_snapshot(snapshot, options)


def introspect_schema(
    connection: ConnectionDescriptor,
    options: Optional[GenerationOptions] = None,
) -> SchemaSnapshot:
    """Functional shortcut for ``SchemaIntrospector(connection).introspect(options)``."""
    return SchemaIntrospector(connection).introspect(options)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "IntrospectionSession",
    "read_columns",
    "read_foreign_keys",
    "sort_foreign_keys",
    "read_indexes",
    "read_table",
    "read_snapshot",
    "filter_snapshot",
    "prepare_snapshot",
    "SchemaIntrospector",
    "introspect_schema",
]

logger.debug("dbreverse.introspector loaded — %d public symbols.", len(__all__))
