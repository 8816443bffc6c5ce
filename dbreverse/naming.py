# File: dbreverse/naming.py
"""
dbreverse - Naming & Type Resolution Policy
=============================================
Pure functions that turn catalog names and types into the identifiers and
annotations of the generated code.

Every function here is deterministic: the same input and the same
``GenerationOptions`` always give the same output.  Nothing in this module
touches the database or the filesystem.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from dbreverse.errors import UnsupportedTypeError
from dbreverse.models import CaseStyle, GenerationOptions, ResolvedType, ScalarType
from dbreverse.utils import (
    sanitize_identifier,
    to_camel_case,
    to_pascal_case,
    to_plural,
    to_singular,
    to_snake_case,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse.naming")

# ---------------------------------------------------------------------------
# Identifier naming
# ---------------------------------------------------------------------------

# FK column suffixes stripped to derive the owning-side relation name.
_FK_SUFFIX_RE: re.Pattern[str] = re.compile(r"(?:_id|Id|ID|_fk|_FK)$")


def apply_case(name: str, style: CaseStyle) -> str:
    """Apply one casing transform.  ``PRESERVE`` returns *name* as-is."""
    if style == CaseStyle.CAMEL:
        return to_camel_case(name)
    if style == CaseStyle.PASCAL:
        return to_pascal_case(name)
    if style == CaseStyle.SNAKE:
        return to_snake_case(name)
    return name


def _singular_last_word(name: str) -> str:
    """Singularise only the last word of a snake/camel/pascal identifier."""
    if "_" in name:
        head, _, tail = name.rpartition("_")
        return f"{head}_{to_singular(tail)}"
    return to_singular(name)


def _finish(name: str) -> str:
    """Keyword and leading-digit escaping shared by every naming function."""
    return sanitize_identifier(name)


def to_entity_name(table_name: str, options: GenerationOptions) -> str:
    """
    Class name for a table.

        >>> to_entity_name("blog_posts", GenerationOptions())
        'BlogPost'
    """
    base: str = _singular_last_word(table_name) if options.pluralize else table_name
    return _finish(apply_case(base, options.entity_case))


def to_property_name(column_name: str, options: GenerationOptions) -> str:
    """Attribute name for a column."""
    return _finish(apply_case(column_name, options.property_case))


def to_file_name(entity_name: str, options: GenerationOptions) -> str:
    """Module name (no extension) for an entity."""
    return _finish(apply_case(entity_name, options.file_case))


def to_input_name(entity_name: str, options: GenerationOptions) -> str:
    """Class name of the input model mirroring an entity."""
    return _finish(f"{entity_name}{options.input_suffix}")


def to_input_file_name(entity_name: str, options: GenerationOptions) -> str:
    """Module name of the input model, e.g. ``user_input``."""
    return to_file_name(to_input_name(entity_name, options), options)


def to_relation_name(base: str, to_many: bool, options: GenerationOptions) -> str:
    """
    Property name of a relation.

    *base* is either an FK column with its id suffix removed or a related
    entity name.  To-many sides are pluralised when pluralisation is on.
    """
    name: str = apply_case(base, options.property_case)
    if to_many and options.pluralize:
        name = to_plural(name)
    return _finish(name)


def strip_fk_suffix(column_name: str) -> Optional[str]:
    """
    ``author_id`` → ``author``, ``ownerId`` → ``owner``.

    Returns None when the column carries no FK suffix or nothing would be
    left after stripping it.
    """
    stripped: str = _FK_SUFFIX_RE.sub("", column_name)
    if stripped == column_name or not stripped.strip("_"):
        return None
    return stripped


def unique_name(candidate: str, taken: Sequence[str], limit: int) -> Optional[str]:
    """
    First of ``candidate``, ``candidate2``, ``candidate3`` ... not in *taken*.

    At most *limit* numbered attempts are made; None means the bound was
    exhausted.
    """
    if candidate not in taken:
        return candidate
    for counter in range(2, limit + 2):
        attempt: str = f"{candidate}{counter}"
        if attempt not in taken:
            return attempt
    return None


# ---------------------------------------------------------------------------
# Type resolution
# ---------------------------------------------------------------------------

_PARAMS_RE: re.Pattern[str] = re.compile(r"\([^)]*\)")
_WHITESPACE_RE: re.Pattern[str] = re.compile(r"\s+")
_MODIFIERS: Tuple[str, ...] = ("unsigned", "zerofill", "signed")

# (scalar, python annotation, SQLAlchemy type name)
_Mapping = Tuple[ScalarType, str, str]

_INTEGER: _Mapping = (ScalarType.NUMBER, "int", "Integer")
_BIGINT: _Mapping = (ScalarType.NUMBER, "int", "BigInteger")
_SMALLINT: _Mapping = (ScalarType.NUMBER, "int", "SmallInteger")
_DECIMAL: _Mapping = (ScalarType.NUMBER, "Decimal", "Numeric")
_FLOAT: _Mapping = (ScalarType.NUMBER, "float", "Float")
_BOOLEAN: _Mapping = (ScalarType.BOOLEAN, "bool", "Boolean")
_STRING: _Mapping = (ScalarType.STRING, "str", "String")
_TEXT: _Mapping = (ScalarType.STRING, "str", "Text")
_DATE: _Mapping = (ScalarType.DATE, "date", "Date")
_DATETIME: _Mapping = (ScalarType.DATE, "datetime", "DateTime")
_TIME: _Mapping = (ScalarType.DATE, "time", "Time")
_JSON: _Mapping = (ScalarType.JSON, "Any", "JSON")
_BUFFER: _Mapping = (ScalarType.BUFFER, "bytes", "LargeBinary")

# Normalised database type name → mapping.  Covers the names reported by
# PostgreSQL, MySQL/MariaDB, SQLite, MSSQL and Oracle.
TYPE_MAP: Dict[str, _Mapping] = {
    # -- integers ------------------------------------------------------------
    "int": _INTEGER,
    "integer": _INTEGER,
    "int4": _INTEGER,
    "mediumint": _INTEGER,
    "serial": _INTEGER,
    "serial4": _INTEGER,
    "tinyint": _SMALLINT,
    "smallint": _SMALLINT,
    "int2": _SMALLINT,
    "smallserial": _SMALLINT,
    "serial2": _SMALLINT,
    "year": _SMALLINT,
    "bigint": _BIGINT,
    "int8": _BIGINT,
    "bigserial": _BIGINT,
    "serial8": _BIGINT,
    # -- exact / approximate numerics ----------------------------------------
    "numeric": _DECIMAL,
    "decimal": _DECIMAL,
    "number": _DECIMAL,
    "money": _DECIMAL,
    "smallmoney": _DECIMAL,
    "dec": _DECIMAL,
    "fixed": _DECIMAL,
    "float": _FLOAT,
    "float4": _FLOAT,
    "float8": _FLOAT,
    "real": _FLOAT,
    "double": _FLOAT,
    "double precision": _FLOAT,
    "binary_float": _FLOAT,
    "binary_double": _FLOAT,
    # -- booleans -------------------------------------------------------------
    "bool": _BOOLEAN,
    "boolean": _BOOLEAN,
    "bit": _BOOLEAN,
    # -- strings --------------------------------------------------------------
    "varchar": _STRING,
    "character varying": _STRING,
    "char": _STRING,
    "character": _STRING,
    "bpchar": _STRING,
    "nchar": _STRING,
    "nvarchar": _STRING,
    "national character varying": _STRING,
    "varchar2": _STRING,
    "nvarchar2": _STRING,
    "varying character": _STRING,
    "uuid": _STRING,
    "uniqueidentifier": _STRING,
    "inet": _STRING,
    "cidr": _STRING,
    "macaddr": _STRING,
    "citext": _STRING,
    "set": _STRING,
    "rowid": _STRING,
    "text": _TEXT,
    "tinytext": _TEXT,
    "mediumtext": _TEXT,
    "longtext": _TEXT,
    "ntext": _TEXT,
    "clob": _TEXT,
    "nclob": _TEXT,
    "xml": _TEXT,
    "tsvector": _TEXT,
    # -- dates & times --------------------------------------------------------
    "date": _DATE,
    "datetime": _DATETIME,
    "datetime2": _DATETIME,
    "smalldatetime": _DATETIME,
    "datetimeoffset": _DATETIME,
    "timestamp": _DATETIME,
    "timestamptz": _DATETIME,
    "time": _TIME,
    "timetz": _TIME,
    # -- documents ------------------------------------------------------------
    "json": _JSON,
    "jsonb": _JSON,
    # -- binary ---------------------------------------------------------------
    "blob": _BUFFER,
    "tinyblob": _BUFFER,
    "mediumblob": _BUFFER,
    "longblob": _BUFFER,
    "bytea": _BUFFER,
    "binary": _BUFFER,
    "varbinary": _BUFFER,
    "image": _BUFFER,
    "raw": _BUFFER,
    "long raw": _BUFFER,
}

# Default spelling of each scalar kind, used when an override chooses it.
SCALAR_DEFAULTS: Dict[ScalarType, Tuple[str, str]] = {
    ScalarType.STRING: ("str", "String"),
    ScalarType.NUMBER: ("float", "Float"),
    ScalarType.BOOLEAN: ("bool", "Boolean"),
    ScalarType.DATE: ("datetime", "DateTime"),
    ScalarType.ENUM: ("str", "Enum"),
    ScalarType.JSON: ("Any", "JSON"),
    ScalarType.BUFFER: ("bytes", "LargeBinary"),
}


def normalize_type_name(database_type: str) -> str:
    """
    Canonical lookup key for a raw database type.

        >>> normalize_type_name("VARCHAR(255)")
        'varchar'
        >>> normalize_type_name("INT(11) UNSIGNED")
        'int'
        >>> normalize_type_name("TIMESTAMP WITHOUT TIME ZONE")
        'timestamp'
    """
    name: str = _PARAMS_RE.sub("", database_type.lower())
    name = _WHITESPACE_RE.sub(" ", name).strip()
    for suffix in (" with time zone", " without time zone", " with local time zone"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    words: List[str] = [w for w in name.split(" ") if w not in _MODIFIERS]
    return " ".join(words)


def to_scalar_type(
    database_type: str,
    nullable: bool,
    overrides: Optional[Mapping[str, ScalarType]] = None,
    enum_values: Sequence[str] = (),
) -> ResolvedType:
    """
    Resolve a raw database type to a ``ResolvedType``.

    Resolution order:
      1. A configured override (by raw or normalised name) wins unconditionally.
      2. Types carrying enum values resolve to ``ScalarType.ENUM``.
      3. The built-in ``TYPE_MAP``.

    Raises ``UnsupportedTypeError`` when none of these apply.
    """
    key: str = normalize_type_name(database_type)
    overrides = overrides or {}

    override: Optional[ScalarType] = overrides.get(database_type.strip().lower())
    if override is None:
        override = overrides.get(key)
    if override is not None:
        python_type, sa_type = SCALAR_DEFAULTS[override]
        if override == ScalarType.ENUM and not enum_values:
            sa_type = "String"
        return ResolvedType(
            scalar=override,
            python_type=python_type,
            sa_type=sa_type,
            enum_values=tuple(enum_values) if override == ScalarType.ENUM else (),
            nullable=nullable,
        )

    if enum_values:
        return ResolvedType(
            scalar=ScalarType.ENUM,
            python_type="str",
            sa_type="Enum",
            enum_values=tuple(enum_values),
            nullable=nullable,
        )

    mapping: Optional[_Mapping] = TYPE_MAP.get(key)
    if mapping is None:
        raise UnsupportedTypeError(database_type)

    scalar, python_type, sa_type = mapping
    return ResolvedType(
        scalar=scalar,
        python_type=python_type,
        sa_type=sa_type,
        nullable=nullable,
    )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "apply_case",
    "to_entity_name",
    "to_property_name",
    "to_file_name",
    "to_input_name",
    "to_input_file_name",
    "to_relation_name",
    "strip_fk_suffix",
    "unique_name",
    "TYPE_MAP",
    "SCALAR_DEFAULTS",
    "normalize_type_name",
    "to_scalar_type",
]

logger.debug("dbreverse.naming loaded — %d type names mapped.", len(TYPE_MAP))
