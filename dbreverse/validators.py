# File: dbreverse/validators.py
"""
dbreverse - Catalog & Configuration Validators
================================================
Pure-function validation pipeline over a ``SchemaSnapshot``.

Pydantic already guarantees per-model structure (non-empty names, matching
FK column pair counts).  This module adds the **cross-table** checks the
catalog itself does not enforce for us: FK targets that do not exist,
indexes over unknown columns, duplicate table names, and so on.

Any error-level item makes the snapshot unusable; the introspector turns
it into an ``IntrospectionError`` before anything is generated.

Usage:
    from dbreverse.validators import validate_snapshot
    result = validate_snapshot(snapshot)
    if result.has_errors:
        raise IntrospectionError("...", result)
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from dbreverse.models import GenerationOptions, SchemaSnapshot, TableInfo

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse.validators")

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationError:
    """Lightweight error descriptor (no Pydantic overhead)."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning" | "info"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()


class ValidationResult:
    """Accumulates ``ValidationError`` instances produced by the pipeline."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationError] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationError("error", code, message, context))

    def add_warning(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationError("warning", code, message, context))

    def add_info(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationError("info", code, message, context))

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationError]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[ValidationError]:
        return [e for e in self._items if e.is_warning]

    @property
    def has_errors(self) -> bool:
        return any(e.is_error for e in self._items)

    @property
    def error_count(self) -> int:
        return sum(1 for e in self._items if e.is_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for e in self._items if e.is_warning)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def codes(self) -> List[str]:
        return [e.code for e in self._items]

    def summary(self) -> str:
        return (
            f"Validation: {self.error_count} error(s), "
            f"{self.warning_count} warning(s), "
            f"{len(self._items)} total item(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def format_report(self, include_info: bool = False) -> str:
        """Human-readable multi-line report."""
        lines: List[str] = [self.summary(), ""]
        for item in self._items:
            if not include_info and item.level == "info":
                continue
            lines.append(f"  [{item.level.upper()}] [{item.code}] {item.message}")
            for k, v in item.context.items():
                lines.append(f"       {k}: {v}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Individual validation functions
# ---------------------------------------------------------------------------


def validate_table_names(snapshot: SchemaSnapshot) -> ValidationResult:
    """Duplicate tables make every name-keyed lookup ambiguous."""
    result: ValidationResult = ValidationResult()
    seen: Set[str] = set()

    for table in snapshot.tables:
        if table.name in seen:
            result.add_error(
                "DUPLICATE_TABLE_NAME",
                f"Table '{table.name}' is reported more than once by the catalog.",
                {"table": table.name},
            )
        seen.add(table.name)

    return result


def validate_columns(snapshot: SchemaSnapshot) -> ValidationResult:
    result: ValidationResult = ValidationResult()

    for table in snapshot.tables:
        seen: Set[str] = set()
        for col in table.columns:
            if col.name in seen:
                result.add_error(
                    "DUPLICATE_COLUMN_NAME",
                    f"Column '{col.name}' appears more than once in "
                    f"table '{table.name}'.",
                    {"table": table.name, "column": col.name},
                )
            seen.add(col.name)

    return result


def validate_primary_keys(snapshot: SchemaSnapshot) -> ValidationResult:
    """
    - Every PK column must exist in its table.
    - A table without a primary key cannot be mapped as an ORM entity
      identity; it is reported as a warning.
    """
    result: ValidationResult = ValidationResult()

    for table in snapshot.tables:
        ctx: Dict[str, Any] = {"table": table.name}
        if not table.primary_key:
            result.add_warning(
                "NO_PRIMARY_KEY",
                f"Table '{table.name}' has no primary key; all of its "
                f"columns will be used as the mapper identity.",
                ctx,
            )
            continue
        missing: List[str] = [
            c for c in table.primary_key if table.get_column(c) is None
        ]
        if missing:
            result.add_error(
                "PK_COLUMN_MISSING",
                f"Primary key of '{table.name}' references non-existent "
                f"column(s): {missing}.",
                ctx,
            )

    return result


def validate_foreign_keys(snapshot: SchemaSnapshot) -> ValidationResult:
    """
    Cross-table FK validation:
    - Local columns exist in the owning table
    - Referred table exists in the catalog
    - Referred columns exist in the referred table

    FKs into a different schema than the one introspected are only warned
    about; their targets were never part of the read.
    """
    result: ValidationResult = ValidationResult()

    for table in snapshot.tables:
        for fk in table.foreign_keys:
            ctx: Dict[str, Any] = {
                "table": table.name,
                "columns": list(fk.columns),
                "referred_table": fk.referred_table,
                "referred_columns": list(fk.referred_columns),
            }
            label: str = (
                f"FK '{fk.name or ', '.join(fk.columns)}' from "
                f"'{table.name}({', '.join(fk.columns)})' → "
                f"'{fk.referred_table}({', '.join(fk.referred_columns)})'"
            )

            missing_local: List[str] = [
                c for c in fk.columns if table.get_column(c) is None
            ]
            if missing_local:
                result.add_error(
                    "FK_COLUMN_MISSING",
                    f"{label}: local column(s) {missing_local} not found.",
                    ctx,
                )

            if (
                fk.referred_schema is not None
                and fk.referred_schema != snapshot.schema_name
            ):
                result.add_warning(
                    "FK_CROSS_SCHEMA",
                    f"{label}: target lives in schema '{fk.referred_schema}' "
                    f"which was not introspected.",
                    ctx,
                )
                continue

            target: Optional[TableInfo] = snapshot.get_table(fk.referred_table)
            if target is None:
                result.add_error(
                    "FK_TARGET_TABLE_MISSING",
                    f"{label}: table '{fk.referred_table}' does not exist.",
                    ctx,
                )
                continue

            missing_remote: List[str] = [
                c for c in fk.referred_columns if target.get_column(c) is None
            ]
            if missing_remote:
                result.add_error(
                    "FK_TARGET_COLUMN_MISSING",
                    f"{label}: column(s) {missing_remote} not found in "
                    f"'{fk.referred_table}'.",
                    ctx,
                )

    return result


def validate_indexes(snapshot: SchemaSnapshot) -> ValidationResult:
    """Indexes and unique constraints must only cover existing columns."""
    result: ValidationResult = ValidationResult()

    for table in snapshot.tables:
        col_set: Set[str] = set(table.column_names)
        groups: Tuple[Tuple[str, Any], ...] = (
            ("INDEX_COLUMN_MISSING", table.indexes),
            ("UNIQUE_COLUMN_MISSING", table.unique_constraints),
        )
        for code, items in groups:
            for idx in items:
                missing: List[str] = [c for c in idx.columns if c not in col_set]
                if missing:
                    result.add_error(
                        code,
                        f"'{idx.name or '<unnamed>'}' on '{table.name}' "
                        f"references non-existent column(s): {missing}.",
                        {"table": table.name, "index": idx.name},
                    )

    return result


def validate_options(
    snapshot: SchemaSnapshot,
    options: GenerationOptions,
) -> ValidationResult:
    """
    Cross-check generation options against the catalog.  Never produces
    errors: a pattern matching nothing is a likely typo, not a failure.
    """
    result: ValidationResult = ValidationResult()
    names: List[str] = snapshot.table_names

    for pattern in options.include_tables:
        if not fnmatch.filter(names, pattern):
            result.add_warning(
                "INCLUDE_PATTERN_UNMATCHED",
                f"Include pattern '{pattern}' matches no table.",
                {"pattern": pattern},
            )
    for pattern in options.exclude_tables:
        if not fnmatch.filter(names, pattern):
            result.add_info(
                "EXCLUDE_PATTERN_UNMATCHED",
                f"Exclude pattern '{pattern}' matches no table.",
                {"pattern": pattern},
            )

    return result


# ---------------------------------------------------------------------------
# Master entry point
# ---------------------------------------------------------------------------


def validate_snapshot(
    snapshot: SchemaSnapshot,
    options: Optional[GenerationOptions] = None,
) -> ValidationResult:
    """
    Run every catalog validator and merge their results.

    Complexity: O(T + C + F + I) — linear in the catalog size.
    """
    result: ValidationResult = ValidationResult()

    validators: List[Callable[[SchemaSnapshot], ValidationResult]] = [
        validate_table_names,
        validate_columns,
        validate_primary_keys,
        validate_foreign_keys,
        validate_indexes,
    ]

    for validator_fn in validators:
        logger.debug("Running validator: %s", validator_fn.__name__)
        result.merge(validator_fn(snapshot))

    if options is not None:
        result.merge(validate_options(snapshot, options))

    for item in result.warnings:
        logger.warning("%s", item)

    if result.has_errors:
        logger.error("Catalog validation FAILED. %s", result.summary())
    else:
        logger.info("Catalog validation passed. %s", result.summary())

    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ValidationError",
    "ValidationResult",
    "validate_table_names",
    "validate_columns",
    "validate_primary_keys",
    "validate_foreign_keys",
    "validate_indexes",
    "validate_options",
    "validate_snapshot",
]

logger.debug("dbreverse.validators loaded — %d public symbols.", len(__all__))
