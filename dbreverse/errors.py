# File: dbreverse/errors.py
"""
dbreverse - Error Taxonomy
============================
Every fatal condition of a generation run maps to exactly one exception
class below.  The CLI turns each class into its own exit code.

    DbReverseError
     ├── DatabaseConnectionError   data source unreachable / auth / driver
     ├── IntrospectionError        malformed or inconsistent catalog
     ├── ModelConsistencyError     relation naming or dangling FK (strict)
     ├── UnsupportedTypeError      one column without scalar mapping
     └── TypeResolutionError       batch of UnsupportedTypeError

``FormattingDegraded`` is a warning category, not an error: the file is
still written.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from dbreverse.validators import ValidationResult


class DbReverseError(Exception):
    """Base class of every error raised by dbreverse."""


class DatabaseConnectionError(DbReverseError):
    """The data source could not be reached within the connect timeout."""


class IntrospectionError(DbReverseError):
    """Catalog metadata is malformed; nothing may be generated from it."""

    def __init__(
        self,
        message: str,
        result: Optional["ValidationResult"] = None,
    ) -> None:
        super().__init__(message)
        self.result: Optional["ValidationResult"] = result

    def __str__(self) -> str:
        base: str = super().__str__()
        if self.result is None or not self.result.errors:
            return base
        return f"{base}\n{self.result.format_report()}"


class ModelConsistencyError(DbReverseError):
    """The relational model cannot be resolved into unique names."""


class UnsupportedTypeError(DbReverseError):
    """A column type has no scalar mapping and no configured override."""

    def __init__(
        self,
        database_type: str,
        table: Optional[str] = None,
        column: Optional[str] = None,
    ) -> None:
        self.database_type: str = database_type
        self.table: Optional[str] = table
        self.column: Optional[str] = column
        where: str = f" ({table}.{column})" if table and column else ""
        super().__init__(
            f"Unsupported database type '{database_type}'{where}; "
            f"add a type override to map it."
        )


class TypeResolutionError(DbReverseError):
    """Every UnsupportedTypeError found in one run, reported together."""

    def __init__(self, errors: Sequence[UnsupportedTypeError]) -> None:
        self.errors: List[UnsupportedTypeError] = list(errors)
        entities: List[str] = sorted({e.table or "?" for e in self.errors})
        super().__init__(
            f"{len(self.errors)} column(s) in {len(entities)} table(s) "
            f"have unsupported types: {', '.join(entities)}"
        )

    def __str__(self) -> str:
        lines: List[str] = [super().__str__()]
        lines.extend(f"  - {e}" for e in self.errors)
        return "\n".join(lines)


class FormattingDegraded(UserWarning):
    """The style pass failed; the unformatted text was written instead."""


__all__: List[str] = [
    "DbReverseError",
    "DatabaseConnectionError",
    "IntrospectionError",
    "ModelConsistencyError",
    "UnsupportedTypeError",
    "TypeResolutionError",
    "FormattingDegraded",
]
