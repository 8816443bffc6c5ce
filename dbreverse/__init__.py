# File: dbreverse/__init__.py
"""
dbreverse — Database Reverse-Engineering Code Generator
=========================================================

Reads a live relational schema and writes typed SQLAlchemy 2.0 entity
modules plus Pydantic V2 input models for it.

Architecture overview::

    ┌──────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │  CLI / Entry │────▶│ ReverseGenerator │────▶│ TemplateGenerator│
    │   (cli.py)   │     │  (generator.py)  │     │  (templates.py)  │
    └──────────────┘     └────────┬─────────┘     └──────────────────┘
                                  │
           ┌──────────────┬───────┴──────┬──────────────┐
           ▼              ▼              ▼              ▼
    ┌────────────┐ ┌────────────┐ ┌────────────┐ ┌────────────┐
    │introspector│ │ validators │ │  builder   │ │ exporters  │
    │   (.py)    │ │   (.py)    │ │   (.py)    │ │   (.py)    │
    └────────────┘ └────────────┘ └────────────┘ └────────────┘

Usage::

    # As a library
    from dbreverse import ConnectionDescriptor, GenerationOptions, ReverseGenerator
    report = ReverseGenerator().generate(
        ConnectionDescriptor(url="sqlite:///app.db"),
        GenerationOptions(output_dir="./models"),
    )

    # From the command line
    dbreverse generate --url sqlite:///app.db -o ./models -v
"""

from __future__ import annotations

__version__: str = "0.1.0"
__license__: str = "MIT"

from dbreverse.errors import (
    DatabaseConnectionError,
    DbReverseError,
    FormattingDegraded,
    IntrospectionError,
    ModelConsistencyError,
    TypeResolutionError,
    UnsupportedTypeError,
)
from dbreverse.models import (
    CaseStyle,
    ColumnInfo,
    ConnectionDescriptor,
    DatabaseDialect,
    Entity,
    EntityColumn,
    ForeignKeyInfo,
    GeneratedFile,
    GenerationOptions,
    IndexInfo,
    Relation,
    RelationshipType,
    ResolvedModel,
    ScalarType,
    SchemaSnapshot,
    TableInfo,
)
from dbreverse.validators import ValidationResult, validate_snapshot
from dbreverse.introspector import SchemaIntrospector, introspect_schema
from dbreverse.builder import ModelBuilder, build_model
from dbreverse.templates import TemplateGenerator
from dbreverse.exporters import OutputWriter, WriteResult
from dbreverse.generator import GenerationReport, ReverseGenerator

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__license__",
    # Core orchestrator
    "ReverseGenerator",
    "GenerationReport",
    # Errors
    "DbReverseError",
    "DatabaseConnectionError",
    "IntrospectionError",
    "ModelConsistencyError",
    "UnsupportedTypeError",
    "TypeResolutionError",
    "FormattingDegraded",
    # Models
    "CaseStyle",
    "ColumnInfo",
    "ConnectionDescriptor",
    "DatabaseDialect",
    "Entity",
    "EntityColumn",
    "ForeignKeyInfo",
    "GeneratedFile",
    "GenerationOptions",
    "IndexInfo",
    "Relation",
    "RelationshipType",
    "ResolvedModel",
    "ScalarType",
    "SchemaSnapshot",
    "TableInfo",
    # Pipeline stages
    "validate_snapshot",
    "ValidationResult",
    "SchemaIntrospector",
    "introspect_schema",
    "ModelBuilder",
    "build_model",
    "TemplateGenerator",
    "OutputWriter",
    "WriteResult",
]
