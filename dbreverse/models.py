# File: dbreverse/models.py
"""
dbreverse - Core Data Models
==============================
Pydantic V2 models for every stage of a generation run:

    ConnectionDescriptor ─▶ SchemaSnapshot ─▶ ResolvedModel ─▶ GeneratedFile
                            (TableInfo ...)   (Entity ...)

Catalog models (``TableInfo`` and friends) are what the introspector saw.
Resolved models (``Entity``, ``EntityColumn``, ``Relation``) are what the
builder derived from them.  Both families are frozen: once constructed they
are only read.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    computed_field,
    field_validator,
    model_validator,
)
from sqlalchemy.engine import URL, make_url

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse.models")

# ---------------------------------------------------------------------------
# Enums — fixed sets used across the entire project
# ---------------------------------------------------------------------------


class ScalarType(str, Enum):
    """Target scalar kinds a database column value maps to."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"
    JSON = "json"
    BUFFER = "buffer"


class RelationshipType(str, Enum):
    """ORM relationship cardinalities."""

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_ONE = "many_to_one"
    MANY_TO_MANY = "many_to_many"

    @property
    def to_many(self) -> bool:
        return self in (RelationshipType.ONE_TO_MANY, RelationshipType.MANY_TO_MANY)


class CaseStyle(str, Enum):
    """Casing transforms applied by the naming policy."""

    PRESERVE = "preserve"
    CAMEL = "camel"
    PASCAL = "pascal"
    SNAKE = "snake"


class DatabaseDialect(str, Enum):
    """Database engines the introspector knows how to reach."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    SQLITE = "sqlite"
    MSSQL = "mssql"
    ORACLE = "oracle"


class ArtifactKind(str, Enum):
    """Kinds of files the emitter produces."""

    ENTITY = "entity"
    INPUT = "input"
    SUPPORT = "support"


# ---------------------------------------------------------------------------
# Shared model configuration
# ---------------------------------------------------------------------------

_FROZEN_CONFIG: ConfigDict = ConfigDict(
    frozen=True,
    populate_by_name=True,
    extra="forbid",
)

# Audit/identity columns never copied into input models.  Compared after
# lower-casing and removing underscores.
DEFAULT_AUDIT_COLUMNS: Tuple[str, ...] = (
    "id",
    "created",
    "updated",
    "deleted",
    "createdat",
    "updatedat",
    "deletedat",
    "createdon",
    "updatedon",
    "deletedon",
    "isdeleted",
)


# ---------------------------------------------------------------------------
# Connection & generation configuration
# ---------------------------------------------------------------------------


class ConnectionDescriptor(BaseModel):
    """
    Where to read the schema from.

    Either ``url`` is given verbatim, or the URL is assembled from the
    discrete fields.  ``connect_timeout`` bounds the connection attempt.
    """

    model_config = _FROZEN_CONFIG

    engine: DatabaseDialect = Field(
        default=DatabaseDialect.POSTGRESQL, description="Database engine kind."
    )
    driver: Optional[str] = Field(
        default=None, description="DBAPI driver, e.g. 'psycopg2' or 'pymysql'."
    )
    host: Optional[str] = Field(default=None, description="Database host.")
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    username: Optional[str] = Field(default=None, description="Login user.")
    password: Optional[str] = Field(default=None, description="Login password.")
    database: Optional[str] = Field(
        default=None, description="Database name (file path for SQLite)."
    )
    schema_name: Optional[str] = Field(
        default=None, description="Catalog schema to introspect (e.g. 'public')."
    )
    url: Optional[str] = Field(
        default=None, description="Full SQLAlchemy URL; overrides the fields above."
    )
    connect_timeout: int = Field(
        default=10, ge=1, le=600, description="Connection timeout in seconds."
    )

    @model_validator(mode="after")
    def _require_target(self) -> "ConnectionDescriptor":
        if self.url is None and self.database is None:
            raise ValueError("Either 'url' or 'database' must be provided.")
        return self

    def to_url(self) -> URL:
        """Build the SQLAlchemy URL for this descriptor."""
        if self.url is not None:
            return make_url(self.url)
        drivername: str = self.engine.value
        if self.driver:
            drivername = f"{drivername}+{self.driver}"
        return URL.create(
            drivername=drivername,
            username=self.username,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    @property
    def dialect_name(self) -> str:
        return self.to_url().get_backend_name()

    def __repr__(self) -> str:
        return f"<ConnectionDescriptor {self.to_url().render_as_string(hide_password=True)}>"


class GenerationOptions(BaseModel):
    """
    Immutable settings for one generation run.

    Every naming and type-resolution function reads this object by
    reference; nothing copies and mutates it.
    """

    model_config = _FROZEN_CONFIG

    # -- Naming -------------------------------------------------------------
    entity_case: CaseStyle = Field(
        default=CaseStyle.PASCAL, description="Casing of entity class names."
    )
    property_case: CaseStyle = Field(
        default=CaseStyle.SNAKE, description="Casing of attribute names."
    )
    file_case: CaseStyle = Field(
        default=CaseStyle.SNAKE, description="Casing of module file names."
    )
    pluralize: bool = Field(
        default=True,
        description="Singularise entity names and pluralise *-to-many relations.",
    )
    input_suffix: str = Field(
        default="Input", min_length=1, description="Suffix for input class names."
    )

    # -- Types --------------------------------------------------------------
    type_overrides: Dict[str, ScalarType] = Field(
        default_factory=dict,
        description="Database type name → scalar kind; wins unconditionally.",
    )

    # -- Relations ----------------------------------------------------------
    lazy_relations: bool = Field(
        default=False,
        description="Load relations on access instead of eagerly (selectin).",
    )
    strict_relations: bool = Field(
        default=False,
        description="Fail instead of dropping relations to missing tables.",
    )

    # -- Scope --------------------------------------------------------------
    include_tables: Tuple[str, ...] = Field(
        default=(), description="fnmatch patterns of tables to generate."
    )
    exclude_tables: Tuple[str, ...] = Field(
        default=(), description="fnmatch patterns of tables to skip."
    )
    audit_columns: Tuple[str, ...] = Field(
        default=DEFAULT_AUDIT_COLUMNS,
        description="Identity/audit column names left out of input models.",
    )

    # -- Output -------------------------------------------------------------
    output_dir: str = Field(
        default="./generated", min_length=1, description="Root of generated code."
    )
    format_output: bool = Field(
        default=True, description="Run the black style pass on generated text."
    )
    line_length: int = Field(
        default=88, ge=40, le=200, description="Formatter line length."
    )
    concurrency: int = Field(
        default=4, ge=1, le=64, description="Worker threads for entity rendering."
    )

    @field_validator("type_overrides")
    @classmethod
    def _normalise_override_keys(
        cls, v: Dict[str, ScalarType]
    ) -> Dict[str, ScalarType]:
        return {key.strip().lower(): value for key, value in v.items()}

    @field_validator("audit_columns")
    @classmethod
    def _normalise_audit_columns(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(name.lower().replace("_", "") for name in v)


# ---------------------------------------------------------------------------
# Catalog snapshot (what the introspector saw)
# ---------------------------------------------------------------------------


class ColumnInfo(BaseModel):
    """One column exactly as reported by the catalog."""

    model_config = _FROZEN_CONFIG

    name: str = Field(..., min_length=1, description="Column name.")
    data_type: str = Field(..., min_length=1, description="Raw database type.")
    enum_values: Tuple[str, ...] = Field(
        default=(), description="Allowed values for enum types."
    )
    length: Optional[int] = Field(default=None, ge=0)
    precision: Optional[int] = Field(default=None, ge=0)
    scale: Optional[int] = Field(default=None, ge=0)
    nullable: bool = Field(default=True, description="Whether NULL is allowed.")
    generated: bool = Field(
        default=False, description="Auto-increment / identity column."
    )
    default: Optional[str] = Field(
        default=None, description="Server default expression."
    )
    comment: Optional[str] = Field(default=None, description="Column comment.")

    def __repr__(self) -> str:
        null_flag: str = " NULL" if self.nullable else " NOT NULL"
        gen_flag: str = " GENERATED" if self.generated else ""
        return f"<Column {self.name} {self.data_type}{null_flag}{gen_flag}>"


class ForeignKeyInfo(BaseModel):
    """A (possibly composite) foreign key with its column pairs in order."""

    model_config = _FROZEN_CONFIG

    name: Optional[str] = Field(default=None, description="Constraint name.")
    table: str = Field(..., min_length=1, description="Owning table.")
    columns: Tuple[str, ...] = Field(..., min_length=1, description="Local columns.")
    referred_table: str = Field(..., min_length=1, description="Referenced table.")
    referred_schema: Optional[str] = Field(default=None)
    referred_columns: Tuple[str, ...] = Field(..., min_length=1)
    on_delete: Optional[str] = Field(default=None)
    on_update: Optional[str] = Field(default=None)

    @model_validator(mode="after")
    def _pairs_match(self) -> "ForeignKeyInfo":
        if len(self.columns) != len(self.referred_columns):
            raise ValueError(
                f"Foreign key {self.name or self.columns} on '{self.table}' has "
                f"{len(self.columns)} local but {len(self.referred_columns)} "
                f"referenced columns."
            )
        return self

    @property
    def pairs(self) -> Tuple[Tuple[str, str], ...]:
        return tuple(zip(self.columns, self.referred_columns))

    @property
    def signature(self) -> Tuple[str, Tuple[str, ...], str, Tuple[str, ...]]:
        """Identity used to deduplicate the same FK reported twice."""
        return (self.table, self.columns, self.referred_table, self.referred_columns)

    def __repr__(self) -> str:
        return (
            f"<FK {self.table}({', '.join(self.columns)}) → "
            f"{self.referred_table}({', '.join(self.referred_columns)})>"
        )


class IndexInfo(BaseModel):
    """Index or unique constraint over an ordered column list."""

    model_config = _FROZEN_CONFIG

    name: Optional[str] = Field(default=None, description="Index name.")
    columns: Tuple[str, ...] = Field(..., min_length=1)
    unique: bool = Field(default=False, description="UNIQUE index?")


class TableInfo(BaseModel):
    """
    One table from the catalog.

    Columns keep their physical ordinal order; ``foreign_keys`` keep their
    column pairs intact (composite keys are never flattened).
    """

    model_config = _FROZEN_CONFIG

    name: str = Field(..., min_length=1, description="Table name.")
    schema_name: Optional[str] = Field(default=None)
    columns: Tuple[ColumnInfo, ...] = Field(..., min_length=1)
    primary_key: Tuple[str, ...] = Field(default=())
    foreign_keys: Tuple[ForeignKeyInfo, ...] = Field(default=())
    indexes: Tuple[IndexInfo, ...] = Field(default=())
    unique_constraints: Tuple[IndexInfo, ...] = Field(default=())
    comment: Optional[str] = Field(default=None)

    _column_map: Dict[str, ColumnInfo] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self._column_map = {c.name: c for c in self.columns}

    @property
    def qualified_name(self) -> str:
        if self.schema_name:
            return f"{self.schema_name}.{self.name}"
        return self.name

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> Optional[ColumnInfo]:
        """O(1) column lookup by name."""
        return self._column_map.get(name)

    def is_unique(self, columns: Tuple[str, ...]) -> bool:
        """True when exactly this column set is unique-constrained."""
        wanted: FrozenSet[str] = frozenset(columns)
        if self.primary_key and frozenset(self.primary_key) == wanted:
            return True
        for uc in self.unique_constraints:
            if frozenset(uc.columns) == wanted:
                return True
        for idx in self.indexes:
            if idx.unique and frozenset(idx.columns) == wanted:
                return True
        return False

    def __repr__(self) -> str:
        return (
            f"<Table {self.qualified_name} "
            f"({len(self.columns)} cols, {len(self.foreign_keys)} FKs)>"
        )


class SchemaSnapshot(BaseModel):
    """All tables read in one introspection session."""

    model_config = _FROZEN_CONFIG

    tables: Tuple[TableInfo, ...] = Field(default=())
    dialect: str = Field(default="unknown", description="SQLAlchemy dialect name.")
    schema_name: Optional[str] = Field(default=None)

    _table_map: Dict[str, TableInfo] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self._table_map = {t.name: t for t in self.tables}

    def get_table(self, name: str) -> Optional[TableInfo]:
        """O(1) table lookup."""
        return self._table_map.get(name)

    @property
    def table_names(self) -> List[str]:
        return [t.name for t in self.tables]

    def __repr__(self) -> str:
        return f"<SchemaSnapshot {self.dialect}: {len(self.tables)} tables>"


# ---------------------------------------------------------------------------
# Resolved model (what the builder derived)
# ---------------------------------------------------------------------------


class ResolvedType(BaseModel):
    """A database type mapped onto a scalar kind and its Python spelling."""

    model_config = _FROZEN_CONFIG

    scalar: ScalarType
    python_type: str = Field(..., description="Annotation, e.g. 'int' or 'Decimal'.")
    sa_type: str = Field(..., description="SQLAlchemy type name, e.g. 'String'.")
    enum_values: Tuple[str, ...] = Field(default=())
    nullable: bool = Field(default=False)

    @property
    def annotation(self) -> str:
        if self.nullable:
            return f"Optional[{self.python_type}]"
        return self.python_type


class EntityColumn(BaseModel):
    """A column with its resolved property name and type."""

    model_config = _FROZEN_CONFIG

    name: str = Field(..., description="Database column name.")
    property_name: str = Field(..., description="Attribute name in generated code.")
    data_type: str = Field(..., description="Raw database type.")
    resolved: ResolvedType
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    nullable: bool = True
    generated: bool = False
    primary_key: bool = False
    unique: bool = False
    default: Optional[str] = None
    comment: Optional[str] = None
    foreign_key: Optional[str] = Field(
        default=None,
        description="'table.column' target of a single-column FK, if any.",
    )

    @property
    def scalar(self) -> ScalarType:
        return self.resolved.scalar


class Relation(BaseModel):
    """
    One side of a relationship, as seen from ``entity``.

    The pair (owning side, inverse side) always shares the same
    ``constraint_key``; exactly one of the two has ``owning_side=True``.
    """

    model_config = _FROZEN_CONFIG

    name: str = Field(..., description="Property name on the holding entity.")
    kind: RelationshipType
    entity: str = Field(..., description="Entity holding this property.")
    target: str = Field(..., description="Related entity.")
    owning_side: bool
    inverse_name: Optional[str] = Field(
        default=None, description="Property name of the other side."
    )
    constraint_key: str = Field(..., description="Stable id of the underlying FK.")
    nullable: bool = True

    # FK columns (for one-to-one / many-to-one / one-to-many)
    fk_entity: Optional[str] = Field(
        default=None, description="Entity whose table stores the FK columns."
    )
    fk_properties: Tuple[str, ...] = Field(default=())
    self_referential: bool = False
    remote_properties: Tuple[str, ...] = Field(
        default=(), description="Referenced property names (self-referential FKs)."
    )

    # Junction (many-to-many only)
    join_table: Optional[str] = Field(default=None)
    join_schema: Optional[str] = Field(default=None)
    join_columns: Tuple[Tuple[str, str], ...] = Field(
        default=(), description="(junction column, referenced column) toward entity."
    )
    inverse_join_columns: Tuple[Tuple[str, str], ...] = Field(
        default=(), description="(junction column, referenced column) toward target."
    )

    @model_validator(mode="after")
    def _junction_only_for_many_to_many(self) -> "Relation":
        if (self.kind == RelationshipType.MANY_TO_MANY) != (self.join_table is not None):
            raise ValueError(
                f"Relation '{self.entity}.{self.name}': a join table is required "
                f"for many-to-many relations and forbidden otherwise."
            )
        return self

    @property
    def to_many(self) -> bool:
        return self.kind.to_many

    def __repr__(self) -> str:
        return f"<Relation {self.entity}.{self.name} ({self.kind.value}) → {self.target}>"


class Entity(BaseModel):
    """Everything the emitter needs to render one table."""

    model_config = _FROZEN_CONFIG

    name: str = Field(..., description="Entity class name.")
    table_name: str
    schema_name: Optional[str] = None
    file_name: str
    input_name: str
    input_file_name: str
    columns: Tuple[EntityColumn, ...]
    relations: Tuple[Relation, ...] = ()
    primary_key: Tuple[str, ...] = ()
    composite_foreign_keys: Tuple[ForeignKeyInfo, ...] = ()
    unique_constraints: Tuple[IndexInfo, ...] = ()
    comment: Optional[str] = None

    @property
    def property_names(self) -> List[str]:
        return [c.property_name for c in self.columns] + [r.name for r in self.relations]

    def get_column(self, name: str) -> Optional[EntityColumn]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    @property
    def related_entities(self) -> List[str]:
        """Distinct related entity names, in relation order, self excluded."""
        seen: List[str] = []
        for rel in self.relations:
            if rel.target != self.name and rel.target not in seen:
                seen.append(rel.target)
        return seen

    def __repr__(self) -> str:
        return (
            f"<Entity {self.name} ({len(self.columns)} cols, "
            f"{len(self.relations)} rels)>"
        )


class ResolvedModel(BaseModel):
    """The complete entity/relation graph of one generation run."""

    model_config = _FROZEN_CONFIG

    entities: Tuple[Entity, ...] = ()
    junction_tables: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    _entity_map: Dict[str, Entity] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self._entity_map = {e.name: e for e in self.entities}

    def get_entity(self, name: str) -> Optional[Entity]:
        """O(1) entity lookup by class name."""
        return self._entity_map.get(name)

    @computed_field  # type: ignore[misc]
    @property
    def entity_count(self) -> int:
        return len(self.entities)

    @computed_field  # type: ignore[misc]
    @property
    def relation_count(self) -> int:
        return sum(len(e.relations) for e in self.entities)

    def dependency_order(self) -> List[str]:
        """
        Return entity names in import-dependency order.

        An entity that references another is ordered after it.  Uses Kahn's
        algorithm — O(V + E).  Relations form cycles routinely (every
        relation has an inverse), so only owning-side edges are counted.
        """
        in_degree: Dict[str, int] = {e.name: 0 for e in self.entities}
        adjacency: Dict[str, List[str]] = {e.name: [] for e in self.entities}

        for entity in self.entities:
            for rel in entity.relations:
                if not rel.owning_side or rel.target == entity.name:
                    continue
                if rel.target in adjacency:
                    adjacency[rel.target].append(entity.name)
                    in_degree[entity.name] += 1

        queue: List[str] = [n for n, d in in_degree.items() if d == 0]
        result: List[str] = []

        while queue:
            node: str = queue.pop(0)
            result.append(node)
            for neighbour in adjacency[node]:
                in_degree[neighbour] -= 1
                if in_degree[neighbour] == 0:
                    queue.append(neighbour)

        if len(result) != len(self.entities):
            logger.warning(
                "Circular FK dependency detected — dependency order is partial. "
                "Falling back to declaration order for remaining entities."
            )
            placed: Set[str] = set(result)
            result.extend(e.name for e in self.entities if e.name not in placed)

        return result

    def __repr__(self) -> str:
        return (
            f"<ResolvedModel {self.entity_count} entities, "
            f"{self.relation_count} relations, "
            f"{len(self.junction_tables)} junctions>"
        )


# ---------------------------------------------------------------------------
# Generation output
# ---------------------------------------------------------------------------


class GeneratedFile(BaseModel):
    """One rendered file, before the writer's style pass."""

    model_config = _FROZEN_CONFIG

    path: str = Field(..., min_length=1, description="Path relative to output_dir.")
    content: str = Field(..., description="Full file content.")
    kind: ArtifactKind = Field(default=ArtifactKind.SUPPORT)
    entity: Optional[str] = Field(default=None, description="Source entity name.")
    depends_on: Tuple[str, ...] = Field(
        default=(), description="Generated module names this file imports."
    )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ScalarType",
    "RelationshipType",
    "CaseStyle",
    "DatabaseDialect",
    "ArtifactKind",
    "DEFAULT_AUDIT_COLUMNS",
    "ConnectionDescriptor",
    "GenerationOptions",
    "ColumnInfo",
    "ForeignKeyInfo",
    "IndexInfo",
    "TableInfo",
    "SchemaSnapshot",
    "ResolvedType",
    "EntityColumn",
    "Relation",
    "Entity",
    "ResolvedModel",
    "GeneratedFile",
]

logger.debug("dbreverse.models loaded — %d public symbols.", len(__all__))
