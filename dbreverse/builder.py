# File: dbreverse/builder.py
"""
dbreverse - Relational Model Builder
======================================
Turns a raw ``SchemaSnapshot`` into the engine-agnostic ``ResolvedModel``
the emitter renders.

Pipeline (all passes are deterministic; tables are visited in snapshot
order and foreign keys in their sorted catalog order):

    1. classify pure junction tables           → many-to-many candidates
    2. name entities, resolve every column     → TypeResolutionError batch
    3. plan relation endpoints per FK          → owning side + inverse side
    4. name relation properties                → collision suffixes, bounded
    5. freeze into Entity / ResolvedModel

Only owning-side endpoints physically hold FK columns; every endpoint is
paired with exactly one inverse endpoint through ``constraint_key``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from dbreverse.errors import (
    ModelConsistencyError,
    TypeResolutionError,
    UnsupportedTypeError,
)
from dbreverse.models import (
    ColumnInfo,
    Entity,
    EntityColumn,
    ForeignKeyInfo,
    GenerationOptions,
    Relation,
    RelationshipType,
    ResolvedModel,
    ResolvedType,
    SchemaSnapshot,
    TableInfo,
)
from dbreverse.naming import (
    strip_fk_suffix,
    to_entity_name,
    to_file_name,
    to_input_file_name,
    to_input_name,
    to_property_name,
    to_relation_name,
    to_scalar_type,
    unique_name,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse.builder")

# Attribute names owned by SQLAlchemy's declarative machinery.
_RESERVED_ATTRIBUTES: FrozenSet[str] = frozenset(
    {"metadata", "registry", "query", "__table__", "__tablename__", "__mapper__"}
)


# ---------------------------------------------------------------------------
# Internal working state
# ---------------------------------------------------------------------------


@dataclass
class _Endpoint:
    """A relation endpoint before its property name is assigned."""

    entity: str
    target: str
    kind: RelationshipType
    owning_side: bool
    base_name: str
    constraint_key: str
    nullable: bool = True
    fk_entity: Optional[str] = None
    fk_properties: Tuple[str, ...] = ()
    self_referential: bool = False
    remote_properties: Tuple[str, ...] = ()
    join_table: Optional[str] = None
    join_schema: Optional[str] = None
    join_columns: Tuple[Tuple[str, str], ...] = ()
    inverse_join_columns: Tuple[Tuple[str, str], ...] = ()
    name: str = ""
    partner: Optional["_Endpoint"] = None


@dataclass
class _EntityDraft:
    table: TableInfo
    name: str
    columns: List[EntityColumn] = field(default_factory=list)
    endpoints: List[_Endpoint] = field(default_factory=list)
    composite_fks: List[ForeignKeyInfo] = field(default_factory=list)


def _deduplicated_fks(table: TableInfo) -> List[ForeignKeyInfo]:
    """Drop FKs that repeat an earlier signature."""
    seen: Set[Tuple[str, Tuple[str, ...], str, Tuple[str, ...]]] = set()
    result: List[ForeignKeyInfo] = []
    for fk in table.foreign_keys:
        if fk.signature in seen:
            logger.debug("Duplicate FK %r on %s ignored", fk, table.name)
            continue
        seen.add(fk.signature)
        result.append(fk)
    return result


def _outside_schema(fk: ForeignKeyInfo, schema_name: Optional[str]) -> bool:
    """True when the FK target lives in a schema that was not introspected."""
    return fk.referred_schema is not None and fk.referred_schema != schema_name


def _constraint_key(fk: ForeignKeyInfo) -> str:
    return (
        f"{fk.table}({','.join(fk.columns)})->"
        f"{fk.referred_table}({','.join(fk.referred_columns)})"
    )


# ---------------------------------------------------------------------------
# Junction classification
# ---------------------------------------------------------------------------


def is_junction_table(table: TableInfo, snapshot: SchemaSnapshot) -> bool:
    """
    A pure join table has exactly two FKs whose local column sets are
    disjoint and together form the primary key, and no other columns.

    Tables that are themselves referenced, or whose targets are not part
    of the snapshot or live in another schema, are kept as ordinary entities.
    """
    fks: List[ForeignKeyInfo] = _deduplicated_fks(table)
    if len(fks) != 2 or not table.primary_key:
        return False
    first, second = set(fks[0].columns), set(fks[1].columns)
    pk: Set[str] = set(table.primary_key)
    if first & second or (first | second) != pk or set(table.column_names) != pk:
        return False
    if any(
        _outside_schema(fk, snapshot.schema_name)
        or snapshot.get_table(fk.referred_table) is None
        for fk in fks
    ):
        return False
    for other in snapshot.tables:
        if other.name != table.name and any(
            fk.referred_table == table.name and not _outside_schema(fk, snapshot.schema_name)
            for fk in other.foreign_keys
        ):
            return False
    return True


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class ModelBuilder:
    """
    Builds a ``ResolvedModel`` from a snapshot under one set of options.

    Usage:
        model = ModelBuilder(options).build(snapshot)
    """

    def __init__(self, options: GenerationOptions) -> None:
        self.options: GenerationOptions = options
        self._warnings: List[str] = []
        self._schema_name: Optional[str] = None

    # -- Public -------------------------------------------------------------

    def build(self, snapshot: SchemaSnapshot) -> ResolvedModel:
        """
        Raises:
            TypeResolutionError: one or more columns have no scalar mapping.
            ModelConsistencyError: naming bound exceeded, or a dangling
                reference while ``strict_relations`` is on.
        """
        self._warnings = []
        self._schema_name = snapshot.schema_name

        junctions: List[TableInfo] = [
            t for t in snapshot.tables if is_junction_table(t, snapshot)
        ]
        junction_names: Set[str] = {t.name for t in junctions}
        logger.info(
            "Building model: %d table(s), %d junction table(s)",
            len(snapshot.tables),
            len(junctions),
        )

        drafts: Dict[str, _EntityDraft] = self._name_entities(snapshot, junction_names)
        self._resolve_columns(drafts)

        for draft in drafts.values():
            self._plan_foreign_keys(draft, drafts)
        for junction in junctions:
            self._plan_junction(junction, drafts)

        for draft in drafts.values():
            self._name_endpoints(draft)

        entities: Tuple[Entity, ...] = tuple(self._freeze(d) for d in drafts.values())
        model: ResolvedModel = ResolvedModel(
            entities=entities,
            junction_tables=tuple(sorted(junction_names)),
            warnings=tuple(self._warnings),
        )
        logger.info("Built %r", model)
        return model

    # -- Pass 1: entity names -----------------------------------------------

    def _name_entities(
        self,
        snapshot: SchemaSnapshot,
        junction_names: Set[str],
    ) -> Dict[str, _EntityDraft]:
        drafts: Dict[str, _EntityDraft] = {}
        taken: Set[str] = set()
        for table in snapshot.tables:
            if table.name in junction_names:
                continue
            candidate: str = to_entity_name(table.name, self.options)
            name: Optional[str] = self._free_entity_name(candidate, taken, len(snapshot.tables))
            if name is None:
                raise ModelConsistencyError(
                    f"Cannot derive a unique entity name for table '{table.name}'."
                )
            if name != candidate:
                self._warn(
                    f"Table '{table.name}' maps to entity name '{candidate}' whose "
                    f"name or module is already taken; using '{name}'."
                )
            taken.update(self._reserved_names(name))
            drafts[table.name] = _EntityDraft(table=table, name=name)
        return drafts

    def _reserved_names(self, name: str) -> Tuple[str, ...]:
        """Class name plus both module names an entity occupies."""
        return (
            name,
            f"file:{to_file_name(name, self.options)}",
            f"file:{to_input_file_name(name, self.options)}",
        )

    def _free_entity_name(self, candidate: str, taken: Set[str], limit: int) -> Optional[str]:
        """
        First of candidate, candidate2, ... whose class and module names are
        all unused.  Two tables such as ``user_role`` and ``UserRole`` may
        differ as classes yet share a module file.
        """
        attempts: List[str] = [candidate] + [f"{candidate}{n}" for n in range(2, limit + 2)]
        for attempt in attempts:
            if not taken.intersection(self._reserved_names(attempt)):
                return attempt
        return None

    # -- Pass 2: columns ----------------------------------------------------

    def _resolve_columns(self, drafts: Dict[str, _EntityDraft]) -> None:
        failures: List[UnsupportedTypeError] = []

        for draft in drafts.values():
            table: TableInfo = draft.table
            if not table.primary_key:
                self._warn(
                    f"Table '{table.name}' has no primary key; every column is "
                    f"mapped as part of the identity."
                )
            pk: Tuple[str, ...] = table.primary_key or tuple(table.column_names)
            fk_targets: Dict[str, str] = self._single_column_targets(table, drafts)
            taken: List[str] = []
            limit: int = len(table.columns)

            for col in table.columns:
                try:
                    resolved: ResolvedType = to_scalar_type(
                        col.data_type,
                        col.nullable and col.name not in pk,
                        self.options.type_overrides,
                        col.enum_values,
                    )
                except UnsupportedTypeError:
                    failures.append(
                        UnsupportedTypeError(col.data_type, table.name, col.name)
                    )
                    continue
                prop: str = self._property_name(col, taken, limit, table)
                taken.append(prop)
                draft.columns.append(
                    EntityColumn(
                        name=col.name,
                        property_name=prop,
                        data_type=col.data_type,
                        resolved=resolved,
                        length=col.length,
                        precision=col.precision,
                        scale=col.scale,
                        nullable=col.nullable,
                        generated=col.generated,
                        primary_key=col.name in pk,
                        unique=table.is_unique((col.name,)) and pk != (col.name,),
                        default=col.default,
                        comment=col.comment,
                        foreign_key=fk_targets.get(col.name),
                    )
                )

        if failures:
            for failure in failures:
                logger.error("%s", failure)
            raise TypeResolutionError(failures)

    def _property_name(
        self,
        col: ColumnInfo,
        taken: List[str],
        limit: int,
        table: TableInfo,
    ) -> str:
        candidate: str = to_property_name(col.name, self.options)
        if candidate in _RESERVED_ATTRIBUTES:
            candidate = f"{candidate}_"
        name: Optional[str] = unique_name(candidate, taken, limit)
        if name is None:
            raise ModelConsistencyError(
                f"Cannot derive a unique property name for column "
                f"'{table.name}.{col.name}'."
            )
        return name

    def _single_column_targets(
        self,
        table: TableInfo,
        drafts: Dict[str, _EntityDraft],
    ) -> Dict[str, str]:
        """Column → 'table.column' for single-column FKs with a known target."""
        targets: Dict[str, str] = {}
        for fk in _deduplicated_fks(table):
            target_draft: Optional[_EntityDraft] = self._target_draft(fk, drafts)
            if len(fk.columns) != 1 or target_draft is None:
                continue
            target: TableInfo = target_draft.table
            prefix: str = f"{target.schema_name}." if target.schema_name else ""
            targets.setdefault(
                fk.columns[0], f"{prefix}{target.name}.{fk.referred_columns[0]}"
            )
        return targets

    # -- Pass 3: relation planning ------------------------------------------

    def _target_draft(
        self, fk: ForeignKeyInfo, drafts: Dict[str, _EntityDraft]
    ) -> Optional[_EntityDraft]:
        if _outside_schema(fk, self._schema_name):
            return None
        return drafts.get(fk.referred_table)

    def _dangling(self, owner: str, fk: ForeignKeyInfo) -> None:
        reason: str = (
            f"schema '{fk.referred_schema}' was not introspected"
            if _outside_schema(fk, self._schema_name)
            else "table is not part of the model"
        )
        message: str = (
            f"Relation {owner}({', '.join(fk.columns)}) → '{fk.referred_table}' "
            f"dropped: {reason}."
        )
        if self.options.strict_relations:
            raise ModelConsistencyError(message)
        self._warn(message)

    def _plan_foreign_keys(
        self,
        draft: _EntityDraft,
        drafts: Dict[str, _EntityDraft],
    ) -> None:
        table: TableInfo = draft.table
        for fk in _deduplicated_fks(table):
            target_draft: Optional[_EntityDraft] = self._target_draft(fk, drafts)
            if target_draft is None:
                self._dangling(table.name, fk)
                continue

            if len(fk.columns) > 1:
                draft.composite_fks.append(fk)

            one_to_one: bool = len(fk.columns) == 1 and table.is_unique(fk.columns)
            owner_props: Tuple[str, ...] = tuple(
                self._column_property(draft, c) for c in fk.columns
            )
            remote_props: Tuple[str, ...] = tuple(
                self._column_property(target_draft, c) for c in fk.referred_columns
            )
            self_ref: bool = target_draft is draft
            nullable: bool = all(
                (table.get_column(c) is None or table.get_column(c).nullable)
                for c in fk.columns
            )
            key: str = _constraint_key(fk)

            stripped: Optional[str] = (
                strip_fk_suffix(fk.columns[0]) if len(fk.columns) == 1 else None
            )
            owning: _Endpoint = _Endpoint(
                entity=draft.name,
                target=target_draft.name,
                kind=(
                    RelationshipType.ONE_TO_ONE
                    if one_to_one
                    else RelationshipType.MANY_TO_ONE
                ),
                owning_side=True,
                base_name=stripped or target_draft.name,
                constraint_key=key,
                nullable=nullable,
                fk_entity=draft.name,
                fk_properties=owner_props,
                self_referential=self_ref,
                remote_properties=remote_props if self_ref else (),
            )
            inverse: _Endpoint = _Endpoint(
                entity=target_draft.name,
                target=draft.name,
                kind=(
                    RelationshipType.ONE_TO_ONE
                    if one_to_one
                    else RelationshipType.ONE_TO_MANY
                ),
                owning_side=False,
                base_name=draft.name,
                constraint_key=key,
                fk_entity=draft.name,
                fk_properties=owner_props,
                self_referential=self_ref,
            )
            owning.partner, inverse.partner = inverse, owning
            draft.endpoints.append(owning)
            target_draft.endpoints.append(inverse)

    def _plan_junction(
        self,
        junction: TableInfo,
        drafts: Dict[str, _EntityDraft],
    ) -> None:
        first, second = _deduplicated_fks(junction)
        owner: _EntityDraft = drafts[first.referred_table]
        other: _EntityDraft = drafts[second.referred_table]
        self_ref: bool = owner is other
        key: str = f"{junction.name}:{_constraint_key(first)}|{_constraint_key(second)}"

        def base(fk: ForeignKeyInfo, fallback: str) -> str:
            if self_ref and len(fk.columns) == 1:
                return strip_fk_suffix(fk.columns[0]) or fallback
            return fallback

        owning: _Endpoint = _Endpoint(
            entity=owner.name,
            target=other.name,
            kind=RelationshipType.MANY_TO_MANY,
            owning_side=True,
            base_name=base(second, other.name),
            constraint_key=key,
            self_referential=self_ref,
            join_table=junction.name,
            join_schema=junction.schema_name,
            join_columns=first.pairs,
            inverse_join_columns=second.pairs,
        )
        inverse: _Endpoint = _Endpoint(
            entity=other.name,
            target=owner.name,
            kind=RelationshipType.MANY_TO_MANY,
            owning_side=False,
            base_name=base(first, owner.name),
            constraint_key=key,
            self_referential=self_ref,
            join_table=junction.name,
            join_schema=junction.schema_name,
            join_columns=second.pairs,
            inverse_join_columns=first.pairs,
        )
        owning.partner, inverse.partner = inverse, owning
        owner.endpoints.append(owning)
        other.endpoints.append(inverse)

    @staticmethod
    def _column_property(draft: _EntityDraft, column_name: str) -> str:
        for col in draft.columns:
            if col.name == column_name:
                return col.property_name
        return column_name

    # -- Pass 4: relation names ---------------------------------------------

    def _name_endpoints(self, draft: _EntityDraft) -> None:
        taken: List[str] = [c.property_name for c in draft.columns]
        limit: int = len(draft.columns) + len(draft.endpoints)

        for endpoint in draft.endpoints:
            candidate: str = to_relation_name(
                endpoint.base_name, endpoint.kind.to_many, self.options
            )
            if candidate in _RESERVED_ATTRIBUTES:
                candidate = f"{candidate}_"
            name: Optional[str] = unique_name(candidate, taken, limit)
            if name is None:
                raise ModelConsistencyError(
                    f"Cannot derive a unique relation name for "
                    f"'{draft.name}.{candidate}' within {limit} attempts."
                )
            endpoint.name = name
            taken.append(name)

    # -- Pass 5: freeze -----------------------------------------------------

    def _freeze(self, draft: _EntityDraft) -> Entity:
        table: TableInfo = draft.table
        relations: List[Relation] = []
        for ep in draft.endpoints:
            relations.append(
                Relation(
                    name=ep.name,
                    kind=ep.kind,
                    entity=ep.entity,
                    target=ep.target,
                    owning_side=ep.owning_side,
                    inverse_name=ep.partner.name if ep.partner is not None else None,
                    constraint_key=ep.constraint_key,
                    nullable=ep.nullable,
                    fk_entity=ep.fk_entity,
                    fk_properties=ep.fk_properties,
                    self_referential=ep.self_referential,
                    remote_properties=ep.remote_properties,
                    join_table=ep.join_table,
                    join_schema=ep.join_schema,
                    join_columns=ep.join_columns,
                    inverse_join_columns=ep.inverse_join_columns,
                )
            )

        return Entity(
            name=draft.name,
            table_name=table.name,
            schema_name=table.schema_name,
            file_name=to_file_name(draft.name, self.options),
            input_name=to_input_name(draft.name, self.options),
            input_file_name=to_input_file_name(draft.name, self.options),
            columns=tuple(draft.columns),
            relations=tuple(relations),
            primary_key=table.primary_key or tuple(table.column_names),
            composite_foreign_keys=tuple(draft.composite_fks),
            unique_constraints=tuple(
                uc for uc in table.unique_constraints if len(uc.columns) > 1
            ),
            comment=table.comment,
        )

    def _warn(self, message: str) -> None:
        logger.warning("%s", message)
        self._warnings.append(message)


def build_model(snapshot: SchemaSnapshot, options: GenerationOptions) -> ResolvedModel:
    """Functional shortcut for ``ModelBuilder(options).build(snapshot)``."""
    return ModelBuilder(options).build(snapshot)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "is_junction_table",
    "ModelBuilder",
    "build_model",
]

logger.debug("dbreverse.builder loaded — %d public symbols.", len(__all__))
