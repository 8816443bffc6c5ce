# File: dbreverse/templates.py
"""
dbreverse - Code Emitter
==========================
Renders a ``ResolvedModel`` into Python source files:

    1. ``base.py``               Base, IdentityMixin, BaseInput, FieldSpec
    2. ``entities/<file>.py``    SQLAlchemy 2.0 declarative entity per table
    3. ``inputs/<file>.py``      Pydantic V2 input model per entity
    4. package ``__init__`` files re-exporting the above

Every file is assembled from typed pieces rather than free-form string
concatenation: a ``Fragment`` is one class attribute (name, annotation,
value, the imports it needs) and a ``SourceUnit`` is one module (import
blocks, module-level prelude, one class).  ``SourceUnit.render()`` is the
only place where text is joined.

**Contracts:**
    - Same entity + same model + same options ⇒ byte-identical text.
    - Render methods never mutate the model; they are safe to run from
      worker threads.
    - Each class body ends with a custom region between ``CUSTOM_BEGIN``
      and ``CUSTOM_END`` that the writer carries across regenerations.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from dbreverse.models import (
    ArtifactKind,
    Entity,
    EntityColumn,
    GeneratedFile,
    GenerationOptions,
    Relation,
    RelationshipType,
    ResolvedModel,
    ScalarType,
)
from dbreverse.utils import build_import_block, merge_import_dicts, sanitize_identifier

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse.templates")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_INDENT: str = "    "

CUSTOM_BEGIN: str = "# <custom>"
CUSTOM_END: str = "# </custom>"

BASE_MODULE: str = "base"
ENTITIES_PACKAGE: str = "entities"
INPUTS_PACKAGE: str = "inputs"

_THIRD_PARTY_ROOTS: Tuple[str, ...] = ("sqlalchemy", "pydantic")

# Python annotation → module it is imported from
_PYTHON_TYPE_IMPORTS: Dict[str, str] = {
    "Decimal": "decimal",
    "datetime": "datetime",
    "date": "datetime",
    "time": "datetime",
    "Any": "typing",
}

# Factory used as the input default of each date/time annotation
_DATE_FACTORIES: Dict[str, str] = {
    "datetime": "now",
    "date": "today",
    "time": "current_time",
}

Imports = Dict[str, Set[str]]


# ---------------------------------------------------------------------------
# Render units
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Fragment:
    """One class-level attribute: ``name: annotation = value``."""

    name: str
    annotation: str
    value: Optional[str] = None
    imports: Tuple[Tuple[str, str], ...] = ()

    def render(self) -> str:
        if self.value is None:
            return f"{self.name}: {self.annotation}"
        return f"{self.name}: {self.annotation} = {self.value}"

    def import_dict(self) -> Imports:
        result: Imports = {}
        for module, name in self.imports:
            result.setdefault(module, set()).add(name)
        return result


@dataclass
class SourceUnit:
    """One generated module holding a single class."""

    doc: str
    class_name: str
    bases: Tuple[str, ...]
    imports: Imports = field(default_factory=dict)
    type_checking_imports: Imports = field(default_factory=dict)
    prelude: List[str] = field(default_factory=list)
    class_attrs: List[str] = field(default_factory=list)
    fields: List[Fragment] = field(default_factory=list)
    relations: List[Fragment] = field(default_factory=list)
    field_specs: List[str] = field(default_factory=list)
    depends_on: Set[str] = field(default_factory=set)

    def all_imports(self) -> Imports:
        collected: Imports = merge_import_dicts(
            self.imports,
            *(f.import_dict() for f in self.fields),
            *(f.import_dict() for f in self.relations),
        )
        if self.type_checking_imports:
            collected.setdefault("typing", set()).add("TYPE_CHECKING")
        if self.field_specs:
            collected.setdefault("typing", set()).update({"ClassVar", "Tuple"})
        return collected

    def render(self) -> str:
        lines: List[str] = ['"""', self.doc, '"""', "", "from __future__ import annotations", ""]
        lines.extend(_render_import_groups(self.all_imports()))

        if self.type_checking_imports:
            lines.append("if TYPE_CHECKING:")
            block: str = build_import_block(self.type_checking_imports)
            lines.extend(f"{_INDENT}{line}" for line in block.split("\n"))
            lines.append("")

        if self.prelude:
            lines.append("")
            lines.extend(self.prelude)

        lines.append("")
        lines.append("")
        lines.append(f"class {self.class_name}({', '.join(self.bases)}):")
        body: List[str] = list(self.class_attrs)
        if self.fields:
            if body:
                body.append("")
            body.extend(f.render() for f in self.fields)
        if self.relations:
            if body:
                body.append("")
            body.extend(f.render() for f in self.relations)
        if self.field_specs:
            if body:
                body.append("")
            body.append("__field_specs__: ClassVar[Tuple[FieldSpec, ...]] = (")
            body.extend(f"{_INDENT}{spec}," for spec in self.field_specs)
            body.append(")")
        if body:
            body.append("")
        body.append(CUSTOM_BEGIN)
        body.append(CUSTOM_END)
        lines.extend(f"{_INDENT}{line}" if line else "" for line in body)
        lines.append("")
        return "\n".join(lines)


def _render_import_groups(imports: Imports) -> List[str]:
    """stdlib, third-party, then relative imports, one blank line apart."""
    groups: Tuple[Imports, Imports, Imports] = ({}, {}, {})
    for module, names in imports.items():
        if module.startswith("."):
            index: int = 2
        elif module.split(".")[0] in _THIRD_PARTY_ROOTS:
            index = 1
        else:
            index = 0
        groups[index][module] = names

    lines: List[str] = []
    for group in groups:
        if group:
            lines.append(build_import_block(group))
            lines.append("")
    return lines


def _literal(value: str) -> str:
    return repr(value)


# ---------------------------------------------------------------------------
# Column helpers
# ---------------------------------------------------------------------------


def _python_type_imports(python_type: str) -> Tuple[Tuple[str, str], ...]:
    module: Optional[str] = _PYTHON_TYPE_IMPORTS.get(python_type)
    return ((module, python_type),) if module else ()


def _sa_type_expression(entity: Entity, column: EntityColumn) -> str:
    """``String(255)``, ``Numeric(10, 2)``, ``Enum('a', 'b', name=...)`` ..."""
    sa_type: str = column.resolved.sa_type
    if sa_type == "Enum":
        values: str = ", ".join(_literal(v) for v in column.resolved.enum_values)
        return f"Enum({values}, name={_literal(f'{entity.table_name}_{column.name}')})"
    if sa_type == "String" and column.length:
        return f"String({column.length})"
    if sa_type == "Numeric" and column.precision is not None:
        if column.scale is not None:
            return f"Numeric({column.precision}, {column.scale})"
        return f"Numeric({column.precision})"
    return sa_type


def uses_identity_mixin(entity: Entity) -> bool:
    """True when the entity's key is the plain generated integer ``id``."""
    if entity.primary_key != ("id",):
        return False
    column: Optional[EntityColumn] = entity.get_column("id")
    return (
        column is not None
        and column.property_name == "id"
        and column.generated
        and column.resolved.sa_type == "Integer"
    )


def _field_spec(
    name: str,
    scalar: str,
    nullable: bool,
    is_relation: bool = False,
    target: Optional[str] = None,
) -> str:
    args: List[str] = [_literal(name), _literal(scalar), str(nullable)]
    if is_relation:
        args.append("True")
        args.append(_literal(target or ""))
    return f"FieldSpec({', '.join(args)})"


# ---------------------------------------------------------------------------
# TemplateGenerator class
# ---------------------------------------------------------------------------


class TemplateGenerator:
    """
    Stateless renderer for one resolved model.

    Each ``generate_*`` method returns a complete ``GeneratedFile``; each
    ``build_*_unit`` method returns the typed ``SourceUnit`` behind it.
    """

    def __init__(self, model: ResolvedModel, options: GenerationOptions) -> None:
        self._model: ResolvedModel = model
        self._options: GenerationOptions = options
        logger.debug("TemplateGenerator initialised for %r", model)

    # ===================================================================
    # 1. Entity modules
    # ===================================================================

    def build_entity_unit(self, entity: Entity) -> SourceUnit:
        """SQLAlchemy 2.0 declarative class for one entity."""
        identity: bool = uses_identity_mixin(entity)
        unit: SourceUnit = SourceUnit(
            doc=(
                f"Entity for table ``{entity.table_name}``.\n"
                f"Generated by dbreverse; edit only inside the custom region."
            ),
            class_name=entity.name,
            bases=("IdentityMixin", "Base") if identity else ("Base",),
            imports={
                "sqlalchemy.orm": {"Mapped", "mapped_column"},
                f"..{BASE_MODULE}": {"Base", "FieldSpec"},
            },
            depends_on={BASE_MODULE},
        )
        if identity:
            unit.imports[f"..{BASE_MODULE}"].add("IdentityMixin")

        unit.class_attrs.append(f"__tablename__ = {_literal(entity.table_name)}")
        table_args: Optional[str] = self._table_args(entity, unit)
        if table_args:
            unit.class_attrs.append(table_args)
        if entity.comment:
            unit.class_attrs.insert(0, f'"""{entity.comment.replace(chr(34) * 3, "")}"""')
            unit.class_attrs.insert(1, "")

        for column in entity.columns:
            unit.field_specs.append(
                _field_spec(column.property_name, column.scalar.value, column.nullable)
            )
            if identity and column.name == "id":
                continue
            unit.fields.append(self._column_fragment(entity, column))

        for relation in entity.relations:
            unit.relations.append(self._relation_fragment(entity, relation, unit))
            unit.field_specs.append(
                _field_spec(
                    relation.name,
                    relation.kind.value,
                    relation.nullable,
                    True,
                    relation.target,
                )
            )

        return unit

    def generate_entity(self, entity: Entity) -> GeneratedFile:
        unit: SourceUnit = self.build_entity_unit(entity)
        return GeneratedFile(
            path=f"{ENTITIES_PACKAGE}/{entity.file_name}.py",
            content=unit.render(),
            kind=ArtifactKind.ENTITY,
            entity=entity.name,
            depends_on=tuple(sorted(unit.depends_on)),
        )

    def _table_args(self, entity: Entity, unit: SourceUnit) -> Optional[str]:
        parts: List[str] = []

        for fk in entity.composite_foreign_keys:
            target: Optional[Entity] = self._entity_for_table(fk.referred_table)
            prefix: str = f"{target.schema_name}." if target and target.schema_name else ""
            local: str = ", ".join(_literal(c) for c in fk.columns)
            remote: str = ", ".join(
                _literal(f"{prefix}{fk.referred_table}.{c}") for c in fk.referred_columns
            )
            extra: str = f", name={_literal(fk.name)}" if fk.name else ""
            if fk.on_delete:
                extra += f", ondelete={_literal(fk.on_delete)}"
            parts.append(f"ForeignKeyConstraint([{local}], [{remote}]{extra})")
            unit.imports.setdefault("sqlalchemy", set()).add("ForeignKeyConstraint")

        for uc in entity.unique_constraints:
            cols: str = ", ".join(_literal(c) for c in uc.columns)
            extra = f", name={_literal(uc.name)}" if uc.name else ""
            parts.append(f"UniqueConstraint({cols}{extra})")
            unit.imports.setdefault("sqlalchemy", set()).add("UniqueConstraint")

        if entity.schema_name:
            parts.append(f"{{'schema': {_literal(entity.schema_name)}}}")

        if not parts:
            return None
        return f"__table_args__ = ({', '.join(parts)},)"

    def _column_fragment(self, entity: Entity, column: EntityColumn) -> Fragment:
        imports: List[Tuple[str, str]] = list(_python_type_imports(column.resolved.python_type))
        type_expr: str = _sa_type_expression(entity, column)
        imports.append(("sqlalchemy", column.resolved.sa_type))

        args: List[str] = []
        if column.property_name != column.name:
            args.append(_literal(column.name))
        args.append(type_expr)
        if column.foreign_key:
            args.append(f"ForeignKey({_literal(column.foreign_key)})")
            imports.append(("sqlalchemy", "ForeignKey"))
        if column.primary_key:
            args.append("primary_key=True")
            if column.generated:
                args.append("autoincrement=True")
            elif len(entity.primary_key) == 1 and column.resolved.python_type == "int":
                args.append("autoincrement=False")
        else:
            args.append(f"nullable={column.nullable}")
        if column.unique:
            args.append("unique=True")
        if column.default is not None and not column.generated:
            args.append(f"server_default=text({_literal(column.default)})")
            imports.append(("sqlalchemy", "text"))
        if column.comment:
            args.append(f"comment={_literal(column.comment)}")

        annotation: str = column.resolved.annotation
        if column.resolved.nullable:
            imports.append(("typing", "Optional"))

        return Fragment(
            name=column.property_name,
            annotation=f"Mapped[{annotation}]",
            value=f"mapped_column({', '.join(args)})",
            imports=tuple(imports),
        )

    def _relation_fragment(
        self,
        entity: Entity,
        relation: Relation,
        unit: SourceUnit,
    ) -> Fragment:
        target: Optional[Entity] = self._model.get_entity(relation.target)
        if target is None:
            raise KeyError(f"Relation {relation!r} targets unknown entity")

        imports: List[Tuple[str, str]] = [("sqlalchemy.orm", "relationship")]
        if target.name != entity.name:
            unit.type_checking_imports.setdefault(f".{target.file_name}", set()).add(target.name)
            unit.depends_on.add(f"{ENTITIES_PACKAGE}.{target.file_name}")

        args: List[str] = []
        if relation.kind == RelationshipType.MANY_TO_MANY:
            args.extend(self._secondary_args(entity, relation, unit))
        elif relation.fk_properties:
            fk_entity: str = relation.fk_entity or entity.name
            cols: str = ", ".join(f"{fk_entity}.{p}" for p in relation.fk_properties)
            args.append(f'foreign_keys="[{cols}]"')
            if relation.owning_side and relation.self_referential:
                remote: str = ", ".join(f"{entity.name}.{p}" for p in relation.remote_properties)
                args.append(f'remote_side="[{remote}]"')
        if relation.inverse_name:
            args.append(f"back_populates={_literal(relation.inverse_name)}")
        if relation.kind == RelationshipType.ONE_TO_ONE and not relation.owning_side:
            args.append("uselist=False")
        args.append('lazy="select"' if self._options.lazy_relations else 'lazy="selectin"')

        quoted: str = f'"{target.name}"'
        if relation.to_many:
            annotation: str = f"Mapped[List[{quoted}]]"
            imports.append(("typing", "List"))
        elif relation.nullable or not relation.owning_side:
            annotation = f"Mapped[Optional[{quoted}]]"
            imports.append(("typing", "Optional"))
        else:
            annotation = f"Mapped[{quoted}]"

        return Fragment(
            name=relation.name,
            annotation=annotation,
            value=f"relationship({', '.join(args)})",
            imports=tuple(imports),
        )

    def _secondary_args(
        self,
        entity: Entity,
        relation: Relation,
        unit: SourceUnit,
    ) -> List[str]:
        """``secondary`` plus join conditions for a many-to-many endpoint."""
        table_name: str = relation.join_table or ""
        qualified: str = (
            f"{relation.join_schema}.{table_name}" if relation.join_schema else table_name
        )
        args: List[str] = []
        if relation.owning_side:
            variable: str = self._junction_variable(table_name)
            unit.prelude.extend(self._junction_table(relation, variable))
            unit.imports.setdefault("sqlalchemy", set()).update({"Column", "ForeignKey", "Table"})
            args.append(f"secondary={variable}")
        else:
            args.append(f"secondary={_literal(qualified)}")

        if relation.self_referential:
            args.append(
                f"primaryjoin={_literal(self._join_condition(entity, table_name, relation.join_columns))}"
            )
            args.append(
                f"secondaryjoin="
                f"{_literal(self._join_condition(entity, table_name, relation.inverse_join_columns))}"
            )
        return args

    @staticmethod
    def _junction_variable(table_name: str) -> str:
        return sanitize_identifier(f"{table_name}_table")

    def _join_condition(
        self,
        entity: Entity,
        table_name: str,
        pairs: Sequence[Tuple[str, str]],
    ) -> str:
        clauses: List[str] = []
        for junction_column, referenced in pairs:
            column: Optional[EntityColumn] = entity.get_column(referenced)
            prop: str = column.property_name if column else referenced
            clauses.append(f"{entity.name}.{prop} == {table_name}.c.{junction_column}")
        if len(clauses) == 1:
            return clauses[0]
        return f"and_({', '.join(clauses)})"

    def _junction_table(self, relation: Relation, variable: str) -> List[str]:
        owner: Optional[Entity] = self._model.get_entity(relation.entity)
        other: Optional[Entity] = self._model.get_entity(relation.target)
        lines: List[str] = [
            f"{variable} = Table(",
            f"{_INDENT}{_literal(relation.join_table or '')},",
            f"{_INDENT}Base.metadata,",
        ]
        for pairs, target in (
            (relation.join_columns, owner),
            (relation.inverse_join_columns, other),
        ):
            prefix: str = ""
            if target is not None and target.schema_name:
                prefix = f"{target.schema_name}."
            table: str = target.table_name if target is not None else ""
            for junction_column, referenced in pairs:
                ref: str = _literal(f"{prefix}{table}.{referenced}")
                lines.append(
                    f"{_INDENT}Column({_literal(junction_column)}, "
                    f"ForeignKey({ref}), primary_key=True),"
                )
        if relation.join_schema:
            lines.append(f"{_INDENT}schema={_literal(relation.join_schema)},")
        lines.append(")")
        return lines

    def _entity_for_table(self, table_name: str) -> Optional[Entity]:
        for entity in self._model.entities:
            if entity.table_name == table_name:
                return entity
        return None

    # ===================================================================
    # 2. Input modules
    # ===================================================================

    def _is_input_column(self, column: EntityColumn) -> bool:
        if column.generated:
            return False
        normalised: str = column.name.lower().replace("_", "")
        return normalised not in self._options.audit_columns

    def build_input_unit(self, entity: Entity) -> SourceUnit:
        """Pydantic V2 input model mirroring the entity's writable columns."""
        unit: SourceUnit = SourceUnit(
            doc=(
                f"Input model for entity ``{entity.name}``.\n"
                f"Generated by dbreverse; edit only inside the custom region."
            ),
            class_name=entity.input_name,
            bases=("BaseInput",),
            imports={f"..{BASE_MODULE}": {"BaseInput", "FieldSpec"}},
            depends_on={BASE_MODULE},
        )

        for column in entity.columns:
            if not self._is_input_column(column):
                continue
            unit.fields.append(self._input_fragment(column))
            unit.field_specs.append(
                _field_spec(column.property_name, column.scalar.value, column.nullable)
            )

        return unit

    def generate_input(self, entity: Entity) -> GeneratedFile:
        unit: SourceUnit = self.build_input_unit(entity)
        return GeneratedFile(
            path=f"{INPUTS_PACKAGE}/{entity.input_file_name}.py",
            content=unit.render(),
            kind=ArtifactKind.INPUT,
            entity=entity.name,
            depends_on=tuple(sorted(unit.depends_on)),
        )

    def _input_fragment(self, column: EntityColumn) -> Fragment:
        imports: List[Tuple[str, str]] = []
        python_type: str = column.resolved.python_type
        if column.scalar == ScalarType.ENUM and column.resolved.enum_values:
            python_type = (
                f"Literal[{', '.join(_literal(v) for v in column.resolved.enum_values)}]"
            )
            imports.append(("typing", "Literal"))
        else:
            imports.extend(_python_type_imports(python_type))

        name: str = column.property_name
        field_args: List[str] = []
        # Leading underscores would turn the field into a private attribute.
        if name.startswith("_"):
            field_args.append(f"alias={_literal(name)}")
            name = f"field{name}"
            imports.append(("pydantic", "Field"))

        default: Optional[str] = None
        if column.nullable:
            python_type = f"Optional[{python_type}]"
            imports.append(("typing", "Optional"))
            default = "None"
        elif column.scalar == ScalarType.STRING:
            default = '""'
        elif column.scalar == ScalarType.NUMBER:
            default = "0"
        elif column.scalar == ScalarType.BOOLEAN:
            default = "False"
        elif column.scalar == ScalarType.DATE and python_type in _DATE_FACTORIES:
            factory: str = _DATE_FACTORIES[python_type]
            imports.append((f"..{BASE_MODULE}", factory))
            imports.append(("pydantic", "Field"))
            field_args.insert(0, f"default_factory={factory}")
            default = None

        value: Optional[str]
        if field_args:
            if default is not None:
                field_args.insert(0, f"default={default}")
            imports.append(("pydantic", "Field"))
            value = f"Field({', '.join(field_args)})"
        else:
            value = default

        return Fragment(name=name, annotation=python_type, value=value, imports=tuple(imports))

    # ===================================================================
    # 3. Base module & package inits
    # ===================================================================

    def generate_base_module(self) -> GeneratedFile:
        lines: List[str] = [
            '"""',
            "Shared bases for generated entities and inputs.",
            "Generated by dbreverse; edit only inside the custom region.",
            '"""',
            "",
            "from __future__ import annotations",
            "",
            "from datetime import date, datetime, time",
            "from typing import NamedTuple, Optional",
            "",
            "from pydantic import BaseModel, ConfigDict",
            "from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column",
            "",
            "",
            "class FieldSpec(NamedTuple):",
            f'{_INDENT}"""Static description of one generated field."""',
            "",
            f"{_INDENT}name: str",
            f"{_INDENT}scalar: str",
            f"{_INDENT}nullable: bool",
            f"{_INDENT}is_relation: bool = False",
            f"{_INDENT}target: Optional[str] = None",
            "",
            "",
            "def now() -> datetime:",
            f"{_INDENT}return datetime.now()",
            "",
            "",
            "def today() -> date:",
            f"{_INDENT}return date.today()",
            "",
            "",
            "def current_time() -> time:",
            f"{_INDENT}return datetime.now().time()",
            "",
            "",
            "class Base(DeclarativeBase):",
            f'{_INDENT}"""Declarative base of every generated entity."""',
            "",
            f"{_INDENT}{CUSTOM_BEGIN}",
            f"{_INDENT}{CUSTOM_END}",
            "",
            "",
            "class IdentityMixin:",
            f'{_INDENT}"""Generated integer primary key."""',
            "",
            f"{_INDENT}id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)",
            "",
            "",
            "class BaseInput(BaseModel):",
            f'{_INDENT}"""Base of every generated input model."""',
            "",
            f"{_INDENT}model_config = ConfigDict(from_attributes=True, populate_by_name=True)",
            "",
            f"{_INDENT}{CUSTOM_BEGIN}",
            f"{_INDENT}{CUSTOM_END}",
            "",
        ]
        return GeneratedFile(
            path=f"{BASE_MODULE}.py",
            content="\n".join(lines),
            kind=ArtifactKind.SUPPORT,
        )

    def _init_file(
        self,
        path: str,
        doc: str,
        imports: List[str],
        names: List[str],
    ) -> GeneratedFile:
        lines: List[str] = ['"""', doc, '"""', ""]
        if imports:
            lines.extend(imports)
            lines.append("")
        lines.append("__all__ = [")
        lines.extend(f"{_INDENT}{_literal(n)}," for n in names)
        lines.append("]")
        lines.append("")
        return GeneratedFile(path=path, content="\n".join(lines), kind=ArtifactKind.SUPPORT)

    def generate_package_inits(
        self,
        names: Optional[Sequence[str]] = None,
    ) -> List[GeneratedFile]:
        """
        Package ``__init__`` files; entities are imported in dependency order.

        *names* restricts the re-exports to entities that rendered.
        """
        wanted: Set[str] = set(names if names is not None else self._model.dependency_order())
        ordered: List[Entity] = []
        for name in self._model.dependency_order():
            entity: Optional[Entity] = self._model.get_entity(name)
            if entity is not None and name in wanted:
                ordered.append(entity)
        entities_init: GeneratedFile = self._init_file(
            f"{ENTITIES_PACKAGE}/__init__.py",
            "Generated entities.",
            [f"from .{e.file_name} import {e.name}" for e in ordered],
            [e.name for e in ordered],
        )
        inputs_init: GeneratedFile = self._init_file(
            f"{INPUTS_PACKAGE}/__init__.py",
            "Generated input models.",
            [f"from .{e.input_file_name} import {e.input_name}" for e in ordered],
            [e.input_name for e in ordered],
        )
        root_init: GeneratedFile = self._init_file(
            "__init__.py",
            "Generated data model package.",
            [
                f"from . import {ENTITIES_PACKAGE}, {INPUTS_PACKAGE}",
                f"from .{BASE_MODULE} import Base, BaseInput, FieldSpec, IdentityMixin",
            ],
            ["Base", "BaseInput", "FieldSpec", "IdentityMixin", ENTITIES_PACKAGE, INPUTS_PACKAGE],
        )
        return [entities_init, inputs_init, root_init]

    # ===================================================================
    # 4. Aggregate generation
    # ===================================================================

    def generate_for_entity(self, entity: Entity) -> List[GeneratedFile]:
        return [self.generate_entity(entity), self.generate_input(entity)]

    def generate_all(
        self,
        concurrency: Optional[int] = None,
    ) -> Tuple[List[GeneratedFile], Dict[str, Exception]]:
        """
        Render every file of the model.

        Entities render on a bounded thread pool; a failure is recorded
        against its entity and does not stop the others.  Returns
        ``(files, errors)`` with files in write order: base module, entity
        and input modules in dependency order, then package inits.
        """
        workers: int = concurrency or self._options.concurrency
        order: List[str] = self._model.dependency_order()
        rendered: Dict[str, List[GeneratedFile]] = {}
        errors: Dict[str, Exception] = {}

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="dbreverse-emit") as pool:
            futures: Dict[str, Future] = {
                entity.name: pool.submit(self.generate_for_entity, entity)
                for entity in self._model.entities
            }
            for name in order:
                try:
                    rendered[name] = futures[name].result()
                except Exception as exc:
                    logger.error("Rendering entity %s failed: %s", name, exc)
                    errors[name] = exc

        files: List[GeneratedFile] = [self.generate_base_module()]
        for kind in (ArtifactKind.ENTITY, ArtifactKind.INPUT):
            for name in order:
                files.extend(f for f in rendered.get(name, []) if f.kind == kind)
        files.extend(self.generate_package_inits([n for n in order if n in rendered]))

        logger.info(
            "Rendered %d file(s) for %d entities (%d failed).",
            len(files),
            len(self._model.entities),
            len(errors),
        )
        return files, errors


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "CUSTOM_BEGIN",
    "CUSTOM_END",
    "Fragment",
    "SourceUnit",
    "uses_identity_mixin",
    "TemplateGenerator",
]

logger.debug("dbreverse.templates loaded.")
