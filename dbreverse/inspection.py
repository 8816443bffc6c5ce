# File: dbreverse/inspection.py
"""
dbreverse - Entity Inspection
===============================

Backend for the ``list-entities`` command.  Entities and the entities they
relate to are collected either from a freshly resolved model (live
connection) or from an importable module that holds a SQLAlchemy
declarative base, and rendered as a plain-text table.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapper, configure_mappers, registry

from dbreverse.builder import ModelBuilder
from dbreverse.errors import ModelConsistencyError
from dbreverse.introspector import SchemaIntrospector
from dbreverse.models import ConnectionDescriptor, GenerationOptions, ResolvedModel

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse.inspection")


@dataclass(frozen=True, slots=True)
class EntitySummary:
    """One row of the entity listing."""

    name: str
    table: str
    related: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def summarize_model(model: ResolvedModel) -> List[EntitySummary]:
    """Entities of a resolved model, in model order."""
    return [
        EntitySummary(
            name=entity.name,
            table=entity.table_name,
            related=tuple(entity.related_entities),
        )
        for entity in model.entities
    ]


def summarize_connection(
    connection: ConnectionDescriptor,
    options: Optional[GenerationOptions] = None,
) -> List[EntitySummary]:
    """Introspect a live schema and summarise the model it resolves to."""
    options = options or GenerationOptions()
    snapshot = SchemaIntrospector(connection).introspect(options)
    return summarize_model(ModelBuilder(options).build(snapshot))


def _registries(module: ModuleType) -> List[registry]:
    found: Dict[int, registry] = {}
    for value in vars(module).values():
        candidate: Any = getattr(value, "registry", None)
        if isinstance(value, type) and isinstance(candidate, registry):
            found.setdefault(id(candidate), candidate)
    return list(found.values())


def summarize_module(module_name: str) -> List[EntitySummary]:
    """
    Summarise every mapped class reachable from *module_name*.

    The module (or one of its attributes) must expose a declarative base;
    all mappers of its registry are listed, sorted by class name.

    Raises:
        ValueError: If the module can't be imported or holds no declarative base.
        ModelConsistencyError: If the mappers fail to configure.
    """
    try:
        module: ModuleType = importlib.import_module(module_name)
    except ImportError as exc:
        raise ValueError(f"Cannot import module '{module_name}': {exc}") from exc

    registries: List[registry] = _registries(module)
    if not registries:
        raise ValueError(f"Module '{module_name}' exposes no SQLAlchemy declarative base.")

    try:
        configure_mappers()
    except SQLAlchemyError as exc:
        raise ModelConsistencyError(f"Mappers of '{module_name}' are inconsistent: {exc}") from exc

    summaries: List[EntitySummary] = []
    for reg in registries:
        for mapper in reg.mappers:
            summaries.append(_summarize_mapper(mapper))
    summaries.sort(key=lambda s: s.name)
    logger.info("Found %d mapped class(es) in %s.", len(summaries), module_name)
    return summaries


def _summarize_mapper(mapper: Mapper[Any]) -> EntitySummary:
    related: List[str] = []
    for rel in mapper.relationships:
        target: str = rel.mapper.class_.__name__
        if target != mapper.class_.__name__ and target not in related:
            related.append(target)
    table: Any = mapper.local_table
    return EntitySummary(
        name=mapper.class_.__name__,
        table=getattr(table, "name", str(table)),
        related=tuple(sorted(related)),
    )


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def render_entity_table(summaries: List[EntitySummary]) -> str:
    """Fixed-width table: entity, table, related entities."""
    headers: Tuple[str, str, str] = ("Entity", "Table", "Related")
    rows: List[Tuple[str, str, str]] = [
        (s.name, s.table, ", ".join(s.related) or "-") for s in summaries
    ]
    widths: List[int] = [
        max([len(headers[i])] + [len(row[i]) for row in rows]) for i in range(3)
    ]

    def _line(cells: Tuple[str, str, str]) -> str:
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells)).rstrip()

    lines: List[str] = [_line(headers), "  ".join("-" * w for w in widths)]
    lines.extend(_line(row) for row in rows)
    lines.append(f"\n{len(rows)} entit{'y' if len(rows) == 1 else 'ies'}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "EntitySummary",
    "summarize_model",
    "summarize_connection",
    "summarize_module",
    "render_entity_table",
]

logger.debug("dbreverse.inspection loaded.")
