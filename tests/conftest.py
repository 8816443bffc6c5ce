"""
tests/conftest.py
Shared fixtures for the dbreverse test suite.

Databases are real SQLite files created through SQLAlchemy inside pytest's
tmp_path; no external mocking libraries are used.
"""

from __future__ import annotations

import pathlib
import sys
import uuid
from typing import Iterator, List

import pytest
import sqlalchemy as sa

from dbreverse.introspector import IntrospectionSession, read_snapshot
from dbreverse.models import (
    ConnectionDescriptor,
    Entity,
    GeneratedFile,
    GenerationOptions,
    SchemaSnapshot,
)
from dbreverse.templates import TemplateGenerator


# ---------------------------------------------------------------------------
# Schema definitions
# ---------------------------------------------------------------------------


def _blog_metadata() -> sa.MetaData:
    """
    users ─┬─< posts >─< post_tags >─ tags
           └── profiles (one-to-one)
    categories ─< categories (self-reference)
    """
    metadata = sa.MetaData()
    sa.Table(
        "users",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("email", sa.String(120), nullable=False, unique=True),
        sa.Column("display_name", sa.String(80), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime, nullable=True),
    )
    sa.Table(
        "profiles",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("bio", sa.Text, nullable=True),
    )
    sa.Table(
        "posts",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("author_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text, nullable=True),
        sa.Column("rating", sa.Numeric(10, 2), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
    )
    sa.Table(
        "tags",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("label", sa.String(50), nullable=False, unique=True),
    )
    sa.Table(
        "post_tags",
        metadata,
        sa.Column("post_id", sa.Integer, sa.ForeignKey("posts.id"), primary_key=True),
        sa.Column("tag_id", sa.Integer, sa.ForeignKey("tags.id"), primary_key=True),
    )
    sa.Table(
        "categories",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("parent_id", sa.Integer, sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("name", sa.String(60), nullable=False),
    )
    return metadata


def _create_database(path: pathlib.Path, metadata: sa.MetaData) -> pathlib.Path:
    engine = sa.create_engine(f"sqlite:///{path}")
    try:
        metadata.create_all(engine)
    finally:
        engine.dispose()
    return path


def _execute_ddl(path: pathlib.Path, statements: List[str]) -> pathlib.Path:
    engine = sa.create_engine(f"sqlite:///{path}")
    try:
        with engine.begin() as conn:
            for statement in statements:
                conn.exec_driver_sql(statement)
    finally:
        engine.dispose()
    return path


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def blog_db(tmp_path: pathlib.Path) -> pathlib.Path:
    """SQLite file holding the blog schema."""
    return _create_database(tmp_path / "blog.db", _blog_metadata())


@pytest.fixture()
def blog_connection(blog_db: pathlib.Path) -> ConnectionDescriptor:
    return ConnectionDescriptor(url=f"sqlite:///{blog_db}")


@pytest.fixture()
def blog_snapshot(blog_connection: ConnectionDescriptor) -> Iterator[SchemaSnapshot]:
    """Raw (unvalidated, unfiltered) snapshot of the blog schema."""
    with IntrospectionSession(blog_connection) as session:
        snapshot = read_snapshot(session)
    yield snapshot


@pytest.fixture()
def orphan_db(tmp_path: pathlib.Path) -> pathlib.Path:
    """A foreign key into a table that does not exist (SQLite allows it)."""
    return _execute_ddl(
        tmp_path / "orphan.db",
        [
            "CREATE TABLE owners (id INTEGER PRIMARY KEY, name VARCHAR(40) NOT NULL)",
            "CREATE TABLE pets ("
            " id INTEGER PRIMARY KEY,"
            " owner_id INTEGER REFERENCES owners(id),"
            " vet_id INTEGER REFERENCES vets(id))",
        ],
    )


# ---------------------------------------------------------------------------
# Options fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def output_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    return tmp_path / "out"


@pytest.fixture()
def options(output_dir: pathlib.Path) -> GenerationOptions:
    """Default options writing under tmp_path/out."""
    return GenerationOptions(output_dir=str(output_dir), concurrency=2)


@pytest.fixture()
def tag_render_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    """Rendering raises for the Tag entity only; every other entity renders normally."""
    original = TemplateGenerator.generate_for_entity

    def render(self: TemplateGenerator, entity: Entity) -> List[GeneratedFile]:
        if entity.name == "Tag":
            raise RuntimeError("template exploded")
        return original(self, entity)

    monkeypatch.setattr(TemplateGenerator, "generate_for_entity", render)


# ---------------------------------------------------------------------------
# Hand-written model module
# ---------------------------------------------------------------------------

_LIBRARY_SOURCE: str = '''\
from typing import List

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Author(Base):
    __tablename__ = "authors"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(80))
    books: Mapped[List["Book"]] = relationship(back_populates="author")


class Book(Base):
    __tablename__ = "books"

    id: Mapped[int] = mapped_column(primary_key=True)
    author_id: Mapped[int] = mapped_column(ForeignKey("authors.id"))
    author: Mapped["Author"] = relationship(back_populates="books")


class Shelf(Base):
    __tablename__ = "shelves"

    id: Mapped[int] = mapped_column(primary_key=True)
'''


@pytest.fixture()
def library_module(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[str]:
    """Importable module with a declarative base; yields its module name."""
    name = f"library_{uuid.uuid4().hex[:8]}"
    (tmp_path / f"{name}.py").write_text(_LIBRARY_SOURCE, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    yield name
    sys.modules.pop(name, None)
