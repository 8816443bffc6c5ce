"""
tests/test_builder.py
Unit tests for dbreverse.builder (snapshot → ResolvedModel).

Tests cover:
- Entity naming and junction classification
- Relation kinds, owning/inverse pairing and property names
- Self-referencing and many-to-many relations
- Dependency ordering of entities
- Dangling references (lenient vs strict), including cross-schema targets
- Batched type-resolution failures and overrides
- Name collisions (class and module names) and reserved attribute names
"""

from __future__ import annotations

from typing import Dict, Sequence, Tuple

import pytest

from dbreverse.builder import ModelBuilder, build_model, is_junction_table
from dbreverse.errors import ModelConsistencyError, TypeResolutionError
from dbreverse.introspector import prepare_snapshot
from dbreverse.models import (
    CaseStyle,
    ColumnInfo,
    Entity,
    ForeignKeyInfo,
    GenerationOptions,
    Relation,
    RelationshipType,
    ResolvedModel,
    ScalarType,
    SchemaSnapshot,
    TableInfo,
)


# ===========================================================================
# Helpers
# ===========================================================================


def _col(
    name: str,
    data_type: str = "INTEGER",
    nullable: bool = True,
    generated: bool = False,
    enum_values: Tuple[str, ...] = (),
) -> ColumnInfo:
    return ColumnInfo(
        name=name,
        data_type=data_type,
        nullable=nullable,
        generated=generated,
        enum_values=enum_values,
    )


def _table(
    name: str,
    columns: Sequence[ColumnInfo],
    primary_key: Tuple[str, ...] = ("id",),
    foreign_keys: Sequence[ForeignKeyInfo] = (),
) -> TableInfo:
    return TableInfo(
        name=name,
        columns=tuple(columns),
        primary_key=primary_key,
        foreign_keys=tuple(foreign_keys),
    )


def _fk(table: str, columns: Tuple[str, ...], target: str, remote: Tuple[str, ...]) -> ForeignKeyInfo:
    return ForeignKeyInfo(
        table=table, columns=columns, referred_table=target, referred_columns=remote
    )


def _relations(entity: Entity) -> Dict[str, Relation]:
    return {r.name: r for r in entity.relations}


@pytest.fixture()
def blog_model(blog_snapshot: SchemaSnapshot) -> ResolvedModel:
    return ModelBuilder(GenerationOptions()).build(blog_snapshot)


# ===========================================================================
# Entities and junctions
# ===========================================================================


class TestEntities:
    """Naming and classification of the blog schema."""

    def test_entity_names(self, blog_model: ResolvedModel) -> None:
        assert [e.name for e in blog_model.entities] == [
            "Category",
            "Post",
            "Profile",
            "Tag",
            "User",
        ]

    def test_junction_is_not_an_entity(self, blog_model: ResolvedModel) -> None:
        assert blog_model.junction_tables == ("post_tags",)
        assert all(e.table_name != "post_tags" for e in blog_model.entities)

    def test_file_and_input_names(self, blog_model: ResolvedModel) -> None:
        post = blog_model.get_entity("Post")
        assert post.file_name == "post"
        assert post.input_name == "PostInput"
        assert post.input_file_name == "post_input"

    def test_is_junction_table(self, blog_snapshot: SchemaSnapshot) -> None:
        assert is_junction_table(blog_snapshot.get_table("post_tags"), blog_snapshot)
        assert not is_junction_table(blog_snapshot.get_table("posts"), blog_snapshot)

    def test_junction_with_missing_target_stays_entity(
        self, blog_snapshot: SchemaSnapshot
    ) -> None:
        options = GenerationOptions(include_tables=("post_tags", "posts", "users"))
        model = ModelBuilder(options).build(prepare_snapshot(blog_snapshot, options))
        assert model.junction_tables == ()
        post_tag = model.get_entity("PostTag")
        assert post_tag is not None
        assert post_tag.primary_key == ("post_id", "tag_id")

    def test_column_facts(self, blog_model: ResolvedModel) -> None:
        user = blog_model.get_entity("User")
        user_id = user.get_column("id")
        assert user_id.primary_key and user_id.generated
        assert user.get_column("email").unique is True
        assert user.get_column("display_name").nullable is True
        post = blog_model.get_entity("Post")
        assert post.get_column("author_id").foreign_key == "users.id"
        assert post.get_column("rating").resolved.python_type == "Decimal"

    def test_deterministic(self, blog_snapshot: SchemaSnapshot) -> None:
        options = GenerationOptions()
        assert build_model(blog_snapshot, options) == build_model(blog_snapshot, options)

    def test_property_names_distinct(self, blog_model: ResolvedModel) -> None:
        for entity in blog_model.entities:
            names = entity.property_names
            assert len(names) == len(set(names)), entity.name


# ===========================================================================
# Relations
# ===========================================================================


class TestRelations:
    """Relation kinds, names and pairing."""

    def test_many_to_one_and_inverse(self, blog_model: ResolvedModel) -> None:
        author = _relations(blog_model.get_entity("Post"))["author"]
        assert author.kind == RelationshipType.MANY_TO_ONE
        assert author.owning_side is True
        assert author.target == "User"
        assert author.fk_properties == ("author_id",)
        assert author.nullable is False
        assert author.inverse_name == "posts"

        posts = _relations(blog_model.get_entity("User"))["posts"]
        assert posts.kind == RelationshipType.ONE_TO_MANY
        assert posts.owning_side is False
        assert posts.inverse_name == "author"
        assert posts.fk_entity == "Post"

    def test_one_to_one_from_unique_fk(self, blog_model: ResolvedModel) -> None:
        user = _relations(blog_model.get_entity("Profile"))["user"]
        assert user.kind == RelationshipType.ONE_TO_ONE
        assert user.owning_side is True
        profile = _relations(blog_model.get_entity("User"))["profile"]
        assert profile.kind == RelationshipType.ONE_TO_ONE
        assert profile.owning_side is False

    def test_self_reference(self, blog_model: ResolvedModel) -> None:
        relations = _relations(blog_model.get_entity("Category"))
        parent = relations["parent"]
        assert parent.self_referential
        assert parent.kind == RelationshipType.MANY_TO_ONE
        assert parent.remote_properties == ("id",)
        children = relations["categories"]
        assert children.kind == RelationshipType.ONE_TO_MANY
        assert children.inverse_name == "parent"

    def test_many_to_many(self, blog_model: ResolvedModel) -> None:
        tags = _relations(blog_model.get_entity("Post"))["tags"]
        assert tags.kind == RelationshipType.MANY_TO_MANY
        assert tags.owning_side is True
        assert tags.join_table == "post_tags"
        assert tags.join_columns == (("post_id", "id"),)
        assert tags.inverse_join_columns == (("tag_id", "id"),)
        posts = _relations(blog_model.get_entity("Tag"))["posts"]
        assert posts.owning_side is False
        assert posts.inverse_name == "tags"

    def test_every_relation_is_paired(self, blog_model: ResolvedModel) -> None:
        by_key: Dict[str, list] = {}
        for entity in blog_model.entities:
            for rel in entity.relations:
                by_key.setdefault(rel.constraint_key, []).append(rel)
        assert len(by_key) == 4
        for pair in by_key.values():
            assert len(pair) == 2
            assert sorted(r.owning_side for r in pair) == [False, True]

    def test_related_entities_exclude_self(self, blog_model: ResolvedModel) -> None:
        assert blog_model.get_entity("Category").related_entities == []
        assert blog_model.get_entity("User").related_entities == ["Post", "Profile"]

    def test_dependency_order(self, blog_model: ResolvedModel) -> None:
        assert blog_model.dependency_order() == ["Category", "Tag", "User", "Post", "Profile"]

    def test_two_fks_to_same_target(self) -> None:
        users = _table("users", [_col("id", generated=True)])
        messages = _table(
            "messages",
            [_col("id"), _col("sender_id"), _col("recipient_id")],
            foreign_keys=[
                _fk("messages", ("sender_id",), "users", ("id",)),
                _fk("messages", ("recipient_id",), "users", ("id",)),
            ],
        )
        model = build_model(SchemaSnapshot(tables=(messages, users)), GenerationOptions())
        assert set(_relations(model.get_entity("Message"))) == {"sender", "recipient"}
        inverse = _relations(model.get_entity("User"))
        assert set(inverse) == {"messages", "messages2"}
        assert inverse["messages"].inverse_name == "sender"
        assert inverse["messages2"].inverse_name == "recipient"

    def test_composite_foreign_key(self) -> None:
        lines = _table(
            "order_lines",
            [_col("order_id"), _col("line_no")],
            primary_key=("order_id", "line_no"),
        )
        shipments = _table(
            "shipments",
            [_col("id"), _col("order_id"), _col("line_no")],
            foreign_keys=[
                _fk("shipments", ("order_id", "line_no"), "order_lines", ("order_id", "line_no"))
            ],
        )
        model = build_model(SchemaSnapshot(tables=(lines, shipments)), GenerationOptions())
        shipment = model.get_entity("Shipment")
        assert len(shipment.composite_foreign_keys) == 1
        rel = _relations(shipment)["order_line"]
        assert rel.kind == RelationshipType.MANY_TO_ONE
        assert rel.fk_properties == ("order_id", "line_no")
        assert shipment.get_column("order_id").foreign_key is None


# ===========================================================================
# Dangling references
# ===========================================================================


class TestDanglingRelations:
    """FKs whose target table is filtered out of the model."""

    def test_lenient_drops_with_warning(self, blog_snapshot: SchemaSnapshot) -> None:
        options = GenerationOptions(include_tables=("posts",))
        model = ModelBuilder(options).build(prepare_snapshot(blog_snapshot, options))
        post = model.get_entity("Post")
        assert post.relations == ()
        assert post.get_column("author_id").foreign_key is None
        assert any("users" in w for w in model.warnings)

    def test_strict_raises(self, blog_snapshot: SchemaSnapshot) -> None:
        options = GenerationOptions(include_tables=("posts",), strict_relations=True)
        with pytest.raises(ModelConsistencyError):
            ModelBuilder(options).build(prepare_snapshot(blog_snapshot, options))

    def test_cross_schema_target_is_dangling(self) -> None:
        users = TableInfo(
            name="users", schema_name="public", columns=(_col("id"),), primary_key=("id",)
        )
        orders = TableInfo(
            name="orders",
            schema_name="public",
            columns=(_col("id"), _col("auditor_id")),
            primary_key=("id",),
            foreign_keys=(
                ForeignKeyInfo(
                    table="orders",
                    columns=("auditor_id",),
                    referred_schema="audit",
                    referred_table="users",
                    referred_columns=("id",),
                ),
            ),
        )
        snapshot = SchemaSnapshot(tables=(orders, users), schema_name="public")
        model = build_model(snapshot, GenerationOptions())
        order = model.get_entity("Order")
        assert order.relations == ()
        assert order.get_column("auditor_id").foreign_key is None
        assert model.get_entity("User").relations == ()
        assert any("schema 'audit'" in w for w in model.warnings)

        with pytest.raises(ModelConsistencyError, match="audit"):
            build_model(snapshot, GenerationOptions(strict_relations=True))

    def test_cross_schema_link_table_stays_entity(self) -> None:
        tags = TableInfo(name="tags", columns=(_col("id"),), primary_key=("id",))
        posts = TableInfo(name="posts", columns=(_col("id"),), primary_key=("id",))
        post_tags = TableInfo(
            name="post_tags",
            columns=(_col("post_id", nullable=False), _col("tag_id", nullable=False)),
            primary_key=("post_id", "tag_id"),
            foreign_keys=(
                _fk("post_tags", ("post_id",), "posts", ("id",)),
                ForeignKeyInfo(
                    table="post_tags",
                    columns=("tag_id",),
                    referred_schema="archive",
                    referred_table="tags",
                    referred_columns=("id",),
                ),
            ),
        )
        assert not is_junction_table(post_tags, SchemaSnapshot(tables=(post_tags, posts, tags)))

# ===========================================================================
# Types
# ===========================================================================


class TestTypeResolution:
    """Unsupported types are reported together; overrides fix them."""

    @staticmethod
    def _exotic_snapshot() -> SchemaSnapshot:
        return SchemaSnapshot(
            tables=(
                _table("jobs", [_col("id"), _col("runtime", "interval")]),
                _table("grids", [_col("id"), _col("cells", "int[]"), _col("span", "interval")]),
            )
        )

    def test_all_failures_batched(self) -> None:
        with pytest.raises(TypeResolutionError) as exc_info:
            build_model(self._exotic_snapshot(), GenerationOptions())
        errors = exc_info.value.errors
        assert [(e.table, e.column) for e in errors] == [
            ("jobs", "runtime"),
            ("grids", "cells"),
            ("grids", "span"),
        ]
        assert "2 table(s)" in str(exc_info.value)

    def test_overrides_resolve(self) -> None:
        options = GenerationOptions(
            type_overrides={"interval": ScalarType.NUMBER, "INT[]": ScalarType.JSON}
        )
        model = build_model(self._exotic_snapshot(), options)
        grid = model.get_entity("Grid")
        assert grid.get_column("cells").scalar == ScalarType.JSON
        assert grid.get_column("span").resolved.python_type == "float"

    def test_enum_column(self) -> None:
        posts = _table(
            "posts",
            [_col("id"), _col("status", "enum", nullable=False, enum_values=("draft", "live"))],
        )
        model = build_model(SchemaSnapshot(tables=(posts,)), GenerationOptions())
        status = model.get_entity("Post").get_column("status")
        assert status.scalar == ScalarType.ENUM
        assert status.resolved.enum_values == ("draft", "live")


# ===========================================================================
# Naming edge cases
# ===========================================================================


class TestNamingEdgeCases:
    """Collisions, reserved names and key-less tables."""

    def test_entity_name_collision(self) -> None:
        snapshot = SchemaSnapshot(
            tables=(_table("user", [_col("id")]), _table("users", [_col("id")]))
        )
        model = build_model(snapshot, GenerationOptions())
        assert [e.name for e in model.entities] == ["User", "User2"]
        assert any("User2" in w for w in model.warnings)

    def test_module_name_collision(self) -> None:
        snapshot = SchemaSnapshot(
            tables=(_table("UserRole", [_col("id")]), _table("user_role", [_col("id")]))
        )
        options = GenerationOptions(entity_case=CaseStyle.PRESERVE, pluralize=False)
        model = build_model(snapshot, options)
        assert len(model.entities) == 2
        by_table = {e.table_name: e for e in model.entities}
        assert by_table["UserRole"].name == "UserRole"
        assert by_table["UserRole"].file_name == "user_role"
        assert by_table["user_role"].name != "user_role"
        modules = {e.file_name for e in model.entities} | {e.input_file_name for e in model.entities}
        assert len(modules) == 4
        assert any("module is already taken" in w for w in model.warnings)

    def test_relation_collides_with_column(self) -> None:
        users = _table("users", [_col("id")])
        posts = _table(
            "posts",
            [_col("id"), _col("author", "VARCHAR(40)"), _col("author_id")],
            foreign_keys=[_fk("posts", ("author_id",), "users", ("id",))],
        )
        model = build_model(SchemaSnapshot(tables=(posts, users)), GenerationOptions())
        post = model.get_entity("Post")
        assert post.get_column("author").property_name == "author"
        assert "author2" in _relations(post)

    def test_reserved_attribute_renamed(self) -> None:
        docs = _table("documents", [_col("id"), _col("metadata", "TEXT")])
        model = build_model(SchemaSnapshot(tables=(docs,)), GenerationOptions())
        assert model.get_entity("Document").get_column("metadata").property_name == "metadata_"

    def test_table_without_primary_key(self) -> None:
        log = _table("audit_log", [_col("at", "DATETIME"), _col("message", "TEXT")], primary_key=())
        model = build_model(SchemaSnapshot(tables=(log,)), GenerationOptions())
        entity = model.get_entity("AuditLog")
        assert entity.primary_key == ("at", "message")
        assert all(c.primary_key for c in entity.columns)
        assert not any(c.resolved.nullable for c in entity.columns)
        assert any("no primary key" in w for w in model.warnings)
