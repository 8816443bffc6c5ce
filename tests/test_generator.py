"""
tests/test_generator.py
End-to-end tests for dbreverse.generator (ReverseGenerator pipeline).

Tests cover:
- Full generation against a live SQLite schema
- Idempotent regeneration and dry runs
- Fatal errors leave the output directory untouched
- A failing entity does not stop the others and fails the report
- Config file loading and CLI override merging
- The generated package imports, configures and round-trips rows
"""

from __future__ import annotations

import importlib
import json
import logging
import pathlib
import sys
import uuid
from typing import Iterator

import pytest
import sqlalchemy as sa
import yaml
from sqlalchemy.orm import Session, configure_mappers

from dbreverse.errors import IntrospectionError, TypeResolutionError
from dbreverse.generator import (
    GenerationReport,
    ReverseGenerator,
    load_config_file,
    parse_config,
)
from dbreverse.models import (
    CaseStyle,
    ColumnInfo,
    ConnectionDescriptor,
    GenerationOptions,
    SchemaSnapshot,
    TableInfo,
)


# ===========================================================================
# Pipeline
# ===========================================================================


class TestReverseGenerator:
    """The full Introspect → Build → Render → Write pipeline."""

    def test_generate(
        self,
        blog_connection: ConnectionDescriptor,
        options: GenerationOptions,
        output_dir: pathlib.Path,
    ) -> None:
        report: GenerationReport = ReverseGenerator().generate(blog_connection, options)
        assert report.success, report.summary()
        assert report.dialect == "sqlite"
        assert report.tables_read == 6
        assert report.entities == 5
        assert report.junction_tables == 1
        assert report.total_files == 14
        assert report.files_written == 14
        assert report.degraded_files == []
        for rel in ("base.py", "__init__.py", "entities/post.py", "inputs/user_input.py"):
            assert (output_dir / rel).is_file(), rel
        assert [m.step_name for m in report.step_metrics] == [
            "Introspect",
            "Build Model",
            "Render",
            "Write",
        ]

    def test_write_manifest_logged(
        self,
        blog_connection: ConnectionDescriptor,
        options: GenerationOptions,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        caplog.set_level(logging.DEBUG, logger="dbreverse.generator")
        ReverseGenerator().generate(blog_connection, options)
        messages = [r.getMessage() for r in caplog.records]
        manifest = next(m for m in messages if m.startswith("Write manifest"))
        files = json.loads(manifest.split("\n", 1)[1])["files"]
        assert len(files) == 14
        assert files[0]["relative_path"] == "base.py"

    def test_output_is_black_formatted(
        self,
        blog_connection: ConnectionDescriptor,
        options: GenerationOptions,
        output_dir: pathlib.Path,
    ) -> None:
        ReverseGenerator().generate(blog_connection, options)
        user = (output_dir / "entities" / "user.py").read_text(encoding="utf-8")
        assert '__tablename__ = "users"' in user

    def test_regeneration_is_unchanged(
        self, blog_connection: ConnectionDescriptor, options: GenerationOptions
    ) -> None:
        generator = ReverseGenerator()
        generator.generate(blog_connection, options)
        second = generator.generate(blog_connection, options)
        assert second.files_written == 0
        assert second.files_unchanged == 14

    def test_dry_run(
        self,
        blog_connection: ConnectionDescriptor,
        options: GenerationOptions,
        output_dir: pathlib.Path,
    ) -> None:
        report = ReverseGenerator(dry_run=True).generate(blog_connection, options)
        assert report.success
        assert report.dry_run
        assert report.total_files == 14
        assert not output_dir.exists()
        assert "(dry run)" in report.summary()

    def test_table_filter(
        self, blog_connection: ConnectionDescriptor, output_dir: pathlib.Path
    ) -> None:
        options = GenerationOptions(output_dir=str(output_dir), include_tables=("posts",))
        report = ReverseGenerator().generate(blog_connection, options)
        assert report.success
        assert report.entities == 1
        assert len(report.model_warnings) == 1
        assert sorted(p.name for p in (output_dir / "entities").iterdir()) == [
            "__init__.py",
            "post.py",
        ]

    def test_fk_to_missing_table_writes_nothing(
        self, orphan_db: pathlib.Path, options: GenerationOptions, output_dir: pathlib.Path
    ) -> None:
        descriptor = ConnectionDescriptor(url=f"sqlite:///{orphan_db}")
        with pytest.raises(IntrospectionError):
            ReverseGenerator().generate(descriptor, options)
        assert not output_dir.exists()

    def test_unsupported_types_write_nothing(
        self, options: GenerationOptions, output_dir: pathlib.Path
    ) -> None:
        snapshot = SchemaSnapshot(
            tables=(
                TableInfo(
                    name="jobs",
                    columns=(
                        ColumnInfo(name="id", data_type="INTEGER", generated=True),
                        ColumnInfo(name="runtime", data_type="interval"),
                    ),
                    primary_key=("id",),
                ),
            ),
            dialect="postgresql",
        )
        with pytest.raises(TypeResolutionError):
            ReverseGenerator().generate_from_snapshot(snapshot, options)
        assert not output_dir.exists()

    def test_render_does_not_touch_disk(
        self, blog_snapshot: SchemaSnapshot, options: GenerationOptions, output_dir: pathlib.Path
    ) -> None:
        model, files, errors = ReverseGenerator().render(blog_snapshot, options)
        assert model.entity_count == 5
        assert len(files) == 14
        assert errors == {}
        assert not output_dir.exists()

    def test_failed_entity_is_isolated(
        self,
        blog_connection: ConnectionDescriptor,
        options: GenerationOptions,
        output_dir: pathlib.Path,
        tag_render_fails: None,
    ) -> None:
        report = ReverseGenerator().generate(blog_connection, options)
        assert report.success is False
        assert list(report.generation_errors) == ["Tag"]
        assert "RuntimeError" in report.generation_errors["Tag"]
        assert report.write_errors == {}
        assert (output_dir / "entities" / "post.py").is_file()
        assert (output_dir / "inputs" / "post_input.py").is_file()
        assert not (output_dir / "entities" / "tag.py").exists()
        assert not (output_dir / "inputs" / "tag_input.py").exists()
        entities_init = (output_dir / "entities" / "__init__.py").read_text(encoding="utf-8")
        inputs_init = (output_dir / "inputs" / "__init__.py").read_text(encoding="utf-8")
        assert "Post" in entities_init and "Tag" not in entities_init
        assert "PostInput" in inputs_init and "TagInput" not in inputs_init
        assert "FAILED" in report.summary()

    def test_colliding_module_names_all_written(
        self, options: GenerationOptions, output_dir: pathlib.Path
    ) -> None:
        snapshot = SchemaSnapshot(
            tables=tuple(
                TableInfo(
                    name=name,
                    columns=(ColumnInfo(name="id", data_type="INTEGER", generated=True),),
                    primary_key=("id",),
                )
                for name in ("UserRole", "user_role")
            ),
            dialect="sqlite",
        )
        options = options.model_copy(update={"entity_case": CaseStyle.PRESERVE, "pluralize": False})
        report = ReverseGenerator().generate_from_snapshot(snapshot, options)
        assert report.success, report.summary()
        assert report.entities == 2
        entity_modules = sorted(p.name for p in (output_dir / "entities").iterdir())
        assert len(entity_modules) == 3
        assert "user_role.py" in entity_modules


# ===========================================================================
# Configuration
# ===========================================================================


class TestConfig:
    """Config files and override merging."""

    def test_load_yaml(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "dbreverse.yaml"
        path.write_text(
            yaml.safe_dump({"connection": {"url": "sqlite:///app.db"}}), encoding="utf-8"
        )
        assert load_config_file(path) == {"connection": {"url": "sqlite:///app.db"}}

    def test_load_json(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "dbreverse.json"
        path.write_text(json.dumps({"generation": {"pluralize": False}}), encoding="utf-8")
        assert load_config_file(path) == {"generation": {"pluralize": False}}

    def test_empty_file(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config_file(path) == {}

    def test_missing_file(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config_file(tmp_path / "nope.yaml")

    @pytest.mark.parametrize("text", ["- a\n- b\n", "key: [unclosed\n"])
    def test_invalid_file(self, tmp_path: pathlib.Path, text: str) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(ValueError):
            load_config_file(path)

    def test_parse_config_with_overrides(self) -> None:
        raw = {
            "connection": {"url": "sqlite:///app.db"},
            "generation": {"output_dir": "models", "pluralize": False, "entity_case": "preserve"},
        }
        connection, options = parse_config(
            raw,
            connection_overrides={"url": None, "connect_timeout": 3},
            generation_overrides={"output_dir": None, "pluralize": True},
        )
        assert connection.url == "sqlite:///app.db"
        assert connection.connect_timeout == 3
        assert options.output_dir == "models"
        assert options.pluralize is True
        assert options.entity_case == CaseStyle.PRESERVE

    def test_parse_config_type_overrides(self) -> None:
        raw = {
            "connection": {"database": "shop"},
            "generation": {"type_overrides": {"TSVECTOR": "string"}},
        }
        _, options = parse_config(raw)
        assert options.type_overrides == {"tsvector": "string"}

    @pytest.mark.parametrize(
        "raw",
        [
            {"connection": {}},
            {"connection": {"url": "sqlite://"}, "generation": {"concurrency": 0}},
            {"connection": {"url": "sqlite://"}, "generation": {"unknown_flag": True}},
            {"connection": "sqlite://"},
        ],
    )
    def test_parse_config_rejects_invalid(self, raw: dict) -> None:
        with pytest.raises(ValueError):
            parse_config(raw)


# ===========================================================================
# Generated package
# ===========================================================================


@pytest.fixture()
def generated_package(
    blog_connection: ConnectionDescriptor, tmp_path: pathlib.Path
) -> Iterator[str]:
    """Generate the blog model into an importable package; clean up imports after."""
    package = f"blog_models_{uuid.uuid4().hex[:8]}"
    options = GenerationOptions(output_dir=str(tmp_path / "pkgs" / package))
    report = ReverseGenerator().generate(blog_connection, options)
    assert report.success, report.summary()

    search_path = str(tmp_path / "pkgs")
    sys.path.insert(0, search_path)
    try:
        yield package
    finally:
        sys.path.remove(search_path)
        for name in [m for m in sys.modules if m == package or m.startswith(f"{package}.")]:
            del sys.modules[name]


class TestGeneratedPackage:
    """The emitted code is a working SQLAlchemy + Pydantic package."""

    def test_import_configure_and_round_trip(self, generated_package: str) -> None:
        pkg = importlib.import_module(generated_package)
        configure_mappers()

        entities = pkg.entities
        inputs = pkg.inputs
        assert set(entities.Post.__mapper__.relationships.keys()) == {"author", "tags"}
        assert set(entities.User.__mapper__.relationships.keys()) == {"posts", "profile"}

        engine = sa.create_engine("sqlite://")
        pkg.Base.metadata.create_all(engine)
        with Session(engine) as session:
            user = entities.User(email="ada@example.com")
            post = entities.Post(title="Hello", author=user)
            post.tags.append(entities.Tag(label="python"))
            session.add(post)
            session.commit()

        with Session(engine) as session:
            loaded = session.scalars(sa.select(entities.Post)).one()
            assert loaded.author.email == "ada@example.com"
            assert [t.label for t in loaded.tags] == ["python"]
            assert loaded.status == "draft"
            assert [p.title for p in loaded.author.posts] == ["Hello"]

        payload = inputs.UserInput(email="grace@example.com")
        assert payload.is_active is False
        assert payload.display_name is None
        assert "id" not in inputs.UserInput.model_fields
        engine.dispose()
