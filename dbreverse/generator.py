# File: dbreverse/generator.py
"""
dbreverse - Generation Pipeline (Orchestrator)
================================================

Connects every phase of one generation run:

    Introspect → Validate → Build model → Render → Write

The ``ReverseGenerator`` class provides both a programmatic API and the
backend for the CLI.

Error handling strategy:
    - Connection, catalog, model and type-resolution errors are fatal and
      propagate to the caller unchanged (the CLI maps each class to an
      exit code).  Nothing is written when one of them occurs.
    - Rendering errors are isolated per entity: one bad entity does not
      stop the others.
    - Write errors are isolated per file and recorded in the report.
    - The final report gives a clear pass/fail verdict.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import ValidationError as PydanticValidationError

from dbreverse.builder import ModelBuilder
from dbreverse.exporters import FileRecord, OutputWriter, WriteResult
from dbreverse.introspector import SchemaIntrospector, prepare_snapshot
from dbreverse.models import (
    ConnectionDescriptor,
    GeneratedFile,
    GenerationOptions,
    ResolvedModel,
    SchemaSnapshot,
)
from dbreverse.templates import TemplateGenerator
from dbreverse.utils import Timer

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse.generator")


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class GenerationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(frozen=False, slots=True)
class GenerationReport:
    """
    Report produced by ``ReverseGenerator.generate()``.

    Fatal errors never reach the report; they are raised.  Everything
    recorded here is either a metric or a per-entity / per-file failure.
    """

    success: bool = False
    output_directory: str = ""
    dialect: str = ""
    dry_run: bool = False

    # Metrics
    tables_read: int = 0
    entities: int = 0
    junction_tables: int = 0
    total_files: int = 0
    files_written: int = 0
    files_unchanged: int = 0
    total_bytes: int = 0
    total_lines: int = 0
    total_elapsed_seconds: float = 0.0

    # Sub-reports
    step_metrics: List[GenerationStepMetric] = field(default_factory=list)
    model_warnings: List[str] = field(default_factory=list)
    generation_errors: Dict[str, str] = field(default_factory=dict)
    write_errors: Dict[str, str] = field(default_factory=dict)
    degraded_files: List[str] = field(default_factory=list)
    files: List[FileRecord] = field(default_factory=list)

    def summary(self) -> str:
        """Return a human-readable summary string."""
        lines: List[str] = []
        status: str = "SUCCESS" if self.success else "FAILED"
        if self.dry_run:
            status += " (dry run)"
        lines.append("=" * 60)
        lines.append("  dbreverse — Generation Report")
        lines.append("=" * 60)
        lines.append(f"  Status:           {status}")
        lines.append(f"  Dialect:          {self.dialect}")
        lines.append(f"  Output:           {self.output_directory}")
        lines.append(f"  Tables read:      {self.tables_read}")
        lines.append(f"  Entities:         {self.entities}")
        lines.append(f"  Junction tables:  {self.junction_tables}")
        lines.append(
            f"  Files:            {self.total_files} "
            f"({self.files_written} written, {self.files_unchanged} unchanged)"
        )
        lines.append(f"  Total lines:      {self.total_lines:,}")
        lines.append(f"  Total time:       {self.total_elapsed_seconds:.3f}s")
        lines.append("─" * 60)

        if self.step_metrics:
            lines.append("  Pipeline Steps:")
            for step in self.step_metrics:
                icon: str = "✓" if step.success else "✗"
                lines.append(
                    f"    {icon} {step.step_name:<20s} "
                    f"{step.elapsed_seconds:>7.3f}s  {step.detail}"
                )

        sections: List[Tuple[str, str, List[str]]] = [
            ("Model Warnings", "⚠", self.model_warnings),
            ("Degraded Formatting", "⚠", self.degraded_files),
            (
                "Generation Errors",
                "✗",
                [f"{k}: {v}" for k, v in self.generation_errors.items()],
            ),
            ("Write Errors", "✗", [f"{k}: {v}" for k, v in self.write_errors.items()]),
        ]
        for title, icon, items in sections:
            if items:
                lines.append("─" * 60)
                lines.append(f"  {title} ({len(items)}):")
                for item in items:
                    lines.append(f"    {icon} {item}")

        lines.append("=" * 60)
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Configuration file helpers
# ---------------------------------------------------------------------------


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Load a YAML or JSON configuration file.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file can't be parsed or is not a mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    if not path.is_file():
        raise ValueError(f"Config path is not a file: {path}")

    text: str = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            data: Any = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Invalid config file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a mapping at top level of {path}, got {type(data).__name__}."
        )
    return data


def parse_config(
    raw: Dict[str, Any],
    connection_overrides: Optional[Dict[str, Any]] = None,
    generation_overrides: Optional[Dict[str, Any]] = None,
) -> Tuple[ConnectionDescriptor, GenerationOptions]:
    """
    Build the run's settings from a config mapping plus overrides.

    Expected top-level keys: ``connection`` and ``generation``.  Override
    values that are ``None`` are ignored, so unset CLI flags never mask
    file values.

    Raises:
        ValueError: If a section is malformed or fails validation.
    """
    sections: Dict[str, Dict[str, Any]] = {}
    for key, overrides in (
        ("connection", connection_overrides),
        ("generation", generation_overrides),
    ):
        section: Any = raw.get(key) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Config section '{key}' must be a mapping.")
        merged: Dict[str, Any] = dict(section)
        merged.update({k: v for k, v in (overrides or {}).items() if v is not None})
        sections[key] = merged

    try:
        connection: ConnectionDescriptor = ConnectionDescriptor.model_validate(
            sections["connection"]
        )
    except PydanticValidationError as exc:
        raise ValueError(f"Connection settings are invalid: {exc}") from exc
    try:
        options: GenerationOptions = GenerationOptions.model_validate(
            sections["generation"]
        )
    except PydanticValidationError as exc:
        raise ValueError(f"Generation settings are invalid: {exc}") from exc

    return connection, options


# ---------------------------------------------------------------------------
# ReverseGenerator — pipeline orchestrator
# ---------------------------------------------------------------------------


class ReverseGenerator:
    """
    Pipeline orchestrator for one output directory.

    Usage::

        generator = ReverseGenerator()
        report = generator.generate(connection, options)
        print(report.summary())

    The generator is reusable — create once, call generate() many times.
    Each run builds a fresh model and discards it after writing.
    """

    def __init__(self, *, dry_run: bool = False) -> None:
        self._dry_run: bool = dry_run
        logger.debug("ReverseGenerator initialised: dry_run=%s.", dry_run)

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def generate(
        self,
        connection: ConnectionDescriptor,
        options: GenerationOptions,
    ) -> GenerationReport:
        """
        Full pipeline against a live database.

        Raises:
            DatabaseConnectionError, IntrospectionError,
            ModelConsistencyError, TypeResolutionError
        """
        report: GenerationReport = self._new_report(options)
        start: float = time.perf_counter()

        with Timer("introspect") as timer:
            snapshot: SchemaSnapshot = SchemaIntrospector(connection).introspect(options)
        report.step_metrics.append(
            GenerationStepMetric(
                step_name="Introspect",
                elapsed_seconds=timer.elapsed,
                detail=f"{len(snapshot.tables)} table(s) from {snapshot.dialect}",
            )
        )

        return self._run_pipeline(snapshot, options, report, start)

    def generate_from_snapshot(
        self,
        snapshot: SchemaSnapshot,
        options: GenerationOptions,
    ) -> GenerationReport:
        """Pipeline from an already-read snapshot; it is validated and filtered first."""
        report: GenerationReport = self._new_report(options)
        snapshot = prepare_snapshot(snapshot, options)
        return self._run_pipeline(snapshot, options, report, time.perf_counter())

    def render(
        self,
        snapshot: SchemaSnapshot,
        options: GenerationOptions,
    ) -> Tuple[ResolvedModel, List[GeneratedFile], Dict[str, Exception]]:
        """Build and render without touching the filesystem."""
        model: ResolvedModel = ModelBuilder(options).build(snapshot)
        files, errors = TemplateGenerator(model, options).generate_all(options.concurrency)
        return model, files, errors

    # -----------------------------------------------------------------
    # Internal: pipeline
    # -----------------------------------------------------------------

    def _new_report(self, options: GenerationOptions) -> GenerationReport:
        return GenerationReport(
            output_directory=str(Path(options.output_dir).resolve()),
            dry_run=self._dry_run,
        )

    def _run_pipeline(
        self,
        snapshot: SchemaSnapshot,
        options: GenerationOptions,
        report: GenerationReport,
        start: float,
    ) -> GenerationReport:
        report.dialect = snapshot.dialect
        report.tables_read = len(snapshot.tables)

        # --- Step: model ---
        with Timer("build_model") as timer:
            model: ResolvedModel = ModelBuilder(options).build(snapshot)
        report.entities = model.entity_count
        report.junction_tables = len(model.junction_tables)
        report.model_warnings.extend(model.warnings)
        report.step_metrics.append(
            GenerationStepMetric(
                step_name="Build Model",
                elapsed_seconds=timer.elapsed,
                detail=f"{model.entity_count} entities, {model.relation_count} relations",
            )
        )

        # --- Step: render ---
        with Timer("render") as timer:
            files, errors = TemplateGenerator(model, options).generate_all(
                options.concurrency
            )
        for entity_name, exc in errors.items():
            report.generation_errors[entity_name] = f"{type(exc).__name__}: {exc}"
        report.step_metrics.append(
            GenerationStepMetric(
                step_name="Render",
                success=not errors,
                elapsed_seconds=timer.elapsed,
                detail=f"{len(files)} file(s), {len(errors)} failed entities",
            )
        )

        # --- Step: write ---
        writer: OutputWriter = OutputWriter(
            Path(options.output_dir),
            line_length=options.line_length,
            format_output=options.format_output,
            dry_run=self._dry_run,
        )
        result: WriteResult = writer.write_all(files)
        self._record_write(report, result)

        report.total_elapsed_seconds = time.perf_counter() - start
        report.success = not report.generation_errors and not report.write_errors
        log = logger.info if report.success else logger.error
        log(
            "Generation %s: %d file(s), %d written, %.3fs.",
            "succeeded" if report.success else "failed",
            report.total_files,
            report.files_written,
            report.total_elapsed_seconds,
        )
        return report

    @staticmethod
    def _record_write(report: GenerationReport, result: WriteResult) -> None:
        report.files = list(result.files)
        report.total_files = len(result.files)
        report.files_written = len(result.written)
        report.files_unchanged = len(result.unchanged)
        report.total_bytes = sum(f.size_bytes for f in result.files)
        report.total_lines = sum(f.line_count for f in result.files)
        report.degraded_files = list(result.degraded)
        report.write_errors = dict(result.errors)
        logger.debug("Write manifest:\n%s", result.to_json())
        report.step_metrics.append(
            GenerationStepMetric(
                step_name="Write",
                success=result.success,
                elapsed_seconds=result.elapsed_seconds,
                detail=(
                    f"{len(result.written)} written, {len(result.unchanged)} unchanged, "
                    f"{len(result.errors)} failed"
                ),
            )
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "GenerationStepMetric",
    "GenerationReport",
    "load_config_file",
    "parse_config",
    "ReverseGenerator",
]

logger.debug("dbreverse.generator loaded.")
