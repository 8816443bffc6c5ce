# File: dbreverse/exporters.py
"""
dbreverse - Output Writer (File-System Manager)
=================================================

Responsible for:
    1. Running the deterministic ``black`` style pass over generated text.
    2. Carrying hand-written custom regions of existing files forward.
    3. Writing files atomically (temp file in the target directory, fsync,
       ``os.replace``).
    4. Skipping files whose content is byte-identical to what is on disk.
    5. Producing a ``WriteResult`` with checksums for every file.

A failure while writing one file is recorded and the remaining files are
still written; every individual file is atomic, so an interrupted run never
leaves a truncated file behind.

Complexity: O(F) where F = total number of output files.
"""

from __future__ import annotations

import json
import logging
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import black

from dbreverse.errors import FormattingDegraded
from dbreverse.models import GeneratedFile
from dbreverse.templates import CUSTOM_BEGIN, CUSTOM_END
from dbreverse.utils import Timer, count_lines, read_file, sha256_hex, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse.exporters")

_REGION_RE: re.Pattern[str] = re.compile(
    rf"^[ \t]*{re.escape(CUSTOM_BEGIN)}[ \t]*\n(.*?)^[ \t]*{re.escape(CUSTOM_END)}",
    re.MULTILINE | re.DOTALL,
)
_TRAILING_WS_RE: re.Pattern[str] = re.compile(r"[ \t]+$", re.MULTILINE)

STATUS_WRITTEN: str = "written"
STATUS_UNCHANGED: str = "unchanged"
STATUS_DRY_RUN: str = "dry-run"


# ---------------------------------------------------------------------------
# Data classes for write results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileRecord:
    """Immutable record of a single output file."""

    relative_path: str
    absolute_path: str
    size_bytes: int
    line_count: int
    sha256: str
    status: str
    formatted: bool


@dataclass(slots=True)
class WriteResult:
    """Outcome of one ``OutputWriter.write_all()`` call."""

    output_directory: str = ""
    files: List[FileRecord] = field(default_factory=list)
    degraded: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def written(self) -> List[FileRecord]:
        return [f for f in self.files if f.status == STATUS_WRITTEN]

    @property
    def unchanged(self) -> List[FileRecord]:
        return [f for f in self.files if f.status == STATUS_UNCHANGED]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serialisable summary (no timestamps: stable across runs)."""
        return {
            "output_directory": self.output_directory,
            "files": [
                {
                    "relative_path": f.relative_path,
                    "size_bytes": f.size_bytes,
                    "line_count": f.line_count,
                    "sha256": f.sha256,
                    "status": f.status,
                    "formatted": f.formatted,
                }
                for f in self.files
            ],
            "degraded": list(self.degraded),
            "errors": dict(self.errors),
        }

    def to_json(self, indent_size: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent_size, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Text passes
# ---------------------------------------------------------------------------


def normalize_text(text: str) -> str:
    """Strip trailing whitespace and end the text with exactly one newline."""
    return _TRAILING_WS_RE.sub("", text).rstrip("\n") + "\n"


def format_source(text: str, line_length: int = 88) -> str:
    """
    Deterministic style pass.

    Raises ``ValueError`` (``black.InvalidInput``) when the text does not
    parse; callers decide whether that degrades or fails.
    """
    mode: black.Mode = black.Mode(line_length=line_length)
    return black.format_str(normalize_text(text), mode=mode)


def extract_custom_regions(text: str) -> List[str]:
    """Bodies of every custom region, in file order."""
    return [m.group(1) for m in _REGION_RE.finditer(text)]


def merge_custom_regions(new_text: str, old_text: Optional[str]) -> str:
    """
    Copy the i-th custom region body of *old_text* into the i-th region of
    *new_text*.  Regions beyond those present in *new_text* are dropped
    with a warning.
    """
    if not old_text:
        return new_text
    preserved: List[str] = extract_custom_regions(old_text)
    if not any(body.strip() for body in preserved):
        return new_text

    counter: List[int] = [0]

    def _replace(match: re.Match[str]) -> str:
        index: int = counter[0]
        counter[0] += 1
        if index >= len(preserved):
            return match.group(0)
        start, end = match.span(1)
        offset: int = match.start(0)
        whole: str = match.group(0)
        return whole[: start - offset] + preserved[index] + whole[end - offset :]

    merged: str = _REGION_RE.sub(_replace, new_text)
    if len(preserved) > counter[0]:
        logger.warning(
            "%d custom region(s) have no counterpart in the regenerated file.",
            len(preserved) - counter[0],
        )
    return merged


# ---------------------------------------------------------------------------
# OutputWriter class
# ---------------------------------------------------------------------------


class OutputWriter:
    """
    Writes generated files under one output directory.

    Usage::

        writer = OutputWriter(Path("./generated"), line_length=88)
        result = writer.write_all(files)

    Thread-safety: NOT thread-safe.  Use one writer per output directory.
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        line_length: int = 88,
        format_output: bool = True,
        dry_run: bool = False,
    ) -> None:
        self._output_dir: Path = Path(output_dir).resolve()
        self._line_length: int = line_length
        self._format_output: bool = format_output
        self._dry_run: bool = dry_run
        logger.debug(
            "OutputWriter initialised: output_dir=%s, format=%s, dry_run=%s.",
            self._output_dir,
            self._format_output,
            self._dry_run,
        )

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def render(
        self,
        generated: GeneratedFile,
        existing: Optional[str],
    ) -> Tuple[str, bool]:
        """
        Final text of one file and whether the style pass succeeded.

        A formatting failure writes the normalised, unformatted text and
        emits a ``FormattingDegraded`` warning.
        """
        text: str = normalize_text(generated.content)
        formatted: bool = False
        if self._format_output:
            try:
                text = format_source(text, self._line_length)
                formatted = True
            except ValueError as exc:
                message: str = (
                    f"Formatting {generated.path} failed; "
                    f"writing unformatted text: {exc}"
                )
                logger.warning(message)
                warnings.warn(message, FormattingDegraded, stacklevel=2)
        return merge_custom_regions(text, existing), formatted

    def write_file(self, generated: GeneratedFile) -> FileRecord:
        """Format, merge and atomically write a single file."""
        target: Path = self._output_dir / generated.path
        existing: Optional[str] = read_file(target)
        text, formatted = self.render(generated, existing)

        if self._dry_run:
            status: str = STATUS_DRY_RUN
        elif existing == text:
            status = STATUS_UNCHANGED
        else:
            write_file(target, text)
            status = STATUS_WRITTEN

        logger.debug("%s: %s", generated.path, status)
        return FileRecord(
            relative_path=generated.path,
            absolute_path=str(target),
            size_bytes=len(text.encode("utf-8")),
            line_count=count_lines(text),
            sha256=sha256_hex(text),
            status=status,
            formatted=formatted,
        )

    def write_all(self, files: Sequence[GeneratedFile]) -> WriteResult:
        """
        Write *files* in the given order (callers pass dependency order).

        Per-file failures are recorded in ``WriteResult.errors``.  An existing
        target that is not valid UTF-8 is reported and left untouched.
        """
        result: WriteResult = WriteResult(output_directory=str(self._output_dir))

        with Timer("write") as timer:
            for generated in files:
                try:
                    record: FileRecord = self.write_file(generated)
                    result.files.append(record)
                    if self._format_output and not record.formatted:
                        result.degraded.append(generated.path)
                except (OSError, UnicodeDecodeError) as exc:
                    error_msg: str = f"{type(exc).__name__}: {exc}"
                    result.errors[generated.path] = error_msg
                    logger.error("Failed to write %s: %s", generated.path, error_msg)

        result.elapsed_seconds = timer.elapsed
        logger.info(
            "Output: %d written, %d unchanged, %d degraded, %d failed (%.3fs).",
            len(result.written),
            len(result.unchanged),
            len(result.degraded),
            len(result.errors),
            timer.elapsed,
        )
        return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "STATUS_WRITTEN",
    "STATUS_UNCHANGED",
    "STATUS_DRY_RUN",
    "FileRecord",
    "WriteResult",
    "normalize_text",
    "format_source",
    "extract_custom_regions",
    "merge_custom_regions",
    "OutputWriter",
]

logger.debug("dbreverse.exporters loaded.")
