"""Core datatypes shared across bookpress modules.

Responsibilities:
- Represent immutable records exchanged between resolver, stages, and assembler.
- Provide explicit typing for deterministic, independently testable runs.

Key types:
- `ContentUnit`, `ProductSpec`, `EditionDocument`, `ResolvedManifest`,
  `BuildRequest`, `Stage`, `StageResult`, `ItemOutcome`, `ArchiveEntry`,
  `ValidationReport`, and `PipelineRun`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping


OUTPUT_FORMATS = ("web", "print-pdf", "screen-pdf", "epub", "app", "word")
PDF_FORMATS = frozenset({"print-pdf", "screen-pdf"})


@dataclass(frozen=True, slots=True)
class ContentUnit:
    """One entry of a product's file list.

    Attributes:
        name: File stem inside the rendered site, e.g. `0-1-titlepage`.
        title: Optional display title from a single-key mapping entry.
    """

    name: str
    title: str | None = None


@dataclass(frozen=True, slots=True)
class ProductSpec:
    """Ordered content units plus free-form settings for one output format.

    Attributes:
        files: Content units in spine order. Never re-sorted.
        settings: Every product key other than `files`.
        has_files: Whether the source document declared a non-empty file list.
    """

    files: tuple[ContentUnit, ...] = field(default_factory=tuple)
    settings: Mapping[str, Any] = field(default_factory=dict)
    has_files: bool = False


@dataclass(frozen=True, slots=True)
class EditionDocument:
    """One parsed metadata document (default, translation, or variant).

    Attributes:
        path: Source YAML path.
        products: Product specs keyed by output format name.
    """

    path: Path
    products: Mapping[str, ProductSpec] = field(default_factory=dict)

    def product(self, output_format: str) -> ProductSpec | None:
        """Return the product spec for a format, or `None` when undefined."""

        return self.products.get(output_format)


@dataclass(frozen=True, slots=True)
class ResolvedManifest:
    """Cascade result for one build request.

    Attributes:
        work: Work identifier.
        output_format: Requested output format.
        language: Optional translation language code.
        variant: Optional active variant name.
        files: Resolved content units in spine order.
        settings: Shallow-merged product settings.
        format_found: Whether the default edition defines this format.
        sources: Documents that contributed, least specific first.
    """

    work: str
    output_format: str
    language: str | None
    variant: str | None
    files: tuple[ContentUnit, ...] = field(default_factory=tuple)
    settings: Mapping[str, Any] = field(default_factory=dict)
    format_found: bool = True
    sources: tuple[Path, ...] = field(default_factory=tuple)

    @property
    def names(self) -> list[str]:
        """Return content-unit names in spine order."""

        return [unit.name for unit in self.files]


@dataclass(frozen=True, slots=True)
class BuildRequest:
    """Immutable input to one pipeline run.

    Attributes:
        work: Work identifier (slug under `_data/works`).
        output_format: One of `OUTPUT_FORMATS`.
        language: Optional translation language code.
        variant: Active variant name, or `None` for the default selection.
        mathjax: Whether math rendering was requested explicitly.
        baseurl: Base URL passed to the site generator.
        configs: Extra site-generator config files under `_configs/`.
        switches: Extra site-generator switches, without leading dashes.
        incremental: Whether to request an incremental site build.
        app_os: Target platform for app packaging.
        app_build: Whether to package the app with the mobile tool.
        app_release: Whether to build a release package.
        app_emulate: Whether to launch the emulator after building.
        open_result: Whether to open the produced artifact when done.
        command: `output` for format builds, `export` for word export,
            `images` for image processing, `refresh-indexes` for index rebuilds.
    """

    work: str
    output_format: str
    language: str | None = None
    variant: str | None = None
    mathjax: bool = False
    baseurl: str = ""
    configs: tuple[str, ...] = field(default_factory=tuple)
    switches: tuple[str, ...] = field(default_factory=tuple)
    incremental: bool = False
    app_os: str = "android"
    app_build: bool = False
    app_release: bool = False
    app_emulate: bool = False
    open_result: bool = True
    command: str = "output"


@dataclass(frozen=True, slots=True)
class Stage:
    """A named unit of external work.

    Attributes:
        name: Stage name used in logs and failure reports.
        command: Executable name or path.
        args: Arguments passed to the executable.
        cwd: Working directory for the process.
        timeout_seconds: Optional upper bound on execution time.
    """

    name: str
    command: str
    args: tuple[str, ...] = field(default_factory=tuple)
    cwd: Path | None = None
    timeout_seconds: float | None = None


@dataclass(frozen=True, slots=True)
class StageResult:
    """Exit status of one external stage."""

    stage: str
    exit_code: int
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        """Return whether the stage exited cleanly."""

        return self.exit_code == 0


@dataclass(frozen=True, slots=True)
class ItemOutcome:
    """Outcome of one item in a failure-tolerant batch (copy or conversion)."""

    source: Path
    destination: Path | None
    ok: bool
    error: str | None = None


class Compression(str, Enum):
    """Archive entry compression modes."""

    STORE = "store"
    DEFLATE = "deflate"


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    """One member of an epub container.

    Attributes:
        path: Forward-slash relative path inside the archive.
        content: Raw bytes, or `None` when `source` should be read lazily.
        compression: Member compression mode.
        source: Optional file on disk holding the content.
    """

    path: str
    compression: Compression
    content: bytes | None = None
    source: Path | None = None

    def read(self) -> bytes:
        """Return the entry content, reading from `source` when needed."""

        if self.content is not None:
            return self.content
        if self.source is None:
            return b""
        return self.source.read_bytes()


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Findings from the epub validator."""

    epub_path: Path
    report_path: Path
    fatal_count: int = 0
    error_count: int = 0
    warning_count: int = 0
    messages: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @property
    def has_findings(self) -> bool:
        """Return whether the validator reported any message."""

        return bool(self.messages) or (
            self.fatal_count + self.error_count + self.warning_count
        ) > 0


class RunStatus(str, Enum):
    """Terminal and in-flight pipeline states."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class PipelineRun:
    """Accumulated state for one build request.

    Attributes:
        request: The originating request.
        manifest: Resolved manifest, once resolution succeeded.
        planned_stages: Stage names planned for this run, in order.
        stages: Stage names in the order they were issued.
        results: Exit results for external stages.
        outcomes: Per-item outcomes from tolerant batches.
        artifacts: Produced artifact paths keyed by kind.
        status: Current run status.
        failed_stage: Stage that ended the run, when failed.
        failure: Human-readable failure cause, when failed.
        failure_hint: Optional remediation hint for the failure.
    """

    request: BuildRequest
    manifest: ResolvedManifest | None = None
    planned_stages: tuple[str, ...] = field(default_factory=tuple)
    stages: list[str] = field(default_factory=list)
    results: list[StageResult] = field(default_factory=list)
    outcomes: list[ItemOutcome] = field(default_factory=list)
    artifacts: dict[str, Path] = field(default_factory=dict)
    status: RunStatus = RunStatus.RUNNING
    failed_stage: str | None = None
    failure: str | None = None
    failure_hint: str | None = None

    @property
    def succeeded(self) -> bool:
        """Return whether the run reached `SUCCEEDED`."""

        return self.status is RunStatus.SUCCEEDED

    def mark_failed(self, stage: str, cause: str, hint: str | None = None) -> None:
        """Record the terminal failure state."""

        self.status = RunStatus.FAILED
        self.failed_stage = stage
        self.failure = cause
        self.failure_hint = hint

    def mark_succeeded(self) -> None:
        """Record the terminal success state."""

        self.status = RunStatus.SUCCEEDED
