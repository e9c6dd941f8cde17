"""Pipeline orchestration for bookpress.

Responsibilities:
- Define the fixed stage order for every output format and maintenance command.
- Run stages strictly one at a time, aborting on the first fatal failure.
- Record issued stages, exit results, per-item outcomes, and artifacts in a
  `PipelineRun`.

Key types:
- `PublishPipeline`: orchestration facade.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
import shutil
import threading
from typing import Any

import typer

from ..config import PublishConfig
from ..epub.assembler import EpubAssembler
from ..epub.validator import EpubValidator, report_path_for
from ..errors import PipelineStageError, SpawnFailure, StageCancelled
from ..metadata.resolver import MetadataResolver, content_paths
from ..metadata.store import MetadataStore
from ..models.datatypes import (
    OUTPUT_FORMATS,
    PDF_FORMATS,
    BuildRequest,
    PipelineRun,
    ResolvedManifest,
    Stage,
)
from ..parsing import parse_permissive_boolean
from ..stages.commands import (
    REFERENCE_INDEX_SCRIPT,
    SEARCH_INDEX_SCRIPT,
    TASK_CLEAN_HTML,
    TASK_INDEX_COMMENTS,
    TASK_INDEX_LINKS,
    TASK_RENDER_MATH,
    TASK_XHTML_FILES,
    TASK_XHTML_LINKS,
    StageFactory,
    merged_site_config,
    output_filename,
)
from ..stages.runner import StageRunner, StageRunnerProtocol, require_success
from ..stages.versions import check_prince_version
from ..telemetry.logger import RunLogger
from .assets import app_www_dir, assemble_app_shell, copy_epub_assets
from .telemetry import PipelineTelemetryMixin
from .word_export import WordExporter, word_output_dir


WORD_FALLBACK_FORMAT = "print-pdf"

_TASK_STAGES = {
    "render-math": TASK_RENDER_MATH,
    "render-index-comments": TASK_INDEX_COMMENTS,
    "render-index-links": TASK_INDEX_LINKS,
    "rewrite-links-for-xhtml": TASK_XHTML_LINKS,
    "rename-files-to-xhtml": TASK_XHTML_FILES,
    "purge-stale-html": TASK_CLEAN_HTML,
}

_INDEX_STAGES = {
    "build-reference-index": REFERENCE_INDEX_SCRIPT,
    "build-search-index": SEARCH_INDEX_SCRIPT,
}


def refresh_sequence(output_format: str, math_enabled: bool) -> tuple[str, ...]:
    """Return the index-rebuild stages for one output format."""

    stages = ["generate-site"]
    if output_format in PDF_FORMATS or output_format == "epub":
        if math_enabled:
            stages.append("render-math")
        stages.append("render-index-comments")
    stages.append("build-reference-index")
    if output_format in {"web", "app"}:
        stages.append("build-search-index")
    return tuple(stages)


def stage_sequence(request: BuildRequest, math_enabled: bool) -> tuple[str, ...]:
    """Return the ordered stage names for a request."""

    if request.command == "images":
        return ("process-images",)
    output_format = request.output_format
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(f"Unsupported output format `{output_format}`.")
    if request.command == "refresh-indexes":
        return refresh_sequence(output_format, math_enabled)
    if output_format == "web":
        return ("generate-site",)
    if output_format in PDF_FORMATS:
        stages = ["generate-site"]
        if math_enabled:
            stages.append("render-math")
        stages.extend(
            ["render-index-comments", "render-index-links", "render-to-pdf", "open-result"]
        )
        return tuple(stages)
    if output_format == "epub":
        return (
            "generate-site",
            "render-index-comments",
            "render-index-links",
            "rewrite-links-for-xhtml",
            "rename-files-to-xhtml",
            "purge-stale-html",
            "copy-epub-assets",
            "assemble-epub",
            "validate-epub",
        )
    if output_format == "app":
        stages = ["generate-site", "assemble-app-shell"]
        if request.app_build:
            stages.append("package-app")
            if request.app_emulate:
                stages.append("emulate-app")
        return tuple(stages)
    return ("generate-site", "convert-to-word")


def _truthy(value: Any) -> bool:
    return parse_permissive_boolean(value) is True


class PublishPipeline(PipelineTelemetryMixin):
    """Coordinate all stages for a single bookpress run."""

    def __init__(
        self,
        config: PublishConfig,
        runner: StageRunnerProtocol | None = None,
        run_logger: RunLogger | None = None,
        stage_progress_callback: Callable[[str, int, int], None] | None = None,
        opener: Callable[[str], Any] = typer.launch,
    ) -> None:
        """Initialize project configuration, stage runner, and reporting hooks."""

        self._config = config
        self._run_logger = run_logger
        self._stage_progress_callback = stage_progress_callback
        self._runner: StageRunnerProtocol = runner or StageRunner(
            run_logger=run_logger, project_root=config.project_root
        )
        self._opener = opener
        self._factory = StageFactory(config)
        self._resolver = MetadataResolver(MetadataStore(config.works_dir), run_logger)
        self._assembler = EpubAssembler(run_logger)

    def resolve_manifest(self, request: BuildRequest) -> ResolvedManifest:
        """Resolve the content manifest used by a request.

        Word export without its own product falls back to the print-pdf list.
        Image processing reads no product, so a missing one is not reported.

        Raises:
            ManifestNotFound: When the work has no default-edition document.
        """

        manifest = self._resolver.resolve(
            request.work,
            request.output_format,
            request.language,
            request.variant,
            warn_missing=request.output_format != "word" and request.command != "images",
        )
        if request.output_format == "word" and not manifest.format_found:
            fallback = self._resolver.resolve(
                request.work, WORD_FALLBACK_FORMAT, request.language, request.variant
            )
            manifest = replace(fallback, output_format=request.output_format)
        return manifest

    def math_enabled(self, request: BuildRequest, manifest: ResolvedManifest) -> bool:
        """Return whether math rendering applies to this request."""

        if request.output_format == "word" or request.command == "images":
            return False
        if request.mathjax:
            return True
        settings = manifest.settings
        if _truthy(settings.get("mathjax-enabled")) or _truthy(settings.get("mathjax")):
            return True
        site_config = merged_site_config(self._config.project_root, request)
        return site_config.get("mathjax-enabled") is True

    def run(
        self, request: BuildRequest, cancel_token: threading.Event | None = None
    ) -> PipelineRun:
        """Run the request's stage sequence and return the terminal run record.

        Stage failures end the run as FAILED and are not re-raised. Image
        processing works on the project sources and leaves the site folder alone.

        Raises:
            ManifestNotFound: Before any stage runs, when the work is unknown.
        """

        run = PipelineRun(request=request)
        manifest = self.resolve_manifest(request)
        run.manifest = manifest
        math_enabled = self.math_enabled(request, manifest)
        run.planned_stages = stage_sequence(request, math_enabled)

        try:
            if request.command != "images":
                self._clear_site()
            for stage_name in run.planned_stages:
                if cancel_token is not None and cancel_token.is_set():
                    raise StageCancelled(
                        stage=stage_name,
                        detail=f"Run cancelled before stage `{stage_name}`.",
                    )
                run.stages.append(stage_name)
                self._run_stage(
                    stage_name,
                    lambda name=stage_name: self._dispatch(
                        name, run, manifest, math_enabled, cancel_token
                    ),
                    run.planned_stages,
                )
        except PipelineStageError as exc:
            run.mark_failed(exc.stage, exc.detail, exc.hint)
            return run

        run.mark_succeeded()
        return run

    def _clear_site(self) -> None:
        """Empty the site working folder, keeping the folder itself."""

        site_dir = self._config.site_dir
        try:
            site_dir.mkdir(parents=True, exist_ok=True)
            for entry in site_dir.iterdir():
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
        except OSError as exc:
            raise PipelineStageError(
                stage="prepare",
                detail=f"Failed to clear `{site_dir}`: {exc}",
                hint="Close programs using files in the site folder and rerun.",
            ) from exc

    def _dispatch(
        self,
        stage_name: str,
        run: PipelineRun,
        manifest: ResolvedManifest,
        math_enabled: bool,
        cancel_token: threading.Event | None,
    ) -> None:
        """Execute one named stage."""

        request = run.request
        if stage_name == "generate-site":
            serve = request.output_format == "web" and request.command == "output"
            stage = self._factory.generate_site(request, "serve" if serve else "build")
            self._execute(run, stage, cancel_token)
        elif stage_name == "process-images":
            self._execute(run, self._factory.process_images(request), cancel_token)
        elif stage_name in _TASK_STAGES:
            stage = self._factory.task(stage_name, _TASK_STAGES[stage_name], request)
            self._execute(run, stage, cancel_token)
        elif stage_name in _INDEX_STAGES:
            stage = self._factory.build_index(
                stage_name, _INDEX_STAGES[stage_name], request.output_format
            )
            self._execute(run, stage, cancel_token)
        elif stage_name == "render-to-pdf":
            self._render_pdf(run, manifest, cancel_token)
        elif stage_name == "open-result":
            self._open_result(run, "pdf")
        elif stage_name == "copy-epub-assets":
            run.outcomes.extend(
                copy_epub_assets(manifest, self._config.site_dir, math_enabled, self._run_logger)
            )
        elif stage_name == "assemble-epub":
            archive = self._assembler.assemble(self._config.site_dir / "epub")
            run.artifacts["epub"] = self._assembler.relocate(
                archive, self._config.output_dir, request.work
            )
        elif stage_name == "validate-epub":
            self._validate_epub(run, cancel_token)
        elif stage_name == "assemble-app-shell":
            run.outcomes.extend(assemble_app_shell(self._config.site_dir, self._run_logger))
            run.artifacts["app"] = app_www_dir(self._config.site_dir)
        elif stage_name == "package-app":
            self._package_app(run, cancel_token)
        elif stage_name == "emulate-app":
            stage = self._factory.package_app(stage_name, ["emulate", request.app_os])
            self._execute(run, stage, cancel_token)
        elif stage_name == "convert-to-word":
            self._convert_to_word(run, manifest, cancel_token)
        else:
            raise ValueError(f"Unknown stage `{stage_name}`.")

    def _execute(
        self,
        run: PipelineRun,
        stage: Stage,
        cancel_token: threading.Event | None,
        hint: str | None = None,
    ) -> None:
        """Run one external stage, record its result, and fail on nonzero exit."""

        result = self._runner.run(stage, cancel_token)
        run.results.append(result)
        require_success(result, hint)

    def _render_pdf(
        self,
        run: PipelineRun,
        manifest: ResolvedManifest,
        cancel_token: threading.Event | None,
    ) -> None:
        inputs = content_paths(manifest, self._config.site_dir)
        if not inputs:
            raise PipelineStageError(
                stage="render-to-pdf",
                detail=(
                    f"No content files resolved for `{manifest.work}` "
                    f"format `{manifest.output_format}`."
                ),
                hint=f"Add a `products.{manifest.output_format}.files` list to default.yml.",
            )
        check_prince_version(self._config, self._run_logger)
        self._config.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self._config.output_dir / output_filename(run.request, ".pdf")
        self._execute(
            run,
            self._factory.render_pdf(inputs, output_path),
            cancel_token,
            hint="Check the PDF engine output above for missing files or script errors.",
        )
        run.artifacts["pdf"] = output_path

    def _open_result(self, run: PipelineRun, artifact_key: str) -> None:
        artifact = run.artifacts.get(artifact_key)
        if artifact is None or not self._should_open(run.request):
            if self._run_logger is not None:
                self._run_logger.log_info("open-result", "skipped", artifact=artifact_key)
            return
        self._opener(str(artifact))

    def _should_open(self, request: BuildRequest) -> bool:
        return self._config.open_results and request.open_result

    def _validate_epub(self, run: PipelineRun, cancel_token: threading.Event | None) -> None:
        """Validate the relocated epub.

        Findings and an unreadable report only warn. A validator that cannot
        be started fails the run with its install hint.
        """

        epub_path = run.artifacts["epub"]
        validator = EpubValidator(
            self._runner,
            self._factory,
            run_logger=self._run_logger,
            open_findings=self._should_open(run.request),
            opener=self._opener,
        )
        try:
            report = validator.validate(epub_path, cancel_token)
        except (SpawnFailure, StageCancelled):
            raise
        except PipelineStageError as exc:
            if self._run_logger is not None:
                self._run_logger.log_warning(
                    "validate-epub",
                    "report_unavailable",
                    error_type=type(exc).__name__,
                    report=report_path_for(epub_path).name,
                )
            return
        run.artifacts["epub_report"] = report.report_path

    def _package_app(self, run: PipelineRun, cancel_token: threading.Event | None) -> None:
        request = run.request
        build_args = ["build", request.app_os]
        if request.app_release:
            build_args.append("--release")
        for args in (
            ["platform", "add", request.app_os],
            ["platform", "prepare", request.app_os],
            build_args,
        ):
            self._execute(run, self._factory.package_app("package-app", args), cancel_token)

    def _convert_to_word(
        self,
        run: PipelineRun,
        manifest: ResolvedManifest,
        cancel_token: threading.Event | None,
    ) -> None:
        destination = word_output_dir(self._config.output_dir, run.request.work)
        exporter = WordExporter(
            self._runner,
            self._factory,
            run_logger=self._run_logger,
            max_workers=self._config.word_workers,
        )
        outcomes = exporter.export(
            content_paths(manifest, self._config.site_dir), destination, cancel_token
        )
        run.outcomes.extend(outcomes)
        run.artifacts["word"] = destination
        if self._run_logger is not None:
            self._run_logger.log_info(
                "convert-to-word",
                "summary",
                converted=sum(1 for outcome in outcomes if outcome.ok),
                failed=sum(1 for outcome in outcomes if not outcome.ok),
            )
