"""Command-line interface for bookpress.

Responsibilities:
- Expose user-facing commands for building outputs and inspecting works.
- Convert CLI arguments into `PublishConfig` and `BuildRequest` values.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated

import typer

from .cli_rendering import (
    echo_manifest,
    echo_run_summary,
    echo_validation_report,
    exit_with_command_error,
    exit_with_failed_run,
)
from .config import ConfigLoader, PublishConfig, RuntimeConfigSources
from .epub.validator import EpubValidator
from .errors import PipelineStageError
from .metadata.store import MetadataStore, ProjectSettings
from .models.datatypes import OUTPUT_FORMATS, BuildRequest
from .parsing import normalize_optional_string, split_option_list
from .pipeline import PublishPipeline
from .stages.commands import StageFactory
from .stages.runner import StageRunner
from .telemetry.logger import RunLogger

app = typer.Typer(
    name="bookpress",
    no_args_is_help=True,
    help="bookpress CLI.",
)

ProjectOption = Annotated[
    Path,
    typer.Option(
        "--project",
        envvar="BOOKPRESS_PROJECT_ROOT",
        help="Project root holding `_config.yml` and `_data`.",
    ),
]
ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to a bookpress YAML config file."),
]
BookOption = Annotated[
    str, typer.Option("--book", help="Work identifier under `_data/works`.")
]
LanguageOption = Annotated[
    str | None, typer.Option("--language", help="Translation language code.")
]
VariantOption = Annotated[
    str | None,
    typer.Option(
        "--variant",
        help="Variant name. Defaults to `active-variant` in `_data/settings.yml`.",
    ),
]


class BuildProgressIndicator:
    """Render deterministic per-stage progress lines for long-running commands."""

    _SPINNER_FRAMES = "|/-\\"

    def __init__(self, command_name: str) -> None:
        """Initialize progress indicator metadata for a command invocation."""

        self._command_name = command_name

    def on_stage_start(self, stage_name: str, stage_index: int, stage_total: int) -> None:
        """Print one progress line for a stage start transition."""

        spinner = self._SPINNER_FRAMES[(stage_index - 1) % len(self._SPINNER_FRAMES)]
        typer.echo(
            f"[progress] command={self._command_name} "
            f"{spinner} {stage_index}/{stage_total} stage={stage_name}"
        )


def _load_config(
    project: Path,
    config_file: Path | None,
    cli_values: dict[str, str] | None = None,
) -> PublishConfig:
    """Load project config with CLI and environment overrides.

    Failures are mapped to `config` stage errors.
    """

    try:
        config = ConfigLoader.for_project(project.resolve(), config_file)
        return config.with_runtime_sources(
            RuntimeConfigSources(cli=cli_values or {}, env=os.environ)
        )
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_file}`.",
            hint="Provide an existing path via `--config <path.yml>`.",
        ) from exc
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid configuration: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc


def _resolve_variant(config: PublishConfig, variant: str | None) -> str | None:
    """Return the explicit variant, else the project's active variant."""

    explicit = normalize_optional_string(variant)
    if explicit is not None:
        return explicit
    return ProjectSettings.load(config.data_dir).active_variant


def _validate_format(output_format: str) -> str:
    """Reject unknown output formats with an actionable error."""

    normalized = output_format.strip().lower()
    if normalized not in OUTPUT_FORMATS:
        raise PipelineStageError(
            stage="request",
            detail=f"Unsupported format `{output_format}`.",
            hint=f"Use one of: {', '.join(OUTPUT_FORMATS)}.",
        )
    return normalized


def _run_pipeline(command_name: str, config: PublishConfig, request: BuildRequest) -> None:
    """Run a request, then print its summary or exit with its failure."""

    try:
        run_logger = RunLogger()
        progress = BuildProgressIndicator(command_name=command_name)
        pipeline = PublishPipeline(
            config,
            run_logger=run_logger,
            stage_progress_callback=progress.on_stage_start,
        )
        run = pipeline.run(request)
    except Exception as exc:
        exit_with_command_error(command_name, exc)

    if not run.succeeded:
        exit_with_failed_run(command_name, run)
    echo_run_summary(run)


@app.command("output")
def output_command(
    output_format: Annotated[
        str,
        typer.Option(
            "--format",
            help="Output format: `web`, `print-pdf`, `screen-pdf`, `epub`, `app`, or `word`.",
        ),
    ] = "print-pdf",
    book: BookOption = "book",
    language: LanguageOption = None,
    variant: VariantOption = None,
    baseurl: Annotated[
        str, typer.Option("--baseurl", help="Base URL passed to the site generator.")
    ] = "",
    configs: Annotated[
        str | None,
        typer.Option("--configs", help="Comma-separated extra config files in `_configs/`."),
    ] = None,
    switches: Annotated[
        str | None,
        typer.Option(
            "--switches",
            help="Comma-separated site generator switches, without leading dashes.",
        ),
    ] = None,
    incremental: Annotated[
        bool, typer.Option("--incremental", help="Request an incremental site build.")
    ] = False,
    mathjax: Annotated[
        bool, typer.Option("--mathjax", help="Render math before PDF or epub output.")
    ] = False,
    app_os: Annotated[
        str, typer.Option("--app-os", help="App platform: `android` or `ios`.")
    ] = "android",
    app_build: Annotated[
        bool, typer.Option("--app-build", help="Package the app after assembling it.")
    ] = False,
    app_release: Annotated[
        bool, typer.Option("--app-release", help="Build a release app package.")
    ] = False,
    app_emulate: Annotated[
        bool, typer.Option("--app-emulate", help="Launch the emulator after building.")
    ] = False,
    open_result: Annotated[
        bool,
        typer.Option("--open/--no-open", help="Open the finished output when done."),
    ] = True,
    pdf_timeout: Annotated[
        float | None,
        typer.Option("--pdf-timeout", help="Seconds allowed for PDF rendering."),
    ] = None,
    project: ProjectOption = Path("."),
    config_file: ConfigOption = None,
) -> None:
    """Build one output format for a book."""

    try:
        cli_values = {}
        if pdf_timeout is not None:
            cli_values["pdf_timeout_seconds"] = str(pdf_timeout)
        config = _load_config(project, config_file, cli_values)
        request = BuildRequest(
            work=book,
            output_format=_validate_format(output_format),
            language=normalize_optional_string(language),
            variant=_resolve_variant(config, variant),
            mathjax=mathjax,
            baseurl=baseurl,
            configs=split_option_list(configs),
            switches=split_option_list(switches),
            incremental=incremental,
            app_os=app_os,
            app_build=app_build,
            app_release=app_release,
            app_emulate=app_emulate,
            open_result=open_result,
        )
    except Exception as exc:
        exit_with_command_error("output", exc)

    _run_pipeline("output", config, request)


@app.command("export")
def export_command(
    book: BookOption = "book",
    language: LanguageOption = None,
    variant: VariantOption = None,
    configs: Annotated[
        str | None,
        typer.Option("--configs", help="Comma-separated extra config files in `_configs/`."),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", help="Maximum concurrent document conversions."),
    ] = None,
    project: ProjectOption = Path("."),
    config_file: ConfigOption = None,
) -> None:
    """Export a book's content files as word-processor documents."""

    try:
        cli_values = {}
        if workers is not None:
            cli_values["word_workers"] = str(workers)
        config = _load_config(project, config_file, cli_values)
        request = BuildRequest(
            work=book,
            output_format="word",
            language=normalize_optional_string(language),
            variant=_resolve_variant(config, variant),
            configs=split_option_list(configs),
            command="export",
        )
    except Exception as exc:
        exit_with_command_error("export", exc)

    _run_pipeline("export", config, request)



@app.command("images")
def images_command(
    book: BookOption = "book",
    language: LanguageOption = None,
    project: ProjectOption = Path("."),
    config_file: ConfigOption = None,
) -> None:
    """Process a book's source images with the project task runner."""

    try:
        config = _load_config(project, config_file)
        request = BuildRequest(
            work=book,
            output_format="web",
            language=normalize_optional_string(language),
            command="images",
        )
    except Exception as exc:
        exit_with_command_error("images", exc)

    _run_pipeline("images", config, request)


@app.command("refresh-indexes")
def refresh_indexes_command(
    output_format: Annotated[
        str,
        typer.Option("--format", help="Output format whose indexes to rebuild."),
    ] = "print-pdf",
    book: BookOption = "book",
    language: LanguageOption = None,
    variant: VariantOption = None,
    mathjax: Annotated[
        bool, typer.Option("--mathjax", help="Render math before rebuilding indexes.")
    ] = False,
    project: ProjectOption = Path("."),
    config_file: ConfigOption = None,
) -> None:
    """Rebuild the site, then the book index and search index for one format."""

    try:
        config = _load_config(project, config_file)
        request = BuildRequest(
            work=book,
            output_format=_validate_format(output_format),
            language=normalize_optional_string(language),
            variant=_resolve_variant(config, variant),
            mathjax=mathjax,
            open_result=False,
            command="refresh-indexes",
        )
    except Exception as exc:
        exit_with_command_error("refresh-indexes", exc)

    _run_pipeline("refresh-indexes", config, request)


@app.command("files")
def files_command(
    output_format: Annotated[
        str, typer.Option("--format", help="Output format whose file list to show.")
    ] = "print-pdf",
    book: BookOption = "book",
    language: LanguageOption = None,
    variant: VariantOption = None,
    project: ProjectOption = Path("."),
    config_file: ConfigOption = None,
) -> None:
    """Print the resolved file list for a book, format, language, and variant."""

    try:
        config = _load_config(project, config_file)
        request = BuildRequest(
            work=book,
            output_format=_validate_format(output_format),
            language=normalize_optional_string(language),
            variant=_resolve_variant(config, variant),
        )
        manifest = PublishPipeline(config).resolve_manifest(request)
    except Exception as exc:
        exit_with_command_error("files", exc)

    echo_manifest(manifest)


@app.command("validate")
def validate_command(
    epub_path: Annotated[Path, typer.Argument(help="Path to the epub to validate.")],
    open_report: Annotated[
        bool,
        typer.Option("--open/--no-open", help="Open the JSON report when it has findings."),
    ] = False,
    project: ProjectOption = Path("."),
    config_file: ConfigOption = None,
) -> None:
    """Run epubcheck on an existing epub and summarize its findings."""

    try:
        config = _load_config(project, config_file)
        run_logger = RunLogger()
        validator = EpubValidator(
            StageRunner(run_logger=run_logger, project_root=config.project_root),
            StageFactory(config),
            run_logger=run_logger,
            open_findings=open_report and config.open_results,
        )
        report = validator.validate(epub_path.resolve())
    except Exception as exc:
        exit_with_command_error("validate", exc)

    echo_validation_report(report)


@app.command("works")
def works_command(
    project: ProjectOption = Path("."),
    config_file: ConfigOption = None,
) -> None:
    """List works and their translations."""

    try:
        config = _load_config(project, config_file)
        store = MetadataStore(config.works_dir)
        rows = [(work, store.languages(work)) for work in store.works()]
    except Exception as exc:
        exit_with_command_error("works", exc)

    if not rows:
        typer.echo("No works found.")
        return
    for work, languages in rows:
        if languages:
            typer.echo(f"{work} ({', '.join(languages)})")
        else:
            typer.echo(work)


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
