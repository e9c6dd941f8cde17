"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
run summaries, resolved file lists, and validator reports.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .errors import PipelineStageError
from .models.datatypes import PipelineRun, ResolvedManifest, ValidationReport


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def exit_with_failed_run(command_name: str, run: PipelineRun) -> NoReturn:
    """Report a FAILED run through the standard command-error path."""

    exit_with_command_error(
        command_name,
        PipelineStageError(
            stage=run.failed_stage or "unknown",
            detail=run.failure or "Run failed.",
            hint=run.failure_hint,
        ),
    )


def echo_run_summary(run: PipelineRun) -> None:
    """Print produced artifacts and per-item failures for a finished run."""

    for key in sorted(run.artifacts):
        typer.echo(f"{key.replace('_', ' ').capitalize()}: {run.artifacts[key]}")
    failed = [outcome for outcome in run.outcomes if not outcome.ok]
    if run.outcomes:
        typer.echo(f"Items: {len(run.outcomes) - len(failed)} ok, {len(failed)} failed")
    for outcome in failed:
        typer.secho(
            f"  failed: {outcome.source.name}: {outcome.error}",
            fg=typer.colors.YELLOW,
        )


def echo_manifest(manifest: ResolvedManifest) -> None:
    """Print resolved content units in spine order."""

    if not manifest.format_found:
        typer.echo(
            f"Format `{manifest.output_format}` is not defined for `{manifest.work}`."
        )
        return
    for index, unit in enumerate(manifest.files, start=1):
        if unit.title:
            typer.echo(f"{index}. {unit.name} ({unit.title})")
        else:
            typer.echo(f"{index}. {unit.name}")


def echo_validation_report(report: ValidationReport) -> None:
    """Print validator counts and report location."""

    typer.echo(f"Fatal: {report.fatal_count}")
    typer.echo(f"Errors: {report.error_count}")
    typer.echo(f"Warnings: {report.warning_count}")
    typer.echo(f"Report: {report.report_path}")
