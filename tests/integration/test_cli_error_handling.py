"""CLI error-handling tests for concise stage-aware diagnostics."""

from pathlib import Path

from pytest import MonkeyPatch
from typer.testing import CliRunner

from bookpress.cli import app
from bookpress.errors import PipelineStageError


def test_output_command_reports_stage_error_with_hint(
    monkeypatch: MonkeyPatch, project_root: Path
) -> None:
    """Output command should print stage-aware diagnostics and fail with exit code 1."""

    def _failing_run(*_: object, **__: object) -> None:
        """Raise a stage-specific error to simulate pipeline failure."""

        raise PipelineStageError(
            stage="render-to-pdf",
            detail="Could not start `prince`: No such file or directory",
            hint="Install PrinceXML (https://www.princexml.com) or run `npm install`.",
        )

    monkeypatch.setattr("bookpress.cli.PublishPipeline.run", _failing_run)
    runner = CliRunner()

    result = runner.invoke(
        app, ["output", "--book", "novel", "--project", str(project_root)]
    )

    assert result.exit_code == 1
    assert "output failed at stage `render-to-pdf`" in result.output
    assert "Hint: Install PrinceXML" in result.output


def test_export_command_reports_non_stage_error(
    monkeypatch: MonkeyPatch, project_root: Path
) -> None:
    """Export command should still report non-stage exceptions with exit code 1."""

    def _failing_run(*_: object, **__: object) -> None:
        """Raise a generic error to verify fallback CLI diagnostics."""

        raise RuntimeError("unexpected converter error")

    monkeypatch.setattr("bookpress.cli.PublishPipeline.run", _failing_run)
    runner = CliRunner()

    result = runner.invoke(app, ["export", "--book", "novel", "--project", str(project_root)])

    assert result.exit_code == 1
    assert "export failed: unexpected converter error" in result.output


def test_output_command_reports_missing_config_file(project_root: Path) -> None:
    """Output should fail with stage-aware diagnostics when `--config` path is missing."""

    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "output",
            "--project",
            str(project_root),
            "--config",
            "missing-bookpress.yml",
        ],
    )

    assert result.exit_code == 1
    assert "output failed at stage `config`" in result.output
    assert "Config file not found: `missing-bookpress.yml`." in result.output


def test_files_command_reports_invalid_config_payload(project_root: Path) -> None:
    """Files should fail fast when YAML config values are invalid."""

    config_path = project_root / "bookpress.yml"
    config_path.write_text("word_workers: none-at-all\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(app, ["files", "--book", "novel", "--project", str(project_root)])

    assert result.exit_code == 1
    assert "files failed at stage `config`" in result.output
    assert "Invalid configuration:" in result.output
    assert "`word_workers` must be a positive number." in result.output


def test_output_command_rejects_unknown_format(project_root: Path) -> None:
    """Unknown formats should be rejected before any stage runs."""

    runner = CliRunner()
    result = runner.invoke(
        app, ["output", "--format", "mobi", "--book", "novel", "--project", str(project_root)]
    )

    assert result.exit_code == 1
    assert "output failed at stage `request`: Unsupported format `mobi`." in result.output
    assert "Hint: Use one of: web, print-pdf, screen-pdf, epub, app, word." in result.output


def test_files_command_reports_unknown_book(project_root: Path) -> None:
    """A book without default metadata should fail at the metadata stage."""

    runner = CliRunner()
    result = runner.invoke(app, ["files", "--book", "ghost", "--project", str(project_root)])

    assert result.exit_code == 1
    assert "files failed at stage `metadata`" in result.output
    assert "No default metadata for work `ghost`" in result.output


def test_validate_command_reports_missing_epub(project_root: Path) -> None:
    """Validating a missing epub should fail without running the checker."""

    runner = CliRunner()
    result = runner.invoke(
        app,
        ["validate", str(project_root / "_output" / "novel.epub"), "--project", str(project_root)],
    )

    assert result.exit_code == 1
    assert "validate failed at stage `validate-epub`" in result.output
    assert "does not exist" in result.output
