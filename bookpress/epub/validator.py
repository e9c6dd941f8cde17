"""EPUB validation through the external epubcheck tool."""

from __future__ import annotations

from collections.abc import Callable
import json
from pathlib import Path
import threading
from typing import Any

import typer

from ..errors import PipelineStageError
from ..models.datatypes import ValidationReport
from ..stages.commands import StageFactory
from ..stages.runner import StageRunnerProtocol
from ..telemetry.logger import RunLogger


def report_path_for(epub_path: Path) -> Path:
    """Return `<epub-dir>/<epub-name>--epubcheck.json`."""

    return epub_path.with_name(f"{epub_path.name}--epubcheck.json")


def parse_report(epub_path: Path, report_path: Path) -> ValidationReport:
    """Parse an epubcheck JSON report into a `ValidationReport`."""

    try:
        payload = json.loads(report_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise PipelineStageError(
            stage="validate-epub",
            detail=f"Could not read validator report `{report_path}`: {exc}",
            hint="Run epubcheck manually to inspect its output.",
        ) from exc

    if not isinstance(payload, dict):
        raise PipelineStageError(
            stage="validate-epub",
            detail=f"Validator report `{report_path}` must contain a JSON object.",
        )
    checker = payload.get("checker")
    if not isinstance(checker, dict):
        checker = {}
    raw_messages = payload.get("messages")
    messages: tuple[dict[str, Any], ...] = tuple(
        message for message in raw_messages or [] if isinstance(message, dict)
    )
    return ValidationReport(
        epub_path=epub_path,
        report_path=report_path,
        fatal_count=_count(checker, "nFatal"),
        error_count=_count(checker, "nError"),
        warning_count=_count(checker, "nWarning"),
        messages=messages,
    )


def _count(checker: dict[str, Any], key: str) -> int:
    value = checker.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


class EpubValidator:
    """Run epubcheck and surface its counts and JSON report."""

    def __init__(
        self,
        runner: StageRunnerProtocol,
        factory: StageFactory,
        run_logger: RunLogger | None = None,
        open_findings: bool = True,
        opener: Callable[[str], Any] = typer.launch,
    ) -> None:
        """Initialize validator dependencies and report-opening behavior."""

        self._runner = runner
        self._factory = factory
        self._run_logger = run_logger
        self._open_findings = open_findings
        self._opener = opener

    def validate(
        self, epub_path: Path, cancel_token: threading.Event | None = None
    ) -> ValidationReport:
        """Validate one epub. Findings are advisory and never raise.

        Raises:
            PipelineStageError: When the epub is missing or no report was written.
        """

        if not epub_path.is_file():
            raise PipelineStageError(
                stage="validate-epub",
                detail=f"Epub file `{epub_path}` does not exist.",
                hint="Build it first with `bookpress output --format epub`.",
            )

        report_path = report_path_for(epub_path)
        report_path.unlink(missing_ok=True)
        stage = self._factory.validate_epub(epub_path, report_path)
        # epubcheck exits nonzero whenever it has findings; the report is authoritative.
        self._runner.run(stage, cancel_token)
        report = parse_report(epub_path, report_path)

        if self._run_logger is not None:
            self._run_logger.log_info(
                "validate-epub",
                "report",
                errors=report.error_count,
                fatal=report.fatal_count,
                warnings=report.warning_count,
            )
        if report.has_findings and self._open_findings:
            self._opener(str(report_path))
        return report
