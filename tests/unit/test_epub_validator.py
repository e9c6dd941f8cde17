"""Unit tests for epubcheck report handling."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from bookpress.config import PublishConfig
from bookpress.epub import EpubValidator, parse_report, report_path_for
from bookpress.errors import PipelineStageError
from bookpress.models.datatypes import Stage
from bookpress.stages.commands import StageFactory
from tests.project_fixtures import RecordingRunner


def _report_writer(payload: dict[str, object]):
    """Return a stage action that writes a JSON report to the `--json` path."""

    def _write(stage: Stage) -> None:
        Path(stage.args[2]).write_text(json.dumps(payload), encoding="utf-8")

    return _write


def _epub(tmp_path: Path) -> Path:
    epub_path = tmp_path / "novel.epub"
    epub_path.write_bytes(b"PK")
    return epub_path


def test_report_path_sits_next_to_epub(tmp_path: Path) -> None:
    """Reports should be named `<epub-name>--epubcheck.json`."""

    assert report_path_for(tmp_path / "novel.epub") == tmp_path / "novel.epub--epubcheck.json"


def test_validate_parses_counts_and_opens_report_with_findings(
    tmp_path: Path,
    publish_config: PublishConfig,
    recording_runner: RecordingRunner,
) -> None:
    """Counts and messages should be parsed and the report opened for inspection."""

    recording_runner.actions["validate-epub"] = _report_writer(
        {
            "checker": {"nFatal": 0, "nError": 2, "nWarning": 1},
            "messages": [{"ID": "RSC-005", "severity": "ERROR"}],
        }
    )
    recording_runner.exit_codes["validate-epub"] = 1
    opened: list[str] = []
    validator = EpubValidator(
        recording_runner, StageFactory(publish_config), opener=opened.append
    )
    epub_path = _epub(tmp_path)

    report = validator.validate(epub_path)

    assert report.error_count == 2
    assert report.warning_count == 1
    assert report.messages == ({"ID": "RSC-005", "severity": "ERROR"},)
    assert report.has_findings is True
    assert opened == [str(report_path_for(epub_path))]


def test_validate_does_not_open_clean_report(
    tmp_path: Path,
    publish_config: PublishConfig,
    recording_runner: RecordingRunner,
) -> None:
    """Clean reports should not be opened."""

    recording_runner.actions["validate-epub"] = _report_writer(
        {"checker": {"nFatal": 0, "nError": 0, "nWarning": 0}, "messages": []}
    )
    opened: list[str] = []
    validator = EpubValidator(
        recording_runner, StageFactory(publish_config), opener=opened.append
    )

    report = validator.validate(_epub(tmp_path))

    assert report.has_findings is False
    assert opened == []


def test_validate_respects_disabled_opening(
    tmp_path: Path,
    publish_config: PublishConfig,
    recording_runner: RecordingRunner,
) -> None:
    """Findings should not open the report when opening is disabled."""

    recording_runner.actions["validate-epub"] = _report_writer(
        {"checker": {"nError": 1}, "messages": [{"ID": "OPF-001"}]}
    )
    opened: list[str] = []
    validator = EpubValidator(
        recording_runner,
        StageFactory(publish_config),
        open_findings=False,
        opener=opened.append,
    )

    validator.validate(_epub(tmp_path))

    assert opened == []


def test_validate_fails_when_report_was_not_written(
    tmp_path: Path,
    publish_config: PublishConfig,
    recording_runner: RecordingRunner,
) -> None:
    """A validator run without a report should be a stage error."""

    validator = EpubValidator(recording_runner, StageFactory(publish_config))

    with pytest.raises(PipelineStageError) as exc_info:
        validator.validate(_epub(tmp_path))

    assert exc_info.value.stage == "validate-epub"


def test_validate_fails_for_missing_epub(
    tmp_path: Path,
    publish_config: PublishConfig,
    recording_runner: RecordingRunner,
) -> None:
    """Validating a missing epub should fail before running the tool."""

    validator = EpubValidator(recording_runner, StageFactory(publish_config))

    with pytest.raises(PipelineStageError, match="does not exist"):
        validator.validate(tmp_path / "missing.epub")

    assert recording_runner.stages == []


def test_parse_report_tolerates_missing_checker_section(tmp_path: Path) -> None:
    """Reports without counts should parse as zero counts."""

    report_path = tmp_path / "report.json"
    report_path.write_text(json.dumps({"messages": []}), encoding="utf-8")

    report = parse_report(tmp_path / "novel.epub", report_path)

    assert (report.fatal_count, report.error_count, report.warning_count) == (0, 0, 0)
