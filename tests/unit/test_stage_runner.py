"""Unit tests for external stage execution with real child processes."""

from __future__ import annotations

import io
from pathlib import Path
import sys
import threading
import time

import pytest

from bookpress.errors import SpawnFailure, StageCancelled, StageExitFailure, StageTimeout
from bookpress.models.datatypes import Stage, StageResult
from bookpress.stages.runner import StageRunner, install_hint, require_success
from bookpress.telemetry.logger import RunLogger


def _python_stage(name: str, code: str, timeout_seconds: float | None = None) -> Stage:
    """Build a stage running an inline Python snippet."""

    return Stage(
        name=name,
        command=sys.executable,
        args=("-c", code),
        timeout_seconds=timeout_seconds,
    )


def test_runner_returns_nonzero_exit_code_without_raising() -> None:
    """Nonzero exits are results, not exceptions."""

    result = StageRunner().run(_python_stage("failing", "import sys; sys.exit(3)"))

    assert result.stage == "failing"
    assert result.exit_code == 3
    assert result.ok is False


def test_runner_relays_both_output_channels_line_by_line() -> None:
    """Stdout and stderr lines should be relayed with stage and stream labels."""

    sink = io.StringIO()
    runner = StageRunner(run_logger=RunLogger(sink=sink))
    code = "import sys; print('rendered one'); print('warned', file=sys.stderr)"

    result = runner.run(_python_stage("generate-site", code))

    output = sink.getvalue()
    assert result.ok is True
    assert "[process] stage=generate-site stream=stdout | rendered one" in output
    assert "[process] stage=generate-site stream=stderr | warned" in output


def test_runner_drops_lines_matching_quiet_patterns() -> None:
    """Known-noisy lines should not reach the logger."""

    sink = io.StringIO()
    runner = StageRunner(run_logger=RunLogger(sink=sink))
    code = (
        "import sys; print('rsvg-convert: not found', file=sys.stderr); "
        "print('converted')"
    )

    runner.run(_python_stage("convert-word:01", code), quiet_patterns=("rsvg-convert",))

    output = sink.getvalue()
    assert "rsvg-convert" not in output
    assert "converted" in output


def test_runner_raises_spawn_failure_with_install_hint(tmp_path: Path) -> None:
    """A missing executable should be reported as a spawn failure, not an exit code."""

    stage = Stage(name="render-to-pdf", command=str(tmp_path / "missing" / "prince"))

    with pytest.raises(SpawnFailure) as exc_info:
        StageRunner().run(stage)

    assert exc_info.value.stage == "render-to-pdf"
    assert "PrinceXML" in (exc_info.value.hint or "")


def test_runner_kills_process_after_timeout() -> None:
    """Stages with a time limit should be killed and reported as timeouts."""

    stage = _python_stage("render-to-pdf", "import time; time.sleep(30)", timeout_seconds=0.3)

    with pytest.raises(StageTimeout) as exc_info:
        StageRunner().run(stage)

    assert exc_info.value.stage == "render-to-pdf"
    assert "time limit" in exc_info.value.detail


def test_runner_kills_process_when_cancelled() -> None:
    """Setting the cancellation token should stop the active process."""

    cancel_token = threading.Event()
    stage = _python_stage("generate-site", "import time; time.sleep(30)")
    timer = threading.Timer(0.2, cancel_token.set)
    timer.start()
    try:
        with pytest.raises(StageCancelled) as exc_info:
            StageRunner().run(stage, cancel_token)
    finally:
        timer.cancel()

    assert exc_info.value.stage == "generate-site"


@pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX-only")
def test_runner_timeout_also_stops_tools_started_by_wrapper_scripts() -> None:
    """A timed-out shell wrapper should not leave its child holding the output open."""

    stage = Stage(
        name="render-to-pdf",
        command="sh",
        args=("-c", "sleep 6; echo done"),
        timeout_seconds=0.5,
    )
    sink = io.StringIO()
    started = time.monotonic()

    with pytest.raises(StageTimeout):
        StageRunner(run_logger=RunLogger(sink=sink)).run(stage)

    assert time.monotonic() - started < 3.0
    assert "done" not in sink.getvalue()


@pytest.mark.skipif(sys.platform == "win32", reason="process groups are POSIX-only")
def test_runner_cancel_also_stops_tools_started_by_wrapper_scripts() -> None:
    """Cancelling a shell wrapper should return promptly."""

    cancel_token = threading.Event()
    stage = Stage(name="generate-site", command="sh", args=("-c", "sleep 6; echo done"))
    timer = threading.Timer(0.2, cancel_token.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(StageCancelled):
            StageRunner().run(stage, cancel_token)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 3.0


def test_runner_uses_stage_working_directory(tmp_path: Path) -> None:
    """The child process should start in the stage's working directory."""

    stage = Stage(
        name="package-app",
        command=sys.executable,
        args=("-c", "import pathlib; pathlib.Path('marker.txt').write_text('ok')"),
        cwd=tmp_path,
    )

    StageRunner().run(stage)

    assert (tmp_path / "marker.txt").read_text() == "ok"


def test_require_success_raises_stage_exit_failure_for_nonzero_exit() -> None:
    """Nonzero results should become fatal stage exit failures on request."""

    with pytest.raises(StageExitFailure) as exc_info:
        require_success(StageResult(stage="render-index-links", exit_code=2))

    assert exc_info.value.exit_code == 2
    assert exc_info.value.stage == "render-index-links"


def test_require_success_returns_clean_results_unchanged() -> None:
    """Zero exit results pass straight through."""

    result = StageResult(stage="generate-site", exit_code=0)

    assert require_success(result) is result


def test_install_hint_strips_windows_suffixes_and_falls_back_for_unknown_tools() -> None:
    """Hints should match known tools regardless of path or launcher suffix."""

    assert "pandoc" in install_hint("C:/tools/pandoc.exe")
    assert install_hint("custom-tool") == "Install `custom-tool` and make sure it is on PATH."
