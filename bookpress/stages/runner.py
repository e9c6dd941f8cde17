"""External process execution for pipeline stages.

Responsibilities:
- Spawn one stage's external tool and relay both output channels line-by-line.
- Resolve to the tool's exit status without treating nonzero codes as errors.
- Distinguish tools that cannot be spawned from tools that fail.
- Enforce optional per-stage timeouts and caller-driven cancellation.
"""

from __future__ import annotations

import os
from pathlib import Path
import signal
import subprocess
import threading
import time
from typing import IO, Protocol

from ..errors import SpawnFailure, StageCancelled, StageExitFailure, StageTimeout
from ..models.datatypes import Stage, StageResult
from ..runtime_tools import resolve_executable
from ..telemetry.logger import RunLogger


_INSTALL_HINTS = {
    "bundle": "Install Ruby and Bundler (https://bundler.io), then run `bundle install`.",
    "gulp": "Install Node.js, then run `npm install` in the project root.",
    "node": "Install Node.js (https://nodejs.org).",
    "prince": "Install PrinceXML (https://www.princexml.com) or run `npm install`.",
    "pandoc": "Install pandoc (https://pandoc.org/installing.html).",
    "cordova": "Install Cordova with `npm install -g cordova`.",
    "epubcheck": "Install epubcheck (https://www.w3.org/publishing/epubcheck/).",
}

# Reader threads get this long to drain once a killed tool's pipes close.
_DRAIN_SECONDS = 2.0


class StageRunnerProtocol(Protocol):
    """Protocol for stage runners used by the pipeline and its helpers."""

    def run(
        self,
        stage: Stage,
        cancel_token: threading.Event | None = None,
        *,
        quiet_patterns: tuple[str, ...] = (),
    ) -> StageResult:
        """Run one stage and return its exit status."""


def install_hint(command: str) -> str:
    """Return actionable install guidance for a missing tool."""

    name = Path(command).name.lower()
    for suffix in (".exe", ".cmd"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    return _INSTALL_HINTS.get(name, f"Install `{command}` and make sure it is on PATH.")


def require_success(result: StageResult, hint: str | None = None) -> StageResult:
    """Raise `StageExitFailure` when a stage exited with a nonzero status."""

    if result.ok:
        return result
    raise StageExitFailure(
        stage=result.stage,
        detail=f"Stage `{result.stage}` exited with status {result.exit_code}.",
        exit_code=result.exit_code,
        hint=hint or "Review the tool output above for the underlying error.",
    )


class StageRunner:
    """Run `Stage` records as external processes with streamed output."""

    def __init__(
        self,
        run_logger: RunLogger | None = None,
        project_root: Path | None = None,
        poll_interval: float = 0.05,
    ) -> None:
        """Initialize output relay, executable lookup root, and poll cadence."""

        self._run_logger = run_logger
        self._project_root = project_root
        self._poll_interval = poll_interval

    def run(
        self,
        stage: Stage,
        cancel_token: threading.Event | None = None,
        *,
        quiet_patterns: tuple[str, ...] = (),
    ) -> StageResult:
        """Run one stage to completion and return its exit status.

        Output lines containing any of `quiet_patterns` are not relayed.

        Raises:
            SpawnFailure: When the executable cannot be started.
            StageTimeout: When `stage.timeout_seconds` elapses first.
            StageCancelled: When `cancel_token` is set while running.
        """

        executable = resolve_executable(stage.command, self._project_root)
        started = time.monotonic()
        try:
            process = subprocess.Popen(
                [executable, *stage.args],
                cwd=str(stage.cwd) if stage.cwd is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=True,
            )
        except OSError as exc:
            raise SpawnFailure(
                stage=stage.name,
                detail=f"Could not start `{stage.command}`: {exc}",
                hint=install_hint(stage.command),
            ) from exc

        readers = [
            threading.Thread(
                target=self._relay,
                args=(stage.name, "stdout", process.stdout, quiet_patterns),
                daemon=True,
            ),
            threading.Thread(
                target=self._relay,
                args=(stage.name, "stderr", process.stderr, quiet_patterns),
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()

        deadline = (
            started + stage.timeout_seconds if stage.timeout_seconds is not None else None
        )
        try:
            exit_code = self._wait(process, stage, deadline, cancel_token)
        except (StageCancelled, StageTimeout):
            for reader in readers:
                reader.join(timeout=_DRAIN_SECONDS)
            raise
        for reader in readers:
            reader.join()

        return StageResult(
            stage=stage.name,
            exit_code=exit_code,
            duration_seconds=time.monotonic() - started,
        )

    def _wait(
        self,
        process: subprocess.Popen[str],
        stage: Stage,
        deadline: float | None,
        cancel_token: threading.Event | None,
    ) -> int:
        """Poll until exit, killing the process on timeout or cancellation."""

        while True:
            try:
                return process.wait(timeout=self._poll_interval)
            except subprocess.TimeoutExpired:
                pass

            if cancel_token is not None and cancel_token.is_set():
                self._kill(process)
                raise StageCancelled(
                    stage=stage.name,
                    detail=f"Stage `{stage.name}` was cancelled.",
                )
            if deadline is not None and time.monotonic() >= deadline:
                self._kill(process)
                raise StageTimeout(
                    stage=stage.name,
                    detail=(
                        f"Stage `{stage.name}` exceeded its {stage.timeout_seconds:g}s time limit."
                    ),
                    hint="Raise `pdf_timeout_seconds` in bookpress.yml for very large books.",
                )

    @staticmethod
    def _kill(process: subprocess.Popen[str]) -> None:
        """Kill a tool with every process it started, then reap it.

        Wrapper scripts (npm shims, shell launchers) leave the real tool
        running as a descendant holding the output pipes open.
        """

        if hasattr(os, "killpg"):
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
        elif process.poll() is None:
            process.kill()
        process.wait()

    def _relay(
        self,
        stage_name: str,
        stream_name: str,
        stream: IO[str] | None,
        quiet_patterns: tuple[str, ...],
    ) -> None:
        """Forward each output line to the logger as soon as it is read."""

        if stream is None:
            return
        with stream:
            for line in stream:
                if self._run_logger is None:
                    continue
                if any(pattern in line for pattern in quiet_patterns):
                    continue
                self._run_logger.log_process_line(stage_name, stream_name, line)
