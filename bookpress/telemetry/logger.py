"""Structured run logging utilities.

Responsibilities:
- Emit concise, deterministic phase-level runtime logs through `loguru`.
- Relay external tool output line-by-line as it arrives.
"""

from __future__ import annotations

import sys
import threading
from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class RunLogger:
    """Emit deterministic phase logs for CLI-observable pipeline activity."""

    def __init__(self, sink: TextIO | None = None, level: str = "INFO") -> None:
        """Initialize logger sink and configure deterministic formatting."""

        self._sink = sink or sys.stdout
        self._lock = threading.Lock()
        _loguru_logger.remove()
        _loguru_logger.add(self._sink, format="{message}", level=level, colorize=False)

    def _emit(self, level: str, event: str, stage: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = f"[phase] level={level} stage={stage} event={event}{_format_context(context)}"
        with self._lock:
            _loguru_logger.log(level, line)

    def log_stage_start(self, stage: str) -> None:
        """Emit a stage-start runtime event."""

        self._emit("INFO", "start", stage)

    def log_stage_complete(self, stage: str) -> None:
        """Emit a stage-complete runtime event."""

        self._emit("INFO", "complete", stage)

    def log_stage_failure(self, stage: str, error_type: str) -> None:
        """Emit a stage-failure runtime event without payload details."""

        self._emit("ERROR", "failure", stage, error_type=error_type)

    def log_warning(self, stage: str, event: str, **context: object) -> None:
        """Emit a non-fatal warning event."""

        self._emit("WARNING", event, stage, **context)

    def log_info(self, stage: str, event: str, **context: object) -> None:
        """Emit an informational event."""

        self._emit("INFO", event, stage, **context)

    def log_process_line(self, stage: str, stream: str, line: str) -> None:
        """Relay one line of external tool output verbatim."""

        text = line.rstrip("\r\n")
        with self._lock:
            _loguru_logger.log("INFO", f"[process] stage={stage} stream={stream} | {text}")
