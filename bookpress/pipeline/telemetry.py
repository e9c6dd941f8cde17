"""Stage telemetry helper methods for the bookpress pipeline.

Responsibilities:
- Provide stage index/total metadata for progress reporting.
- Emit stage start/complete/failure events.
- Wrap stage actions with consistent telemetry hooks.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

_StageResult = TypeVar("_StageResult")


class PipelineTelemetryMixin:
    """Provide stage-telemetry helper methods.

    The planned stage sequence is passed with every call so that one
    pipeline instance can serve several runs.
    """

    @staticmethod
    def _stage_position(
        stage_name: str, planned_stages: Sequence[str]
    ) -> tuple[int, int] | None:
        """Return 1-based stage index and total stage count for planned stages."""

        try:
            index = list(planned_stages).index(stage_name) + 1
        except ValueError:
            return None
        return index, len(planned_stages)

    def _on_stage_start(self, stage_name: str, planned_stages: Sequence[str]) -> None:
        """Emit start events to stage progress callback and structured logger."""

        stage_position = self._stage_position(stage_name, planned_stages)
        if stage_position and self._stage_progress_callback is not None:
            self._stage_progress_callback(stage_name, stage_position[0], stage_position[1])
        if self._run_logger is not None:
            self._run_logger.log_stage_start(stage_name)

    def _on_stage_complete(self, stage_name: str) -> None:
        """Emit stage-complete event to the structured logger."""

        if self._run_logger is not None:
            self._run_logger.log_stage_complete(stage_name)

    def _on_stage_failure(self, stage_name: str, exc: Exception) -> None:
        """Emit stage-failure event with sanitized exception metadata."""

        if self._run_logger is not None:
            self._run_logger.log_stage_failure(stage_name, type(exc).__name__)

    def _run_stage(
        self,
        stage_name: str,
        action: Callable[[], _StageResult],
        planned_stages: Sequence[str] = (),
    ) -> _StageResult:
        """Run one named stage and emit start/complete/failure telemetry events."""

        self._on_stage_start(stage_name, planned_stages)
        try:
            result = action()
        except Exception as exc:
            self._on_stage_failure(stage_name, exc)
            raise
        self._on_stage_complete(stage_name)
        return result
