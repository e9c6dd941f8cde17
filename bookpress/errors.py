"""Domain exceptions for pipeline and CLI diagnostics."""

from __future__ import annotations


class PipelineStageError(RuntimeError):
    """Raised when a specific pipeline stage fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped pipeline error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class ManifestNotFound(PipelineStageError):
    """Raised when a work has no default-edition metadata document."""


class SpawnFailure(PipelineStageError):
    """Raised when an external tool binary cannot be started at all."""


class StageExitFailure(PipelineStageError):
    """Raised when an external tool exits with a nonzero status."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        exit_code: int,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage exit failure carrying the tool's exit code."""

        super().__init__(stage=stage, detail=detail, hint=hint)
        self.exit_code = exit_code


class StageTimeout(PipelineStageError):
    """Raised when an external tool exceeds its bounded execution time."""


class StageCancelled(PipelineStageError):
    """Raised when a caller cancels a running stage."""


class SourceMissing(PipelineStageError):
    """Raised when the epub source directory does not exist."""


class PartialCopyFailure(PipelineStageError):
    """One asset in a copy batch failed; recorded, never propagated."""


class PartialConversionFailure(PipelineStageError):
    """One file in a word-export batch failed; recorded, never propagated."""
