"""Concurrent word-processor export for rendered content files.

Responsibilities:
- Empty the export folder, then fan out one conversion per content file.
- Record one `ItemOutcome` per requested file, tolerating partial failure.
- Keep known-noisy converter diagnostics out of user-facing logs.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
import shutil
import threading

from ..errors import (
    PartialConversionFailure,
    PipelineStageError,
    SpawnFailure,
    StageCancelled,
)
from ..models.datatypes import ItemOutcome
from ..stages.commands import StageFactory
from ..stages.runner import StageRunnerProtocol
from ..telemetry.logger import RunLogger


# pandoc reports missing SVG rasterizers for every image; the docx is still written.
QUIET_PATTERNS = ("rsvg-convert",)


def word_output_dir(output_dir: Path, work: str) -> Path:
    """Return the export folder `<output>/<work>--word`."""

    return output_dir / f"{work}--word"


class WordExporter:
    """Convert rendered HTML files to `.docx` documents concurrently."""

    def __init__(
        self,
        runner: StageRunnerProtocol,
        factory: StageFactory,
        run_logger: RunLogger | None = None,
        max_workers: int = 4,
    ) -> None:
        """Initialize the exporter with its runner, stage factory, and pool size."""

        self._runner = runner
        self._factory = factory
        self._run_logger = run_logger
        self._max_workers = max(1, max_workers)

    def export(
        self,
        sources: list[Path],
        destination: Path,
        cancel_token: threading.Event | None = None,
    ) -> list[ItemOutcome]:
        """Convert every source and return outcomes in source order.

        Missing rendered files and nonzero converter exits fail their item only,
        and the call returns once every requested file has an outcome.

        Raises:
            SpawnFailure: When the converter cannot be started at all.
            StageCancelled: When the run was cancelled during conversion.
        """

        if destination.exists():
            shutil.rmtree(destination)
        destination.mkdir(parents=True, exist_ok=True)
        if not sources:
            return []

        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = [
                executor.submit(self._convert, source, destination, cancel_token)
                for source in sources
            ]
            outcomes = [future.result() for future in futures]

        if cancel_token is not None and cancel_token.is_set():
            raise StageCancelled(
                stage="convert-to-word",
                detail="Word export was cancelled.",
            )
        return outcomes

    def _convert(
        self,
        source: Path,
        destination: Path,
        cancel_token: threading.Event | None,
    ) -> ItemOutcome:
        """Convert one file, mapping per-file failures to an unsuccessful outcome."""

        target = destination / f"{source.stem}.docx"
        try:
            if not source.exists():
                raise PartialConversionFailure(
                    stage="convert-to-word",
                    detail=f"Rendered file `{source}` does not exist.",
                )
            stage = self._factory.convert_to_docx(source, target)
            try:
                result = self._runner.run(stage, cancel_token, quiet_patterns=QUIET_PATTERNS)
            except SpawnFailure as exc:
                raise SpawnFailure(
                    stage="convert-to-word", detail=exc.detail, hint=exc.hint
                ) from exc
            if not result.ok:
                raise PartialConversionFailure(
                    stage="convert-to-word",
                    detail=f"Converter exited with status {result.exit_code} for `{source.name}`.",
                )
        except (SpawnFailure, StageCancelled):
            raise
        except PipelineStageError as exc:
            if self._run_logger is not None:
                self._run_logger.log_warning(
                    "convert-to-word",
                    "conversion_failed",
                    source=source.name,
                    error_type=type(exc).__name__,
                )
            return ItemOutcome(source=source, destination=None, ok=False, error=exc.detail)

        if self._run_logger is not None:
            self._run_logger.log_info("convert-to-word", "converted", source=source.name)
        return ItemOutcome(source=source, destination=target, ok=True)
