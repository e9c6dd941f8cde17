"""bookpress pipeline package.

This package contains stage orchestration, working-folder assembly, and the
concurrent word export.
"""

from .orchestrator import PublishPipeline, stage_sequence
from .word_export import WordExporter

__all__ = ["PublishPipeline", "WordExporter", "stage_sequence"]
