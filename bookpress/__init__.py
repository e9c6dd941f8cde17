"""Top-level package for bookpress.

This package publishes one set of book sources into web, PDF, epub, app, and
word-processor outputs by sequencing external tools. The main orchestration
entry point is `PublishPipeline`.
"""

from .pipeline import PublishPipeline

__all__ = ["PublishPipeline", "__version__"]

__version__ = "0.1.0"
