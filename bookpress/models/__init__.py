"""Shared typed data models for bookpress.

This package contains dataclasses used across pipeline modules to avoid
cross-module coupling and circular imports.
"""

from .datatypes import (
    ArchiveEntry,
    BuildRequest,
    Compression,
    ContentUnit,
    EditionDocument,
    ItemOutcome,
    PipelineRun,
    ProductSpec,
    ResolvedManifest,
    RunStatus,
    Stage,
    StageResult,
    ValidationReport,
)

__all__ = [
    "ArchiveEntry",
    "BuildRequest",
    "Compression",
    "ContentUnit",
    "EditionDocument",
    "ItemOutcome",
    "PipelineRun",
    "ProductSpec",
    "ResolvedManifest",
    "RunStatus",
    "Stage",
    "StageResult",
    "ValidationReport",
]
