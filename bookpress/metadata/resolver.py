"""Cascading metadata resolution for one build request.

Responsibilities:
- Apply the default -> translation -> variant override cascade.
- Replace file lists wholesale at the most specific level that defines one.
- Shallow-merge product settings so feature toggles are inherited.
- Map resolved content units to rendered file paths in the site folder.

Key functions:
- `cascade`: pure resolution over three optional documents.
- `content_paths`: manifest-to-path mapping used by PDF, epub, and word stages.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from ..models.datatypes import ContentUnit, EditionDocument, ResolvedManifest
from ..telemetry.logger import RunLogger
from .store import MetadataStore


def cascade(
    output_format: str,
    default: EditionDocument,
    translation: EditionDocument | None = None,
    variant: EditionDocument | None = None,
) -> tuple[tuple[ContentUnit, ...], dict[str, Any], bool, tuple[Path, ...]]:
    """Resolve files and settings for one format from up to three documents.

    Specificity is default < translation < variant. A more specific document
    that lists files for the format replaces the list outright; lists are
    never interleaved. Settings from every level that defines the format are
    shallow-merged with later keys winning.

    Returns:
        Tuple of (files, settings, format_found, contributing source paths).
    """

    baseline = default.product(output_format)
    if baseline is None or not baseline.has_files:
        settings = dict(baseline.settings) if baseline is not None else {}
        return tuple(), settings, False, tuple()

    files = baseline.files
    settings: dict[str, Any] = dict(baseline.settings)
    sources: list[Path] = [default.path]

    for document in (translation, variant):
        if document is None:
            continue
        product = document.product(output_format)
        if product is None:
            continue
        settings.update(product.settings)
        if product.has_files:
            files = product.files
        sources.append(document.path)

    return files, settings, True, tuple(sources)


class MetadataResolver:
    """Resolve build manifests from a `MetadataStore`."""

    def __init__(self, store: MetadataStore, run_logger: RunLogger | None = None) -> None:
        """Initialize the resolver with its document store and optional logger."""

        self._store = store
        self._run_logger = run_logger

    def resolve(
        self,
        work: str,
        output_format: str,
        language: str | None = None,
        variant: str | None = None,
        warn_missing: bool = True,
    ) -> ResolvedManifest:
        """Return the resolved manifest for one work/format/language/variant.

        A format missing from the default edition is logged unless
        `warn_missing` is false, for callers that fall back on their own.

        Raises:
            ManifestNotFound: When the work has no default-edition document.
        """

        default = self._store.load_default(work)
        translation = self._store.load_translation(work, language) if language else None
        variant_document = self._variant_document(work, variant, language) if variant else None

        files, settings, format_found, sources = cascade(
            output_format, default, translation, variant_document
        )
        if not format_found and warn_missing and self._run_logger is not None:
            self._run_logger.log_warning(
                "metadata",
                "format_not_found",
                work=work,
                format=output_format,
            )

        return ResolvedManifest(
            work=work,
            output_format=output_format,
            language=language,
            variant=variant,
            files=files,
            settings=settings,
            format_found=format_found,
            sources=sources,
        )

    def _variant_document(
        self, work: str, variant: str, language: str | None
    ) -> EditionDocument | None:
        """Pick the variant document, falling back to the parent-language one.

        A translation without its own variant document inherits the parent
        language variant. The fallback is logged so content gaps stay visible.
        """

        if not language:
            return self._store.load_variant(work, variant)

        document = self._store.load_variant(work, variant, language)
        if document is not None:
            return document

        parent = self._store.load_variant(work, variant)
        if parent is not None and self._run_logger is not None:
            self._run_logger.log_warning(
                "metadata",
                "variant_fallback",
                work=work,
                language=language,
                variant=variant,
            )
        return parent


def content_root(site_dir: Path, work: str, language: str | None = None) -> Path:
    """Return the rendered folder for a work or one of its translations."""

    if language:
        return site_dir / work / language
    return site_dir / work


def content_paths(
    manifest: ResolvedManifest, site_dir: Path, extension: str = ".html"
) -> list[Path]:
    """Map manifest content units to absolute rendered file paths in spine order."""

    root = content_root(site_dir, manifest.work, manifest.language)
    return [root / f"{unit.name}{extension}" for unit in manifest.files]
