"""Metadata document storage for works, translations, and variants.

Responsibilities:
- Locate per-work metadata documents under `_data/works`.
- Parse YAML documents into typed `EditionDocument` records.
- Load the project settings document that declares the active variant.

Documents are read fresh on every call; nothing is cached between runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..errors import ManifestNotFound, PipelineStageError
from ..models.datatypes import ContentUnit, EditionDocument, ProductSpec
from ..parsing import normalize_optional_string


DEFAULT_DOCUMENT = "default.yml"
SETTINGS_DOCUMENT = "settings.yml"


@dataclass(frozen=True, slots=True)
class ProjectSettings:
    """Project-wide settings from `_data/settings.yml`.

    Attributes:
        active_variant: Configured variant name, `None` when blank or absent.
        values: Raw settings mapping.
    """

    active_variant: str | None = None
    values: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def load(cls, data_dir: Path) -> ProjectSettings:
        """Load settings, returning empty settings when the document is absent."""

        path = data_dir / SETTINGS_DOCUMENT
        if not path.exists():
            return cls()
        payload = _read_yaml_mapping(path)
        return cls(
            active_variant=normalize_optional_string(payload.get("active-variant")),
            values=payload,
        )


class MetadataStore:
    """Filesystem-backed reader for work metadata documents."""

    def __init__(self, works_dir: Path) -> None:
        """Initialize the store with the `_data/works` directory."""

        self.works_dir = works_dir

    def work_dir(self, work: str) -> Path:
        """Return the metadata folder for a work."""

        return self.works_dir / work

    def default_path(self, work: str) -> Path:
        """Return the default-edition document path."""

        return self.work_dir(work) / DEFAULT_DOCUMENT

    def translation_path(self, work: str, language: str) -> Path:
        """Return the translation default document path."""

        return self.work_dir(work) / language / DEFAULT_DOCUMENT

    def variant_path(self, work: str, variant: str, language: str | None = None) -> Path:
        """Return a variant document path at translation or parent level."""

        if language:
            return self.work_dir(work) / language / f"{variant}.yml"
        return self.work_dir(work) / f"{variant}.yml"

    def load_default(self, work: str) -> EditionDocument:
        """Load the default edition, failing when the work has no metadata."""

        path = self.default_path(work)
        document = self.load_document(path)
        if document is None:
            raise ManifestNotFound(
                stage="metadata",
                detail=f"No default metadata for work `{work}` at `{path}`.",
                hint="Check the book name, or add `default.yml` to the work's data folder.",
            )
        return document

    def load_translation(self, work: str, language: str) -> EditionDocument | None:
        """Load a translation default document, or `None` when absent."""

        return self.load_document(self.translation_path(work, language))

    def load_variant(
        self, work: str, variant: str, language: str | None = None
    ) -> EditionDocument | None:
        """Load a variant document at the requested level, or `None` when absent."""

        return self.load_document(self.variant_path(work, variant, language))

    def load_document(self, path: Path) -> EditionDocument | None:
        """Parse one metadata document, returning `None` when the file is missing."""

        if not path.is_file():
            return None
        payload = _read_yaml_mapping(path)
        raw_products = payload.get("products") or {}
        if not isinstance(raw_products, Mapping):
            raise PipelineStageError(
                stage="metadata",
                detail=f"`products` in `{path}` must be a mapping of format names.",
                hint="Define products as `products: {print-pdf: {files: [...]}}`.",
            )

        products: dict[str, ProductSpec] = {}
        for raw_format, raw_product in raw_products.items():
            output_format = str(raw_format)
            products[output_format] = _parse_product(raw_product, path, output_format)
        return EditionDocument(path=path, products=products)

    def works(self) -> list[str]:
        """Return work identifiers in name order."""

        if not self.works_dir.is_dir():
            return []
        return sorted(entry.name for entry in self.works_dir.iterdir() if entry.is_dir())

    def languages(self, work: str) -> list[str]:
        """Return translation language codes for a work in name order."""

        work_dir = self.work_dir(work)
        if not work_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in work_dir.iterdir()
            if entry.is_dir() and (entry / DEFAULT_DOCUMENT).is_file()
        )


def _read_yaml_mapping(path: Path) -> Mapping[str, Any]:
    """Read a YAML document and require a mapping root."""

    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise PipelineStageError(
            stage="metadata",
            detail=f"Metadata document `{path}` is not valid YAML: {exc}",
            hint="Fix the YAML syntax and rerun.",
        ) from exc
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise PipelineStageError(
            stage="metadata",
            detail=f"Metadata document `{path}` must contain a top-level mapping.",
        )
    return payload


def _parse_product(raw_product: object, path: Path, output_format: str) -> ProductSpec:
    """Parse one `products.<format>` entry."""

    if raw_product is None:
        return ProductSpec()
    if not isinstance(raw_product, Mapping):
        raise PipelineStageError(
            stage="metadata",
            detail=f"Product `{output_format}` in `{path}` must be a mapping.",
        )

    settings = {str(key): value for key, value in raw_product.items() if key != "files"}
    raw_files = raw_product.get("files")
    if not raw_files:
        return ProductSpec(settings=settings)
    if not isinstance(raw_files, list):
        raise PipelineStageError(
            stage="metadata",
            detail=f"`files` for `{output_format}` in `{path}` must be a list.",
        )

    units = tuple(_parse_content_unit(entry, path, output_format) for entry in raw_files)
    return ProductSpec(files=units, settings=settings, has_files=True)


def _parse_content_unit(entry: object, path: Path, output_format: str) -> ContentUnit:
    """Parse a bare name or a single-key `{name: title}` mapping."""

    if isinstance(entry, Mapping):
        if len(entry) != 1:
            raise PipelineStageError(
                stage="metadata",
                detail=(
                    f"File entry {dict(entry)!r} for `{output_format}` in `{path}` "
                    "must have exactly one key."
                ),
            )
        ((raw_name, raw_title),) = entry.items()
        name = normalize_optional_string(raw_name)
        if name is None:
            raise PipelineStageError(
                stage="metadata",
                detail=f"Blank file name for `{output_format}` in `{path}`.",
            )
        return ContentUnit(name=name, title=normalize_optional_string(raw_title))

    name = normalize_optional_string(entry)
    if name is None:
        raise PipelineStageError(
            stage="metadata",
            detail=f"Blank file name for `{output_format}` in `{path}`.",
        )
    return ContentUnit(name=name)
