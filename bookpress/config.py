"""Configuration model and loaders for bookpress.

Responsibilities:
- Define project-level runtime configuration as a typed dataclass.
- Provide deterministic precedence resolution for runtime overrides.
- Provide loader entry points for project and file-based configuration.

Key types:
- `PublishConfig`: normalized project settings for pipeline runs.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `PublishConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .parsing import (
    normalize_optional_string,
    parse_required_boolean,
)


_DEFAULT_PDF_TIMEOUT_SECONDS = 100.0
_DEFAULT_WORD_WORKERS = 4
_KNOWN_TOOLS = frozenset(
    {"bundle", "gulp", "node", "prince", "pandoc", "cordova", "epubcheck"}
)


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Source mappings used for deterministic runtime value precedence.

    Attributes:
        cli: Values explicitly provided by CLI arguments.
        env: Values loaded from environment variables.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class PublishConfig:
    """Project configuration shared by every run in one checkout.

    Attributes:
        project_root: Directory holding `_config.yml`, `_data`, and `_site`.
        site_dir_name: Site generator output folder name.
        output_dir_name: Folder for finished artifacts.
        data_dir_name: Folder holding `works/` metadata and `settings.yml`.
        pdf_timeout_seconds: Upper bound for the PDF rendering stage.
        pdf_license: Optional PDF engine license file.
        word_workers: Maximum concurrent word-export conversions.
        open_results: Whether finished artifacts are opened in a viewer.
        executables: Per-tool executable overrides, e.g. `{"prince": "/opt/prince"}`.
    """

    project_root: Path
    site_dir_name: str = "_site"
    output_dir_name: str = "_output"
    data_dir_name: str = "_data"
    pdf_timeout_seconds: float = _DEFAULT_PDF_TIMEOUT_SECONDS
    pdf_license: Path | None = None
    word_workers: int = _DEFAULT_WORD_WORKERS
    open_results: bool = True
    executables: dict[str, str] = field(default_factory=dict)

    @property
    def site_dir(self) -> Path:
        """Return the absolute site generator output directory."""

        return self.project_root / self.site_dir_name

    @property
    def output_dir(self) -> Path:
        """Return the absolute artifact output directory."""

        return self.project_root / self.output_dir_name

    @property
    def data_dir(self) -> Path:
        """Return the absolute data directory."""

        return self.project_root / self.data_dir_name

    @property
    def works_dir(self) -> Path:
        """Return the directory holding one metadata folder per work."""

        return self.data_dir / "works"

    def executable(self, tool: str) -> str:
        """Return the configured executable for a tool, defaulting to its name."""

        return self.executables.get(tool, tool)

    def validate(self) -> None:
        """Validate configuration values before pipeline execution."""

        for field_name in ("site_dir_name", "output_dir_name", "data_dir_name"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"`{field_name}` must be a non-empty string.")
        if self.pdf_timeout_seconds <= 0:
            raise ValueError("`pdf_timeout_seconds` must be a positive number.")
        if self.word_workers <= 0:
            raise ValueError("`word_workers` must be a positive integer.")
        unknown = sorted(set(self.executables).difference(_KNOWN_TOOLS))
        if unknown:
            raise ValueError(f"`executables` includes unknown tool(s): {', '.join(unknown)}.")

    def with_runtime_sources(self, sources: RuntimeConfigSources) -> PublishConfig:
        """Return a copy with runtime overrides applied.

        Precedence for each key is `cli` > `env` > current field value.
        """

        pdf_timeout = self._resolve_float(
            sources, "pdf_timeout_seconds", "BOOKPRESS_PDF_TIMEOUT", self.pdf_timeout_seconds
        )
        word_workers = int(
            self._resolve_float(sources, "word_workers", "BOOKPRESS_WORD_WORKERS", self.word_workers)
        )
        license_value = self._lookup(sources, "pdf_license", "BOOKPRESS_PDF_LICENSE")
        pdf_license = Path(license_value) if license_value is not None else self.pdf_license
        open_value = self._lookup(sources, "open_results", "BOOKPRESS_OPEN_RESULTS")
        open_results = self.open_results
        if open_value is not None:
            open_results = parse_required_boolean(open_value, "open_results")

        executables = dict(self.executables)
        for tool in sorted(_KNOWN_TOOLS):
            override = self._lookup(sources, f"{tool}_bin", f"BOOKPRESS_{tool.upper()}_BIN")
            if override is not None:
                executables[tool] = override

        resolved = replace(
            self,
            pdf_timeout_seconds=pdf_timeout,
            word_workers=word_workers,
            pdf_license=pdf_license,
            open_results=open_results,
            executables=executables,
        )
        resolved.validate()
        return resolved

    @staticmethod
    def _lookup(sources: RuntimeConfigSources, key: str, env_key: str) -> str | None:
        """Return the highest-precedence normalized value, or `None`."""

        if key in sources.cli:
            cli_value = normalize_optional_string(sources.cli.get(key))
            if cli_value is not None:
                return cli_value
        if env_key in sources.env:
            return normalize_optional_string(sources.env.get(env_key))
        return None

    def _resolve_float(
        self,
        sources: RuntimeConfigSources,
        key: str,
        env_key: str,
        default_value: float,
    ) -> float:
        """Resolve a positive numeric runtime value."""

        raw_value = self._lookup(sources, key, env_key)
        if raw_value is None:
            return default_value
        try:
            parsed = float(raw_value)
        except ValueError as exc:
            raise ValueError(f"`{key}` must be a positive number.") from exc
        if parsed <= 0:
            raise ValueError(f"`{key}` must be a positive number.")
        return parsed


class ConfigLoader:
    """Factory methods for creating `PublishConfig` from external sources."""

    DEFAULT_FILENAME = "bookpress.yml"
    _SUPPORTED_YAML_KEYS = frozenset(
        {
            "site_dir",
            "output_dir",
            "data_dir",
            "pdf_timeout_seconds",
            "pdf_license",
            "word_workers",
            "open_results",
            "executables",
        }
    )

    @staticmethod
    def for_project(project_root: Path, config_path: Path | None = None) -> PublishConfig:
        """Load `bookpress.yml` from the project when present, else defaults."""

        candidate = config_path or project_root / ConfigLoader.DEFAULT_FILENAME
        if config_path is not None or candidate.exists():
            return ConfigLoader.from_yaml(candidate, project_root=project_root)
        config = PublishConfig(project_root=project_root)
        config.validate()
        return config

    @staticmethod
    def from_yaml(path: Path, project_root: Path | None = None) -> PublishConfig:
        """Create a validated config from a YAML file."""

        path_text = path.read_text(encoding="utf-8")
        payload = ConfigLoader._parse_yaml_payload(path_text, path)
        root = project_root if project_root is not None else path.parent
        return ConfigLoader._build_config_from_mapping(
            payload, project_root=root, source_label=f"YAML `{path}`"
        )

    @staticmethod
    def _parse_yaml_payload(raw_text: str, path: Path) -> Mapping[str, Any]:
        """Parse YAML text and enforce a mapping root payload."""

        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` is not valid YAML: {exc}") from exc

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return payload

    @staticmethod
    def _build_config_from_mapping(
        payload: Mapping[str, Any], project_root: Path, source_label: str
    ) -> PublishConfig:
        """Build a validated config from a normalized mapping payload."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            raise ValueError(f"{source_label} includes unsupported key(s): {', '.join(unknown)}.")

        license_value = normalize_optional_string(payload.get("pdf_license"))
        config = PublishConfig(
            project_root=project_root,
            site_dir_name=normalize_optional_string(payload.get("site_dir")) or "_site",
            output_dir_name=normalize_optional_string(payload.get("output_dir")) or "_output",
            data_dir_name=normalize_optional_string(payload.get("data_dir")) or "_data",
            pdf_timeout_seconds=ConfigLoader._optional_positive_number(
                payload, "pdf_timeout_seconds", source_label, _DEFAULT_PDF_TIMEOUT_SECONDS
            ),
            pdf_license=Path(license_value) if license_value is not None else None,
            word_workers=int(
                ConfigLoader._optional_positive_number(
                    payload, "word_workers", source_label, _DEFAULT_WORD_WORKERS
                )
            ),
            open_results=ConfigLoader._optional_boolean(
                payload, "open_results", source_label, default=True
            ),
            executables=ConfigLoader._optional_string_map(payload, "executables", source_label),
        )
        config.validate()
        return config

    @staticmethod
    def _optional_positive_number(
        payload: Mapping[str, Any], key: str, source_label: str, default: float
    ) -> float:
        """Read and validate a positive numeric payload field."""

        if key not in payload:
            return default

        raw_value = payload[key]
        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be a positive number.")
        if isinstance(raw_value, (int, float)):
            parsed = float(raw_value)
        else:
            normalized = normalize_optional_string(raw_value)
            if normalized is None:
                return default
            try:
                parsed = float(normalized)
            except ValueError as exc:
                raise ValueError(
                    f"{source_label} field `{key}` must be a positive number."
                ) from exc

        if parsed <= 0:
            raise ValueError(f"{source_label} field `{key}` must be a positive number.")
        return parsed

    @staticmethod
    def _optional_boolean(
        payload: Mapping[str, Any], key: str, source_label: str, default: bool
    ) -> bool:
        """Read and validate a boolean field from a payload."""

        if key not in payload:
            return default

        try:
            return parse_required_boolean(payload[key], key)
        except ValueError as exc:
            raise ValueError(f"{source_label} field {exc}") from exc

    @staticmethod
    def _optional_string_map(
        payload: Mapping[str, Any], key: str, source_label: str
    ) -> dict[str, str]:
        """Read an optional mapping with non-empty string keys and values."""

        raw = payload.get(key)
        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"{source_label} field `{key}` must be a mapping/object.")

        normalized: dict[str, str] = {}
        for raw_key, raw_value in raw.items():
            key_value = normalize_optional_string(raw_key)
            value_value = normalize_optional_string(raw_value)
            if key_value is None:
                raise ValueError(f"{source_label} field `{key}` contains a blank key.")
            if value_value is None:
                raise ValueError(
                    f"{source_label} field `{key}` contains blank value for `{key_value}`."
                )
            normalized[key_value] = value_value
        return normalized
