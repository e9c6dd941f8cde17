"""Stage factories for every external tool the pipeline drives.

Responsibilities:
- Build site generator config strings and switches from a build request.
- Build task-runner, PDF, document-converter, packager, and validator stages.
- Derive stable artifact filenames.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from ..config import PublishConfig
from ..errors import PipelineStageError
from ..models.datatypes import BuildRequest, Stage


MATHJAX_CONFIG = "_configs/_config.mathjax-enabled.yml"
MATH_DISABLED_CONFIG = "_configs/_config.math-disabled.yml"

TASK_RENDER_MATH = "mathjax"
TASK_INDEX_COMMENTS = "renderIndexCommentsAsTargets"
TASK_INDEX_LINKS = "renderIndexListReferences"
TASK_XHTML_LINKS = "epub:xhtmlLinks"
TASK_XHTML_FILES = "epub:xhtmlFiles"
TASK_CLEAN_HTML = "epub:cleanHtmlFiles"

REFERENCE_INDEX_SCRIPT = "_tools/run/helpers/reindex/build-reference-index.js"
SEARCH_INDEX_SCRIPT = "_tools/run/helpers/reindex/build-search-index.js"

# The index builders are modules exporting one function of the output format.
_NODE_MODULE_CALL = "require(require('path').resolve(process.argv[1]))(process.argv[2])"


def site_config_files(request: BuildRequest) -> list[str]:
    """Return site generator config files in override order."""

    files = ["_config.yml"]
    if request.output_format != "word":
        files.append(f"_configs/_config.{request.output_format}.yml")
    files.extend(f"_configs/{name}" for name in request.configs)
    if request.mathjax:
        files.append(MATHJAX_CONFIG)
    if request.output_format == "word":
        # Word documents keep raw TeX so equations stay editable.
        files.append(MATH_DISABLED_CONFIG)
    return files


def merged_site_config(project_root: Path, request: BuildRequest) -> dict[str, Any]:
    """Merge the request's site generator configs, later files winning per key.

    Missing config files are skipped, matching the site generator's own lookup.
    """

    merged: dict[str, Any] = {}
    for name in site_config_files(request):
        path = project_root / name
        if not path.is_file():
            continue
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise PipelineStageError(
                stage="config",
                detail=f"Site config `{path}` is not valid YAML: {exc}",
                hint="Fix the YAML syntax and rerun.",
            ) from exc
        if isinstance(payload, dict):
            merged.update(payload)
    return merged


def site_switches(request: BuildRequest) -> list[str]:
    """Return extra site generator switches."""

    switches: list[str] = []
    if request.incremental:
        switches.append("--incremental")
    switches.extend(f"--{switch}" for switch in request.switches)
    return switches


def _book_scope(request: BuildRequest) -> tuple[str, ...]:
    args = ["--book", request.work]
    if request.language:
        args.extend(["--language", request.language])
    return tuple(args)


def output_filename(request: BuildRequest, extension: str) -> str:
    """Return `<work>[-<language>]-<format><extension>`."""

    if request.language:
        return f"{request.work}-{request.language}-{request.output_format}{extension}"
    return f"{request.work}-{request.output_format}{extension}"


class StageFactory:
    """Create `Stage` records bound to one project configuration."""

    def __init__(self, config: PublishConfig) -> None:
        """Initialize the factory with project paths and tool overrides."""

        self._config = config

    def generate_site(self, request: BuildRequest, mode: str = "build") -> Stage:
        """Return the site generator stage in `build` or `serve` mode."""

        if mode not in {"build", "serve"}:
            raise ValueError(f"Unsupported site generator mode `{mode}`.")
        args = [
            "exec",
            "jekyll",
            mode,
            "--config",
            ",".join(site_config_files(request)),
            "--baseurl",
            request.baseurl,
            *site_switches(request),
        ]
        return Stage(
            name="generate-site",
            command=self._config.executable("bundle"),
            args=tuple(args),
            cwd=self._config.project_root,
        )

    def task(self, name: str, task: str, request: BuildRequest) -> Stage:
        """Return a task-runner stage scoped to the request's book and language."""

        return Stage(
            name=name,
            command=self._config.executable("gulp"),
            args=(task, *_book_scope(request)),
            cwd=self._config.project_root,
        )

    def process_images(self, request: BuildRequest) -> Stage:
        """Return the task runner's default image-processing stage for one book."""

        return Stage(
            name="process-images",
            command=self._config.executable("gulp"),
            args=_book_scope(request),
            cwd=self._config.project_root,
        )

    def build_index(self, name: str, script: str, output_format: str) -> Stage:
        """Return a stage calling a project index-builder module for one format."""

        return Stage(
            name=name,
            command=self._config.executable("node"),
            args=("-e", _NODE_MODULE_CALL, script, output_format),
            cwd=self._config.project_root,
        )

    def render_pdf(self, inputs: list[Path], output_path: Path) -> Stage:
        """Return the PDF engine stage with its bounded timeout."""

        args = ["--javascript", "--verbose"]
        license_file = self._license_file()
        if license_file is not None:
            args.append(f"--license-file={license_file}")
        args.extend(["-o", str(output_path)])
        args.extend(str(path) for path in inputs)
        return Stage(
            name="render-to-pdf",
            command=self._config.executable("prince"),
            args=tuple(args),
            cwd=self._config.project_root,
            timeout_seconds=self._config.pdf_timeout_seconds,
        )

    def convert_to_docx(self, source: Path, output_path: Path) -> Stage:
        """Return one document-converter stage for a rendered HTML file."""

        return Stage(
            name=f"convert-word:{source.stem}",
            command=self._config.executable("pandoc"),
            args=(
                f"--resource-path={source.parent}",
                "-f",
                "html",
                "-t",
                "docx",
                "-s",
                "-o",
                str(output_path),
                str(source),
            ),
            cwd=self._config.project_root,
        )

    def package_app(self, name: str, args: list[str]) -> Stage:
        """Return a mobile packaging stage run inside the app working folder."""

        return Stage(
            name=name,
            command=self._config.executable("cordova"),
            args=tuple(args),
            cwd=self._config.site_dir / "app",
        )

    def validate_epub(self, epub_path: Path, report_path: Path) -> Stage:
        """Return the epub validator stage writing a JSON report."""

        return Stage(
            name="validate-epub",
            command=self._config.executable("epubcheck"),
            args=(str(epub_path), "--json", str(report_path)),
            cwd=self._config.project_root,
        )

    def _license_file(self) -> Path | None:
        """Return the PDF engine license path when it exists."""

        license_path = self._config.pdf_license
        if license_path is None:
            return None
        if not license_path.is_absolute():
            license_path = self._config.project_root / license_path
        if license_path.is_file():
            return license_path
        return None
