"""Working-folder assembly for epub and app outputs.

Responsibilities:
- Copy batches of files and folders with one `ItemOutcome` per source.
- Plan which rendered assets belong inside the epub working folder.
- Move the rendered site into the app shell's `www` folder, one entry at a time.
"""

from __future__ import annotations

from pathlib import Path
import shutil

from ..errors import PartialCopyFailure, PipelineStageError
from ..metadata.resolver import content_paths, content_root
from ..models.datatypes import ItemOutcome, ResolvedManifest
from ..telemetry.logger import RunLogger


EPUB_FOLDER = "epub"
APP_FOLDER = "app"


def copy_into(
    sources: list[Path],
    destination: Path,
    run_logger: RunLogger | None = None,
) -> list[ItemOutcome]:
    """Copy every source into `destination`, recording failures per item.

    Files land at `destination/<name>`. Folder contents are merged into
    `destination` itself. A failing item never stops the batch.
    """

    outcomes: list[ItemOutcome] = []
    for source in sources:
        try:
            target = _copy_one(source, destination)
        except (OSError, shutil.Error, PartialCopyFailure) as exc:
            if run_logger is not None:
                run_logger.log_warning(
                    "copy-epub-assets",
                    "copy_failed",
                    source=source.name,
                    error_type=type(exc).__name__,
                )
            outcomes.append(
                ItemOutcome(source=source, destination=None, ok=False, error=str(exc))
            )
            continue
        outcomes.append(ItemOutcome(source=source, destination=target, ok=True))
    return outcomes


def _copy_one(source: Path, destination: Path) -> Path:
    """Copy one file or folder and return where it landed."""

    if not source.exists():
        raise PartialCopyFailure(
            stage="copy-epub-assets",
            detail=f"Source `{source}` does not exist.",
        )
    destination.mkdir(parents=True, exist_ok=True)
    if source.is_dir():
        shutil.copytree(source, destination, dirs_exist_ok=True)
        return destination
    target = destination / source.name
    shutil.copy2(source, target)
    return target


def book_asset_dir(
    site_dir: Path,
    work: str,
    language: str | None,
    asset_type: str,
    subfolder: str = "",
) -> Path:
    """Return a work's rendered asset folder, preferring a non-empty translation one."""

    parent = site_dir / work / asset_type
    if subfolder:
        parent = parent / subfolder
    if not language:
        return parent

    translated = site_dir / work / language / asset_type
    if subfolder:
        translated = translated / subfolder
    if translated.is_dir() and any(translated.iterdir()):
        return translated
    return parent


def epub_asset_plan(
    manifest: ResolvedManifest,
    site_dir: Path,
    math_enabled: bool,
) -> list[tuple[list[Path], Path]]:
    """Return `(sources, destination)` copy batches for the epub working folder."""

    work = manifest.work
    epub_root = site_dir / EPUB_FOLDER
    plan: list[tuple[list[Path], Path]] = [
        (content_paths(manifest, site_dir, extension=".xhtml"), epub_root / work),
        (
            [book_asset_dir(site_dir, work, manifest.language, "images", EPUB_FOLDER)],
            epub_root / work / "images" / EPUB_FOLDER,
        ),
        (
            [book_asset_dir(site_dir, work, manifest.language, "styles")],
            epub_root / work / "styles",
        ),
        (
            [book_asset_dir(site_dir, "assets", manifest.language, "images", EPUB_FOLDER)],
            epub_root / "assets" / "images" / EPUB_FOLDER,
        ),
    ]

    bundle = site_dir / "assets" / "js" / "bundle.js"
    if bundle.exists():
        plan.append(([bundle], epub_root / "assets" / "js"))
    if math_enabled:
        plan.append(
            ([site_dir / "assets" / "js" / "mathjax"], epub_root / "assets" / "js" / "mathjax")
        )

    package_root = content_root(site_dir, work)
    plan.append(([package_root / "package.opf"], epub_root))
    ncx = package_root / "toc.ncx"
    if ncx.exists():
        plan.append(([ncx], epub_root))
    return plan


def copy_epub_assets(
    manifest: ResolvedManifest,
    site_dir: Path,
    math_enabled: bool,
    run_logger: RunLogger | None = None,
) -> list[ItemOutcome]:
    """Run every epub copy batch and return all item outcomes in plan order."""

    outcomes: list[ItemOutcome] = []
    for sources, destination in epub_asset_plan(manifest, site_dir, math_enabled):
        outcomes.extend(copy_into(sources, destination, run_logger))
    return outcomes


def app_www_dir(site_dir: Path) -> Path:
    """Return the app shell's web content folder."""

    return site_dir / APP_FOLDER / "www"


def assemble_app_shell(site_dir: Path, run_logger: RunLogger | None = None) -> list[ItemOutcome]:
    """Move everything in the site folder except `app` into `app/www`.

    Entries move in name order. An entry that cannot be moved is recorded as
    a failed outcome and the remaining entries still move.

    Raises:
        PipelineStageError: When the `www` folder itself cannot be created.
    """

    www = app_www_dir(site_dir)
    try:
        www.mkdir(parents=True, exist_ok=True)
        entries = sorted(site_dir.iterdir(), key=lambda path: path.name)
    except OSError as exc:
        raise PipelineStageError(
            stage="assemble-app-shell",
            detail=f"Failed to prepare `{www}`: {exc}",
            hint="Check that the site folder is writable and not open in another program.",
        ) from exc

    outcomes: list[ItemOutcome] = []
    for entry in entries:
        if entry.name == APP_FOLDER:
            continue
        target = www / entry.name
        try:
            shutil.move(str(entry), str(target))
        except (OSError, shutil.Error) as exc:
            if run_logger is not None:
                run_logger.log_warning(
                    "assemble-app-shell",
                    "move_failed",
                    source=entry.name,
                    error_type=type(exc).__name__,
                )
            outcomes.append(ItemOutcome(source=entry, destination=None, ok=False, error=str(exc)))
            continue
        outcomes.append(ItemOutcome(source=entry, destination=target, ok=True))
    return outcomes
