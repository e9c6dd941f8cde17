"""EPUB container assembly.

Responsibilities:
- Enumerate a working folder into a deterministic, ordered entry list.
- Write `mimetype` first and uncompressed, every other entry deflated.
- Finish the archive on disk before returning, then relocate it as `<work>.epub`.

Key functions:
- `collect_entries`: pure enumeration used by `EpubAssembler.assemble`.
"""

from __future__ import annotations

from collections.abc import Iterator
import os
from pathlib import Path
import shutil
import zipfile

from ..errors import PipelineStageError, SourceMissing
from ..models.datatypes import ArchiveEntry, Compression
from ..telemetry.logger import RunLogger


MIMETYPE_NAME = "mimetype"
MIMETYPE_CONTENT = b"application/epub+zip"

# Fixed member timestamps keep re-assembled archives byte-identical.
_ENTRY_TIMESTAMP = (1980, 1, 1, 0, 0, 0)

_ZIP_COMPRESSION = {
    Compression.STORE: zipfile.ZIP_STORED,
    Compression.DEFLATE: zipfile.ZIP_DEFLATED,
}


def _walk_files(directory: Path) -> Iterator[Path]:
    """Yield files depth-first with names sorted within each folder."""

    for child in sorted(directory.iterdir(), key=lambda path: path.name):
        if child.is_dir():
            yield from _walk_files(child)
        elif child.is_file():
            yield child


def collect_entries(source_dir: Path) -> list[ArchiveEntry]:
    """Return archive entries for a working folder, `mimetype` first.

    Any file literally named `mimetype` is skipped; the canonical entry is
    always generated.
    """

    entries = [
        ArchiveEntry(
            path=MIMETYPE_NAME,
            compression=Compression.STORE,
            content=MIMETYPE_CONTENT,
        )
    ]
    for file_path in _walk_files(source_dir):
        if file_path.name == MIMETYPE_NAME:
            continue
        entries.append(
            ArchiveEntry(
                path=file_path.relative_to(source_dir).as_posix(),
                compression=Compression.DEFLATE,
                source=file_path,
            )
        )
    return entries


class EpubAssembler:
    """Build and place EPUB archives from rendered working folders."""

    def __init__(self, run_logger: RunLogger | None = None) -> None:
        """Initialize optional structured logging."""

        self._run_logger = run_logger

    def assemble(self, source_dir: Path) -> Path:
        """Write `<source_dir>.zip` and return its path once fully on disk.

        Raises:
            SourceMissing: When `source_dir` does not exist.
        """

        if not source_dir.is_dir():
            raise SourceMissing(
                stage="assemble-epub",
                detail=f"Epub working folder `{source_dir}` does not exist.",
                hint="Make sure the site build produced the `epub` folder.",
            )

        entries = collect_entries(source_dir)
        archive_path = source_dir.with_name(f"{source_dir.name}.zip")
        partial_path = source_dir.with_name(f"{source_dir.name}.zip.part")
        try:
            with partial_path.open("wb") as handle:
                with zipfile.ZipFile(handle, "w") as archive:
                    for entry in entries:
                        info = zipfile.ZipInfo(entry.path, date_time=_ENTRY_TIMESTAMP)
                        info.compress_type = _ZIP_COMPRESSION[entry.compression]
                        info.external_attr = 0o644 << 16
                        archive.writestr(info, entry.read())
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(partial_path, archive_path)
        except OSError as exc:
            partial_path.unlink(missing_ok=True)
            raise PipelineStageError(
                stage="assemble-epub",
                detail=f"Failed to write epub archive `{archive_path}`: {exc}",
                hint="Check free disk space and write permissions for the site folder.",
            ) from exc

        if self._run_logger is not None:
            self._run_logger.log_info(
                "assemble-epub", "archive_written", entries=len(entries), path=archive_path
            )
        return archive_path

    def relocate(self, archive_path: Path, output_dir: Path, work: str) -> Path:
        """Move an assembled archive to `<output_dir>/<work>.epub`, replacing any old one."""

        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / f"{work}.epub"
        try:
            if target.exists():
                target.unlink()
            shutil.move(str(archive_path), str(target))
        except OSError as exc:
            raise PipelineStageError(
                stage="assemble-epub",
                detail=f"Failed to move `{archive_path}` to `{target}`: {exc}",
                hint="Close any program holding the previous epub open and rerun.",
            ) from exc
        return target
