"""Unit tests for EPUB container assembly."""

from __future__ import annotations

from pathlib import Path
import zipfile

import pytest

from bookpress.epub import EpubAssembler, collect_entries
from bookpress.errors import SourceMissing
from bookpress.models.datatypes import Compression


def _write_epub_folder(root: Path) -> Path:
    """Create a small epub working folder with nested content."""

    source = root / "epub"
    (source / "novel" / "images" / "epub").mkdir(parents=True)
    (source / "novel" / "styles").mkdir(parents=True)
    (source / "package.opf").write_text("<package/>", encoding="utf-8")
    (source / "toc.ncx").write_text("<ncx/>", encoding="utf-8")
    (source / "novel" / "01.xhtml").write_text("<html>1</html>", encoding="utf-8")
    (source / "novel" / "00-cover.xhtml").write_text("<html>0</html>", encoding="utf-8")
    (source / "novel" / "images" / "epub" / "cover.jpg").write_bytes(b"\xff\xd8\xff")
    (source / "novel" / "styles" / "epub.css").write_text("body{}", encoding="utf-8")
    return source


def test_collect_entries_starts_with_stored_mimetype(tmp_path: Path) -> None:
    """`mimetype` should be the first entry and stored; everything else deflated."""

    entries = collect_entries(_write_epub_folder(tmp_path))

    assert entries[0].path == "mimetype"
    assert entries[0].compression is Compression.STORE
    assert entries[0].read() == b"application/epub+zip"
    assert all(entry.compression is Compression.DEFLATE for entry in entries[1:])


def test_collect_entries_uses_sorted_depth_first_forward_slash_paths(tmp_path: Path) -> None:
    """Traversal order should be deterministic with `/` separators."""

    entries = collect_entries(_write_epub_folder(tmp_path))

    assert [entry.path for entry in entries] == [
        "mimetype",
        "novel/00-cover.xhtml",
        "novel/01.xhtml",
        "novel/images/epub/cover.jpg",
        "novel/styles/epub.css",
        "package.opf",
        "toc.ncx",
    ]


def test_collect_entries_skips_existing_mimetype_files(tmp_path: Path) -> None:
    """Any file named `mimetype` should be replaced by the canonical entry."""

    source = _write_epub_folder(tmp_path)
    (source / "mimetype").write_text("text/plain", encoding="utf-8")
    (source / "novel" / "mimetype").write_text("text/plain", encoding="utf-8")

    paths = [entry.path for entry in collect_entries(source)]

    assert paths.count("mimetype") == 1
    assert "novel/mimetype" not in paths


def test_assemble_writes_complete_archive_next_to_source(tmp_path: Path) -> None:
    """Archive members should match entry order and compression on disk."""

    source = _write_epub_folder(tmp_path)

    archive_path = EpubAssembler().assemble(source)

    assert archive_path == tmp_path / "epub.zip"
    assert not (tmp_path / "epub.zip.part").exists()
    with zipfile.ZipFile(archive_path) as archive:
        infos = archive.infolist()
        assert infos[0].filename == "mimetype"
        assert infos[0].compress_type == zipfile.ZIP_STORED
        assert archive.read("mimetype") == b"application/epub+zip"
        assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in infos[1:])
        assert all("\\" not in info.filename for info in infos)
        assert archive.read("novel/01.xhtml") == b"<html>1</html>"


def test_assemble_is_deterministic_for_unchanged_folder(tmp_path: Path) -> None:
    """Re-assembling the same folder should yield identical entries and bytes."""

    source = _write_epub_folder(tmp_path)
    assembler = EpubAssembler()

    first_bytes = assembler.assemble(source).read_bytes()
    second_path = assembler.assemble(source)

    assert second_path.read_bytes() == first_bytes
    with zipfile.ZipFile(second_path) as archive:
        assert [info.filename for info in archive.infolist()] == [
            entry.path for entry in collect_entries(source)
        ]


def test_assemble_raises_source_missing_for_absent_folder(tmp_path: Path) -> None:
    """Missing working folders should fail with a stage-aware error."""

    with pytest.raises(SourceMissing) as exc_info:
        EpubAssembler().assemble(tmp_path / "epub")

    assert exc_info.value.stage == "assemble-epub"


def test_relocate_moves_archive_and_overwrites_previous_epub(tmp_path: Path) -> None:
    """Relocation should produce `<output>/<work>.epub`, replacing older output."""

    source = _write_epub_folder(tmp_path)
    output_dir = tmp_path / "_output"
    output_dir.mkdir()
    (output_dir / "novel.epub").write_bytes(b"stale")
    assembler = EpubAssembler()

    epub_path = assembler.relocate(assembler.assemble(source), output_dir, "novel")

    assert epub_path == output_dir / "novel.epub"
    assert not (tmp_path / "epub.zip").exists()
    assert zipfile.is_zipfile(epub_path)
