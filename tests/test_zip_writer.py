from __future__ import annotations

import io
import os
import zipfile
import zlib
from pathlib import Path

import pytest

from core.export.zip_writer import crc32, iter_source_files, zip_directory_bytes, zip_folder
from core.utils.errors import InvalidDestinationError


def _build_tree(root: Path) -> None:
    (root / "a").mkdir(parents=True)
    (root / "a" / "one.txt").write_bytes(b"hello")
    (root / "b.txt").write_bytes(b"beta" * 1000)
    (root / "empty.txt").write_bytes(b"")
    (root / ".hidden").write_bytes(b"secret")
    (root / "pkg.app").mkdir()
    (root / "pkg.app" / "inner.txt").write_bytes(b"skip")
    os.symlink(root / "b.txt", root / "link.txt")


def test_crc32_matches_reference_values() -> None:
    assert crc32(b"") == 0
    assert crc32(b"123456789") == 0xCBF43926
    assert crc32(b"beta" * 1000) == zlib.crc32(b"beta" * 1000)


def test_iter_source_files_is_sorted_and_skips_hidden_links_and_packages(tmp_path: Path) -> None:
    _build_tree(tmp_path)

    names = [relative for _, relative in iter_source_files(tmp_path)]

    assert names == ["a/one.txt", "b.txt", "empty.txt"]


def test_zip_folder_writes_readable_stored_archive(tmp_path: Path) -> None:
    source = tmp_path / "bundle"
    _build_tree(source)
    zip_path = tmp_path / "out" / "bundle.zip"

    entries = zip_folder(source, zip_path, chunk_size=7)

    assert [entry.path for entry in entries] == ["a/one.txt", "b.txt", "empty.txt"]
    with zipfile.ZipFile(zip_path) as archive:
        assert archive.testzip() is None
        assert archive.namelist() == ["a/one.txt", "b.txt", "empty.txt"]
        for info in archive.infolist():
            data = archive.read(info.filename)
            assert info.compress_type == zipfile.ZIP_STORED
            assert info.CRC == zlib.crc32(data)
            assert info.file_size == info.compress_size == len(data)
            assert info.flag_bits & 0x0008
            assert info.flag_bits & 0x0800
        assert archive.read("b.txt") == b"beta" * 1000
        assert archive.read("empty.txt") == b""
    assert list(zip_path.parent.glob("*.tmp")) == []


def test_empty_directory_produces_empty_archive(tmp_path: Path) -> None:
    payload = zip_directory_bytes(tmp_path)

    assert len(payload) == 22
    with zipfile.ZipFile(io.BytesIO(payload)) as archive:
        assert archive.namelist() == []


def test_utf8_file_names_round_trip(tmp_path: Path) -> None:
    (tmp_path / "résumé.txt").write_text("ok", encoding="utf-8")

    with zipfile.ZipFile(io.BytesIO(zip_directory_bytes(tmp_path))) as archive:
        assert archive.namelist() == ["résumé.txt"]
        assert archive.read("résumé.txt") == b"ok"


def test_zip_folder_replaces_existing_archive(tmp_path: Path) -> None:
    source = tmp_path / "src"
    source.mkdir()
    (source / "x.txt").write_bytes(b"x")
    zip_path = tmp_path / "out.zip"
    zip_path.write_bytes(b"stale")

    zip_folder(source, zip_path)

    with zipfile.ZipFile(zip_path) as archive:
        assert archive.namelist() == ["x.txt"]


def test_zip_folder_leaves_archive_inside_source_out_of_entries(tmp_path: Path) -> None:
    source = tmp_path / "src"
    source.mkdir()
    (source / "a.txt").write_bytes(b"a" * 200_000)
    zip_path = source / "out.zip"

    first = zip_folder(source, zip_path)
    second = zip_folder(source, zip_path)

    assert [entry.path for entry in first] == ["a.txt"]
    assert [entry.path for entry in second] == ["a.txt"]
    with zipfile.ZipFile(zip_path) as archive:
        assert archive.namelist() == ["a.txt"]
        assert archive.read("a.txt") == b"a" * 200_000
    assert sorted(path.name for path in source.iterdir()) == ["a.txt", "out.zip"]


def test_zip_folder_rejects_bad_paths(tmp_path: Path) -> None:
    source = tmp_path / "src"
    source.mkdir()

    with pytest.raises(InvalidDestinationError):
        zip_folder(tmp_path / "missing", tmp_path / "out.zip")
    with pytest.raises(InvalidDestinationError):
        zip_folder(source, source)
