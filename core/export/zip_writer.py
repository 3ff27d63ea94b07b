"""Minimal write-only ZIP archive writer.

Archives use the stored (uncompressed) method. Each entry is written as a
local file header with zeroed CRC/sizes, the raw file bytes streamed in
chunks, and a data descriptor (general-purpose flag bit 3). Filenames are
declared UTF-8 (flag bit 11). A central directory and a single
end-of-central-directory record close the archive.

Only classic ZIP limits are supported: sizes and offsets must fit in 32
bits and an archive holds at most 65535 entries.
"""

from __future__ import annotations

import io
import logging
import os
import struct
import tempfile
from collections.abc import Collection, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from core.utils.errors import (
    ArchiveLimitError,
    DirectoryCreationError,
    FileWriteError,
    InvalidDestinationError,
)

logger = logging.getLogger("packet.export")

LOCAL_FILE_HEADER_SIGNATURE = 0x04034B50
DATA_DESCRIPTOR_SIGNATURE = 0x08074B50
CENTRAL_DIRECTORY_SIGNATURE = 0x02014B50
END_OF_CENTRAL_DIRECTORY_SIGNATURE = 0x06054B50

VERSION = 20
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800
METHOD_STORED = 0
DEFAULT_CHUNK_SIZE = 64 * 1024

_MAX_UINT32 = 0xFFFFFFFF
_MAX_ENTRIES = 0xFFFF
_CRC_POLYNOMIAL = 0xEDB88320
_PACKAGE_SUFFIXES = frozenset(
    {".app", ".bundle", ".framework", ".pkg", ".plugin", ".kext", ".xcodeproj"}
)


def _build_crc_table() -> tuple[int, ...]:
    table: list[int] = []
    for index in range(256):
        crc = index
        for _ in range(8):
            if crc & 1:
                crc = _CRC_POLYNOMIAL ^ (crc >> 1)
            else:
                crc >>= 1
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _build_crc_table()


def crc32_update(crc: int, data: bytes) -> int:
    """Feed ``data`` into a running (pre-inverted) CRC-32 register."""

    table = _CRC_TABLE
    for byte in data:
        crc = table[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc


def crc32(data: bytes) -> int:
    """Return the standard CRC-32 of ``data``."""

    return crc32_update(_MAX_UINT32, data) ^ _MAX_UINT32


@dataclass(frozen=True)
class ZipEntry:
    """Central directory bookkeeping for one archived file."""

    path: str
    crc32: int
    compressed_size: int
    uncompressed_size: int
    local_header_offset: int


def iter_source_files(
    source_dir: Path, exclude: Collection[Path] = ()
) -> Iterator[tuple[Path, str]]:
    """Yield ``(file, posix_relative_path)`` pairs in sorted depth-first order.

    Hidden entries and package-like directories (``*.app``, ``*.bundle``...)
    are skipped entirely, as is any file whose resolved path is in ``exclude``.
    """

    excluded = frozenset(path.resolve() for path in exclude)
    yield from _walk(source_dir, source_dir, excluded)


def write_zip(
    source_dir: Path,
    sink: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    exclude: Collection[Path] = (),
) -> list[ZipEntry]:
    """Write every regular file under ``source_dir`` to ``sink`` as a ZIP archive.

    Files listed in ``exclude`` are left out; ``zip_folder`` uses this to keep
    the archive it is writing out of its own contents.
    """

    writer = _CountingWriter(sink)
    entries: list[ZipEntry] = []

    for file_path, relative_path in iter_source_files(source_dir, exclude):
        if len(entries) >= _MAX_ENTRIES:
            raise ArchiveLimitError(
                f"Archive exceeds {_MAX_ENTRIES} entries", path=source_dir
            )
        entries.append(_write_entry(writer, file_path, relative_path, chunk_size))

    central_directory_offset = writer.offset
    for entry in entries:
        writer.write(_central_directory_record(entry))
    central_directory_size = writer.offset - central_directory_offset

    _check_uint32(central_directory_offset, "central directory offset")
    _check_uint32(central_directory_size, "central directory size")
    writer.write(
        struct.pack(
            "<IHHHHIIH",
            END_OF_CENTRAL_DIRECTORY_SIGNATURE,
            0,
            0,
            len(entries),
            len(entries),
            central_directory_size,
            central_directory_offset,
            0,
        )
    )
    return entries


def zip_directory_bytes(source_dir: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """Return the archive for ``source_dir`` as bytes."""

    buffer = io.BytesIO()
    write_zip(source_dir, buffer, chunk_size=chunk_size)
    return buffer.getvalue()


def zip_folder(
    source_dir: Path,
    zip_path: Path,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> list[ZipEntry]:
    """Archive ``source_dir`` into ``zip_path``, replacing any existing file.

    The archive is written to a temporary file next to ``zip_path`` and moved
    into place only when complete, so a failed run never leaves a truncated
    archive behind.
    """

    if not source_dir.is_dir():
        raise InvalidDestinationError(f"Source is not a directory: {source_dir}", path=source_dir)
    if zip_path.exists() and zip_path.is_dir():
        raise InvalidDestinationError(f"Archive path is a directory: {zip_path}", path=zip_path)

    try:
        zip_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise DirectoryCreationError(
            f"Unable to create directory: {zip_path.parent}", path=zip_path.parent
        ) from exc

    try:
        fd, raw_tmp_path = tempfile.mkstemp(
            dir=zip_path.parent,
            prefix=f"{zip_path.name}.",
            suffix=".tmp",
        )
    except OSError as exc:
        raise FileWriteError(f"Unable to open archive for writing: {zip_path}", path=zip_path) from exc
    tmp_path = Path(raw_tmp_path)

    try:
        with os.fdopen(fd, "wb") as handle:
            entries = write_zip(
                source_dir, handle, chunk_size=chunk_size, exclude=(zip_path, tmp_path)
            )
        tmp_path.replace(zip_path)
    except ArchiveLimitError:
        tmp_path.unlink(missing_ok=True)
        raise
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise FileWriteError(f"Unable to write archive: {zip_path}", path=zip_path) from exc

    logger.info("zip written path=%s entries=%d", zip_path, len(entries))
    return entries


def _write_entry(
    writer: _CountingWriter,
    file_path: Path,
    relative_path: str,
    chunk_size: int,
) -> ZipEntry:
    filename = relative_path.encode("utf-8")
    local_header_offset = writer.offset
    _check_uint32(local_header_offset, "local header offset")

    writer.write(
        struct.pack(
            "<IHHHHHIIIHH",
            LOCAL_FILE_HEADER_SIGNATURE,
            VERSION,
            FLAG_DATA_DESCRIPTOR | FLAG_UTF8,
            METHOD_STORED,
            0,
            0,
            0,
            0,
            0,
            len(filename),
            0,
        )
    )
    writer.write(filename)

    running_crc = _MAX_UINT32
    size = 0
    with file_path.open("rb") as source:
        while True:
            chunk = source.read(chunk_size)
            if not chunk:
                break
            running_crc = crc32_update(running_crc, chunk)
            writer.write(chunk)
            size += len(chunk)

    _check_uint32(size, f"size of {relative_path}")
    checksum = running_crc ^ _MAX_UINT32
    writer.write(struct.pack("<IIII", DATA_DESCRIPTOR_SIGNATURE, checksum, size, size))

    return ZipEntry(
        path=relative_path,
        crc32=checksum,
        compressed_size=size,
        uncompressed_size=size,
        local_header_offset=local_header_offset,
    )


def _central_directory_record(entry: ZipEntry) -> bytes:
    filename = entry.path.encode("utf-8")
    header = struct.pack(
        "<IHHHHHHIIIHHHHHII",
        CENTRAL_DIRECTORY_SIGNATURE,
        VERSION,
        VERSION,
        FLAG_DATA_DESCRIPTOR | FLAG_UTF8,
        METHOD_STORED,
        0,
        0,
        entry.crc32,
        entry.compressed_size,
        entry.uncompressed_size,
        len(filename),
        0,
        0,
        0,
        0,
        0,
        entry.local_header_offset,
    )
    return header + filename


def _walk(
    root: Path, directory: Path, excluded: frozenset[Path]
) -> Iterator[tuple[Path, str]]:
    for child in sorted(directory.iterdir(), key=lambda item: item.name):
        if child.name.startswith("."):
            continue
        if child.is_symlink():
            continue
        if child.is_dir():
            if child.suffix.lower() in _PACKAGE_SUFFIXES:
                continue
            yield from _walk(root, child, excluded)
        elif child.is_file():
            if child.resolve() in excluded:
                continue
            yield child, child.relative_to(root).as_posix()


def _check_uint32(value: int, what: str) -> None:
    if value > _MAX_UINT32:
        raise ArchiveLimitError(f"Archive {what} exceeds 32-bit limit")


class _CountingWriter:
    """Track the number of bytes written to a sink."""

    def __init__(self, sink: BinaryIO) -> None:
        self._sink = sink
        self.offset = 0

    def write(self, data: bytes) -> None:
        self._sink.write(data)
        self.offset += len(data)
