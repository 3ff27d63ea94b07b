"""Custom exceptions for core logic."""

from __future__ import annotations

from pathlib import Path
from uuid import UUID


class ExportError(Exception):
    """Base error for bundle export and archive writing failures."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class InvalidDestinationError(ExportError):
    """Raised when the export destination is not a usable directory."""


class DirectoryCreationError(ExportError):
    """Raised when an output directory cannot be created."""


class FileWriteError(ExportError):
    """Raised when an output file cannot be opened or written."""


class ArchiveLimitError(ExportError):
    """Raised when an archive would exceed classic (non-ZIP64) limits."""


class PacketGenerationError(Exception):
    """Raised when the PDF engine fails to produce a packet for a recipient."""

    def __init__(self, message: str, *, recipient_id: UUID | None = None) -> None:
        super().__init__(message)
        self.recipient_id = recipient_id
