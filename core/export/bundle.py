"""Batch export of generated packets into a folder bundle.

Layout::

    Export-<template>-<yyyyMMdd-HHmmss>/
        Summary.csv
        <Recipient Name>-<id8>/
            Packet.pdf
            Message.txt        (only when a non-blank message is provided)
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from core.export.filenames import csv_line, sanitize_file_component
from core.recipients.models import Recipient
from core.recipients.name_scoring import recipient_display_name
from core.utils.errors import DirectoryCreationError, FileWriteError, InvalidDestinationError

logger = logging.getLogger("packet.export")

PACKET_FILE_NAME = "Packet.pdf"
MESSAGE_FILE_NAME = "Message.txt"
SUMMARY_FILE_NAME = "Summary.csv"
SUMMARY_HEADER = ["Recipient Name", "Email", "Folder", "PDF File", "Message File"]

MessageProvider = Callable[[Recipient, str], "str | None"]


@dataclass(frozen=True)
class GeneratedItem:
    """One recipient's generated packet bytes."""

    recipient: Recipient
    pdf_bytes: bytes
    message: str | None = None


def bundle_folder_name(template_name: str, now: datetime) -> str:
    """Return ``Export-<sanitized template>-<UTC yyyyMMdd-HHmmss>``."""

    timestamp = now.astimezone(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"Export-{sanitize_file_component(template_name)}-{timestamp}"


def recipient_folder_name(recipient: Recipient) -> str:
    """Return ``<sanitized display name>-<8-char id prefix>``."""

    short_id = str(recipient.id)[:8].upper()
    name = sanitize_file_component(recipient_display_name(recipient))
    return f"{name}-{short_id}" if name else f"Recipient-{short_id}"


def export_bundle(
    items: Sequence[GeneratedItem],
    template_name: str,
    parent_dir: Path,
    message_provider: MessageProvider | None = None,
    now: datetime | None = None,
) -> Path:
    """Write a bundle folder under ``parent_dir`` and return its path.

    When ``message_provider`` is given it is called with the recipient and
    the packet file name; otherwise ``item.message`` is used.

    Raises:
        InvalidDestinationError: ``parent_dir`` exists but is not a directory.
        DirectoryCreationError: a bundle or recipient folder cannot be created.
        FileWriteError: a packet, message, or summary file cannot be written.
    """

    if parent_dir.exists() and not parent_dir.is_dir():
        raise InvalidDestinationError(
            f"Export destination is not a directory: {parent_dir}", path=parent_dir
        )

    bundle_dir = parent_dir / bundle_folder_name(template_name, now or datetime.now(timezone.utc))
    _create_directory(bundle_dir)

    summary_rows = [csv_line(SUMMARY_HEADER)]
    for item in items:
        folder_name = recipient_folder_name(item.recipient)
        recipient_dir = bundle_dir / folder_name
        _create_directory(recipient_dir)

        _atomic_write_bytes(recipient_dir / PACKET_FILE_NAME, item.pdf_bytes)

        if message_provider is not None:
            message = message_provider(item.recipient, PACKET_FILE_NAME)
        else:
            message = item.message

        message_file = ""
        if message is not None and message.strip():
            _atomic_write_bytes(recipient_dir / MESSAGE_FILE_NAME, message.encode("utf-8"))
            message_file = MESSAGE_FILE_NAME

        summary_rows.append(
            csv_line(
                [
                    recipient_display_name(item.recipient),
                    item.recipient.email,
                    folder_name,
                    PACKET_FILE_NAME,
                    message_file,
                ]
            )
        )

    _atomic_write_bytes(bundle_dir / SUMMARY_FILE_NAME, "\n".join(summary_rows).encode("utf-8"))
    logger.info("bundle exported path=%s recipients=%d", bundle_dir, len(items))
    return bundle_dir


def _create_directory(path: Path) -> None:
    if path.is_dir():
        return
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise DirectoryCreationError(f"Unable to create directory: {path}", path=path) from exc


def _atomic_write_bytes(path: Path, payload: bytes) -> None:
    try:
        fd, raw_tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f"{path.name}.", suffix=".tmp")
    except OSError as exc:
        raise FileWriteError(f"Unable to write file: {path}", path=path) from exc
    tmp_path = Path(raw_tmp_path)

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        tmp_path.replace(path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise FileWriteError(f"Unable to write file: {path}", path=path) from exc
