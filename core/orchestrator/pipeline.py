"""Packet generation pipeline: resolve fill values, fill, flatten, render messages."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from core.config.settings import AppSettings
from core.export.bundle import (
    PACKET_FILE_NAME,
    GeneratedItem,
    export_bundle,
    recipient_folder_name,
)
from core.export.send_log import SendLog, SendMethod
from core.export.zip_writer import zip_folder
from core.mapping.models import BuiltInTarget, ComputedKind, ComputedTarget
from core.mapping.targets import parse_mapping_target
from core.messages.models import MessageRenderResult
from core.messages.renderer import render_legacy_message, render_message
from core.messages.tokens import (
    MessageContext,
    allowed_tokens,
    build_token_vocabulary,
    legacy_token_values,
    resolve_token_values,
)
from core.pdf.engine import PdfEngine
from core.recipients.models import Recipient
from core.recipients.name_scoring import best_name_from_custom_fields, recipient_display_name
from core.recipients.resolver import resolve_value
from core.state.models import AppState, PacketTemplate
from core.utils.errors import PacketGenerationError

logger = logging.getLogger("packet.pipeline")


def computed_value(kind: ComputedKind, recipient: Recipient, today: date, date_format: str) -> str:
    """Return the value a computed mapping target produces for ``recipient``."""

    if kind == "today":
        return today.strftime(date_format)
    if kind == "initials":
        return _initials(recipient)
    return ""


def build_fill_values(
    template: PacketTemplate,
    recipient: Recipient,
    today: date,
    date_format: str,
) -> dict[str, str]:
    """Resolve every mapped PDF field to its string value for one recipient.

    Blank mappings are skipped. Targets that no longer resolve (a CSV header
    that is missing or ambiguous for this recipient) fill as ``""``.
    """

    values: dict[str, str] = {}
    for field_name, raw in template.field_mappings.items():
        if not raw.strip():
            continue

        target = parse_mapping_target(raw)
        if isinstance(target, ComputedTarget):
            values[field_name] = computed_value(target.kind, recipient, today, date_format)
            continue

        key = target.property if isinstance(target, BuiltInTarget) else target.name
        values[field_name] = resolve_value(recipient, key) or ""
    return values


def required_field_issues(fill_values: dict[str, str]) -> list[str]:
    """Describe mapped fields that resolved to a blank value."""

    return [
        f"{field_name} has no value"
        for field_name in sorted(fill_values)
        if not fill_values[field_name].strip()
    ]


def build_message(
    template: PacketTemplate,
    context: MessageContext,
    settings: AppSettings,
    csv_headers: Iterable[str] = (),
    issues: Sequence[str] = (),
) -> MessageRenderResult | None:
    """Render the template's message for one recipient, or None when disabled."""

    message_template = template.message_template
    if message_template is None or not message_template.is_enabled:
        return None

    if settings.token_mode == "legacy":
        return render_legacy_message(message_template, legacy_token_values(context))

    vocabulary = build_token_vocabulary(csv_headers, message_template.token_bindings)
    return render_message(
        message_template,
        allowed_tokens(vocabulary),
        resolve_token_values(context, vocabulary),
        issues,
    )


def message_text(result: MessageRenderResult) -> str:
    """Flatten a rendered message into the plain text written next to a packet."""

    if not result.subject.strip():
        return result.body
    return f"Subject: {result.subject}\n\n{result.body}"


def generate_packets(
    template: PacketTemplate,
    pdf_bytes: bytes,
    recipients: Sequence[Recipient],
    engine: PdfEngine,
    settings: AppSettings,
    today: date | None = None,
    csv_headers: Iterable[str] = (),
) -> list[GeneratedItem]:
    """Fill the template once per recipient and render each message."""

    current_day = today or date.today()
    headers = list(csv_headers)
    items: list[GeneratedItem] = []

    for recipient in recipients:
        fill_values = build_fill_values(template, recipient, current_day, settings.date_format)
        try:
            filled = engine.fill_fields(pdf_bytes, fill_values)
            if settings.flatten_output:
                filled = engine.flatten(filled)
        except Exception as exc:
            raise PacketGenerationError(
                f"PDF engine failed for recipient {recipient.id}", recipient_id=recipient.id
            ) from exc

        context = MessageContext(
            recipient=recipient,
            packet_title=template.name,
            file_name=PACKET_FILE_NAME,
            sender_name=settings.sender_name,
            sender_email=settings.sender_email,
            date=current_day.strftime(settings.date_format),
        )
        result = build_message(
            template, context, settings, headers, required_field_issues(fill_values)
        )
        if result is not None and not result.validation.is_clean:
            logger.warning(
                "message validation recipient=%s unknown=%s unresolved=%s",
                recipient.id,
                result.validation.unknown_tokens,
                result.validation.unresolved_tokens,
            )

        items.append(
            GeneratedItem(
                recipient=recipient,
                pdf_bytes=filled,
                message=message_text(result) if result is not None else None,
            )
        )

    logger.info("packets generated template=%s recipients=%d", template.name, len(items))
    return items


@dataclass(frozen=True)
class ExportResult:
    """Where an export landed and the state updated with its send logs."""

    bundle_dir: Path
    archive_path: Path | None
    item_count: int
    state: AppState


def run_export(
    state: AppState,
    pdf_bytes: bytes,
    engine: PdfEngine,
    settings: AppSettings,
    out_dir: Path,
    *,
    archive: bool = False,
    method: SendMethod = "Share",
    today: date | None = None,
    now: datetime | None = None,
) -> ExportResult:
    """Generate packets for every recipient in ``state`` and export them.

    Writes the bundle folder, optionally archives it next to the folder, and
    returns ``state`` with one send log per exported packet appended.

    Raises:
        ValueError: ``state`` has no packet template.
        PacketGenerationError: the engine failed for a recipient.
        ExportError: the bundle or archive could not be written.
    """

    template = state.packet_template
    if template is None:
        raise ValueError("State has no packet template")

    csv_headers = state.csv_import.headers if state.csv_import is not None else []
    items = generate_packets(
        template,
        pdf_bytes,
        state.recipients,
        engine,
        settings,
        today=today,
        csv_headers=csv_headers,
    )
    bundle_dir = export_bundle(items, template.name, out_dir, now=now)

    archive_path: Path | None = None
    if archive:
        archive_path = bundle_dir.with_name(f"{bundle_dir.name}.zip")
        zip_folder(bundle_dir, archive_path, chunk_size=settings.zip_chunk_size)

    updated = state
    for item in items:
        if archive_path is not None:
            output_file_name = archive_path.name
        else:
            output_file_name = (
                f"{bundle_dir.name}/{recipient_folder_name(item.recipient)}/{PACKET_FILE_NAME}"
            )
        updated = updated.add_send_log(
            SendLog(
                recipient_name=recipient_display_name(item.recipient),
                template_name=template.name,
                output_file_name=output_file_name,
                method=method,
            )
        )

    logger.info(
        "export finished bundle=%s archive=%s recipients=%d",
        bundle_dir,
        archive_path,
        len(items),
    )
    return ExportResult(
        bundle_dir=bundle_dir, archive_path=archive_path, item_count=len(items), state=updated
    )


def _initials(recipient: Recipient) -> str:
    words = [part for part in (recipient.first_name.strip(), recipient.last_name.strip()) if part]
    if not words:
        words = (best_name_from_custom_fields(recipient.custom_fields) or "").split()
    return "".join(word[0] for word in words).upper()
