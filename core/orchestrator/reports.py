"""Report builders shared by the CLI and the HTTP API."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from core.config.settings import AppSettings
from core.export.bundle import PACKET_FILE_NAME
from core.mapping.auto_mapper import auto_map_fields, build_candidates, sanitize_mapping
from core.mapping.models import FieldHint
from core.mapping.normalizer import normalize_name
from core.messages.models import MessageTemplate, MessageValidation
from core.messages.tokens import MessageContext
from core.orchestrator.pipeline import build_message
from core.pdf.models import PDFField
from core.recipients.column_detection import detect_display_name_column, detect_email_column
from core.recipients.csv_parser import build_snapshot, parse_csv, parse_preview, parse_recipients
from core.recipients.name_scoring import recipient_display_name
from core.state.models import PacketTemplate


class HeaderSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    header: str
    tokens: list[str]
    hint: FieldHint


class CsvPreviewReport(BaseModel):
    """Headers, sample rows, and detected columns of an uploaded CSV."""

    model_config = ConfigDict(extra="forbid")

    headers: list[HeaderSummary] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)
    row_count: int = 0
    recipient_count: int = 0
    email_column: str | None = None
    display_name_column: str | None = None
    email_confidence: dict[str, float] = Field(default_factory=dict)
    display_name_confidence: dict[str, float] = Field(default_factory=dict)


class MappingSuggestion(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mapping: dict[str, str] = Field(default_factory=dict)
    newly_mapped: list[str] = Field(default_factory=list)
    unmapped: list[str] = Field(default_factory=list)


class RecipientMessage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    recipient_id: str
    recipient_name: str
    email: str
    subject: str
    body: str
    validation: MessageValidation


def preview_csv(text: str, max_rows: int = 20) -> CsvPreviewReport:
    """Summarize a CSV for display before import."""

    preview = parse_preview(text, max_rows=max_rows)
    table = parse_csv(text)
    email = detect_email_column(table)
    display_name = detect_display_name_column(table)

    headers = []
    for header in preview.headers:
        normalized = normalize_name(header)
        headers.append(
            HeaderSummary(header=header, tokens=list(normalized.tokens), hint=normalized.hint)
        )

    return CsvPreviewReport(
        headers=headers,
        rows=preview.rows,
        row_count=len(table.rows),
        recipient_count=len(parse_recipients(text)),
        email_column=email.selected_header,
        display_name_column=display_name.selected_header,
        email_confidence=_rounded(email.confidence_by_header),
        display_name_confidence=_rounded(display_name.confidence_by_header),
    )


def suggest_mapping(
    headers: Sequence[str],
    field_names: Sequence[str],
    existing: Mapping[str, str] | None = None,
    *,
    original_file_name: str = "",
    local_path: str = "",
) -> MappingSuggestion:
    """Auto-map PDF fields against built-ins, computed values, and CSV headers.

    Existing entries that point at headers no longer present are dropped
    before mapping; the remaining ones are never overwritten.
    """

    snapshot = build_snapshot(
        list(headers), original_file_name=original_file_name, local_path=local_path
    )
    fields = [PDFField(name=name) for name in field_names]
    cleaned = sanitize_mapping(existing or {}, snapshot.headers)
    result = auto_map_fields(fields, build_candidates(snapshot), cleaned)

    return MappingSuggestion(
        mapping=result.mapping,
        newly_mapped=result.newly_mapped,
        unmapped=[field.name for field in fields if field.name not in result.mapping],
    )


def render_messages(
    text: str,
    template: MessageTemplate,
    settings: AppSettings,
    *,
    packet_title: str = "",
    today: date | None = None,
) -> list[RecipientMessage]:
    """Render one message per CSV recipient with the configured token mode."""

    table = parse_csv(text)
    packet = PacketTemplate(
        name=packet_title,
        message_template=template.model_copy(update={"is_enabled": True}),
    )
    rendered_date = (today or date.today()).strftime(settings.date_format)

    messages: list[RecipientMessage] = []
    for recipient in parse_recipients(text):
        context = MessageContext(
            recipient=recipient,
            packet_title=packet_title,
            file_name=PACKET_FILE_NAME,
            sender_name=settings.sender_name,
            sender_email=settings.sender_email,
            date=rendered_date,
        )
        result = build_message(packet, context, settings, table.headers)
        if result is None:
            continue
        messages.append(
            RecipientMessage(
                recipient_id=str(recipient.id),
                recipient_name=recipient_display_name(recipient),
                email=recipient.email,
                subject=result.subject,
                body=result.body,
                validation=result.validation,
            )
        )
    return messages


def _rounded(scores: Mapping[str, float]) -> dict[str, float]:
    return {header: round(score, 4) for header, score in scores.items()}
