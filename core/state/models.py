"""Persisted application state."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from core.export.send_log import SendLog
from core.messages.models import MessageTemplate
from core.pdf.models import PDFField
from core.recipients.models import CSVImportSnapshot, Recipient


class PacketTemplate(BaseModel):
    """A PDF form plus the mapping of its fields to recipient data."""

    model_config = ConfigDict(extra="forbid")

    id: UUID = Field(default_factory=uuid4)
    name: str
    pdf_file_path: str | None = None
    fields: list[PDFField] = Field(default_factory=list)
    # PDF field name -> stored mapping target
    field_mappings: dict[str, str] = Field(default_factory=dict)
    message_template: MessageTemplate | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AppState(BaseModel):
    """Everything the application persists between runs."""

    model_config = ConfigDict(extra="forbid")

    packet_template: PacketTemplate | None = None
    recipients: list[Recipient] = Field(default_factory=list)
    send_logs: list[SendLog] = Field(default_factory=list)
    csv_import: CSVImportSnapshot | None = None
    selected_display_name_column: str | None = None

    def replace_template(self, template: PacketTemplate | None) -> AppState:
        """Return a copy with a new template and the data tied to the old one cleared."""

        return self.model_copy(
            update={
                "packet_template": template,
                "recipients": [],
                "send_logs": [],
                "csv_import": None,
                "selected_display_name_column": None,
            }
        )

    def add_send_log(self, log: SendLog) -> AppState:
        return self.model_copy(update={"send_logs": [*self.send_logs, log]})
