"""Send-log records and CSV exports."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from core.export.filenames import csv_line
from core.recipients.models import Recipient

SendMethod = Literal["Share", "Mail"]

SEND_LOG_HEADER = ["Recipient Name", "Template Name", "Output Filename", "Sent Date", "Method"]
RECIPIENTS_HEADER = ["First Name", "Last Name", "Email", "Phone Number"]
SENT_DATE_FORMAT = "%m-%d-%y"


class SendLog(BaseModel):
    """One packet handed off to a share or mail channel."""

    model_config = ConfigDict(extra="forbid")

    id: UUID = Field(default_factory=uuid4)
    recipient_name: str
    template_name: str
    output_file_name: str
    sent_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    method: SendMethod

    @property
    def formatted_sent_date(self) -> str:
        return self.sent_date.strftime(SENT_DATE_FORMAT)


def export_send_logs_csv(logs: Iterable[SendLog]) -> str:
    lines = [csv_line(SEND_LOG_HEADER)]
    for log in logs:
        lines.append(
            csv_line(
                [
                    log.recipient_name,
                    log.template_name,
                    log.output_file_name,
                    log.formatted_sent_date,
                    log.method,
                ]
            )
        )
    return "\n".join(lines) + "\n"


def export_recipients_csv(recipients: Iterable[Recipient]) -> str:
    """Write recipients back out in the importable four-column layout."""

    lines = [csv_line(RECIPIENTS_HEADER)]
    for recipient in recipients:
        lines.append(
            csv_line(
                [
                    recipient.first_name,
                    recipient.last_name,
                    recipient.email,
                    recipient.phone_number or "",
                ]
            )
        )
    return "\n".join(lines) + "\n"
