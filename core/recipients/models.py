"""Recipient and CSV import models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.mapping.models import NormalizedName
from core.mapping.normalizer import normalize_name

RecipientSource = Literal["contacts", "csv", "manual"]


class Recipient(BaseModel):
    """One person a packet is generated for."""

    model_config = ConfigDict(extra="forbid")

    id: UUID = Field(default_factory=uuid4)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone_number: str | None = None
    custom_fields: dict[str, str] = Field(default_factory=dict)
    source: RecipientSource = "manual"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class CSVTable:
    """Parsed CSV headers and data rows."""

    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)


@dataclass(frozen=True)
class ColumnDetection:
    """Result of a single-column detection pass over a CSV table."""

    selected_header: str | None
    confidence_by_header: dict[str, float] = field(default_factory=dict)


class CSVFileReference(BaseModel):
    """Where an imported CSV came from and where its copy is stored."""

    model_config = ConfigDict(extra="forbid")

    original_file_name: str
    local_path: str
    imported_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CSVImportSnapshot(BaseModel):
    """Headers of the last imported CSV, with index-aligned normalized names."""

    model_config = ConfigDict(extra="forbid")

    reference: CSVFileReference
    headers: list[str] = Field(default_factory=list)
    normalized_headers: list[NormalizedName] = Field(default_factory=list)

    @model_validator(mode="after")
    def _align_normalized_headers(self) -> CSVImportSnapshot:
        aligned = len(self.normalized_headers) == len(self.headers) and all(
            item.original == header for item, header in zip(self.normalized_headers, self.headers)
        )
        if not aligned:
            self.normalized_headers = [normalize_name(header) for header in self.headers]
        return self
