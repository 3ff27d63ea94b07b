"""Form field model exchanged with the PDF engine."""

from __future__ import annotations

from functools import cached_property
from typing import Literal

from pydantic import BaseModel, ConfigDict

from core.mapping.models import NormalizedName
from core.mapping.normalizer import normalize_name

FieldType = Literal["text", "number", "date", "checkbox"]


class PDFField(BaseModel):
    """One fillable form field as extracted from a PDF template."""

    model_config = ConfigDict(extra="forbid")

    name: str
    type: FieldType = "text"
    default_value: str | None = None

    @cached_property
    def normalized(self) -> NormalizedName:
        return normalize_name(self.name)
