"""PDF engine port.

PDF byte handling (reading AcroForm widgets, writing values, flattening) is
provided by an external implementation; the core only exchanges field names
and string values through this protocol.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from core.pdf.models import PDFField


class PdfEngine(Protocol):
    """Protocol for PDF form engines."""

    def extract_fields(self, pdf_bytes: bytes) -> list[PDFField]:
        """Return the fillable form fields of a PDF document."""

    def fill_fields(self, pdf_bytes: bytes, values: Mapping[str, str]) -> bytes:
        """Return a copy of the document with the named fields filled."""

    def flatten(self, pdf_bytes: bytes) -> bytes:
        """Return a copy of the document without interactive form annotations."""
