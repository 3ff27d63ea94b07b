from __future__ import annotations

from collections.abc import Mapping

import pytest

from core.pdf.models import PDFField
from core.pdf.registry import load_engine


class EchoEngine:
    def extract_fields(self, pdf_bytes: bytes) -> list[PDFField]:
        return [PDFField(name="Name")]

    def fill_fields(self, pdf_bytes: bytes, values: Mapping[str, str]) -> bytes:
        return pdf_bytes

    def flatten(self, pdf_bytes: bytes) -> bytes:
        return pdf_bytes


class HalfEngine:
    def fill_fields(self, pdf_bytes: bytes, values: Mapping[str, str]) -> bytes:
        return pdf_bytes


def test_load_engine_instantiates_reference() -> None:
    engine = load_engine(f"{__name__}:EchoEngine")

    assert isinstance(engine, EchoEngine)
    assert engine.extract_fields(b"")[0].name == "Name"


@pytest.mark.parametrize(
    ("reference", "message"),
    [
        ("no_colon", "module:attribute"),
        (":EchoEngine", "module:attribute"),
        ("packet_missing_engine_module:Engine", "Unable to import engine module"),
        (f"{__name__}:Missing", "Engine not found"),
        (f"{__name__}:HalfEngine", "missing methods: extract_fields, flatten"),
    ],
)
def test_load_engine_rejects_bad_references(reference: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        load_engine(reference)
