"""Quote-aware CSV parsing for recipient imports.

Rules:
- Any newline convention (``\\n``, ``\\r\\n``, ``\\r``) ends a record.
- Double quotes delimit fields when they open a field; ``""`` inside quotes
  is a literal quote and quoted fields may span physical lines. A quote in
  the middle of an unquoted field is kept as data.
- Fields are trimmed after unquoting; blank lines are dropped.
- Data rows whose field count differs from the header are skipped.
- A file with no data rows parses to an empty table.
"""

from __future__ import annotations

from datetime import datetime

from core.mapping.normalizer import normalize_name
from core.recipients.models import CSVFileReference, CSVImportSnapshot, CSVTable, Recipient
from core.recipients.resolver import builtin_field_for_key

_QUOTE = '"'
_COMMA = ","


def parse_csv(text: str) -> CSVTable:
    """Parse CSV text into headers and well-formed rows.

    Empty and header-only input both yield an empty table; use
    :func:`parse_headers` or :func:`parse_preview` to read the header line of
    a file without data rows.
    """

    records = parse_records(text)
    if len(records) < 2:
        return CSVTable()

    headers = records[0]
    rows = [record for record in records[1:] if len(record) == len(headers)]
    return CSVTable(headers=headers, rows=rows)


def parse_headers(text: str) -> list[str]:
    """Return the trimmed header record, or an empty list for empty input."""

    records = parse_records(text)
    return records[0] if records else []


def parse_preview(text: str, max_rows: int = 20) -> CSVTable:
    """Parse headers plus the first ``max_rows`` rows for display.

    Unlike :func:`parse_csv`, ragged rows are kept and every row (and the
    header) is padded with empty strings to the widest record.
    """

    records = parse_records(text)
    if not records:
        return CSVTable()

    headers = records[0]
    sample = records[1 : 1 + max(0, max_rows)]
    width = max([len(headers), *(len(row) for row in sample)])

    return CSVTable(
        headers=_pad(headers, width),
        rows=[_pad(row, width) for row in sample],
    )


def parse_recipients(text: str) -> list[Recipient]:
    """Parse CSV text into recipients.

    Header synonyms for first name, last name, email, and phone fill the
    structured fields; every other column is kept in ``custom_fields`` under
    its original header. A full-name column is split into first and last
    name when no explicit name columns are present. Rows without an email
    are dropped.
    """

    table = parse_csv(text)
    if not table.headers:
        return []

    recipients: list[Recipient] = []
    for row in table.rows:
        recipient = _row_to_recipient(table.headers, row)
        if recipient is not None:
            recipients.append(recipient)
    return recipients


def build_snapshot(
    headers: list[str],
    *,
    original_file_name: str,
    local_path: str,
    imported_at: datetime | None = None,
) -> CSVImportSnapshot:
    """Build an import snapshot with index-aligned normalized headers."""

    reference_kwargs: dict[str, object] = {
        "original_file_name": original_file_name,
        "local_path": local_path,
    }
    if imported_at is not None:
        reference_kwargs["imported_at"] = imported_at

    return CSVImportSnapshot(
        reference=CSVFileReference.model_validate(reference_kwargs),
        headers=list(headers),
        normalized_headers=[normalize_name(header) for header in headers],
    )


def parse_records(text: str) -> list[list[str]]:
    """Split CSV text into trimmed records, dropping blank lines."""

    records: list[list[str]] = []
    record: list[str] = []
    chars: list[str] = []
    inside_quotes = False
    index = 0
    length = len(text)

    def commit_field() -> None:
        record.append("".join(chars).strip())
        chars.clear()

    def commit_record() -> None:
        if len(record) == 1 and not record[0]:
            record.clear()
            return
        if record:
            records.append(list(record))
        record.clear()

    while index < length:
        char = text[index]

        if inside_quotes:
            if char == _QUOTE:
                if index + 1 < length and text[index + 1] == _QUOTE:
                    chars.append(_QUOTE)
                    index += 2
                    continue
                inside_quotes = False
            else:
                chars.append(char)
            index += 1
            continue

        if char == _QUOTE and not "".join(chars).strip():
            # Quotes only open at the start of a field; elsewhere they are data.
            inside_quotes = True
        elif char == _COMMA:
            commit_field()
        elif char == "\n":
            commit_field()
            commit_record()
        elif char == "\r":
            commit_field()
            commit_record()
            if index + 1 < length and text[index + 1] == "\n":
                index += 1
        else:
            chars.append(char)
        index += 1

    # An unterminated quote keeps the remaining text as the last field.
    if chars or record:
        commit_field()
        commit_record()

    return records


def _row_to_recipient(headers: list[str], row: list[str]) -> Recipient | None:
    first_name = ""
    last_name = ""
    full_name = ""
    email = ""
    phone_number: str | None = None
    custom_fields: dict[str, str] = {}

    for header, value in zip(headers, row):
        builtin = builtin_field_for_key(header)
        if builtin == "first_name":
            first_name = value
        elif builtin == "last_name":
            last_name = value
        elif builtin == "email":
            email = value
        elif builtin == "phone":
            phone_number = value
        else:
            if builtin == "full_name" and not full_name:
                full_name = value
            custom_fields[header] = value

    if not email.strip():
        return None

    if full_name and not first_name and not last_name:
        first_name, _, last_name = full_name.partition(" ")
        last_name = last_name.strip()

    return Recipient(
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone_number=phone_number,
        custom_fields=custom_fields,
        source="csv",
    )


def _pad(values: list[str], width: int) -> list[str]:
    return values + [""] * (width - len(values))
