"""Detect the email and display-name columns of an imported CSV.

Each header gets a confidence in ``[0, 1]`` from its header tokens and the
shape of its sample values. A column is selected only when exactly one
clear winner clears the threshold; otherwise the user has to choose.
"""

from __future__ import annotations

from collections.abc import Callable

from core.mapping.normalizer import normalize_name
from core.recipients.models import ColumnDetection, CSVTable
from core.recipients.name_scoring import person_name_score

_MIN_SAMPLES = 3

_EMAIL_THRESHOLD = 0.85
_EMAIL_SEPARATION = 0.15
_DISPLAY_NAME_THRESHOLD = 0.60
_DISPLAY_NAME_SEPARATION = 0.12

_ADDRESS_TOKENS = frozenset({"address", "city", "state", "zip", "postal"})
_GROUP_TOKENS = frozenset({"team", "club", "org", "organization", "school"})


def detect_email_column(table: CSVTable, sample_limit: int = 25) -> ColumnDetection:
    """Detect the column holding recipient email addresses."""

    def combine(tokens: frozenset[str], values: list[str]) -> float:
        return (
            0.90 * _email_value_score(values)
            + 0.10 * _email_header_score(tokens)
            + _email_header_penalty(tokens)
        )

    return _detect(table, sample_limit, combine, _EMAIL_THRESHOLD, _EMAIL_SEPARATION)


def detect_display_name_column(table: CSVTable, sample_limit: int = 25) -> ColumnDetection:
    """Detect a presentation-only column naming each recipient."""

    def combine(tokens: frozenset[str], values: list[str]) -> float:
        return (
            0.70 * _display_name_value_score(values)
            + 0.30 * _display_name_header_score(tokens)
            + _display_name_header_penalty(tokens)
        )

    return _detect(
        table, sample_limit, combine, _DISPLAY_NAME_THRESHOLD, _DISPLAY_NAME_SEPARATION
    )


def looks_like_email(raw: str) -> bool:
    """Cheap structural email check: one ``@``, non-empty parts, dotted domain."""

    value = raw.strip()
    if not value or " " in value:
        return False

    parts = value.split("@")
    if len(parts) != 2:
        return False
    local, domain = parts
    if not local or not domain:
        return False
    return "." in domain and not domain.endswith(".")


def _detect(
    table: CSVTable,
    sample_limit: int,
    combine: Callable[[frozenset[str], list[str]], float],
    threshold: float,
    separation: float,
) -> ColumnDetection:
    rows = table.rows[:sample_limit]
    scores: dict[str, float] = {}

    for index, raw_header in enumerate(table.headers):
        header = raw_header.strip()
        if not header:
            continue

        tokens = normalize_name(header).token_set
        values = [
            row[index].strip() for row in rows if index < len(row) and row[index].strip()
        ]
        scores[header] = max(0.0, min(1.0, combine(tokens, values)))

    winners = sorted(
        ((header, score) for header, score in scores.items() if score >= threshold),
        key=lambda item: item[1],
        reverse=True,
    )
    if not winners:
        return ColumnDetection(selected_header=None, confidence_by_header=scores)
    if len(winners) >= 2 and winners[0][1] - winners[1][1] < separation:
        return ColumnDetection(selected_header=None, confidence_by_header=scores)
    return ColumnDetection(selected_header=winners[0][0], confidence_by_header=scores)


def _has_email_token(tokens: frozenset[str]) -> bool:
    return "email" in tokens or "emailaddress" in tokens or {"e", "mail"} <= tokens


def _email_header_score(tokens: frozenset[str]) -> float:
    return 1.0 if _has_email_token(tokens) else 0.0


def _email_header_penalty(tokens: frozenset[str]) -> float:
    if tokens & {"cc", "bcc", "reply", "subject"}:
        return -0.30
    return 0.0


def _email_value_score(values: list[str]) -> float:
    if len(values) < _MIN_SAMPLES:
        return 0.0
    return sum(1 for value in values if looks_like_email(value)) / len(values)


def _display_name_header_score(tokens: frozenset[str]) -> float:
    if "name" in tokens and tokens & {"student", "parent", "guardian"}:
        return 1.0
    if "fullname" in tokens or {"full", "name"} <= tokens:
        return 0.95
    if "name" in tokens:
        return 0.80
    if tokens & {"first", "firstname"}:
        return 0.55
    if tokens & {"last", "lastname"}:
        return 0.45
    return 0.0


def _display_name_header_penalty(tokens: frozenset[str]) -> float:
    if _has_email_token(tokens):
        return -0.50
    if tokens & {"phone", "phonenumber", "tel", "telephone"}:
        return -0.40
    if tokens & {"date", "time"}:
        return -0.35
    if tokens & _GROUP_TOKENS:
        return -0.35
    if tokens & _ADDRESS_TOKENS:
        return -0.35
    if "id" in tokens:
        return -0.25
    return 0.0


def _display_name_value_score(values: list[str]) -> float:
    if len(values) < _MIN_SAMPLES:
        return 0.0
    return sum(person_name_score(value) for value in values) / len(values)
