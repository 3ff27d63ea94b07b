"""Filesystem-safe name helpers for export paths."""

from __future__ import annotations

import re

MAX_COMPONENT_LENGTH = 60

_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9\-_ ]")
_UNDERSCORE_RUN_RE = re.compile(r"__+")


def sanitize_file_component(raw: str) -> str:
    """Reduce ``raw`` to ASCII letters, digits, ``-``, ``_`` and spaces.

    Every other character becomes ``_``, underscore runs collapse to one,
    leading/trailing spaces and underscores are removed, and the result is
    cut to 60 characters. Returns ``""`` for blank input.
    """

    trimmed = raw.strip()
    if not trimmed:
        return ""

    mapped = _DISALLOWED_RE.sub("_", trimmed)
    collapsed = _UNDERSCORE_RUN_RE.sub("_", mapped).strip(" _")
    return collapsed[:MAX_COMPONENT_LENGTH]


def escape_csv_field(value: str) -> str:
    """Quote a CSV field when it contains a comma, quote, or line break."""

    if any(char in value for char in ',"\n\r'):
        return '"' + value.replace('"', '""') + '"'
    return value


def csv_line(values: list[str]) -> str:
    return ",".join(escape_csv_field(value) for value in values)
