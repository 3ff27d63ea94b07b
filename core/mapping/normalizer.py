"""Tokenize and classify free-form field/header names.

The same normalizer is applied to PDF form field names and CSV headers so
both sides of a mapping are compared in one vocabulary. Classification is a
pure function of the token list, which keeps automatic mapping repeatable.
"""

from __future__ import annotations

import re

from core.mapping.models import FieldHint, NormalizedName

_STOPWORDS = frozenset(
    {
        "the",
        "a",
        "an",
        "and",
        "or",
        "of",
        "to",
        "for",
        "in",
        "on",
        "at",
        "field",
        "value",
        "text",
    }
)
_NUMERIC_RE = re.compile(r"[0-9]+")


def normalize_name(raw: str) -> NormalizedName:
    """Build the normalized view of ``raw``; ``original`` keeps the input as given."""

    tokens = tokenize(raw.strip())
    return NormalizedName(original=raw, tokens=tuple(tokens), hint=hint_for_tokens(tokens))


def tokenize(text: str) -> list[str]:
    """Split ``text`` into lowercase tokens without stopwords or pure numbers.

    ``"Date1"`` and ``"Date 1"`` both yield ``["date"]``; ``"firstName"``
    yields ``["first", "name"]``.
    """

    if not text:
        return []

    spaced = _split_camel_and_digit_boundaries(text)
    parts = _fold_alnum(spaced.lower()).split()

    return [
        token
        for token in parts
        if token not in _STOPWORDS and _NUMERIC_RE.fullmatch(token) is None
    ]


def hint_for_tokens(tokens: list[str] | tuple[str, ...]) -> FieldHint:
    """Classify tokens into one hint using a fixed priority order.

    Signature is checked before everything else so that names such as
    ``"Signature Date"`` are never treated as plain dates.
    """

    token_set = set(tokens)

    if token_set & {"signature", "sign", "signed"}:
        return "signature"
    if token_set & {"initial", "initials"}:
        return "initials"
    if "email" in token_set or {"e", "mail"} <= token_set:
        return "email"
    if token_set & {"phone", "tel", "mobile"}:
        return "phone"
    if token_set & {"date", "dated"}:
        return "date"
    if {"first", "name"} <= token_set:
        return "first_name"
    if {"last", "name"} <= token_set:
        return "last_name"
    if {"full", "name"} <= token_set or "fullname" in token_set:
        return "full_name"

    # A lone "Name" (ParentName, StudentName after stopwords, ...) is ambiguous.
    if "name" in token_set:
        return "unknown" if len(tokens) <= 1 else "full_name"

    return "unknown"


def _split_camel_and_digit_boundaries(text: str) -> str:
    if len(text) < 2:
        return text

    chars: list[str] = [text[0]]
    for prev, curr in zip(text, text[1:]):
        if _is_boundary(prev, curr):
            chars.append(" ")
        chars.append(curr)
    return "".join(chars)


def _is_boundary(prev: str, curr: str) -> bool:
    if prev.islower() and curr.isupper():
        return True
    if prev.isdigit() and curr.isalpha():
        return True
    if prev.isalpha() and curr.isdigit():
        return True
    return False


def _fold_alnum(text: str) -> str:
    # Unicode letters and digits are alphanumeric too.
    return "".join(char if char.isalnum() else " " for char in text)
