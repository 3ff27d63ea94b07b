"""Heuristics for recognising person-name values."""

from __future__ import annotations

from collections.abc import Mapping

from core.mapping.normalizer import normalize_name
from core.recipients.models import Recipient

_NAME_HEADER_SCORE = 0.6
_PERSON_ROLE_BONUS = 0.2
_GROUP_PENALTY = 0.4
_VALUE_SHAPE_WEIGHT = 0.6
_BEST_NAME_THRESHOLD = 0.75

_PERSON_ROLE_TOKENS = frozenset({"student", "parent", "guardian"})
_GROUP_TOKENS = frozenset({"team", "club", "org", "organization"})
_NOT_NAME_TOKENS = frozenset({"email", "phone", "date"})


def person_name_score(raw: str) -> float:
    """Score in ``[0, 1]`` how much ``raw`` looks like a person's name."""

    value = raw.strip()
    if not value or "@" in value:
        return 0.0
    if any(char.isdigit() for char in value):
        return 0.0

    words = value.replace(",", " ").split()
    if not words:
        return 0.0
    if len(words) > 5:
        return 0.20

    letter_count = sum(1 for char in value if char.isalpha())
    if letter_count / max(1, len(value)) < 0.55:
        return 0.0

    if len(words) in (2, 3):
        return 1.0
    if len(words) == 1:
        return 0.45
    if len(words) == 4:
        return 0.65
    return 0.50


def best_name_from_custom_fields(custom_fields: Mapping[str, str]) -> str | None:
    """Pick the most name-like custom field value, or None below threshold."""

    best_value: str | None = None
    best_score = float("-inf")

    for key in sorted(custom_fields):
        value = custom_fields[key].strip()
        if not value or "@" in value:
            continue

        tokens = normalize_name(key).token_set
        if tokens & _NOT_NAME_TOKENS:
            continue

        score = 0.0
        if "name" in tokens:
            score += _NAME_HEADER_SCORE
        if tokens & _PERSON_ROLE_TOKENS:
            score += _PERSON_ROLE_BONUS
        if tokens & _GROUP_TOKENS:
            score -= _GROUP_PENALTY
        score += person_name_score(value) * _VALUE_SHAPE_WEIGHT

        if score > best_score:
            best_value, best_score = value, score

    if best_value is None or best_score < _BEST_NAME_THRESHOLD:
        return None
    return best_value


def recipient_display_name(recipient: Recipient) -> str:
    """Name shown for a recipient: full name, custom name, email, or a placeholder."""

    full_name = recipient.full_name.strip()
    if full_name:
        return full_name

    custom_name = best_name_from_custom_fields(recipient.custom_fields)
    if custom_name:
        return custom_name

    email = recipient.email.strip()
    if email:
        return email
    return "Recipient"
