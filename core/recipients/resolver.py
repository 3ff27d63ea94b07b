"""Resolve a mapping key to a recipient value.

Resolution order, most specific first:

1. Built-in synonym table (first/last/full name, email, phone).
2. Exact custom-field key (after trimming the lookup key).
3. Unique case-insensitive custom-field key.
4. Unique normalized-token-set match (``"Date"`` finds ``"Date 1"``).

Ambiguous matches resolve to None instead of picking one.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

from core.mapping.normalizer import normalize_name
from core.recipients.models import Recipient

BuiltInField = Literal["first_name", "last_name", "full_name", "email", "phone"]

FIRST_NAME_KEYS = frozenset(
    {"firstname", "first_name", "first name", "givenname", "given_name", "given name"}
)
LAST_NAME_KEYS = frozenset(
    {"lastname", "last_name", "last name", "surname", "familyname", "family_name", "family name"}
)
FULL_NAME_KEYS = frozenset({"fullname", "full_name", "full name", "name"})
EMAIL_KEYS = frozenset(
    {
        "email",
        "emailaddress",
        "email_address",
        "email address",
        "e-mail",
        "e-mailaddress",
        "e-mail address",
    }
)
PHONE_KEYS = frozenset(
    {"phone", "phonenumber", "phone_number", "phone number", "mobile", "tel", "telephone"}
)

_SYNONYMS: tuple[tuple[frozenset[str], BuiltInField], ...] = (
    (FIRST_NAME_KEYS, "first_name"),
    (LAST_NAME_KEYS, "last_name"),
    (FULL_NAME_KEYS, "full_name"),
    (EMAIL_KEYS, "email"),
    (PHONE_KEYS, "phone"),
)


def builtin_field_for_key(key: str) -> BuiltInField | None:
    """Return the structured field a key refers to, if it is a known synonym."""

    lower = key.strip().lower()
    for keys, builtin in _SYNONYMS:
        if lower in keys:
            return builtin
    return None


def resolve_value(recipient: Recipient, key: str) -> str | None:
    """Resolve ``key`` against a recipient; None when missing or ambiguous."""

    raw = key.strip()

    builtin = builtin_field_for_key(raw)
    if builtin is not None:
        return _builtin_value(recipient, builtin)

    return resolve_custom_field(recipient.custom_fields, raw)


def resolve_custom_field(custom_fields: Mapping[str, str], key: str) -> str | None:
    """Apply the exact, case-insensitive, then normalized lookup steps."""

    raw = key.strip()
    if raw in custom_fields:
        return custom_fields[raw]

    lower = raw.lower()
    case_matches = [name for name in custom_fields if name.lower() == lower]
    if len(case_matches) == 1:
        return custom_fields[case_matches[0]]
    if len(case_matches) > 1:
        return None

    target = normalize_name(raw).token_set
    if not target:
        return None
    normalized_matches = [
        name for name in custom_fields if normalize_name(name).token_set == target
    ]
    if len(normalized_matches) == 1:
        return custom_fields[normalized_matches[0]]
    return None


def _builtin_value(recipient: Recipient, builtin: BuiltInField) -> str | None:
    if builtin == "first_name":
        return recipient.first_name
    if builtin == "last_name":
        return recipient.last_name
    if builtin == "full_name":
        return recipient.full_name
    if builtin == "email":
        return recipient.email
    return recipient.phone_number
