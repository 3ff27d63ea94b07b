"""Token vocabularies and per-recipient token values."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from core.messages.models import MessageTemplate
from core.messages.renderer import LEGACY_TOKEN_RE
from core.recipients.models import Recipient
from core.recipients.name_scoring import best_name_from_custom_fields
from core.recipients.resolver import resolve_value

SYSTEM_TOKENS: frozenset[str] = frozenset(
    {
        "recipient_name",
        "recipient_email",
        "packet_title",
        "date",
        "sender_name",
        "sender_email",
        "first_name",
        "last_name",
        "file_name",
    }
)

LEGACY_TOKENS: tuple[str, ...] = (
    "FirstName",
    "LastName",
    "FullName",
    "Email",
    "TemplateName",
    "FileName",
)

LEGACY_TO_SNAKE: Mapping[str, str] = MappingProxyType(
    {
        "FirstName": "first_name",
        "LastName": "last_name",
        "FullName": "recipient_name",
        "Email": "recipient_email",
        "TemplateName": "packet_title",
        "FileName": "file_name",
    }
)

_NON_SNAKE_RE = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class MessageContext:
    """Everything needed to resolve message tokens for one recipient."""

    recipient: Recipient
    packet_title: str = ""
    file_name: str = ""
    sender_name: str = ""
    sender_email: str = ""
    date: str = ""


def header_token(header: str) -> str:
    """Return the lower_snake_case token a CSV header is addressed by.

    ``"Parent Name"`` becomes ``parent_name`` and ``"Date 1"`` keeps its
    number as ``date_1`` so numbered columns stay distinct.
    """

    return _NON_SNAKE_RE.sub("_", header.strip().lower()).strip("_")


def build_token_vocabulary(
    headers: Iterable[str], bindings: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Map each CSV-derived token to the header it reads from.

    A derived token that collides with a system token is skipped, and when
    two headers derive the same token the first one wins. Explicit
    ``bindings`` (token -> header) override any token, system tokens included.
    """

    vocabulary: dict[str, str] = {}
    for header in headers:
        token = header_token(header)
        if not token or token in SYSTEM_TOKENS or token in vocabulary:
            continue
        vocabulary[token] = header.strip()

    for token, header in (bindings or {}).items():
        token = token.strip()
        if token and header.strip():
            vocabulary[token] = header.strip()
    return vocabulary


def system_token_values(context: MessageContext) -> dict[str, str]:
    """Resolve the snake-case system tokens for one recipient."""

    recipient = context.recipient
    return {
        "recipient_name": _recipient_name(recipient),
        "recipient_email": recipient.email.strip(),
        "packet_title": context.packet_title,
        "date": context.date,
        "sender_name": context.sender_name,
        "sender_email": context.sender_email,
        "first_name": recipient.first_name.strip(),
        "last_name": recipient.last_name.strip(),
        "file_name": context.file_name,
    }


def resolve_token_values(
    context: MessageContext, vocabulary: Mapping[str, str]
) -> dict[str, str]:
    """Resolve system and CSV-derived tokens; unresolved CSV tokens map to ``""``."""

    values = system_token_values(context)
    for token, header in vocabulary.items():
        resolved = resolve_value(context.recipient, header)
        values[token] = resolved if resolved is not None else ""
    return values


def allowed_tokens(vocabulary: Mapping[str, str]) -> frozenset[str]:
    """Return every token a snake-mode template may use."""

    return SYSTEM_TOKENS | frozenset(vocabulary)


def legacy_token_values(context: MessageContext) -> dict[str, str | None]:
    """Resolve the PascalCase legacy vocabulary.

    Every legacy token is present so none of them is ever treated as
    unknown; a blank email resolves to None.
    """

    recipient = context.recipient
    email = recipient.email.strip()
    return {
        "FirstName": recipient.first_name.strip(),
        "LastName": recipient.last_name.strip(),
        "FullName": recipient.full_name.strip(),
        "Email": email or None,
        "TemplateName": context.packet_title,
        "FileName": context.file_name,
    }


def migrate_legacy_template(template: MessageTemplate) -> MessageTemplate:
    """Rewrite PascalCase legacy tokens to their snake-case equivalents.

    Tokens outside the legacy vocabulary are left untouched.
    """

    return template.model_copy(
        update={
            "subject": _migrate_text(template.subject),
            "body": _migrate_text(template.body),
        }
    )


def _migrate_text(text: str) -> str:
    def replace(match: re.Match[str]) -> str:
        snake = LEGACY_TO_SNAKE.get(match.group(1))
        if snake is None:
            return match.group(0)
        return "{{" + snake + "}}"

    return LEGACY_TOKEN_RE.sub(replace, text)


def _recipient_name(recipient: Recipient) -> str:
    full_name = recipient.full_name.strip()
    if full_name:
        return full_name
    return best_name_from_custom_fields(recipient.custom_fields) or ""
