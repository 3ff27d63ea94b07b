"""Pure ``{{token}}`` substitution engine.

Two token grammars are supported:

- ``legacy``: identifiers ``[A-Za-z0-9_.-]+``; a token is known when it is a
  key of the supplied values mapping (``None`` renders as empty).
- ``snake``: identifiers ``[a-z0-9_]+``; a token is known when it is in the
  caller's allowed-token set, and rendering produces a validation report.

In both modes unknown tokens are kept verbatim, known tokens without a value
render as an empty string, and malformed tokens (no closing ``}}``) never
match. All match spans are taken from the untouched input, so substituted
values are never re-scanned.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence

from core.messages.models import (
    MessageRenderResult,
    MessageTemplate,
    MessageValidation,
    TokenMode,
    TokenResolution,
)

LEGACY_TOKEN_RE = re.compile(r"\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")
SNAKE_TOKEN_RE = re.compile(r"\{\{\s*([a-z0-9_]+)\s*\}\}")

_PATTERNS: dict[TokenMode, re.Pattern[str]] = {
    "legacy": LEGACY_TOKEN_RE,
    "snake": SNAKE_TOKEN_RE,
}


def render(text: str, values: Mapping[str, str | None]) -> str:
    """Render legacy-grammar tokens; tokens absent from ``values`` are unknown."""

    if "{{" not in text:
        return text
    return _substitute(text, LEGACY_TOKEN_RE, lambda token: resolve_token(token, values))


def render_text(
    text: str,
    allowed_tokens: Iterable[str],
    resolved_values: Mapping[str, str | None],
) -> str:
    """Render snake-grammar tokens against an allowed-token vocabulary."""

    if "{{" not in text:
        return text
    allowed = frozenset(allowed_tokens)

    def lookup(token: str) -> TokenResolution:
        if token not in allowed:
            return TokenResolution(state="unknown")
        value = resolved_values.get(token)
        if value is None or value == "":
            return TokenResolution(state="empty")
        return TokenResolution(state="value", value=value)

    return _substitute(text, SNAKE_TOKEN_RE, lookup)


def render_message(
    template: MessageTemplate,
    allowed_tokens: Iterable[str],
    resolved_values: Mapping[str, str | None],
    required_field_issues: Sequence[str] = (),
) -> MessageRenderResult:
    """Render subject and body in snake mode and attach a validation report."""

    allowed = frozenset(allowed_tokens)
    tokens = extract_tokens(template.subject) | extract_tokens(template.body)

    return MessageRenderResult(
        subject=render_text(template.subject, allowed, resolved_values),
        body=render_text(template.body, allowed, resolved_values),
        validation=validate_tokens(tokens, allowed, resolved_values, required_field_issues),
    )


def render_legacy_message(
    template: MessageTemplate, values: Mapping[str, str | None]
) -> MessageRenderResult:
    """Render subject and body in legacy mode.

    Validation lists tokens missing from ``values`` as unknown and known
    tokens whose value is blank as unresolved.
    """

    tokens = extract_tokens(template.subject, "legacy") | extract_tokens(template.body, "legacy")
    return MessageRenderResult(
        subject=render(template.subject, values),
        body=render(template.body, values),
        validation=validate_tokens(tokens, values.keys(), values),
    )


def extract_tokens(text: str, mode: TokenMode = "snake") -> set[str]:
    """Return the distinct well-formed token identifiers in ``text``."""

    return {match.group(1) for match in _PATTERNS[mode].finditer(text)}


def validate_tokens(
    tokens: Iterable[str],
    allowed_tokens: Iterable[str],
    resolved_values: Mapping[str, str | None],
    required_field_issues: Sequence[str] = (),
) -> MessageValidation:
    """Split used tokens into unknown and unresolved (blank after trimming)."""

    used = set(tokens)
    allowed = set(allowed_tokens)

    unresolved = {
        token for token in used & allowed if not (resolved_values.get(token) or "").strip()
    }
    return MessageValidation(
        unknown_tokens=sorted(used - allowed),
        unresolved_tokens=sorted(unresolved),
        required_field_issues=list(required_field_issues),
    )


def resolve_token(token: str, values: Mapping[str, str | None]) -> TokenResolution:
    """Classify a token against a values mapping (key presence means known)."""

    if token not in values:
        return TokenResolution(state="unknown")
    value = values[token]
    if value is None or value == "":
        return TokenResolution(state="empty")
    return TokenResolution(state="value", value=value)


def _substitute(
    text: str,
    pattern: re.Pattern[str],
    lookup: Callable[[str], TokenResolution],
) -> str:
    pieces: list[str] = []
    cursor = 0

    for match in pattern.finditer(text):
        resolution = lookup(match.group(1))
        if resolution.state == "unknown":
            continue
        pieces.append(text[cursor : match.start()])
        pieces.append(resolution.value)
        cursor = match.end()

    if not pieces:
        return text
    pieces.append(text[cursor:])
    return "".join(pieces)
