"""Message template and rendering report models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

TokenMode = Literal["snake", "legacy"]
TokenState = Literal["unknown", "empty", "value"]


class MessageTemplate(BaseModel):
    """Subject/body text with ``{{token}}`` placeholders."""

    model_config = ConfigDict(extra="forbid")

    subject: str = ""
    body: str = ""
    is_enabled: bool = False
    token_bindings: dict[str, str] = Field(default_factory=dict)


class MessageValidation(BaseModel):
    """Advisory validation items; never affects the rendered text."""

    model_config = ConfigDict(extra="forbid")

    unknown_tokens: list[str] = Field(default_factory=list)
    unresolved_tokens: list[str] = Field(default_factory=list)
    required_field_issues: list[str] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (self.unknown_tokens or self.unresolved_tokens or self.required_field_issues)


class MessageRenderResult(BaseModel):
    """Rendered subject/body plus the validation report."""

    model_config = ConfigDict(extra="forbid")

    subject: str
    body: str
    validation: MessageValidation = Field(default_factory=MessageValidation)


@dataclass(frozen=True)
class TokenResolution:
    """Per-token lookup outcome: unknown, known but empty, or known with a value."""

    state: TokenState
    value: str = ""


DEFAULT_MESSAGE_TEMPLATE = MessageTemplate(
    subject="{{packet_title}} PDF",
    body="Hi {{recipient_name}},\n\nAttached is your packet.\n",
    is_enabled=False,
)
