"""Application settings loaded from YAML."""

from __future__ import annotations

from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.messages.models import TokenMode


class AppSettings(BaseModel):
    """Sender identity and generation defaults."""

    model_config = ConfigDict(extra="forbid")

    sender_name: str = ""
    sender_email: str = ""
    token_mode: TokenMode = "snake"
    date_format: str = "%m-%d-%y"
    csv_preview_max_rows: int = Field(default=20, ge=1)
    flatten_output: bool = True
    zip_chunk_size: int = Field(default=64 * 1024, ge=1)

    @field_validator("date_format")
    @classmethod
    def _date_format_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("date_format must not be blank")
        return value


def default_settings_path() -> Path:
    return Path(__file__).with_name("settings.yaml")


def load_settings(path: Path | None = None) -> AppSettings:
    """Load and validate settings from YAML."""

    settings_path = path or default_settings_path()

    try:
        raw = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Settings file not found: {settings_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in settings file: {settings_path}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Settings file must contain a mapping: {settings_path}")

    try:
        return AppSettings.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid settings schema: {settings_path}") from exc
