"""JSON persistence for application state."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from core.state.models import AppState

_STORE_VERSION = 1


class StateStore(Protocol):
    """Persistence port for application state."""

    def load(self) -> AppState:
        """Return the stored state, or an empty state when nothing is stored."""

    def save(self, state: AppState) -> None:
        """Persist ``state``, replacing what was stored before."""


class JsonStateStore:
    """Persist application state in a single JSON file."""

    def __init__(self, store_path: Path) -> None:
        self._store_path = store_path

    @property
    def path(self) -> Path:
        return self._store_path

    def load(self) -> AppState:
        if not self._store_path.exists():
            return AppState()

        try:
            raw = json.loads(self._store_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid state store JSON: {self._store_path}") from exc

        if not isinstance(raw, dict):
            raise ValueError(f"State store must contain an object: {self._store_path}")

        try:
            # Snapshots saved without normalized headers are rebuilt by the model.
            return AppState.model_validate(raw.get("state", {}))
        except ValidationError as exc:
            raise ValueError(f"Invalid state store schema: {self._store_path}") from exc

    def save(self, state: AppState) -> None:
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"version": _STORE_VERSION, "state": state.model_dump(mode="json")}

        fd, raw_tmp_path = tempfile.mkstemp(
            dir=self._store_path.parent,
            prefix=f"{self._store_path.name}.",
            suffix=".tmp",
        )
        tmp_path = Path(raw_tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, sort_keys=True, ensure_ascii=False, indent=2)
            tmp_path.replace(self._store_path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
