"""CLI input loading and atomic output writing."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any


def read_csv_text(path: Path) -> str:
    """Read a CSV export as text, dropping a UTF-8 byte-order mark if present."""

    return path.read_text(encoding="utf-8-sig")


def load_field_names(path: Path) -> list[str]:
    """Load PDF field names from a JSON list or a one-name-per-line text file."""

    text = path.read_text(encoding="utf-8-sig")
    stripped = text.lstrip()
    if stripped.startswith("["):
        try:
            raw = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid fields JSON: {path}") from exc
        if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
            raise ValueError(f"Fields JSON must be a list of strings: {path}")
        names = raw
    else:
        names = text.splitlines()

    result: list[str] = []
    for name in names:
        trimmed = name.strip()
        if trimmed and trimmed not in result:
            result.append(trimmed)
    return result


def load_mapping(path: Path) -> dict[str, str]:
    """Load an existing PDF field -> target mapping from a JSON object."""

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid mapping JSON: {path}") from exc

    if isinstance(raw, dict) and isinstance(raw.get("mapping"), dict):
        raw = raw["mapping"]
    if not isinstance(raw, dict):
        raise ValueError(f"Mapping JSON must be an object: {path}")
    return {str(key): str(value) for key, value in raw.items() if isinstance(value, str)}


def write_json_atomic(path: Path, payload: dict[str, Any] | list[Any]) -> None:
    """Write JSON via a temporary file in the target directory, then replace."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, indent=2)

    try:
        tmp_path.replace(path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


def dumps(payload: dict[str, Any] | list[Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2)
