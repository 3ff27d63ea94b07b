"""Conversion between mapping targets and their stored string form."""

from __future__ import annotations

from typing import cast, get_args

from core.mapping.models import (
    BUILT_IN_PROPERTIES,
    COMPUTED_PREFIX,
    BuiltInTarget,
    ComputedKind,
    ComputedTarget,
    CsvHeaderTarget,
    MappingTarget,
)

_COMPUTED_KINDS = frozenset(get_args(ComputedKind))


def parse_mapping_target(raw: str) -> MappingTarget:
    """Decode a stored mapping value.

    Anything that is neither a built-in property nor a known computed
    sentinel is treated as a literal CSV header name.
    """

    value = raw.strip()
    if value in BUILT_IN_PROPERTIES:
        return BuiltInTarget(property=value)
    if value.startswith(COMPUTED_PREFIX):
        kind = value[len(COMPUTED_PREFIX) :]
        if kind in _COMPUTED_KINDS:
            return ComputedTarget(kind=cast(ComputedKind, kind))
    return CsvHeaderTarget(name=value)


def target_to_storage(target: MappingTarget) -> str:
    """Encode a mapping target as the string stored in a field mapping."""

    if isinstance(target, BuiltInTarget):
        return target.property
    if isinstance(target, ComputedTarget):
        return f"{COMPUTED_PREFIX}{target.kind}"
    return target.name


def computed_value_key(kind: ComputedKind) -> str:
    """Return the stored sentinel string for a computed target kind."""

    return target_to_storage(ComputedTarget(kind=kind))
