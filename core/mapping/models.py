"""Data models for name normalization, mapping targets, and candidates."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union

FieldHint = Literal[
    "first_name",
    "last_name",
    "full_name",
    "email",
    "phone",
    "date",
    "initials",
    "signature",
    "unknown",
]
CandidateKind = Literal["built_in", "csv_header", "computed"]
ComputedKind = Literal["today", "initials", "blank"]

BUILT_IN_PROPERTIES: tuple[str, ...] = (
    "FirstName",
    "LastName",
    "FullName",
    "Email",
    "PhoneNumber",
)
COMPUTED_PREFIX = "__computed__:"


@dataclass(frozen=True)
class NormalizedName:
    """Tokenized, classified view of one raw field or header name."""

    original: str
    tokens: tuple[str, ...] = ()
    hint: FieldHint = "unknown"

    @property
    def token_set(self) -> frozenset[str]:
        return frozenset(self.tokens)


@dataclass(frozen=True)
class BuiltInTarget:
    """Mapping to a structured recipient property such as ``FirstName``."""

    property: str


@dataclass(frozen=True)
class ComputedTarget:
    """Mapping to a value generated at fill time."""

    kind: ComputedKind


@dataclass(frozen=True)
class CsvHeaderTarget:
    """Mapping to a literal CSV header string."""

    name: str


MappingTarget = Union[BuiltInTarget, ComputedTarget, CsvHeaderTarget]


@dataclass(frozen=True)
class MappingCandidate:
    """One selectable target a PDF field can be bound to."""

    value: str
    label: str
    normalized: NormalizedName
    kind: CandidateKind

    @property
    def is_auto_mappable(self) -> bool:
        # Today/blank stay available for manual selection only.
        return self.value not in {
            f"{COMPUTED_PREFIX}today",
            f"{COMPUTED_PREFIX}blank",
        }


@dataclass
class AutoMapResult:
    """Outcome of one auto-map pass over a template's fields."""

    mapping: dict[str, str] = field(default_factory=dict)
    newly_mapped: list[str] = field(default_factory=list)
