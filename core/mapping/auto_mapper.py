"""Conservative automatic PDF field to data-source mapping.

Suggestions are biased towards false negatives: a field is only mapped when
one candidate clearly wins. Signature fields are never guessed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from core.mapping.models import (
    BUILT_IN_PROPERTIES,
    AutoMapResult,
    BuiltInTarget,
    ComputedTarget,
    MappingCandidate,
    NormalizedName,
)
from core.mapping.normalizer import normalize_name
from core.mapping.targets import computed_value_key, parse_mapping_target
from core.pdf.models import PDFField
from core.recipients.models import CSVImportSnapshot

MIN_SCORE = 0.90
MIN_SEPARATION = 0.15
MAX_SCORE = 2.0

_HINT_MATCH_BONUS = 0.35
_CANONICAL_BONUS = 0.25
_INITIALS_BONUS = 0.20
_TODAY_DATE_PENALTY = 0.05
_COMPUTED_PENALTY = 0.05

_CANONICAL_PAIRS = frozenset(
    {
        ("first_name", "FirstName"),
        ("last_name", "LastName"),
        ("full_name", "FullName"),
        ("email", "Email"),
        ("phone", "PhoneNumber"),
    }
)
_BUILT_IN_LABELS = {
    "FirstName": "First Name",
    "LastName": "Last Name",
    "FullName": "Full Name",
    "Email": "Email",
    "PhoneNumber": "Phone Number",
}
# (kind, label, text used for normalization)
_COMPUTED_OPTIONS = (
    ("today", "Today (MM-DD-YY)", "today date"),
    ("initials", "Initials", "initials"),
    ("blank", "Blank", "blank"),
)


def suggest(pdf_field: NormalizedName, candidates: Iterable[MappingCandidate]) -> str | None:
    """Return the value of the single clearly-best candidate, or None."""

    if pdf_field.hint == "signature":
        return None
    if pdf_field.hint == "unknown" and len(pdf_field.tokens) <= 1:
        return None

    scored = [
        (candidate, score_candidate(pdf_field, candidate))
        for candidate in candidates
        if candidate.is_auto_mappable
    ]
    scored = [item for item in scored if item[1] > 0]
    scored.sort(key=lambda item: item[1], reverse=True)

    if not scored:
        return None

    best_candidate, best_score = scored[0]
    if best_score < MIN_SCORE:
        return None
    if len(scored) >= 2 and best_score - scored[1][1] < MIN_SEPARATION:
        return None

    return best_candidate.value


def score_candidate(pdf_field: NormalizedName, candidate: MappingCandidate) -> float:
    """Score one candidate against a PDF field in ``[0, MAX_SCORE]``."""

    base = _jaccard(pdf_field.token_set, candidate.normalized.token_set)
    if base == 0:
        return 0.0

    score = base
    hint = pdf_field.hint

    if hint != "unknown" and hint == candidate.normalized.hint:
        score += _HINT_MATCH_BONUS

    if (hint, candidate.value) in _CANONICAL_PAIRS:
        score += _CANONICAL_BONUS
    elif hint == "date" and candidate.value == computed_value_key("today"):
        score -= _TODAY_DATE_PENALTY
    elif hint == "initials" and candidate.value == computed_value_key("initials"):
        score += _INITIALS_BONUS

    if candidate.kind == "computed" and hint != "initials":
        score -= _COMPUTED_PENALTY

    return max(0.0, min(score, MAX_SCORE))


def build_candidates(
    snapshot: CSVImportSnapshot | None = None,
    *,
    include_built_ins: bool = True,
    include_computed: bool = True,
) -> list[MappingCandidate]:
    """Build the selectable candidate list in display order.

    CSV headers are trimmed, blank headers dropped, and duplicates collapsed
    by string equality (first occurrence wins).
    """

    candidates: list[MappingCandidate] = []

    if include_built_ins:
        for prop in BUILT_IN_PROPERTIES:
            candidates.append(
                MappingCandidate(
                    value=prop,
                    label=_BUILT_IN_LABELS[prop],
                    normalized=normalize_name(prop),
                    kind="built_in",
                )
            )

    if include_computed:
        for kind, label, normalization_text in _COMPUTED_OPTIONS:
            candidates.append(
                MappingCandidate(
                    value=computed_value_key(kind),
                    label=label,
                    normalized=normalize_name(normalization_text),
                    kind="computed",
                )
            )

    if snapshot is not None:
        candidates.extend(csv_header_candidates(snapshot))

    return candidates


def csv_header_candidates(snapshot: CSVImportSnapshot) -> list[MappingCandidate]:
    """Build one candidate per distinct non-blank header of a CSV snapshot."""

    normalized_headers = snapshot.normalized_headers
    if len(normalized_headers) != len(snapshot.headers):
        normalized_headers = [normalize_name(header) for header in snapshot.headers]

    candidates: list[MappingCandidate] = []
    seen: set[str] = set()
    for header, normalized in zip(snapshot.headers, normalized_headers):
        trimmed = header.strip()
        if not trimmed or trimmed in seen:
            continue
        seen.add(trimmed)
        candidates.append(
            MappingCandidate(value=trimmed, label=trimmed, normalized=normalized, kind="csv_header")
        )
    return candidates


def auto_map_fields(
    fields: Iterable[PDFField],
    candidates: list[MappingCandidate],
    existing: Mapping[str, str] | None = None,
    *,
    one_to_one: bool = True,
) -> AutoMapResult:
    """Fill unmapped fields with safe suggestions, never touching existing ones.

    With ``one_to_one`` a CSV header or built-in property already used by
    another field is not suggested again. Computed values may be reused.
    """

    mapping = dict(existing or {})
    used = _used_targets(mapping) if one_to_one else set()
    newly_mapped: list[str] = []

    for pdf_field in fields:
        current = mapping.get(pdf_field.name, "").strip()
        if current:
            continue

        suggestion = suggest(pdf_field.normalized, candidates)
        if suggestion is None or suggestion in used:
            continue

        mapping[pdf_field.name] = suggestion
        newly_mapped.append(pdf_field.name)
        if one_to_one and not isinstance(parse_mapping_target(suggestion), ComputedTarget):
            used.add(suggestion)

    return AutoMapResult(mapping=mapping, newly_mapped=newly_mapped)


def sanitize_mapping(mapping: Mapping[str, str], headers: Iterable[str]) -> dict[str, str]:
    """Keep entries whose target is valid against the current CSV headers.

    Blank values are dropped. Built-in and computed targets are always kept.
    """

    allowed_headers = {header.strip() for header in headers if header.strip()}
    cleaned: dict[str, str] = {}
    for pdf_field, raw in mapping.items():
        value = raw.strip()
        if not value:
            continue
        target = parse_mapping_target(value)
        if isinstance(target, (BuiltInTarget, ComputedTarget)) or value in allowed_headers:
            cleaned[pdf_field] = value
    return cleaned


def _used_targets(mapping: Mapping[str, str]) -> set[str]:
    used: set[str] = set()
    for raw in mapping.values():
        value = raw.strip()
        if not value:
            continue
        if isinstance(parse_mapping_target(value), ComputedTarget):
            continue
        used.add(value)
    return used


def _jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    if not a or not b:
        return 0.0
    intersection = len(a & b)
    if intersection == 0:
        return 0.0
    return intersection / len(a | b)
