from __future__ import annotations

from core.recipients.models import Recipient
from core.recipients.name_scoring import (
    best_name_from_custom_fields,
    person_name_score,
    recipient_display_name,
)


def test_person_name_score_shapes() -> None:
    assert person_name_score("Ada Lovelace") == 1.0
    assert person_name_score("Ada") == 0.45
    assert person_name_score("ada@example.com") == 0.0
    assert person_name_score("Team 7") == 0.0
    assert person_name_score("   ") == 0.0


def test_best_name_prefers_person_headers_over_groups() -> None:
    fields = {"Student Name": "Ada Lovelace", "Team": "Blue Birds"}

    assert best_name_from_custom_fields(fields) == "Ada Lovelace"


def test_best_name_returns_none_below_threshold() -> None:
    assert best_name_from_custom_fields({"Team": "Blue Birds"}) is None
    assert best_name_from_custom_fields({"Parent Email": "p@example.com"}) is None
    assert best_name_from_custom_fields({}) is None


def test_recipient_display_name_fallbacks() -> None:
    assert recipient_display_name(Recipient(first_name="Ada", last_name="Lovelace")) == (
        "Ada Lovelace"
    )
    assert (
        recipient_display_name(Recipient(custom_fields={"Parent Name": "Grace Hopper"}))
        == "Grace Hopper"
    )
    assert recipient_display_name(Recipient(email="x@example.com")) == "x@example.com"
    assert recipient_display_name(Recipient()) == "Recipient"
