from __future__ import annotations

import pytest

from concierge.catalog import load_lexicon
from concierge.normalization import Normalizer, ProtectedEntity


def _normalizer() -> Normalizer:
    return Normalizer(load_lexicon(None).protected_entities)


@pytest.mark.parametrize(
    "text",
    ["A-Minus", "a minus", "AMINUS", "A—Minus", "A –  minus", "aminus"],
)
def test_product_name_variants_share_one_spelling(text: str) -> None:
    assert _normalizer().normalize(f"Is {text} vegan?") == "is a-minus vegan?"


def test_brand_name_is_restored_in_canonical_form() -> None:
    query = _normalizer().normalize_query("Who makes  INTELLIGENT-MOLECULES products?")
    assert query.normalized == "who makes intelligent molecules products?"
    assert query.protected_entities == ("intelligent molecules",)
    assert query.raw == "Who makes  INTELLIGENT-MOLECULES products?"


def test_whitespace_and_dashes_are_unified() -> None:
    assert _normalizer().normalize("  Fast‑acting\t\n  relief ") == "fast-acting relief"


def test_entity_must_match_whole_word() -> None:
    assert _normalizer().normalize("Plasma Minus") == "plasma minus"


def test_empty_input_normalizes_to_empty() -> None:
    assert _normalizer().normalize("") == ""


@pytest.mark.parametrize(
    "text",
    [
        "Can I take A Minus — twice?",
        "İaminus",
        "İA MINUS and Intelligent‑Molecules",
        "ÀMINUS vs a minus",
        "ǅA-Minus",
        "Straße\tAMinus\u2212free",
        "\ue0007\ue001 is A-Minus vegan",
        "a-minus-minus",
    ],
)
def test_normalization_is_idempotent(text: str) -> None:
    normalizer = _normalizer()
    once = normalizer.normalize(text)
    assert normalizer.normalize(once) == once


def test_typed_placeholder_characters_are_dropped() -> None:
    query = _normalizer().normalize_query("\ue0007\ue001 is A-Minus vegan")
    assert query.normalized == "7 is a-minus vegan"
    assert query.protected_entities == ("a-minus",)


def test_entity_boundaries_are_checked_after_lower_casing() -> None:
    assert _normalizer().normalize("İaminus") == "i\u0307a-minus"


def test_entity_without_spelling_is_rejected() -> None:
    with pytest.raises(ValueError):
        ProtectedEntity(canonical=" - ")
