from __future__ import annotations

import pytest

from concierge.models import SafetyExemplar
from concierge.safety import SafetyGateConfig, SafetySemanticGate, TermCounter


def _gate(config: SafetyGateConfig | None = None) -> SafetySemanticGate:
    exemplars = [
        SafetyExemplar("meds", "medication", "ask a doctor", (1.0, 0.0)),
        SafetyExemplar("cure", "medical", "no claims", (0.0, 1.0)),
    ]
    return SafetySemanticGate(
        exemplars,
        TermCounter(["medication", "blood pressure", "dose"]),
        TermCounter(["capsules", "activated carbon"]),
        config,
    )


def _vector(value):
    async def embed():
        return value

    return embed


def test_blend_worked_example_is_dampened_below_threshold() -> None:
    gate = _gate()
    blended = gate.blend(0.6, 0, True)
    assert blended == pytest.approx(0.252)
    assert blended < gate.config.threshold


def test_blend_without_product_context() -> None:
    assert _gate().blend(0.5, 1, False) == pytest.approx(0.5 * 0.7 + 0.3 * 0.3)


def test_two_risk_tokens_disable_dampening() -> None:
    assert _gate().blend(0.5, 2, True) == pytest.approx(0.5 * 0.7 + 0.6 * 0.3)


def test_risk_signal_is_capped() -> None:
    assert _gate().blend(0.0, 10, False) == pytest.approx(0.3)


def test_term_counter_counts_whole_words() -> None:
    counter = TermCounter(["dose", "blood pressure"])
    assert counter.count("one dose or two doses for my blood pressure") == 2
    assert counter.present("overdosed") is False


async def test_assess_picks_closest_exemplar() -> None:
    assessment = await _gate().assess("is a dose of medication safe", _vector((0.2, 0.9)))
    assert assessment.exemplar is not None
    assert assessment.exemplar.exemplar_id == "cure"
    assert assessment.risk_token_count == 2
    assert assessment.triggered is True


async def test_evaluate_returns_none_below_threshold() -> None:
    assert await _gate().evaluate("how are the capsules made", _vector((0.6, 0.8))) is None


async def test_threshold_is_configurable() -> None:
    strict = _gate(SafetyGateConfig(threshold=0.95))
    assert await strict.evaluate("medication", _vector((1.0, 0.0))) is None
