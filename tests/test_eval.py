from __future__ import annotations

import json
from pathlib import Path

import pytest

from concierge.eval import EvaluationError, Scenario, evaluate_scenario, load_scenarios, run_evaluation
from concierge.models import KnowledgeDocument, ScoredDocument

from conftest import PRODUCT, StubProvider, make_settings


def _write_suite(directory: Path, name: str, rows) -> None:
    lines = [json.dumps(row) if isinstance(row, dict) else row for row in rows]
    (directory / f"{name}.jsonl").write_text("\n".join(lines) + "\n", encoding="utf-8")


def _ranked(*pairs) -> list[ScoredDocument]:
    return [
        ScoredDocument(
            document=KnowledgeDocument(doc_id=doc_id, url="", section="general", content=doc_id, vector=(1.0,)),
            score=score,
        )
        for doc_id, score in pairs
    ]


def test_load_scenarios_assigns_suite_and_fallback_ids(tmp_path: Path) -> None:
    _write_suite(tmp_path, "retrieval", [{"id": "first", "question": "a"}, "", {"question": "b"}])

    scenarios = load_scenarios(tmp_path)

    assert [(s.scenario_id, s.suite) for s in scenarios] == [("first", "retrieval"), ("retrieval-3", "retrieval")]
    assert scenarios[1].source == "retrieval.jsonl:3"


def test_load_scenarios_errors(tmp_path: Path) -> None:
    with pytest.raises(EvaluationError):
        load_scenarios(tmp_path / "missing")
    with pytest.raises(EvaluationError):
        load_scenarios(tmp_path)
    _write_suite(tmp_path, "broken", ["{oops"])
    with pytest.raises(EvaluationError):
        load_scenarios(tmp_path)


def test_evaluate_scenario_checks_top_doc_and_scores() -> None:
    ranked = _ranked(("how-it-works", 0.8), ("ingredients", 0.6), ("returns-policy", 0.1))
    scenario = Scenario("s", "suite", "q", "f:1", expected_top_doc="how-it-works", min_score=0.5)

    report = evaluate_scenario(scenario, ranked, top_k=2)

    assert report.passed
    assert report.reciprocal_rank == 1.0
    assert [doc["id"] for doc in report.top_docs] == ["how-it-works", "ingredients"]


def test_evaluate_scenario_collects_every_failure() -> None:
    ranked = _ranked(("how-it-works", 0.8), ("ingredients", 0.6), ("returns-policy", 0.1))
    scenario = Scenario(
        "s",
        "suite",
        "q",
        "f:1",
        expected_top_doc="ingredients",
        expected_doc_ids=("returns-policy",),
        min_score=0.7,
    )

    report = evaluate_scenario(scenario, ranked, top_k=2)

    assert not report.passed
    assert len(report.reasons) == 3
    assert report.reciprocal_rank == 0.5


def test_evaluate_scenario_max_score_uses_top_result() -> None:
    scenario = Scenario("s", "suite", "capital of france", "f:1", max_score=0.5)
    report = evaluate_scenario(scenario, _ranked(("shipping-policy", 0.7)), top_k=3)
    assert report.reasons == ["Score 0.700 exceeded max_score 0.5"]
    assert report.reciprocal_rank is None


async def test_run_evaluation_reports_suites_and_metrics(tmp_path: Path, catalog) -> None:
    eval_dir = tmp_path / "eval"
    eval_dir.mkdir()
    _write_suite(
        eval_dir,
        "retrieval",
        [
            {"id": "mechanism", "question": "what makes the capsules effective", "expected_top_doc": "how-it-works"},
            {"id": "wrong", "question": "when will it arrive", "expected_top_doc": "shipping-policy", "top_k": 2},
        ],
    )
    _write_suite(eval_dir, "routing", [{"id": "order", "question": "Where is my order?", "expected_layer": "business-regex"}])
    json_out = tmp_path / "report.json"
    markdown_out = tmp_path / "report.md"

    result = await run_evaluation(
        eval_dir,
        settings=make_settings(),
        catalog=catalog,
        provider=StubProvider(default=PRODUCT),
        json_out=json_out,
        markdown_out=markdown_out,
    )

    assert (result.total, result.passed, result.failed) == (3, 2, 1)
    assert result.suites == {"retrieval": {"passed": 1, "total": 2}, "routing": {"passed": 1, "total": 1}}
    assert result.recall_at_k == 0.5
    assert result.mean_reciprocal_rank == 0.5
    assert result.reports[2].layer == "business-regex"
    assert json.loads(json_out.read_text(encoding="utf-8"))["failed"] == 1
    assert "| retrieval | wrong | no |" in markdown_out.read_text(encoding="utf-8")


async def test_run_evaluation_marks_provider_failures(tmp_path: Path, catalog) -> None:
    _write_suite(tmp_path, "retrieval", [{"id": "any", "question": "what is it", "expected_top_doc": "how-it-works"}])

    result = await run_evaluation(
        tmp_path,
        settings=make_settings(),
        catalog=catalog,
        provider=StubProvider(error=RuntimeError("offline")),
    )

    assert result.failed == 1
    assert "offline" in result.reports[0].reasons[0]
