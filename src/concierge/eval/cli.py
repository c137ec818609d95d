"""CLI for evaluating retrieval ranking and routing against scenario suites."""

from __future__ import annotations

import argparse
import asyncio
import json
import statistics
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence

from concierge.catalog import RouterCatalog, load_catalog
from concierge.config import Settings, get_settings
from concierge.embeddings import (
    EmbeddingProvider,
    MemoizedEmbedding,
    build_embedding_provider,
    embedding_config_from_settings,
)
from concierge.errors import EmbeddingProviderError
from concierge.models import ScoredDocument
from concierge.retrieval import CorpusRetriever
from concierge.routing import Router


class EvaluationError(RuntimeError):
    """Raised when scenario suites cannot be loaded."""


@dataclass(frozen=True)
class Scenario:
    scenario_id: str
    suite: str
    question: str
    source: str
    expectation: str | None = None
    expected_top_doc: str | None = None
    expected_doc_ids: Sequence[str] = ()
    min_score: float | None = None
    max_score: float | None = None
    top_k: int | None = None
    expected_layer: str | None = None

    @property
    def relevant_ids(self) -> List[str]:
        ids = [self.expected_top_doc] if self.expected_top_doc else []
        ids.extend(doc_id for doc_id in self.expected_doc_ids if doc_id not in ids)
        return ids


@dataclass
class ScenarioReport:
    scenario_id: str
    suite: str
    question: str
    expectation: str | None
    passed: bool = True
    reasons: List[str] = field(default_factory=list)
    top_docs: List[Dict[str, Any]] = field(default_factory=list)
    layer: str | None = None
    reciprocal_rank: float | None = None

    def fail(self, reason: str) -> None:
        self.passed = False
        self.reasons.append(reason)

    def to_dict(self) -> dict:
        return {
            "id": self.scenario_id,
            "suite": self.suite,
            "question": self.question,
            "expectation": self.expectation,
            "passed": self.passed,
            "reasons": self.reasons,
            "top_docs": self.top_docs,
            "layer": self.layer,
        }


@dataclass(frozen=True)
class EvaluationResult:
    total: int
    passed: int
    suites: Dict[str, Dict[str, int]]
    recall_at_k: float
    mean_reciprocal_rank: float
    reports: List[ScenarioReport]

    @property
    def failed(self) -> int:
        return self.total - self.passed

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "suites": self.suites,
            "recall_at_k": self.recall_at_k,
            "mean_reciprocal_rank": self.mean_reciprocal_rank,
            "scenarios": [report.to_dict() for report in self.reports],
        }


def load_scenarios(directory: Path) -> List[Scenario]:
    if not directory.is_dir():
        raise EvaluationError(f"Evaluation directory not found: {directory}")
    files = sorted(directory.glob("*.jsonl"))
    if not files:
        raise EvaluationError(f"No .jsonl files found in {directory}")

    scenarios: List[Scenario] = []
    for path in files:
        suite = path.stem
        for index, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as exc:
                raise EvaluationError(f"Failed to parse {path.name}:{index}: {exc}") from exc
            scenarios.append(
                Scenario(
                    scenario_id=str(payload.get("id") or f"{suite}-{index}"),
                    suite=suite,
                    question=str(payload.get("question") or ""),
                    source=f"{path.name}:{index}",
                    expectation=payload.get("expectation"),
                    expected_top_doc=payload.get("expected_top_doc"),
                    expected_doc_ids=tuple(payload.get("expected_doc_ids") or ()),
                    min_score=payload.get("min_score"),
                    max_score=payload.get("max_score"),
                    top_k=payload.get("top_k"),
                    expected_layer=payload.get("expected_layer"),
                ),
            )
    return scenarios


def evaluate_scenario(scenario: Scenario, ranked: Sequence[ScoredDocument], top_k: int) -> ScenarioReport:
    top = list(ranked[:top_k])
    report = ScenarioReport(
        scenario_id=scenario.scenario_id,
        suite=scenario.suite,
        question=scenario.question,
        expectation=scenario.expectation,
        top_docs=[{"id": item.document.doc_id, "score": round(item.score, 3)} for item in top],
    )
    top_ids = [item.document.doc_id for item in top]

    if scenario.expected_top_doc and (not top_ids or top_ids[0] != scenario.expected_top_doc):
        report.fail(f"Expected top doc {scenario.expected_top_doc}, got {top_ids[0] if top_ids else 'none'}")

    for expected in scenario.expected_doc_ids:
        if expected not in top_ids:
            report.fail(f"Expected doc {expected} within Top-{top_k}")

    if scenario.min_score is not None and scenario.expected_top_doc:
        match = next((item for item in top if item.document.doc_id == scenario.expected_top_doc), None)
        if match is None:
            report.fail(f"Top-{top_k} did not contain {scenario.expected_top_doc} to enforce min_score")
        elif match.score < scenario.min_score:
            report.fail(
                f"Score {match.score:.3f} for {scenario.expected_top_doc} was below min_score {scenario.min_score}",
            )

    if scenario.max_score is not None:
        if scenario.expected_top_doc:
            target = next((item for item in top if item.document.doc_id == scenario.expected_top_doc), None)
        else:
            target = top[0] if top else None
        if target is not None and target.score > scenario.max_score:
            report.fail(f"Score {target.score:.3f} exceeded max_score {scenario.max_score}")

    relevant = scenario.relevant_ids
    if relevant:
        rank = next((index for index, doc_id in enumerate(top_ids, start=1) if doc_id in relevant), None)
        report.reciprocal_rank = 1 / rank if rank else 0.0
    return report


async def run_evaluation(
    directory: Path,
    *,
    settings: Settings | None = None,
    catalog: RouterCatalog | None = None,
    provider: EmbeddingProvider | None = None,
    top_k: int | None = None,
    json_out: Path | None = None,
    markdown_out: Path | None = None,
) -> EvaluationResult:
    settings = settings or get_settings()
    scenarios = load_scenarios(directory)
    catalog = catalog or load_catalog(settings)
    provider = provider or build_embedding_provider(settings.embedding_backend, embedding_config_from_settings(settings))
    router = Router.from_catalog(catalog, provider, settings)
    retriever = CorpusRetriever(catalog.corpus)
    default_top_k = top_k or settings.evaluation_top_k

    reports: List[ScenarioReport] = []
    for scenario in scenarios:
        if not scenario.question:
            continue
        k = scenario.top_k or default_top_k
        try:
            vector = await MemoizedEmbedding(provider, router.normalizer.normalize(scenario.question)).get()
            ranked = retriever.retrieve(vector, top_k=len(catalog.corpus))
            report = evaluate_scenario(scenario, ranked, k)
            if scenario.expected_layer:
                outcome = await router.route(scenario.question)
                report.layer = outcome.layer.value
                if report.layer != scenario.expected_layer:
                    report.fail(f"Expected layer {scenario.expected_layer}, got {report.layer}")
        except EmbeddingProviderError as exc:
            report = ScenarioReport(
                scenario_id=scenario.scenario_id,
                suite=scenario.suite,
                question=scenario.question,
                expectation=scenario.expectation,
            )
            report.fail(str(exc))
        reports.append(report)

    suites: Dict[str, Dict[str, int]] = {}
    for report in reports:
        entry = suites.setdefault(report.suite, {"passed": 0, "total": 0})
        entry["total"] += 1
        entry["passed"] += int(report.passed)

    ranks = [report.reciprocal_rank for report in reports if report.reciprocal_rank is not None]
    result = EvaluationResult(
        total=len(reports),
        passed=sum(1 for report in reports if report.passed),
        suites=suites,
        recall_at_k=sum(1 for rank in ranks if rank > 0) / len(ranks) if ranks else 0.0,
        mean_reciprocal_rank=statistics.fmean(ranks) if ranks else 0.0,
        reports=reports,
    )

    if json_out:
        json_out.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    if markdown_out:
        markdown_out.write_text(_format_markdown(result), encoding="utf-8")
    return result


def _format_markdown(result: EvaluationResult) -> str:
    lines = [
        "# Concierge Evaluation Report",
        "",
        f"- Scenarios: {result.total}",
        f"- Passed: {result.passed}",
        f"- Recall@k: {result.recall_at_k:.2f}",
        f"- MRR: {result.mean_reciprocal_rank:.2f}",
        "",
        "| Suite | Scenario | Passed | Top docs | Reasons |",
        "| --- | --- | --- | --- | --- |",
    ]
    for report in result.reports:
        top = ", ".join(f"{doc['id']} ({doc['score']:.3f})" for doc in report.top_docs) or "-"
        reasons = "; ".join(report.reasons) or "-"
        lines.append(f"| {report.suite} | {report.scenario_id} | {'yes' if report.passed else 'no'} | {top} | {reasons} |")
    return "\n".join(lines)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Evaluate concierge retrieval and routing scenarios.")
    parser.add_argument("--eval-dir", type=Path, default=Path("eval"), help="Directory of .jsonl scenario suites.")
    parser.add_argument("--top-k", type=int, default=None, help="Default top-k for scenarios without one")
    parser.add_argument("--json-out", type=Path, default=None, help="Optional path to write JSON report")
    parser.add_argument("--markdown-out", type=Path, default=None, help="Optional path to write Markdown report")
    parser.add_argument(
        "--backend",
        choices=["hash", "huggingface", "openai"],
        default=None,
        help="Override the configured embedding backend",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    settings = get_settings({"embedding_backend": args.backend} if args.backend else None)
    try:
        result = asyncio.run(
            run_evaluation(
                args.eval_dir,
                settings=settings,
                top_k=args.top_k,
                json_out=args.json_out,
                markdown_out=args.markdown_out,
            ),
        )
    except EvaluationError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    for report in result.reports:
        status = "PASS" if report.passed else "FAIL"
        print(f"{status} [{report.suite}/{report.scenario_id}] {report.question}")
        for reason in report.reasons:
            print(f"   -> {reason}")
    print("")
    for suite, stats in result.suites.items():
        print(f" - {suite}: {stats['passed']}/{stats['total']} passed")
    print(f"Overall: {result.passed} passed / {result.total} total")

    if result.failed:
        print(f"Evaluation failed for {result.failed} scenario(s)", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    sys.exit(main())
