"""Semantic safety gate blending exemplar similarity with lexical risk signals."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from concierge.embeddings.similarity import cosine
from concierge.models import SafetyExemplar, Vector

EmbeddingFn = Callable[[], Awaitable[Vector]]


@dataclass(frozen=True)
class SafetyGateConfig:
    """Blend weights and threshold, tuned against the refusal exemplar corpus."""

    threshold: float = 0.42
    embedding_weight: float = 0.7
    risk_weight: float = 0.3
    risk_token_scale: float = 0.3
    product_context_dampening: float = 0.6
    dampening_max_risk_tokens: int = 2


@dataclass(frozen=True)
class SafetyAssessment:
    """Diagnostics of one gate evaluation; ``triggered`` decides the layer."""

    exemplar: SafetyExemplar | None
    embedding_score: float
    risk_token_count: int
    has_product_context: bool
    score: float
    triggered: bool


class TermCounter:
    """Counts whole-word occurrences of vocabulary terms in normalized text."""

    def __init__(self, terms: Sequence[str]) -> None:
        cleaned = sorted({term.strip().lower() for term in terms if term and term.strip()}, key=len, reverse=True)
        self._terms = tuple(cleaned)
        self._pattern = (
            re.compile(r"(?<!\w)(?:" + "|".join(re.escape(term) for term in cleaned) + r")(?!\w)")
            if cleaned
            else None
        )

    @property
    def terms(self) -> Sequence[str]:
        return self._terms

    def count(self, text: str) -> int:
        if self._pattern is None or not text:
            return 0
        return sum(1 for _ in self._pattern.finditer(text))

    def present(self, text: str) -> bool:
        if self._pattern is None or not text:
            return False
        return self._pattern.search(text) is not None


class SafetySemanticGate:
    """Scores a question against refusal exemplars.

    ``blended = embedding * 0.7 + min(risk_tokens * 0.3, 1.0) * 0.3``; when the
    question carries product vocabulary and fewer than two risk tokens the
    blend is multiplied by 0.6 so ordinary product questions stay below the
    threshold. All constants come from :class:`SafetyGateConfig`.
    """

    def __init__(
        self,
        exemplars: Sequence[SafetyExemplar],
        risk_terms: TermCounter,
        product_terms: TermCounter,
        config: SafetyGateConfig | None = None,
    ) -> None:
        self._exemplars = tuple(exemplars)
        self._risk_terms = risk_terms
        self._product_terms = product_terms
        self._config = config or SafetyGateConfig()

    @property
    def config(self) -> SafetyGateConfig:
        return self._config

    def blend(self, embedding_score: float, risk_token_count: int, has_product_context: bool) -> float:
        config = self._config
        risk_signal = min(risk_token_count * config.risk_token_scale, 1.0)
        blended = embedding_score * config.embedding_weight + risk_signal * config.risk_weight
        if has_product_context and risk_token_count < config.dampening_max_risk_tokens:
            blended *= config.product_context_dampening
        return blended

    async def assess(self, normalized_text: str, embedding_fn: EmbeddingFn) -> SafetyAssessment:
        vector = await embedding_fn()
        best: SafetyExemplar | None = None
        best_score = 0.0
        for exemplar in self._exemplars:
            score = cosine(vector, exemplar.vector)
            if best is None or score > best_score:
                best, best_score = exemplar, score

        risk_token_count = self._risk_terms.count(normalized_text)
        has_product_context = self._product_terms.present(normalized_text)
        blended = self.blend(best_score, risk_token_count, has_product_context)
        return SafetyAssessment(
            exemplar=best,
            embedding_score=best_score,
            risk_token_count=risk_token_count,
            has_product_context=has_product_context,
            score=blended,
            triggered=best is not None and blended >= self._config.threshold,
        )

    async def evaluate(self, normalized_text: str, embedding_fn: EmbeddingFn) -> SafetyAssessment | None:
        """Return the assessment only when the gate triggers."""

        assessment = await self.assess(normalized_text, embedding_fn)
        return assessment if assessment.triggered else None
