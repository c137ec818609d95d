"""Query orchestration combining routing, generation and the audit trail."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Sequence
from uuid import uuid4

from concierge.audit import AuditDispatcher, AuditRecord, LogAuditSink, expand_trace
from concierge.errors import EmbeddingProviderError, GenerationError, QueryValidationError
from concierge.metrics.observability import RouterMetrics, get_correlation_id, get_logger
from concierge.models import Answer, RoutingLayer, RoutingOutcome, ScoredDocument
from concierge.routing import Router
from concierge.services.generation import GenerationBackend, TemplateGenerator

EMPTY_GENERATION_ANSWER = "Sorry, I couldn't generate a response."


@dataclass(frozen=True)
class PromptBuilderConfig:
    """Configuration for prompt construction."""

    separator: str = "\n---\n"


class PromptBuilder:
    """Builds the context block handed to the generation backend."""

    def __init__(self, config: PromptBuilderConfig | None = None) -> None:
        self._config = config or PromptBuilderConfig()

    def build_context(self, documents: Sequence[ScoredDocument]) -> str:
        return self._config.separator.join(
            f"[{item.document.section}]\n{item.document.content}" for item in documents
        )


class QueryService:
    """Validates, routes and answers incoming questions."""

    def __init__(
        self,
        router: Router,
        generator: GenerationBackend | None = None,
        prompt_builder: PromptBuilder | None = None,
        audit: AuditDispatcher | None = None,
        max_question_chars: int = 2000,
    ) -> None:
        self._router = router
        self._generator = generator or TemplateGenerator()
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._audit = audit or AuditDispatcher(LogAuditSink())
        self._max_question_chars = max_question_chars
        self._logger = get_logger("query")

    @property
    def audit(self) -> AuditDispatcher:
        return self._audit

    def validate(self, question: object) -> str:
        if not isinstance(question, str):
            raise QueryValidationError("message must be a string")
        cleaned = question.strip()
        if not cleaned:
            raise QueryValidationError("message must not be empty")
        if len(cleaned) > self._max_question_chars:
            raise QueryValidationError(f"message must be at most {self._max_question_chars} characters")
        return cleaned

    async def answer(self, question: object) -> Answer:
        text = self.validate(question)
        query_id = uuid4().hex
        start = time.perf_counter()
        try:
            outcome = await self._router.route(text)
        except EmbeddingProviderError as exc:
            RouterMetrics.observe_error("embedding")
            self._logger.error("routing.failed", query_id=query_id, error=str(exc))
            self._dispatch_failure(query_id, text, start, exc)
            raise
        RouterMetrics.observe_routing(time.perf_counter() - start, outcome.layer.value)
        self._observe_trace(outcome)

        generation_ms: float | None = None
        if outcome.answer is not None:
            answer_text = outcome.answer
        else:
            generation_start = time.perf_counter()
            try:
                answer_text = await self._generate(text, outcome)
            except GenerationError as exc:
                RouterMetrics.observe_error("generation")
                self._logger.error("generation.failed", query_id=query_id, error=str(exc))
                self._dispatch(query_id, outcome, start, error=str(exc))
                raise
            generation_duration = time.perf_counter() - generation_start
            generation_ms = generation_duration * 1000
            RouterMetrics.observe_generation(generation_duration)
            self._logger.info(
                "generation.complete",
                query_id=query_id,
                duration_seconds=generation_duration,
                document_count=len(outcome.documents),
            )

        latency_ms = (time.perf_counter() - start) * 1000
        self._dispatch(query_id, outcome, start)
        return Answer(
            text=answer_text,
            outcome=outcome,
            query_id=query_id,
            latency_ms=latency_ms,
            generation_ms=generation_ms,
        )

    async def _generate(self, question: str, outcome: RoutingOutcome) -> str:
        context = self._prompt_builder.build_context(outcome.documents)
        generated = await self._generator.generate(question=question, context=context, documents=outcome.documents)
        cleaned = generated.replace("**", "").strip()
        return cleaned or EMPTY_GENERATION_ANSWER

    @staticmethod
    def _observe_trace(outcome: RoutingOutcome) -> None:
        for decision in outcome.trace:
            if decision.layer is RoutingLayer.SAFETY_EMBED and decision.score is not None:
                RouterMetrics.observe_safety_score(decision.score)
            elif decision.layer is RoutingLayer.RETRIEVAL_FALLBACK:
                RouterMetrics.observe_retrieval(
                    (decision.duration_ms or 0.0) / 1000,
                    (item.score for item in outcome.documents),
                )

    def _dispatch(self, query_id: str, outcome: RoutingOutcome, start: float, error: str | None = None) -> None:
        record = AuditRecord(
            query_id=query_id,
            correlation_id=get_correlation_id(),
            question=outcome.query.raw,
            normalized_question=outcome.query.normalized,
            decisions=expand_trace(outcome.trace),
            sources=tuple(outcome.sources),
            latency_ms=(time.perf_counter() - start) * 1000,
            error=error,
        )
        self._audit.dispatch(record)

    def _dispatch_failure(self, query_id: str, question: str, start: float, exc: Exception) -> None:
        record = AuditRecord(
            query_id=query_id,
            correlation_id=get_correlation_id(),
            question=question,
            normalized_question=self._router.normalizer.normalize(question),
            decisions=(),
            latency_ms=(time.perf_counter() - start) * 1000,
            error=str(exc),
        )
        self._audit.dispatch(record)
