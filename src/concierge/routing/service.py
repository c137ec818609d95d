"""Layered routing of a customer question to a canned answer or retrieval."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List

from concierge.catalog import RouterCatalog
from concierge.config import Settings
from concierge.embeddings import EmbeddingProvider, MemoizedEmbedding
from concierge.intents import IntentClassifier
from concierge.metrics.observability import get_logger
from concierge.models import NormalizedQuery, RoutingDecision, RoutingLayer, RoutingOutcome
from concierge.normalization import Normalizer
from concierge.retrieval import CorpusRetriever, RetrievalConfig
from concierge.rules import PatternRuleEngine
from concierge.rules.service import render_response
from concierge.safety import SafetyGateConfig, SafetySemanticGate, TermCounter

_LOGGER = get_logger("routing")


@dataclass(frozen=True)
class RouterConfig:
    support_email: str = "info@intelligentmolecules.com"
    top_k: int = 3


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


class _Trace:
    def __init__(self) -> None:
        self.decisions: List[RoutingDecision] = []
        self._started = time.perf_counter()

    def record(self, layer: RoutingLayer, triggered: bool, **fields) -> RoutingDecision:
        decision = RoutingDecision(
            layer=layer,
            triggered=triggered,
            order=len(self.decisions),
            duration_ms=_elapsed_ms(self._started),
            **fields,
        )
        self.decisions.append(decision)
        self._started = time.perf_counter()
        return decision


class Router:
    """Routes a question through five layers in fixed precedence.

    Safety regex, business regex, semantic safety, intent classification and
    finally retrieval. The first terminal layer ends routing. The question is
    embedded at most once and only when a regex layer did not already answer.
    Provider failures propagate as :class:`EmbeddingProviderError`; there is
    no degraded path that skips the semantic safety gate.
    """

    def __init__(
        self,
        *,
        normalizer: Normalizer,
        rules: PatternRuleEngine,
        safety_gate: SafetySemanticGate,
        intent_classifier: IntentClassifier,
        retriever: CorpusRetriever,
        provider: EmbeddingProvider,
        config: RouterConfig | None = None,
    ) -> None:
        self._normalizer = normalizer
        self._rules = rules
        self._safety_gate = safety_gate
        self._intents = intent_classifier
        self._retriever = retriever
        self._provider = provider
        self._config = config or RouterConfig()

    @classmethod
    def from_catalog(cls, catalog: RouterCatalog, provider: EmbeddingProvider, settings: Settings) -> "Router":
        gate_config = SafetyGateConfig(
            threshold=settings.safety_threshold,
            embedding_weight=settings.safety_embedding_weight,
            risk_weight=settings.safety_risk_weight,
            risk_token_scale=settings.safety_risk_token_scale,
            product_context_dampening=settings.safety_product_context_dampening,
            dampening_max_risk_tokens=settings.safety_dampening_max_risk_tokens,
        )
        return cls(
            normalizer=Normalizer(catalog.lexicon.protected_entities),
            rules=PatternRuleEngine(catalog.safety_rules, catalog.business_rules),
            safety_gate=SafetySemanticGate(
                catalog.exemplars,
                TermCounter(catalog.lexicon.risk_tokens),
                TermCounter(catalog.lexicon.product_context_terms),
                gate_config,
            ),
            intent_classifier=IntentClassifier(catalog.intents, settings.intent_fallback_threshold),
            retriever=CorpusRetriever(catalog.corpus, RetrievalConfig(top_k=settings.retrieval_top_k)),
            provider=provider,
            config=RouterConfig(support_email=settings.support_email, top_k=settings.retrieval_top_k),
        )

    @property
    def normalizer(self) -> Normalizer:
        return self._normalizer

    def _render(self, template: str, query: NormalizedQuery) -> str:
        return render_response(template, question=query.raw, support_email=self._config.support_email)

    def _finish(self, query: NormalizedQuery, trace: _Trace, **fields) -> RoutingOutcome:
        outcome = RoutingOutcome(query=query, trace=tuple(trace.decisions), **fields)
        decision = outcome.terminal
        _LOGGER.info(
            "routing.complete",
            layer=decision.layer.value,
            rule=decision.rule,
            intent=decision.intent,
            category=decision.category,
            score=decision.score,
            stages=len(outcome.trace),
        )
        return outcome

    async def route(self, question: str) -> RoutingOutcome:
        query = self._normalizer.normalize_query(question)
        trace = _Trace()

        match = self._rules.match_safety(query.raw)
        if match is not None:
            trace.record(
                RoutingLayer.SAFETY_REGEX,
                True,
                rule=match.rule.rule_id,
                category=match.rule.category,
            )
            return self._finish(query, trace, answer=self._render(match.rule.response or "", query))
        trace.record(RoutingLayer.SAFETY_REGEX, False)

        scope: frozenset[str] | None = None
        scope_intent: str | None = None
        match = self._rules.match_business(query.normalized)
        if match is not None:
            rule = match.rule
            intent = self._intents.get(rule.intent) if rule.intent else None
            response = rule.response or (intent.response if intent is not None else None)
            trace.record(
                RoutingLayer.BUSINESS_REGEX,
                True,
                rule=rule.rule_id,
                intent=rule.intent,
                category=rule.category,
            )
            if response:
                return self._finish(query, trace, answer=self._render(response, query))
            if intent is not None:
                scope = intent.scope or None
                scope_intent = intent.intent_id
        else:
            trace.record(RoutingLayer.BUSINESS_REGEX, False)

        embedding = MemoizedEmbedding(self._provider, query.normalized)

        assessment = await self._safety_gate.assess(query.normalized, embedding)
        exemplar = assessment.exemplar if assessment.triggered else None
        trace.record(
            RoutingLayer.SAFETY_EMBED,
            assessment.triggered,
            rule=exemplar.exemplar_id if exemplar is not None else None,
            category=exemplar.category if exemplar is not None else None,
            score=assessment.score,
            risk_token_count=assessment.risk_token_count,
            has_product_context=assessment.has_product_context,
            embedding_score=assessment.embedding_score,
        )
        if exemplar is not None:
            return self._finish(query, trace, answer=self._render(exemplar.response, query))

        intent_match = await self._intents.classify(embedding)
        if intent_match is not None:
            trace.record(
                RoutingLayer.INTENT_EMBED,
                True,
                intent=intent_match.intent.intent_id,
                score=intent_match.score,
            )
            if intent_match.terminal:
                return self._finish(query, trace, answer=self._render(intent_match.intent.response or "", query))
            if intent_match.intent.scope:
                scope = intent_match.intent.scope
            scope_intent = intent_match.intent.intent_id
        else:
            trace.record(RoutingLayer.INTENT_EMBED, False)

        vector = await embedding()
        result = self._retriever.retrieve_with_details(vector, scope=scope, top_k=self._config.top_k)
        documents = tuple(result.documents)
        trace.record(
            RoutingLayer.RETRIEVAL_FALLBACK,
            True,
            intent=scope_intent,
            score=documents[0].score if documents else None,
            scope_fallback=result.scope_fallback,
        )
        if result.scope_fallback:
            _LOGGER.warning("routing.scope_fallback", intent=scope_intent, scope=sorted(scope or ()))
        return self._finish(query, trace, documents=documents, scope=scope)
