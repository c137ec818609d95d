"""Shared domain models used across the routing pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence, Tuple

Vector = Tuple[float, ...]


class RoutingLayer(str, Enum):
    """Routing stages in their fixed precedence order."""

    SAFETY_REGEX = "safety-regex"
    BUSINESS_REGEX = "business-regex"
    SAFETY_EMBED = "safety-embed"
    INTENT_EMBED = "intent-embed"
    RETRIEVAL_FALLBACK = "retrieval-fallback"


LAYER_ORDER: Tuple[RoutingLayer, ...] = tuple(RoutingLayer)


@dataclass(frozen=True)
class NormalizedQuery:
    """Raw question alongside its normalized form."""

    raw: str
    normalized: str
    protected_entities: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SafetyExemplar:
    """Reference refusal used as a semantic anchor by the safety gate."""

    exemplar_id: str
    category: str
    response: str
    vector: Vector
    text: str | None = None


@dataclass(frozen=True)
class IntentExample:
    text: str
    vector: Vector


@dataclass(frozen=True)
class IntentDefinition:
    """Intent scored by its closest example; may answer directly or narrow retrieval."""

    intent_id: str
    label: str
    examples: Tuple[IntentExample, ...]
    threshold: float | None = None
    scope: frozenset[str] = frozenset()
    response: str | None = None


@dataclass(frozen=True)
class KnowledgeDocument:
    """Reference passage handed to answer generation."""

    doc_id: str
    url: str
    section: str
    content: str
    vector: Vector


@dataclass(frozen=True)
class ScoredDocument:
    """Knowledge document paired with its similarity to the question."""

    document: KnowledgeDocument
    score: float


@dataclass(frozen=True)
class SourceCitation:
    doc_id: str
    url: str
    score: float | None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.doc_id, "url": self.url, "score": self.score}


@dataclass(frozen=True)
class RoutingDecision:
    """One entry of the decision trace."""

    layer: RoutingLayer
    triggered: bool
    order: int
    rule: str | None = None
    intent: str | None = None
    category: str | None = None
    score: float | None = None
    risk_token_count: int | None = None
    has_product_context: bool | None = None
    embedding_score: float | None = None
    scope_fallback: bool | None = None
    skipped: bool = False
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "layer": self.layer.value,
            "rule": self.rule,
            "intent": self.intent,
            "category": self.category,
            "score": self.score,
            "triggered": self.triggered,
            "order": self.order,
            "risk_token_count": self.risk_token_count,
            "has_product_context": self.has_product_context,
            "embedding_score": self.embedding_score,
            "scope_fallback": self.scope_fallback,
            "skipped": self.skipped,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class RoutingSummary:
    layer: RoutingLayer
    rule: str | None = None
    intent: str | None = None
    category: str | None = None
    score: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "layer": self.layer.value,
            "rule": self.rule,
            "intent": self.intent,
            "category": self.category,
            "score": self.score,
        }


@dataclass(frozen=True)
class RoutingOutcome:
    """Result of routing a single question.

    ``answer`` is set when a layer produced a terminal canned response. For the
    retrieval fallback it is ``None`` and ``documents`` holds the passages for
    the generation collaborator.
    """

    query: NormalizedQuery
    trace: Tuple[RoutingDecision, ...]
    answer: str | None = None
    documents: Tuple[ScoredDocument, ...] = ()
    scope: frozenset[str] | None = None

    @property
    def terminal(self) -> RoutingDecision:
        return self.trace[-1]

    @property
    def layer(self) -> RoutingLayer:
        return self.terminal.layer

    @property
    def sources(self) -> Sequence[SourceCitation]:
        return [
            SourceCitation(doc_id=item.document.doc_id, url=item.document.url, score=round(item.score, 3))
            for item in self.documents
        ]

    @property
    def summary(self) -> RoutingSummary:
        decision = self.terminal
        return RoutingSummary(
            layer=decision.layer,
            rule=decision.rule,
            intent=decision.intent,
            category=decision.category,
            score=decision.score,
        )


@dataclass(frozen=True)
class Answer:
    """Answer returned to the caller together with its routing metadata."""

    text: str
    outcome: RoutingOutcome
    query_id: str
    latency_ms: float
    generation_ms: float | None = None

    @property
    def sources(self) -> Sequence[SourceCitation]:
        return self.outcome.sources

    @property
    def routing(self) -> RoutingSummary:
        return self.outcome.summary
