"""Similarity retrieval over the in-memory knowledge corpus."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Sequence

from concierge.embeddings.similarity import clamp_unit, cosine
from concierge.models import KnowledgeDocument, ScoredDocument, Vector


@dataclass(frozen=True)
class RetrievalConfig:
    """Configuration for retrieval."""

    top_k: int = 3


@dataclass(frozen=True)
class RetrievalResult:
    documents: Sequence[ScoredDocument]
    scope_applied: bool
    scope_fallback: bool


class CorpusRetriever:
    """Ranks the knowledge corpus by cosine similarity to the question.

    A non-empty scope restricts ranking to the listed document ids. When the
    scope names no document in the corpus the whole corpus is ranked instead;
    this leniency is kept until product decides otherwise. Equal scores keep
    corpus order.
    """

    def __init__(self, corpus: Sequence[KnowledgeDocument], config: RetrievalConfig | None = None) -> None:
        self._corpus = tuple(corpus)
        self._config = config or RetrievalConfig()

    @property
    def corpus(self) -> Sequence[KnowledgeDocument]:
        return self._corpus

    def retrieve(
        self,
        vector: Vector,
        scope: Collection[str] | None = None,
        top_k: int | None = None,
    ) -> Sequence[ScoredDocument]:
        return self.retrieve_with_details(vector, scope=scope, top_k=top_k).documents

    def retrieve_with_details(
        self,
        vector: Vector,
        scope: Collection[str] | None = None,
        top_k: int | None = None,
    ) -> RetrievalResult:
        limit = max(1, top_k or self._config.top_k)
        candidates: Sequence[KnowledgeDocument] = self._corpus
        scope_applied = False
        scope_fallback = False
        if scope:
            scoped = [doc for doc in self._corpus if doc.doc_id in scope]
            if scoped:
                candidates = scoped
                scope_applied = True
            else:
                scope_fallback = True

        scored = [(cosine(vector, doc.vector), index, doc) for index, doc in enumerate(candidates)]
        scored.sort(key=lambda item: (-item[0], item[1]))
        documents = [ScoredDocument(document=doc, score=clamp_unit(score)) for score, _, doc in scored[:limit]]
        return RetrievalResult(documents=documents, scope_applied=scope_applied, scope_fallback=scope_fallback)
