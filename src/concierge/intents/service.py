"""Embedding-based intent classification over per-intent example sets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Mapping, Sequence

from concierge.embeddings.similarity import cosine
from concierge.models import IntentDefinition, Vector

EmbeddingFn = Callable[[], Awaitable[Vector]]


@dataclass(frozen=True)
class IntentMatch:
    intent: IntentDefinition
    score: float
    threshold: float

    @property
    def terminal(self) -> bool:
        return bool(self.intent.response)


class IntentClassifier:
    """Picks the intent whose closest example scores highest above its threshold.

    An intent is a candidate only when its best example clears the intent's own
    threshold, or ``fallback_threshold`` when it has none. Ties keep the intent
    declared first.
    """

    def __init__(self, intents: Sequence[IntentDefinition], fallback_threshold: float = 0.3) -> None:
        self._intents = tuple(intents)
        self._by_id = {intent.intent_id: intent for intent in self._intents}
        self._fallback_threshold = fallback_threshold

    @property
    def intents(self) -> Mapping[str, IntentDefinition]:
        return self._by_id

    def get(self, intent_id: str) -> IntentDefinition | None:
        return self._by_id.get(intent_id)

    def score(self, vector: Vector, intent: IntentDefinition) -> float | None:
        if not intent.examples:
            return None
        return max(cosine(vector, example.vector) for example in intent.examples)

    async def classify(self, embedding_fn: EmbeddingFn) -> IntentMatch | None:
        if not self._intents:
            return None
        vector = await embedding_fn()
        best: IntentMatch | None = None
        for intent in self._intents:
            score = self.score(vector, intent)
            if score is None:
                continue
            threshold = intent.threshold if intent.threshold is not None else self._fallback_threshold
            if score < threshold:
                continue
            if best is None or score > best.score:
                best = IntentMatch(intent=intent, score=score, threshold=threshold)
        return best
