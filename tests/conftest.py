from __future__ import annotations

from typing import Sequence, Tuple

import pytest

from concierge.catalog import RouterCatalog, load_lexicon, load_rules
from concierge.config import Settings
from concierge.models import IntentDefinition, IntentExample, KnowledgeDocument, SafetyExemplar, Vector
from concierge.routing import Router
from concierge.rules import RuleKind

# Four axes: medical, shipping, product, support.
MEDICAL: Vector = (1.0, 0.0, 0.0, 0.0)
SHIPPING: Vector = (0.0, 1.0, 0.0, 0.0)
PRODUCT: Vector = (0.0, 0.0, 1.0, 0.0)
SUPPORT: Vector = (0.0, 0.0, 0.0, 1.0)


class StubProvider:
    """Returns the vector of the first keyword found in the text."""

    def __init__(
        self,
        vectors: Sequence[Tuple[str, Vector]] = (),
        default: Vector = (0.5, 0.0, 0.0, 0.866),
        error: Exception | None = None,
    ) -> None:
        self.vectors = list(vectors)
        self.default = default
        self.error = error
        self.calls: list[str] = []

    async def embed(self, text: str) -> Vector:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        for keyword, vector in self.vectors:
            if keyword in text:
                return vector
        return self.default


def _doc(doc_id: str, section: str, vector: Vector) -> KnowledgeDocument:
    return KnowledgeDocument(
        doc_id=doc_id,
        url=f"https://example.test/{doc_id}",
        section=section,
        content=f"{section} passage for {doc_id}",
        vector=vector,
    )


def make_catalog() -> RouterCatalog:
    intents = (
        IntentDefinition(
            intent_id="shipping",
            label="Shipping",
            examples=(IntentExample(text="when does it ship", vector=SHIPPING),),
            scope=frozenset({"shipping-policy"}),
            response="We ship within one business day. Questions? $support_email",
        ),
        IntentDefinition(
            intent_id="returns",
            label="Returns",
            examples=(),
            scope=frozenset({"returns-policy"}),
            response="Refunds are handled by $support_email",
        ),
        IntentDefinition(
            intent_id="human-support",
            label="Human support",
            examples=(IntentExample(text="talk to a person", vector=SUPPORT),),
            threshold=0.9,
            response="A person will help you at $support_email",
        ),
        IntentDefinition(
            intent_id="mechanism",
            label="How it works",
            examples=(IntentExample(text="how does it work", vector=PRODUCT),),
            scope=frozenset({"how-it-works", "ingredients"}),
        ),
    )
    corpus = (
        _doc("product-overview", "overview", (0.1, 0.1, 0.7, 0.1)),
        _doc("how-it-works", "science", PRODUCT),
        _doc("ingredients", "ingredients", (0.0, 0.2, 0.9, 0.0)),
        _doc("shipping-policy", "shipping", SHIPPING),
        _doc("returns-policy", "returns", (0.0, 0.5, 0.0, 0.5)),
    )
    exemplars = (
        SafetyExemplar(
            exemplar_id="medication",
            category="medication",
            response="Please ask your doctor first. Reach us at $support_email",
            vector=MEDICAL,
        ),
    )
    return RouterCatalog(
        safety_rules=load_rules(None, RuleKind.SAFETY),
        business_rules=load_rules(None, RuleKind.BUSINESS),
        lexicon=load_lexicon(None),
        exemplars=exemplars,
        intents=intents,
        corpus=corpus,
        embedding_model="stub",
    )


def make_settings(**overrides) -> Settings:
    values = {"environment": "test", "embedding_dim": 4, "support_email": "help@example.test"}
    values.update(overrides)
    return Settings(**values)


def make_router(provider: StubProvider, catalog: RouterCatalog | None = None, **overrides) -> Router:
    return Router.from_catalog(catalog or make_catalog(), provider, make_settings(**overrides))


@pytest.fixture
def catalog() -> RouterCatalog:
    return make_catalog()


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()
