"""Loads the static routing configuration once and freezes it."""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Dict, Iterable, Mapping, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from concierge.catalog.schemas import (
    CorpusModel,
    ExemplarSetModel,
    IntentSetModel,
    LexiconModel,
    RuleSetModel,
)
from concierge.config import Settings
from concierge.errors import ConfigurationError
from concierge.metrics.observability import get_logger
from concierge.models import IntentDefinition, IntentExample, KnowledgeDocument, SafetyExemplar
from concierge.normalization import ProtectedEntity
from concierge.rules import PatternRule, RuleKind

_LOGGER = get_logger("catalog")

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_SAFETY_RULES = "safety_rules.json"
DEFAULT_BUSINESS_RULES = "business_rules.json"
DEFAULT_LEXICON = "lexicon.json"


@dataclass(frozen=True)
class Lexicon:
    protected_entities: Tuple[ProtectedEntity, ...]
    risk_tokens: Tuple[str, ...]
    product_context_terms: Tuple[str, ...]


@dataclass(frozen=True)
class RouterCatalog:
    """Every static document the router needs, read-only for the process lifetime."""

    safety_rules: Tuple[PatternRule, ...]
    business_rules: Tuple[PatternRule, ...]
    lexicon: Lexicon
    exemplars: Tuple[SafetyExemplar, ...]
    intents: Tuple[IntentDefinition, ...]
    corpus: Tuple[KnowledgeDocument, ...]
    embedding_model: str | None = None

    @property
    def dimension(self) -> int:
        return len(self.corpus[0].vector)

    def sizes(self) -> Mapping[str, int]:
        return {
            "safety_rules": len(self.safety_rules),
            "business_rules": len(self.business_rules),
            "exemplars": len(self.exemplars),
            "intents": len(self.intents),
            "corpus": len(self.corpus),
        }


def _read_text(path: Path | None, default_name: str) -> Tuple[str, str]:
    if path is None:
        source = f"<packaged {default_name}>"
        reader = resources.files("concierge.catalog").joinpath("defaults", default_name)
    else:
        source = str(path)
        if not path.exists():
            raise ConfigurationError("document not found", source=source)
        reader = path
    try:
        return source, reader.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"cannot read document: {exc}", source=source) from exc


def _parse(model: Type[ModelT], path: Path | None, default_name: str = "") -> Tuple[str, ModelT]:
    source, raw = _read_text(path, default_name)
    try:
        return source, model.model_validate(json.loads(raw))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"invalid JSON: {exc}", source=source) from exc
    except ValidationError as exc:
        raise ConfigurationError(f"invalid document: {exc}", source=source) from exc


def _ensure_unique(ids: Iterable[str], source: str) -> None:
    seen: set[str] = set()
    for item in ids:
        if item in seen:
            raise ConfigurationError(f"duplicate id {item!r}", source=source)
        seen.add(item)


def load_rules(path: Path | None, kind: RuleKind) -> Tuple[PatternRule, ...]:
    default_name = DEFAULT_SAFETY_RULES if kind is RuleKind.SAFETY else DEFAULT_BUSINESS_RULES
    source, document = _parse(RuleSetModel, path, default_name)
    _ensure_unique((rule.id for rule in document.rules), source)
    rules = []
    for item in document.rules:
        try:
            rules.append(
                PatternRule(
                    rule_id=item.id,
                    kind=kind,
                    category=item.category,
                    patterns=tuple(item.patterns),
                    response=item.response,
                    intent=item.intent,
                ),
            )
        except ValueError as exc:
            raise ConfigurationError(str(exc), source=source) from exc
    if kind is RuleKind.SAFETY and not rules:
        raise ConfigurationError("at least one safety rule is required", source=source)
    return tuple(rules)


def load_lexicon(path: Path | None) -> Lexicon:
    source, document = _parse(LexiconModel, path, DEFAULT_LEXICON)
    try:
        entities = tuple(
            ProtectedEntity(canonical=item.canonical, variants=tuple(item.variants))
            for item in document.protected_entities
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc), source=source) from exc
    return Lexicon(
        protected_entities=entities,
        risk_tokens=tuple(document.risk_tokens),
        product_context_terms=tuple(document.product_context_terms),
    )


def load_exemplars(path: Path) -> Tuple[str | None, Tuple[SafetyExemplar, ...]]:
    source, document = _parse(ExemplarSetModel, path)
    _ensure_unique((item.id for item in document.exemplars), source)
    exemplars = tuple(
        SafetyExemplar(
            exemplar_id=item.id,
            category=item.category,
            response=item.response,
            vector=tuple(item.embedding),
            text=item.text,
        )
        for item in document.exemplars
    )
    return document.model, exemplars


def load_intents(path: Path) -> Tuple[str | None, Tuple[IntentDefinition, ...]]:
    source, document = _parse(IntentSetModel, path)
    _ensure_unique((item.id for item in document.intents), source)
    intents = tuple(
        IntentDefinition(
            intent_id=item.id,
            label=item.label or item.id,
            examples=tuple(IntentExample(text=ex.text, vector=tuple(ex.embedding)) for ex in item.examples),
            threshold=item.threshold,
            scope=frozenset(item.scope),
            response=item.response,
        )
        for item in document.intents
    )
    return document.model, intents


def load_corpus(path: Path) -> Tuple[str | None, Tuple[KnowledgeDocument, ...]]:
    source, document = _parse(CorpusModel, path)
    _ensure_unique((item.id for item in document.docs), source)
    corpus = tuple(
        KnowledgeDocument(
            doc_id=item.id,
            url=item.url,
            section=item.section,
            content=item.content,
            vector=tuple(item.embedding),
        )
        for item in document.docs
    )
    return document.model, corpus


def _check_dimensions(catalog: RouterCatalog) -> None:
    dims: Dict[int, str] = {}
    for exemplar in catalog.exemplars:
        dims.setdefault(len(exemplar.vector), f"exemplar {exemplar.exemplar_id}")
    for intent in catalog.intents:
        for example in intent.examples:
            dims.setdefault(len(example.vector), f"intent {intent.intent_id}")
    for doc in catalog.corpus:
        dims.setdefault(len(doc.vector), f"document {doc.doc_id}")
    if len(dims) > 1:
        found = ", ".join(f"{dim} ({where})" for dim, where in sorted(dims.items()))
        raise ConfigurationError(f"embedding dimensions disagree: {found}")


def _check_business_intents(catalog: RouterCatalog) -> None:
    known = {intent.intent_id for intent in catalog.intents}
    for rule in catalog.business_rules:
        if rule.intent and rule.intent not in known:
            raise ConfigurationError(f"business rule {rule.rule_id!r} references unknown intent {rule.intent!r}")


def load_catalog(settings: Settings) -> RouterCatalog:
    """Read and validate every routing document; raise ConfigurationError on any defect."""

    corpus_model, corpus = load_corpus(settings.corpus_path)
    exemplar_model, exemplars = load_exemplars(settings.safety_exemplars_path)
    intent_model, intents = load_intents(settings.intents_path)
    catalog = RouterCatalog(
        safety_rules=load_rules(settings.safety_rules_path, RuleKind.SAFETY),
        business_rules=load_rules(settings.business_rules_path, RuleKind.BUSINESS),
        lexicon=load_lexicon(settings.lexicon_path),
        exemplars=exemplars,
        intents=intents,
        corpus=corpus,
        embedding_model=corpus_model or exemplar_model or intent_model,
    )
    _check_dimensions(catalog)
    _check_business_intents(catalog)
    _LOGGER.info("catalog.loaded", embedding_model=catalog.embedding_model, **catalog.sizes())
    return catalog
