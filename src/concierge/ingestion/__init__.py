"""Offline ingestion of knowledge, exemplar and intent sources."""

from .service import (
    IngestionConfig,
    IngestionError,
    KnowledgeSource,
    MarkdownKnowledgeLoader,
    build_corpus,
    build_exemplars,
    build_intents,
    run_ingestion,
    split_front_matter,
)

__all__ = [
    "IngestionConfig",
    "IngestionError",
    "KnowledgeSource",
    "MarkdownKnowledgeLoader",
    "build_corpus",
    "build_exemplars",
    "build_intents",
    "run_ingestion",
    "split_front_matter",
]
