"""Embedding providers and similarity scoring."""

from .service import (
    EmbeddingConfig,
    EmbeddingProvider,
    HashEmbeddingProvider,
    HuggingFaceEmbeddingProvider,
    MemoizedEmbedding,
    OpenAIEmbeddingProvider,
    build_embedding_provider,
    embedding_config_from_settings,
)
from .similarity import clamp_unit, cosine

__all__ = [
    "EmbeddingConfig",
    "EmbeddingProvider",
    "HashEmbeddingProvider",
    "HuggingFaceEmbeddingProvider",
    "MemoizedEmbedding",
    "OpenAIEmbeddingProvider",
    "build_embedding_provider",
    "embedding_config_from_settings",
    "clamp_unit",
    "cosine",
]
