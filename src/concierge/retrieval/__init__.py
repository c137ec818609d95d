"""Retrieval components."""

from .service import CorpusRetriever, RetrievalConfig, RetrievalResult

__all__ = ["CorpusRetriever", "RetrievalConfig", "RetrievalResult"]
