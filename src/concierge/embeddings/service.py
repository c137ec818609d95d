"""Embedding provider adapters."""

from __future__ import annotations

import asyncio
import hashlib
import math
from dataclasses import dataclass
from typing import Protocol, Sequence

import httpx
from langchain_core.embeddings import Embeddings as LangChainEmbeddings

from concierge.config import Settings
from concierge.errors import EmbeddingProviderError
from concierge.metrics.observability import RouterMetrics, TimedSection, get_logger
from concierge.models import Vector

LOGGER = get_logger("embeddings")


@dataclass(frozen=True)
class EmbeddingConfig:
    """Configuration for embedding providers."""

    model: str = "text-embedding-3-small"
    dim: int = 1536
    normalize: bool = True
    device: str | None = None
    cache_folder: str | None = None
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    timeout_seconds: float = 30.0


class EmbeddingProvider(Protocol):
    """Text to fixed-dimension vector."""

    async def embed(self, text: str) -> Vector:
        """Return the embedding for ``text`` or raise EmbeddingProviderError."""


def _unit(vector: Sequence[float]) -> Vector:
    norm = math.sqrt(sum(value * value for value in vector)) or 1.0
    return tuple(value / norm for value in vector)


class HashEmbeddingProvider:
    """Deterministic lightweight embeddings used for testing and offline runs."""

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()

    def embed_sync(self, text: str) -> Vector:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        repeat = (self._config.dim + len(digest) - 1) // len(digest)
        raw = (digest * repeat)[: self._config.dim]
        # Centered so unrelated texts score near zero.
        vector = [byte / 127.5 - 1.0 for byte in raw]
        if self._config.normalize:
            return _unit(vector)
        return tuple(vector)

    async def embed(self, text: str) -> Vector:
        return self.embed_sync(text)


class HuggingFaceEmbeddingProvider:
    """Local sentence-embedding model loaded through LangChain."""

    def __init__(self, config: EmbeddingConfig | None = None, client: LangChainEmbeddings | None = None) -> None:
        self._config = config or EmbeddingConfig(model="BAAI/bge-small-en-v1.5", dim=384)
        self._client = client

    def _ensure_client(self) -> LangChainEmbeddings:
        if self._client is None:
            from langchain_community.embeddings import HuggingFaceEmbeddings

            model_kwargs = {"device": self._config.device} if self._config.device else {}
            if self._config.cache_folder:
                model_kwargs["cache_dir"] = self._config.cache_folder
            self._client = HuggingFaceEmbeddings(
                model_name=self._config.model,
                model_kwargs=model_kwargs,
                encode_kwargs={"normalize_embeddings": self._config.normalize},
            )
            LOGGER.info("embeddings.model_loaded", model=self._config.model)
        return self._client

    async def embed(self, text: str) -> Vector:
        try:
            client = self._ensure_client()
            # Encoding is CPU bound; keep it off the event loop.
            vector = await asyncio.to_thread(client.embed_query, text)
        except Exception as exc:
            raise EmbeddingProviderError(f"Local embedding model failed: {exc}") from exc
        if len(vector) != self._config.dim:
            LOGGER.warning("embeddings.dim_mismatch", configured=self._config.dim, actual=len(vector))
        return _unit(vector) if self._config.normalize else tuple(vector)


class OpenAIEmbeddingProvider:
    """Embeddings endpoint of the OpenAI HTTP API."""

    def __init__(self, config: EmbeddingConfig | None = None, client: httpx.AsyncClient | None = None) -> None:
        self._config = config or EmbeddingConfig()
        if not self._config.api_key:
            raise EmbeddingProviderError("An API key is required for the OpenAI embedding provider")
        self._client = client or httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=self._config.timeout_seconds,
        )

    async def embed(self, text: str) -> Vector:
        try:
            response = await self._client.post(
                "/embeddings",
                headers={"Authorization": f"Bearer {self._config.api_key}"},
                json={"model": self._config.model, "input": text},
            )
        except httpx.HTTPError as exc:
            raise EmbeddingProviderError(f"Embedding request failed: {exc}") from exc
        if response.status_code >= 400:
            raise EmbeddingProviderError(
                f"Embedding request failed: {response.status_code} {response.reason_phrase} - {response.text}"
            )
        try:
            vector = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise EmbeddingProviderError("Unexpected embedding response") from exc
        if not isinstance(vector, list) or not vector:
            raise EmbeddingProviderError("Unexpected embedding response")
        return tuple(float(value) for value in vector)

    async def aclose(self) -> None:
        await self._client.aclose()


class MemoizedEmbedding:
    """Lazily embeds one question and reuses the vector for the rest of the request."""

    def __init__(self, provider: EmbeddingProvider, text: str) -> None:
        self._provider = provider
        self._text = text
        self._vector: Vector | None = None
        self.calls = 0

    @property
    def resolved(self) -> bool:
        return self._vector is not None

    async def get(self) -> Vector:
        if self._vector is not None:
            return self._vector
        self.calls += 1
        try:
            with TimedSection(RouterMetrics.observe_embedding):
                vector = await self._provider.embed(self._text)
        except EmbeddingProviderError:
            raise
        except Exception as exc:
            raise EmbeddingProviderError(f"Embedding provider failed: {exc}") from exc
        if not vector:
            raise EmbeddingProviderError("Embedding provider returned an empty vector")
        self._vector = tuple(vector)
        return self._vector

    __call__ = get


def build_embedding_provider(
    backend: str,
    config: EmbeddingConfig,
) -> EmbeddingProvider:
    """Return the provider named by ``backend`` (``hash``, ``huggingface`` or ``openai``)."""

    if backend == "openai":
        return OpenAIEmbeddingProvider(config)
    if backend == "huggingface":
        return HuggingFaceEmbeddingProvider(config)
    if backend == "hash":
        return HashEmbeddingProvider(config)
    raise ValueError(f"Unknown embedding backend: {backend}")


def embedding_config_from_settings(settings: Settings) -> EmbeddingConfig:
    return EmbeddingConfig(
        model=settings.embedding_model,
        dim=settings.embedding_dim,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout_seconds=settings.embedding_timeout_seconds,
    )
