"""Runtime configuration for the concierge router and its services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="concierge_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"
    data_dir: Path = Path("./data")

    # Static configuration documents, loaded once at startup
    corpus_path: Path = Path("./data/embeddings.json")
    safety_exemplars_path: Path = Path("./data/router-safety.json")
    intents_path: Path = Path("./data/router-intents.json")
    # None means the defaults packaged with concierge.catalog
    safety_rules_path: Path | None = None
    business_rules_path: Path | None = None
    lexicon_path: Path | None = None

    # Embeddings
    embedding_backend: Literal["hash", "huggingface", "openai"] = "hash"
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = 1536
    embedding_timeout_seconds: float = 30.0
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"

    # Generation
    generator_backend: Literal["template", "openai"] = "template"
    generator_model: str = "gpt-4o-mini"
    generator_temperature: float = 0.2
    generator_max_tokens: int = 400
    generator_timeout_seconds: float = 60.0

    # Router heuristics, calibrated against the production exemplar corpus
    safety_threshold: float = 0.42
    safety_embedding_weight: float = 0.7
    safety_risk_weight: float = 0.3
    safety_risk_token_scale: float = 0.3
    safety_product_context_dampening: float = 0.6
    safety_dampening_max_risk_tokens: int = 2
    intent_fallback_threshold: float = 0.3
    retrieval_top_k: int = 3

    support_email: str = "info@intelligentmolecules.com"

    # Audit trail
    audit_backend: Literal["log", "jsonl"] = "log"
    audit_path: Path = Path("./data/audit/routing-decisions.jsonl")

    evaluation_top_k: int = 4

    # API & request safety
    max_question_chars: int = 2000
    expose_trace: bool = False

    # CORS
    cors_allow_origins: tuple[str, ...] = ()
    cors_allow_credentials: bool = False
    cors_allow_methods: tuple[str, ...] = ("GET", "POST", "OPTIONS")
    cors_allow_headers: tuple[str, ...] = ("Content-Type",)

    # Security
    api_key: str | None = None  # if set, required in X-API-Key header
    rate_limit_requests: int = 120  # per window per client
    rate_limit_window_seconds: int = 60

    @property
    def is_test(self) -> bool:
        return self.environment == "test"


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
