from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from concierge.api.app import create_app
from concierge.config import Settings
from concierge.errors import ConfigurationError
from concierge.ingestion import run_ingestion

DATA_DIR = Path(__file__).resolve().parents[1] / "data"


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "environment": "test",
        "embedding_backend": "hash",
        "embedding_model": "hash",
        "embedding_dim": 16,
        "corpus_path": tmp_path / "embeddings.json",
        "safety_exemplars_path": tmp_path / "router-safety.json",
        "intents_path": tmp_path / "router-intents.json",
        "audit_backend": "jsonl",
        "audit_path": tmp_path / "audit.jsonl",
        "rate_limit_requests": 1000,
    }
    values.update(overrides)
    return Settings(**values)


def ingest(settings: Settings) -> None:
    asyncio.run(
        run_ingestion(
            settings,
            knowledge_dir=DATA_DIR / "knowledge",
            safety_source=DATA_DIR / "router-safety.source.json",
            intents_source=DATA_DIR / "router-intents.source.json",
        ),
    )


def test_health_and_chat_flow(tmp_path: Path):
    settings = make_settings(tmp_path)
    ingest(settings)

    with TestClient(create_app(settings=settings)) as client:
        r = client.get("/healthz")
        assert r.status_code == 200
        r = client.get("/healthz/ready")
        assert r.status_code == 200
        ready = r.json()
        assert ready["catalog"]["corpus"] == 6
        assert ready["catalog"]["safety_rules"] == 4
        assert ready["embedding_model"] == "hash"

        r = client.post("/chat", json={"message": "How fast do you ship orders?"})
        assert r.status_code == 200, r.text
        data = r.json()
        assert data["routing"]["layer"] == "business-regex"
        assert data["routing"]["intent"] == "shipping"

        r = client.post("/chat", json={"message": "Can I take A-Minus while pregnant?"})
        assert r.json()["routing"]["category"] == "pregnancy"

    lines = settings.audit_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2


def test_dimension_mismatch_fails_startup(tmp_path: Path):
    settings = make_settings(tmp_path)
    ingest(settings)

    with pytest.raises(ConfigurationError):
        create_app(settings=make_settings(tmp_path, embedding_dim=32))


def test_missing_documents_fail_startup(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        create_app(settings=make_settings(tmp_path))
