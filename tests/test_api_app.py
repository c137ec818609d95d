"""Tests for the FastAPI application helpers."""

from __future__ import annotations

import pytest
from fastapi import HTTPException, Request
from fastapi.testclient import TestClient

from concierge.api.app import AppDependencies, RateLimiter, create_app
from concierge.audit import AuditDispatcher, InMemoryAuditSink
from concierge.errors import EmbeddingProviderError
from concierge.services import QueryService, TemplateGenerator

from conftest import StubProvider, make_catalog, make_router, make_settings


def create_test_client(provider: StubProvider | None = None, **overrides) -> TestClient:
    catalog = make_catalog()
    service = QueryService(
        make_router(provider or StubProvider(), catalog=catalog),
        generator=TemplateGenerator(support_email="help@example.test"),
        audit=AuditDispatcher(InMemoryAuditSink()),
    )
    deps = AppDependencies(query_service=service, catalog=catalog)
    app = create_app(settings=make_settings(**overrides), dependencies=deps)
    return TestClient(app)


def test_safety_question_returns_canned_answer() -> None:
    client = create_test_client()

    response = client.post("/chat", json={"message": "I just took A-Minus and now I have chest pain"})

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["routing"]["layer"] == "safety-regex"
    assert payload["routing"]["category"] == "emergency"
    assert "911" in payload["answer"]
    assert payload["sources"] == []
    assert "trace" not in payload
    assert "generation_ms" not in payload
    assert response.headers["X-Correlation-ID"]


def test_get_chat_uses_query_parameter() -> None:
    client = create_test_client()

    response = client.get("/chat", params={"message": "Where is my order?"})

    assert response.status_code == 200, response.text
    assert response.json()["routing"]["rule"] == "order-status"


def test_retrieval_answer_lists_sources() -> None:
    client = create_test_client()

    response = client.post("/chat", json={"message": "I read about supplements and pregnancy research in general"})

    assert response.status_code == 200, response.text
    payload = response.json()
    assert payload["routing"]["layer"] == "retrieval-fallback"
    assert payload["sources"][0]["id"] == "returns-policy"
    assert payload["sources"][0]["url"] == "https://example.test/returns-policy"
    assert payload["answer"].startswith("returns passage for returns-policy")
    assert payload["generation_ms"] >= 0


def test_trace_is_exposed_when_enabled() -> None:
    client = create_test_client(expose_trace=True)

    payload = client.post("/chat", json={"message": "Where is my order?"}).json()

    assert [entry["layer"] for entry in payload["trace"]] == [
        "safety-regex",
        "business-regex",
        "safety-embed",
        "intent-embed",
        "retrieval-fallback",
    ]
    assert [entry["skipped"] for entry in payload["trace"]] == [False, False, True, True, True]


def test_invalid_messages_return_400() -> None:
    client = create_test_client()

    for body in ({"message": ""}, {"message": "   "}, {}, {"message": 7}):
        response = client.post("/chat", json=body)
        assert response.status_code == 400, body
        assert response.json()["correlation_id"]
    assert client.get("/chat").status_code == 400


def test_provider_failure_returns_502() -> None:
    client = create_test_client(provider=StubProvider(error=EmbeddingProviderError("down")))

    response = client.post("/chat", json={"message": "What is A-Minus?"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Embedding provider unavailable"


def test_api_key_is_enforced_when_configured() -> None:
    client = create_test_client(api_key="secret")

    assert client.post("/chat", json={"message": "Where is my order?"}).status_code == 401
    response = client.post("/chat", json={"message": "Where is my order?"}, headers={"X-API-Key": "secret"})
    assert response.status_code == 200


def test_health_endpoints() -> None:
    client = create_test_client()

    assert client.get("/healthz").json()["status"] == "ok"
    assert client.head("/healthz").status_code == 200
    assert client.get("/livez").json() == {"status": "alive"}
    ready = client.get("/healthz/ready").json()
    assert ready["status"] == "ready"
    assert ready["catalog"]["corpus"] == 5
    assert ready["embedding_model"] == "stub"
    assert client.get("/metrics").status_code == 200


def _chat_request(client_ip: str) -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "path": "/chat",
            "root_path": "",
            "scheme": "http",
            "query_string": b"",
            "headers": [(b"x-forwarded-for", client_ip.encode())],
            "client": (client_ip, 50000),
            "server": ("testserver", 80),
        }
    )


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_rate_limiter_rejects_requests_over_the_window_limit() -> None:
    clock = FakeClock()
    limiter = RateLimiter(2, 60, clock=clock)

    limiter(_chat_request("10.0.0.1"))
    limiter(_chat_request("10.0.0.1"))
    with pytest.raises(HTTPException) as excinfo:
        limiter(_chat_request("10.0.0.1"))
    assert excinfo.value.status_code == 429

    limiter(_chat_request("10.0.0.2"))
    clock.now += 61
    limiter(_chat_request("10.0.0.1"))


def test_rate_limiter_forgets_idle_clients() -> None:
    clock = FakeClock()
    limiter = RateLimiter(5, 60, clock=clock)

    for index in range(50):
        limiter(_chat_request(f"10.0.1.{index}"))
    assert len(limiter._buckets) == 50

    clock.now += 61
    limiter(_chat_request("10.0.2.1"))
    assert list(limiter._buckets) == ["10.0.2.1:/chat"]
