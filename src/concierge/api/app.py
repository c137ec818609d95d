"""FastAPI application exposing the concierge router."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from concierge.api.schemas import (
    ChatRequest,
    ChatResponse,
    DecisionModel,
    ReadinessResponse,
    RoutingModel,
    SourceModel,
)
from concierge.audit import AuditDispatcher, JsonlAuditSink, LogAuditSink, expand_trace
from concierge.catalog import RouterCatalog, load_catalog
from concierge.config import Settings, get_settings
from concierge.embeddings import build_embedding_provider, embedding_config_from_settings
from concierge.errors import ConfigurationError, EmbeddingProviderError, GenerationError, QueryValidationError
from concierge.metrics.observability import (
    RouterMetrics,
    bind_correlation_id,
    clear_correlation_id,
    configure_logging,
    get_logger,
)
from concierge.models import Answer
from concierge.routing import Router
from concierge.services.generation import GenerationBackend, GenerationConfig, OpenAIChatGenerator, TemplateGenerator
from concierge.services.query import PromptBuilder, QueryService


@dataclass(frozen=True)
class AppDependencies:
    query_service: QueryService
    catalog: RouterCatalog
    closables: Sequence[Any] = field(default_factory=tuple)


def _build_generator(settings: Settings) -> GenerationBackend:
    if settings.generator_backend == "openai":
        return OpenAIChatGenerator(
            GenerationConfig(
                model=settings.generator_model,
                temperature=settings.generator_temperature,
                max_tokens=settings.generator_max_tokens,
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout_seconds=settings.generator_timeout_seconds,
                support_email=settings.support_email,
            ),
        )
    return TemplateGenerator(support_email=settings.support_email)


def _build_dependencies(settings: Settings) -> AppDependencies:
    catalog = load_catalog(settings)
    if settings.embedding_dim != catalog.dimension:
        raise ConfigurationError(
            f"embedding_dim is {settings.embedding_dim} but the catalog vectors have {catalog.dimension} dimensions",
        )
    RouterMetrics.observe_catalog(catalog.sizes())

    try:
        provider = build_embedding_provider(settings.embedding_backend, embedding_config_from_settings(settings))
        generator = _build_generator(settings)
    except (EmbeddingProviderError, GenerationError) as exc:
        raise ConfigurationError(str(exc)) from exc

    sink = JsonlAuditSink(settings.audit_path) if settings.audit_backend == "jsonl" else LogAuditSink()
    query_service = QueryService(
        router=Router.from_catalog(catalog, provider, settings),
        generator=generator,
        prompt_builder=PromptBuilder(),
        audit=AuditDispatcher(sink),
        max_question_chars=settings.max_question_chars,
    )
    closables = tuple(item for item in (provider, generator) if hasattr(item, "aclose"))
    return AppDependencies(query_service=query_service, catalog=catalog, closables=closables)


def _to_response(answer: Answer, expose_trace: bool) -> ChatResponse:
    summary = answer.routing
    trace = None
    if expose_trace:
        trace = [DecisionModel(**decision.to_dict()) for decision in expand_trace(answer.outcome.trace)]
    return ChatResponse(
        query_id=answer.query_id,
        answer=answer.text,
        sources=[SourceModel(**source.to_dict()) for source in answer.sources],
        routing=RoutingModel(**summary.to_dict()),
        latency_ms=answer.latency_ms,
        generation_ms=answer.generation_ms,
        trace=trace,
    )


class RateLimiter:
    """Sliding-window limit per client and path.

    Keys whose requests have all aged out are dropped, and idle keys are swept
    once per window so the table only holds recently active clients.
    """

    def __init__(self, requests: int, window_seconds: int, clock: Callable[[], float] = time.time) -> None:
        self.requests = requests
        self.window = window_seconds
        self._clock = clock
        self._buckets: dict[str, list[float]] = {}
        self._last_sweep = clock()

    def __call__(self, request: Request) -> None:
        client_ip = request.headers.get("x-forwarded-for") or (request.client.host if request.client else "-")
        key = f"{client_ip}:{request.url.path}"
        now = self._clock()
        cutoff = now - self.window
        if now - self._last_sweep >= self.window:
            self._sweep(cutoff)
            self._last_sweep = now
        bucket = self._buckets.get(key, [])
        while bucket and bucket[0] < cutoff:
            bucket.pop(0)
        if len(bucket) >= self.requests:
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
        bucket.append(now)
        self._buckets[key] = bucket

    def _sweep(self, cutoff: float) -> None:
        stale = [key for key, bucket in self._buckets.items() if not bucket or bucket[-1] < cutoff]
        for key in stale:
            del self._buckets[key]


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await deps.query_service.audit.drain()
        for resource in deps.closables:
            await resource.aclose()

    from concierge import __version__

    app = FastAPI(title="Concierge API", version=__version__, lifespan=lifespan)
    app.state.dependencies = deps

    # Optional CORS
    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=list(settings.cors_allow_methods),
            allow_headers=list(settings.cors_allow_headers),
        )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    # Security dependencies
    def require_api_key(request: Request) -> None:
        expected = settings.api_key
        if not expected:
            return
        provided = request.headers.get("X-API-Key")
        if provided != expected:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")

    rate_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)

    def _error(request: Request, status_code: int, detail: str) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        return JSONResponse(status_code=status_code, content={"detail": detail, "correlation_id": correlation_id})

    @app.exception_handler(QueryValidationError)
    async def handle_validation_error(request: Request, exc: QueryValidationError) -> JSONResponse:
        RouterMetrics.observe_error("validation")
        return _error(request, status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(EmbeddingProviderError)
    async def handle_embedding_error(request: Request, exc: EmbeddingProviderError) -> JSONResponse:
        logger.error("embedding.error", detail=str(exc))
        return _error(request, status.HTTP_502_BAD_GATEWAY, "Embedding provider unavailable")

    @app.exception_handler(GenerationError)
    async def handle_generation_error(request: Request, exc: GenerationError) -> JSONResponse:
        logger.error("generation.error", detail=str(exc))
        return _error(request, status.HTTP_502_BAD_GATEWAY, "Answer generation unavailable")

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        RouterMetrics.observe_error("internal")
        logger.error("unhandled.error", detail=str(exc))
        return _error(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_query_service(dep: AppDependencies = Depends(get_dependencies)) -> QueryService:
        return dep.query_service

    @app.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
    async def chat(
        payload: ChatRequest,
        service: QueryService = Depends(get_query_service),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter),
    ) -> ChatResponse:
        answer = await service.answer(payload.message)
        return _to_response(answer, settings.expose_trace)

    @app.get("/chat", response_model=ChatResponse, response_model_exclude_none=True)
    async def chat_get(
        message: str | None = None,
        service: QueryService = Depends(get_query_service),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter),
    ) -> ChatResponse:
        answer = await service.answer(message)
        return _to_response(answer, settings.expose_trace)

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.head("/healthz")
    async def healthcheck_head() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    @app.get("/healthz/ready", response_model=ReadinessResponse)
    async def readiness(dep: AppDependencies = Depends(get_dependencies)) -> ReadinessResponse:
        return ReadinessResponse(
            status="ready",
            catalog=dict(dep.catalog.sizes()),
            embedding_model=dep.catalog.embedding_model,
        )

    return app


def __getattr__(name: str) -> FastAPI:
    # ``uvicorn concierge.api.app:app`` builds the application on first access.
    if name == "app":
        application = create_app()
        globals()["app"] = application
        return application
    raise AttributeError(name)
