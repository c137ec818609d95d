"""Pydantic models for the concierge API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    # Left untyped so that blank or non-string messages reach QueryService validation.
    message: Any = Field(default=None, description="Customer question to answer")


class SourceModel(BaseModel):
    id: str
    url: str
    score: Optional[float] = None


class RoutingModel(BaseModel):
    layer: str
    rule: Optional[str] = None
    intent: Optional[str] = None
    category: Optional[str] = None
    score: Optional[float] = None


class DecisionModel(BaseModel):
    layer: str
    order: int
    triggered: bool
    skipped: bool = False
    rule: Optional[str] = None
    intent: Optional[str] = None
    category: Optional[str] = None
    score: Optional[float] = None
    risk_token_count: Optional[int] = None
    has_product_context: Optional[bool] = None
    embedding_score: Optional[float] = None
    scope_fallback: Optional[bool] = None
    duration_ms: Optional[float] = None


class ChatResponse(BaseModel):
    query_id: str
    answer: str
    sources: List[SourceModel]
    routing: RoutingModel
    latency_ms: float
    generation_ms: Optional[float] = None
    trace: Optional[List[DecisionModel]] = None


class ReadinessResponse(BaseModel):
    status: str
    catalog: Dict[str, int] = Field(default_factory=dict)
    embedding_model: Optional[str] = None
