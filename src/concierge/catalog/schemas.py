"""Pydantic schemas for the static configuration documents."""

from __future__ import annotations

import re
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class RuleModel(BaseModel):
    id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    patterns: List[str] = Field(..., min_length=1)
    response: Optional[str] = None
    intent: Optional[str] = None

    @field_validator("patterns")
    @classmethod
    def _patterns_compile(cls, patterns: List[str]) -> List[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid pattern {pattern!r}: {exc}") from exc
        return patterns


class RuleSetModel(BaseModel):
    rules: List[RuleModel]


class ProtectedEntityModel(BaseModel):
    canonical: str = Field(..., min_length=1)
    variants: List[str] = Field(default_factory=list)


class LexiconModel(BaseModel):
    protected_entities: List[ProtectedEntityModel] = Field(default_factory=list)
    risk_tokens: List[str] = Field(default_factory=list)
    product_context_terms: List[str] = Field(default_factory=list)


class ExemplarModel(BaseModel):
    id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    response: str = Field(..., min_length=1)
    text: Optional[str] = None
    embedding: List[float] = Field(..., min_length=1)


class ExemplarSetModel(BaseModel):
    model: Optional[str] = None
    exemplars: List[ExemplarModel] = Field(..., min_length=1)


class IntentExampleModel(BaseModel):
    text: str
    embedding: List[float] = Field(..., min_length=1)


class IntentModel(BaseModel):
    id: str = Field(..., min_length=1)
    label: str = ""
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    scope: List[str] = Field(default_factory=list)
    response: Optional[str] = None
    examples: List[IntentExampleModel] = Field(default_factory=list)


class IntentSetModel(BaseModel):
    model: Optional[str] = None
    intents: List[IntentModel]


class KnowledgeDocumentModel(BaseModel):
    id: str = Field(..., min_length=1)
    url: str = ""
    section: str = "general"
    content: str
    embedding: List[float] = Field(..., min_length=1)


class CorpusModel(BaseModel):
    model: Optional[str] = None
    docs: List[KnowledgeDocumentModel] = Field(..., min_length=1)
