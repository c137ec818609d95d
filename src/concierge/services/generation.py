"""Generation backends for the concierge."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx

from concierge.errors import GenerationError
from concierge.models import ScoredDocument

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are the Intelligent Molecules on-site concierge. Use only the provided context; if unsure, say so "
    "and offer to connect the customer with human support at {support_email}.\n"
    "Guardrails:\n"
    "- No medical advice. Avoid disease or treatment claims.\n"
    "- For pregnancy, breastfeeding or prescription medications, do not advise; suggest speaking with a "
    "clinician and offer human support.\n"
    "- Do not include FDA or DSHEA disclaimers; the UI handles this.\n"
    "Voice: calm, science-forward, friendly. Keep answers short, with bullets when helpful."
)

USER_PROMPT = (
    "Context:\n{context}\n\nUser question: {question}\n\nInstructions:\n"
    "- Answer briefly (2-4 sentences) using ONLY the Context.\n"
    "- If the info isn't in Context, say you don't have it and invite the user to email {support_email}.\n"
    "- Do NOT provide medical advice or disease claims.\n"
    "- Do NOT add an FDA/DSHEA disclaimer; the UI displays it."
)


@dataclass(frozen=True)
class GenerationConfig:
    """Configuration for answer generation."""

    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int = 400
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    timeout_seconds: float = 60.0
    support_email: str = "info@intelligentmolecules.com"


class GenerationBackend(Protocol):
    """Protocol describing generation behaviour."""

    async def generate(self, *, question: str, context: str, documents: Sequence[ScoredDocument]) -> str:
        """Return a grounded answer for the supplied question and context."""


class TemplateGenerator:
    """Deterministic generator used for tests and offline environments."""

    def __init__(self, support_email: str = "info@intelligentmolecules.com") -> None:
        self._support_email = support_email

    async def generate(self, *, question: str, context: str, documents: Sequence[ScoredDocument]) -> str:
        if not documents:
            return (
                "I don't have that information right now. "
                f"Please email {self._support_email} and our team will help."
            )
        best = documents[0].document
        return f"{best.content.strip()}\n\nMore at {best.url}" if best.url else best.content.strip()


class OpenAIChatGenerator:
    """Generator backed by the OpenAI chat completions API."""

    def __init__(self, config: GenerationConfig, client: httpx.AsyncClient | None = None) -> None:
        if not config.api_key:
            raise GenerationError("OpenAI generation requires an API key")
        self._config = config
        self._client = client or httpx.AsyncClient(base_url=config.base_url, timeout=config.timeout_seconds)

    def build_messages(self, *, question: str, context: str) -> list[dict[str, str]]:
        support_email = self._config.support_email
        return [
            {"role": "system", "content": SYSTEM_PROMPT.format(support_email=support_email)},
            {
                "role": "user",
                "content": USER_PROMPT.format(context=context, question=question, support_email=support_email),
            },
        ]

    async def generate(self, *, question: str, context: str, documents: Sequence[ScoredDocument]) -> str:
        payload: dict[str, Any] = {
            "model": self._config.model,
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
            "messages": self.build_messages(question=question, context=context),
        }
        try:
            response = await self._client.post(
                "/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self._config.api_key}"},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise GenerationError(f"Chat completion request failed: {exc}") from exc
        except ValueError as exc:
            raise GenerationError("Chat completion returned invalid JSON") from exc

        choices = body.get("choices") or []
        if not choices:
            LOGGER.warning("Chat completion returned no choices for model %s", self._config.model)
            return ""
        message = choices[0].get("message") or {}
        usage = body.get("usage") or {}
        LOGGER.info("Chat completion used %s tokens", usage.get("total_tokens"))
        return (message.get("content") or "").strip()

    async def aclose(self) -> None:
        await self._client.aclose()
