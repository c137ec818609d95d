from __future__ import annotations

import json

import httpx
import pytest

from concierge.errors import GenerationError
from concierge.models import KnowledgeDocument, ScoredDocument
from concierge.services import GenerationConfig, OpenAIChatGenerator, TemplateGenerator


def _scored(content: str, url: str = "https://example.test/doc") -> ScoredDocument:
    document = KnowledgeDocument(doc_id="doc", url=url, section="general", content=content, vector=(1.0,))
    return ScoredDocument(document=document, score=0.8)


def _generator(handler) -> OpenAIChatGenerator:
    client = httpx.AsyncClient(base_url="https://api.test/v1", transport=httpx.MockTransport(handler))
    config = GenerationConfig(model="chat-small", temperature=0.1, max_tokens=50, api_key="sk-test", support_email="help@example.test")
    return OpenAIChatGenerator(config, client=client)


async def test_openai_generator_sends_prompt_and_strips_answer():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"choices": [{"message": {"content": "  Ships in a day.  "}}]})

    generator = _generator(handler)
    answer = await generator.generate(question="When?", context="[shipping]\nWe ship daily.", documents=[])

    assert answer == "Ships in a day."
    body = seen["body"]
    assert (body["model"], body["temperature"], body["max_tokens"]) == ("chat-small", 0.1, 50)
    assert body["messages"][0]["role"] == "system"
    assert "help@example.test" in body["messages"][0]["content"]
    assert "We ship daily." in body["messages"][1]["content"]
    assert "User question: When?" in body["messages"][1]["content"]
    assert seen["auth"] == "Bearer sk-test"
    await generator.aclose()


async def test_openai_generator_without_choices_returns_empty_text():
    generator = _generator(lambda request: httpx.Response(200, json={"choices": []}))
    assert await generator.generate(question="q", context="", documents=[]) == ""


async def test_openai_generator_wraps_http_errors():
    generator = _generator(lambda request: httpx.Response(503, text="unavailable"))
    with pytest.raises(GenerationError):
        await generator.generate(question="q", context="", documents=[])


def test_openai_generator_requires_api_key():
    with pytest.raises(GenerationError):
        OpenAIChatGenerator(GenerationConfig(api_key=None))


async def test_template_generator_quotes_best_document():
    generator = TemplateGenerator(support_email="help@example.test")
    answer = await generator.generate(question="q", context="", documents=[_scored(" Activated carbon. ")])
    assert answer == "Activated carbon.\n\nMore at https://example.test/doc"


async def test_template_generator_without_documents_points_to_support():
    answer = await TemplateGenerator(support_email="help@example.test").generate(question="q", context="", documents=[])
    assert "help@example.test" in answer
