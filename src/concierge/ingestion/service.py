"""Offline build of the vector-bearing routing documents."""

from __future__ import annotations

import argparse
import asyncio
import json
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml
from langchain_community.document_loaders import TextLoader
from pydantic import BaseModel, Field, ValidationError

from concierge.catalog import load_lexicon
from concierge.config import Settings, get_settings
from concierge.embeddings import EmbeddingProvider, build_embedding_provider, embedding_config_from_settings
from concierge.metrics.observability import get_logger
from concierge.normalization import Normalizer

_FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


class IngestionError(RuntimeError):
    """Raised when a source document cannot be read or compiled."""


@dataclass(frozen=True)
class IngestionConfig:
    """Configuration for document ingestion."""

    encoding: str = "utf-8"
    knowledge_glob: str = "*.md"
    default_section: str = "general"


@dataclass(frozen=True)
class KnowledgeSource:
    doc_id: str
    url: str
    section: str
    content: str


class ExemplarSourceModel(BaseModel):
    id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    response: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)


class ExemplarSourceSetModel(BaseModel):
    exemplars: List[ExemplarSourceModel] = Field(..., min_length=1)


class IntentSourceModel(BaseModel):
    id: str = Field(..., min_length=1)
    label: str = ""
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    scope: List[str] = Field(default_factory=list)
    response: Optional[str] = None
    examples: List[str] = Field(default_factory=list)


class IntentSourceSetModel(BaseModel):
    intents: List[IntentSourceModel]


def split_front_matter(raw: str) -> tuple[Dict[str, Any], str]:
    """Return the YAML front matter mapping and the remaining body."""

    match = _FRONT_MATTER_RE.match(raw)
    if match is None:
        return {}, raw
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise IngestionError(f"Invalid front matter: {exc}") from exc
    if not isinstance(data, dict):
        raise IngestionError("Front matter must be a mapping")
    return data, raw[match.end():]


class MarkdownKnowledgeLoader:
    """Loads knowledge passages from markdown files via LangChain's TextLoader."""

    _logger = get_logger("ingestion")

    def __init__(self, config: IngestionConfig | None = None) -> None:
        self._config = config or IngestionConfig()

    def load_directory(self, directory: Path) -> Sequence[KnowledgeSource]:
        if not directory.is_dir():
            raise IngestionError(f"Knowledge directory not found: {directory}")
        return self.load(sorted(directory.glob(self._config.knowledge_glob)))

    def load(self, paths: Sequence[Path]) -> Sequence[KnowledgeSource]:
        sources = [self._load_single(path) for path in paths]
        seen: set[str] = set()
        for source in sources:
            if source.doc_id in seen:
                raise IngestionError(f"Duplicate knowledge id: {source.doc_id}")
            seen.add(source.doc_id)
        return sources

    def _load_single(self, path: Path) -> KnowledgeSource:
        try:
            documents = TextLoader(str(path), encoding=self._config.encoding).load()
        except Exception as exc:  # pragma: no cover - loader specific errors
            raise IngestionError(f"Failed to load {path}: {exc}") from exc
        raw = "".join(document.page_content for document in documents)
        data, body = split_front_matter(raw)
        content = body.strip()
        if not content:
            raise IngestionError(f"Knowledge file has no content: {path}")
        return KnowledgeSource(
            doc_id=str(data.get("id") or path.name),
            url=str(data.get("url") or ""),
            section=str(data.get("section") or self._config.default_section),
            content=content,
        )


def _read_source(path: Path, model: type[BaseModel]) -> Any:
    try:
        return model.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except FileNotFoundError as exc:
        raise IngestionError(f"Source not found: {path}") from exc
    except (json.JSONDecodeError, ValidationError) as exc:
        raise IngestionError(f"Invalid source {path}: {exc}") from exc


async def _embed(provider: EmbeddingProvider, text: str) -> List[float]:
    return [float(value) for value in await provider.embed(text)]


async def build_corpus(
    sources: Sequence[KnowledgeSource],
    provider: EmbeddingProvider,
    model: str,
) -> Dict[str, Any]:
    docs = []
    for source in sources:
        docs.append(
            {
                "id": source.doc_id,
                "url": source.url,
                "section": source.section,
                "content": source.content,
                "embedding": await _embed(provider, source.content),
            },
        )
    return {"model": model, "docs": docs}


async def build_exemplars(
    source_path: Path,
    provider: EmbeddingProvider,
    model: str,
    normalizer: Normalizer,
) -> Dict[str, Any]:
    document = _read_source(source_path, ExemplarSourceSetModel)
    exemplars = []
    for item in document.exemplars:
        exemplars.append(
            {
                "id": item.id,
                "category": item.category,
                "response": item.response,
                "text": item.text,
                "embedding": await _embed(provider, normalizer.normalize(item.text)),
            },
        )
    return {"model": model, "exemplars": exemplars}


async def build_intents(
    source_path: Path,
    provider: EmbeddingProvider,
    model: str,
    normalizer: Normalizer,
) -> Dict[str, Any]:
    document = _read_source(source_path, IntentSourceSetModel)
    intents = []
    for item in document.intents:
        examples = [
            {"text": text, "embedding": await _embed(provider, normalizer.normalize(text))}
            for text in item.examples
        ]
        entry: Dict[str, Any] = {"id": item.id, "label": item.label or item.id, "scope": item.scope, "examples": examples}
        if item.threshold is not None:
            entry["threshold"] = item.threshold
        if item.response:
            entry["response"] = item.response
        intents.append(entry)
    return {"model": model, "intents": intents}


def write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")


async def run_ingestion(
    settings: Settings,
    *,
    knowledge_dir: Path | None,
    safety_source: Path | None,
    intents_source: Path | None,
    provider: EmbeddingProvider | None = None,
) -> Dict[str, int]:
    """Embed every configured source and write the documents named by ``settings``."""

    logger = get_logger("ingestion")
    provider = provider or build_embedding_provider(settings.embedding_backend, embedding_config_from_settings(settings))
    normalizer = Normalizer(load_lexicon(settings.lexicon_path).protected_entities)
    model = settings.embedding_model
    written: Dict[str, int] = {}
    try:
        if knowledge_dir is not None:
            start = time.perf_counter()
            sources = MarkdownKnowledgeLoader().load_directory(knowledge_dir)
            write_json(settings.corpus_path, await build_corpus(sources, provider, model))
            written["corpus"] = len(sources)
            logger.info(
                "ingestion.complete",
                document="corpus",
                path=str(settings.corpus_path),
                count=len(sources),
                duration_seconds=time.perf_counter() - start,
            )
        if safety_source is not None:
            payload = await build_exemplars(safety_source, provider, model, normalizer)
            write_json(settings.safety_exemplars_path, payload)
            written["exemplars"] = len(payload["exemplars"])
            logger.info("ingestion.complete", document="exemplars", path=str(settings.safety_exemplars_path))
        if intents_source is not None:
            payload = await build_intents(intents_source, provider, model, normalizer)
            write_json(settings.intents_path, payload)
            written["intents"] = len(payload["intents"])
            logger.info("ingestion.complete", document="intents", path=str(settings.intents_path))
    finally:
        close = getattr(provider, "aclose", None)
        if close is not None:
            await close()
    return written


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Embed knowledge, safety exemplars and intents for the router.")
    parser.add_argument("--knowledge-dir", type=Path, help="Directory of markdown knowledge files.")
    parser.add_argument("--safety-source", type=Path, help="Safety exemplar source JSON.")
    parser.add_argument("--intents-source", type=Path, help="Intent source JSON.")
    parser.add_argument(
        "--backend",
        choices=["hash", "huggingface", "openai"],
        help="Override the configured embedding backend.",
    )
    args = parser.parse_args(argv)

    if not (args.knowledge_dir or args.safety_source or args.intents_source):
        parser.error("nothing to ingest; pass at least one source")
    settings = get_settings({"embedding_backend": args.backend} if args.backend else None)
    try:
        written = asyncio.run(
            run_ingestion(
                settings,
                knowledge_dir=args.knowledge_dir,
                safety_source=args.safety_source,
                intents_source=args.intents_source,
            ),
        )
    except IngestionError as exc:
        print(f"Ingestion failed: {exc}")
        return 1
    for document, count in written.items():
        print(f"Wrote {count} {document} entries")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
