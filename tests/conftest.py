"""Shared pytest configuration, fakes and fixtures."""

from __future__ import annotations

import asyncio
import math

import pytest

from content_search.ingestion.embedder import EmbeddingOrchestrator, EmbeddingProvider
from content_search.ingestion.extractors import Extractor, ExtractorRegistry
from content_search.ingestion.pipeline import IngestionPipeline
from content_search.models import ContentItem, ContentType, ExtractedContent
from content_search.repository import InMemoryContentRepository
from content_search.retrieval.memory_store import InMemoryVectorStore
from content_search.retrieval.ranker import SimilarityRanker
from content_search.retrieval.search import SearchService


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fakes ───────────────────────────────────────────────────────────────

VOCABULARY = ("cat", "dog", "python", "music", "space")


def keyword_vector(text: str) -> list[float]:
    """Bag-of-keywords vector: one dimension per word in :data:`VOCABULARY`."""
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCABULARY]


def unit_vector(similarity: float) -> list[float]:
    """2-d unit vector whose cosine similarity to ``[1, 0]`` is *similarity*."""
    return [similarity, math.sqrt(max(0.0, 1.0 - similarity**2))]


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic keyword embedder that records every call."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: list[list[str]] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append([text])
        return keyword_vector(text)

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on is not None and any(self.fail_on in t for t in texts):
            raise RuntimeError(f"provider rejected input containing {self.fail_on!r}")
        return [keyword_vector(t) for t in texts]


class FakeExtractor(Extractor):
    """Returns canned content, or raises *error* when set."""

    def __init__(
        self,
        content: ExtractedContent | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.content = content or ExtractedContent(
            title="Example Page",
            description="A page about python.",
            full_text="Python is a programming language. It is popular for data work.",
            thumbnail_url="https://example.com/thumb.png",
            metadata={"domain": "example.com"},
        )
        self.error = error
        self.gate = gate
        self.calls: list[tuple[ContentItem, bytes | None]] = []

    async def extract(self, item: ContentItem, payload: bytes | None = None) -> ExtractedContent:
        self.calls.append((item, payload))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.content


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def repository() -> InMemoryContentRepository:
    return InMemoryContentRepository()


@pytest.fixture()
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture()
def orchestrator(provider: FakeEmbeddingProvider) -> EmbeddingOrchestrator:
    return EmbeddingOrchestrator(provider, batch_size=10, max_parallel=3, batch_pause=0.0)


@pytest.fixture()
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture()
def extractors(extractor: FakeExtractor) -> ExtractorRegistry:
    return ExtractorRegistry(
        {
            ContentType.WEBPAGE: extractor,
            ContentType.VIDEO: extractor,
            ContentType.IMAGE: extractor,
        }
    )


@pytest.fixture()
def pipeline(
    repository: InMemoryContentRepository,
    store: InMemoryVectorStore,
    orchestrator: EmbeddingOrchestrator,
    extractors: ExtractorRegistry,
) -> IngestionPipeline:
    return IngestionPipeline(repository, store, orchestrator, extractors)


@pytest.fixture()
def ranker(store: InMemoryVectorStore, repository: InMemoryContentRepository) -> SimilarityRanker:
    return SimilarityRanker(store, repository)


@pytest.fixture()
def search_service(orchestrator: EmbeddingOrchestrator, ranker: SimilarityRanker) -> SearchService:
    return SearchService(orchestrator, ranker, threshold=0.3, max_limit=100)
