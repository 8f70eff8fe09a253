"""FastAPI application exposing content search and ingestion as a REST API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any, AsyncIterator

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from content_search.config import Settings, settings
from content_search.errors import (
    ContentNotFoundError,
    ContentSearchError,
    RetryNotAllowedError,
    ValidationError,
    get_safe_error_message,
)
from content_search.ingestion.embedder import build_orchestrator
from content_search.ingestion.extractors import ExtractorRegistry
from content_search.ingestion.pipeline import IngestionPipeline, IngestionResult
from content_search.models import ContentItem, SearchResult
from content_search.repository import InMemoryContentRepository
from content_search.retrieval.base import VectorStoreBase
from content_search.retrieval.memory_store import InMemoryVectorStore
from content_search.retrieval.ranker import SimilarityRanker
from content_search.retrieval.search import SearchService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(level=settings.log_level)
    yield


app = FastAPI(
    title="Content Search API",
    version="0.1.0",
    description="Semantic search over ingested images, webpages, videos and documents.",
    lifespan=lifespan,
)


# ── Service wiring ────────────────────────────────────────────────────
@dataclass
class Services:
    search: SearchService
    pipeline: IngestionPipeline


def build_store(config: Settings = settings) -> VectorStoreBase:
    """Return the chunk store selected by ``config.vector_store``.

    Content records live in memory, so the ``chroma`` backend only makes
    sense behind a durable :class:`~content_search.repository.ContentRepository`;
    with the in-memory one its chunks outlive the records after a restart.
    """
    if config.vector_store == "chroma":
        from content_search.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore(
            config.chroma_collection,
            host=config.chroma_host,
            port=config.chroma_port,
            candidate_pool=config.search_candidate_pool,
        )
    return InMemoryVectorStore()


@lru_cache(maxsize=1)
def get_services() -> Services:
    """Build the default service graph (configured store + HuggingFace embeddings)."""
    repository = InMemoryContentRepository()
    store = build_store()
    orchestrator = build_orchestrator()
    ranker = SimilarityRanker(store, repository)
    return Services(
        search=SearchService(orchestrator, ranker),
        pipeline=IngestionPipeline(repository, store, orchestrator, ExtractorRegistry()),
    )


def get_search_service(services: Services = Depends(get_services)) -> SearchService:
    return services.search


def get_pipeline(services: Services = Depends(get_services)) -> IngestionPipeline:
    return services.pipeline


# ── Request / Response schemas ────────────────────────────────────────
class ContentSummary(BaseModel):
    """Public view of a content item."""

    id: str
    type: str
    url: str | None = None
    title: str
    description: str
    thumbnail_url: str | None = None
    metadata: dict[str, Any] = {}
    created_at: datetime

    @classmethod
    def from_item(cls, item: ContentItem) -> ContentSummary:
        return cls(
            id=item.id,
            type=item.type.value,
            url=item.url,
            title=item.title,
            description=item.description,
            thumbnail_url=item.thumbnail_url,
            metadata=item.metadata,
            created_at=item.created_at,
        )


class SearchHit(ContentSummary):
    similarity: float
    matched_chunk: str
    matched_section: str | None = None

    @classmethod
    def from_result(cls, result: SearchResult) -> SearchHit:
        return cls(
            **ContentSummary.from_item(result.content).model_dump(),
            similarity=result.similarity,
            matched_chunk=result.matched_chunk,
            matched_section=result.matched_section,
        )


class SearchResponse(BaseModel):
    query: str
    total: int
    results: list[SearchHit]


class RecentResponse(BaseModel):
    total: int
    results: list[ContentSummary]


class UrlIngestRequest(BaseModel):
    """A webpage or video URL to ingest."""

    url: str
    user_note: str | None = None


class IngestResponse(BaseModel):
    content_id: str
    success: bool
    status: str | None = None
    title: str | None = None
    chunks_created: int = 0
    error: str | None = None

    @classmethod
    def from_result(cls, result: IngestionResult) -> IngestResponse:
        return cls(
            content_id=result.content_id,
            success=result.success,
            status=result.content.status.value if result.content else None,
            title=result.content.title if result.content else None,
            chunks_created=result.chunks_created,
            error=result.error,
        )


# ── Error mapping ─────────────────────────────────────────────────────
_STATUS_CODES: dict[type[ContentSearchError], int] = {
    ValidationError: 400,
    ContentNotFoundError: 404,
    RetryNotAllowedError: 409,
}


@app.exception_handler(ContentSearchError)
async def content_search_error_handler(request: Request, exc: ContentSearchError) -> JSONResponse:
    status_code = _STATUS_CODES.get(type(exc), 500)
    if status_code == 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"error": get_safe_error_message(exc)})


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.get("/search", response_model=SearchResponse)
async def search(
    q: str = Query("", description="Free-text query"),
    type_filter: str = Query("all", alias="type"),
    limit: int = Query(settings.search_default_limit),
    service: SearchService = Depends(get_search_service),
) -> SearchResponse:
    """Semantic search across all ingested content."""
    results = await service.search(q, type_filter=type_filter, limit=limit)
    return SearchResponse(query=q, total=len(results), results=[SearchHit.from_result(r) for r in results])


@app.get("/search/recent", response_model=RecentResponse)
async def recent(
    limit: int = Query(settings.search_default_limit),
    service: SearchService = Depends(get_search_service),
) -> RecentResponse:
    """Recently completed content, newest first."""
    items = await service.recent(limit)
    return RecentResponse(total=len(items), results=[ContentSummary.from_item(i) for i in items])


@app.post("/contents/urls", response_model=IngestResponse, status_code=201)
async def ingest_url(
    request: UrlIngestRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestResponse | JSONResponse:
    """Ingest a webpage or a video by URL."""
    result = await pipeline.ingest_url(request.url, user_note=request.user_note)
    return _ingest_response(result)


@app.post("/contents/{content_id}/retry", response_model=IngestResponse)
async def retry_content(
    content_id: str,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestResponse | JSONResponse:
    """Retry a failed content item that has a source URL."""
    result = await pipeline.retry(content_id)
    return _ingest_response(result)


@app.delete("/contents/{content_id}")
async def delete_content(
    content_id: str,
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """Delete a content item and its indexed chunks."""
    removed = await pipeline.delete(content_id)
    return {"content_id": content_id, "chunks_deleted": removed}


def _ingest_response(result: IngestionResult) -> IngestResponse | JSONResponse:
    body = IngestResponse.from_result(result)
    if result.success:
        return body
    body.error = get_safe_error_message(Exception(result.error)) if result.error else None
    return JSONResponse(status_code=502, content=body.model_dump())
