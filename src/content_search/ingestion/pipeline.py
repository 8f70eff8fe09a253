"""Ingestion pipeline — extraction → chunking → embedding → persistence.

State machine per content item::

    processing ──▶ completed
        │
        └──────▶ failed ──retry()──▶ processing ──▶ …

The pipeline is the single place where typed errors from the lower
layers are turned into persisted item state.  Recording a failure is
best-effort: if that write fails too it is logged and the original error
is still reported to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, Field

from content_search.config import Settings, settings
from content_search.errors import (
    ContentNotFoundError,
    RetryNotAllowedError,
    ValidationError,
    get_error_message,
)
from content_search.ingestion.chunker import chunk_for_ingestion
from content_search.ingestion.embedder import EmbeddingOrchestrator
from content_search.ingestion.extractors import ExtractorRegistry, detect_url_type
from content_search.models import (
    Chunk,
    ContentItem,
    ContentStatus,
    ContentType,
    ExtractedContent,
    new_id,
    validate_metadata,
)
from content_search.repository import ContentRepository
from content_search.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 500

_ID_PREFIXES = {
    ContentType.IMAGE: "img",
    ContentType.WEBPAGE: "url",
    ContentType.VIDEO: "url",
    ContentType.DOCUMENT: "doc",
}


class IngestRequest(BaseModel):
    """Everything needed to create one content item."""

    content_type: ContentType
    url: str | None = None
    payload: bytes | None = None
    filename: str | None = None
    user_note: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class IngestionResult(BaseModel):
    """Outcome of :meth:`IngestionPipeline.ingest` or :meth:`IngestionPipeline.retry`."""

    content_id: str
    success: bool
    content: ContentItem | None = None
    chunks_created: int = 0
    error: str | None = None


def compose_text(extracted: ExtractedContent, title: str, user_note: str | None = None) -> str:
    """Join the note, title, description and body into the text to index."""
    parts = [user_note, title, extracted.description, extracted.full_text]
    return "\n".join(p for p in parts if p)


class IngestionPipeline:
    """Turn content items into embedded, searchable chunks.

    Parameters
    ----------
    repository:
        Content record repository.
    store:
        Chunk vector store.
    orchestrator:
        Embedding orchestrator used for chunk texts.
    extractors:
        Per-type extractors.
    config:
        Chunking thresholds and error-message limits.
    """

    def __init__(
        self,
        repository: ContentRepository,
        store: VectorStoreBase,
        orchestrator: EmbeddingOrchestrator,
        extractors: ExtractorRegistry,
        *,
        config: Settings = settings,
    ) -> None:
        self._repository = repository
        self._store = store
        self._orchestrator = orchestrator
        self._extractors = extractors
        self._config = config
        # Content ids with a retry in flight; a second retry is refused.
        self._retrying: set[str] = set()

    # -- public API -----------------------------------------------------------

    async def ingest(self, request: IngestRequest) -> IngestionResult:
        """Create a content item and run the full pipeline for it.

        Never raises for processing failures: the item is marked ``failed``
        and the error is returned on the result.
        """
        metadata = dict(request.metadata)
        if request.user_note:
            metadata.setdefault("context", request.user_note)
        if request.filename:
            metadata.setdefault("original_filename", request.filename)

        item = ContentItem(
            id=new_id(_ID_PREFIXES[request.content_type]),
            type=request.content_type,
            url=request.url,
            title=request.filename or "",
            status=ContentStatus.PROCESSING,
            metadata=metadata,
        )
        logger.info("Ingesting %s content %s (url=%s)", item.type.value, item.id, item.url)

        try:
            self._repository.create(item)
            completed, chunk_count = await self._process(item, request.payload, request.user_note)
        except Exception as exc:
            return self._record_failure(item.id, exc)

        return IngestionResult(content_id=item.id, success=True, content=completed, chunks_created=chunk_count)

    async def ingest_url(
        self,
        url: str,
        user_note: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> IngestionResult:
        """Ingest a webpage or a video, chosen from the URL's host."""
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(f"Invalid URL: {url!r}")
        request = IngestRequest(
            content_type=detect_url_type(url),
            url=url,
            user_note=user_note,
            metadata=metadata or {},
        )
        return await self.ingest(request)

    async def retry(self, content_id: str) -> IngestionResult:
        """Re-run the pipeline for a failed item that has a source URL.

        Existing chunks are replaced by the new set; the attempt counter
        only grows if the retry fails again.

        Raises
        ------
        ContentNotFoundError
            No item with *content_id*.
        RetryNotAllowedError
            The item is not ``failed``, has no URL, or is already being retried.
        """
        item = self._repository.get(content_id)
        if item is None:
            raise ContentNotFoundError(f"Content {content_id!r} not found")
        if item.status is not ContentStatus.FAILED:
            raise RetryNotAllowedError("Content is not in failed state")
        if not item.is_retryable:
            raise RetryNotAllowedError("Content without a source URL must be re-uploaded to retry")
        if content_id in self._retrying:
            raise RetryNotAllowedError("A retry for this content is already in progress")

        self._retrying.add(content_id)
        try:
            logger.info("Retrying content %s (attempts so far: %d)", content_id, item.processing_attempts)
            try:
                processing = self._repository.mark_processing(content_id) or item
                completed, chunk_count = await self._process(
                    processing, payload=None, user_note=item.metadata.get("context")
                )
            except Exception as exc:
                return self._record_failure(content_id, exc)
            return IngestionResult(content_id=content_id, success=True, content=completed, chunks_created=chunk_count)
        finally:
            self._retrying.discard(content_id)

    async def delete(self, content_id: str) -> int:
        """Delete an item together with every chunk it owns.

        Chunks go first so that a failure never leaves chunks behind for a
        record that no longer exists.  Returns the number of chunks removed.

        Raises
        ------
        ContentNotFoundError
            No item with *content_id*.
        RetryNotAllowedError
            A retry for the item is in flight.
        """
        if self._repository.get(content_id) is None:
            raise ContentNotFoundError(f"Content {content_id!r} not found")
        if content_id in self._retrying:
            raise RetryNotAllowedError("Content cannot be deleted while a retry is in progress")

        removed = await asyncio.to_thread(self._store.delete_chunks, content_id)
        self._repository.delete(content_id)
        logger.info("Deleted content %s and %d chunks", content_id, removed)
        return removed

    # -- internals ------------------------------------------------------------

    async def _process(
        self,
        item: ContentItem,
        payload: bytes | None,
        user_note: str | None,
    ) -> tuple[ContentItem, int]:
        extracted = await self._extractors.extract(item, payload)
        metadata = validate_metadata(item.type, {**item.metadata, **extracted.metadata})

        title = extracted.title or item.title or "Untitled"
        text = compose_text(extracted, title, user_note)
        text_chunks = chunk_for_ingestion(
            text,
            document_threshold=self._config.document_mode_threshold,
            chunk_size=self._config.chunk_size,
            chunk_overlap=self._config.chunk_overlap,
            document_chunk_size=self._config.document_chunk_size,
            document_chunk_overlap=self._config.document_chunk_overlap,
        )

        def _progress(done: int, total: int) -> None:
            logger.debug("Embedded %d/%d chunks for %s", done, total, item.id)

        vectors = await self._orchestrator.embed_many([c.content for c in text_chunks], on_progress=_progress)
        chunks = [
            Chunk(
                content_id=item.id,
                content_type=item.type,
                chunk_index=tc.chunk_index,
                content=tc.content,
                embedding=vector,
                start_offset=tc.start_offset,
                end_offset=tc.end_offset,
                section=tc.section,
            )
            for tc, vector in zip(text_chunks, vectors)
        ]
        # All vectors exist before anything is written; old chunks go in the same step.
        await asyncio.to_thread(self._store.replace_chunks, item.id, chunks)

        completed = self._repository.mark_completed(
            item.id,
            title=title,
            description=extracted.description,
            content_preview=extracted.full_text[:PREVIEW_LENGTH] or None,
            thumbnail_url=extracted.thumbnail_url,
            metadata=metadata,
        )
        if completed is None:
            raise ContentNotFoundError(f"Content {item.id!r} disappeared during ingestion")
        logger.info("Content %s completed with %d chunks", item.id, len(chunks))
        return completed, len(chunks)

    def _record_failure(self, content_id: str, error: BaseException) -> IngestionResult:
        message = get_error_message(error, self._config.error_message_max_length)
        logger.error("Ingestion of content %s failed: %s", content_id, message)

        item: ContentItem | None = None
        try:
            item = self._repository.mark_failed(content_id, message)
            if item is None:
                logger.warning("Could not record failure for %s: no content record", content_id)
        except Exception:
            logger.warning("Failed to record failure for content %s", content_id, exc_info=True)

        return IngestionResult(content_id=content_id, success=False, content=item, error=message)
