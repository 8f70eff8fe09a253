"""Query surface: validate a free-text query, embed it and rank content.

Both operations are pure reads.  Store calls run in a worker thread so
the event loop is never blocked by a slow vector query.
"""

from __future__ import annotations

import asyncio
import logging

from content_search.config import settings
from content_search.errors import ValidationError
from content_search.ingestion.embedder import EmbeddingOrchestrator
from content_search.models import ContentItem, ContentType, SearchResult
from content_search.retrieval.ranker import ALL_TYPES, SimilarityRanker, normalize_type_filter

logger = logging.getLogger(__name__)


class SearchService:
    """Free-text search over ingested content.

    Parameters
    ----------
    orchestrator:
        Used to embed the query text.
    ranker:
        Ranks stored chunks against the query vector.
    threshold:
        Minimum similarity for a chunk to count as a match.
    max_limit:
        Largest ``limit`` a caller may request.
    """

    def __init__(
        self,
        orchestrator: EmbeddingOrchestrator,
        ranker: SimilarityRanker,
        *,
        threshold: float = settings.search_threshold,
        max_limit: int = settings.search_max_limit,
    ) -> None:
        self._orchestrator = orchestrator
        self._ranker = ranker
        self.threshold = threshold
        self.max_limit = max_limit

    async def search(
        self,
        query_text: str | None,
        type_filter: ContentType | str = ALL_TYPES,
        limit: int = settings.search_default_limit,
    ) -> list[SearchResult]:
        """Return content ranked by semantic similarity to *query_text*.

        Raises
        ------
        ValidationError
            Blank query, unknown type filter or out-of-range limit.
        """
        query = (query_text or "").strip()
        if not query:
            raise ValidationError("Query text is required")
        self._check_limit(limit)
        normalize_type_filter(type_filter)

        vector = await self._orchestrator.embed_query(query)
        results = await asyncio.to_thread(
            self._ranker.search,
            vector,
            limit=limit,
            threshold=self.threshold,
            type_filter=type_filter,
        )
        logger.info("Search %r (type=%s) returned %d results", query[:80], type_filter, len(results))
        return results

    async def recent(self, limit: int = settings.search_default_limit) -> list[ContentItem]:
        """Return recently completed content, newest first."""
        self._check_limit(limit)
        return await asyncio.to_thread(self._ranker.recent, limit)

    def _check_limit(self, limit: int) -> None:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self.max_limit:
            raise ValidationError(f"limit must be an integer between 1 and {self.max_limit}, got {limit!r}")
