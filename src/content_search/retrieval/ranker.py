"""Best-chunk-per-item similarity ranking.

Usage::

    ranker = SimilarityRanker(store, repository)
    for result in ranker.search(query_vector, limit=10, type_filter="webpage"):
        print(result.similarity, result.content.title, result.matched_chunk[:80])
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Sequence

from content_search.config import settings
from content_search.errors import RankingError, ValidationError, get_error_message
from content_search.models import ChunkHit, ContentItem, ContentStatus, ContentType, SearchResult
from content_search.repository import ContentRepository
from content_search.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)

ALL_TYPES = "all"


def normalize_type_filter(type_filter: ContentType | str | None) -> ContentType | None:
    """Return the content type to filter on, or ``None`` for ``"all"``."""
    if type_filter is None or type_filter == ALL_TYPES:
        return None
    try:
        return ContentType(type_filter)
    except ValueError:
        allowed = ", ".join([ALL_TYPES, *(t.value for t in ContentType)])
        raise ValidationError(f"Unknown type filter {type_filter!r}; expected one of: {allowed}") from None


def _check_query_vector(query_embedding: Sequence[float]) -> list[float]:
    try:
        vector = [float(x) for x in query_embedding]
    except (TypeError, ValueError) as exc:
        raise RankingError(f"Malformed query vector: {exc}") from exc
    if not vector:
        raise RankingError("Malformed query vector: empty")
    if not all(math.isfinite(x) for x in vector):
        raise RankingError("Malformed query vector: values must be finite")
    return vector


def best_hit_per_content(hits: Iterable[ChunkHit], threshold: float) -> dict[str, ChunkHit]:
    """Keep the single highest-similarity hit per content id.

    On equal similarity the hit seen first wins.  Hits at or below
    *threshold* are dropped.
    """
    best: dict[str, ChunkHit] = {}
    for hit in hits:
        if hit.similarity <= threshold:
            continue
        current = best.get(hit.content_id)
        if current is None or hit.similarity > current.similarity:
            best[hit.content_id] = hit
    return best


class SimilarityRanker:
    """Rank content items by their best-matching chunk.

    Parameters
    ----------
    store:
        Chunk vector store.
    repository:
        Content record repository used to join hits back to items.
    default_limit:
        Result count used when :meth:`search` gets no *limit*.
    default_threshold:
        Similarity threshold used when :meth:`search` gets no *threshold*.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        repository: ContentRepository,
        *,
        default_limit: int = settings.search_default_limit,
        default_threshold: float = settings.search_threshold,
    ) -> None:
        self._store = store
        self._repository = repository
        self.default_limit = default_limit
        self.default_threshold = default_threshold

    # -- public API -----------------------------------------------------------

    def search(
        self,
        query_embedding: Sequence[float],
        *,
        limit: int | None = None,
        threshold: float | None = None,
        type_filter: ContentType | str = ALL_TYPES,
    ) -> list[SearchResult]:
        """Return completed items ordered by their best chunk's similarity.

        Parameters
        ----------
        query_embedding:
            Dense vector for the query.
        limit:
            Maximum number of items (defaults to ``self.default_limit``).
        threshold:
            Chunks with similarity at or below this are ignored.
        type_filter:
            ``"all"`` or a :class:`ContentType` value.

        Raises
        ------
        RankingError
            Malformed vector, or the store / repository failed.
        """
        limit = self.default_limit if limit is None else limit
        threshold = self.default_threshold if threshold is None else threshold
        if limit < 0:
            raise ValidationError(f"limit must be >= 0, got {limit}")
        wanted_type = normalize_type_filter(type_filter)
        vector = _check_query_vector(query_embedding)

        try:
            hits = self._store.query(vector, threshold=threshold, type_filter=wanted_type)
        except Exception as exc:
            logger.error("Vector query against %s failed: %s", self._store.collection_name, exc)
            raise RankingError(f"Vector search failed: {get_error_message(exc)}") from exc

        best = best_hit_per_content(hits, threshold)
        items = self._load_items(best)

        results: list[SearchResult] = []
        for content_id, hit in best.items():
            item = items.get(content_id)
            if item is None or not self._is_visible(item, wanted_type):
                continue
            results.append(
                SearchResult(
                    content=item,
                    similarity=hit.similarity,
                    matched_chunk=hit.content,
                    matched_section=hit.section,
                )
            )
        results.sort(key=lambda r: r.similarity, reverse=True)
        logger.debug("Ranked %d hits into %d items (limit=%d)", len(hits), len(results), limit)
        return results[:limit]

    def recent(self, limit: int | None = None) -> list[ContentItem]:
        """Return the most recently created completed items."""
        limit = self.default_limit if limit is None else limit
        try:
            return self._repository.list_recent(limit)
        except Exception as exc:
            logger.error("Listing recent content failed: %s", exc)
            raise RankingError(f"Listing recent content failed: {get_error_message(exc)}") from exc

    # -- internals ------------------------------------------------------------

    def _load_items(self, best: dict[str, ChunkHit]) -> dict[str, ContentItem]:
        if not best:
            return {}
        try:
            return self._repository.get_many(best.keys())
        except Exception as exc:
            logger.error("Loading ranked content items failed: %s", exc)
            raise RankingError(f"Loading content items failed: {get_error_message(exc)}") from exc

    @staticmethod
    def _is_visible(item: ContentItem, wanted_type: ContentType | None) -> bool:
        if item.status is not ContentStatus.COMPLETED:
            return False
        return wanted_type is None or item.type is wanted_type
