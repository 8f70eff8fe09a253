"""Unit tests for best-chunk-per-item ranking."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from conftest import unit_vector
from content_search.errors import RankingError, ValidationError
from content_search.models import Chunk, ChunkHit, ContentItem, ContentStatus, ContentType
from content_search.repository import InMemoryContentRepository
from content_search.retrieval.base import VectorStoreBase
from content_search.retrieval.memory_store import InMemoryVectorStore
from content_search.retrieval.ranker import SimilarityRanker, best_hit_per_content, normalize_type_filter

QUERY = [1.0, 0.0]


def _add_item(
    repository: InMemoryContentRepository,
    content_id: str,
    content_type: ContentType = ContentType.WEBPAGE,
    status: ContentStatus = ContentStatus.COMPLETED,
) -> ContentItem:
    return repository.create(
        ContentItem(id=content_id, type=content_type, title=content_id, status=status, url="https://example.com")
    )


def _add_chunk(
    store: InMemoryVectorStore,
    content_id: str,
    similarity: float | None,
    index: int = 0,
    section: str | None = None,
    content_type: ContentType = ContentType.WEBPAGE,
) -> Chunk:
    chunk = Chunk(
        content_id=content_id,
        content_type=content_type,
        chunk_index=index,
        content=f"{content_id} chunk {index}",
        embedding=unit_vector(similarity) if similarity is not None else None,
        section=section,
    )
    store.add_chunks([chunk])
    return chunk


def _hit(content_id: str, similarity: float, chunk_id: str) -> ChunkHit:
    return ChunkHit(chunk_id=chunk_id, content_id=content_id, chunk_index=0, content=chunk_id, similarity=similarity)


class TestBestHitPerContent:
    def test_keeps_highest_hit(self) -> None:
        best = best_hit_per_content([_hit("a", 0.4, "a0"), _hit("a", 0.9, "a1"), _hit("b", 0.5, "b0")], 0.3)
        assert {k: v.chunk_id for k, v in best.items()} == {"a": "a1", "b": "b0"}

    def test_first_hit_wins_a_tie(self) -> None:
        best = best_hit_per_content([_hit("a", 0.7, "first"), _hit("a", 0.7, "second")], 0.3)
        assert best["a"].chunk_id == "first"

    def test_threshold_is_exclusive(self) -> None:
        assert best_hit_per_content([_hit("a", 0.3, "a0")], 0.3) == {}


class TestNormalizeTypeFilter:
    @pytest.mark.parametrize("value", ["all", None])
    def test_all(self, value) -> None:
        assert normalize_type_filter(value) is None

    def test_known_type(self) -> None:
        assert normalize_type_filter("video") is ContentType.VIDEO

    def test_unknown_type(self) -> None:
        with pytest.raises(ValidationError, match="Unknown type filter"):
            normalize_type_filter("podcast")


class TestSimilarityRanker:
    def test_item_ranked_by_best_chunk(
        self, ranker: SimilarityRanker, repository: InMemoryContentRepository, store: InMemoryVectorStore
    ) -> None:
        _add_item(repository, "a")
        _add_chunk(store, "a", 0.4, index=0)
        _add_chunk(store, "a", 0.9, index=1, section="Results")

        results = ranker.search(QUERY, threshold=0.3)

        assert len(results) == 1
        assert results[0].similarity == pytest.approx(0.9)
        assert results[0].matched_chunk == "a chunk 1"
        assert results[0].matched_section == "Results"

    def test_only_completed_items_are_returned(
        self, ranker: SimilarityRanker, repository: InMemoryContentRepository, store: InMemoryVectorStore
    ) -> None:
        for content_id, status in [
            ("done", ContentStatus.COMPLETED),
            ("busy", ContentStatus.PROCESSING),
            ("broken", ContentStatus.FAILED),
            ("queued", ContentStatus.PENDING),
        ]:
            _add_item(repository, content_id, status=status)
            _add_chunk(store, content_id, 0.8)

        assert [r.content.id for r in ranker.search(QUERY)] == ["done"]

    def test_type_filter(
        self, ranker: SimilarityRanker, repository: InMemoryContentRepository, store: InMemoryVectorStore
    ) -> None:
        _add_item(repository, "page", ContentType.WEBPAGE)
        _add_item(repository, "clip", ContentType.VIDEO)
        _add_chunk(store, "page", 0.6)
        _add_chunk(store, "clip", 0.8, content_type=ContentType.VIDEO)

        assert [r.content.id for r in ranker.search(QUERY, type_filter="webpage")] == ["page"]
        assert [r.content.id for r in ranker.search(QUERY, type_filter=ContentType.VIDEO)] == ["clip"]
        assert [r.content.id for r in ranker.search(QUERY, type_filter="all")] == ["clip", "page"]

    def test_type_filter_is_applied_in_the_store(self, repository: InMemoryContentRepository) -> None:
        store = MagicMock(spec=VectorStoreBase)
        store.collection_name = "chunks"
        store.query.return_value = []
        SimilarityRanker(store, repository).search(QUERY, threshold=0.3, type_filter="webpage")
        store.query.assert_called_once_with(QUERY, threshold=0.3, type_filter=ContentType.WEBPAGE)

    def test_filtered_type_is_found_among_closer_other_types(
        self, ranker: SimilarityRanker, repository: InMemoryContentRepository, store: InMemoryVectorStore
    ) -> None:
        for i in range(5):
            _add_item(repository, f"clip{i}", ContentType.VIDEO)
            _add_chunk(store, f"clip{i}", 0.99 - i / 100, content_type=ContentType.VIDEO)
        _add_item(repository, "page", ContentType.WEBPAGE)
        _add_chunk(store, "page", 0.89)

        results = ranker.search(QUERY, threshold=0.3, limit=5, type_filter="webpage")

        assert [r.content.id for r in results] == ["page"]
        assert results[0].similarity == pytest.approx(0.89)

    def test_threshold_excludes_weak_matches(
        self, ranker: SimilarityRanker, repository: InMemoryContentRepository, store: InMemoryVectorStore
    ) -> None:
        _add_item(repository, "strong")
        _add_item(repository, "weak")
        _add_chunk(store, "strong", 0.75)
        _add_chunk(store, "weak", 0.2)

        assert [r.content.id for r in ranker.search(QUERY, threshold=0.3)] == ["strong"]
        assert ranker.search(QUERY, threshold=0.8) == []

    def test_sorted_descending_then_limited(
        self, ranker: SimilarityRanker, repository: InMemoryContentRepository, store: InMemoryVectorStore
    ) -> None:
        for content_id, similarity in [("c", 0.5), ("a", 0.95), ("d", 0.4), ("b", 0.7)]:
            _add_item(repository, content_id)
            _add_chunk(store, content_id, similarity)

        assert [r.content.id for r in ranker.search(QUERY, limit=2)] == ["a", "b"]
        assert [r.content.id for r in ranker.search(QUERY, limit=10)] == ["a", "b", "c", "d"]
        assert ranker.search(QUERY, limit=0) == []

    def test_default_limit(self, store: InMemoryVectorStore, repository: InMemoryContentRepository) -> None:
        ranker = SimilarityRanker(store, repository, default_limit=2, default_threshold=0.1)
        for i in range(5):
            _add_item(repository, f"item{i}")
            _add_chunk(store, f"item{i}", 0.5 + i / 10)
        assert len(ranker.search(QUERY)) == 2

    def test_chunks_without_embeddings_are_ignored(
        self, ranker: SimilarityRanker, repository: InMemoryContentRepository, store: InMemoryVectorStore
    ) -> None:
        _add_item(repository, "a")
        _add_chunk(store, "a", None)
        assert ranker.search(QUERY) == []

    def test_hits_for_unknown_items_are_skipped(
        self, ranker: SimilarityRanker, repository: InMemoryContentRepository, store: InMemoryVectorStore
    ) -> None:
        _add_item(repository, "known")
        _add_chunk(store, "known", 0.6)
        _add_chunk(store, "orphan", 0.9)
        assert [r.content.id for r in ranker.search(QUERY)] == ["known"]

    @pytest.mark.parametrize("vector", [[], [1.0, float("nan")], [float("inf"), 0.0], ["x", 1.0], [None]])
    def test_malformed_query_vector(self, ranker: SimilarityRanker, vector) -> None:
        with pytest.raises(RankingError, match="Malformed query vector"):
            ranker.search(vector)

    def test_dimension_mismatch_is_a_ranking_error(
        self, ranker: SimilarityRanker, repository: InMemoryContentRepository, store: InMemoryVectorStore
    ) -> None:
        _add_item(repository, "a")
        _add_chunk(store, "a", 0.5)
        with pytest.raises(RankingError, match="Vector search failed"):
            ranker.search([1.0, 0.0, 0.0])

    def test_store_failure_is_a_ranking_error(self, repository: InMemoryContentRepository) -> None:
        store = MagicMock(spec=VectorStoreBase)
        store.collection_name = "broken"
        store.query.side_effect = ConnectionError("store offline")
        ranker = SimilarityRanker(store, repository)
        with pytest.raises(RankingError, match="store offline"):
            ranker.search(QUERY)

    def test_negative_limit(self, ranker: SimilarityRanker) -> None:
        with pytest.raises(ValidationError):
            ranker.search(QUERY, limit=-1)

    def test_unknown_type_filter(self, ranker: SimilarityRanker) -> None:
        with pytest.raises(ValidationError):
            ranker.search(QUERY, type_filter="podcast")

    def test_recent_lists_completed_newest_first(
        self, ranker: SimilarityRanker, repository: InMemoryContentRepository
    ) -> None:
        for content_id, status, day in [
            ("old", ContentStatus.COMPLETED, 1),
            ("pending", ContentStatus.PENDING, 2),
            ("new", ContentStatus.COMPLETED, 3),
        ]:
            created_at = datetime(2024, 1, day, tzinfo=timezone.utc)
            repository.create(
                ContentItem(id=content_id, type=ContentType.WEBPAGE, status=status, created_at=created_at)
            )

        assert [i.id for i in ranker.recent(10)] == ["new", "old"]
        assert [i.id for i in ranker.recent(1)] == ["new"]

    def test_recent_failure_is_a_ranking_error(self, store: InMemoryVectorStore) -> None:
        repository = MagicMock()
        repository.list_recent.side_effect = RuntimeError("db down")
        with pytest.raises(RankingError, match="db down"):
            SimilarityRanker(store, repository).recent(5)
