"""Exact cosine-similarity store held in process memory."""

from __future__ import annotations

import threading

import numpy as np

from content_search.models import Chunk, ChunkHit, ContentType
from content_search.retrieval.base import VectorStoreBase


class InMemoryVectorStore(VectorStoreBase):
    """Brute-force vector store for development and tests.

    Chunks are kept in insertion order, which is the order hits are
    returned in.
    """

    def __init__(self, collection_name: str = "memory") -> None:
        super().__init__(collection_name)
        self._chunks: list[Chunk] = []
        self._lock = threading.Lock()

    def add_chunks(self, chunks: list[Chunk]) -> list[Chunk]:
        with self._lock:
            self._chunks.extend(c.model_copy(deep=True) for c in chunks)
        return chunks

    def delete_chunks(self, content_id: str) -> int:
        with self._lock:
            before = len(self._chunks)
            self._chunks = [c for c in self._chunks if c.content_id != content_id]
            return before - len(self._chunks)

    def get_chunks(self, content_id: str) -> list[Chunk]:
        owned = [c.model_copy(deep=True) for c in self._chunks if c.content_id == content_id]
        return sorted(owned, key=lambda c: c.chunk_index)

    def query(
        self,
        query_embedding: list[float],
        *,
        threshold: float,
        type_filter: ContentType | None = None,
    ) -> list[ChunkHit]:
        candidates = [
            c
            for c in self._chunks
            if c.embedding is not None and (type_filter is None or c.content_type is type_filter)
        ]
        if not candidates:
            return []

        query = np.asarray(query_embedding, dtype=float)
        matrix = np.asarray([c.embedding for c in candidates], dtype=float)
        if matrix.shape[1] != query.shape[0]:
            raise ValueError(
                f"Query vector has {query.shape[0]} dimensions, stored vectors have {matrix.shape[1]}"
            )

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            similarities = np.where(norms > 0, matrix @ query / norms, 0.0)

        return [
            ChunkHit(
                chunk_id=chunk.id,
                content_id=chunk.content_id,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                section=chunk.section,
                similarity=float(similarity),
            )
            for chunk, similarity in zip(candidates, similarities)
            if similarity > threshold
        ]

    def health_check(self) -> bool:
        return True
