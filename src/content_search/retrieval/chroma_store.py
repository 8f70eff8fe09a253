"""Chroma implementation of the chunk vector-store abstraction."""

from __future__ import annotations

import logging
from typing import Any

import chromadb

from content_search.config import settings
from content_search.models import Chunk, ChunkHit, ContentType
from content_search.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)

_OPTIONAL_FIELDS = ("start_offset", "end_offset", "section")


def _chunk_metadata(chunk: Chunk) -> dict[str, Any]:
    """Flatten a chunk into Chroma metadata (str/int/float/bool values only)."""
    meta: dict[str, Any] = {"content_id": chunk.content_id, "chunk_index": chunk.chunk_index}
    if chunk.content_type is not None:
        meta["content_type"] = chunk.content_type.value
    for field in _OPTIONAL_FIELDS:
        value = getattr(chunk, field)
        if value is not None:
            meta[field] = value
    return meta


def _build_chroma_where(type_filter: ContentType | None) -> dict[str, Any] | None:
    """Return the Chroma ``where`` clause restricting hits to *type_filter*."""
    if type_filter is None:
        return None
    return {"content_type": {"$eq": type_filter.value}}


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed chunk store using an HNSW index in cosine space.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    candidate_pool:
        Nearest neighbours fetched by the first query window; the window
        grows while every neighbour in it is still above the threshold.
    client:
        Pre-built Chroma client (tests, embedded ``PersistentClient``).
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        candidate_pool: int = settings.search_candidate_pool,
        client: Any | None = None,
    ) -> None:
        super().__init__(collection_name)
        self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )
        self.candidate_pool = candidate_pool

    # -- VectorStoreBase overrides --------------------------------------------

    def add_chunks(self, chunks: list[Chunk]) -> list[Chunk]:
        if not chunks:
            return []
        missing = [c.id for c in chunks if c.embedding is None]
        if missing:
            raise ValueError(f"Chunks without embeddings cannot be indexed: {missing}")

        self._collection.upsert(
            ids=[c.id for c in chunks],
            embeddings=[c.embedding for c in chunks],
            documents=[c.content for c in chunks],
            metadatas=[_chunk_metadata(c) for c in chunks],
        )
        logger.info("Indexed %d chunks for content %s", len(chunks), chunks[0].content_id)
        return chunks

    def delete_chunks(self, content_id: str) -> int:
        existing = self._collection.get(where={"content_id": content_id}, include=[])
        ids = existing.get("ids") or []
        if ids:
            self._collection.delete(ids=ids)
        return len(ids)

    def get_chunks(self, content_id: str) -> list[Chunk]:
        results = self._collection.get(
            where={"content_id": content_id},
            include=["documents", "metadatas", "embeddings"],
        )
        ids = results.get("ids") or []
        docs = results.get("documents") or [""] * len(ids)
        metas = results.get("metadatas") or [{}] * len(ids)
        embeddings = results.get("embeddings")
        if embeddings is None:
            embeddings = [None] * len(ids)

        chunks = [
            Chunk(
                id=chunk_id,
                content_id=content_id,
                content_type=meta.get("content_type"),
                chunk_index=int(meta.get("chunk_index", 0)),
                content=content or "",
                embedding=[float(x) for x in embedding] if embedding is not None else None,
                start_offset=meta.get("start_offset"),
                end_offset=meta.get("end_offset"),
                section=meta.get("section"),
            )
            for chunk_id, content, meta, embedding in zip(ids, docs, metas, embeddings)
        ]
        return sorted(chunks, key=lambda c: c.chunk_index)

    def query(
        self,
        query_embedding: list[float],
        *,
        threshold: float,
        type_filter: ContentType | None = None,
    ) -> list[ChunkHit]:
        count = self._collection.count()
        if count == 0:
            return []

        where = _build_chroma_where(type_filter)
        n_results = min(count, self.candidate_pool)
        # Chroma has no offset paging, so the window doubles until its
        # farthest neighbour is at or below the threshold.
        while True:
            results = self._collection.query(
                query_embeddings=[query_embedding],
                n_results=n_results,
                where=where,
                include=["documents", "metadatas", "distances"],
            )
            distances = results.get("distances", [[]])[0]
            if len(distances) < n_results or n_results >= count:
                break
            if 1.0 - float(distances[-1]) <= threshold:
                break
            logger.debug("Widening Chroma query window from %d to %d", n_results, min(count, n_results * 2))
            n_results = min(count, n_results * 2)

        hits: list[ChunkHit] = []
        ids = results.get("ids", [[]])[0]
        docs = results.get("documents", [[]])[0]
        metas = results.get("metadatas", [[]])[0]

        for chunk_id, content, meta, dist in zip(ids, docs, metas, distances):
            # The collection is in cosine space, so distance = 1 - cosine similarity.
            similarity = 1.0 - float(dist)
            if similarity <= threshold:
                continue
            meta = meta or {}
            hits.append(
                ChunkHit(
                    chunk_id=chunk_id,
                    content_id=str(meta.get("content_id", "")),
                    chunk_index=int(meta.get("chunk_index", 0)),
                    content=content or "",
                    section=meta.get("section"),
                    similarity=similarity,
                )
            )
        return hits

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
