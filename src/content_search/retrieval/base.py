"""Abstract base class for chunk vector-store backends.

Adding a new backend (pgvector, Qdrant …) only requires subclassing
:class:`VectorStoreBase` and implementing the abstract methods.  The
ranking logic in :mod:`content_search.retrieval.ranker` is
backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from content_search.models import Chunk, ChunkHit, ContentType


class VectorStoreBase(ABC):
    """Backend-agnostic chunk store with cosine-similarity search.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / table / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def add_chunks(self, chunks: list[Chunk]) -> list[Chunk]:
        """Persist *chunks* in one write and return them."""
        ...

    @abstractmethod
    def delete_chunks(self, content_id: str) -> int:
        """Delete every chunk owned by *content_id*.  Returns the count removed."""
        ...

    @abstractmethod
    def get_chunks(self, content_id: str) -> list[Chunk]:
        """Return the chunks of *content_id* ordered by ``chunk_index``."""
        ...

    @abstractmethod
    def query(
        self,
        query_embedding: list[float],
        *,
        threshold: float,
        type_filter: ContentType | None = None,
    ) -> list[ChunkHit]:
        """Return every chunk whose similarity to *query_embedding* exceeds *threshold*.

        Similarity is ``1 - cosine_distance``.  Chunks without an embedding
        are never returned.  With *type_filter*, only chunks of that
        content type are considered.
        """
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- optional overrides ---------------------------------------------------

    def replace_chunks(self, content_id: str, chunks: list[Chunk]) -> list[Chunk]:
        """Swap the chunk set of *content_id* for *chunks*."""
        self.delete_chunks(content_id)
        return self.add_chunks(chunks)
