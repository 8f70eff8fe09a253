"""
Retrieval — chunk vector stores, best-chunk-per-item ranking and the
free-text search surface.

Public surface
--------------
- :class:`SearchService` — validated ``search`` / ``recent`` entry point.
- :class:`SimilarityRanker` — ranking over any :class:`VectorStoreBase`.
- :class:`VectorStoreBase` — abstract backend.
- :class:`InMemoryVectorStore` — exact, in-process backend.
- :class:`ChromaVectorStore` — default Chroma backend.
"""

from content_search.retrieval.base import VectorStoreBase
from content_search.retrieval.memory_store import InMemoryVectorStore
from content_search.retrieval.ranker import SimilarityRanker
from content_search.retrieval.search import SearchService

__all__ = [
    "ChromaVectorStore",
    "InMemoryVectorStore",
    "SearchService",
    "SimilarityRanker",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from content_search.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
