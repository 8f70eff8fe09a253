"""Embedding providers and batched embedding orchestration.

The provider is an injected capability (:class:`EmbeddingProvider`); the
default adapts any LangChain ``Embeddings`` implementation and uses a
sentence-transformer model from the settings.  The orchestrator owns the
batching, parallelism and pacing policy and never retries on its own.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Sequence

from content_search.config import settings
from content_search.errors import EmbeddingError, get_error_message

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

_WHITESPACE = re.compile(r"\s+")


def prepare_text_for_embedding(text: str, max_length: int = 10000) -> str:
    """Collapse whitespace and truncate *text* to *max_length* characters.

    A truncated text is cut back to its last full stop when that stop lies
    in the final 20% of the allowed length.
    """
    cleaned = _WHITESPACE.sub(" ", text).strip()
    if len(cleaned) <= max_length:
        return cleaned
    cleaned = cleaned[:max_length]
    last_period = cleaned.rfind(".")
    if last_period > max_length * 0.8:
        cleaned = cleaned[: last_period + 1]
    return cleaned


class EmbeddingProvider(ABC):
    """External text → vector capability."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        ...

    @abstractmethod
    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one request, preserving order."""
        ...


def get_embedding_function() -> Embeddings:
    """Return the configured sentence-transformer embedding function."""
    from langchain_huggingface import HuggingFaceEmbeddings

    return HuggingFaceEmbeddings(
        model_name=settings.embedding_model,
        encode_kwargs={"normalize_embeddings": True},
    )


class LangChainEmbeddingProvider(EmbeddingProvider):
    """Adapter from a LangChain ``Embeddings`` object to :class:`EmbeddingProvider`.

    Parameters
    ----------
    embeddings:
        Any LangChain embeddings implementation.  When *None*, the
        HuggingFace model named by ``settings.embedding_model`` is loaded.
    """

    def __init__(self, embeddings: Embeddings | None = None) -> None:
        self._embeddings = embeddings if embeddings is not None else get_embedding_function()

    async def embed(self, text: str) -> list[float]:
        return await self._embeddings.aembed_query(text)

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        return await self._embeddings.aembed_documents(texts)


def _split(items: Sequence[str], parts: int) -> list[list[str]]:
    """Split *items* into at most *parts* contiguous, non-empty slices."""
    size = math.ceil(len(items) / parts)
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class EmbeddingOrchestrator:
    """Turn a sequence of texts into vectors under rate / parallelism limits.

    Texts are processed in fixed-size batches.  Each batch is split into at
    most *max_parallel* slices that are sent to the provider concurrently;
    the next batch starts after *batch_pause* seconds.  Output order always
    matches input order.

    Parameters
    ----------
    provider:
        The embedding capability.
    batch_size:
        Texts per batch.
    max_parallel:
        Maximum concurrent provider requests within a batch.
    batch_pause:
        Seconds to wait between batches.
    max_input_chars:
        Texts are truncated to this length before embedding.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        batch_size: int = settings.embedding_batch_size,
        max_parallel: int = settings.embedding_max_parallel,
        batch_pause: float = settings.embedding_batch_pause,
        max_input_chars: int = settings.embedding_max_input_chars,
    ) -> None:
        if batch_size < 1 or max_parallel < 1:
            raise ValueError("batch_size and max_parallel must be >= 1")
        self._provider = provider
        self.batch_size = batch_size
        self.max_parallel = max_parallel
        self.batch_pause = batch_pause
        self.max_input_chars = max_input_chars

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single text (a search query)."""
        try:
            return await self._provider.embed(prepare_text_for_embedding(text, self.max_input_chars))
        except Exception as exc:
            logger.error("Error generating embedding: %s", exc)
            raise EmbeddingError(f"Failed to generate embedding: {get_error_message(exc)}") from exc

    async def embed_many(
        self,
        texts: Sequence[str],
        on_progress: ProgressCallback | None = None,
    ) -> list[list[float]]:
        """Embed *texts* batch by batch.

        Raises
        ------
        EmbeddingError
            If any provider call fails or returns the wrong number of
            vectors.  Vectors from earlier batches are discarded.
        """
        prepared = [prepare_text_for_embedding(t, self.max_input_chars) for t in texts]
        total = len(prepared)
        if total == 0:
            return []

        batch_count = math.ceil(total / self.batch_size)
        vectors: list[list[float]] = []

        for number, start in enumerate(range(0, total, self.batch_size), 1):
            batch = prepared[start : start + self.batch_size]
            logger.info("Processing embedding batch %d/%d (%d items)", number, batch_count, len(batch))
            vectors.extend(await self._embed_batch(batch, number, batch_count))

            if on_progress is not None:
                on_progress(len(vectors), total)

            if number < batch_count and self.batch_pause > 0:
                await asyncio.sleep(self.batch_pause)

        return vectors

    async def _embed_batch(self, batch: list[str], number: int, batch_count: int) -> list[list[float]]:
        slices = _split(batch, self.max_parallel)
        tasks = [asyncio.ensure_future(self._provider.embed_many(s)) for s in slices]
        try:
            results = await asyncio.gather(*tasks)
        except Exception as exc:
            # gather() leaves the other slices running after the first error.
            for task in tasks:
                task.cancel()
            logger.error("Embedding batch %d/%d failed: %s", number, batch_count, exc)
            raise EmbeddingError(
                f"Failed to generate embeddings for batch {number}/{batch_count}: {get_error_message(exc)}"
            ) from exc

        vectors = [vector for result in results for vector in result]
        if len(vectors) != len(batch):
            raise EmbeddingError(
                f"Embedding batch {number}/{batch_count} returned {len(vectors)} vectors for {len(batch)} texts"
            )
        return vectors


def build_orchestrator(provider: EmbeddingProvider | None = None) -> EmbeddingOrchestrator:
    """Return an orchestrator wired to *provider* (default: LangChain / HuggingFace)."""
    return EmbeddingOrchestrator(provider if provider is not None else LangChainEmbeddingProvider())
