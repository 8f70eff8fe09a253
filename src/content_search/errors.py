"""Error taxonomy and message helpers.

Lower layers raise the typed errors below; the ingestion pipeline turns
them into persisted item state, and the HTTP layer maps them to status
codes via :func:`get_safe_error_message`.
"""

from __future__ import annotations

import re

_UNKNOWN_ERROR = "An unknown error occurred"
_INTERNAL_ERROR = "An internal error occurred. Please try again later."

# Messages matching any of these are storage / query internals and never
# reach a client verbatim.
_SENSITIVE_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"failed query:",
        r"insert into",
        r"select .* from",
        r"update .* set",
        r"delete from",
        r"params:",
        r"postgresql",
        r"sqlite",
        r"pg_",
        r"chroma",
        r"hnsw",
        r"connection refused",
        r"econnrefused",
    )
)


class ContentSearchError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(ContentSearchError):
    """Malformed query or input (missing query text, out-of-range limit)."""


class ExtractionError(ContentSearchError):
    """Source unreachable, unsupported content or transcript unavailable."""


class EmbeddingError(ContentSearchError):
    """The embedding provider failed for a batch."""


class RankingError(ContentSearchError):
    """Malformed query vector or the vector store is unavailable."""


class ContentNotFoundError(ContentSearchError):
    """No content item exists with the requested id."""


class RetryNotAllowedError(ContentSearchError):
    """The content item is not in a state that can be retried."""


def get_error_message(error: BaseException | None, max_length: int = 500) -> str:
    """Return the message of *error*, truncated to *max_length* characters."""
    message = str(error) if error is not None else ""
    if not message:
        message = _UNKNOWN_ERROR
    if len(message) > max_length:
        return message[:max_length] + "..."
    return message


def get_safe_error_message(error: BaseException | None) -> str:
    """Return a client-safe message that does not leak storage internals."""
    message = get_error_message(error)
    if any(pattern.search(message) for pattern in _SENSITIVE_PATTERNS):
        return _INTERNAL_ERROR
    return message
