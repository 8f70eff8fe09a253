"""Extraction capability — one extractor per content type.

Concrete extractors (web scraping, transcript fetching, PDF parsing,
image captioning) live outside this package and are registered on an
:class:`ExtractorRegistry` at start-up.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from urllib.parse import urlparse

from content_search.errors import ExtractionError
from content_search.models import ContentItem, ContentType, ExtractedContent

_VIDEO_HOSTS = frozenset({"youtube.com", "www.youtube.com", "m.youtube.com", "youtu.be", "music.youtube.com"})


def detect_url_type(url: str) -> ContentType:
    """Return :attr:`ContentType.VIDEO` for YouTube URLs, else ``WEBPAGE``."""
    host = (urlparse(url).hostname or "").lower()
    return ContentType.VIDEO if host in _VIDEO_HOSTS else ContentType.WEBPAGE


class Extractor(ABC):
    """Turns a content item (and optionally its uploaded bytes) into text."""

    @abstractmethod
    async def extract(self, item: ContentItem, payload: bytes | None = None) -> ExtractedContent:
        """Extract title, description and full text for *item*.

        Implementations raise :class:`~content_search.errors.ExtractionError`
        when the source is unreachable or unsupported.
        """
        ...


class ExtractorRegistry:
    """Maps each :class:`ContentType` to its extractor."""

    def __init__(self, extractors: dict[ContentType, Extractor] | None = None) -> None:
        self._extractors: dict[ContentType, Extractor] = dict(extractors or {})

    def register(self, content_type: ContentType, extractor: Extractor) -> None:
        self._extractors[content_type] = extractor

    def get(self, content_type: ContentType) -> Extractor:
        try:
            return self._extractors[content_type]
        except KeyError:
            raise ExtractionError(f"No extractor registered for {content_type.value!r} content") from None

    async def extract(self, item: ContentItem, payload: bytes | None = None) -> ExtractedContent:
        """Dispatch to the extractor for ``item.type``.

        Any non-:class:`ExtractionError` failure is wrapped so callers see a
        single error type for this stage.
        """
        extractor = self.get(item.type)
        try:
            return await extractor.extract(item, payload)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(f"Failed to extract {item.type.value} content: {exc}") from exc
