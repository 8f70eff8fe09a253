"""Content record persistence.

Plain CRUD for :class:`~content_search.models.ContentItem` records lives
behind :class:`ContentRepository` so that the pipeline and the ranker
never depend on a concrete database.  The in-memory implementation is
used for local development and in tests.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable

from content_search.models import ContentItem, ContentStatus, utcnow


class ContentRepository(ABC):
    """Backend-agnostic store for content item records."""

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def create(self, item: ContentItem) -> ContentItem:
        """Persist a new item and return it."""
        ...

    @abstractmethod
    def get(self, content_id: str) -> ContentItem | None:
        """Return the item with *content_id*, or ``None``."""
        ...

    @abstractmethod
    def get_many(self, content_ids: Iterable[str]) -> dict[str, ContentItem]:
        """Return the existing items among *content_ids*, keyed by id."""
        ...

    @abstractmethod
    def update(self, content_id: str, **changes: Any) -> ContentItem | None:
        """Apply *changes* to an item and bump ``updated_at``."""
        ...

    @abstractmethod
    def list_recent(self, limit: int = 20) -> list[ContentItem]:
        """Return completed items, newest first."""
        ...

    @abstractmethod
    def delete(self, content_id: str) -> bool:
        """Delete the record (not its chunks).  Returns ``True`` when something was removed."""
        ...

    # -- status transitions ---------------------------------------------------

    def mark_processing(self, content_id: str) -> ContentItem | None:
        return self.update(
            content_id,
            status=ContentStatus.PROCESSING,
            error_message=None,
            completed_at=None,
        )

    def mark_completed(self, content_id: str, **changes: Any) -> ContentItem | None:
        return self.update(
            content_id,
            status=ContentStatus.COMPLETED,
            error_message=None,
            completed_at=utcnow(),
            **changes,
        )

    def mark_failed(self, content_id: str, error_message: str) -> ContentItem | None:
        """Record a failure and count the attempt."""
        item = self.get(content_id)
        if item is None:
            return None
        return self.update(
            content_id,
            status=ContentStatus.FAILED,
            error_message=error_message,
            processing_attempts=item.processing_attempts + 1,
            completed_at=None,
        )


class InMemoryContentRepository(ContentRepository):
    """Dictionary-backed repository.  Thread-safe, not durable."""

    def __init__(self) -> None:
        self._items: dict[str, ContentItem] = {}
        self._lock = threading.Lock()

    def create(self, item: ContentItem) -> ContentItem:
        with self._lock:
            if item.id in self._items:
                raise KeyError(f"Content {item.id!r} already exists")
            self._items[item.id] = item.model_copy(deep=True)
        return item

    def get(self, content_id: str) -> ContentItem | None:
        item = self._items.get(content_id)
        return item.model_copy(deep=True) if item is not None else None

    def get_many(self, content_ids: Iterable[str]) -> dict[str, ContentItem]:
        found: dict[str, ContentItem] = {}
        for content_id in content_ids:
            item = self.get(content_id)
            if item is not None:
                found[content_id] = item
        return found

    def update(self, content_id: str, **changes: Any) -> ContentItem | None:
        with self._lock:
            item = self._items.get(content_id)
            if item is None:
                return None
            updated = item.model_copy(update={**changes, "updated_at": utcnow()})
            self._items[content_id] = updated
        return updated.model_copy(deep=True)

    def list_recent(self, limit: int = 20) -> list[ContentItem]:
        completed = [i for i in self._items.values() if i.status is ContentStatus.COMPLETED]
        completed.sort(key=lambda i: i.created_at, reverse=True)
        return [i.model_copy(deep=True) for i in completed[:limit]]

    def delete(self, content_id: str) -> bool:
        with self._lock:
            return self._items.pop(content_id, None) is not None
