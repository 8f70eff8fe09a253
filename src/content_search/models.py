"""Domain models for content items, chunks and search results."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from content_search.errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Return a random identifier such as ``url_3f2a9c0b1d4e``."""
    return f"{prefix}_{uuid4().hex[:12]}"


class ContentType(str, Enum):
    IMAGE = "image"
    WEBPAGE = "webpage"
    VIDEO = "video"
    DOCUMENT = "document"


class ContentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Type-specific metadata (validated at the ingestion boundary only)
# ---------------------------------------------------------------------------


class _BaseMetadata(BaseModel):
    # Caller-supplied keys outside the typed fields are stored as given.
    model_config = ConfigDict(extra="allow")

    tags: list[str] | None = None
    context: str | None = None


class ImageMetadata(_BaseMetadata):
    kind: Literal["image"] = "image"
    original_filename: str | None = None
    file_size: int | None = Field(default=None, gt=0)
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)
    format: Literal["png", "jpg", "jpeg", "gif", "webp", "svg"] | None = None


class WebpageMetadata(_BaseMetadata):
    kind: Literal["webpage"] = "webpage"
    domain: str | None = None
    favicon: str | None = None
    author: str | None = None
    published_date: str | None = None
    word_count: int | None = Field(default=None, ge=0)
    language: str | None = None


class VideoMetadata(_BaseMetadata):
    kind: Literal["video"] = "video"
    domain: str | None = None
    channel: str | None = None
    video_id: str | None = None
    duration: int | None = Field(default=None, ge=0)
    view_count: int | None = Field(default=None, ge=0)
    published_at: str | None = None


class DocumentMetadata(_BaseMetadata):
    kind: Literal["document"] = "document"
    original_filename: str | None = None
    file_size: int | None = Field(default=None, gt=0)
    mime_type: str | None = None
    page_count: int | None = Field(default=None, ge=0)
    author: str | None = None


ContentMetadata = Annotated[
    Union[ImageMetadata, WebpageMetadata, VideoMetadata, DocumentMetadata],
    Field(discriminator="kind"),
]

_metadata_adapter: TypeAdapter[Any] = TypeAdapter(ContentMetadata)


def validate_metadata(content_type: ContentType | str, raw: dict[str, Any] | None) -> dict[str, Any]:
    """Validate *raw* against the payload shape for *content_type*.

    Returns the validated payload as a plain dict (``None`` fields dropped)
    ready to be stored on :attr:`ContentItem.metadata`.
    """
    kind = ContentType(content_type).value
    payload = {**(raw or {}), "kind": kind}
    try:
        validated = _metadata_adapter.validate_python(payload)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid {kind} metadata: {exc.errors()[0]['msg']}") from exc
    return validated.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


class ContentItem(BaseModel):
    """One ingested unit (an image, a webpage, a video or a document)."""

    id: str
    type: ContentType
    url: str | None = None
    title: str = ""
    description: str = ""
    content_preview: str | None = None
    thumbnail_url: str | None = None
    status: ContentStatus = ContentStatus.PENDING
    error_message: str | None = None
    processing_attempts: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_retryable(self) -> bool:
        """Only failed items that can be re-extracted from a URL are retryable."""
        return self.status is ContentStatus.FAILED and bool(self.url)


class Chunk(BaseModel):
    """A persisted slice of a content item's text together with its vector."""

    id: str = Field(default_factory=lambda: new_id("chunk"))
    content_id: str
    content_type: ContentType | None = None
    chunk_index: int = Field(ge=0)
    content: str
    embedding: list[float] | None = None
    start_offset: int | None = None
    end_offset: int | None = None
    section: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utcnow)


class TextChunk(BaseModel):
    """Chunker output — a chunk descriptor before it is embedded."""

    content: str
    chunk_index: int
    start_offset: int
    end_offset: int
    section: str | None = None


class ExtractedContent(BaseModel):
    """What an extractor returns for one content item."""

    title: str = ""
    description: str = ""
    full_text: str = ""
    thumbnail_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """A content item together with its best-matching chunk."""

    content: ContentItem
    similarity: float
    matched_chunk: str
    matched_section: str | None = None


class ChunkHit(BaseModel):
    """A stored chunk that matched a query vector."""

    chunk_id: str
    content_id: str
    chunk_index: int
    content: str
    section: str | None = None
    similarity: float
