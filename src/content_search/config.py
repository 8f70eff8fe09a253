"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Vector store
    vector_store: Literal["memory", "chroma"] = Field(
        default="memory",
        description="Chunk store backend; chroma persists chunks and needs a durable content repository",
    )
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "content_chunks"

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_batch_size: int = Field(default=100, ge=1, description="Texts per orchestrated batch")
    embedding_max_parallel: int = Field(default=5, ge=1, description="Concurrent provider calls per batch")
    embedding_batch_pause: float = Field(
        default=0.5,
        ge=0.0,
        description="Seconds to wait between batches to stay under provider rate limits",
    )
    embedding_max_input_chars: int = 10000

    # Chunking
    chunk_size: int = 1000
    chunk_overlap: int = 100
    document_chunk_size: int = 2000
    document_chunk_overlap: int = 200
    document_mode_threshold: int = Field(
        default=5000,
        description="Texts longer than this are chunked section by section",
    )

    # Search
    search_threshold: float = 0.3
    search_default_limit: int = 20
    search_max_limit: int = 100
    search_candidate_pool: int = Field(
        default=1000,
        description="Size of the first nearest-neighbour window fetched from the vector store",
    )

    # Errors / logging
    error_message_max_length: int = 500
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "CONTENT_SEARCH_"}


# Shared instance; import `settings` wherever needed.
settings = Settings()
