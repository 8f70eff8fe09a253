"""Text chunking strategies.

Two entry points share one windowing algorithm:

* :func:`chunk_text` — flat, overlapping windows cut on sentence or line
  boundaries.  Used for short and unstructured text.
* :func:`chunk_document` — runs :func:`chunk_text` independently inside
  every detected section so that no chunk straddles a chapter boundary,
  and tags each chunk with its section title.

Offsets always refer to the string that was passed in.
"""

from __future__ import annotations

from content_search.ingestion.sections import detect_sections
from content_search.models import TextChunk

# How far back from a tentative cut point to look for a boundary.
BOUNDARY_WINDOW = 200
SENTENCE_BOUNDARIES = (". ", "! ", "? ", "\n")


def _validate_sizes(max_chunk_size: int, overlap_size: int) -> None:
    if max_chunk_size <= 0:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    if overlap_size < 0 or overlap_size >= max_chunk_size:
        raise ValueError(
            f"overlap_size ({overlap_size}) must be >= 0 and < max_chunk_size ({max_chunk_size})"
        )


def _find_cut_point(text: str, start: int, end: int) -> int:
    """Move *end* back to just after the latest boundary in the last window.

    A boundary at the very first character of the search window is ignored.
    Returns *end* unchanged when there is no boundary.
    """
    search_start = max(start, end - BOUNDARY_WINDOW)
    window = text[search_start:end]
    cuts = [
        search_start + pos + 1
        for pos in (window.rfind(boundary) for boundary in SENTENCE_BOUNDARIES)
        if pos > 0
    ]
    return max(cuts) if cuts else end


def chunk_text(text: str, max_chunk_size: int = 1000, overlap_size: int = 100) -> list[TextChunk]:
    """Split *text* into overlapping chunks of at most *max_chunk_size* chars.

    Parameters
    ----------
    text:
        Source text.
    max_chunk_size:
        Maximum number of characters per chunk window.
    overlap_size:
        Number of characters shared by consecutive windows.

    Returns
    -------
    list[TextChunk]
        Chunks in document order with contiguous ``chunk_index`` values.
        Empty for empty or whitespace-only input.
    """
    _validate_sizes(max_chunk_size, overlap_size)
    if not text or not text.strip():
        return []

    if len(text) <= max_chunk_size:
        return [TextChunk(content=text.strip(), chunk_index=0, start_offset=0, end_offset=len(text))]

    chunks: list[TextChunk] = []
    length = len(text)
    position = 0

    while position < length:
        end = min(position + max_chunk_size, length)
        if end < length:
            end = _find_cut_point(text, position, end)

        content = text[position:end].strip()
        if content:
            chunks.append(
                TextChunk(
                    content=content,
                    chunk_index=len(chunks),
                    start_offset=position,
                    end_offset=end,
                )
            )

        next_position = end - overlap_size
        # Overlap must never stall the scan; near the end of the text this
        # can yield a final chunk smaller than the window.
        if next_position <= position:
            next_position = end
        position = next_position

    return chunks


def chunk_document(
    text: str,
    max_chunk_size: int = 2000,
    overlap_size: int = 200,
    preserve_sections: bool = True,
) -> list[TextChunk]:
    """Structure-aware chunking for books and long documents.

    When *preserve_sections* is true the text is first split by
    :func:`~content_search.ingestion.sections.detect_sections`; each
    section is chunked on its own, offsets are re-based onto *text* and
    ``chunk_index`` is renumbered contiguously across sections.
    Otherwise this is :func:`chunk_text` with the long-document sizes.
    """
    _validate_sizes(max_chunk_size, overlap_size)
    if not text or not text.strip():
        return []

    if len(text) <= max_chunk_size:
        return [TextChunk(content=text.strip(), chunk_index=0, start_offset=0, end_offset=len(text))]

    if not preserve_sections:
        return chunk_text(text, max_chunk_size, overlap_size)

    chunks: list[TextChunk] = []
    for section in detect_sections(text):
        for chunk in chunk_text(section.content, max_chunk_size, overlap_size):
            chunks.append(
                TextChunk(
                    content=chunk.content,
                    chunk_index=len(chunks),
                    start_offset=section.content_offset + chunk.start_offset,
                    end_offset=section.content_offset + chunk.end_offset,
                    section=section.title,
                )
            )
    return chunks


def chunk_for_ingestion(
    text: str,
    *,
    document_threshold: int = 5000,
    chunk_size: int = 1000,
    chunk_overlap: int = 100,
    document_chunk_size: int = 2000,
    document_chunk_overlap: int = 200,
) -> list[TextChunk]:
    """Pick flat or section-aware chunking by text length."""
    if len(text) > document_threshold:
        return chunk_document(text, document_chunk_size, document_chunk_overlap)
    return chunk_text(text, chunk_size, chunk_overlap)
