"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class PageContent:
    """Text of a single page; ``page_number`` is 1-based."""

    page_number: int
    content: str


@dataclass(slots=True)
class ParseMetadata:
    title: str | None = None
    author: str | None = None
    created_date: datetime | None = None
    page_count: int | None = None


@dataclass(slots=True)
class ParsedDocument:
    """Result of parsing a document file."""

    content: str
    pages: list[PageContent] | None = None
    metadata: ParseMetadata = field(default_factory=ParseMetadata)


@dataclass(slots=True)
class TextChunk:
    """Chunk produced by the chunker prior to embedding.

    ``start_position``/``end_position`` are offsets into the normalized
    source text (for paged documents, shifted by the raw length of the
    preceding pages).
    """

    content: str
    index: int
    start_position: int
    end_position: int
    page_number: int | None = None


__all__ = [
    "PageContent",
    "ParseMetadata",
    "ParsedDocument",
    "TextChunk",
]
