"""Internal dataclasses representing indexed entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class ChunkMetadata:
    """Metadata persisted alongside every chunk.

    ``is_active`` is always written as ``True``; deletion is a hard delete by
    ``file_id``. The flag is kept for payload compatibility and for the
    search filter.
    """

    file_id: str
    file_path: str
    file_name: str
    file_hash: str
    chunk_index: int
    created_at: datetime
    updated_at: datetime
    page_number: int | None = None
    is_active: bool = True


@dataclass(slots=True)
class IndexedChunk:
    """Unit stored in the vector backend."""

    id: str
    embedding: list[float]
    content: str
    metadata: ChunkMetadata


@dataclass(slots=True)
class SearchResult:
    metadata: ChunkMetadata
    content: str
    score: float


@dataclass(slots=True)
class SearchFilters:
    """Search restrictions; ``file_paths`` entries are OR-combined prefixes."""

    is_active: bool = True
    file_paths: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DocumentInfo:
    file_id: str
    file_path: str
    file_name: str
    last_indexed: datetime
    chunk_count: int


__all__ = [
    "ChunkMetadata",
    "IndexedChunk",
    "SearchResult",
    "SearchFilters",
    "DocumentInfo",
]
