"""Vector store abstraction and the local SQLite backend."""

from __future__ import annotations

import math
from array import array
from datetime import datetime
from typing import Callable, Protocol, Sequence

from filerag.core.config import Settings
from filerag.core.logging import get_logger
from filerag.db.sqlite import SQLiteDatabase
from filerag.models.entities import ChunkMetadata, DocumentInfo, IndexedChunk, SearchFilters, SearchResult

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chunks (
  id TEXT PRIMARY KEY,
  file_id TEXT NOT NULL,
  file_path TEXT NOT NULL,
  file_name TEXT NOT NULL,
  file_hash TEXT NOT NULL,
  chunk_index INTEGER NOT NULL,
  page_number INTEGER,
  content TEXT NOT NULL,
  vector BLOB NOT NULL,
  dim INTEGER NOT NULL,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  is_active INTEGER NOT NULL DEFAULT 1
);
CREATE INDEX IF NOT EXISTS idx_chunks_file_id ON chunks (file_id, file_hash);
CREATE INDEX IF NOT EXISTS idx_chunks_file_path ON chunks (file_path);
"""


class VectorStore(Protocol):
    """Storage and similarity search for indexed chunks."""

    def ensure_collection(self) -> None:
        ...

    def upsert(self, chunks: Sequence[IndexedChunk]) -> None:
        ...

    def delete_by_file_id(self, file_id: str) -> int:
        ...

    def search(
        self,
        vector: Sequence[float],
        top_k: int,
        filters: SearchFilters | None = None,
    ) -> list[SearchResult]:
        """Return up to ``top_k`` matches ordered by descending score."""

    def list_documents(self) -> list[DocumentInfo]:
        ...

    def is_indexed(self, file_id: str, file_hash: str) -> bool:
        ...


class SQLiteVectorStore:
    """Brute-force cosine similarity over vectors persisted in SQLite."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db
        self.ensure_collection()

    def ensure_collection(self) -> None:
        self.db.ensure_schema(SCHEMA_SQL)

    def upsert(self, chunks: Sequence[IndexedChunk]) -> None:
        if not chunks:
            return
        rows = [
            (
                chunk.id,
                chunk.metadata.file_id,
                chunk.metadata.file_path,
                chunk.metadata.file_name,
                chunk.metadata.file_hash,
                chunk.metadata.chunk_index,
                chunk.metadata.page_number,
                chunk.content,
                array("f", chunk.embedding).tobytes(),
                len(chunk.embedding),
                chunk.metadata.created_at.isoformat(),
                chunk.metadata.updated_at.isoformat(),
                int(chunk.metadata.is_active),
            )
            for chunk in chunks
        ]
        with self.db.transaction() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO chunks (
                  id, file_id, file_path, file_name, file_hash, chunk_index, page_number,
                  content, vector, dim, created_at, updated_at, is_active
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        logger.debug("Upserted %s chunks", len(rows))

    def delete_by_file_id(self, file_id: str) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM chunks WHERE file_id = ?", [file_id])
            deleted = cursor.rowcount
        if deleted:
            logger.debug("Deleted %s chunks for file_id %s", deleted, file_id)
        return deleted

    def search(
        self,
        vector: Sequence[float],
        top_k: int,
        filters: SearchFilters | None = None,
    ) -> list[SearchResult]:
        where, params = _build_where(filters)
        rows = self.db.query(
            f"""
            SELECT file_id, file_path, file_name, file_hash, chunk_index, page_number,
                   content, vector, created_at, updated_at, is_active
            FROM chunks{where}
            """,
            params,
        )
        scored: list[SearchResult] = []
        for row in rows:
            floats = array("f")
            floats.frombytes(row["vector"])
            scored.append(
                SearchResult(
                    metadata=_row_to_metadata(row),
                    content=row["content"],
                    score=_cosine(vector, floats),
                )
            )
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored[: max(top_k, 0)]

    def list_documents(self) -> list[DocumentInfo]:
        rows = self.db.query(
            """
            SELECT file_id, MIN(file_path) AS file_path, MIN(file_name) AS file_name,
                   MAX(updated_at) AS last_indexed, COUNT(*) AS chunk_count
            FROM chunks
            GROUP BY file_id
            ORDER BY file_name
            """,
            [],
        )
        return [
            DocumentInfo(
                file_id=row["file_id"],
                file_path=row["file_path"],
                file_name=row["file_name"],
                last_indexed=datetime.fromisoformat(row["last_indexed"]),
                chunk_count=int(row["chunk_count"]),
            )
            for row in rows
        ]

    def is_indexed(self, file_id: str, file_hash: str) -> bool:
        rows = self.db.query(
            "SELECT 1 FROM chunks WHERE file_id = ? AND file_hash = ? LIMIT 1",
            [file_id, file_hash],
        )
        return bool(rows)


def create_vector_store(settings: Settings) -> VectorStore:
    """Select the vector store named by ``settings.vector_store``."""
    from filerag.retrieval.qdrant import QdrantVectorStore

    factories: dict[str, Callable[[Settings], VectorStore]] = {
        "sqlite": lambda s: SQLiteVectorStore(SQLiteDatabase(s.db_path)),
        "qdrant": lambda s: QdrantVectorStore(
            url=s.qdrant_url,
            collection=s.qdrant_collection,
            vector_size=s.qdrant_vector_size,
            api_key=s.qdrant_api_key,
            timeout=s.http_timeout_seconds,
        ),
    }
    factory = factories.get(settings.vector_store)
    if factory is None:
        raise ValueError(f"Unknown vector store: {settings.vector_store}")
    return factory(settings)


def _build_where(filters: SearchFilters | None) -> tuple[str, list[object]]:
    if filters is None:
        return "", []
    clauses: list[str] = []
    params: list[object] = []
    if filters.is_active:
        clauses.append("is_active = 1")
    if filters.file_paths:
        prefixes = " OR ".join("file_path LIKE ? ESCAPE '\\'" for _ in filters.file_paths)
        clauses.append(f"({prefixes})")
        params.extend(_escape_like(prefix) + "%" for prefix in filters.file_paths)
    if not clauses:
        return "", []
    return " WHERE " + " AND ".join(clauses), params


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_metadata(row) -> ChunkMetadata:
    return ChunkMetadata(
        file_id=row["file_id"],
        file_path=row["file_path"],
        file_name=row["file_name"],
        file_hash=row["file_hash"],
        chunk_index=int(row["chunk_index"]),
        page_number=row["page_number"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        is_active=bool(row["is_active"]),
    )


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError("Query vector dimension mismatch")
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return min(1.0, max(0.0, dot / norm))


__all__ = ["VectorStore", "SQLiteVectorStore", "create_vector_store"]
