"""Ingest pipeline orchestration."""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path

from filerag.core.config import Settings
from filerag.core.errors import DocumentNotFoundError, OperationCancelled, raise_if_cancelled
from filerag.core.logging import get_logger
from filerag.core.metrics import CHUNKS_REMOVED, FILES_PROCESSED, INGEST_DURATION, ORPHANS_REMOVED
from filerag.ingest.chunker import chunk_document
from filerag.ingest.dedupe import file_hash, file_id, file_ids, resolve_path
from filerag.ingest.embeddings import Embedder
from filerag.ingest.parsers import ParserRegistry
from filerag.models.entities import ChunkMetadata, IndexedChunk
from filerag.retrieval.vector_store import VectorStore
from filerag.utils.ids import new_id
from filerag.utils.time import utc_now

logger = get_logger(__name__)

PathLike = str | os.PathLike[str]


class IngestPipeline:
    """Coordinate parsing, chunking, embeddings, and vector storage."""

    def __init__(
        self,
        settings: Settings,
        embedder: Embedder,
        vector_store: VectorStore,
        parsers: ParserRegistry | None = None,
    ) -> None:
        self.settings = settings
        self.embedder = embedder
        self.vector_store = vector_store
        self.parsers = parsers or ParserRegistry.from_settings(settings)
        self._locks_guard = threading.Lock()
        self._file_locks: dict[str, threading.Lock] = {}

    def process_file(self, path: PathLike, cancel: threading.Event | None = None) -> bool:
        """Index or re-index one file; ``False`` means it was skipped."""
        started = time.perf_counter()
        outcome = "skipped"
        try:
            indexed = self._process_file(resolve_path(path), cancel)
            outcome = "indexed" if indexed else "skipped"
            return indexed
        except Exception:
            outcome = "failed"
            raise
        finally:
            INGEST_DURATION.labels(outcome=outcome).observe(time.perf_counter() - started)
            FILES_PROCESSED.labels(outcome=outcome).inc()

    def remove_file(self, path: PathLike, cancel: threading.Event | None = None) -> int:
        """Delete every chunk of ``path`` from the index; returns the count removed."""
        raise_if_cancelled(cancel)
        resolved = resolve_path(path)
        fid = file_id(resolved)
        with self._file_lock(fid):
            removed = self.vector_store.delete_by_file_id(fid)
        CHUNKS_REMOVED.labels(reason="removed").inc(removed)
        logger.info("Removed %s chunks for file: %s", removed, resolved, extra={"ctx_path": str(resolved)})
        return removed

    def reindex_all(self, cancel: threading.Event | None = None) -> int:
        """Converge the index with the watch directory; returns files (re)indexed."""
        root = self.settings.watch_path
        logger.info("Starting full reindex of directory: %s", root)
        self.vector_store.ensure_collection()

        files = self.list_supported_files()
        processed = 0
        for path in files:
            raise_if_cancelled(cancel)
            try:
                if self.process_file(path, cancel):
                    processed += 1
            except OperationCancelled:
                raise
            except Exception:
                logger.exception("Error processing file during reindex: %s", path, extra={"ctx_path": str(path)})

        raise_if_cancelled(cancel)
        orphans = self.remove_orphans(files)
        logger.info("Full reindex complete. Processed %s documents, removed %s orphans.", processed, orphans)
        return processed

    def remove_orphans(self, current_files: list[Path]) -> int:
        """Delete indexed files absent from ``current_files``; returns the number of files dropped."""
        current = file_ids(current_files)
        removed_files = 0
        for document in self.vector_store.list_documents():
            if document.file_id in current:
                continue
            logger.info("Removing orphaned document: %s", document.file_path)
            with self._file_lock(document.file_id):
                removed = self.vector_store.delete_by_file_id(document.file_id)
            CHUNKS_REMOVED.labels(reason="orphan").inc(removed)
            ORPHANS_REMOVED.inc()
            removed_files += 1
        return removed_files

    def list_supported_files(self) -> list[Path]:
        root = resolve_path(self.settings.watch_path)
        if not root.is_dir():
            logger.warning("Watch directory does not exist: %s", root)
            return []
        extensions = set(self.settings.supported_extensions)
        candidates = root.rglob("*") if self.settings.watch_recursive else root.glob("*")
        return sorted(path for path in candidates if path.is_file() and path.suffix.lower() in extensions)

    # Internal helpers -------------------------------------------------

    def _file_lock(self, fid: str) -> threading.Lock:
        with self._locks_guard:
            return self._file_locks.setdefault(fid, threading.Lock())

    def _process_file(self, path: Path, cancel: threading.Event | None) -> bool:
        logger.debug("Processing file: %s", path)
        raise_if_cancelled(cancel)
        fid = file_id(path)
        # Held from the hash check through upsert so one file never gets two chunk sets.
        with self._file_lock(fid):
            return self._index_file(path, fid, cancel)

    def _index_file(self, path: Path, fid: str, cancel: threading.Event | None) -> bool:
        if not path.is_file():
            raise DocumentNotFoundError(f"File not found: {path}")
        digest = file_hash(path)
        if self.vector_store.is_indexed(fid, digest):
            logger.debug("File already indexed with same hash, skipping: %s", path)
            return False

        parser = self.parsers.for_path(path)
        if parser is None:
            logger.warning("No parser available for file: %s", path)
            return False

        raise_if_cancelled(cancel)
        parsed = parser.parse(path)
        if not parsed.content or not parsed.content.strip():
            logger.warning("Document has no content: %s", path)
            return False

        chunks = chunk_document(parsed, self.settings.chunk_size, self.settings.chunk_overlap)
        if not chunks:
            logger.warning("Document produced no chunks: %s", path)
            return False

        raise_if_cancelled(cancel)
        logger.debug("Generating %s embeddings for: %s", len(chunks), path)
        vectors = self.embedder.embed_batch([chunk.content for chunk in chunks])
        if len(vectors) != len(chunks):
            raise ValueError(f"Embedder returned {len(vectors)} vectors for {len(chunks)} chunks")

        raise_if_cancelled(cancel)
        removed = self.vector_store.delete_by_file_id(fid)
        CHUNKS_REMOVED.labels(reason="replaced").inc(removed)

        now = utc_now()
        records = [
            IndexedChunk(
                id=new_id(),
                embedding=list(vector),
                content=chunk.content,
                metadata=ChunkMetadata(
                    file_id=fid,
                    file_path=str(path),
                    file_name=path.name,
                    file_hash=digest,
                    chunk_index=position,
                    page_number=chunk.page_number,
                    created_at=now,
                    updated_at=now,
                    is_active=True,
                ),
            )
            for position, (chunk, vector) in enumerate(zip(chunks, vectors))
        ]
        self.vector_store.upsert(records)
        logger.info(
            "Successfully processed file with %s chunks: %s",
            len(records),
            path,
            extra={"ctx_path": str(path), "ctx_chunks": len(records)},
        )
        return True


__all__ = ["IngestPipeline"]
