"""Vector store backed by the Qdrant REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

import requests

from filerag.core.logging import get_logger
from filerag.models.entities import ChunkMetadata, DocumentInfo, IndexedChunk, SearchFilters, SearchResult
from filerag.utils.time import utc_now

logger = get_logger(__name__)

_SCROLL_PAGE = 100


class QdrantVectorStore:
    """Stores chunk payloads as Qdrant points with cosine distance."""

    def __init__(
        self,
        url: str,
        collection: str,
        vector_size: int,
        api_key: str | None = None,
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = url.rstrip("/")
        self.collection = collection
        self.vector_size = vector_size
        self.timeout = timeout
        self._session = session or requests.Session()
        if api_key:
            self._session.headers["api-key"] = api_key

    def ensure_collection(self) -> None:
        resp = self._session.get(self._url(""), timeout=self.timeout)
        if resp.status_code == 404:
            logger.info("Creating collection %s with vector size %s", self.collection, self.vector_size)
            self._request("PUT", "", {"vectors": {"size": self.vector_size, "distance": "Cosine"}})
            self._request("PUT", "/index", {"field_name": "file_id", "field_schema": "keyword"})
            self._request("PUT", "/index", {"field_name": "is_active", "field_schema": "bool"})
            return
        resp.raise_for_status()
        logger.debug("Collection %s already exists", self.collection)

    def upsert(self, chunks: Sequence[IndexedChunk]) -> None:
        if not chunks:
            return
        points = [
            {"id": chunk.id, "vector": list(chunk.embedding), "payload": _to_payload(chunk)}
            for chunk in chunks
        ]
        self._request("PUT", "/points?wait=true", {"points": points})
        logger.debug("Upserted %s points into %s", len(points), self.collection)

    def delete_by_file_id(self, file_id: str) -> int:
        match = {"must": [{"key": "file_id", "match": {"value": file_id}}]}
        count = self._count(match)
        if count > 0:
            self._request("POST", "/points/delete?wait=true", {"filter": match})
            logger.debug("Deleted %s points for file_id %s", count, file_id)
        return count

    def search(
        self,
        vector: Sequence[float],
        top_k: int,
        filters: SearchFilters | None = None,
    ) -> list[SearchResult]:
        body: dict[str, Any] = {"vector": list(vector), "limit": top_k, "with_payload": True}
        qdrant_filter = _build_filter(filters)
        if qdrant_filter:
            body["filter"] = qdrant_filter
        hits = self._request("POST", "/points/search", body).get("result") or []
        return [
            SearchResult(
                metadata=_to_metadata(hit.get("payload") or {}),
                content=str((hit.get("payload") or {}).get("content", "")),
                score=float(hit.get("score", 0.0)),
            )
            for hit in hits
        ]

    def list_documents(self) -> list[DocumentInfo]:
        documents: dict[str, DocumentInfo] = {}
        offset: Any = None
        while True:
            body: dict[str, Any] = {
                "limit": _SCROLL_PAGE,
                "with_payload": ["file_id", "file_path", "file_name", "updated_at"],
            }
            if offset is not None:
                body["offset"] = offset
            result = self._request("POST", "/points/scroll", body).get("result") or {}
            for point in result.get("points") or []:
                payload = point.get("payload") or {}
                fid = payload.get("file_id")
                if not fid:
                    continue
                updated = _parse_dt(payload.get("updated_at"))
                known = documents.get(fid)
                if known is None:
                    documents[fid] = DocumentInfo(
                        file_id=fid,
                        file_path=str(payload.get("file_path", "")),
                        file_name=str(payload.get("file_name", "")),
                        last_indexed=updated,
                        chunk_count=1,
                    )
                else:
                    known.chunk_count += 1
                    known.last_indexed = max(known.last_indexed, updated)
            offset = result.get("next_page_offset")
            if offset is None:
                break
        return sorted(documents.values(), key=lambda doc: doc.file_name)

    def is_indexed(self, file_id: str, file_hash: str) -> bool:
        match = {
            "must": [
                {"key": "file_id", "match": {"value": file_id}},
                {"key": "file_hash", "match": {"value": file_hash}},
            ]
        }
        return self._count(match) > 0

    # ------------------------------------------------------------------

    def _count(self, qdrant_filter: dict[str, Any]) -> int:
        result = self._request("POST", "/points/count", {"filter": qdrant_filter, "exact": True})
        return int((result.get("result") or {}).get("count", 0))

    def _request(self, method: str, path: str, body: dict[str, Any]) -> dict[str, Any]:
        resp = self._session.request(method, self._url(path), json=body, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json() if resp.content else {}

    def _url(self, path: str) -> str:
        return f"{self.base_url}/collections/{self.collection}{path}"


def _build_filter(filters: SearchFilters | None) -> dict[str, Any] | None:
    if filters is None:
        return None
    must: list[dict[str, Any]] = []
    if filters.is_active:
        must.append({"key": "is_active", "match": {"value": True}})
    if filters.file_paths:
        must.append({"should": [{"key": "file_path", "match": {"text": prefix}} for prefix in filters.file_paths]})
    return {"must": must} if must else None


def _to_payload(chunk: IndexedChunk) -> dict[str, Any]:
    meta = chunk.metadata
    payload: dict[str, Any] = {
        "file_id": meta.file_id,
        "file_path": meta.file_path,
        "file_name": meta.file_name,
        "file_hash": meta.file_hash,
        "chunk_index": meta.chunk_index,
        "content": chunk.content,
        "created_at": meta.created_at.isoformat(),
        "updated_at": meta.updated_at.isoformat(),
        "is_active": meta.is_active,
    }
    if meta.page_number is not None:
        payload["page_number"] = meta.page_number
    return payload


def _to_metadata(payload: dict[str, Any]) -> ChunkMetadata:
    page = payload.get("page_number")
    return ChunkMetadata(
        file_id=str(payload.get("file_id", "")),
        file_path=str(payload.get("file_path", "")),
        file_name=str(payload.get("file_name", "")),
        file_hash=str(payload.get("file_hash", "")),
        chunk_index=int(payload.get("chunk_index", 0)),
        page_number=int(page) if page is not None else None,
        created_at=_parse_dt(payload.get("created_at")),
        updated_at=_parse_dt(payload.get("updated_at")),
        is_active=bool(payload.get("is_active", True)),
    )


def _parse_dt(value: Any) -> datetime:
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return utc_now()


__all__ = ["QdrantVectorStore"]
