"""Tests for the Qdrant REST vector store."""

from __future__ import annotations

from typing import Any

from filerag.models.entities import ChunkMetadata, IndexedChunk, SearchFilters
from filerag.retrieval.qdrant import QdrantVectorStore
from filerag.utils.time import utc_now


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = payload or {}
        self.content = b"{}" if payload is not None else b""

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise RuntimeError(f"HTTP {self.status_code}")

    def json(self) -> dict:
        return self.payload


class FakeSession:
    """Routes ``(method, path suffix)`` to canned responses and records bodies."""

    def __init__(self, routes: dict[tuple[str, str], Any]) -> None:
        self.routes = routes
        self.headers: dict[str, str] = {}
        self.requests: list[tuple[str, str, dict | None]] = []

    def get(self, url: str, timeout: float) -> FakeResponse:
        return self.request("GET", url, json=None, timeout=timeout)

    def request(self, method: str, url: str, json: dict | None, timeout: float) -> FakeResponse:
        path = url.split("/collections/docs", 1)[1]
        self.requests.append((method, path, json))
        route = self.routes.get((method, path), FakeResponse(payload={"result": {}}))
        if isinstance(route, list):
            return route.pop(0)
        return route


def _store(session: FakeSession) -> QdrantVectorStore:
    return QdrantVectorStore("http://qdrant:6333/", "docs", 4, api_key="secret", session=session)


def test_creates_missing_collection_with_indexes() -> None:
    session = FakeSession({("GET", ""): FakeResponse(status_code=404)})
    _store(session).ensure_collection()

    methods = [(method, path) for method, path, _ in session.requests]
    assert methods == [("GET", ""), ("PUT", ""), ("PUT", "/index"), ("PUT", "/index")]
    assert session.requests[1][2] == {"vectors": {"size": 4, "distance": "Cosine"}}
    assert {body["field_name"] for _, _, body in session.requests[2:]} == {"file_id", "is_active"}
    assert session.headers["api-key"] == "secret"


def test_existing_collection_left_alone() -> None:
    session = FakeSession({("GET", ""): FakeResponse(payload={"result": {"status": "green"}})})
    _store(session).ensure_collection()
    assert len(session.requests) == 1


def test_delete_counts_then_deletes() -> None:
    session = FakeSession({("POST", "/points/count"): FakeResponse(payload={"result": {"count": 3}})})
    assert _store(session).delete_by_file_id("abc") == 3
    assert [path for _, path, _ in session.requests] == ["/points/count", "/points/delete?wait=true"]


def test_delete_skips_when_nothing_indexed() -> None:
    session = FakeSession({("POST", "/points/count"): FakeResponse(payload={"result": {"count": 0}})})
    assert _store(session).delete_by_file_id("abc") == 0
    assert [path for _, path, _ in session.requests] == ["/points/count"]


def test_upsert_sends_payload() -> None:
    session = FakeSession({})
    now = utc_now()
    chunk = IndexedChunk(
        id="11111111-1111-1111-1111-111111111111",
        embedding=[0.1, 0.2, 0.3, 0.4],
        content="hello",
        metadata=ChunkMetadata(
            file_id="f", file_path="/docs/a.pdf", file_name="a.pdf", file_hash="h",
            chunk_index=0, created_at=now, updated_at=now, page_number=2,
        ),
    )
    _store(session).upsert([chunk])
    method, path, body = session.requests[0]
    assert (method, path) == ("PUT", "/points?wait=true")
    payload = body["points"][0]["payload"]
    assert payload["content"] == "hello"
    assert payload["page_number"] == 2
    assert payload["is_active"] is True


def test_search_builds_filter_and_maps_hits() -> None:
    now = utc_now().isoformat()
    hit = {
        "score": 0.87,
        "payload": {
            "file_id": "f", "file_path": "/docs/a.txt", "file_name": "a.txt", "file_hash": "h",
            "chunk_index": 1, "content": "text", "created_at": now, "updated_at": now, "is_active": True,
        },
    }
    session = FakeSession({("POST", "/points/search"): FakeResponse(payload={"result": [hit]})})
    results = _store(session).search([1.0, 0.0, 0.0, 0.0], 3, SearchFilters(file_paths=["/docs"]))

    body = session.requests[0][2]
    assert body["limit"] == 3
    must = body["filter"]["must"]
    assert must[0] == {"key": "is_active", "match": {"value": True}}
    assert must[1]["should"] == [{"key": "file_path", "match": {"text": "/docs"}}]
    assert results[0].score == 0.87
    assert results[0].metadata.chunk_index == 1
    assert results[0].metadata.page_number is None


def test_list_documents_pages_through_scroll() -> None:
    older, newer = "2024-01-01T00:00:00+00:00", "2024-02-01T00:00:00+00:00"

    def point(fid: str, name: str, updated: str) -> dict:
        return {"payload": {"file_id": fid, "file_path": f"/docs/{name}", "file_name": name, "updated_at": updated}}

    pages = [
        FakeResponse(payload={"result": {"points": [point("b", "b.txt", older), point("a", "a.txt", older)], "next_page_offset": "p2"}}),
        FakeResponse(payload={"result": {"points": [point("b", "b.txt", newer)], "next_page_offset": None}}),
    ]
    session = FakeSession({("POST", "/points/scroll"): pages})
    documents = _store(session).list_documents()

    assert [doc.file_name for doc in documents] == ["a.txt", "b.txt"]
    assert documents[1].chunk_count == 2
    assert documents[1].last_indexed.isoformat() == newer
    assert session.requests[1][2]["offset"] == "p2"
