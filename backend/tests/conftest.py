"""Test fixtures for filerag."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


def _reset_singletons() -> None:
    from filerag.api import dependencies as deps
    from filerag.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    if deps._WATCHER is not None:
        deps._WATCHER.stop(timeout=1.0)
    deps._VECTOR_STORE = None
    deps._EMBEDDER = None
    deps._LLM = None
    deps._PIPELINE = None
    deps._ENGINE = None
    deps._WATCHER = None


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    docs = tmp_path / "docs"
    docs.mkdir()
    monkeypatch.setenv("FRAG_DB_PATH", str(tmp_path / "index.db"))
    monkeypatch.setenv("FRAG_WATCH_PATH", str(docs))
    monkeypatch.setenv("FRAG_WATCH_ENABLED", "false")
    monkeypatch.delenv("FRAG_CONFIG", raising=False)
    _reset_singletons()
    yield
    _reset_singletons()


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    return tmp_path / "docs"


@pytest.fixture
def settings(tmp_path: Path, docs_dir: Path):
    from filerag.core.config import Settings

    return Settings(
        db_path=tmp_path / "index.db",
        watch_path=docs_dir,
        chunk_size=200,
        chunk_overlap=20,
        debounce_ms=500,
        poll_interval_ms=10,
    )


@pytest.fixture
def embedder():
    from filerag.ingest.embeddings import HashedEmbedder

    return HashedEmbedder(dim=64)


@pytest.fixture
def store(tmp_path: Path):
    from filerag.db.sqlite import SQLiteDatabase
    from filerag.retrieval.vector_store import SQLiteVectorStore

    return SQLiteVectorStore(SQLiteDatabase(tmp_path / "store.db"))


class FakeLlm:
    """Records prompts and returns a canned answer."""

    def __init__(self, answer: str = "Paris is the capital of France.", model_id: str = "fake-llm") -> None:
        self.answer = answer
        self.model_id = model_id
        self.calls: list[dict[str, object]] = []

    def generate(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        return self.answer


class RecordingStore:
    """Vector store double that records calls in order."""

    def __init__(self, results: Sequence[object] = (), indexed: bool = False) -> None:
        self.results = list(results)
        self.indexed = indexed
        self.calls: list[str] = []
        self.upserted: list[object] = []
        self.documents: list[object] = []
        self.search_args: list[tuple[object, ...]] = []

    def ensure_collection(self) -> None:
        self.calls.append("ensure_collection")

    def upsert(self, chunks) -> None:
        self.calls.append("upsert")
        self.upserted.extend(chunks)

    def delete_by_file_id(self, file_id: str) -> int:
        self.calls.append("delete")
        return 0

    def search(self, vector, top_k, filters=None):
        self.calls.append("search")
        self.search_args.append((vector, top_k, filters))
        return list(self.results)[:top_k]

    def list_documents(self):
        return list(self.documents)

    def is_indexed(self, file_id: str, file_hash: str) -> bool:
        return self.indexed


@pytest.fixture
def fake_llm() -> FakeLlm:
    return FakeLlm()
