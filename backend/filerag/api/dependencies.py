"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from filerag.core.config import Settings, get_settings
from filerag.ingest.embeddings import Embedder, create_embedder
from filerag.ingest.pipeline import IngestPipeline
from filerag.ingest.watcher import ChangeWatcher
from filerag.retrieval import LlmProvider, RagEngine, VectorStore, create_llm, create_vector_store

_VECTOR_STORE: VectorStore | None = None
_EMBEDDER: Embedder | None = None
_LLM: LlmProvider | None = None
_PIPELINE: IngestPipeline | None = None
_ENGINE: RagEngine | None = None
_WATCHER: ChangeWatcher | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_vector_store() -> VectorStore:
    global _VECTOR_STORE
    if _VECTOR_STORE is None:
        _VECTOR_STORE = create_vector_store(get_app_settings())
    return _VECTOR_STORE


def get_embedder() -> Embedder:
    global _EMBEDDER
    if _EMBEDDER is None:
        _EMBEDDER = create_embedder(get_app_settings())
    return _EMBEDDER


def get_llm() -> LlmProvider:
    global _LLM
    if _LLM is None:
        _LLM = create_llm(get_app_settings())
    return _LLM


def get_ingest_pipeline() -> IngestPipeline:
    global _PIPELINE
    if _PIPELINE is None:
        _PIPELINE = IngestPipeline(
            settings=get_app_settings(),
            embedder=get_embedder(),
            vector_store=get_vector_store(),
        )
    return _PIPELINE


def get_rag_engine() -> RagEngine:
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = RagEngine(
            settings=get_app_settings(),
            embedder=get_embedder(),
            vector_store=get_vector_store(),
            llm=get_llm(),
        )
    return _ENGINE


def get_watcher() -> ChangeWatcher:
    global _WATCHER
    if _WATCHER is None:
        _WATCHER = ChangeWatcher(get_ingest_pipeline(), get_app_settings())
    return _WATCHER


__all__ = [
    "get_app_settings",
    "get_vector_store",
    "get_embedder",
    "get_llm",
    "get_ingest_pipeline",
    "get_rag_engine",
    "get_watcher",
]
