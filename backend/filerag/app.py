"""FastAPI application setup for filerag."""

from __future__ import annotations

from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from filerag.api import dependencies
from filerag.api.dependencies import (
    get_app_settings,
    get_embedder,
    get_ingest_pipeline,
    get_llm,
    get_rag_engine,
    get_vector_store,
    get_watcher,
)
from filerag.api.routes_admin import router as admin_router
from filerag.api.routes_ingest import router as ingest_router
from filerag.api.routes_query import router as query_router
from filerag.core.logging import configure_logging, get_logger
from filerag.utils.time import utc_now

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="filerag",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ingest_router, prefix="/ingest", tags=["ingest"])
app.include_router(query_router, prefix="", tags=["query"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons and start watching the document folder."""
    settings = get_app_settings()
    get_vector_store()
    get_embedder()
    get_ingest_pipeline()
    get_rag_engine()
    if settings.watch_enabled:
        get_watcher().start()
    else:
        logger.info("File watching disabled")


@app.on_event("shutdown")
async def shutdown() -> None:
    watcher = dependencies._WATCHER
    if watcher is not None:
        watcher.stop()


@app.get("/health", tags=["admin"])
def health() -> dict[str, object]:
    """Liveness check with watcher state."""
    watcher = dependencies._WATCHER
    return {"ok": True, "watching": bool(watcher is not None and watcher.running)}


@app.get("/health/detailed", tags=["admin"])
def health_detailed() -> dict[str, object]:
    """Per-component status; overall ``degraded`` when any component fails."""
    settings = get_app_settings()
    components = {
        "api": {"status": "healthy"},
        "vector_store": _check_component("vector_store", lambda: get_vector_store().ensure_collection()),
        "embedding_provider": _check_component("embedding_provider", get_embedder),
        "llm_provider": _check_component("llm_provider", get_llm),
        "file_watcher": _watcher_status(settings.watch_enabled),
    }
    healthy = all(component["status"] != "unhealthy" for component in components.values())
    return {
        "status": "healthy" if healthy else "degraded",
        "timestamp": utc_now().isoformat(),
        "components": components,
    }


def _check_component(name: str, check: Callable[[], object]) -> dict[str, str]:
    try:
        check()
    except Exception as exc:
        logger.warning("Health check failed for %s: %s", name, exc)
        return {"status": "unhealthy", "error": str(exc)}
    return {"status": "healthy"}


def _watcher_status(enabled: bool) -> dict[str, str]:
    if not enabled:
        return {"status": "disabled"}
    watcher = dependencies._WATCHER
    if watcher is not None and watcher.running:
        return {"status": "healthy"}
    return {"status": "unhealthy", "error": "watcher is not running"}
