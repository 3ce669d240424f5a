"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

INGEST_DURATION = Histogram(
    "frag_ingest_duration_seconds",
    "Duration of a single process_file call",
    labelnames=("outcome",),
    registry=REGISTRY,
)

FILES_PROCESSED = Counter(
    "frag_files_processed_total",
    "Files handled by the ingestion pipeline",
    labelnames=("outcome",),
    registry=REGISTRY,
)

CHUNKS_REMOVED = Counter(
    "frag_chunks_removed_total",
    "Chunks deleted from the vector store",
    labelnames=("reason",),
    registry=REGISTRY,
)

ORPHANS_REMOVED = Counter(
    "frag_orphans_removed_total",
    "Indexed files dropped because they no longer exist under the watch path",
    registry=REGISTRY,
)

PENDING_CHANGES = Gauge(
    "frag_watcher_pending_changes",
    "Paths waiting for their debounce window to expire",
    registry=REGISTRY,
)

REMOVAL_QUEUE_DEPTH = Gauge(
    "frag_watcher_removal_queue_depth",
    "Deleted paths waiting to be removed from the index",
    registry=REGISTRY,
)

WATCHER_ERRORS = Counter(
    "frag_watcher_errors_total",
    "Failures observed by the change watcher",
    labelnames=("stage",),
    registry=REGISTRY,
)

QUERY_COUNT = Counter(
    "frag_queries_total",
    "Answered queries",
    labelnames=("outcome",),
    registry=REGISTRY,
)

QUERY_LATENCY = Histogram(
    "frag_query_latency_seconds",
    "End-to-end latency of RAG queries",
    registry=REGISTRY,
)

GUARDRAILS_APPLIED = Counter(
    "frag_guardrails_applied_total",
    "Queries whose input or output was rewritten by a guardrail",
    labelnames=("stage",),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "INGEST_DURATION",
    "FILES_PROCESSED",
    "CHUNKS_REMOVED",
    "ORPHANS_REMOVED",
    "PENDING_CHANGES",
    "REMOVAL_QUEUE_DEPTH",
    "WATCHER_ERRORS",
    "QUERY_COUNT",
    "QUERY_LATENCY",
    "GUARDRAILS_APPLIED",
    "metrics_response",
]
