"""Administrative routes: indexed documents and metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from filerag.api.dependencies import get_ingest_pipeline, get_vector_store
from filerag.core.metrics import metrics_response
from filerag.ingest.pipeline import IngestPipeline
from filerag.models.dto import DocumentResponse, RemoveResponse
from filerag.retrieval.vector_store import VectorStore

router = APIRouter()


@router.get("/documents", response_model=list[DocumentResponse], summary="List indexed documents")
def list_documents(store: VectorStore = Depends(get_vector_store)) -> list[DocumentResponse]:
    return [
        DocumentResponse(
            file_id=doc.file_id,
            file_path=doc.file_path,
            file_name=doc.file_name,
            last_indexed=doc.last_indexed,
            chunk_count=doc.chunk_count,
        )
        for doc in store.list_documents()
    ]


@router.delete("/documents", response_model=RemoveResponse, summary="Remove a file from the index")
def remove_document(
    path: str = Query(..., min_length=1, description="Path of the indexed file"),
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> RemoveResponse:
    return RemoveResponse(path=path, removed=pipeline.remove_file(path))


@router.get("/metrics", summary="Prometheus metrics")
def get_metrics():
    return metrics_response()
