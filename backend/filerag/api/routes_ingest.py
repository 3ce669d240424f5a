"""Ingest API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from filerag.api.dependencies import get_ingest_pipeline
from filerag.core.errors import DocumentNotFoundError
from filerag.core.logging import get_logger
from filerag.ingest.pipeline import IngestPipeline
from filerag.models.dto import IngestRequest, IngestResponse, IngestResult

router = APIRouter()
logger = get_logger(__name__)


@router.post("", response_model=IngestResponse, summary="Trigger ingest")
def trigger_ingest(
    request: IngestRequest,
    pipeline: IngestPipeline = Depends(get_ingest_pipeline),
) -> IngestResponse:
    if request.all:
        return IngestResponse(processed=pipeline.reindex_all())
    if not request.paths:
        raise HTTPException(status_code=400, detail="Provide 'paths' or set 'all' to true")

    results: list[IngestResult] = []
    for path in request.paths:
        try:
            results.append(IngestResult(path=path, indexed=pipeline.process_file(path)))
        except DocumentNotFoundError as exc:
            results.append(IngestResult(path=path, indexed=False, error=str(exc)))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Ingest failed for %s", path, extra={"ctx_path": path})
            results.append(IngestResult(path=path, indexed=False, error=str(exc)))
    return IngestResponse(processed=sum(1 for result in results if result.indexed), results=results)
