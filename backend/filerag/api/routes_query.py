"""Query API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from filerag.api.dependencies import get_rag_engine
from filerag.core.errors import ValidationError
from filerag.models.dto import RagQuery, RagResponse
from filerag.retrieval.engine import RagEngine

router = APIRouter()


@router.post("/query", response_model=RagResponse, summary="Answer a question from indexed documents")
def run_query(request: RagQuery, engine: RagEngine = Depends(get_rag_engine)) -> RagResponse:
    try:
        return engine.query(request)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
