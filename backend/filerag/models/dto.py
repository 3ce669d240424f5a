"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RagQueryFilters(BaseModel):
    file_paths: list[str] = Field(default_factory=list, description="Path prefixes, OR-combined")


class RagQuery(BaseModel):
    query: str
    top_k: int | None = Field(default=None, ge=1, le=100)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)
    filters: RagQueryFilters | None = None
    conversation_id: str | None = None


class RagSource(BaseModel):
    file_path: str
    file_name: str
    chunk_index: int
    page_number: int | None = None
    score: float
    content: str


class RagResponseMeta(BaseModel):
    model: str
    latency_ms: int
    guardrails_applied: bool = False
    conversation_id: str | None = None


class RagResponse(BaseModel):
    answer: str
    sources: list[RagSource]
    meta: RagResponseMeta


class IngestRequest(BaseModel):
    paths: list[str] | None = Field(default=None, description="Explicit filesystem paths")
    all: bool = Field(default=False, description="Reconcile the whole watch directory")


class IngestResult(BaseModel):
    path: str
    indexed: bool
    error: str | None = None


class IngestResponse(BaseModel):
    processed: int
    results: list[IngestResult] = Field(default_factory=list)


class DocumentResponse(BaseModel):
    file_id: str
    file_path: str
    file_name: str
    last_indexed: datetime
    chunk_count: int


class RemoveResponse(BaseModel):
    path: str
    removed: int


__all__ = [
    "RagQueryFilters",
    "RagQuery",
    "RagSource",
    "RagResponseMeta",
    "RagResponse",
    "IngestRequest",
    "IngestResult",
    "IngestResponse",
    "DocumentResponse",
    "RemoveResponse",
]
