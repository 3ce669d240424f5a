"""Retrieval-augmented answering over the vector store."""

from __future__ import annotations

import threading
import time
from typing import Sequence

from filerag.core.config import Settings
from filerag.core.errors import ValidationError, raise_if_cancelled
from filerag.core.logging import get_logger
from filerag.core.metrics import GUARDRAILS_APPLIED, QUERY_COUNT, QUERY_LATENCY
from filerag.ingest.embeddings import Embedder
from filerag.models.dto import RagQuery, RagResponse, RagResponseMeta, RagSource
from filerag.models.entities import SearchFilters, SearchResult
from filerag.retrieval.guardrails import Guardrails
from filerag.retrieval.llm import LlmProvider
from filerag.retrieval.vector_store import VectorStore
from filerag.utils.time import elapsed_ms

logger = get_logger(__name__)


class RagEngine:
    """Embeds a question, retrieves context and asks the LLM for an answer."""

    def __init__(
        self,
        settings: Settings,
        embedder: Embedder,
        vector_store: VectorStore,
        llm: LlmProvider,
        guardrails: Guardrails | None = None,
    ) -> None:
        self.settings = settings
        self.embedder = embedder
        self.vector_store = vector_store
        self.llm = llm
        self.guardrails = guardrails or Guardrails.from_settings(settings)

    def query(self, query: RagQuery, cancel: threading.Event | None = None) -> RagResponse:
        started = time.perf_counter()
        if not query.query or not query.query.strip():
            raise ValidationError("Query text must not be empty")
        logger.debug("Processing RAG query: %s", query.query)

        text, guardrails_applied = self.guardrails.sanitize_query(query.query)
        if guardrails_applied:
            GUARDRAILS_APPLIED.labels(stage="input").inc()
        if not text:
            logger.info("Query was emptied by input guardrails, nothing to search for")
            QUERY_COUNT.labels(outcome="no_results").inc()
            return self._respond(query, self.settings.no_results_answer, [], guardrails_applied, started)

        top_k = query.top_k or self.settings.default_top_k
        temperature = query.temperature if query.temperature is not None else self.settings.default_temperature
        max_tokens = query.max_tokens or self.settings.default_max_tokens

        raise_if_cancelled(cancel)
        vector = self.embedder.embed(text)

        raise_if_cancelled(cancel)
        filters = SearchFilters(
            is_active=True,
            file_paths=list(query.filters.file_paths) if query.filters else [],
        )
        logger.debug("Searching vector store for top %s results", top_k)
        results = self.vector_store.search(vector, top_k, filters)
        threshold = self.settings.min_relevance_score
        if threshold > 0:
            results = [result for result in results if result.score >= threshold]

        if not results:
            logger.info("No relevant documents found for query")
            QUERY_COUNT.labels(outcome="no_results").inc()
            return self._respond(query, self.settings.no_results_answer, [], guardrails_applied, started)

        raise_if_cancelled(cancel)
        logger.debug("Generating LLM response with model %s from %s chunks", self.llm.model_id, len(results))
        answer = self.llm.generate(
            self.settings.system_prompt,
            build_user_prompt(text, results),
            temperature,
            max_tokens,
        )

        answer, scrubbed = self.guardrails.sanitize_answer(answer)
        if scrubbed:
            GUARDRAILS_APPLIED.labels(stage="output").inc()
        QUERY_COUNT.labels(outcome="answered").inc()
        response = self._respond(query, answer, results, guardrails_applied or scrubbed, started)
        logger.info(
            "RAG query completed in %sms with %s sources",
            response.meta.latency_ms,
            len(response.sources),
            extra={"ctx_latency_ms": response.meta.latency_ms, "ctx_sources": len(response.sources)},
        )
        return response

    def _respond(
        self,
        query: RagQuery,
        answer: str,
        results: Sequence[SearchResult],
        guardrails_applied: bool,
        started: float,
    ) -> RagResponse:
        QUERY_LATENCY.observe(time.perf_counter() - started)
        return RagResponse(
            answer=answer,
            sources=[
                RagSource(
                    file_path=result.metadata.file_path,
                    file_name=result.metadata.file_name,
                    chunk_index=result.metadata.chunk_index,
                    page_number=result.metadata.page_number,
                    score=result.score,
                    content=result.content,
                )
                for result in results
            ],
            meta=RagResponseMeta(
                model=self.llm.model_id,
                latency_ms=elapsed_ms(started),
                guardrails_applied=guardrails_applied,
                conversation_id=query.conversation_id,
            ),
        )


def build_user_prompt(question: str, results: Sequence[SearchResult]) -> str:
    """Number each retrieved chunk as a separate piece of information."""
    lines = ["Use the following information to answer the question.", ""]
    for position, result in enumerate(results, start=1):
        label = f"Information {position} ({result.metadata.file_name}"
        if result.metadata.page_number is not None:
            label += f", page {result.metadata.page_number}"
        lines.append(label + "):")
        lines.append(result.content)
        lines.append("")
    lines.append(f"Question: {question}")
    lines.append("")
    lines.append(
        "Answer using only the information above. If it does not contain the answer, say you do not know. "
        "Do not mention documents, sources, context or information numbers in your answer."
    )
    return "\n".join(lines)


__all__ = ["RagEngine", "build_user_prompt"]
