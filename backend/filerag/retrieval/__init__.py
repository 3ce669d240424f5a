"""Retrieval and answering components."""

from .vector_store import SQLiteVectorStore, VectorStore, create_vector_store
from .guardrails import Guardrails
from .llm import LlmProvider, create_llm
from .engine import RagEngine

__all__ = [
    "VectorStore",
    "SQLiteVectorStore",
    "create_vector_store",
    "Guardrails",
    "LlmProvider",
    "create_llm",
    "RagEngine",
]
