"""Embedding providers."""

from __future__ import annotations

import hashlib
import math
import re
from typing import Callable, Protocol, Sequence

import requests

from filerag.core.config import Settings
from filerag.core.logging import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")
AZURE_API_VERSION = "2024-02-01"


class Embedder(Protocol):
    """Turns text into vectors; ``embed_batch`` preserves input order and length."""

    model_id: str

    def embed(self, text: str) -> list[float]:
        ...

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        ...


class HashedEmbedder:
    """Lightweight hashed embedding model with deterministic output."""

    def __init__(self, model_name: str = "hashed", dim: int = 384) -> None:
        self.model_id = model_name
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dim
        for token in _tokenize(text):
            vector[_hash_token(token, self._dim)] += 1.0
        _normalize(vector)
        return vector

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


class OllamaEmbedder:
    """Embeddings from an Ollama server's ``/api/embed`` endpoint."""

    def __init__(self, base_url: str, model: str, timeout: float, session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.model_id = model
        self.timeout = timeout
        self._session = session or requests.Session()

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        resp = self._session.post(
            f"{self.base_url}/api/embed",
            json={"model": self.model_id, "input": list(texts)},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        embeddings = resp.json().get("embeddings") or []
        return _check_batch(embeddings, texts, "Ollama")


class OpenAIEmbedder:
    """Embeddings from an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        model: str,
        timeout: float,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model_id = model
        self.timeout = timeout
        self._session = session or requests.Session()
        if api_key:
            self._session.headers["Authorization"] = f"Bearer {api_key}"

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        resp = self._session.post(
            f"{self.base_url}/embeddings",
            json={"model": self.model_id, "input": list(texts)},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = sorted(resp.json().get("data") or [], key=lambda item: item.get("index", 0))
        return _check_batch([item["embedding"] for item in data], texts, "OpenAI")


class AzureOpenAIEmbedder:
    """Embeddings from an Azure OpenAI deployment; the deployment name is the model id."""

    def __init__(
        self,
        endpoint: str | None,
        api_key: str | None,
        deployment: str | None,
        timeout: float,
        session: requests.Session | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("Azure OpenAI endpoint is not configured")
        if not api_key:
            raise ValueError("Azure OpenAI API key is not configured")
        if not deployment:
            raise ValueError("Azure OpenAI embedding deployment is not configured")
        self.url = (
            f"{endpoint.rstrip('/')}/openai/deployments/{deployment}/embeddings?api-version={AZURE_API_VERSION}"
        )
        self.model_id = deployment
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers["api-key"] = api_key

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        logger.debug("Embedding %s texts with Azure OpenAI deployment %s", len(texts), self.model_id)
        resp = self._session.post(self.url, json={"input": list(texts)}, timeout=self.timeout)
        resp.raise_for_status()
        data = sorted(resp.json().get("data") or [], key=lambda item: item.get("index", 0))
        return _check_batch([item["embedding"] for item in data], texts, "Azure OpenAI")


_EMBEDDERS: dict[str, Callable[[Settings], Embedder]] = {
    "hashed": lambda s: HashedEmbedder(model_name="hashed", dim=s.embedding_dim),
    "ollama": lambda s: OllamaEmbedder(s.ollama_base_url, s.embedding_model, s.http_timeout_seconds),
    "openai": lambda s: OpenAIEmbedder(
        s.openai_base_url, s.openai_api_key, s.embedding_model, s.http_timeout_seconds
    ),
    "azure_openai": lambda s: AzureOpenAIEmbedder(
        s.azure_openai_endpoint, s.azure_openai_api_key, s.azure_embedding_deployment, s.http_timeout_seconds
    ),
}


def create_embedder(settings: Settings) -> Embedder:
    """Select the embedder named by ``settings.embedding_provider``."""
    factory = _EMBEDDERS.get(settings.embedding_provider)
    if factory is None:
        raise ValueError(f"Unknown embedding provider: {settings.embedding_provider}")
    logger.info("Using %s embeddings", settings.embedding_provider)
    return factory(settings)


def _check_batch(vectors: list[list[float]], texts: Sequence[str], provider: str) -> list[list[float]]:
    if len(vectors) != len(texts):
        raise ValueError(f"{provider} returned {len(vectors)} embeddings for {len(texts)} inputs")
    return vectors


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "Embedder",
    "HashedEmbedder",
    "OllamaEmbedder",
    "OpenAIEmbedder",
    "AzureOpenAIEmbedder",
    "create_embedder",
]
