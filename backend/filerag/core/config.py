"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "FRAG_"
DEFAULT_CONFIG_PATH = Path("~/.config/filerag/config.yaml")

DEFAULT_EXTENSIONS = [
    ".pdf",
    ".docx",
    ".txt",
    ".md",
    ".markdown",
    ".html",
    ".htm",
    ".png",
    ".jpg",
    ".jpeg",
    ".webp",
]

DEFAULT_INJECTION_PHRASES = [
    "ignore previous instructions",
    "disregard all prior",
    "system:",
]

DEFAULT_OUTPUT_SCRUB_PATTERNS = [
    r"(?i)\s*\[(?:sources?\s*)?\d+(?:\s*,\s*\d+)*\]",
    r"(?i)\s*\(sources?\s*\d+(?:\s*,\s*\d+)*\)",
    r"(?i)\b(?:according to|based on|as stated in|as mentioned in)\s+the\s+(?:provided\s+|given\s+|retrieved\s+)?(?:context|documents?|sources?|information)\s*,?\s*",
    r"(?i)\bthe\s+(?:provided\s+|given\s+|retrieved\s+)?(?:context|documents?|sources?)\s+(?:says?|states?|mentions?|indicates?)\s+(?:that\s+)?",
]

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer the user's question using only the information "
    "you are given. If that information does not contain the answer, say that you do not know. "
    "Answer directly and naturally: never mention documents, sources, context, excerpts or "
    "numbered references, and never describe how the information was found."
)

DEFAULT_NO_RESULTS_ANSWER = (
    "I couldn't find any relevant information in the indexed documents to answer your question. "
    "Please try rephrasing your question or ensure the relevant documents have been indexed."
)

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("storage", "vector_store"): "vector_store",
    ("qdrant", "url"): "qdrant_url",
    ("qdrant", "collection"): "qdrant_collection",
    ("qdrant", "vector_size"): "qdrant_vector_size",
    ("qdrant", "api_key"): "qdrant_api_key",
    ("embeddings", "provider"): "embedding_provider",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("llm", "provider"): "llm_provider",
    ("llm", "model"): "llm_model",
    ("ollama", "base_url"): "ollama_base_url",
    ("openai", "base_url"): "openai_base_url",
    ("openai", "api_key"): "openai_api_key",
    ("anthropic", "base_url"): "anthropic_base_url",
    ("anthropic", "api_key"): "anthropic_api_key",
    ("azure_openai", "endpoint"): "azure_openai_endpoint",
    ("azure_openai", "api_key"): "azure_openai_api_key",
    ("azure_openai", "embedding_deployment"): "azure_embedding_deployment",
    ("azure_openai", "llm_deployment"): "azure_llm_deployment",
    ("vision", "enabled"): "vision_enabled",
    ("vision", "base_url"): "vision_base_url",
    ("vision", "model"): "vision_model",
    ("chunking", "size"): "chunk_size",
    ("chunking", "overlap"): "chunk_overlap",
    ("watcher", "enabled"): "watch_enabled",
    ("watcher", "path"): "watch_path",
    ("watcher", "recursive"): "watch_recursive",
    ("watcher", "extensions"): "supported_extensions",
    ("watcher", "debounce_ms"): "debounce_ms",
    ("watcher", "poll_interval_ms"): "poll_interval_ms",
    ("watcher", "removal_queue_size"): "removal_queue_size",
    ("rag", "top_k"): "default_top_k",
    ("rag", "temperature"): "default_temperature",
    ("rag", "max_tokens"): "default_max_tokens",
    ("rag", "min_relevance_score"): "min_relevance_score",
    ("rag", "system_prompt"): "system_prompt",
    ("rag", "no_results_answer"): "no_results_answer",
    ("guardrails", "max_query_length"): "max_query_length",
    ("guardrails", "injection_phrases"): "injection_phrases",
    ("guardrails", "output_scrub_patterns"): "output_scrub_patterns",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path.home() / ".filerag" / "index.db")
    vector_store: str = "sqlite"
    qdrant_url: str = "http://localhost:6333"
    qdrant_collection: str = "documents"
    qdrant_vector_size: int = Field(default=384, gt=0)
    qdrant_api_key: str | None = None

    embedding_provider: str = "hashed"
    embedding_model: str = "nomic-embed-text"
    embedding_dim: int = Field(default=384, gt=0)
    llm_provider: str = "ollama"
    llm_model: str = "llama3.2"
    ollama_base_url: str = "http://localhost:11434"
    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str | None = None
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    anthropic_api_key: str | None = None
    azure_openai_endpoint: str | None = None
    azure_openai_api_key: str | None = None
    azure_embedding_deployment: str | None = None
    azure_llm_deployment: str | None = None
    http_timeout_seconds: float = Field(default=60.0, gt=0)

    vision_enabled: bool = False
    vision_base_url: str | None = None
    vision_model: str = "llava"

    chunk_size: int = Field(default=1500, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)

    watch_enabled: bool = True
    watch_path: Path = Field(default=Path("./data/documents"))
    watch_recursive: bool = True
    supported_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    debounce_ms: int = Field(default=500, ge=0)
    poll_interval_ms: int = Field(default=100, gt=0)
    removal_queue_size: int = Field(default=256, gt=0)

    default_top_k: int = Field(default=5, gt=0)
    default_temperature: float = Field(default=0.2, ge=0.0)
    default_max_tokens: int = Field(default=512, gt=0)
    min_relevance_score: float = Field(default=0.0, ge=0.0, le=1.0)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    no_results_answer: str = DEFAULT_NO_RESULTS_ANSWER

    max_query_length: int = Field(default=4000, gt=0)
    injection_phrases: list[str] = Field(default_factory=lambda: list(DEFAULT_INJECTION_PHRASES))
    output_scrub_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_OUTPUT_SCRUB_PATTERNS))

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", "watch_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("path settings must be a path or string")

    @field_validator("supported_extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            value = value.split(",")
        extensions: list[str] = []
        for item in value:
            ext = str(item).strip().lower()
            if not ext:
                continue
            if not ext.startswith("."):
                ext = f".{ext}"
            if ext not in extensions:
                extensions.append(ext)
        return extensions

    @field_validator("injection_phrases", "output_scrub_patterns", mode="before")
    @classmethod
    def _split_list(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            return [part for part in value.split("||") if part]
        return value

    @field_validator("vector_store", "embedding_provider", "llm_provider")
    @classmethod
    def _lower_provider(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def _check_overlap(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        return self

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with FRAG_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings"]
