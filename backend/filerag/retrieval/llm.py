"""Chat completion providers."""

from __future__ import annotations

from typing import Any, Callable, Protocol

import requests

from filerag.core.config import Settings
from filerag.core.logging import get_logger

logger = get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
AZURE_API_VERSION = "2024-02-01"


class LlmProvider(Protocol):
    """Single-shot text generation from a system and a user prompt."""

    model_id: str

    def generate(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        ...


class OllamaLlm:
    """Non-streaming ``/api/chat`` calls against an Ollama server."""

    def __init__(self, base_url: str, model: str, timeout: float, session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.model_id = model
        self.timeout = timeout
        self._session = session or requests.Session()

    def generate(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        payload = {
            "model": self.model_id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        data = _post(self._session, f"{self.base_url}/api/chat", payload, self.timeout)
        return str((data.get("message") or {}).get("content") or "")


class OpenAILlm:
    """OpenAI-compatible ``/chat/completions``."""

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

    def generate(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        payload = {
            "model": self.model_id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        data = _post(self._session, f"{self.base_url}/chat/completions", payload, self.timeout)
        choices = data.get("choices") or []
        if not choices:
            return ""
        return str((choices[0].get("message") or {}).get("content") or "")


class AnthropicLlm:
    """Anthropic ``/messages``; the system prompt travels outside the message list."""

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
        self._session.headers["anthropic-version"] = ANTHROPIC_VERSION
        if api_key:
            self._session.headers["x-api-key"] = api_key

    def generate(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        payload = {
            "model": self.model_id,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        data = _post(self._session, f"{self.base_url}/messages", payload, self.timeout)
        parts = [block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text"]
        return "".join(parts)


class AzureOpenAILlm:
    """Chat completions against an Azure OpenAI deployment."""

    def __init__(
        self,
        endpoint: str | None,
        api_key: str | None,
        deployment: str | None,
        timeout: float,
        session: requests.Session | None = None,
    ) -> None:
        if not endpoint or not api_key or not deployment:
            raise ValueError("Azure OpenAI LLM is not configured (endpoint, api_key and llm_deployment are required)")
        self.url = (
            f"{endpoint.rstrip('/')}/openai/deployments/{deployment}/chat/completions"
            f"?api-version={AZURE_API_VERSION}"
        )
        self.model_id = deployment
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers["api-key"] = api_key

    def generate(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        payload = {
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        logger.debug("Generating response with Azure OpenAI deployment %s", self.model_id)
        data = _post(self._session, self.url, payload, self.timeout)
        choices = data.get("choices") or []
        if not choices:
            raise ValueError("Azure OpenAI returned no choices")
        return str((choices[0].get("message") or {}).get("content") or "")


_PROVIDERS: dict[str, Callable[[Settings], LlmProvider]] = {
    "ollama": lambda s: OllamaLlm(s.ollama_base_url, s.llm_model, s.http_timeout_seconds),
    "openai": lambda s: OpenAILlm(s.openai_base_url, s.openai_api_key, s.llm_model, s.http_timeout_seconds),
    "anthropic": lambda s: AnthropicLlm(
        s.anthropic_base_url, s.anthropic_api_key, s.llm_model, s.http_timeout_seconds
    ),
    "azure_openai": lambda s: AzureOpenAILlm(
        s.azure_openai_endpoint, s.azure_openai_api_key, s.azure_llm_deployment, s.http_timeout_seconds
    ),
}


def create_llm(settings: Settings) -> LlmProvider:
    """Select the LLM provider named by ``settings.llm_provider``."""
    factory = _PROVIDERS.get(settings.llm_provider)
    if factory is None:
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")
    logger.info("Using %s LLM provider with model %s", settings.llm_provider, settings.llm_model)
    return factory(settings)


def _post(session: requests.Session, url: str, payload: dict[str, Any], timeout: float) -> dict[str, Any]:
    resp = session.post(url, json=payload, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


__all__ = ["LlmProvider", "OllamaLlm", "OpenAILlm", "AnthropicLlm", "AzureOpenAILlm", "create_llm"]
