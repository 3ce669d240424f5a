"""Image understanding through an Ollama vision model."""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from typing import Protocol

import requests

from filerag.core.config import Settings
from filerag.core.logging import get_logger

logger = get_logger(__name__)

VISION_PROMPT = (
    "You are helping index an internal knowledge base.\n"
    "Task:\n"
    "1) Extract any visible text exactly as it appears.\n"
    "2) Provide a short description of what the image shows.\n"
    "Rules:\n"
    "- Preserve the original language for extracted text.\n"
    "- Write the description in English.\n"
    "- Output MUST follow this format:\n"
    "TEXT:\n"
    "<text>\n"
    "\n"
    "DESCRIPTION:\n"
    "<one paragraph>\n"
)

_SECTIONS_RE = re.compile(r"TEXT:\s*(?P<text>.*?)\s*DESCRIPTION:\s*(?P<desc>.*)\s*$", re.IGNORECASE | re.DOTALL)


@dataclass(slots=True)
class VisionText:
    extracted_text: str = ""
    description: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.extracted_text.strip() and not self.description.strip()


class VisionExtractor(Protocol):
    def extract(self, image: bytes, file_name: str | None = None) -> VisionText:
        ...


class OllamaVisionExtractor:
    """Asks a vision-capable chat model (e.g. llava) for visible text and a caption."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float,
        enabled: bool = True,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.enabled = enabled
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "OllamaVisionExtractor":
        return cls(
            settings.vision_base_url or settings.ollama_base_url,
            settings.vision_model,
            settings.http_timeout_seconds,
            enabled=settings.vision_enabled,
        )

    def extract(self, image: bytes, file_name: str | None = None) -> VisionText:
        if not self.enabled:
            return VisionText()
        prompt = VISION_PROMPT
        if file_name:
            prompt += f"\nFile name: {file_name}\n"
        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": prompt,
                    "images": [base64.b64encode(image).decode("ascii")],
                }
            ],
            "stream": False,
            "options": {"temperature": 0.1, "num_predict": 600},
        }
        logger.debug("Extracting text and description from image using model %s", self.model)
        resp = self._session.post(f"{self.base_url}/api/chat", json=payload, timeout=self.timeout)
        resp.raise_for_status()
        content = str((resp.json().get("message") or {}).get("content") or "")
        result = parse_vision_reply(content)
        logger.debug(
            "Vision model returned %s chars of text and %s chars of description",
            len(result.extracted_text),
            len(result.description),
        )
        return result


def parse_vision_reply(raw: str) -> VisionText:
    """Split a ``TEXT:``/``DESCRIPTION:`` reply; anything else counts as description."""
    raw = raw.strip()
    if not raw:
        return VisionText()
    match = _SECTIONS_RE.search(raw)
    if match:
        return VisionText(extracted_text=match.group("text").strip(), description=match.group("desc").strip())
    return VisionText(description=raw)


__all__ = ["VisionText", "VisionExtractor", "OllamaVisionExtractor", "parse_vision_reply"]
