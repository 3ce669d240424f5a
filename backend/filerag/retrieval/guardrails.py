"""Input and output guardrails for the answer engine."""

from __future__ import annotations

import re
from typing import Iterable

from filerag.core.config import Settings

_MULTISPACE_RE = re.compile(r"[ \t]{2,}")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"[ \t]+([.,;:!?])")


class Guardrails:
    """Query sanitization and answer scrubbing.

    Both entry points return the cleaned text together with a flag telling
    whether anything was altered, so callers can report it.
    """

    def __init__(
        self,
        max_query_length: int,
        injection_phrases: Iterable[str],
        output_scrub_patterns: Iterable[str],
    ) -> None:
        self.max_query_length = max_query_length
        self._injection_res = [
            re.compile(re.escape(phrase), re.IGNORECASE) for phrase in injection_phrases if phrase
        ]
        self._scrub_res = [re.compile(pattern) for pattern in output_scrub_patterns if pattern]

    @classmethod
    def from_settings(cls, settings: Settings) -> "Guardrails":
        return cls(
            max_query_length=settings.max_query_length,
            injection_phrases=settings.injection_phrases,
            output_scrub_patterns=settings.output_scrub_patterns,
        )

    def sanitize_query(self, text: str) -> tuple[str, bool]:
        """Truncate, strip known injection phrases and trim."""
        original = text
        if len(text) > self.max_query_length:
            text = text[: self.max_query_length]
        for pattern in self._injection_res:
            text = pattern.sub("", text)
        text = text.strip()
        return text, text != original

    def sanitize_answer(self, text: str) -> tuple[str, bool]:
        """Remove citation markers and phrases that expose retrieval internals."""
        original = text
        text = text.strip()
        scrubbed = text
        for pattern in self._scrub_res:
            scrubbed = pattern.sub("", scrubbed)
        if scrubbed != text:
            scrubbed = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", scrubbed)
            scrubbed = _MULTISPACE_RE.sub(" ", scrubbed).strip()
            if scrubbed and scrubbed[0].islower():
                scrubbed = scrubbed[0].upper() + scrubbed[1:]
            text = scrubbed
        return text, text != original


__all__ = ["Guardrails"]
