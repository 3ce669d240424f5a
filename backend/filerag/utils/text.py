"""Text processing helpers."""

from __future__ import annotations

import re


INLINE_WHITESPACE_RE = re.compile(r"[ \t]+")
BLANK_LINES_RE = re.compile(r"\n{3,}")


def normalize(text: str) -> str:
    """Collapse spaces/tabs, cap blank-line runs at one empty line, and strip."""
    collapsed = INLINE_WHITESPACE_RE.sub(" ", text)
    collapsed = BLANK_LINES_RE.sub("\n\n", collapsed)
    return collapsed.strip()
