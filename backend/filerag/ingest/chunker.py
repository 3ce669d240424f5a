"""Chunking utilities."""

from __future__ import annotations

from typing import Iterator, Sequence

from filerag.core.errors import ValidationError
from filerag.ingest.types import PageContent, ParsedDocument, TextChunk
from filerag.utils.text import normalize

_SENTENCE_ENDERS = frozenset(".!?\n")
_LOOKBACK_CHARS = 200


def chunk_text(text: str, chunk_size: int, overlap: int) -> list[TextChunk]:
    """Split text into overlapping chunks, preferring sentence then word breaks."""
    _validate(chunk_size, overlap)
    if not text or not text.strip():
        return []

    normalized = normalize(text)
    return [
        TextChunk(content=content, index=index, start_position=start, end_position=end)
        for index, (start, end, content) in enumerate(_split(normalized, chunk_size, overlap))
    ]


def chunk_document(document: ParsedDocument, chunk_size: int, overlap: int) -> list[TextChunk]:
    """Chunk a parsed document, page by page when page segments are available."""
    _validate(chunk_size, overlap)
    if document.pages:
        return _chunk_pages(document.pages, chunk_size, overlap)
    return chunk_text(document.content, chunk_size, overlap)


def _chunk_pages(pages: Sequence[PageContent], chunk_size: int, overlap: int) -> list[TextChunk]:
    chunks: list[TextChunk] = []
    global_offset = 0
    for page in pages:
        raw = page.content or ""
        if raw.strip():
            for start, end, content in _split(normalize(raw), chunk_size, overlap):
                chunks.append(
                    TextChunk(
                        content=content,
                        index=len(chunks),
                        start_position=global_offset + start,
                        end_position=global_offset + end,
                        page_number=page.page_number,
                    )
                )
        # Offsets of later pages are relative to the concatenated raw page texts.
        global_offset += len(raw)
    return chunks


def _split(text: str, chunk_size: int, overlap: int) -> Iterator[tuple[int, int, str]]:
    """Yield ``(start, end, content)`` for each non-empty chunk of normalized text."""
    length = len(text)
    position = 0
    while position < length:
        end = min(position + chunk_size, length)
        if end < length:
            end = _find_break_point(text, position, end)

        content = text[position:end].strip()
        if content:
            yield position, end, content

        if end >= length:
            break

        advance = end - position - overlap
        if advance <= 0:
            advance = max(1, end - position)
        position += advance


def _find_break_point(text: str, start: int, ideal_end: int) -> int:
    search_start = max(start, ideal_end - _LOOKBACK_CHARS)

    for i in range(ideal_end - 1, search_start - 1, -1):
        if text[i] in _SENTENCE_ENDERS and (i + 1 >= len(text) or text[i + 1].isspace()):
            return i + 1

    for i in range(ideal_end - 1, search_start - 1, -1):
        if text[i].isspace():
            return i + 1

    return ideal_end


def _validate(chunk_size: int, overlap: int) -> None:
    if chunk_size <= 0:
        raise ValidationError("chunk_size must be positive")
    if overlap < 0:
        raise ValidationError("overlap cannot be negative")
    if overlap >= chunk_size:
        raise ValidationError("overlap must be less than chunk_size")


__all__ = ["chunk_text", "chunk_document"]
