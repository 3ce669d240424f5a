"""Document parsers for supported formats."""

from __future__ import annotations

import html
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import docx
import fitz
import yaml
from markdown_it import MarkdownIt

from filerag.core.config import Settings
from filerag.core.errors import DocumentNotFoundError
from filerag.core.logging import get_logger
from filerag.ingest.types import PageContent, ParsedDocument, ParseMetadata
from filerag.ingest.vision import OllamaVisionExtractor, VisionExtractor

logger = get_logger(__name__)

_MD = MarkdownIt()

_HIDDEN_BLOCK_RE = re.compile(r"<(script|style|noscript)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")
_TITLE_RE = re.compile(r"<title\b[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)
_H1_RE = re.compile(r"<h1\b[^>]*>(.*?)</h1\s*>", re.IGNORECASE | re.DOTALL)
_META_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(r"""([\w:-]+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")


class DocumentParser(Protocol):
    """Capability shared by every parser: extract text from one file."""

    extensions: tuple[str, ...]

    def parse(self, path: Path) -> ParsedDocument:
        """Return the extracted text of ``path``."""


class TextParser:
    extensions = (".txt", ".text", ".log")

    def parse(self, path: Path) -> ParsedDocument:
        _require_file(path)
        text = path.read_bytes().decode("utf-8", errors="ignore")
        return ParsedDocument(content=text, metadata=ParseMetadata(title=path.stem))


class MarkdownParser:
    extensions = (".md", ".markdown")

    def parse(self, path: Path) -> ParsedDocument:
        _require_file(path)
        text = path.read_bytes().decode("utf-8", errors="ignore")
        front_matter, body = _split_front_matter(text)
        metadata = ParseMetadata(title=path.stem)
        if front_matter:
            metadata.title = str(front_matter.get("title") or path.stem)
            author = front_matter.get("author")
            metadata.author = str(author) if author else None
            metadata.created_date = _to_datetime(front_matter.get("created") or front_matter.get("date"))
        return ParsedDocument(content=_markdown_to_text(body), metadata=metadata)


class PdfParser:
    """PDF text extraction; every PDF page becomes one page segment."""

    extensions = (".pdf",)

    def parse(self, path: Path) -> ParsedDocument:
        _require_file(path)
        with fitz.open(path) as doc:
            pages = [
                PageContent(page_number=number, content=page.get_text("text", sort=True))
                for number, page in enumerate(doc, start=1)
            ]
            info = doc.metadata or {}
        metadata = ParseMetadata(
            title=info.get("title") or path.stem,
            author=info.get("author") or None,
            created_date=_pdf_date(info.get("creationDate")),
            page_count=len(pages),
        )
        content = "\n\n".join(page.content for page in pages)
        return ParsedDocument(content=content, pages=pages, metadata=metadata)


class DocxParser:
    extensions = (".docx",)

    def parse(self, path: Path) -> ParsedDocument:
        _require_file(path)
        document = docx.Document(str(path))
        paragraphs = [para.text for para in document.paragraphs if para.text.strip()]
        core = document.core_properties
        metadata = ParseMetadata(
            title=core.title or path.stem,
            author=core.author or None,
            created_date=core.created,
        )
        return ParsedDocument(content="\n".join(paragraphs), metadata=metadata)


class HtmlParser:
    """Visible page text; script, style and noscript blocks are dropped."""

    extensions = (".html", ".htm")

    def parse(self, path: Path) -> ParsedDocument:
        _require_file(path)
        markup = path.read_bytes().decode("utf-8", errors="ignore")
        body = _HIDDEN_BLOCK_RE.sub(" ", _COMMENT_RE.sub(" ", markup))
        metadata = ParseMetadata(title=_html_title(body), created_date=_ctime(path))
        return ParsedDocument(content=_html_to_text(body), metadata=metadata)


class ImageParser:
    """Indexes an image as the text and caption a vision model sees in it."""

    extensions = (".png", ".jpg", ".jpeg", ".webp")

    def __init__(self, vision: VisionExtractor) -> None:
        self.vision = vision

    def parse(self, path: Path) -> ParsedDocument:
        _require_file(path)
        logger.debug("Parsing image: %s", path)
        extracted = self.vision.extract(path.read_bytes(), path.name)
        metadata = ParseMetadata(title=path.name, created_date=_ctime(path))
        if extracted.is_empty:
            return ParsedDocument(content="", metadata=metadata)

        sections = [f"Image: {path.name}"]
        if extracted.extracted_text.strip():
            sections.append("Extracted text:\n" + extracted.extracted_text.strip())
        if extracted.description.strip():
            sections.append("Description:\n" + extracted.description.strip())
        return ParsedDocument(content="\n\n".join(sections), metadata=metadata)


class ParserRegistry:
    """Registry that selects a parser by file extension."""

    def __init__(self, parsers: list[DocumentParser] | None = None) -> None:
        self._by_extension: dict[str, DocumentParser] = {}
        for parser in parsers if parsers is not None else _default_parsers():
            self.register(parser)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ParserRegistry":
        """Default parsers plus image support through the configured vision model."""
        return cls(_default_parsers() + [ImageParser(OllamaVisionExtractor.from_settings(settings))])

    def register(self, parser: DocumentParser) -> None:
        for extension in parser.extensions:
            self._by_extension[extension.lower()] = parser

    def can_parse(self, extension: str) -> bool:
        return self.for_extension(extension) is not None

    def for_extension(self, extension: str) -> DocumentParser | None:
        return self._by_extension.get(extension.lower())

    def for_path(self, path: Path) -> DocumentParser | None:
        return self.for_extension(path.suffix)

    def parse(self, path: Path) -> ParsedDocument:
        parser = self.for_path(path)
        if parser is None:
            raise ValueError(f"No parser registered for suffix {path.suffix}")
        return parser.parse(path)


def _default_parsers() -> list[DocumentParser]:
    return [TextParser(), MarkdownParser(), PdfParser(), DocxParser(), HtmlParser()]


def _require_file(path: Path) -> None:
    if not path.is_file():
        raise DocumentNotFoundError(f"File not found: {path}")


def _split_front_matter(text: str) -> tuple[dict[str, Any] | None, str]:
    if text.startswith("---"):
        parts = text.split("---", 2)
        if len(parts) >= 3:
            try:
                front_matter = yaml.safe_load(parts[1]) or {}
            except yaml.YAMLError:
                logger.debug("Ignoring malformed front matter")
                return None, text
            if isinstance(front_matter, dict):
                return front_matter, parts[2]
    return None, text


def _markdown_to_text(text: str) -> str:
    tokens = _MD.parse(text)
    parts: list[str] = []
    for token in tokens:
        content = token.content.strip()
        if content:
            parts.append(content)
    return "\n\n".join(parts) if parts else text


def _html_to_text(markup: str) -> str:
    text = html.unescape(_TAG_RE.sub(" ", markup))
    return _SPACE_RE.sub(" ", text).strip()


def _html_title(markup: str) -> str | None:
    # <title>, then og:title, then the first <h1>
    match = _TITLE_RE.search(markup)
    if match:
        return _html_to_text(match.group(1)) or None
    for tag in _META_RE.findall(markup):
        attrs = {name.lower(): dq or sq for name, dq, sq in _ATTR_RE.findall(tag)}
        if attrs.get("property", "").lower() == "og:title" and attrs.get("content"):
            return html.unescape(attrs["content"])
    match = _H1_RE.search(markup)
    if match:
        return _html_to_text(match.group(1)) or None
    return None


def _ctime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_ctime, tz=timezone.utc)


def _to_datetime(value: object | None) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def _pdf_date(value: str | None) -> datetime | None:
    # PDF dates look like "D:20240131120000+01'00'"
    if not value:
        return None
    digits = value[2:16] if value.startswith("D:") else value[:14]
    try:
        return datetime.strptime(digits, "%Y%m%d%H%M%S")
    except ValueError:
        return None


__all__ = [
    "DocumentParser",
    "TextParser",
    "MarkdownParser",
    "PdfParser",
    "DocxParser",
    "HtmlParser",
    "ImageParser",
    "ParserRegistry",
]
