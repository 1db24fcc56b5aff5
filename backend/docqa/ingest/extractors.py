"""Text extractors for the supported upload formats."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Iterable

import fitz
import yaml
from docx import Document as DocxDocument
from markdown_it import MarkdownIt

from docqa.core.errors import EmptyContentError, ExtractionError, UnsupportedTypeError
from docqa.utils.text import normalize

_MD = MarkdownIt()

PAGE_SEPARATOR = "\n"


@dataclass(slots=True)
class PageSpan:
    """Character range ``[start_char, end_char)`` of one source page in the full text."""

    page_number: int
    start_char: int
    end_char: int


@dataclass(slots=True)
class ExtractedText:
    full_text: str
    page_spans: list[PageSpan] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.page_spans)


def stitch_pages(pages: Iterable[tuple[int, str]]) -> ExtractedText:
    """Join trimmed, non-blank pages with a single separator and record their spans.

    Each span covers its page text plus the trailing separator, so spans are
    contiguous over the joined text.
    """
    cursor = 0
    spans: list[PageSpan] = []
    stitched: list[str] = []
    for page_number, text in pages:
        trimmed = text.strip()
        if not trimmed:
            continue
        start = cursor
        stitched.append(trimmed)
        cursor += len(trimmed) + len(PAGE_SEPARATOR)
        spans.append(PageSpan(page_number=page_number, start_char=start, end_char=cursor))
    return ExtractedText(full_text=PAGE_SEPARATOR.join(stitched), page_spans=spans)


class BaseExtractor:
    """Common extractor interface."""

    name: str = "base"
    suffixes: tuple[str, ...] = ()
    mime_types: tuple[str, ...] = ()

    def extract(self, raw: bytes) -> ExtractedText:
        try:
            extracted = self._extract(raw)
        except (EmptyContentError, ExtractionError):
            raise
        except Exception as exc:
            raise ExtractionError(f"Could not parse {self.name} content: {exc}") from exc
        if not extracted.full_text:
            raise EmptyContentError(f"{self.name} document contains no extractable text")
        return extracted

    def _extract(self, raw: bytes) -> ExtractedText:  # pragma: no cover - interface
        raise NotImplementedError


class PDFExtractor(BaseExtractor):
    name = "pdf"
    suffixes = (".pdf",)
    mime_types = ("application/pdf",)

    def _extract(self, raw: bytes) -> ExtractedText:
        with fitz.open(stream=raw, filetype="pdf") as doc:
            pages = [(index + 1, page.get_text("text", sort=True)) for index, page in enumerate(doc)]
        return stitch_pages(pages)


class PlainTextExtractor(BaseExtractor):
    name = "text"
    suffixes = (".txt", ".text")
    mime_types = ("text/plain",)

    def _extract(self, raw: bytes) -> ExtractedText:
        return stitch_pages([(1, raw.decode("utf-8", errors="ignore"))])


class MarkdownExtractor(BaseExtractor):
    name = "markdown"
    suffixes = (".md", ".markdown")
    mime_types = ("text/markdown", "text/x-markdown")

    def _extract(self, raw: bytes) -> ExtractedText:
        text = raw.decode("utf-8", errors="ignore")
        body = _strip_front_matter(text)
        return stitch_pages([(1, _markdown_to_text(body))])


class DocxExtractor(BaseExtractor):
    name = "docx"
    suffixes = (".docx",)
    mime_types = ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",)

    def _extract(self, raw: bytes) -> ExtractedText:
        document = DocxDocument(io.BytesIO(raw))
        paragraphs = [para.text for para in document.paragraphs if para.text.strip()]
        return stitch_pages([(1, "\n".join(paragraphs))])


class ExtractorRegistry:
    """Capability lookup from declared MIME type or filename extension to extractor."""

    def __init__(self, extractors: Iterable[BaseExtractor] | None = None) -> None:
        self._extractors: list[BaseExtractor] = list(
            extractors
            if extractors is not None
            else (PDFExtractor(), PlainTextExtractor(), MarkdownExtractor(), DocxExtractor())
        )

    def register(self, extractor: BaseExtractor) -> None:
        self._extractors.append(extractor)

    def for_document(self, mime_type: str | None, filename: str | None) -> BaseExtractor:
        mime = (mime_type or "").split(";", 1)[0].strip().lower()
        if mime:
            for extractor in self._extractors:
                if mime in extractor.mime_types:
                    return extractor
        suffix = PurePosixPath(filename or "").suffix.lower()
        if suffix:
            for extractor in self._extractors:
                if suffix in extractor.suffixes:
                    return extractor
        raise UnsupportedTypeError(f"Unsupported file type. mimeType={mime_type} filename={filename}")

    def extract(self, raw: bytes, mime_type: str | None, filename: str | None) -> ExtractedText:
        return self.for_document(mime_type, filename).extract(raw)


def _strip_front_matter(text: str) -> str:
    if text.startswith("---"):
        parts = text.split("---", 2)
        if len(parts) >= 3:
            try:
                front_matter = yaml.safe_load(parts[1])
            except yaml.YAMLError:
                return text
            if isinstance(front_matter, dict):
                return parts[2]
    return text


def _markdown_to_text(text: str) -> str:
    tokens = _MD.parse(text)
    parts: list[str] = []
    for token in tokens:
        content = token.content.strip()
        if content:
            parts.append(content)
    return "\n".join(parts) if parts else normalize(text)


__all__ = [
    "PAGE_SEPARATOR",
    "PageSpan",
    "ExtractedText",
    "stitch_pages",
    "BaseExtractor",
    "PDFExtractor",
    "PlainTextExtractor",
    "MarkdownExtractor",
    "DocxExtractor",
    "ExtractorRegistry",
]
