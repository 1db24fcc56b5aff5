"""Chunking utilities."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from docqa.ingest.extractors import PageSpan

# Rough token approximation used for chunk sizing; no tokenizer involved.
CHARS_PER_TOKEN = 4


@dataclass(slots=True)
class TextChunk:
    """Trimmed chunk text plus the untrimmed window ``[start_char, end_char)``."""

    text: str
    start_char: int
    end_char: int


@dataclass(slots=True)
class ChunkRecord:
    """Chunk ready for embedding and persistence."""

    chunk_index: int
    content: str
    start_char: int
    end_char: int
    pages: list[int] = field(default_factory=list)


def chunk_text(
    text: str,
    target_tokens: int = 800,
    overlap_tokens: int = 120,
    chars_per_token: int = CHARS_PER_TOKEN,
) -> list[TextChunk]:
    """Split text into fixed-size overlapping windows.

    Windows are ``target_tokens * chars_per_token`` characters long and
    consecutive windows share ``overlap_tokens * chars_per_token``
    characters. Whitespace-only windows are skipped.
    """
    if target_tokens <= 0 or chars_per_token <= 0:
        raise ValueError("target_tokens and chars_per_token must be positive")
    if overlap_tokens < 0 or overlap_tokens >= target_tokens:
        raise ValueError("overlap_tokens must be in [0, target_tokens)")

    target_chars = target_tokens * chars_per_token
    overlap_chars = overlap_tokens * chars_per_token
    length = len(text)

    chunks: list[TextChunk] = []
    start = 0
    while start < length:
        end = min(length, start + target_chars)
        window = text[start:end].strip()
        if window:
            chunks.append(TextChunk(text=window, start_char=start, end_char=end))
        if end >= length:
            break
        start = max(0, end - overlap_chars)
    return chunks


def pages_for_span(page_spans: Iterable[PageSpan], start_char: int, end_char: int) -> list[int]:
    """Pages whose span overlaps the half-open range ``[start_char, end_char)``."""
    pages = {
        span.page_number
        for span in page_spans
        if max(start_char, span.start_char) < min(end_char, span.end_char)
    }
    return sorted(pages)


def build_chunk_records(chunks: Sequence[TextChunk], page_spans: Sequence[PageSpan]) -> list[ChunkRecord]:
    """Attach a stable index and citation pages to each chunk."""
    return [
        ChunkRecord(
            chunk_index=index,
            content=chunk.text,
            start_char=chunk.start_char,
            end_char=chunk.end_char,
            pages=pages_for_span(page_spans, chunk.start_char, chunk.end_char),
        )
        for index, chunk in enumerate(chunks)
    ]


__all__ = ["CHARS_PER_TOKEN", "TextChunk", "ChunkRecord", "chunk_text", "pages_for_span", "build_chunk_records"]
