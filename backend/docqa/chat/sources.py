"""Citation selection for grounded answers."""

from __future__ import annotations

from enum import Enum
from typing import Sequence

from docqa.models.dto import ChatSource
from docqa.models.entities import RankedChunk
from docqa.utils.text import first_words

SNIPPET_WORDS = 15
ELLIPSIS = "..."


class SourcePolicy(str, Enum):
    """How many citations an answer may carry.

    ``single`` keeps only the most relevant chunk; ``per_document`` keeps the
    best chunk of each document up to ``max_sources``.
    """

    SINGLE = "single"
    PER_DOCUMENT = "per_document"


def build_snippet(content: str, word_count: int = SNIPPET_WORDS) -> str:
    snippet, truncated = first_words(content, word_count)
    return snippet + ELLIPSIS if truncated else snippet


def select_chunks(
    chunks: Sequence[RankedChunk],
    policy: SourcePolicy = SourcePolicy.SINGLE,
    max_sources: int = 5,
) -> list[RankedChunk]:
    """Pick the chunks to cite; input is assumed to be in relevance order."""
    if policy is SourcePolicy.SINGLE:
        return list(chunks[:1])
    selected: list[RankedChunk] = []
    seen: set[str] = set()
    for chunk in chunks:
        if chunk.document_id in seen:
            continue
        seen.add(chunk.document_id)
        selected.append(chunk)
        if len(selected) >= max_sources:
            break
    return selected


def map_chunks_to_sources(
    chunks: Sequence[RankedChunk],
    policy: SourcePolicy | str = SourcePolicy.SINGLE,
    max_sources: int = 5,
) -> list[ChatSource]:
    return [
        ChatSource(
            document_id=chunk.document_id,
            document_name=chunk.document_name,
            chunk_id=chunk.chunk_id,
            page=chunk.pages[0] if chunk.pages else None,
            snippet=build_snippet(chunk.content),
        )
        for chunk in select_chunks(chunks, SourcePolicy(policy), max_sources)
    ]


__all__ = ["SourcePolicy", "build_snippet", "select_chunks", "map_chunks_to_sources"]
