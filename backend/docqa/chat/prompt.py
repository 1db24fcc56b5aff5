"""Prompt construction for grounded answers."""

from __future__ import annotations

from typing import Sequence

from docqa.chat.llm import ChatMessage
from docqa.models.entities import RankedChunk

SYSTEM_PROMPT = (
    "You answer ONLY using the provided context below.\n"
    "If the answer is not explicitly in the context, say you don't know.\n"
    "Do not hallucinate or make up information.\n"
    "Answer concisely and directly."
)


def format_chunk(chunk: RankedChunk) -> str:
    page_info = f" page={','.join(str(page) for page in chunk.pages)}" if chunk.pages else ""
    return (
        f"[CHUNK chunkId={chunk.chunk_id} documentId={chunk.document_id}{page_info}]\n"
        f"{chunk.content}\n"
        "[/CHUNK]"
    )


def build_rag_prompt(chunks: Sequence[RankedChunk], question: str) -> list[ChatMessage]:
    """System instruction plus one user turn holding the labelled context and the question."""
    context = "\n\n".join(format_chunk(chunk) for chunk in chunks)
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": f"Context:\n{context}\n\nQuestion: {question}"},
    ]


__all__ = ["SYSTEM_PROMPT", "build_rag_prompt", "format_chunk"]
