"""Question-to-chunk retrieval."""

from __future__ import annotations

import time

from docqa.core.logging import get_logger, log_context
from docqa.core.metrics import ANSWER_LATENCY
from docqa.db.chunk_store import ChunkStore
from docqa.ingest.embeddings import EmbeddingClient
from docqa.models.entities import RankedChunk

logger = get_logger(__name__)

DEFAULT_LIMIT = 5


class Retriever:
    """Embeds a question and returns the owner's closest chunks."""

    def __init__(self, embedding_client: EmbeddingClient, chunk_store: ChunkStore) -> None:
        self.embedding_client = embedding_client
        self.chunk_store = chunk_store

    def retrieve(self, question: str, user_id: str, limit: int = DEFAULT_LIMIT) -> list[RankedChunk]:
        start_time = time.perf_counter()
        query_vector = self.embedding_client.embed_one(question)
        hits = self.chunk_store.nearest(query_vector, owner_id=user_id, limit=limit)
        ANSWER_LATENCY.labels(stage="retrieve").observe(time.perf_counter() - start_time)
        logger.debug(
            "Retrieved chunks",
            extra=log_context(
                user_id=user_id,
                hits=len(hits),
                top_similarity=round(hits[0].similarity, 4) if hits else None,
            ),
        )
        return hits


__all__ = ["Retriever", "DEFAULT_LIMIT"]
