"""Chunk persistence and owner-scoped similarity search."""

from __future__ import annotations

import math
import sqlite3
from typing import Sequence

import orjson

from docqa.core.errors import CountMismatchError
from docqa.core.logging import get_logger, log_context
from docqa.db.sqlite import SQLiteDatabase
from docqa.ingest.chunker import ChunkRecord
from docqa.ingest.embeddings import bytes_to_vector, vector_to_bytes
from docqa.models.entities import AttemptStatus, DocumentChunk, RankedChunk
from docqa.utils.ids import new_id
from docqa.utils.time import now_ms

logger = get_logger(__name__)


class ChunkStore:
    """Stores chunk rows with their embedding vectors.

    Writes are scoped to one ingestion attempt and replace whatever that
    attempt wrote before, so a redelivered message never duplicates chunks.
    """

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def replace_attempt_chunks(
        self,
        document_id: str,
        attempt_id: str,
        records: Sequence[ChunkRecord],
        vectors: Sequence[Sequence[float]],
    ) -> list[str] | None:
        """Write the attempt's chunks; ``None`` when the attempt is missing or terminal.

        Terminal attempts are never rewritten, so nothing is written when
        another delivery finished or failed the attempt in the meantime.
        """
        if len(vectors) != len(records):
            raise CountMismatchError(
                f"Embedding count mismatch: vectors={len(vectors)} chunks={len(records)}"
            )
        now = now_ms()
        rows = [
            (
                new_id("chk"),
                document_id,
                attempt_id,
                record.chunk_index,
                record.content,
                orjson.dumps(record.pages).decode("utf-8"),
                vector_to_bytes(vector),
                len(vector),
                now,
            )
            for record, vector in zip(records, vectors)
        ]
        with self.db.transaction(immediate=True) as cursor:
            current = cursor.execute(
                "SELECT status FROM ingestion_attempts WHERE id = ?",
                [attempt_id],
            ).fetchone()
            if current is None or AttemptStatus(current["status"]).is_terminal:
                logger.info(
                    "Attempt closed, chunks not written",
                    extra=log_context(attempt_id=attempt_id, status=current["status"] if current else None),
                )
                return None
            deleted = cursor.execute(
                "DELETE FROM document_chunks WHERE attempt_id = ?",
                [attempt_id],
            ).rowcount
            cursor.executemany(
                """
                INSERT INTO document_chunks (
                  id, document_id, attempt_id, chunk_index, content, pages_json, embedding, dim, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        if deleted:
            logger.info(
                "Replaced stale chunks from an earlier run",
                extra=log_context(attempt_id=attempt_id, deleted=deleted),
            )
        return [row[0] for row in rows]

    def delete_superseded(self, cursor: sqlite3.Cursor, document_id: str, attempt_id: str) -> int:
        """Drop chunks written by other attempts of the same document."""
        return cursor.execute(
            "DELETE FROM document_chunks WHERE document_id = ? AND attempt_id != ?",
            [document_id, attempt_id],
        ).rowcount

    def delete_for_attempt(self, cursor: sqlite3.Cursor, attempt_id: str) -> int:
        return cursor.execute(
            "DELETE FROM document_chunks WHERE attempt_id = ?",
            [attempt_id],
        ).rowcount

    def count_for_attempt(self, attempt_id: str) -> int:
        row = self.db.execute(
            "SELECT COUNT(*) AS count FROM document_chunks WHERE attempt_id = ?",
            [attempt_id],
        ).fetchone()
        return int(row["count"]) if row else 0

    def list_for_attempt(self, attempt_id: str) -> list[DocumentChunk]:
        rows = self.db.query(
            """
            SELECT id, document_id, attempt_id, chunk_index, content, pages_json
            FROM document_chunks
            WHERE attempt_id = ?
            ORDER BY chunk_index ASC
            """,
            [attempt_id],
        )
        return [DocumentChunk.from_row(row) for row in rows]

    def nearest(self, query_vector: Sequence[float], owner_id: str, limit: int = 5) -> list[RankedChunk]:
        """Top ``limit`` embedded chunks of the owner's documents by cosine similarity.

        Ties keep insertion order.
        """
        if limit <= 0:
            return []
        rows = self.db.query(
            """
            SELECT
              c.id,
              c.document_id,
              d.filename AS document_name,
              c.content,
              c.pages_json,
              c.embedding
            FROM document_chunks c
            JOIN documents d ON d.id = c.document_id
            WHERE d.owner_id = ? AND c.embedding IS NOT NULL
            ORDER BY c.rowid ASC
            """,
            [owner_id],
        )
        query_norm = _norm(query_vector)
        scored: list[RankedChunk] = []
        skipped = 0
        for row in rows:
            vector = bytes_to_vector(row["embedding"])
            if len(vector) != len(query_vector):
                skipped += 1
                continue
            scored.append(
                RankedChunk(
                    chunk_id=row["id"],
                    document_id=row["document_id"],
                    document_name=row["document_name"],
                    content=row["content"],
                    pages=orjson.loads(row["pages_json"]) if row["pages_json"] else [],
                    similarity=cosine_similarity(query_vector, vector, query_norm),
                )
            )
        if skipped:
            logger.warning(
                "Skipped chunks with mismatched embedding dimension",
                extra=log_context(owner_id=owner_id, skipped=skipped, dim=len(query_vector)),
            )
        scored.sort(key=lambda item: item.similarity, reverse=True)
        return scored[:limit]


def cosine_similarity(a: Sequence[float], b: Sequence[float], a_norm: float | None = None) -> float:
    """``1 - cosine_distance``; zero vectors score 0."""
    norm_a = _norm(a) if a_norm is None else a_norm
    norm_b = _norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return _dot(a, b) / (norm_a * norm_b)


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(_dot(vector, vector))


__all__ = ["ChunkStore", "cosine_similarity"]
