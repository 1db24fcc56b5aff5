"""Document and ingestion-attempt persistence."""

from __future__ import annotations

import sqlite3
from typing import Any, Sequence

from docqa.db.sqlite import SQLiteDatabase
from docqa.models.entities import AttemptStatus, Document, DocumentStatus, IngestionAttempt
from docqa.utils.ids import new_id
from docqa.utils.time import now_ms

_DOCUMENT_COLUMNS = "id, owner_id, filename, mime_type, size_bytes, storage_key, status, created_at, updated_at"
_ATTEMPT_COLUMNS = (
    "id, document_id, status, progress, started_at, finished_at, error_code, error_message, created_at"
)

Executor = SQLiteDatabase | sqlite3.Cursor


class DocumentRepository:
    """Row-level access to documents and their ingestion attempts.

    Read helpers accept an optional cursor so they can run inside a caller's
    transaction.
    """

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def create_document(
        self,
        owner_id: str,
        filename: str,
        storage_key: str,
        mime_type: str | None = None,
        size_bytes: int | None = None,
        status: DocumentStatus = DocumentStatus.CREATED,
        document_id: str | None = None,
    ) -> Document:
        now = now_ms()
        document_id = document_id or new_id("doc")
        with self.db.transaction() as cursor:
            cursor.execute(
                f"INSERT INTO documents ({_DOCUMENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [document_id, owner_id, filename, mime_type, size_bytes, storage_key, status.value, now, now],
            )
        return Document(
            id=document_id,
            owner_id=owner_id,
            filename=filename,
            mime_type=mime_type,
            size_bytes=size_bytes,
            storage_key=storage_key,
            status=status,
            created_at=now,
            updated_at=now,
        )

    def create_attempt(self, document_id: str, cursor: sqlite3.Cursor | None = None) -> IngestionAttempt:
        attempt = IngestionAttempt(
            id=new_id("att"),
            document_id=document_id,
            status=AttemptStatus.INITIATED,
            progress=0,
            started_at=None,
            finished_at=None,
            error_code=None,
            error_message=None,
            created_at=now_ms(),
        )
        params = [attempt.id, document_id, attempt.status.value, attempt.progress, attempt.created_at]
        sql = "INSERT INTO ingestion_attempts (id, document_id, status, progress, created_at) VALUES (?, ?, ?, ?, ?)"
        if cursor is not None:
            cursor.execute(sql, params)
        else:
            with self.db.transaction() as tx:
                tx.execute(sql, params)
        return attempt

    def get_document(self, document_id: str, cursor: sqlite3.Cursor | None = None) -> Document | None:
        row = _fetchone(
            cursor or self.db,
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?",
            [document_id],
        )
        return Document.from_row(row) if row else None

    def get_attempt(self, attempt_id: str, cursor: sqlite3.Cursor | None = None) -> IngestionAttempt | None:
        row = _fetchone(
            cursor or self.db,
            f"SELECT {_ATTEMPT_COLUMNS} FROM ingestion_attempts WHERE id = ?",
            [attempt_id],
        )
        return IngestionAttempt.from_row(row) if row else None

    def latest_attempt(self, document_id: str) -> IngestionAttempt | None:
        row = _fetchone(
            self.db,
            f"""
            SELECT {_ATTEMPT_COLUMNS} FROM ingestion_attempts
            WHERE document_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            [document_id],
        )
        return IngestionAttempt.from_row(row) if row else None

    def set_document_status(self, cursor: sqlite3.Cursor, document_id: str, status: DocumentStatus) -> None:
        cursor.execute(
            "UPDATE documents SET status = ?, updated_at = ? WHERE id = ?",
            [status.value, now_ms(), document_id],
        )

    def update_attempt(self, cursor: sqlite3.Cursor, attempt_id: str, **fields: Any) -> None:
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        values = [value.value if isinstance(value, AttemptStatus) else value for value in fields.values()]
        cursor.execute(f"UPDATE ingestion_attempts SET {assignments} WHERE id = ?", [*values, attempt_id])

    def set_progress(self, attempt_id: str, progress: int) -> None:
        """Record stage progress on a running attempt; terminal attempts are left alone."""
        with self.db.transaction() as cursor:
            cursor.execute(
                "UPDATE ingestion_attempts SET progress = ? WHERE id = ? AND status = ?",
                [progress, attempt_id, AttemptStatus.PROCESSING.value],
            )


def _fetchone(executor: Executor, sql: str, params: Sequence[Any]) -> sqlite3.Row | None:
    return executor.execute(sql, params).fetchone()


__all__ = ["DocumentRepository"]
