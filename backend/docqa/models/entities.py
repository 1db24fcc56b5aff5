"""Internal dataclasses representing persisted entities."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from enum import Enum

import orjson


class DocumentStatus(str, Enum):
    CREATED = "CREATED"
    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"


class AttemptStatus(str, Enum):
    INITIATED = "INITIATED"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (AttemptStatus.READY, AttemptStatus.FAILED)


@dataclass(slots=True)
class Document:
    id: str
    owner_id: str
    filename: str
    mime_type: str | None
    size_bytes: int | None
    storage_key: str
    status: DocumentStatus
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Document":
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            filename=row["filename"],
            mime_type=row["mime_type"],
            size_bytes=row["size_bytes"],
            storage_key=row["storage_key"],
            status=DocumentStatus(row["status"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass(slots=True)
class IngestionAttempt:
    id: str
    document_id: str
    status: AttemptStatus
    progress: int
    started_at: int | None
    finished_at: int | None
    error_code: str | None
    error_message: str | None
    created_at: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "IngestionAttempt":
        return cls(
            id=row["id"],
            document_id=row["document_id"],
            status=AttemptStatus(row["status"]),
            progress=row["progress"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            error_code=row["error_code"],
            error_message=row["error_message"],
            created_at=row["created_at"],
        )


@dataclass(slots=True)
class DocumentChunk:
    id: str
    document_id: str
    attempt_id: str
    chunk_index: int
    content: str
    pages: list[int] = field(default_factory=list)
    embedding: list[float] | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "DocumentChunk":
        return cls(
            id=row["id"],
            document_id=row["document_id"],
            attempt_id=row["attempt_id"],
            chunk_index=row["chunk_index"],
            content=row["content"],
            pages=orjson.loads(row["pages_json"]) if row["pages_json"] else [],
        )


@dataclass(slots=True)
class RankedChunk:
    """A stored chunk scored against a query vector."""

    chunk_id: str
    document_id: str
    document_name: str | None
    content: str
    pages: list[int]
    similarity: float


__all__ = [
    "DocumentStatus",
    "AttemptStatus",
    "Document",
    "IngestionAttempt",
    "DocumentChunk",
    "RankedChunk",
]
