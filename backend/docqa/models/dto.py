"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    question: str
    user_id: str = Field(min_length=1)


class ChatSource(BaseModel):
    document_id: str
    document_name: str | None = None
    chunk_id: str
    page: int | None = None
    snippet: str


class AskResponse(BaseModel):
    answer: str
    sources: list[ChatSource]


class CompleteUploadRequest(BaseModel):
    user_id: str = Field(min_length=1)


class CompleteUploadResponse(BaseModel):
    status: Literal["enqueued", "noop"]
    document_id: str
    attempt_id: str | None = None


class AttemptResponse(BaseModel):
    id: str
    status: str
    progress: int
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_code: str | None = None
    error_message: str | None = None


class DocumentResponse(BaseModel):
    id: str
    filename: str
    mime_type: str | None
    size_bytes: int | None
    status: str
    created_at: datetime
    updated_at: datetime
    latest_attempt: AttemptResponse | None = None


__all__ = [
    "AskRequest",
    "AskResponse",
    "ChatSource",
    "CompleteUploadRequest",
    "CompleteUploadResponse",
    "AttemptResponse",
    "DocumentResponse",
]
