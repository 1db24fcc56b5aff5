"""Document lifecycle routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from docqa.api.dependencies import get_document_repository, get_upload_service
from docqa.db.documents import DocumentRepository
from docqa.ingest.uploads import UploadService
from docqa.models.dto import (
    AttemptResponse,
    CompleteUploadRequest,
    CompleteUploadResponse,
    DocumentResponse,
)
from docqa.models.entities import IngestionAttempt
from docqa.utils.time import ms_to_datetime

router = APIRouter()


@router.post(
    "/{document_id}/complete",
    response_model=CompleteUploadResponse,
    summary="Mark an upload finished and queue ingestion",
)
def complete_upload(
    document_id: str,
    request: CompleteUploadRequest,
    service: UploadService = Depends(get_upload_service),
) -> CompleteUploadResponse:
    completion = service.complete_upload(document_id, request.user_id)
    return CompleteUploadResponse(
        status="enqueued" if completion.enqueued else "noop",
        document_id=completion.document_id,
        attempt_id=completion.attempt_id,
    )


@router.get("/{document_id}", response_model=DocumentResponse, summary="Document status and latest attempt")
def get_document(
    document_id: str,
    user_id: str = Query(..., min_length=1),
    repository: DocumentRepository = Depends(get_document_repository),
) -> DocumentResponse:
    document = repository.get_document(document_id)
    if document is None or document.owner_id != user_id:
        raise HTTPException(status_code=404, detail="Document not found")
    attempt = repository.latest_attempt(document_id)
    return DocumentResponse(
        id=document.id,
        filename=document.filename,
        mime_type=document.mime_type,
        size_bytes=document.size_bytes,
        status=document.status.value,
        created_at=ms_to_datetime(document.created_at),
        updated_at=ms_to_datetime(document.updated_at),
        latest_attempt=_attempt_response(attempt) if attempt else None,
    )


def _attempt_response(attempt: IngestionAttempt) -> AttemptResponse:
    return AttemptResponse(
        id=attempt.id,
        status=attempt.status.value,
        progress=attempt.progress,
        started_at=ms_to_datetime(attempt.started_at),
        finished_at=ms_to_datetime(attempt.finished_at),
        error_code=attempt.error_code,
        error_message=attempt.error_message,
    )


__all__ = ["router"]
