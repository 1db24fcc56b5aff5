"""Upload completion: open a new ingestion attempt and enqueue it."""

from __future__ import annotations

from dataclasses import dataclass

from docqa.core.config import Settings
from docqa.core.errors import DocQAError, DependencyError, NotFoundError, ObjectNotFoundError, ValidationError
from docqa.core.logging import get_logger, log_context
from docqa.db.documents import DocumentRepository
from docqa.db.sqlite import SQLiteDatabase
from docqa.events.publisher import StatusPublisher
from docqa.ingest.queue import MessageQueue
from docqa.models.entities import AttemptStatus, DocumentStatus
from docqa.models.messages import IngestionMessage
from docqa.storage.object_store import ObjectStore
from docqa.utils.text import truncate
from docqa.utils.time import now_ms

logger = get_logger(__name__)

ENQUEUE_FAILED = "ENQUEUE_FAILED"

_STARTABLE = {DocumentStatus.CREATED, DocumentStatus.UPLOADED, DocumentStatus.FAILED}
_IN_FLIGHT = {DocumentStatus.PROCESSING, DocumentStatus.READY}


@dataclass(slots=True)
class UploadCompletion:
    document_id: str
    attempt_id: str | None
    enqueued: bool


class UploadService:
    """Turns a finished upload (or a retry of a failed one) into a queued attempt.

    The uploaded object must exist before an attempt is opened. The message
    is sent after the attempt row is committed, so the worker always finds
    the attempt it is told about.
    """

    def __init__(
        self,
        db: SQLiteDatabase,
        queue: MessageQueue,
        publisher: StatusPublisher,
        object_store: ObjectStore,
        settings: Settings,
    ) -> None:
        self.db = db
        self.queue = queue
        self.publisher = publisher
        self.object_store = object_store
        self.settings = settings
        self.repository = DocumentRepository(db)

    def complete_upload(self, document_id: str, owner_id: str) -> UploadCompletion:
        document = self.repository.get_document(document_id)
        if document is None or document.owner_id != owner_id:
            raise NotFoundError(f"Document not found: {document_id}")
        if document.status in _STARTABLE:
            self._require_object(document_id, document.storage_key)

        with self.db.transaction(immediate=True) as cursor:
            document = self.repository.get_document(document_id, cursor)
            if document is None or document.owner_id != owner_id:
                raise NotFoundError(f"Document not found: {document_id}")
            if document.status in _IN_FLIGHT:
                return UploadCompletion(document_id=document_id, attempt_id=None, enqueued=False)
            if document.status not in _STARTABLE:
                raise ValidationError(f"Invalid status: {document.status.value}")
            attempt = self.repository.create_attempt(document_id, cursor)
            self.repository.set_document_status(cursor, document_id, DocumentStatus.PROCESSING)

        context = log_context(document_id=document_id, attempt_id=attempt.id)
        message = IngestionMessage(documentId=document_id, attemptId=attempt.id)
        try:
            self.queue.send(message.to_json())
        except Exception as exc:
            logger.error("Enqueue failed: %s", exc, extra=context)
            self._fail_unqueued(owner_id, document_id, attempt.id, str(exc) or exc.__class__.__name__)
            if isinstance(exc, DocQAError):
                raise
            raise DependencyError(f"Could not enqueue ingestion: {exc}", provider="queue") from exc

        self.publisher.publish(owner_id, document_id, DocumentStatus.PROCESSING, attempt.id)
        logger.info("Ingestion enqueued", extra=context)
        return UploadCompletion(document_id=document_id, attempt_id=attempt.id, enqueued=True)

    def _require_object(self, document_id: str, storage_key: str) -> None:
        try:
            self.object_store.head(self.settings.s3_bucket, storage_key)
        except ObjectNotFoundError as exc:
            logger.warning(
                "Upload completed without an object",
                extra=log_context(document_id=document_id, key=storage_key),
            )
            raise ValidationError(f"Uploaded object not found for document {document_id}") from exc

    def _fail_unqueued(self, owner_id: str, document_id: str, attempt_id: str, error_message: str) -> bool:
        """Mark the unqueued attempt and its document FAILED; never raises."""
        context = log_context(document_id=document_id, attempt_id=attempt_id, error_code=ENQUEUE_FAILED)
        try:
            with self.db.transaction(immediate=True) as cursor:
                self.repository.update_attempt(
                    cursor,
                    attempt_id,
                    status=AttemptStatus.FAILED,
                    error_code=ENQUEUE_FAILED,
                    error_message=truncate(error_message, self.settings.max_error_message_length),
                    finished_at=now_ms(),
                )
                self.repository.set_document_status(cursor, document_id, DocumentStatus.FAILED)
            self.publisher.publish(owner_id, document_id, DocumentStatus.FAILED, attempt_id)
            return True
        except Exception as exc:
            logger.error("Failed to mark unqueued attempt as failed (best effort): %s", exc, extra=context)
            return False


__all__ = ["UploadCompletion", "UploadService"]
