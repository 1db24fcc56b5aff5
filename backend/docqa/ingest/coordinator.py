"""Ingestion state machine.

One queue message ``{documentId, attemptId}`` drives one attempt through::

    INITIATED --claim--> PROCESSING --success--> READY
                         PROCESSING --any error--> FAILED

READY and FAILED are terminal: a redelivered message for a terminal attempt
is acknowledged without running anything. The claim is a single
``BEGIN IMMEDIATE`` transaction, so of two concurrent deliveries only the
first promotes the attempt. Chunk writes replace the attempt's previous
chunks, which makes a crash-and-redeliver rerun safe. A run that overlaps a
redelivered copy of its message discards its result once the other run has
closed the attempt.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum

from docqa.core.config import Settings
from docqa.core.errors import (
    DocQAError,
    DependencyError,
    EmptyContentError,
    IntegrityError,
    NotFoundError,
    error_code_for,
)
from docqa.core.logging import get_logger, log_context
from docqa.core.metrics import ACTIVE_ATTEMPTS, CHUNKS_WRITTEN, INGEST_DURATION, INGEST_MESSAGES
from docqa.db.chunk_store import ChunkStore
from docqa.db.documents import DocumentRepository
from docqa.db.sqlite import SQLiteDatabase
from docqa.events.publisher import StatusPublisher
from docqa.ingest.chunker import build_chunk_records, chunk_text
from docqa.ingest.embeddings import EmbeddingClient
from docqa.ingest.extractors import ExtractorRegistry
from docqa.models.entities import AttemptStatus, Document, DocumentStatus, IngestionAttempt
from docqa.models.messages import IngestionMessage, parse_ingestion_message
from docqa.storage.object_store import ObjectStore
from docqa.utils.text import truncate
from docqa.utils.time import now_ms

logger = get_logger(__name__)


class Stage(int, Enum):
    """Pipeline stages and the attempt progress recorded when each starts."""

    DOWNLOADING = 10
    PARSING = 25
    CHUNKING = 45
    EMBEDDING = 65
    PERSISTING = 85
    READY = 100


class HandleOutcome(str, Enum):
    PROCESSED = "processed"
    ALREADY_HANDLED = "already_handled"


@dataclass(slots=True)
class IngestionResult:
    outcome: HandleOutcome
    document_id: str
    attempt_id: str
    chunk_count: int = 0


@dataclass(slots=True)
class _Claim:
    document: Document
    attempt: IngestionAttempt
    should_process: bool


class IngestionCoordinator:
    """Consume ingestion messages and advance Document/Attempt state."""

    def __init__(
        self,
        db: SQLiteDatabase,
        settings: Settings,
        object_store: ObjectStore,
        embedding_client: EmbeddingClient,
        publisher: StatusPublisher,
        extractors: ExtractorRegistry | None = None,
        chunk_store: ChunkStore | None = None,
        repository: DocumentRepository | None = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self.object_store = object_store
        self.embedding_client = embedding_client
        self.publisher = publisher
        self.extractors = extractors or ExtractorRegistry()
        self.chunk_store = chunk_store or ChunkStore(db)
        self.repository = repository or DocumentRepository(db)

    def handle(self, body: str | bytes | None) -> IngestionResult:
        """Process one raw queue body. Safe to call repeatedly for the same message."""
        message = parse_ingestion_message(body)
        return self.process(message)

    def process(self, message: IngestionMessage) -> IngestionResult:
        context = log_context(document_id=message.document_id, attempt_id=message.attempt_id)
        logger.info("Starting message processing", extra=context)
        started = time.perf_counter()
        try:
            claim = self._claim(message)
            if not claim.should_process:
                logger.info(
                    "Attempt already in terminal state, skipping",
                    extra={**context, "ctx_status": claim.attempt.status.value},
                )
                INGEST_MESSAGES.labels(outcome=HandleOutcome.ALREADY_HANDLED.value).inc()
                return IngestionResult(
                    outcome=HandleOutcome.ALREADY_HANDLED,
                    document_id=message.document_id,
                    attempt_id=message.attempt_id,
                )
            self.publisher.publish(
                claim.document.owner_id, claim.document.id, DocumentStatus.PROCESSING, claim.attempt.id
            )
            ACTIVE_ATTEMPTS.inc()
            try:
                chunk_count = self._run_pipeline(claim)
            finally:
                ACTIVE_ATTEMPTS.dec()
            finished = chunk_count is not None and self._mark_ready(claim)
        except Exception as exc:
            logger.exception("Ingestion failed: %s", exc, extra=context)
            self.mark_failed_best_effort(
                document_id=message.document_id,
                attempt_id=message.attempt_id,
                error_code=error_code_for(exc),
                error_message=str(exc) or exc.__class__.__name__,
            )
            INGEST_MESSAGES.labels(outcome="failed").inc()
            INGEST_DURATION.labels(status="failed").observe(time.perf_counter() - started)
            raise

        if not finished:
            # another delivery closed the attempt while this run was in flight
            logger.info("Attempt closed during the run, discarding result", extra=context)
            INGEST_MESSAGES.labels(outcome=HandleOutcome.ALREADY_HANDLED.value).inc()
            return IngestionResult(
                outcome=HandleOutcome.ALREADY_HANDLED,
                document_id=message.document_id,
                attempt_id=message.attempt_id,
            )

        INGEST_MESSAGES.labels(outcome=HandleOutcome.PROCESSED.value).inc()
        INGEST_DURATION.labels(status="ready").observe(time.perf_counter() - started)
        self.publisher.publish(claim.document.owner_id, claim.document.id, DocumentStatus.READY, claim.attempt.id)
        logger.info("Message processing complete", extra={**context, "ctx_chunks": chunk_count})
        return IngestionResult(
            outcome=HandleOutcome.PROCESSED,
            document_id=message.document_id,
            attempt_id=message.attempt_id,
            chunk_count=chunk_count,
        )

    def mark_failed_best_effort(
        self,
        document_id: str,
        attempt_id: str,
        error_code: str,
        error_message: str,
    ) -> bool:
        """Mark attempt and document FAILED and publish; never raises.

        Skips attempts that are missing, belong to another document, or are
        already terminal.
        """
        context = log_context(document_id=document_id, attempt_id=attempt_id, error_code=error_code)
        try:
            with self.db.transaction(immediate=True) as cursor:
                attempt = self.repository.get_attempt(attempt_id, cursor)
                if attempt is None or attempt.document_id != document_id:
                    logger.debug("Attempt missing or mismatched, not marking failed", extra=context)
                    return False
                if attempt.status.is_terminal:
                    logger.debug("Attempt already terminal, not marking failed", extra=context)
                    return False
                document = self.repository.get_document(document_id, cursor)
                self.repository.update_attempt(
                    cursor,
                    attempt_id,
                    status=AttemptStatus.FAILED,
                    error_code=error_code,
                    error_message=truncate(error_message, self.settings.max_error_message_length),
                    finished_at=now_ms(),
                )
                self.repository.set_document_status(cursor, document_id, DocumentStatus.FAILED)
            if document is not None:
                self.publisher.publish(document.owner_id, document_id, DocumentStatus.FAILED, attempt_id)
            logger.info("Failure marked", extra=context)
            return True
        except Exception as exc:
            logger.error("Failed to mark attempt as failed (best effort): %s", exc, extra=context)
            return False

    # Internal helpers -------------------------------------------------

    def _claim(self, message: IngestionMessage) -> _Claim:
        with self.db.transaction(immediate=True) as cursor:
            attempt = self.repository.get_attempt(message.attempt_id, cursor)
            if attempt is None:
                raise NotFoundError(f"Attempt not found: {message.attempt_id}")
            if attempt.document_id != message.document_id:
                raise IntegrityError(
                    f"Attempt {message.attempt_id} does not belong to document {message.document_id}"
                )
            document = self.repository.get_document(message.document_id, cursor)
            if document is None:
                raise NotFoundError(f"Document not found: {message.document_id}")

            if attempt.status.is_terminal:
                return _Claim(document=document, attempt=attempt, should_process=False)

            if attempt.status is AttemptStatus.INITIATED:
                started_at = attempt.started_at or now_ms()
                self.repository.update_attempt(
                    cursor, attempt.id, status=AttemptStatus.PROCESSING, started_at=started_at
                )
                attempt.status = AttemptStatus.PROCESSING
                attempt.started_at = started_at
            else:
                logger.debug(
                    "Attempt already PROCESSING, rerunning pipeline",
                    extra=log_context(attempt_id=attempt.id),
                )
            self.repository.set_document_status(cursor, document.id, DocumentStatus.PROCESSING)
            document.status = DocumentStatus.PROCESSING
        return _Claim(document=document, attempt=attempt, should_process=True)

    def _run_pipeline(self, claim: _Claim) -> int | None:
        document, attempt = claim.document, claim.attempt
        context = log_context(document_id=document.id, attempt_id=attempt.id)
        extractor = self.extractors.for_document(document.mime_type, document.filename)

        self._advance(attempt, Stage.DOWNLOADING)
        raw = self._download(document)
        logger.info("Downloaded object", extra={**context, "ctx_kb": round(len(raw) / 1024)})

        self._advance(attempt, Stage.PARSING)
        extracted = extractor.extract(raw)
        logger.info(
            "Extracted text",
            extra={**context, "ctx_pages": extracted.page_count, "ctx_chars": len(extracted.full_text)},
        )

        self._advance(attempt, Stage.CHUNKING)
        chunks = chunk_text(
            extracted.full_text,
            target_tokens=self.settings.chunk_target_tokens,
            overlap_tokens=self.settings.chunk_overlap_tokens,
            chars_per_token=self.settings.chars_per_token,
        )
        records = build_chunk_records(chunks, extracted.page_spans)
        if not records:
            raise EmptyContentError("Document produced no chunks")
        logger.info("Created chunks", extra={**context, "ctx_chunks": len(records)})

        self._advance(attempt, Stage.EMBEDDING)
        vectors = self.embedding_client.embed_many([record.content for record in records])

        self._advance(attempt, Stage.PERSISTING)
        if self.chunk_store.replace_attempt_chunks(document.id, attempt.id, records, vectors) is None:
            return None
        CHUNKS_WRITTEN.inc(len(records))
        return len(records)

    def _download(self, document: Document) -> bytes:
        try:
            return self.object_store.get(self.settings.s3_bucket, document.storage_key)
        except DocQAError:
            raise
        except Exception as exc:
            raise DependencyError(f"Object store download failed: {exc}", provider="object-store") from exc

    def _advance(self, attempt: IngestionAttempt, stage: Stage) -> None:
        logger.debug("Stage %s", stage.name.lower(), extra=log_context(attempt_id=attempt.id))
        self.repository.set_progress(attempt.id, stage.value)
        attempt.progress = stage.value

    def _mark_ready(self, claim: _Claim) -> bool:
        """Promote the attempt to READY; ``False`` when another delivery already closed it."""
        document, attempt = claim.document, claim.attempt
        with self.db.transaction(immediate=True) as cursor:
            updated = cursor.execute(
                """
                UPDATE ingestion_attempts
                SET status = ?, progress = ?, finished_at = ?, error_code = NULL, error_message = NULL
                WHERE id = ? AND status = ?
                """,
                [
                    AttemptStatus.READY.value,
                    Stage.READY.value,
                    now_ms(),
                    attempt.id,
                    AttemptStatus.PROCESSING.value,
                ],
            ).rowcount
            if not updated:
                current = self.repository.get_attempt(attempt.id, cursor)
                if current is None or not current.status.is_terminal:
                    status = current.status.value if current else "missing"
                    raise IntegrityError(f"Attempt {attempt.id} left PROCESSING during the run (now {status})")
                if current.status is AttemptStatus.FAILED:
                    # chunks of a failed attempt are never cited
                    self.chunk_store.delete_for_attempt(cursor, attempt.id)
                attempt.status = current.status
                return False
            superseded = self.chunk_store.delete_superseded(cursor, document.id, attempt.id)
            self.repository.set_document_status(cursor, document.id, DocumentStatus.READY)
        if superseded:
            logger.info(
                "Removed chunks of earlier attempts",
                extra=log_context(document_id=document.id, removed=superseded),
            )
        attempt.status = AttemptStatus.READY
        document.status = DocumentStatus.READY
        return True


__all__ = ["Stage", "HandleOutcome", "IngestionResult", "IngestionCoordinator"]
