"""Tests for upload completion."""

import orjson
import pytest

from docqa.core.config import Settings
from docqa.core.errors import DependencyError, NotFoundError, ValidationError
from docqa.db.documents import DocumentRepository
from docqa.events.publisher import StatusPublisher
from docqa.ingest.uploads import UploadService
from docqa.models.entities import AttemptStatus, DocumentStatus
from fakes import FakeObjectStore, FakePubSub, FakeQueue


@pytest.fixture
def service(
    db, queue: FakeQueue, publisher: StatusPublisher, object_store: FakeObjectStore, settings: Settings
) -> UploadService:
    return UploadService(db=db, queue=queue, publisher=publisher, object_store=object_store, settings=settings)


def _document(
    repository: DocumentRepository,
    object_store: FakeObjectStore,
    status: DocumentStatus = DocumentStatus.UPLOADED,
    uploaded: bool = True,
):
    document = repository.create_document(owner_id="user-1", filename="a.pdf", storage_key="k/a.pdf", status=status)
    if uploaded:
        object_store.put("documents", document.storage_key, b"%PDF-1.4")
    return document


def _statuses(pubsub: FakePubSub) -> list[str]:
    return [orjson.loads(raw)["status"] for _, raw in pubsub.published]


def test_complete_creates_attempt_and_enqueues(
    service: UploadService, repository: DocumentRepository, object_store, queue: FakeQueue, pubsub: FakePubSub
) -> None:
    document = _document(repository, object_store)
    completion = service.complete_upload(document.id, "user-1")

    assert completion.enqueued is True
    attempt = repository.get_attempt(completion.attempt_id)
    assert attempt.status is AttemptStatus.INITIATED
    assert repository.get_document(document.id).status is DocumentStatus.PROCESSING
    assert [orjson.loads(body) for body in queue.sent] == [
        {"documentId": document.id, "attemptId": completion.attempt_id}
    ]
    assert _statuses(pubsub) == ["PROCESSING"]


@pytest.mark.parametrize("status", [DocumentStatus.PROCESSING, DocumentStatus.READY])
def test_in_flight_documents_are_noop(
    service: UploadService, repository: DocumentRepository, object_store, queue: FakeQueue, status: DocumentStatus
) -> None:
    document = _document(repository, object_store, status=status)
    completion = service.complete_upload(document.id, "user-1")
    assert completion.enqueued is False
    assert completion.attempt_id is None
    assert queue.sent == []
    assert repository.latest_attempt(document.id) is None


def test_failed_document_gets_new_attempt(service: UploadService, repository: DocumentRepository, object_store) -> None:
    document = _document(repository, object_store, status=DocumentStatus.FAILED)
    completion = service.complete_upload(document.id, "user-1")
    assert completion.enqueued is True
    assert repository.latest_attempt(document.id).id == completion.attempt_id


def test_other_owner_is_not_found(service: UploadService, repository: DocumentRepository, object_store) -> None:
    document = _document(repository, object_store)
    with pytest.raises(NotFoundError):
        service.complete_upload(document.id, "user-2")
    with pytest.raises(NotFoundError):
        service.complete_upload("doc_missing", "user-1")


def test_missing_object_is_rejected_without_attempt(
    service: UploadService, repository: DocumentRepository, object_store, queue: FakeQueue, pubsub: FakePubSub
) -> None:
    document = _document(repository, object_store, uploaded=False)
    with pytest.raises(ValidationError):
        service.complete_upload(document.id, "user-1")
    assert repository.latest_attempt(document.id) is None
    assert repository.get_document(document.id).status is DocumentStatus.UPLOADED
    assert queue.sent == []
    assert pubsub.published == []


def test_enqueue_failure_fails_attempt(
    service: UploadService, repository: DocumentRepository, object_store, queue: FakeQueue, pubsub: FakePubSub
) -> None:
    document = _document(repository, object_store)
    queue.fail_send = True
    with pytest.raises(DependencyError):
        service.complete_upload(document.id, "user-1")
    attempt = repository.latest_attempt(document.id)
    assert attempt.status is AttemptStatus.FAILED
    assert attempt.error_code == "ENQUEUE_FAILED"
    assert attempt.finished_at is not None
    assert repository.get_document(document.id).status is DocumentStatus.FAILED
    assert _statuses(pubsub) == ["FAILED"]


def test_enqueue_failure_message_is_truncated(
    db, queue: FakeQueue, publisher: StatusPublisher, object_store, settings: Settings, repository: DocumentRepository
) -> None:
    short_settings = Settings(**{**settings.model_dump(), "max_error_message_length": 10})
    service = UploadService(db=db, queue=queue, publisher=publisher, object_store=object_store, settings=short_settings)
    document = _document(repository, object_store)
    queue.fail_send = True
    with pytest.raises(DependencyError):
        service.complete_upload(document.id, "user-1")
    assert repository.latest_attempt(document.id).error_message == "queue unre"


def test_failure_marking_error_keeps_enqueue_error(
    service: UploadService, repository: DocumentRepository, object_store, queue: FakeQueue, monkeypatch
) -> None:
    document = _document(repository, object_store)
    queue.fail_send = True

    def broken(*args, **kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(service.repository, "update_attempt", broken)
    with pytest.raises(DependencyError, match="Could not enqueue"):
        service.complete_upload(document.id, "user-1")
    assert repository.latest_attempt(document.id).status is AttemptStatus.INITIATED
