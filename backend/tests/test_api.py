"""API integration tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from docqa.api import dependencies as deps
from docqa.app import app
from docqa.core.errors import DependencyError
from docqa.db.chunk_store import ChunkStore
from docqa.db.documents import DocumentRepository
from docqa.ingest.chunker import ChunkRecord
from docqa.models.entities import DocumentStatus
from fakes import FakeObjectStore, FakeQueue, ScriptedChatModel


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def chat_model() -> ScriptedChatModel:
    model = ScriptedChatModel(reply="The invoice total is $500")
    deps._CHAT_MODEL = model
    return model


@pytest.fixture
def fake_queue() -> FakeQueue:
    queue = FakeQueue()
    deps._QUEUE = queue
    return queue


@pytest.fixture
def fake_store() -> FakeObjectStore:
    store = FakeObjectStore()
    store.put("documents", "k/a.pdf", b"%PDF-1.4")
    deps._OBJECT_STORE = store
    return store


def _seed_chunk(owner_id: str = "user-1") -> str:
    db = deps.get_database()
    repository = DocumentRepository(db)
    document = repository.create_document(owner_id=owner_id, filename="invoice.pdf", storage_key="k/invoice.pdf")
    attempt = repository.create_attempt(document.id)
    content = "The invoice total is $500"
    vector = deps.get_embedding_client().embed_one(content)
    ChunkStore(db).replace_attempt_chunks(
        document.id,
        attempt.id,
        [ChunkRecord(chunk_index=0, content=content, start_char=0, end_char=len(content), pages=[1])],
        [vector],
    )
    return document.id


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_ask_returns_answer_and_source(client: TestClient, chat_model: ScriptedChatModel) -> None:
    document_id = _seed_chunk()
    resp = client.post("/ask", json={"question": "What is the invoice total?", "user_id": "user-1"})
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["answer"] == "The invoice total is $500"
    assert len(payload["sources"]) == 1
    source = payload["sources"][0]
    assert source["document_id"] == document_id
    assert source["document_name"] == "invoice.pdf"
    assert source["page"] == 1
    assert source["snippet"] == "The invoice total is $500"


def test_ask_without_documents_uses_canned_answer(client: TestClient, chat_model: ScriptedChatModel) -> None:
    resp = client.post("/ask", json={"question": "Anything?", "user_id": "user-9"})
    assert resp.status_code == 200
    assert resp.json()["sources"] == []
    assert chat_model.calls == []


def test_ask_validation_error_is_400(client: TestClient, chat_model: ScriptedChatModel) -> None:
    resp = client.post("/ask", json={"question": "   ", "user_id": "user-1"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


def test_ask_dependency_failure_is_502(client: TestClient, chat_model: ScriptedChatModel) -> None:
    _seed_chunk()
    chat_model.error = DependencyError("upstream timeout", provider="openai")
    resp = client.post("/ask", json={"question": "What is the total?", "user_id": "user-1"})
    assert resp.status_code == 502
    assert resp.json() == {"detail": "Upstream dependency failed", "code": "DEPENDENCY_ERROR"}


def test_complete_upload_and_status(client: TestClient, fake_queue: FakeQueue, fake_store: FakeObjectStore) -> None:
    repository = DocumentRepository(deps.get_database())
    document = repository.create_document(
        owner_id="user-1", filename="a.pdf", storage_key="k/a.pdf", status=DocumentStatus.UPLOADED
    )

    resp = client.post(f"/documents/{document.id}/complete", json={"user_id": "user-1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "enqueued"
    assert len(fake_queue.sent) == 1

    again = client.post(f"/documents/{document.id}/complete", json={"user_id": "user-1"})
    assert again.json()["status"] == "noop"
    assert len(fake_queue.sent) == 1

    status = client.get(f"/documents/{document.id}", params={"user_id": "user-1"})
    assert status.status_code == 200
    assert status.json()["status"] == "PROCESSING"
    assert status.json()["latest_attempt"]["id"] == body["attempt_id"]
    assert status.json()["latest_attempt"]["status"] == "INITIATED"


def test_documents_are_owner_scoped(client: TestClient, fake_queue: FakeQueue, fake_store: FakeObjectStore) -> None:
    repository = DocumentRepository(deps.get_database())
    document = repository.create_document(owner_id="user-1", filename="a.pdf", storage_key="k/a.pdf")
    assert client.get(f"/documents/{document.id}", params={"user_id": "user-2"}).status_code == 404
    resp = client.post(f"/documents/{document.id}/complete", json={"user_id": "user-2"})
    assert resp.status_code == 404


def test_complete_without_queue_config_is_502(client: TestClient, fake_store: FakeObjectStore) -> None:
    repository = DocumentRepository(deps.get_database())
    document = repository.create_document(owner_id="user-1", filename="a.pdf", storage_key="k/a.pdf")
    resp = client.post(f"/documents/{document.id}/complete", json={"user_id": "user-1"})
    assert resp.status_code == 502


def test_complete_without_uploaded_object_is_400(
    client: TestClient, fake_queue: FakeQueue, fake_store: FakeObjectStore
) -> None:
    repository = DocumentRepository(deps.get_database())
    document = repository.create_document(
        owner_id="user-1", filename="b.pdf", storage_key="k/b.pdf", status=DocumentStatus.UPLOADED
    )
    resp = client.post(f"/documents/{document.id}/complete", json={"user_id": "user-1"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"
    assert fake_queue.sent == []
    assert repository.latest_attempt(document.id) is None


def test_metrics_endpoint(client: TestClient) -> None:
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "docqa_questions_total" in resp.text
