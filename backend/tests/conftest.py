"""Test fixtures for DocQA."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from docqa.core.config import Settings  # noqa: E402
from docqa.db.chunk_store import ChunkStore  # noqa: E402
from docqa.db.documents import DocumentRepository  # noqa: E402
from docqa.db.sqlite import SQLiteDatabase  # noqa: E402
from docqa.events.publisher import StatusPublisher  # noqa: E402
from docqa.ingest.coordinator import IngestionCoordinator  # noqa: E402
from docqa.ingest.embeddings import EmbeddingClient, HashedEmbeddingProvider  # noqa: E402
from fakes import TEST_DIM, FakeObjectStore, FakePubSub, FakeQueue  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("DOCQA_DB_PATH", str(tmp_path / "api.db"))
    monkeypatch.setenv("DOCQA_EMBEDDING_BACKEND", "hashed")
    monkeypatch.setenv("DOCQA_EMBEDDING_DIM", str(TEST_DIM))
    monkeypatch.delenv("DOCQA_CONFIG", raising=False)
    monkeypatch.delenv("DOCQA_SQS_QUEUE_URL", raising=False)
    monkeypatch.delenv("DOCQA_REDIS_URL", raising=False)

    from docqa.api import dependencies as deps
    from docqa.core.config import get_settings

    def _clear() -> None:
        get_settings.cache_clear()
        deps.get_app_settings.cache_clear()
        if deps._DB is not None:
            deps._DB.close()
        deps._DB = None
        deps._EMBEDDING_CLIENT = None
        deps._CHAT_MODEL = None
        deps._QUEUE = None
        deps._PUBLISHER = None
        deps._SYNTHESIZER = None
        deps._UPLOAD_SERVICE = None
        deps._OBJECT_STORE = None

    _clear()
    yield
    _clear()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "docqa.db",
        embedding_backend="hashed",
        embedding_dim=TEST_DIM,
        embedding_batch_size=4,
    )


@pytest.fixture
def db(settings: Settings) -> SQLiteDatabase:
    database = SQLiteDatabase(settings.db_path)
    database.ensure_schema()
    yield database
    database.close()


@pytest.fixture
def repository(db: SQLiteDatabase) -> DocumentRepository:
    return DocumentRepository(db)


@pytest.fixture
def chunk_store(db: SQLiteDatabase) -> ChunkStore:
    return ChunkStore(db)


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def queue() -> FakeQueue:
    return FakeQueue()


@pytest.fixture
def pubsub() -> FakePubSub:
    return FakePubSub()


@pytest.fixture
def publisher(pubsub: FakePubSub) -> StatusPublisher:
    return StatusPublisher(pubsub)


@pytest.fixture
def embedding_client() -> EmbeddingClient:
    return EmbeddingClient(HashedEmbeddingProvider(dim=TEST_DIM), batch_size=4)


@pytest.fixture
def make_coordinator(
    db: SQLiteDatabase,
    settings: Settings,
    object_store: FakeObjectStore,
    embedding_client: EmbeddingClient,
    publisher: StatusPublisher,
) -> Callable[..., IngestionCoordinator]:
    def _make(**overrides) -> IngestionCoordinator:
        run_settings = Settings(**{**settings.model_dump(), **overrides}) if overrides else settings
        return IngestionCoordinator(
            db=db,
            settings=run_settings,
            object_store=object_store,
            embedding_client=embedding_client,
            publisher=publisher,
        )

    return _make


@pytest.fixture
def coordinator(make_coordinator: Callable[..., IngestionCoordinator]) -> IngestionCoordinator:
    return make_coordinator()
