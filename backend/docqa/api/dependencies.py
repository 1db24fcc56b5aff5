"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from docqa.chat.llm import ChatModel, OpenAIChatModel
from docqa.chat.service import AnswerSynthesizer
from docqa.core.config import Settings, get_settings
from docqa.db.chunk_store import ChunkStore
from docqa.db.documents import DocumentRepository
from docqa.db.sqlite import SQLiteDatabase
from docqa.events.publisher import StatusPublisher, build_status_publisher
from docqa.ingest.embeddings import EmbeddingClient, build_embedding_provider
from docqa.ingest.queue import MessageQueue, SQSQueue
from docqa.ingest.uploads import UploadService
from docqa.retrieval import Retriever
from docqa.storage.object_store import ObjectStore, S3ObjectStore

_DB: SQLiteDatabase | None = None
_EMBEDDING_CLIENT: EmbeddingClient | None = None
_CHAT_MODEL: ChatModel | None = None
_QUEUE: MessageQueue | None = None
_PUBLISHER: StatusPublisher | None = None
_SYNTHESIZER: AnswerSynthesizer | None = None
_UPLOAD_SERVICE: UploadService | None = None
_OBJECT_STORE: ObjectStore | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_embedding_client() -> EmbeddingClient:
    global _EMBEDDING_CLIENT
    if _EMBEDDING_CLIENT is None:
        settings = get_app_settings()
        _EMBEDDING_CLIENT = EmbeddingClient(
            build_embedding_provider(settings),
            batch_size=settings.embedding_batch_size,
        )
    return _EMBEDDING_CLIENT


def get_chat_model() -> ChatModel:
    global _CHAT_MODEL
    if _CHAT_MODEL is None:
        _CHAT_MODEL = OpenAIChatModel.from_settings(get_app_settings())
    return _CHAT_MODEL


def get_message_queue() -> MessageQueue:
    global _QUEUE
    if _QUEUE is None:
        _QUEUE = SQSQueue.from_settings(get_app_settings())
    return _QUEUE


def get_status_publisher() -> StatusPublisher:
    global _PUBLISHER
    if _PUBLISHER is None:
        _PUBLISHER = build_status_publisher(get_app_settings().redis_url)
    return _PUBLISHER


def get_object_store() -> ObjectStore:
    global _OBJECT_STORE
    if _OBJECT_STORE is None:
        _OBJECT_STORE = S3ObjectStore.from_settings(get_app_settings())
    return _OBJECT_STORE


def get_document_repository() -> DocumentRepository:
    return DocumentRepository(get_database())


def get_answer_synthesizer() -> AnswerSynthesizer:
    global _SYNTHESIZER
    if _SYNTHESIZER is None:
        retriever = Retriever(get_embedding_client(), ChunkStore(get_database()))
        _SYNTHESIZER = AnswerSynthesizer(retriever, get_chat_model(), get_app_settings())
    return _SYNTHESIZER


def get_upload_service() -> UploadService:
    global _UPLOAD_SERVICE
    if _UPLOAD_SERVICE is None:
        _UPLOAD_SERVICE = UploadService(
            db=get_database(),
            queue=get_message_queue(),
            publisher=get_status_publisher(),
            object_store=get_object_store(),
            settings=get_app_settings(),
        )
    return _UPLOAD_SERVICE


__all__ = [
    "get_app_settings",
    "get_database",
    "get_embedding_client",
    "get_chat_model",
    "get_message_queue",
    "get_status_publisher",
    "get_object_store",
    "get_document_repository",
    "get_answer_synthesizer",
    "get_upload_service",
]
