"""Embedding providers and the batching embedding client."""

from __future__ import annotations

import hashlib
import math
import re
from array import array
from typing import Any, Protocol, Sequence

import openai

from docqa.core.config import Settings
from docqa.core.errors import CountMismatchError, DependencyError, DocQAError
from docqa.core.logging import get_logger, log_context

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")

EMBEDDING_BATCH_SIZE = 64


class EmbeddingProvider(Protocol):
    model_name: str

    def embed(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]: ...


class HashedEmbeddingProvider:
    """Hashed bag-of-words embeddings with deterministic, L2-normalised output."""

    def __init__(self, model_name: str = "hashed", dim: int = 384) -> None:
        self.model_name = model_name
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dim
        for token in _tokenize(text):
            vector[_hash_token(token, self._dim)] += 1.0
        _normalize(vector)
        return vector

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]


class OpenAIEmbeddingProvider:
    """Embeddings from the OpenAI API (or any compatible endpoint)."""

    def __init__(self, api_key: str | None, model_name: str, base_url: str | None = None) -> None:
        self.model_name = model_name
        self._api_key = api_key
        self._base_url = base_url
        self._client: openai.OpenAI | None = None

    @property
    def client(self) -> openai.OpenAI:
        if self._client is None:
            if not self._api_key:
                raise DependencyError("OpenAI API key is not configured", provider="openai")
            self._client = openai.OpenAI(api_key=self._api_key, base_url=self._base_url)
        return self._client

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        try:
            response = self.client.embeddings.create(model=self.model_name, input=list(texts))
        except openai.OpenAIError as exc:
            raise DependencyError(f"Embedding request failed: {exc}", provider="openai") from exc
        items = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in items]


class EmbeddingClient:
    """Embed many texts in fixed-size batches, preserving input order.

    A failing batch fails the whole call; no partial results are returned.
    """

    def __init__(self, provider: EmbeddingProvider, batch_size: int = EMBEDDING_BATCH_SIZE) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.provider = provider
        self.batch_size = batch_size

    @property
    def model_name(self) -> str:
        return self.provider.model_name

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for offset in range(0, len(texts), self.batch_size):
            batch = list(texts[offset : offset + self.batch_size])
            result = self._call(self.provider.embed_batch, batch)
            if len(result) != len(batch):
                raise CountMismatchError(
                    f"Embedding batch returned {len(result)} vectors for {len(batch)} inputs"
                )
            vectors.extend(result)
        logger.debug(
            "Embedded texts",
            extra=log_context(count=len(texts), batches=math.ceil(len(texts) / self.batch_size)),
        )
        return vectors

    def embed_one(self, text: str) -> list[float]:
        return self._call(self.provider.embed, text)

    def _call(self, fn: Any, payload: Any) -> Any:
        try:
            return fn(payload)
        except DocQAError:
            raise
        except Exception as exc:
            raise DependencyError(f"Embedding provider failed: {exc}", provider=self.model_name) from exc


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    if settings.embedding_backend == "hashed":
        return HashedEmbeddingProvider(model_name=settings.embedding_model, dim=settings.embedding_dim)
    return OpenAIEmbeddingProvider(
        api_key=settings.openai_api_key,
        model_name=settings.embedding_model,
        base_url=settings.openai_base_url,
    )


def vector_to_bytes(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def bytes_to_vector(blob: bytes) -> list[float]:
    floats = array("f")
    floats.frombytes(blob)
    return list(floats)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EMBEDDING_BATCH_SIZE",
    "EmbeddingProvider",
    "HashedEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "EmbeddingClient",
    "build_embedding_provider",
    "vector_to_bytes",
    "bytes_to_vector",
]
