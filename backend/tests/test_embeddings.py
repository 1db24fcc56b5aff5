"""Tests for embedding utilities."""

import pytest

from docqa.core.errors import CountMismatchError, DependencyError
from docqa.ingest.embeddings import (
    EmbeddingClient,
    HashedEmbeddingProvider,
    OpenAIEmbeddingProvider,
    bytes_to_vector,
    vector_to_bytes,
)

from fakes import ScriptedEmbeddingProvider


def test_hashed_embeddings_are_normalised() -> None:
    provider = HashedEmbeddingProvider(dim=32)
    vectors = provider.embed_batch(["hello", "world"])
    assert len(vectors) == 2
    assert all(len(vec) == 32 for vec in vectors)
    assert abs(sum(value * value for value in vectors[0]) - 1.0) < 1e-6
    assert provider.embed("hello") == vectors[0]


def test_embed_many_preserves_order_across_batches() -> None:
    provider = ScriptedEmbeddingProvider(
        vectors={"a": [1.0, 0.0, 0.0], "b": [0.0, 1.0, 0.0], "c": [0.0, 0.0, 1.0]}
    )
    client = EmbeddingClient(provider, batch_size=2)
    assert client.embed_many(["a", "b", "c"]) == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]]
    assert provider.batches == [["a", "b"], ["c"]]


def test_failing_batch_fails_whole_call() -> None:
    class FlakyProvider(ScriptedEmbeddingProvider):
        def embed_batch(self, texts):
            if len(self.batches) == 1:
                raise TimeoutError("provider timed out")
            return super().embed_batch(texts)

    client = EmbeddingClient(FlakyProvider(), batch_size=1)
    with pytest.raises(DependencyError):
        client.embed_many(["a", "b", "c"])


def test_short_batch_is_count_mismatch() -> None:
    class ShortProvider(ScriptedEmbeddingProvider):
        def embed_batch(self, texts):
            return super().embed_batch(texts)[:-1]

    client = EmbeddingClient(ShortProvider(), batch_size=3)
    with pytest.raises(CountMismatchError):
        client.embed_many(["a", "b", "c"])


def test_openai_provider_without_key_is_dependency_error() -> None:
    provider = OpenAIEmbeddingProvider(api_key=None, model_name="text-embedding-3-small")
    client = EmbeddingClient(provider)
    with pytest.raises(DependencyError):
        client.embed_one("question")


def test_vector_blob_round_trip() -> None:
    vector = [0.5, -0.25, 1.0]
    assert bytes_to_vector(vector_to_bytes(vector)) == pytest.approx(vector)
