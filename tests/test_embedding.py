"""Tests for the embedding service."""

import pytest

from docdialogue.core.exceptions import EmbeddingError
from docdialogue.models.document import Chunk
from docdialogue.services.embedding import EmbeddingService, batched
from docdialogue.services.retry import RetryPolicy

from conftest import FakeOpenAI, no_sleep, text_vector


def make_chunks(count):
    return [Chunk(index=i, text=f"chunk number {i}") for i in range(count)]


def test_batched():
    assert batched([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert batched([], 3) == []


@pytest.mark.asyncio
async def test_vectors_follow_chunk_order_across_batches():
    client = FakeOpenAI()
    service = EmbeddingService(
        client=client, batch_size=2, retry_policy=RetryPolicy(sleep=no_sleep))

    vectors = await service.embed_chunks(make_chunks(5))

    assert [len(call) for call in client.embeddings.calls] == [2, 2, 1]
    assert [v.index for v in vectors] == [0, 1, 2, 3, 4]
    assert vectors[3].values == text_vector("chunk number 3")
    assert vectors[3].snippet == "chunk number 3"


@pytest.mark.asyncio
async def test_transient_failures_are_retried():
    client = FakeOpenAI(failures=3)
    service = EmbeddingService(
        client=client, retry_policy=RetryPolicy(max_attempts=4, sleep=no_sleep))

    vectors = await service.embed_chunks(make_chunks(1))

    assert len(vectors) == 1
    assert len(client.embeddings.calls) == 4


@pytest.mark.asyncio
async def test_exhausted_retries_raise_embedding_error():
    client = FakeOpenAI(failures=10)
    service = EmbeddingService(
        client=client, retry_policy=RetryPolicy(max_attempts=4, sleep=no_sleep))

    with pytest.raises(EmbeddingError, match="rate limited"):
        await service.embed_chunks(make_chunks(1))
    assert len(client.embeddings.calls) == 4


@pytest.mark.asyncio
async def test_query_embedding_is_not_retried():
    client = FakeOpenAI(failures=1)
    service = EmbeddingService(client=client, retry_policy=RetryPolicy(sleep=no_sleep))

    with pytest.raises(EmbeddingError):
        await service.embed_query("what is this?")
    assert len(client.embeddings.calls) == 1


@pytest.mark.asyncio
async def test_query_embedding_uses_cache():
    class MemoryCache:
        def __init__(self):
            self.store = {}

        def make_key(self, prefix, *parts):
            return ":".join((prefix,) + parts)

        async def get_json(self, key):
            return self.store.get(key)

        async def set_json(self, key, value, ttl=None):
            self.store[key] = value

    client = FakeOpenAI()
    service = EmbeddingService(client=client, model="m", cache=MemoryCache())

    first = await service.embed_query("hello")
    second = await service.embed_query("hello")

    assert first == second == text_vector("hello")
    assert len(client.embeddings.calls) == 1
