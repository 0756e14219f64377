"""Tests for the Qdrant-backed namespaced vector index (in-memory Qdrant)."""

import uuid

import pytest
import pytest_asyncio
from qdrant_client import AsyncQdrantClient

from docdialogue.models.document import VectorRecord
from docdialogue.services.vector_db import (
    VectorDBService,
    namespace_for,
    point_id_for,
    record_id_for,
)

NS_A = namespace_for("doc-1", "ver-1")
NS_B = namespace_for("doc-1", "ver-2")


def record(idx, values, document_id="doc-1"):
    return VectorRecord(
        id=record_id_for(document_id, idx),
        values=values,
        metadata={"idx": idx, "path": "root", "text_snippet": f"snippet {idx}"},
    )


@pytest_asyncio.fixture
async def vector_db():
    service = VectorDBService(
        client=AsyncQdrantClient(location=":memory:"),
        collection_name="test-docs",
        dimensions=4,
    )
    await service.connect()
    yield service
    await service.disconnect()


def test_identifiers():
    assert namespace_for("d", "v") == "doc:d:v:v"
    assert record_id_for("d", 3) == "d-3"
    point_id = point_id_for(NS_A, "doc-1-0")
    assert uuid.UUID(point_id).version == 5
    assert point_id == point_id_for(NS_A, "doc-1-0")
    assert point_id != point_id_for(NS_B, "doc-1-0")


@pytest.mark.asyncio
async def test_upsert_and_query_within_namespace(vector_db):
    await vector_db.upsert_batched(NS_A, [
        record(0, [1.0, 0.0, 0.0, 0.0]),
        record(1, [0.0, 1.0, 0.0, 0.0]),
        record(2, [0.7, 0.7, 0.0, 0.0]),
    ], batch_size=2)
    await vector_db.upsert(NS_B, [record(0, [1.0, 0.0, 0.0, 0.0])])

    matches = await vector_db.query(NS_A, [1.0, 0.0, 0.0, 0.0], top_k=2)

    assert [m.id for m in matches] == ["doc-1-0", "doc-1-2"]
    assert matches[0].score >= matches[1].score
    assert matches[0].idx == 0
    assert matches[0].snippet == "snippet 0"
    assert "namespace" not in matches[0].metadata


@pytest.mark.asyncio
async def test_reupsert_overwrites_and_clear_is_scoped(vector_db):
    records = [record(i, [1.0, float(i), 0.0, 0.0]) for i in range(3)]
    await vector_db.upsert_batched(NS_A, records, batch_size=150)
    await vector_db.upsert_batched(NS_A, records, batch_size=150)
    await vector_db.upsert_batched(NS_B, records[:1], batch_size=150)

    assert await vector_db.count(NS_A) == 3
    assert sorted(await vector_db.list_ids(NS_A)) == ["doc-1-0", "doc-1-1", "doc-1-2"]

    await vector_db.clear_namespace(NS_A)

    assert await vector_db.count(NS_A) == 0
    assert await vector_db.count(NS_B) == 1


@pytest.mark.asyncio
async def test_query_empty_namespace(vector_db):
    assert await vector_db.query(NS_A, [0.0, 0.0, 1.0, 0.0], top_k=5) == []
