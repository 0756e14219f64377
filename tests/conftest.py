"""Shared fixtures and in-memory collaborators for docdialogue tests."""

import hashlib
import math
from types import SimpleNamespace
from typing import Dict, List, Optional, Set, Tuple

import pytest

from docdialogue.core.config import Settings
from docdialogue.core.exceptions import DatabaseError, LLMError, StorageError, VectorDBError
from docdialogue.models.document import (
    Chunk,
    Document,
    DocumentVersion,
    JobRecord,
    ShareSurface,
    VectorMatch,
    VectorRecord,
    VersionStatus,
)
from docdialogue.services.embedding import EmbeddingService
from docdialogue.services.ingest_pipeline import IngestPipeline, VersionLocks
from docdialogue.services.query_processor import QueryProcessor
from docdialogue.services.retry import RetryPolicy

TEST_DIMENSIONS = 8


async def no_sleep(seconds: float) -> None:
    return None


def text_vector(text: str, dimensions: int = TEST_DIMENSIONS) -> List[float]:
    """Deterministic pseudo-embedding derived from a text digest."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(digest[i % len(digest)] + 1) / 256 for i in range(dimensions)]


class FakeEmbeddingsAPI:
    """Stands in for ``AsyncOpenAI().embeddings``."""

    def __init__(self, dimensions: int = TEST_DIMENSIONS, failures: int = 0) -> None:
        self.dimensions = dimensions
        self.failures = failures
        self.calls: List[List[str]] = []

    async def create(self, model: str, input: List[str]):
        self.calls.append(list(input))
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("rate limited")
        # Out of order on purpose: callers must sort by index.
        data = [
            SimpleNamespace(index=i, embedding=text_vector(text, self.dimensions))
            for i, text in enumerate(input)
        ]
        return SimpleNamespace(data=list(reversed(data)))


class FakeOpenAI:
    def __init__(self, dimensions: int = TEST_DIMENSIONS, failures: int = 0) -> None:
        self.embeddings = FakeEmbeddingsAPI(dimensions, failures)


class FakeLLM:
    """Records prompts and returns a canned answer."""

    model = "fake-llm"

    def __init__(self, reply: str = "The answer is in the document [#1].") -> None:
        self.reply = reply
        self.calls: List[Tuple[str, str]] = []
        self.fail = False

    async def complete(self, system: str, user: str) -> str:
        self.calls.append((system, user))
        if self.fail:
            raise LLMError("Failed to generate response: boom")
        return self.reply


class FakeDatabase:
    """In-memory relational store; ``fail_on`` names methods that raise."""

    def __init__(self) -> None:
        self.documents: Dict[str, Document] = {}
        self.versions: Dict[str, DocumentVersion] = {}
        self.surfaces: Dict[str, ShareSurface] = {}
        self.sections: Dict[str, List[Chunk]] = {}
        self.jobs: Dict[Tuple[str, str, str], JobRecord] = {}
        self.fail_on: Set[str] = set()

    def _check(self, name: str) -> None:
        if name in self.fail_on:
            raise DatabaseError(f"{name} failed")

    async def upsert_document(self, document: Document) -> None:
        self._check("upsert_document")
        self.documents[document.id] = document

    async def upsert_version(self, version: DocumentVersion) -> None:
        self._check("upsert_version")
        self.versions[version.id] = version

    async def set_version_status(self, doc_version_id: str, status: VersionStatus) -> None:
        self._check("set_version_status")
        version = self.versions.get(doc_version_id)
        if version is not None:
            self.versions[doc_version_id] = version.model_copy(update={"status": status})

    async def upsert_share_surface(self, surface: ShareSurface) -> None:
        self._check("upsert_share_surface")
        self.surfaces[surface.document_id] = surface

    async def resolve_slug(self, page_slug: str) -> Optional[Tuple[str, str]]:
        self._check("resolve_slug")
        for surface in self.surfaces.values():
            if surface.page_slug == page_slug:
                return surface.document_id, surface.live_version_id
        return None

    async def create_dialogue(
        self, title: str, page_slug: str, source_uri: str, mode: str, privacy: str
    ) -> Tuple[Document, DocumentVersion, ShareSurface]:
        self._check("create_dialogue")
        index = len(self.documents) + 1
        document = Document(id=f"doc-{index}", title=title, slug=page_slug)
        version = DocumentVersion(
            id=f"ver-{index}", document_id=document.id, source_uri=source_uri)
        surface = ShareSurface(
            document_id=document.id,
            live_version_id=version.id,
            page_slug=page_slug,
            page_url=f"/d/{page_slug}",
            mode=mode,
            privacy=privacy,
        )
        self.documents[document.id] = document
        self.versions[version.id] = version
        self.surfaces[document.id] = surface
        return document, version, surface

    async def insert_sections(self, doc_version_id: str, chunks: List[Chunk]) -> None:
        self._check("insert_sections")
        self.sections.setdefault(doc_version_id, []).extend(chunks)

    async def upsert_job(self, job: JobRecord) -> None:
        self._check("upsert_job")
        self.jobs[(job.document_id, job.doc_version_id, job.type)] = job


def cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeVectorIndex:
    """Namespaced in-memory vector index with write accounting."""

    def __init__(self) -> None:
        self.namespaces: Dict[str, Dict[str, VectorRecord]] = {}
        self.write_calls = 0
        self.clear_calls = 0
        self.fail_clear = False
        self.fail_upsert = False

    async def clear_namespace(self, namespace: str) -> None:
        self.clear_calls += 1
        if self.fail_clear:
            raise VectorDBError("delete not permitted")
        self.namespaces.pop(namespace, None)

    async def upsert_batched(
        self, namespace: str, records: List[VectorRecord], batch_size: int
    ) -> int:
        self.write_calls += 1
        if self.fail_upsert:
            raise VectorDBError("Failed to upsert vectors: unavailable")
        store = self.namespaces.setdefault(namespace, {})
        for record in records:
            store[record.id] = record
        return len(records)

    async def query(self, namespace: str, vector: List[float], top_k: int) -> List[VectorMatch]:
        store = self.namespaces.get(namespace, {})
        matches = [
            VectorMatch(id=record.id, score=cosine(vector, record.values),
                        metadata=dict(record.metadata))
            for record in store.values()
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    async def count(self, namespace: str) -> int:
        return len(self.namespaces.get(namespace, {}))

    async def list_ids(self, namespace: str) -> List[str]:
        return sorted(self.namespaces.get(namespace, {}))


class FakeStorage:
    """Object storage backed by a dict of ``key -> bytes``."""

    def __init__(self, bucket: str = "uploads") -> None:
        self.bucket = bucket
        self.objects: Dict[str, bytes] = {}

    async def download(self, object_path: str) -> bytes:
        key = object_path[len(self.bucket) + 1:] if object_path.startswith(
            f"{self.bucket}/") else object_path
        if key not in self.objects:
            raise StorageError(
                f"Download failed from bucket={self.bucket} key={key}: 404 Not Found")
        return self.objects[key]


@pytest.fixture
def test_settings() -> Settings:
    """Fully configured settings with a small embedding dimensionality."""
    return Settings(
        openai_api_key="sk-test",
        postgres_url="postgresql://test@localhost/test",
        qdrant_url="http://localhost:6333",
        qdrant_collection_name="test-docs",
        storage_url="http://storage.local",
        storage_service_key="service-key",
        storage_bucket="uploads",
        embedding_dimensions=TEST_DIMENSIONS,
        redis_url="",
    )


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def fake_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_openai() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def embedding_service(fake_openai) -> EmbeddingService:
    return EmbeddingService(
        client=fake_openai,
        model="text-embedding-test",
        retry_policy=RetryPolicy(sleep=no_sleep, name="embeddings"),
    )


@pytest.fixture
def pipeline(fake_db, fake_index, fake_storage, embedding_service, test_settings) -> IngestPipeline:
    return IngestPipeline(
        database=fake_db,
        vector_db=fake_index,
        embedding_service=embedding_service,
        storage=fake_storage,
        config=test_settings,
        locks=VersionLocks(),
    )


@pytest.fixture
def processor(fake_db, fake_index, embedding_service, fake_llm, test_settings) -> QueryProcessor:
    return QueryProcessor(
        vector_db=fake_index,
        embedding_service=embedding_service,
        llm_service=fake_llm,
        database=fake_db,
        config=test_settings,
    )
