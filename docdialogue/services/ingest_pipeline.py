"""Ingest orchestration: storage bytes to indexed, versioned vectors.

Stages run strictly in order::

    init_rows -> download -> extract -> parse_chunk -> embed
              -> dimension_check -> vector_upsert -> persist_sections -> finalize

Each stage returns a ``StageResult``. ``WARNING`` results come from
best-effort relational writes and are logged; ``FATAL`` results mark the
version ``error``, record a failed job and abort the run.
"""

import asyncio
import logging
import re
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence

from docdialogue.core.config import INGEST_REQUIRED, Settings, settings
from docdialogue.core.exceptions import FatalPipelineError, InputError
from docdialogue.models.api import IngestRequest, IngestResponse
from docdialogue.models.document import (
    Chunk,
    Document,
    DocumentVersion,
    EmbeddingVector,
    JobRecord,
    JobStatus,
    ShareSurface,
    VectorRecord,
    VersionStatus,
)
from docdialogue.models.results import StageResult
from docdialogue.monitoring.metrics import (
    ingest_failures_total,
    ingest_stage_seconds,
    ingest_warnings_total,
    ingests_total,
)
from docdialogue.monitoring.tracing import RequestTrace
from docdialogue.services.chunking import ChunkingService
from docdialogue.services.database import DatabaseService
from docdialogue.services.embedding import EmbeddingService
from docdialogue.services.extraction import ExtractionService, guess_ext
from docdialogue.services.sanitizer import safe_snippet, sanitize
from docdialogue.services.storage import StorageService, normalize_storage_path
from docdialogue.services.vector_db import (
    VectorDBService,
    namespace_for,
    record_id_for,
)

logger = logging.getLogger(__name__)

JOB_TYPE = "ingest"
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str, max_len: int = 60) -> str:
    """Lowercase, hyphen-separated, URL-safe form of ``value``."""
    return _SLUG_STRIP_RE.sub("-", value.lower()).strip("-")[:max_len]


def page_url_for(page_slug: str) -> str:
    return f"/d/{page_slug}"


class VersionLocks:
    """
    In-process advisory locks keyed by vector namespace.

    Serialises clear-then-upsert for concurrent ingests of one version
    within a worker. Separate processes are not coordinated. A lock is
    dropped once its last holder or waiter leaves.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, namespace: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(namespace, asyncio.Lock())
        self._users[namespace] = self._users.get(namespace, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[namespace] -= 1
            if not self._users[namespace]:
                del self._users[namespace]
                del self._locks[namespace]


@dataclass
class IngestContext:
    """State carried between the stages of one run."""

    trace: RequestTrace
    document_id: str
    doc_version_id: str
    title: str
    page_slug: str
    object_path: str
    namespace: str
    data: bytes = b""
    text: str = ""
    chunks: List[Chunk] = field(default_factory=list)
    vectors: List[EmbeddingVector] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class IngestPipeline:
    """Runs one ingest job per call; holds no per-request state."""

    def __init__(
        self,
        database: DatabaseService,
        vector_db: VectorDBService,
        embedding_service: EmbeddingService,
        storage: StorageService,
        extractor: Optional[ExtractionService] = None,
        chunker: Optional[ChunkingService] = None,
        config: Settings = settings,
        required_settings: Sequence[str] = INGEST_REQUIRED,
        locks: Optional[VersionLocks] = None,
    ) -> None:
        """
        Initialize the pipeline with its collaborators.

        Args:
            database: Relational system of record.
            vector_db: Namespaced vector index.
            embedding_service: Embedding client with retry.
            storage: Source object storage.
            extractor: Format-specific text extraction.
            chunker: Paragraph chunker.
            config: Settings providing dimensionality and batch sizes.
            required_settings: Settings that must be present per request.
            locks: Per-version advisory locks.
        """
        self.database = database
        self.vector_db = vector_db
        self.embedding_service = embedding_service
        self.storage = storage
        self.extractor = extractor or ExtractionService()
        self.chunker = chunker or ChunkingService()
        self.config = config
        self.required_settings = tuple(required_settings)
        self.locks = locks if locks is not None else VersionLocks()

    async def run(
        self, request: IngestRequest, trace: Optional[RequestTrace] = None
    ) -> IngestResponse:
        """
        Ingest one uploaded document as a new or replaced version.

        Args:
            request: Ingest parameters; only ``object_path`` is required.
            trace: Request trace for timing logs.

        Returns:
            Identifiers of the ingested version and its chunk count.

        Raises:
            InputError: If ``object_path`` is missing.
            ConfigError: If required settings are missing.
            FatalPipelineError: If any fatal stage fails.
        """
        if not request.object_path:
            raise InputError("objectPath required")
        self.config.require(*self.required_settings)

        trace = trace or RequestTrace("ingest", histogram=ingest_stage_seconds)
        ingests_total.inc()
        ctx = self._new_context(request, trace)

        for result in await self._init_rows(ctx):
            await self._handle(ctx, result)

        stages = (
            self._download,
            self._extract,
            self._parse_chunk,
            self._embed,
            self._check_dimensions,
            self._index,
        )
        for stage in stages:
            await self._handle(ctx, await stage(ctx))

        await self._handle(ctx, await self._persist_sections(ctx))
        for result in await self._finalize(ctx):
            await self._handle(ctx, result)

        trace.latency("total")
        return IngestResponse(
            document_id=ctx.document_id,
            doc_version_id=ctx.doc_version_id,
            page_slug=ctx.page_slug,
            page_url=page_url_for(ctx.page_slug),
            chunks=len(ctx.chunks),
        )

    def _new_context(self, request: IngestRequest, trace: RequestTrace) -> IngestContext:
        document_id = request.document_id or str(uuid.uuid4())
        doc_version_id = request.doc_version_id or str(uuid.uuid4())
        filename = request.object_path.split("/")[-1]
        title = request.title or filename or "document"
        page_slug = request.slug or (
            f"{slugify(request.title or filename) or 'document'}-{document_id[:8]}")
        return IngestContext(
            trace=trace,
            document_id=document_id,
            doc_version_id=doc_version_id,
            title=title,
            page_slug=page_slug,
            object_path=request.object_path,
            namespace=namespace_for(document_id, doc_version_id),
        )

    async def _handle(self, ctx: IngestContext, result: StageResult) -> None:
        """Log warnings; turn fatal results into failure bookkeeping and abort."""
        if result.is_warning:
            ingest_warnings_total.labels(stage=result.stage).inc()
            ctx.warnings.append(result.message)
            detail = str(result.error) if result.error else None
            ctx.trace.warn(result.message, detail)
        elif result.is_fatal:
            ingest_failures_total.labels(stage=result.stage).inc()
            ctx.trace.error(result.message, result.error)
            await self.mark_failed(ctx, result.message)
            raise FatalPipelineError(result.message, stage=result.stage)

    async def mark_failed(self, ctx: IngestContext, error: str) -> None:
        """
        Set the version to ``error`` and record a failed job.

        Never raises: a bookkeeping failure must not mask the original error.
        """
        try:
            await self.database.set_version_status(
                ctx.doc_version_id, VersionStatus.ERROR)
        except Exception as e:
            logger.error(
                f"[markFailed] trace={ctx.trace.trace_id} "
                f"failed to mark version error: {str(e)}")
        try:
            await self.database.upsert_job(
                JobRecord(
                    document_id=ctx.document_id,
                    doc_version_id=ctx.doc_version_id,
                    type=JOB_TYPE,
                    status=JobStatus.FAILED,
                    error=error,
                )
            )
        except Exception as e:
            logger.error(
                f"[markFailed] trace={ctx.trace.trace_id} "
                f"failed to record failed job: {str(e)}")

    async def _init_rows(self, ctx: IngestContext) -> List[StageResult]:
        started = ctx.trace.clock()
        writes = (
            ("documents upsert",
             self.database.upsert_document(
                 Document(id=ctx.document_id, title=ctx.title, slug=ctx.page_slug))),
            ("doc_versions upsert",
             self.database.upsert_version(
                 DocumentVersion(
                     id=ctx.doc_version_id,
                     document_id=ctx.document_id,
                     status=VersionStatus.PROCESSING,
                     source_uri=ctx.object_path,
                 ))),
            ("share_surfaces upsert",
             self.database.upsert_share_surface(
                 ShareSurface(
                     document_id=ctx.document_id,
                     live_version_id=ctx.doc_version_id,
                     page_slug=ctx.page_slug,
                     page_url=page_url_for(ctx.page_slug),
                 ))),
        )
        results = []
        for label, write in writes:
            try:
                await write
                results.append(StageResult.ok("init_rows"))
            except Exception as e:
                results.append(StageResult.warning("init_rows", f"{label} warning", e))

        ctx.trace.latency(
            "init_rows", started,
            document_id=ctx.document_id,
            doc_version_id=ctx.doc_version_id,
            page_slug=ctx.page_slug,
        )
        return results

    async def _download(self, ctx: IngestContext) -> StageResult:
        started = ctx.trace.clock()
        try:
            ctx.data = await self.storage.download(ctx.object_path)
        except Exception as e:
            return StageResult.fatal("download", str(e), e)

        ctx.trace.latency(
            "download", started,
            bucket=self.storage.bucket,
            key=normalize_storage_path(ctx.object_path, self.storage.bucket),
            size_bytes=len(ctx.data),
        )
        return StageResult.ok("download")

    async def _extract(self, ctx: IngestContext) -> StageResult:
        started = ctx.trace.clock()
        ext = guess_ext(ctx.object_path)
        try:
            ctx.text = await asyncio.to_thread(self.extractor.extract, ext, ctx.data)
        except Exception as e:
            ctx.trace.error(f"extractText({ext}) failed", e)
            ctx.text = ""
        if not ctx.text:
            return StageResult.fatal(
                "extract", "No text extracted (unsupported or empty)")

        ctx.trace.latency("extract", started, ext=ext, raw_chars=len(ctx.text))
        return StageResult.ok("extract")

    async def _parse_chunk(self, ctx: IngestContext) -> StageResult:
        started = ctx.trace.clock()
        cleaned = sanitize(ctx.text)
        ctx.chunks = self.chunker.chunk_text(cleaned)
        if not ctx.chunks:
            return StageResult.fatal("parse_chunk", "No chunks produced")

        ctx.trace.latency(
            "parse_chunk", started,
            chars=len(cleaned),
            chunks=len(ctx.chunks),
            avg_chunk_chars=round(len(cleaned) / len(ctx.chunks)),
        )
        return StageResult.ok("parse_chunk")

    async def _embed(self, ctx: IngestContext) -> StageResult:
        started = ctx.trace.clock()
        try:
            ctx.vectors = await self.embedding_service.embed_chunks(ctx.chunks)
        except Exception as e:
            return StageResult.fatal("embed", f"embedding failed: {str(e)}", e)

        if len(ctx.vectors) != len(ctx.chunks):
            return StageResult.fatal(
                "embed",
                f"Embedding count {len(ctx.vectors)} != chunk count {len(ctx.chunks)}")

        ctx.trace.latency(
            "embed", started,
            vectors=len(ctx.vectors),
            model=self.embedding_service.model,
        )
        return StageResult.ok("embed")

    async def _check_dimensions(self, ctx: IngestContext) -> StageResult:
        expected = self.config.embedding_dimensions
        for vector in ctx.vectors:
            if len(vector.values) != expected:
                return StageResult.fatal(
                    "dimension_check",
                    f"Embedding dim {len(vector.values)} != index dim {expected}")
        return StageResult.ok("dimension_check")

    def _records(self, ctx: IngestContext) -> List[VectorRecord]:
        return [
            VectorRecord(
                id=record_id_for(ctx.document_id, vector.index),
                values=vector.values,
                metadata={
                    "document_id": ctx.document_id,
                    "doc_version_id": ctx.doc_version_id,
                    "idx": vector.index,
                    "path": vector.path,
                    "text_snippet": safe_snippet(
                        vector.snippet, self.config.embedding_snippet_chars),
                },
            )
            for vector in ctx.vectors
        ]

    async def _index(self, ctx: IngestContext) -> StageResult:
        started = ctx.trace.clock()
        records = self._records(ctx)

        async with self.locks.hold(ctx.namespace):
            try:
                await self.vector_db.clear_namespace(ctx.namespace)
            except Exception as e:
                # Deterministic record ids still give overwrite semantics.
                ctx.trace.warn("clear namespace warning", str(e))

            try:
                upserted = await self.vector_db.upsert_batched(
                    ctx.namespace, records, self.config.upsert_batch_size)
            except Exception as e:
                return StageResult.fatal(
                    "vector_upsert", f"vector upsert failed: {str(e)}", e)

        ctx.trace.latency(
            "vector_upsert", started,
            upserted=upserted,
            namespace=ctx.namespace,
        )
        return StageResult.ok("vector_upsert")

    async def _persist_sections(self, ctx: IngestContext) -> StageResult:
        started = ctx.trace.clock()
        try:
            await self.database.insert_sections(ctx.doc_version_id, ctx.chunks)
        except Exception as e:
            return StageResult.warning(
                "persist_sections", "doc_sections insert warning", e)

        ctx.trace.latency("persist_sections", started, sections=len(ctx.chunks))
        return StageResult.ok("persist_sections")

    async def _finalize(self, ctx: IngestContext) -> List[StageResult]:
        started = ctx.trace.clock()
        results = []
        try:
            await self.database.set_version_status(
                ctx.doc_version_id, VersionStatus.READY)
            results.append(StageResult.ok("finalize"))
        except Exception as e:
            results.append(StageResult.warning(
                "finalize", "doc_versions update(ready) warning", e))
        try:
            await self.database.upsert_job(
                JobRecord(
                    document_id=ctx.document_id,
                    doc_version_id=ctx.doc_version_id,
                    type=JOB_TYPE,
                    status=JobStatus.SUCCEEDED,
                )
            )
            results.append(StageResult.ok("finalize"))
        except Exception as e:
            results.append(StageResult.warning("finalize", "jobs upsert warning", e))

        ctx.trace.latency("finalize", started)
        return results
