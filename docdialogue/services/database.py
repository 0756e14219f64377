"""Database service for PostgreSQL operations."""

import asyncio
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

import asyncpg

from docdialogue.core.config import settings
from docdialogue.core.exceptions import DatabaseError
from docdialogue.models.document import (
    Chunk,
    Document,
    DocumentVersion,
    JobRecord,
    ShareSurface,
    VersionStatus,
)

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "db" / "schema.sql"


class DatabaseService:
    """Service for PostgreSQL database operations."""

    def __init__(self, dsn: Optional[str] = None) -> None:
        """Initialize database service."""
        self.dsn = dsn or settings.postgres_url
        self.pool: Optional[asyncpg.Pool] = None
        self._connect_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Create connection pool."""
        async with self._connect_lock:
            if self.pool:
                return
            try:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=10,
                )
            except Exception as e:
                raise DatabaseError(
                    f"Failed to connect to database: {str(e)}") from e

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None

    async def _pool(self) -> asyncpg.Pool:
        if not self.pool:
            await self.connect()
        return self.pool

    async def apply_schema(self) -> None:
        """Create tables if they do not exist."""
        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
        except Exception as e:
            raise DatabaseError(f"Failed to apply schema: {str(e)}") from e

    async def upsert_document(self, document: Document) -> None:
        """
        Create or update a document's title and slug.

        Args:
            document: Document row.
        """
        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO documents (id, title, slug)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (id) DO UPDATE
                    SET title = EXCLUDED.title, slug = EXCLUDED.slug,
                        updated_at = now()
                    """,
                    document.id,
                    document.title,
                    document.slug,
                )
        except Exception as e:
            raise DatabaseError(f"documents upsert failed: {str(e)}") from e

    async def upsert_version(self, version: DocumentVersion) -> None:
        """
        Insert a version or overwrite it by id.

        Args:
            version: Version row, normally with status ``processing``.
        """
        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO doc_versions (id, document_id, status, source_uri, version)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (id) DO UPDATE
                    SET document_id = EXCLUDED.document_id,
                        status = EXCLUDED.status,
                        source_uri = EXCLUDED.source_uri,
                        version = EXCLUDED.version,
                        updated_at = now()
                    """,
                    version.id,
                    version.document_id,
                    version.status.value,
                    version.source_uri,
                    version.version,
                )
        except Exception as e:
            raise DatabaseError(f"doc_versions upsert failed: {str(e)}") from e

    async def set_version_status(
        self, doc_version_id: str, status: VersionStatus
    ) -> None:
        """Update the status of a version."""
        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    "UPDATE doc_versions SET status = $1, updated_at = now() WHERE id = $2",
                    status.value,
                    doc_version_id,
                )
        except Exception as e:
            raise DatabaseError(
                f"doc_versions update({status.value}) failed: {str(e)}") from e

    async def upsert_share_surface(self, surface: ShareSurface) -> None:
        """
        Point a document's share surface at a version.

        At most one surface exists per document; it is replaced in place.
        """
        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO share_surfaces
                        (document_id, live_version_id, page_slug, page_url, mode, privacy)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    ON CONFLICT (document_id) DO UPDATE
                    SET live_version_id = EXCLUDED.live_version_id,
                        page_slug = EXCLUDED.page_slug,
                        page_url = EXCLUDED.page_url,
                        mode = EXCLUDED.mode,
                        privacy = EXCLUDED.privacy,
                        updated_at = now()
                    """,
                    surface.document_id,
                    surface.live_version_id,
                    surface.page_slug,
                    surface.page_url,
                    surface.mode,
                    surface.privacy,
                )
        except Exception as e:
            raise DatabaseError(f"share_surfaces upsert failed: {str(e)}") from e

    async def resolve_slug(self, page_slug: str) -> Optional[Tuple[str, str]]:
        """
        Look up the live version behind a page slug.

        Returns:
            ``(document_id, live_version_id)`` or None for an unknown slug.
        """
        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT document_id, live_version_id
                    FROM share_surfaces WHERE page_slug = $1
                    """,
                    page_slug,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to resolve slug: {str(e)}") from e
        if not row:
            return None
        return row["document_id"], row["live_version_id"]

    async def create_dialogue(
        self,
        title: str,
        page_slug: str,
        source_uri: str,
        mode: str,
        privacy: str,
    ) -> Tuple[Document, DocumentVersion, ShareSurface]:
        """
        Register a document, its first version and its share surface.

        All three rows are written in one transaction.
        """
        document = Document(id=str(uuid.uuid4()), title=title, slug=page_slug)
        version = DocumentVersion(
            id=str(uuid.uuid4()), document_id=document.id, source_uri=source_uri)
        surface = ShareSurface(
            document_id=document.id,
            live_version_id=version.id,
            page_slug=page_slug,
            page_url=f"/d/{page_slug}",
            mode=mode,
            privacy=privacy,
        )

        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        "INSERT INTO documents (id, title, slug) VALUES ($1, $2, $3)",
                        document.id, document.title, document.slug,
                    )
                    await conn.execute(
                        """
                        INSERT INTO doc_versions (id, document_id, status, source_uri, version)
                        VALUES ($1, $2, $3, $4, $5)
                        """,
                        version.id, version.document_id, version.status.value,
                        version.source_uri, version.version,
                    )
                    await conn.execute(
                        """
                        INSERT INTO share_surfaces
                            (document_id, live_version_id, page_slug, page_url, mode, privacy)
                        VALUES ($1, $2, $3, $4, $5, $6)
                        """,
                        surface.document_id, surface.live_version_id,
                        surface.page_slug, surface.page_url,
                        surface.mode, surface.privacy,
                    )
        except Exception as e:
            raise DatabaseError(f"Failed to create dialogue: {str(e)}") from e

        return document, version, surface

    async def insert_sections(self, doc_version_id: str, chunks: List[Chunk]) -> None:
        """
        Persist chunks as editor-facing sections (insert-only).

        Args:
            doc_version_id: Owning version.
            chunks: Chunks in index order.
        """
        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                await conn.executemany(
                    """
                    INSERT INTO doc_sections (doc_version_id, idx, path, heading, body)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    [
                        (doc_version_id, chunk.index, chunk.path,
                         chunk.heading, chunk.text)
                        for chunk in chunks
                    ],
                )
        except Exception as e:
            raise DatabaseError(f"doc_sections insert failed: {str(e)}") from e

    async def upsert_job(self, job: JobRecord) -> None:
        """Record the outcome of a job, replacing any previous record."""
        pool = await self._pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO jobs (document_id, doc_version_id, type, status, error, updated_at)
                    VALUES ($1, $2, $3, $4, $5, now())
                    ON CONFLICT (document_id, doc_version_id, type) DO UPDATE
                    SET status = EXCLUDED.status, error = EXCLUDED.error,
                        updated_at = now()
                    """,
                    job.document_id,
                    job.doc_version_id,
                    job.type,
                    job.status.value,
                    job.error,
                )
        except Exception as e:
            raise DatabaseError(f"jobs upsert failed: {str(e)}") from e
