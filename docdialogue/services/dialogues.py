"""Registration of a shareable dialogue page ahead of ingestion."""

import logging
import secrets

from docdialogue.core.config import Settings, settings
from docdialogue.core.exceptions import InputError
from docdialogue.models.api import DialogueCreateRequest, DialogueCreateResponse
from docdialogue.services.database import DatabaseService
from docdialogue.services.ingest_pipeline import slugify

logger = logging.getLogger(__name__)


def random_suffix(length: int = 8) -> str:
    return secrets.token_hex(length // 2 + 1)[:length]


class DialogueService:
    """Creates document, version and share-surface rows in one step."""

    def __init__(self, database: DatabaseService, config: Settings = settings) -> None:
        self.database = database
        self.config = config

    async def create(self, request: DialogueCreateRequest) -> DialogueCreateResponse:
        """
        Register a new dialogue page for an uploaded object.

        Raises:
            InputError: If title, pageSlugBase or objectPath is missing.
            ConfigError: If the database is not configured.
            DatabaseError: If the rows cannot be written.
        """
        if not (request.title and request.page_slug_base and request.object_path):
            raise InputError("title, pageSlugBase, objectPath required")
        self.config.require("postgres_url")

        base = slugify(request.page_slug_base) or "document"
        page_slug = f"{base}-{random_suffix(8)}"
        document, version, surface = await self.database.create_dialogue(
            title=request.title,
            page_slug=page_slug,
            source_uri=request.object_path,
            mode=request.mode,
            privacy=request.privacy,
        )
        logger.info(
            f"Created dialogue {surface.page_slug} "
            f"(document={document.id}, version={version.id})")

        return DialogueCreateResponse(
            document_id=document.id,
            doc_version_id=version.id,
            page_slug=surface.page_slug,
            page_url=surface.page_url,
            status=version.status.value,
        )
