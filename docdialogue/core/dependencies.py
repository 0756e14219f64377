"""Dependency injection for services."""

import logging

from docdialogue.core.config import settings
from docdialogue.services.cache import CacheService
from docdialogue.services.database import DatabaseService
from docdialogue.services.dialogues import DialogueService
from docdialogue.services.embedding import EmbeddingService
from docdialogue.services.ingest_pipeline import IngestPipeline, VersionLocks
from docdialogue.services.llm import LLMService
from docdialogue.services.query_processor import QueryProcessor
from docdialogue.services.storage import StorageService
from docdialogue.services.vector_db import VectorDBService
from docdialogue.services.voice_agent import VoiceAgentService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Container for service instances shared by the request handlers."""

    def __init__(self) -> None:
        """Initialize service container."""
        self.cache_service = CacheService()
        self.vector_db = VectorDBService()
        self.embedding_service = EmbeddingService(cache=self.cache_service)
        self.llm_service = LLMService()
        self.database = DatabaseService()
        self.storage = StorageService()
        self.voice_agent = VoiceAgentService()
        self.version_locks = VersionLocks()

    async def initialize(self) -> None:
        """
        Connect the configured backends.

        Unconfigured or unreachable backends are only logged here; requests
        that need them fail with a configuration or connection error instead.
        """
        if settings.redis_url:
            try:
                await self.cache_service.connect()
            except Exception as e:
                logger.warning(f"Cache disabled: {str(e)}")
        if settings.qdrant_url and settings.qdrant_collection_name:
            try:
                await self.vector_db.connect()
            except Exception as e:
                logger.warning(f"Vector index not ready at startup: {str(e)}")
        if settings.postgres_url:
            try:
                await self.database.connect()
            except Exception as e:
                logger.warning(f"Database not ready at startup: {str(e)}")

    async def shutdown(self) -> None:
        """Shutdown all services."""
        await self.database.disconnect()
        await self.vector_db.disconnect()
        await self.cache_service.disconnect()


services = ServiceContainer()


def get_ingest_pipeline() -> IngestPipeline:
    return IngestPipeline(
        database=services.database,
        vector_db=services.vector_db,
        embedding_service=services.embedding_service,
        storage=services.storage,
        locks=services.version_locks,
    )


def get_query_processor() -> QueryProcessor:
    return QueryProcessor(
        vector_db=services.vector_db,
        embedding_service=services.embedding_service,
        llm_service=services.llm_service,
        database=services.database,
    )


def get_dialogue_service() -> DialogueService:
    return DialogueService(database=services.database)


def get_voice_agent() -> VoiceAgentService:
    return services.voice_agent
