"""Health check service for dependency verification."""

import time
from typing import Any, Dict

from docdialogue.core.config import settings
from docdialogue.services.cache import CacheService
from docdialogue.services.database import DatabaseService
from docdialogue.services.embedding import EmbeddingService
from docdialogue.services.vector_db import VectorDBService


async def check_qdrant(vector_db: VectorDBService) -> Dict[str, Any]:
    """
    Check Qdrant connectivity and health.

    Args:
        vector_db: VectorDBService instance.

    Returns:
        Health status dictionary.
    """
    if not (settings.qdrant_url and settings.qdrant_collection_name):
        return {"status": "not_configured"}
    try:
        start_time = time.time()
        await vector_db.connect()
        collections = await vector_db.client.get_collections()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
            "collections": len(collections.collections),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_redis(cache_service: CacheService) -> Dict[str, Any]:
    """
    Check Redis connectivity; the cache is optional.

    Args:
        cache_service: CacheService instance.

    Returns:
        Health status dictionary.
    """
    if not cache_service.enabled:
        return {"status": "not_configured"}
    try:
        start_time = time.time()
        if not cache_service.client:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        await cache_service.client.ping()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_openai(embedding_service: EmbeddingService) -> Dict[str, Any]:
    """
    Check OpenAI API connectivity through the shared embedding client.

    OpenAI is required, so a missing key is unhealthy.

    Args:
        embedding_service: EmbeddingService instance.

    Returns:
        Health status dictionary.
    """
    if not settings.openai_api_key:
        return {"status": "unhealthy", "error": "API key not set"}
    try:
        start_time = time.time()
        await embedding_service.client.models.list()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        error_msg = str(e).lower()
        if "api key" in error_msg or "authentication" in error_msg:
            return {"status": "unhealthy", "error": "Invalid API key"}
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_postgres(database: DatabaseService) -> Dict[str, Any]:
    """
    Check PostgreSQL connectivity.

    Returns:
        Health status dictionary.
    """
    if not settings.postgres_url:
        return {"status": "not_configured"}
    try:
        start_time = time.time()
        await database.connect()
        async with database.pool.acquire() as conn:
            await conn.execute("SELECT 1")
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }
