"""Redis caching service for query embeddings."""

import hashlib
import json
import logging
from typing import Optional

import redis.asyncio as redis

from docdialogue.core.config import settings
from docdialogue.core.exceptions import CacheError

logger = logging.getLogger(__name__)


class CacheService:
    """Optional cache; every operation degrades to a miss when Redis is absent."""

    def __init__(self, url: Optional[str] = None) -> None:
        """Initialize the cache service."""
        self.url = settings.redis_url if url is None else url
        self.client: Optional[redis.Redis] = None
        self.ttl = settings.cache_ttl

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def connect(self) -> None:
        """Connect to Redis."""
        if not self.enabled:
            return
        try:
            self.client = redis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=5.0,
            )
            await self.client.ping()
        except Exception as e:
            self.client = None
            raise CacheError(f"Failed to connect to Redis: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.aclose()

    @staticmethod
    def make_key(prefix: str, *parts: str) -> str:
        digest = hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()
        return f"{prefix}:v1:{digest}"

    async def get_json(self, key: str) -> Optional[dict]:
        """
        Get a JSON value from cache.

        Args:
            key: Cache key.

        Returns:
            Parsed JSON value or None if missing or unreadable.
        """
        if not self.client:
            return None
        try:
            value = await self.client.get(key)
        except Exception as e:
            logger.warning(f"Cache get failed: {str(e)}")
            return None
        if not value:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None

    async def set_json(self, key: str, value: dict, ttl: Optional[int] = None) -> None:
        """
        Set a JSON value in cache.

        Args:
            key: Cache key.
            value: Dictionary to cache.
            ttl: Time to live in seconds.
        """
        if not self.client:
            return
        try:
            await self.client.setex(key, ttl or self.ttl, json.dumps(value))
        except Exception as e:
            logger.warning(f"Cache set failed: {str(e)}")
