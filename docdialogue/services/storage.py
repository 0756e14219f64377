"""Object storage client for uploaded source documents."""

import logging
import re
from typing import Optional
from urllib.parse import quote

import httpx

from docdialogue.core.config import settings
from docdialogue.core.exceptions import StorageError

logger = logging.getLogger(__name__)


def normalize_storage_path(object_path: str, bucket: str) -> str:
    """Strip a leading ``<bucket>/`` from an object path."""
    return re.sub(rf"^{re.escape(bucket)}/", "", object_path)


class StorageService:
    """Download objects from a Supabase-compatible storage REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.storage_url).rstrip("/")
        self.service_key = service_key or settings.storage_service_key
        self.bucket = bucket or settings.storage_bucket
        self.transport = transport

    def object_url(self, key: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(key)}"

    async def download(self, object_path: str) -> bytes:
        """
        Download the bytes behind an object path.

        Args:
            object_path: Path inside the bucket, optionally prefixed by it.

        Returns:
            Raw object bytes.

        Raises:
            StorageError: On transport errors or non-success responses.
        """
        key = normalize_storage_path(object_path, self.bucket)
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        try:
            async with httpx.AsyncClient(
                timeout=settings.http_timeout_seconds, transport=self.transport
            ) as client:
                response = await client.get(self.object_url(key), headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StorageError(
                f"Download failed from bucket={self.bucket} key={key}: "
                f"{exc.response.status_code} {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise StorageError(
                f"Download failed from bucket={self.bucket} key={key}: "
                f"{type(exc).__name__}: {exc}"
            ) from exc

        return response.content
