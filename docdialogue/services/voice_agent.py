"""Voice agent signed-URL exchange."""

import logging
from typing import Optional

import httpx

from docdialogue.core.config import settings
from docdialogue.core.exceptions import ConfigError, InputError, UpstreamError

logger = logging.getLogger(__name__)


class VoiceAgentService:
    """Obtain short-lived conversation URLs for the embedded voice widget."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.elevenlabs_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.elevenlabs_base_url).rstrip("/")
        self.transport = transport

    async def get_signed_url(self, agent_id: Optional[str]) -> str:
        """
        Exchange an agent id for a signed conversation URL.

        Raises:
            ConfigError: If no API key is configured.
            InputError: If ``agent_id`` is missing.
            UpstreamError: If the provider rejects the request.
        """
        if not self.api_key:
            raise ConfigError("Missing ELEVENLABS_API_KEY")
        if not agent_id:
            raise InputError("Missing agent_id")

        try:
            async with httpx.AsyncClient(
                timeout=settings.http_timeout_seconds, transport=self.transport
            ) as client:
                response = await client.get(
                    f"{self.base_url}/v1/convai/conversation/get-signed-url",
                    params={"agent_id": agent_id},
                    headers={"xi-api-key": self.api_key},
                )
        except httpx.HTTPError as exc:
            logger.error(f"Signed URL request failed: {type(exc).__name__}: {exc}")
            raise UpstreamError(
                f"Failed to get signed URL: {type(exc).__name__}") from exc

        if response.status_code >= 400:
            raise UpstreamError(
                f"Failed to get signed URL: {response.status_code} {response.text}")

        try:
            signed_url = response.json().get("signed_url")
        except ValueError as exc:
            raise UpstreamError("Failed to get signed URL: invalid response") from exc
        if not signed_url:
            raise UpstreamError("Failed to get signed URL: empty response")
        return signed_url
