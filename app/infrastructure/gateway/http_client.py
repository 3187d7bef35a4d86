"""Shared HTTP plumbing for gateway clients."""

from typing import Any
from urllib.parse import urlsplit

import httpx

from app.infrastructure.gateway.auth import (
    DEFAULT_AUTH_STRATEGIES,
    AuthStrategy,
    request_with_auth_fallback,
)
from app.infrastructure.gateway.base import DownloadedMedia, GatewayClientProtocol, GatewayError
from app.persistence.models.channel_instance import ChannelInstance
from app.settings import settings


class HttpGatewayClient(GatewayClientProtocol):
    """Gateway client bound to one channel instance, speaking HTTP via httpx."""

    auth_strategies: tuple[AuthStrategy, ...] = DEFAULT_AUTH_STRATEGIES

    def __init__(
        self,
        instance: ChannelInstance,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize gateway client.

        Args:
            instance: Channel instance the client talks to
            transport: Optional transport override (used by tests)
        """
        self.base_url = instance.api_base_url
        self.api_key = instance.api_key
        self.session_name = instance.session_name
        self._transport = transport

    def _get_client(self, timeout: float) -> httpx.AsyncClient:
        """Create HTTP client with the given timeout."""
        return httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    def _is_gateway_url(self, url: str) -> bool:
        """Whether a URL points at this gateway (and may receive its API key)."""
        return urlsplit(url).netloc.lower() == urlsplit(self.base_url).netloc.lower()

    async def _request_json(self, method: str, url: str, timeout: float, **kwargs) -> Any | None:
        """Send an authenticated request and decode JSON.

        Returns:
            Decoded body, or None on a non-success response or a non-JSON body

        Raises:
            GatewayError: On transport failure
        """
        async with self._get_client(timeout) as client:
            response = await request_with_auth_fallback(
                client, method, url, self.api_key, self.auth_strategies, **kwargs
            )
        if not response.is_success:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def download_media(self, url: str) -> DownloadedMedia | None:
        """Download media, sending credentials only to the gateway's own host."""
        api_key = self.api_key if self._is_gateway_url(url) else None
        async with self._get_client(settings.gateway_media_timeout_seconds) as client:
            response = await request_with_auth_fallback(
                client, "GET", url, api_key, self.auth_strategies
            )
            if not response.is_success:
                return None
            if len(response.content) > settings.media_max_bytes:
                raise GatewayError(f"Media at {url} exceeds {settings.media_max_bytes} bytes")
            return DownloadedMedia(
                content=response.content,
                content_type=response.headers.get("content-type"),
            )
