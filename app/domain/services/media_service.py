"""Media acquisition and storage for incoming WhatsApp messages.

Sources, first success wins:
    1. a URL on the event
    2. base64 inline on the event
    3. the gateway's fetch-message-by-id endpoint (URL or base64)

The bytes are stored privately and the message keeps a storage:// locator.
The gateway's own media URL is never persisted.
"""

import base64
import binascii
import logging
import time
from urllib.parse import urlsplit, urlunsplit

import httpx

from app.core.content_type import extension_for, sniff_content_type
from app.infrastructure.gateway import DownloadedMedia, GatewayClientProtocol, GatewayError
from app.infrastructure.gateway.auth import request_with_auth_fallback
from app.infrastructure.media_storage import MediaStorage, MediaStorageError
from app.persistence.models.channel_instance import ChannelInstance
from app.settings import settings

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = frozenset(("localhost", "127.0.0.1", "0.0.0.0", "::1"))
GENERIC_CONTENT_TYPES = frozenset(("application/octet-stream", "binary/octet-stream"))


def normalize_media_url(url: str, base_url: str | None = None) -> str:
    """Add a missing scheme and point loopback URLs at the instance's public address.

    Gateways running beside their API often report media as
    http://localhost:3000/api/files/..., which is unreachable from here.
    """
    url = url.strip()
    if "://" not in url:
        url = f"https://{url.lstrip('/')}"
    if not base_url:
        return url

    parts = urlsplit(url)
    if (parts.hostname or "").lower() not in LOOPBACK_HOSTS:
        return url
    base = urlsplit(base_url)
    return urlunsplit((base.scheme, base.netloc, parts.path, parts.query, parts.fragment))


def decode_inline_media(data: str) -> bytes | None:
    """Decode base64 media, with or without a data: URI prefix."""
    if data.startswith("data:"):
        _, _, data = data.partition(",")
    try:
        return base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError):
        return None


class MediaService:
    """Acquires media for a message and uploads it to private storage."""

    def __init__(
        self,
        storage: MediaStorage,
        gateway: GatewayClientProtocol | None = None,
        instance: ChannelInstance | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize media service.

        Args:
            storage: Object storage for the media bytes
            gateway: Client for the owning channel instance, if any
            instance: Owning channel instance (for loopback rewriting)
            transport: Optional transport override for unauthenticated downloads (used by tests)
        """
        self.storage = storage
        self.gateway = gateway
        self.base_url = instance.api_base_url if instance else None
        self._transport = transport

    async def store_message_media(
        self,
        lead_id: int,
        message_type: str,
        media_url: str | None = None,
        inline_data: str | None = None,
        mimetype: str | None = None,
        chat_id: str | None = None,
        external_id: str | None = None,
    ) -> str | None:
        """Acquire and store a message's media.

        Args:
            lead_id: Lead the media belongs to (storage path prefix)
            message_type: image, audio, video or document
            media_url: URL carried on the event
            inline_data: Base64 carried on the event
            mimetype: MIME type reported on the event
            chat_id: Chat id, for the gateway fetch
            external_id: Provider message id, for the gateway fetch

        Returns:
            storage:// locator, or None if no source produced usable bytes
        """
        try:
            media = await self._acquire(media_url, inline_data, mimetype, chat_id, external_id)
            if media is None:
                logger.warning(
                    "No media source produced content",
                    extra={"event_type": "media_unavailable", "lead_id": lead_id, "external_id": external_id},
                )
                return None

            content_type = media.content_type
            if not content_type or content_type.split(";", 1)[0].strip().lower() in GENERIC_CONTENT_TYPES:
                content_type = sniff_content_type(media.content) or mimetype or "application/octet-stream"

            extension = extension_for(content_type, message_type)
            blob_path = self.storage.get_blob_path(lead_id, int(time.time() * 1000), extension)
            return await self.storage.upload(blob_path, media.content, content_type)
        except (GatewayError, MediaStorageError) as e:
            logger.warning(
                f"Media pipeline failed: {e}",
                extra={"event_type": "media_failed", "lead_id": lead_id, "external_id": external_id},
            )
            return None

    async def _acquire(
        self,
        media_url: str | None,
        inline_data: str | None,
        mimetype: str | None,
        chat_id: str | None,
        external_id: str | None,
    ) -> DownloadedMedia | None:
        if media_url:
            media = await self._download(media_url)
            if media is not None:
                return media

        if inline_data:
            media = self._decode(inline_data, mimetype)
            if media is not None:
                return media

        if self.gateway is None or not chat_id or not external_id:
            return None

        fetched = await self.gateway.fetch_message_media(chat_id, external_id)
        if fetched is None:
            return None
        if fetched.url:
            media = await self._download(fetched.url)
            if media is not None:
                return media
        if fetched.data:
            return self._decode(fetched.data, fetched.mimetype or mimetype)
        return None

    async def _download(self, url: str) -> DownloadedMedia | None:
        url = normalize_media_url(url, self.base_url)
        try:
            if self.gateway is not None:
                media = await self.gateway.download_media(url)
            else:
                media = await self._download_unauthenticated(url)
        except GatewayError as e:
            logger.warning(f"Media download failed: {e}")
            return None
        if media is None or not media.content:
            logger.info("Media URL returned no content", extra={"host": urlsplit(url).hostname})
            return None
        return media

    async def _download_unauthenticated(self, url: str) -> DownloadedMedia | None:
        async with httpx.AsyncClient(
            timeout=settings.gateway_media_timeout_seconds, follow_redirects=True, transport=self._transport
        ) as client:
            response = await request_with_auth_fallback(client, "GET", url, None)
        if not response.is_success:
            return None
        if len(response.content) > settings.media_max_bytes:
            raise GatewayError(f"Media at {url} exceeds {settings.media_max_bytes} bytes")
        return DownloadedMedia(content=response.content, content_type=response.headers.get("content-type"))

    def _decode(self, data: str, mimetype: str | None) -> DownloadedMedia | None:
        content = decode_inline_media(data)
        if not content:
            return None
        if len(content) > settings.media_max_bytes:
            logger.warning("Inline media over size limit dropped", extra={"size_bytes": len(content)})
            return None
        return DownloadedMedia(content=content, content_type=mimetype)
