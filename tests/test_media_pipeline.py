"""Tests for media acquisition and storage."""

import base64
from unittest.mock import AsyncMock

import httpx
import pytest

from app.core.content_type import UNKNOWN_EXTENSION, extension_for, sniff_content_type
from app.domain.services.media_service import MediaService, decode_inline_media, normalize_media_url
from app.infrastructure.gateway import get_gateway_client
from app.infrastructure.media_storage import MediaStorageError, build_locator, parse_locator

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 100
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 100
OGG_BYTES = b"OggS" + b"\x00" * 100


class TestContentType:
    def test_sniff(self):
        assert sniff_content_type(JPEG_BYTES) == "image/jpeg"
        assert sniff_content_type(PNG_BYTES) == "image/png"
        assert sniff_content_type(OGG_BYTES) == "audio/ogg"
        assert sniff_content_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
        assert sniff_content_type(b"\x00\x00\x00\x18ftypmp42") == "video/mp4"
        assert sniff_content_type(b"plain text") is None

    def test_extension(self):
        assert extension_for("image/jpeg") == "jpg"
        assert extension_for("audio/ogg; codecs=opus") == "ogg"
        assert extension_for("image/x-png") == "png"
        assert extension_for(None, "audio") == "ogg"
        assert extension_for("application/x-unknown") == UNKNOWN_EXTENSION


class TestLocator:
    def test_round_trip(self):
        locator = build_locator("bucket", "leads/1/123.jpg")
        assert locator == "storage://bucket/leads/1/123.jpg"
        assert parse_locator(locator) == ("bucket", "leads/1/123.jpg")

    def test_rejects_public_url(self):
        with pytest.raises(MediaStorageError):
            parse_locator("https://storage.googleapis.com/bucket/leads/1/123.jpg")


class TestNormalizeMediaUrl:
    def test_loopback_rewritten_to_instance_address(self):
        url = normalize_media_url("http://localhost:3000/api/files/abc.jpeg", "https://waha.example.com")
        assert url == "https://waha.example.com/api/files/abc.jpeg"

    def test_missing_scheme(self):
        assert normalize_media_url("cdn.test/files/abc.jpeg") == "https://cdn.test/files/abc.jpeg"

    def test_public_url_unchanged(self):
        url = "https://mmg.whatsapp.net/v/t62/abc.enc"
        assert normalize_media_url(url, "https://waha.example.com") == url


def test_decode_inline_media():
    encoded = base64.b64encode(PNG_BYTES).decode()
    assert decode_inline_media(encoded) == PNG_BYTES
    assert decode_inline_media(f"data:image/png;base64,{encoded}") == PNG_BYTES


class TestStoreMessageMedia:
    @pytest.mark.asyncio
    async def test_url_download_with_gateway_credentials(self, channel_instance, fake_gateway, mock_storage):
        fake_gateway.add(
            "GET",
            "/api/files/abc",
            httpx.Response(200, content=JPEG_BYTES, headers={"content-type": "application/octet-stream"}),
        )
        gateway = get_gateway_client(channel_instance, transport=fake_gateway.transport)
        service = MediaService(mock_storage, gateway, channel_instance)

        locator = await service.store_message_media(
            7, "image", media_url="http://localhost:3000/api/files/abc"
        )

        assert locator.startswith("storage://test-bucket/leads/7/")
        assert locator.endswith(".jpg")
        blob_path, data, content_type = mock_storage.upload.await_args.args
        assert data == JPEG_BYTES
        assert content_type == "image/jpeg"
        request = fake_gateway.requests_to("/api/files/abc")[0]
        assert request.url.host == "gateway.test"
        assert request.headers["X-Api-Key"] == "gateway-key"

    @pytest.mark.asyncio
    async def test_credentials_not_sent_to_other_hosts(self, channel_instance, fake_gateway, mock_storage):
        fake_gateway.add("GET", "cdn.example.net", httpx.Response(200, content=JPEG_BYTES))
        gateway = get_gateway_client(channel_instance, transport=fake_gateway.transport)
        service = MediaService(mock_storage, gateway, channel_instance)

        locator = await service.store_message_media(7, "image", media_url="https://cdn.example.net/abc.jpg")

        assert locator is not None
        request = fake_gateway.requests_to("cdn.example.net")[0]
        assert "x-api-key" not in request.headers
        assert "authorization" not in request.headers
        assert "apikey" not in request.headers

    @pytest.mark.asyncio
    async def test_inline_fallback_when_url_fails(self, channel_instance, fake_gateway, mock_storage):
        fake_gateway.add("GET", "/api/files/gone", httpx.Response(404))
        gateway = get_gateway_client(channel_instance, transport=fake_gateway.transport)
        service = MediaService(mock_storage, gateway, channel_instance)

        locator = await service.store_message_media(
            7,
            "image",
            media_url="http://gateway.test/api/files/gone",
            inline_data=base64.b64encode(PNG_BYTES).decode(),
            mimetype="image/png",
        )

        assert locator.endswith(".png")
        assert mock_storage.upload.await_args.args[1] == PNG_BYTES

    @pytest.mark.asyncio
    async def test_gateway_fetch_by_message_id(self, channel_instance, fake_gateway, mock_storage):
        fake_gateway.add(
            "GET",
            "/messages/ABC",
            httpx.Response(
                200,
                json={"id": "ABC", "media": {"data": base64.b64encode(OGG_BYTES).decode(), "mimetype": "audio/ogg; codecs=opus"}},
            ),
        )
        gateway = get_gateway_client(channel_instance, transport=fake_gateway.transport)
        service = MediaService(mock_storage, gateway, channel_instance)

        locator = await service.store_message_media(
            7, "audio", chat_id="5511999998888@c.us", external_id="ABC"
        )

        assert locator.endswith(".ogg")
        request = fake_gateway.requests_to("/messages/ABC")[0]
        assert request.url.params["downloadMedia"] == "true"

    @pytest.mark.asyncio
    async def test_no_source_returns_none(self, channel_instance, fake_gateway, mock_storage):
        gateway = get_gateway_client(channel_instance, transport=fake_gateway.transport)
        service = MediaService(mock_storage, gateway, channel_instance)

        locator = await service.store_message_media(
            7, "image", media_url="http://gateway.test/api/files/missing", chat_id="5511999998888@c.us", external_id="ABC"
        )

        assert locator is None
        mock_storage.upload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_storage_failure_returns_none(self, channel_instance, fake_gateway, mock_storage):
        fake_gateway.add("GET", "/api/files/abc", httpx.Response(200, content=JPEG_BYTES))
        mock_storage.upload = AsyncMock(side_effect=MediaStorageError("bucket unavailable"))
        gateway = get_gateway_client(channel_instance, transport=fake_gateway.transport)
        service = MediaService(mock_storage, gateway, channel_instance)

        locator = await service.store_message_media(7, "image", media_url="http://gateway.test/api/files/abc")

        assert locator is None

    @pytest.mark.asyncio
    async def test_unauthenticated_download_without_gateway(self, fake_gateway, mock_storage):
        fake_gateway.add("GET", "cdn.example.net", httpx.Response(200, content=PNG_BYTES))
        service = MediaService(mock_storage, transport=fake_gateway.transport)

        locator = await service.store_message_media(3, "image", media_url="https://cdn.example.net/a")

        assert locator.startswith("storage://test-bucket/leads/3/")
        assert locator.endswith(".png")
