"""Evolution API gateway client."""

import logging
from typing import Any
from urllib.parse import quote

from app.core.phone import strip_chat_id
from app.infrastructure.gateway.auth import APIKEY_HEADER, BEARER, RAW_AUTHORIZATION, X_API_KEY
from app.infrastructure.gateway.base import ContactProfile, MessageMedia
from app.infrastructure.gateway.http_client import HttpGatewayClient
from app.settings import settings

logger = logging.getLogger(__name__)


class EvolutionClient(HttpGatewayClient):
    """Evolution API gateway client."""

    provider = "evolution"
    # Evolution deployments expect "apikey"; the rest are kept for proxies in front of it
    auth_strategies = (APIKEY_HEADER, X_API_KEY, BEARER, RAW_AUTHORIZATION)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}/{quote(self.session_name)}"

    async def resolve_privacy_id(self, privacy_id: str) -> str | None:
        """Evolution exposes no privacy id lookup."""
        return None

    async def get_contact(self, phone: str) -> ContactProfile | None:
        """Look up a contact via POST /chat/findContacts/{instance}."""
        remote_jid = f"{strip_chat_id(phone)}@s.whatsapp.net"
        data = await self._request_json(
            "POST",
            self._url("chat/findContacts"),
            settings.gateway_lookup_timeout_seconds,
            json={"where": {"remoteJid": remote_jid}},
        )
        contact: Any = data[0] if isinstance(data, list) and data else data
        if not isinstance(contact, dict):
            return None
        push_name = contact.get("pushName")
        return ContactProfile(name=None, push_name=push_name if isinstance(push_name, str) and push_name else None)

    async def get_profile_picture_url(self, phone: str) -> str | None:
        """Look up a profile picture via POST /chat/fetchProfilePictureUrl/{instance}."""
        data = await self._request_json(
            "POST",
            self._url("chat/fetchProfilePictureUrl"),
            settings.gateway_avatar_timeout_seconds,
            json={"number": strip_chat_id(phone)},
        )
        if not isinstance(data, dict):
            return None
        url = data.get("profilePictureUrl")
        return url if isinstance(url, str) and url.startswith("http") else None

    async def fetch_message_media(self, chat_id: str, message_id: str) -> MessageMedia | None:
        """Fetch inline media via POST /chat/getBase64FromMediaMessage/{instance}."""
        data = await self._request_json(
            "POST",
            self._url("chat/getBase64FromMediaMessage"),
            settings.gateway_media_timeout_seconds,
            json={"message": {"key": {"id": message_id, "remoteJid": chat_id}}, "convertToMp4": False},
        )
        if not isinstance(data, dict) or not data.get("base64"):
            return None
        return MessageMedia(data=data["base64"], mimetype=data.get("mimetype"))
