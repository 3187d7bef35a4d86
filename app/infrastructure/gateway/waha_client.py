"""WAHA (WhatsApp HTTP API) gateway client."""

import logging
from typing import Any
from urllib.parse import quote

from app.core.phone import strip_chat_id
from app.core.privacy_id import privacy_id_digits
from app.infrastructure.gateway.base import ContactProfile, MessageMedia
from app.infrastructure.gateway.http_client import HttpGatewayClient
from app.settings import settings

logger = logging.getLogger(__name__)

MIN_AVATAR_PHONE_DIGITS = 10


def _first_str(*values: Any) -> str | None:
    for value in values:
        if isinstance(value, str) and value:
            return value
    return None


class WahaClient(HttpGatewayClient):
    """WAHA gateway client."""

    provider = "waha"

    async def resolve_privacy_id(self, privacy_id: str) -> str | None:
        """Resolve a privacy id via GET /api/{session}/lids/{lid}."""
        lid = privacy_id_digits(privacy_id)
        url = f"{self.base_url}/api/{quote(self.session_name)}/lids/{lid}"
        data = await self._request_json("GET", url, settings.gateway_lookup_timeout_seconds)
        if not isinstance(data, dict):
            return None

        candidate = _first_str(data.get("pn"), data.get("phone"), data.get("number"), data.get("jid"), data.get("id"))
        if not candidate or "lid" in candidate:
            return None
        return strip_chat_id(candidate) or None

    async def get_contact(self, phone: str) -> ContactProfile | None:
        """Look up a contact via GET /api/contacts."""
        params = {"contactId": f"{strip_chat_id(phone)}@c.us", "session": self.session_name}
        data = await self._request_json(
            "GET", f"{self.base_url}/api/contacts", settings.gateway_lookup_timeout_seconds, params=params
        )
        if not isinstance(data, dict):
            return None
        return ContactProfile(
            name=_first_str(data.get("name"), data.get("verifiedName")),
            push_name=_first_str(data.get("pushname"), data.get("pushName"), data.get("notify")),
        )

    async def get_profile_picture_url(self, phone: str) -> str | None:
        """Look up a profile picture via GET /api/contacts/profile-picture."""
        digits = strip_chat_id(phone)
        if len(digits) < MIN_AVATAR_PHONE_DIGITS:
            return None
        suffix = "@lid" if "@lid" in phone else "@c.us"
        params = {"contactId": f"{digits}{suffix}", "session": self.session_name, "refresh": "true"}
        data = await self._request_json(
            "GET",
            f"{self.base_url}/api/contacts/profile-picture",
            settings.gateway_avatar_timeout_seconds,
            params=params,
        )
        if not isinstance(data, dict):
            return None
        url = _first_str(data.get("profilePictureURL"), data.get("profilePicture"), data.get("url"), data.get("imgUrl"))
        return url if url and url.startswith("http") else None

    async def fetch_message_media(self, chat_id: str, message_id: str) -> MessageMedia | None:
        """Fetch a message with downloadMedia=true and return its media reference."""
        if "@" not in chat_id:
            chat_id = f"{chat_id}@c.us"
        url = f"{self.base_url}/api/{quote(self.session_name)}/chats/{quote(chat_id)}/messages/{quote(message_id)}"
        data = await self._request_json(
            "GET", url, settings.gateway_media_timeout_seconds, params={"downloadMedia": "true"}
        )
        if not isinstance(data, dict):
            return None

        media = data.get("media") if isinstance(data.get("media"), dict) else {}
        raw = data.get("_data") if isinstance(data.get("_data"), dict) else {}
        raw_media = raw.get("media") if isinstance(raw.get("media"), dict) else {}

        result = MessageMedia(
            url=_first_str(media.get("url"), data.get("mediaUrl"), raw_media.get("url"), raw.get("deprecatedMms3Url")),
            data=_first_str(media.get("data"), raw_media.get("data")),
            mimetype=_first_str(media.get("mimetype"), raw_media.get("mimetype")),
        )
        if not result.url and not result.data:
            return None
        return result
