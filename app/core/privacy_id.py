"""Detection and payload-side resolution of privacy ids.

Ad-referred WhatsApp chats can arrive addressed to an opaque per-advertiser
identifier ("<digits>@lid") instead of the sender's number. The real number
is sometimes embedded elsewhere in the same payload; when it is not, the
gateway has to be asked (see GatewayClientProtocol.resolve_privacy_id).
"""

import re
from typing import Any

PRIVACY_ID_SUFFIX = "@lid"
PHONE_CHAT_SUFFIXES = ("@c.us", "@s.whatsapp.net")

# Real numbers top out at 15 digits including country code, and in practice at 13
MIN_OPAQUE_DIGITS = 15

# Where WAHA payloads tuck the real sender id, most specific first
_EMBEDDED_PHONE_PATHS = (
    ("_data", "from", "_serialized"),
    ("_data", "chat", "id", "_serialized"),
    ("chat", "id"),
    ("_data", "chatId"),
    ("_data", "from"),
)


def is_privacy_id(identifier: str | None) -> bool:
    """Whether a chat id is an opaque privacy id rather than a phone number."""
    if not identifier:
        return False
    if PRIVACY_ID_SUFFIX in identifier:
        return True
    if any(suffix in identifier for suffix in PHONE_CHAT_SUFFIXES):
        return False
    return len(re.sub(r"\D", "", identifier)) >= MIN_OPAQUE_DIGITS


def privacy_id_digits(identifier: str) -> str:
    """The bare digits of a privacy id, as stored on the lead."""
    return re.sub(r"\D", "", identifier.replace(PRIVACY_ID_SUFFIX, ""))


def _dig(payload: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(payload, dict):
            return None
        payload = payload.get(key)
    return payload


def extract_embedded_phone(payload: dict[str, Any] | None) -> str | None:
    """Find a real phone number embedded in a message payload.

    Accepts a candidate that is a phone chat id, or 10-13 bare digits that
    are not themselves a privacy id.
    """
    if not payload:
        return None
    for path in _EMBEDDED_PHONE_PATHS:
        candidate = _dig(payload, path)
        if not isinstance(candidate, str) or not candidate:
            continue
        if any(suffix in candidate for suffix in PHONE_CHAT_SUFFIXES):
            return candidate
        digits = re.sub(r"\D", "", candidate)
        if 10 <= len(digits) <= 13 and PRIVACY_ID_SUFFIX not in candidate:
            return digits
    return None
