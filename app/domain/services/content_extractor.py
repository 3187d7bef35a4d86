"""Normalize raw gateway messages into content, type, media and quote.

Input is one message object in the WAHA shape (Evolution payloads are
converted to it first, see app.api.schemas.whatsapp). Output is an ExtractedContent.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 10000

# Placeholders some gateways send in place of real text
PLACEHOLDER_CONTENTS = frozenset(("[text]", "[Text]", "[TEXT]", "[media]", "[Media]", "[MEDIA]"))

# Base64 encodings of common media magic bytes, plus data: URIs
BASE64_MEDIA_PREFIXES = (
    "/9j/",     # JPEG
    "iVBOR",    # PNG
    "R0lGOD",   # GIF
    "UklGR",    # WEBP
    "AAAA",     # MP4/3GP/M4A containers
    "data:image",
    "data:audio",
    "data:video",
)
MIN_BASE64_PREFIX_LENGTH = 100
MIN_BASE64_RUN_LENGTH = 500
_BASE64_ALPHABET = re.compile(r"[A-Za-z0-9+/=]+")

_EXPLICIT_TYPES = {
    "ptt": "audio",
    "audio": "audio",
    "image": "image",
    "video": "video",
    "document": "document",
}

_QUOTED_TYPES = {"chat": "text", "ptt": "audio"}


@dataclass
class ExtractedContent:
    """Normalized view of one message."""

    content: str = ""
    type: str = "text"
    media_url: str | None = None
    mimetype: str | None = None
    has_media: bool = False
    is_system_message: bool = False
    quoted_message: dict[str, str] | None = field(default=None)


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def is_base64_blob(value: str | None) -> bool:
    """Heuristic: does this "text" actually hold base64-encoded binary?

    True for values of 100+ chars starting with a known media signature, or
    500+ chars with no spaces whose first 100 chars are all base64 alphabet.
    """
    if not value or len(value) < MIN_BASE64_PREFIX_LENGTH:
        return False
    if value.startswith(BASE64_MEDIA_PREFIXES):
        return True
    return (
        len(value) > MIN_BASE64_RUN_LENGTH
        and " " not in value
        and _BASE64_ALPHABET.fullmatch(value[:100]) is not None
    )


def sanitize_content(content: str) -> str:
    """Strip NULs, normalize line endings, trim and cap length."""
    if not content:
        return ""
    cleaned = content.replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n").strip()
    if len(cleaned) > MAX_CONTENT_LENGTH:
        cleaned = cleaned[:MAX_CONTENT_LENGTH] + "..."
    return cleaned


def _usable_text(value: Any) -> str:
    text = _str(value)
    if not text or is_base64_blob(text) or text.strip() in PLACEHOLDER_CONTENTS:
        return ""
    return text


def infer_type_from_mimetype(mimetype: str) -> str | None:
    mimetype = mimetype.lower()
    if mimetype.startswith("audio/") or "ogg" in mimetype:
        return "audio"
    if mimetype.startswith("image/"):
        return "image"
    if mimetype.startswith("video/"):
        return "video"
    if mimetype.startswith("application/") or "pdf" in mimetype or "document" in mimetype:
        return "document"
    return None


def infer_type_from_url(url: str) -> str:
    url = url.lower()
    if any(marker in url for marker in ("ptt", "audio", ".ogg", ".mp3", ".m4a")):
        return "audio"
    if any(ext in url for ext in (".jpg", ".jpeg", ".png", ".webp")):
        return "image"
    if any(ext in url for ext in (".mp4", ".mov", ".avi")):
        return "video"
    return "document"


def extract_media_url(message: dict[str, Any]) -> str | None:
    raw = _dict(message.get("_data"))
    url = (
        _str(message.get("mediaUrl"))
        or _str(_dict(message.get("media")).get("url"))
        or _str(_dict(raw.get("media")).get("url"))
        or _str(raw.get("deprecatedMms3Url"))
    )
    return url or None


def extract_mimetype(message: dict[str, Any]) -> str | None:
    raw = _dict(message.get("_data"))
    mimetype = (
        _str(_dict(message.get("media")).get("mimetype"))
        or _str(raw.get("mimetype"))
        or _str(_dict(raw.get("media")).get("mimetype"))
    )
    return mimetype or None


def extract_inline_media(message: dict[str, Any]) -> str | None:
    """Inline base64 media carried on the event itself, if any."""
    raw = _dict(message.get("_data"))
    candidates = (
        _dict(raw.get("media")).get("data"),
        _dict(message.get("media")).get("data"),
        message.get("mediaData"),
        raw.get("body"),
    )
    for candidate in candidates:
        if isinstance(candidate, str) and is_base64_blob(candidate):
            return candidate
    return None


def detect_type(message: dict[str, Any], media_url: str | None, mimetype: str | None) -> str:
    """Message type from the explicit field, inferring for media sent as "chat"."""
    raw = _dict(message.get("_data"))
    declared = _str(message.get("type")) or _str(raw.get("type"))
    if declared in _EXPLICIT_TYPES:
        return _EXPLICIT_TYPES[declared]

    if declared == "chat" and (message.get("hasMedia") is True or media_url):
        inferred = infer_type_from_mimetype(mimetype) if mimetype else None
        if inferred:
            return inferred
        if media_url:
            return infer_type_from_url(media_url)
    return "text"


def canonical_message_id(provider_id: str | None) -> str:
    """Short, durable id from a possibly composite provider id.

    "true_5511999999999@c.us_3EB0C431C2A1" -> "3EB0C431C2A1"
    Participant-suffixed group ids keep the last segment without an "@".
    """
    if not provider_id:
        return ""
    parts = [part for part in provider_id.split("_") if part]
    for part in reversed(parts):
        if "@" not in part:
            return part
    return provider_id


def _strip_phone_suffix(value: str) -> str:
    return re.sub(r"@(c\.us|s\.whatsapp\.net)$", "", value)


def extract_quoted_message(message: dict[str, Any]) -> dict[str, str] | None:
    """Normalize reply metadata to {id, body, from, type}."""
    raw = _dict(message.get("_data"))
    quoted = _dict(message.get("quotedMsg")) or _dict(raw.get("quotedMsg")) or _dict(raw.get("quotedMsgObj"))
    if not quoted:
        return None

    quoted_id_field = quoted.get("id")
    if isinstance(quoted_id_field, str):
        quoted_id = quoted_id_field
    else:
        id_parts = _dict(quoted_id_field)
        quoted_id = _str(id_parts.get("_serialized"))
        if not quoted_id and id_parts.get("id"):
            # Rebuild the serialized form: {fromMe}_{remote}_{id}
            from_me = "true" if id_parts.get("fromMe") else "false"
            remote = _str(id_parts.get("remote")) or _str(quoted.get("from"))
            quoted_id = f"{from_me}_{remote}_{id_parts['id']}"

    quoted_type = _str(quoted.get("type")) or "text"
    quoted_type = _QUOTED_TYPES.get(quoted_type, quoted_type)
    body = (
        _usable_text(quoted.get("body"))
        or _usable_text(quoted.get("caption"))
        or _usable_text(quoted.get("text"))
        or f"[{quoted_type}]"
    )

    return {
        "id": quoted_id,
        "body": body,
        "from": _strip_phone_suffix(_str(quoted.get("from")) or _str(quoted.get("participant"))),
        "type": quoted_type,
    }


def extract_ack_content(payload: dict[str, Any]) -> ExtractedContent:
    """Best-effort content of a message known only from its delivery receipt."""
    raw = _dict(payload.get("_data"))
    mimetype = extract_mimetype(payload)
    declared = _str(payload.get("type")) or _str(raw.get("type"))
    message_type = _EXPLICIT_TYPES.get(declared, "text")
    if message_type == "text" and payload.get("hasMedia") is True and mimetype:
        message_type = infer_type_from_mimetype(mimetype) or "text"

    content = sanitize_content(
        _usable_text(payload.get("body"))
        or _usable_text(raw.get("body"))
        or _usable_text(payload.get("text"))
        or _usable_text(payload.get("caption"))
    )
    if not content and message_type != "text":
        content = f"[{message_type}]"
    return ExtractedContent(
        content=content,
        type=message_type,
        mimetype=mimetype,
        has_media=message_type != "text",
    )


def extract_content(message: dict[str, Any]) -> ExtractedContent:
    """Normalize one raw message.

    Media messages prefer the caption over the body, since some payloads
    carry the raw base64 file in the body. Any candidate text that looks like
    base64 is discarded. A message left with neither text nor media is
    flagged is_system_message for the caller to drop.
    """
    raw = _dict(message.get("_data"))
    media_url = extract_media_url(message)
    mimetype = extract_mimetype(message)
    message_type = detect_type(message, media_url, mimetype)

    has_media = message_type != "text" and bool(
        message.get("hasMedia") is True or media_url or extract_inline_media(message)
    )

    if has_media:
        content = (
            _usable_text(message.get("caption"))
            or _usable_text(raw.get("caption"))
            or _usable_text(message.get("body"))
            or _usable_text(raw.get("body"))
        )
    else:
        content = (
            _usable_text(message.get("body"))
            or _usable_text(raw.get("body"))
            or _usable_text(message.get("text"))
        )
    content = sanitize_content(content)

    if not content and not has_media:
        return ExtractedContent(is_system_message=True)

    return ExtractedContent(
        content=content,
        type=message_type,
        media_url=media_url,
        mimetype=mimetype,
        has_media=has_media,
        quoted_message=extract_quoted_message(message),
    )
