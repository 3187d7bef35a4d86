"""Ignorable-event filter.

Runs before any database access. Group chats, status broadcasts, and
system notifications are acknowledged but never produce a lead,
conversation, or message.
"""

import logging
from typing import Any

from app.core.privacy_id import PHONE_CHAT_SUFFIXES

logger = logging.getLogger(__name__)

GROUP_CHAT_SUFFIX = "@g.us"
GROUP_CHAT_PREFIX = "120363"  # Group ids as bare digits
MIN_BARE_GROUP_ID_DIGITS = 18  # Longer than any phone number
BROADCAST_MARKER = "@broadcast"  # status@broadcast and list broadcasts
NEWSLETTER_SUFFIX = "@newsletter"

SYSTEM_MESSAGE_TYPES = frozenset((
    "notification_template",
    "e2e_notification",
    "gp2",
    "ciphertext",
    "protocol",
    "call_log",
    "revoked",
))
SYSTEM_MESSAGE_SUBTYPES = frozenset(("contact_info_card", "url"))

UNSUPPORTED_MESSAGE_TYPES = frozenset((
    "poll",
    "poll_creation",
    "reaction",
    "product",
    "product_list",
    "order",
))


def is_group_chat(chat_id: str | None) -> bool:
    if not chat_id:
        return False
    if GROUP_CHAT_SUFFIX in chat_id:
        return True
    # A phone chat id is never a group, even in US area code 203
    if any(suffix in chat_id for suffix in PHONE_CHAT_SUFFIXES):
        return False
    digits = chat_id.split("@", 1)[0]
    return (
        digits.isdigit()
        and digits.startswith(GROUP_CHAT_PREFIX)
        and len(digits) >= MIN_BARE_GROUP_ID_DIGITS
    )


def is_broadcast(chat_id: str | None) -> bool:
    if not chat_id:
        return False
    return BROADCAST_MARKER in chat_id or NEWSLETTER_SUFFIX in chat_id


def chat_ignore_reason(*chat_ids: str | None) -> str | None:
    """Reason to ignore an event addressed to any of these chat ids, or None."""
    for chat_id in chat_ids:
        if is_group_chat(chat_id):
            return "group_message"
        if is_broadcast(chat_id):
            return "status_broadcast"
    return None


def message_kind_ignore_reason(message: dict[str, Any]) -> str | None:
    """Reason to ignore a message by its meta-type or subtype, or None."""
    raw = message.get("_data") if isinstance(message.get("_data"), dict) else {}
    message_type = str(raw.get("type") or message.get("type") or "").lower()
    subtype = str(raw.get("subtype") or message.get("subtype") or "").lower()

    if message_type in SYSTEM_MESSAGE_TYPES or subtype in SYSTEM_MESSAGE_SUBTYPES:
        return "system_notification"
    if message_type in UNSUPPORTED_MESSAGE_TYPES:
        return "unsupported_message_type"
    return None


def message_chat_ids(message: dict[str, Any]) -> tuple[str | None, ...]:
    """Every chat id a message or ack payload may be addressed under."""
    key = message.get("key") if isinstance(message.get("key"), dict) else {}
    return (
        message.get("from"),
        message.get("to"),
        message.get("chatId"),
        key.get("remoteJid"),
    )


def ignore_reason(message: dict[str, Any], is_ack: bool = False) -> str | None:
    """Why this event should be acknowledged without processing, or None.

    Args:
        message: Normalized message (or ack) payload
        is_ack: Acks carry no meta-type, so only their chat ids are checked

    Returns:
        Machine-readable reason, or None to continue processing
    """
    reason = chat_ignore_reason(*message_chat_ids(message))
    if reason is None and not is_ack:
        reason = message_kind_ignore_reason(message)
    if reason:
        logger.info("Ignoring webhook event", extra={"event_type": "webhook_ignored", "reason": reason})
    return reason
