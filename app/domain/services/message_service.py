"""Idempotent message persistence and delivery-receipt handling."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.services.content_extractor import canonical_message_id
from app.persistence.models.conversation import MESSAGE_STATUS_RANK, Message
from app.persistence.repositories.message_repository import MessageRepository

logger = logging.getLogger(__name__)

DELIVERED_ACKS = frozenset(("DEVICE", "delivered", "DELIVERY_ACK"))
READ_ACKS = frozenset(("READ", "read", "PLAYED"))
NUMERIC_ACKS = {2: "delivered", 3: "read", 4: "read"}


@dataclass
class AckStatus:
    """What an ack says about which message."""

    raw_id: str
    short_id: str
    status: str | None  # delivered, read, or None for receipts we do not track


def raw_message_id(payload: dict[str, Any]) -> str:
    """The provider's message id as sent, from id, id._serialized, key.id or ids[0]."""
    value = payload.get("id")
    if isinstance(value, dict):
        value = value.get("_serialized") or value.get("id")
    if not value and isinstance(payload.get("key"), dict):
        value = payload["key"].get("id")
    if not value and isinstance(payload.get("ids"), list) and payload["ids"]:
        value = payload["ids"][0]
    return value if isinstance(value, str) else ""


def parse_ack_status(payload: dict[str, Any]) -> AckStatus:
    """Read the message id and new status from an ack payload."""
    raw_id = raw_message_id(payload)
    ack_number = payload.get("ack")
    ack_name = payload.get("ackName") or payload.get("receipt_type")
    if not ack_name and isinstance(ack_number, str):
        ack_name = ack_number

    status = None
    if isinstance(ack_name, str) and ack_name in DELIVERED_ACKS:
        status = "delivered"
    elif isinstance(ack_name, str) and ack_name in READ_ACKS:
        status = "read"
    elif isinstance(ack_number, int) and not isinstance(ack_number, bool):
        status = NUMERIC_ACKS.get(ack_number)

    return AckStatus(raw_id=raw_id, short_id=canonical_message_id(raw_id), status=status)


def message_timestamp(payload: dict[str, Any]) -> datetime:
    """Naive UTC time the provider reports for a message, or now."""
    value = payload.get("timestamp")
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
        # Some engines report milliseconds
        if value > 1e12:
            value = value / 1000
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    return datetime.utcnow()


class MessageService:
    """Service for storing messages exactly once per canonical id."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize message service."""
        self.session = session
        self.message_repo = MessageRepository(session)

    async def find_existing(self, short_id: str, raw_id: str | None = None) -> Message | None:
        """Find a message stored under its short or full provider id."""
        return await self.message_repo.find_existing(short_id, raw_id)

    async def persist(self, values: dict[str, Any]) -> tuple[Message, bool]:
        """Insert a message unless its canonical id is already stored.

        Args:
            values: Column values; provider_message_id is the idempotency key

        Returns:
            (message, created) where created is False for a duplicate delivery
        """
        short_id = values["provider_message_id"]
        raw_id = values.get("external_id")
        message, created = await self.message_repo.create_or_get(
            values, lambda: self.message_repo.find_existing(short_id, raw_id)
        )
        if created:
            logger.info(
                "Message stored",
                extra={
                    "event_type": "message_stored",
                    "message_id": message.id,
                    "external_id": short_id,
                    "direction": message.direction,
                    "type": message.type,
                },
            )
        return message, created

    async def attach_media(self, message: Message, media_url: str) -> bool:
        """Patch media onto a stored message that arrived without it."""
        attached = await self.message_repo.attach_media(message, media_url)
        if attached:
            logger.info(
                "Late media attached to existing message",
                extra={"event_type": "late_media_attached", "message_id": message.id},
            )
        return attached

    async def find_for_ack(self, ack: AckStatus) -> Message | None:
        return await self.message_repo.find_for_ack(ack.short_id, ack.raw_id)

    async def advance_status(self, message: Message, status: str) -> bool:
        """Move status forward. Stale receipts are ignored.

        Returns:
            True if the status changed
        """
        if status not in MESSAGE_STATUS_RANK:
            return False
        changed = await self.message_repo.advance_status(message, status)
        logger.info(
            "Message status updated" if changed else "Stale or repeated ack ignored",
            extra={"event_type": "message_ack", "message_id": message.id, "status": status, "changed": changed},
        )
        return changed
