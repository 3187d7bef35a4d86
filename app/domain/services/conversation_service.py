"""Conversation reconciliation for WhatsApp events."""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.persistence.models.conversation import Conversation
from app.persistence.models.lead import Lead
from app.persistence.repositories.conversation_repository import ConversationRepository

logger = logging.getLogger(__name__)

REOPENABLE_STATUSES = ("resolved", "pending")


class ConversationService:
    """Service for finding and reopening conversations per (lead, channel instance)."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize conversation service."""
        self.session = session
        self.conversation_repo = ConversationRepository(session)

    async def get_or_create(
        self,
        lead: Lead,
        channel_instance_id: int | None,
        inbound: bool,
        tenant_id: int | None = None,
    ) -> Conversation:
        """Find the conversation for (lead, channel instance), creating it lazily.

        A miss on the exact pair falls back to a legacy conversation of the
        lead with no instance, which is then linked to this instance. New rows
        are always created for the exact pair. Inbound events reopen a
        resolved or pending conversation.

        Args:
            lead: Counterpart lead
            channel_instance_id: Channel instance the event arrived on
            inbound: Whether the event was sent by the lead
            tenant_id: Tenant stamped on a new conversation

        Returns:
            Conversation
        """
        conversation = await self.conversation_repo.get_for_lead_and_instance(lead.id, channel_instance_id)

        if conversation is None and channel_instance_id is not None:
            legacy = await self.conversation_repo.get_unlinked_for_lead(lead.id)
            if legacy is not None:
                conversation = await self._link_legacy(legacy, lead.id, channel_instance_id)

        if conversation is None:
            values = {
                "tenant_id": tenant_id,
                "lead_id": lead.id,
                "channel_instance_id": channel_instance_id,
                "status": "open",
                "unread_count": 0,
            }
            conversation, created = await self.conversation_repo.create_or_get(
                values, lambda: self.conversation_repo.get_active(lead.id, channel_instance_id)
            )
            if created:
                logger.info(
                    "Conversation created",
                    extra={
                        "event_type": "conversation_created",
                        "conversation_id": conversation.id,
                        "lead_id": lead.id,
                        "channel_instance_id": channel_instance_id,
                    },
                )

        if inbound and conversation.status in REOPENABLE_STATUSES:
            conversation = await self._reopen(conversation, lead.id, channel_instance_id)
        return conversation

    async def _link_legacy(
        self, conversation: Conversation, lead_id: int, channel_instance_id: int
    ) -> Conversation | None:
        conversation_id = conversation.id
        try:
            async with self.session.begin_nested():
                conversation.channel_instance_id = channel_instance_id
                await self.session.flush()
        except IntegrityError:
            # Another delivery already opened a conversation for the pair
            return await self.conversation_repo.get_active(lead_id, channel_instance_id)
        await self.session.commit()
        logger.info(
            "Legacy conversation linked to channel instance",
            extra={"conversation_id": conversation_id, "channel_instance_id": channel_instance_id},
        )
        return conversation

    async def _reopen(
        self, conversation: Conversation, lead_id: int, channel_instance_id: int | None
    ) -> Conversation:
        previous_status = conversation.status
        conversation_id = conversation.id
        try:
            async with self.session.begin_nested():
                conversation.status = "open"
                await self.session.flush()
        except IntegrityError:
            active = await self.conversation_repo.get_active(lead_id, channel_instance_id)
            if active is None:
                raise
            return active
        await self.session.commit()
        logger.info(
            "Conversation reopened",
            extra={
                "event_type": "conversation_reopened",
                "conversation_id": conversation_id,
                "previous_status": previous_status,
            },
        )
        return conversation

    async def record_message(self, conversation: Conversation, at: datetime, inbound: bool) -> Conversation:
        """Refresh last_message_at; inbound messages also count as unread."""
        return await self.conversation_repo.record_message(conversation, at, inbound)
