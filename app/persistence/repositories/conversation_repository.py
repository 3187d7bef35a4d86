"""Conversation repository."""

from datetime import datetime

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.persistence.models.conversation import ACTIVE_CONVERSATION_STATUSES, Conversation
from app.persistence.repositories.base import BaseRepository

# Active conversations sort ahead of resolved ones
_ACTIVE_FIRST = case((Conversation.status.in_(ACTIVE_CONVERSATION_STATUSES), 0), else_=1)


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for Conversation entities."""

    def __init__(self, session: AsyncSession):
        """Initialize conversation repository."""
        super().__init__(Conversation, session)

    async def get_for_lead_and_instance(
        self, lead_id: int, channel_instance_id: int | None
    ) -> Conversation | None:
        """Get the conversation scoped exactly to (lead, channel instance).

        Prefers an open/pending conversation, then the newest.

        Args:
            lead_id: Lead ID
            channel_instance_id: Channel instance ID (None matches unlinked rows)

        Returns:
            Conversation or None if not found
        """
        if channel_instance_id is None:
            instance_clause = Conversation.channel_instance_id.is_(None)
        else:
            instance_clause = Conversation.channel_instance_id == channel_instance_id
        stmt = (
            select(Conversation)
            .where(Conversation.lead_id == lead_id, instance_clause)
            .order_by(_ACTIVE_FIRST, Conversation.created_at.desc(), Conversation.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_unlinked_for_lead(self, lead_id: int) -> Conversation | None:
        """Get a legacy conversation for the lead that has no channel instance."""
        return await self.get_for_lead_and_instance(lead_id, None)

    async def get_active(
        self, lead_id: int, channel_instance_id: int | None
    ) -> Conversation | None:
        """Get the open/pending conversation for (lead, channel instance), if any."""
        stmt = (
            select(Conversation)
            .where(
                Conversation.lead_id == lead_id,
                Conversation.channel_instance_id == channel_instance_id,
                Conversation.status.in_(ACTIVE_CONVERSATION_STATUSES),
            )
            .order_by(Conversation.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def record_message(
        self,
        conversation: Conversation,
        at: datetime,
        inbound: bool,
    ) -> Conversation:
        """Refresh last_message_at and bump the unread counter for inbound messages."""
        values: dict = {"last_message_at": at, "updated_at": datetime.utcnow()}
        if inbound:
            values["unread_count"] = Conversation.unread_count + 1
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self.session.commit()
        await self.session.refresh(conversation)
        return conversation
