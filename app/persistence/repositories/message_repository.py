"""Message repository."""

from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.persistence.models.conversation import MESSAGE_STATUS_RANK, Message
from app.persistence.repositories.base import BaseRepository


class MessageRepository(BaseRepository[Message]):
    """Repository for Message entities."""

    def __init__(self, session: AsyncSession):
        """Initialize message repository."""
        super().__init__(Message, session)

    async def get_by_provider_message_id(self, provider_message_id: str) -> Message | None:
        """Get message by its canonical id (the idempotency key)."""
        stmt = select(Message).where(Message.provider_message_id == provider_message_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_existing(self, short_id: str, full_id: str | None = None) -> Message | None:
        """Find a stored message under its short or full provider id.

        Rows written before ids were normalized may hold the full composite id
        in either column.
        """
        ids = list(dict.fromkeys(i for i in (short_id, full_id) if i))
        stmt = (
            select(Message)
            .where(or_(Message.provider_message_id.in_(ids), Message.external_id.in_(ids)))
            .order_by(Message.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_for_ack(self, short_id: str, full_id: str | None = None) -> Message | None:
        """Find the message an ack refers to.

        Tiers, first hit wins:
            1. short id, exact
            2. full composite id, exact
            3. short id as a substring of a legacy external id
        """
        message = await self.find_existing(short_id)
        if message is None and full_id and full_id != short_id:
            message = await self.find_existing(full_id)
        if message is None:
            stmt = (
                select(Message)
                .where(Message.external_id.like(f"%{short_id}%"))
                .order_by(Message.id)
                .limit(1)
            )
            result = await self.session.execute(stmt)
            message = result.scalars().first()
        return message

    async def advance_status(self, message: Message, new_status: str) -> bool:
        """Move a message's status forward; never backwards.

        The rank check is part of the UPDATE so two racing acks cannot regress
        the stored value.

        Returns:
            True if the status changed
        """
        rank = MESSAGE_STATUS_RANK[new_status]
        lower = [status for status, r in MESSAGE_STATUS_RANK.items() if r < rank]
        stmt = (
            update(Message)
            .where(Message.id == message.id, Message.status.in_(lower))
            .values(status=new_status, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        await self.session.refresh(message)
        return result.rowcount > 0

    async def attach_media(self, message: Message, media_url: str) -> bool:
        """Set the media locator on a message that has none yet.

        Returns:
            True if this call attached the media
        """
        stmt = (
            update(Message)
            .where(Message.id == message.id, Message.media_url.is_(None))
            .values(media_url=media_url, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        await self.session.refresh(message)
        return result.rowcount > 0
