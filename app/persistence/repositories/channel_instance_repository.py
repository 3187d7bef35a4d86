"""Channel instance repository."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.persistence.models.channel_instance import ChannelInstance
from app.persistence.repositories.base import BaseRepository


class ChannelInstanceRepository(BaseRepository[ChannelInstance]):
    """Repository for ChannelInstance entities (read-only for webhooks)."""

    def __init__(self, session: AsyncSession):
        """Initialize channel instance repository."""
        super().__init__(ChannelInstance, session)

    async def get_for_session(
        self, provider: str, session_name: str | None
    ) -> ChannelInstance | None:
        """Resolve the channel instance a webhook belongs to.

        Order:
            1. active instance of this provider with the session name (case-insensitive)
            2. any active instance of this provider
            3. any active instance

        Args:
            provider: Gateway provider ("waha" or "evolution")
            session_name: Session/instance name from the webhook envelope

        Returns:
            ChannelInstance or None if no active instance exists
        """
        if session_name:
            instance = await self._first_active(
                ChannelInstance.provider == provider,
                func.lower(ChannelInstance.session_name) == session_name.strip().lower(),
            )
            if instance is not None:
                return instance

        instance = await self._first_active(ChannelInstance.provider == provider)
        if instance is not None:
            return instance
        return await self._first_active()

    async def _first_active(self, *criteria) -> ChannelInstance | None:
        stmt = (
            select(ChannelInstance)
            .where(ChannelInstance.is_active.is_(True), *criteria)
            .order_by(ChannelInstance.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()
