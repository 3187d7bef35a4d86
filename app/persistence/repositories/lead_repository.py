"""Lead repository."""

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.persistence.models.lead import Lead
from app.persistence.repositories.base import BaseRepository


class LeadRepository(BaseRepository[Lead]):
    """Repository for Lead entities."""

    def __init__(self, session: AsyncSession):
        """Initialize lead repository."""
        super().__init__(Lead, session)

    async def get_by_phone(self, phone: str) -> Lead | None:
        """Get lead by its stored phone, exactly."""
        stmt = select(Lead).where(Lead.phone == phone)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_any_phone(self, phones: list[str]) -> Lead | None:
        """Get the oldest lead stored under any of the given phone forms."""
        if not phones:
            return None
        stmt = select(Lead).where(Lead.phone.in_(phones)).order_by(Lead.id).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_by_phone_suffix(self, suffix: str, limit: int = 1) -> list[Lead]:
        """Find leads whose stored phone ends with the given digits.

        Leads still keyed by an unresolved privacy id are skipped.

        Args:
            suffix: Trailing digits to match
            limit: Maximum number of leads to return

        Returns:
            Matching leads, oldest first
        """
        if not suffix:
            return []
        stmt = (
            select(Lead)
            .where(Lead.phone.like(f"%{suffix}"), Lead.is_privacy_id.is_(False))
            .order_by(Lead.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_privacy_id(self, privacy_id: str) -> Lead | None:
        """Get a lead previously created for an opaque privacy id."""
        stmt = (
            select(Lead)
            .where(or_(Lead.privacy_id == privacy_id, Lead.phone == privacy_id))
            .order_by(Lead.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()
