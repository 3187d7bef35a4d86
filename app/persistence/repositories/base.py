"""Base repository with race-tolerant creation."""

from typing import Any, Awaitable, Callable, Generic, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.idempotency import insert_or_requery
from app.persistence.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository for webhook-driven entities.

    Webhook rows are not tenant-scoped at lookup time: the tenant is derived
    from the channel instance and stamped on new rows, while uniqueness
    (phone, provider message id) is global.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """Initialize repository with model and session."""
        self.model = model
        self.session = session

    async def get_by_id(self, id: int) -> ModelType | None:
        """Get entity by ID."""
        return await self.session.get(self.model, id)

    async def create_or_get(
        self,
        values: dict[str, Any],
        requery: Callable[[], Awaitable[ModelType | None]],
    ) -> tuple[ModelType, bool]:
        """Insert a new entity, or return the one already holding its unique key.

        Returns:
            (entity, created)
        """
        return await insert_or_requery(self.session, self.model, values, requery)

    async def update(self, instance: ModelType, **data) -> ModelType:
        """Apply field changes to an entity and commit."""
        for key, value in data.items():
            setattr(instance, key, value)
        await self.session.commit()
        return instance
