"""Race-tolerant creation shared by every find-or-create path.

Webhooks are delivered at least once and often concurrently, so a row that
was missing when we looked may exist by the time we insert. Every creation
goes through insert_or_requery: attempt the insert, let the unique constraint
reject a duplicate, and re-read the winner by its unique key.
"""

import logging
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType")

_ON_CONFLICT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ConflictUnresolvedError(Exception):
    """Raised when an insert conflicted but the conflicting row could not be found."""
    pass


async def insert_or_requery(
    session: AsyncSession,
    model: type[ModelType],
    values: dict[str, Any],
    requery: Callable[[], Awaitable[ModelType | None]],
) -> tuple[ModelType, bool]:
    """Insert a row, or return the row that beat us to its unique key.

    Args:
        session: Database session (committed on success)
        model: Mapped class to insert
        values: Column values for the new row
        requery: Looks the row up by the same unique key the insert would violate

    Returns:
        (row, created) where created is False when an existing row was returned

    Raises:
        ConflictUnresolvedError: If the insert conflicted and requery found nothing
    """
    new_id = await _insert_ignoring_conflict(session, model, values)

    if new_id is not None:
        row = await session.get(model, new_id)
        return row, True

    existing = await requery()
    if existing is None:
        raise ConflictUnresolvedError(f"{model.__name__} insert conflicted but no row was found")

    logger.info(
        "Insert conflict resolved by requery",
        extra={"event_type": "insert_conflict_requeried", "model": model.__name__, "row_id": existing.id},
    )
    return existing, False


async def _insert_ignoring_conflict(
    session: AsyncSession, model: type, values: dict[str, Any]
) -> int | None:
    """Insert and return the new primary key, or None if a unique constraint rejected it."""
    dialect_name = session.bind.dialect.name
    insert = _ON_CONFLICT_INSERTS.get(dialect_name)

    if insert is not None:
        stmt = insert(model).values(**values).on_conflict_do_nothing().returning(model.id)
        result = await session.execute(stmt)
        new_id = result.scalar_one_or_none()
        await session.commit()
        return new_id

    # Other backends: a savepoint keeps the rollback from expiring the whole session
    instance = model(**values)
    try:
        async with session.begin_nested():
            session.add(instance)
    except IntegrityError:
        return None
    await session.commit()
    return instance.id
