"""Base repository with common CRUD operations."""

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from src.theaterpos.core.security.validators import canonical_id


def to_uuid(value: Any) -> UUID | None:
    """Parse an identifier into a UUID, or None if it is not one."""
    if isinstance(value, UUID):
        return value
    text = canonical_id(value)
    if text is None:
        return None
    try:
        return UUID(text)
    except ValueError:
        return None


class BaseRepository[ModelType: SQLModel]:
    """Base repository providing common database operations.

    Repositories handle data access only. Transaction control (commit)
    should be done in the service layer.
    """

    model: type[ModelType]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: UUID | str) -> ModelType | None:
        """Get a record by its primary key. Unparseable ids return None."""
        key = to_uuid(id)
        if key is None:
            return None
        result = await self.session.execute(
            select(self.model).where(self.model.id == key)  # type: ignore[attr-defined]
        )
        return result.scalar_one_or_none()

    def add(self, entity: ModelType) -> None:
        """Add entity to session (no flush/commit)."""
        self.session.add(entity)
