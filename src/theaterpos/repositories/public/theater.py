"""Repository for Theater entity."""

from sqlmodel import select

from src.theaterpos.models.public import Theater
from src.theaterpos.repositories.base import BaseRepository


class TheaterRepository(BaseRepository[Theater]):
    """Repository for the theater registry."""

    model = Theater

    async def list_all(self, active_only: bool = True) -> list[Theater]:
        """List all theaters, optionally filtering by active status."""
        query = select(Theater)
        if active_only:
            query = query.where(Theater.is_active == True)  # noqa: E712
        result = await self.session.execute(query.order_by(Theater.name))
        return list(result.scalars().all())
