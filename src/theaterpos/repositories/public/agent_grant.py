"""Repository for AgentGrant entity."""

from datetime import datetime

from sqlalchemy import delete, update

from src.theaterpos.models.base import utc_now
from src.theaterpos.models.public import AgentGrant
from src.theaterpos.repositories.base import BaseRepository


class AgentGrantRepository(BaseRepository[AgentGrant]):
    model = AgentGrant

    async def consume(self, jti: str) -> bool:
        """Mark an unused, unexpired grant as used.

        The conditional UPDATE makes consumption single-use even under
        concurrent exchanges. Returns False if nothing was consumed.
        """
        now = utc_now()
        stmt = (
            update(AgentGrant)
            .where(AgentGrant.jti == jti)  # type: ignore[arg-type]
            .where(AgentGrant.used_at.is_(None))  # type: ignore[union-attr]
            .where(AgentGrant.expires_at > now)  # type: ignore[arg-type]
            .values(used_at=now)
        )
        result = await self.session.execute(stmt)
        return (result.rowcount or 0) == 1  # type: ignore[attr-defined]

    async def delete_expired_before(self, cutoff: datetime) -> int:
        """Delete grants that expired before cutoff, used or not.

        Returns the number of grants deleted.
        """
        stmt = delete(AgentGrant).where(AgentGrant.expires_at < cutoff)  # type: ignore[arg-type]
        result = await self.session.execute(stmt)
        return result.rowcount or 0  # type: ignore[attr-defined]
