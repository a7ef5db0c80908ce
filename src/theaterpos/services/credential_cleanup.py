"""Periodic purge of ended sessions and spent agent grants.

Both tables gain a row per login. Rows are deleted once they are older
than the retention window; DELETE is idempotent, so overlapping runs are
harmless.
"""

import asyncio
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncEngine

from src.theaterpos.core.config import get_settings
from src.theaterpos.core.db import get_session
from src.theaterpos.core.logging import get_logger
from src.theaterpos.models.base import utc_now
from src.theaterpos.repositories import AgentGrantRepository, SessionRepository

logger = get_logger(__name__)


async def purge_expired_credentials(
    retention_days: int, engine: AsyncEngine | None = None
) -> dict[str, int]:
    """Delete ended sessions and expired grants older than retention_days.

    Returns:
        Counts of deleted rows: {"sessions": int, "agent_grants": int}
    """
    cutoff = utc_now() - timedelta(days=retention_days)
    async with get_session(engine) as session:
        sessions = await SessionRepository(session).delete_inactive_before(cutoff)
        grants = await AgentGrantRepository(session).delete_expired_before(cutoff)
        await session.commit()

    if sessions or grants:
        logger.info("Purged expired credentials", sessions=sessions, agent_grants=grants)
    return {"sessions": sessions, "agent_grants": grants}


async def run_credential_cleanup(interval_seconds: float | None = None) -> None:
    """Purge on a fixed interval until cancelled. A failed pass is logged and retried."""
    settings = get_settings()
    interval = interval_seconds or settings.cleanup_interval_minutes * 60
    while True:
        try:
            await purge_expired_credentials(settings.cleanup_retention_days)
        except Exception:
            logger.exception("Credential cleanup failed")
        await asyncio.sleep(interval)
