"""Reachability: the OS network flag alone is not trusted.

A client is online only when the OS reports a network and a probe of the
backend health endpoint answers. After the OS reports the network coming
back, the monitor waits for the link to settle before probing.
"""

import asyncio
from collections.abc import Awaitable, Callable

import httpx

from src.theaterpos.core.logging import get_logger

logger = get_logger(__name__)


def _always_up() -> bool:
    return True


class ConnectivityMonitor:
    def __init__(
        self,
        probe_url: str,
        client: httpx.AsyncClient,
        os_online: Callable[[], bool] = _always_up,
        probe_timeout: float = 3.0,
        settle_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.probe_url = probe_url
        self.client = client
        self.os_online = os_online
        self.probe_timeout = probe_timeout
        self.settle_delay = settle_delay
        self._sleep = sleep
        self._was_os_online: bool | None = None

    async def probe(self) -> bool:
        try:
            response = await self.client.get(self.probe_url, timeout=self.probe_timeout)
        except httpx.HTTPError as e:
            logger.debug("Reachability probe failed", error=str(e))
            return False
        return response.status_code < 500

    async def is_online(self) -> bool:
        os_online = self.os_online()
        came_back = os_online and self._was_os_online is False
        self._was_os_online = os_online
        if not os_online:
            return False
        if came_back:
            await self._sleep(self.settle_delay)
        return await self.probe()

    async def wait_until_online(self, poll_interval: float = 5.0) -> None:
        """Block until the OS reports a network and the backend answers."""
        while not await self.is_online():
            await self._sleep(poll_interval)
