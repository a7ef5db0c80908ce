"""In-flight work tracking for graceful shutdown.

Counts REST requests and deferred post-response jobs (such as agent
auto-start). Event streams are long-lived and are not tracked; they are
closed by the notification bus during shutdown instead.
"""

import asyncio
from collections import Counter
from collections.abc import AsyncGenerator
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from src.theaterpos.core.logging import get_logger

logger = get_logger(__name__)


class RequestTracker:
    """Tracks in-flight requests and background jobs."""

    def __init__(self) -> None:
        self._in_flight: Counter[str] = Counter()
        self._shutting_down = False
        self._lock = asyncio.Lock()
        self._drain_event = asyncio.Event()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def in_flight_count(self) -> int:
        """Requests plus background jobs still running."""
        return sum(self._in_flight.values())

    def count(self, kind: str) -> int:
        return self._in_flight[kind]

    @asynccontextmanager
    async def _track(self, kind: str) -> AsyncGenerator[None]:
        async with self._lock:
            self._in_flight[kind] += 1
        try:
            yield
        finally:
            async with self._lock:
                self._in_flight[kind] -= 1
                if self.in_flight_count == 0 and self._shutting_down:
                    logger.info("All in-flight work drained")
                    self._drain_event.set()

    def track_request(self) -> AbstractAsyncContextManager[None]:
        """Context manager wrapping one HTTP request."""
        return self._track("request")

    def track_background(self) -> AbstractAsyncContextManager[None]:
        """Context manager wrapping one deferred job that runs after a response."""
        return self._track("background")

    async def start_shutdown(self) -> None:
        """Mark the application as shutting down."""
        logger.info("Request tracker entering shutdown mode")
        self._shutting_down = True
        async with self._lock:
            if self.in_flight_count == 0:
                self._drain_event.set()
            else:
                logger.info(
                    "Waiting for in-flight work",
                    requests=self._in_flight["request"],
                    background=self._in_flight["background"],
                )

    async def wait_for_drain(self, timeout: float) -> bool:
        """Wait for all tracked work to complete.

        Returns:
            True if everything completed within timeout, False otherwise
        """
        try:
            await asyncio.wait_for(self._drain_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            logger.warning(
                "Shutdown timeout",
                timeout_seconds=timeout,
                still_in_flight=self.in_flight_count,
            )
            return False

    def reset(self) -> None:
        """Reset tracker state. For testing only."""
        self._in_flight.clear()
        self._shutting_down = False
        self._drain_event = asyncio.Event()


# Global request tracker instance
request_tracker = RequestTracker()
