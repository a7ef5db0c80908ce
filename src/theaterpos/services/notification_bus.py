"""Notification bus - per-subscriber server-sent event streams.

One Connection per subscriber key, held in a process-local table. A new
subscription for a key evicts the previous one. Delivery is best-effort and
in order per connection; nothing is replayed after a reconnect.

Each connection has a small bounded outbound queue. If it is full the
subscriber is not keeping up and is treated as dead rather than buffered.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any
from uuid import uuid4

from src.theaterpos.core.logging import get_logger
from src.theaterpos.models.base import utc_now

logger = get_logger(__name__)

KEEPALIVE_FRAME = ": keep-alive\n\n"
CONNECTED_EVENT: dict[str, Any] = {"type": "connected"}


def format_event(event: dict[str, Any]) -> str:
    """Render one SSE data frame."""
    return f"data: {json.dumps(event, default=str, separators=(',', ':'))}\n\n"


class Connection:
    """A single open event stream."""

    def __init__(self, key: str, max_queue: int = 100, **attrs: Any):
        self.key = key
        self.id = uuid4().hex
        self.attrs = attrs
        self.opened_at = utc_now()
        self.close_reason: str | None = None
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_queue)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, event: dict[str, Any]) -> bool:
        """Queue an event for writing. False means the connection is dead."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(format_event(event))
        except asyncio.QueueFull:
            return False
        return True

    def close(self, reason: str) -> None:
        if not self.closed:
            self.close_reason = reason
            self._closed.set()

    async def next_frame(self, keepalive: float) -> str | None:
        """Wait for the next frame to write.

        Returns the keep-alive comment if nothing arrived within `keepalive`
        seconds, and None once the connection is closed.
        """
        if self.closed:
            return None
        if not self._queue.empty():
            return self._queue.get_nowait()

        get_task = asyncio.ensure_future(self._queue.get())
        close_task = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait(
                {get_task, close_task},
                timeout=keepalive,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (get_task, close_task):
                if not task.done():
                    task.cancel()

        if get_task in done:
            return get_task.result()
        if close_task in done:
            return None
        return KEEPALIVE_FRAME


class NotificationBus:
    """Process-local table of subscriber key -> Connection."""

    def __init__(self, max_queue: int = 100):
        self.max_queue = max_queue
        self._connections: dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def keys(self) -> list[str]:
        return list(self._connections)

    def get(self, key: str) -> Connection | None:
        return self._connections.get(key)

    def has_subscriber(self, key: str) -> bool:
        return key in self._connections

    def subscribe(self, key: str, **attrs: Any) -> Connection:
        """Register a new stream for `key`, evicting any existing one."""
        previous = self._connections.get(key)
        if previous is not None:
            previous.close("evicted")
            logger.info("Evicted previous stream", subscriber=key, connection_id=previous.id)

        connection = Connection(key, max_queue=self.max_queue, **attrs)
        self._connections[key] = connection
        logger.info(
            "Stream subscribed",
            subscriber=key,
            connection_id=connection.id,
            active_streams=len(self._connections),
        )
        return connection

    def unsubscribe(self, connection: Connection, reason: str = "closed") -> bool:
        """Remove a connection. Only the current owner of its key is removed.

        Returns True if the table changed.
        """
        connection.close(reason)
        if self._connections.get(connection.key) is connection:
            del self._connections[connection.key]
            logger.info(
                "Stream removed",
                subscriber=connection.key,
                connection_id=connection.id,
                reason=reason,
                active_streams=len(self._connections),
            )
            return True
        return False

    def send_to_user(self, key: str, event: dict[str, Any]) -> bool:
        """Deliver an event to one subscriber. False if absent or dead."""
        connection = self._connections.get(key)
        if connection is None:
            return False
        if connection.offer(event):
            return True
        self.unsubscribe(connection, "write failed")
        return False

    def broadcast(
        self,
        event: dict[str, Any],
        predicate: Callable[[Connection], bool] | None = None,
    ) -> int:
        """Deliver to every matching subscriber, pruning dead ones.

        Returns the number of successful deliveries.
        """
        delivered = 0
        for connection in list(self._connections.values()):
            if predicate is not None and not predicate(connection):
                continue
            if connection.offer(event):
                delivered += 1
            else:
                self.unsubscribe(connection, "write failed")
        return delivered

    def notify_super_admins(self, event: dict[str, Any]) -> int:
        return self.broadcast(event, lambda c: bool(c.attrs.get("is_super_admin")))

    async def stream(self, connection: Connection, keepalive: float) -> AsyncIterator[str]:
        """Frames for one connection: `connected`, then events and keep-alives."""
        yield format_event(CONNECTED_EVENT)
        while True:
            frame = await connection.next_frame(keepalive)
            if frame is None:
                return
            yield frame

    def close_all(self, reason: str = "shutdown") -> None:
        for connection in list(self._connections.values()):
            self.unsubscribe(connection, reason)


# Process-wide bus; multi-replica deployments would need a shared pub/sub layer
notification_bus = NotificationBus()
