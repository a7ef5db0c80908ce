"""Client-side offline order queue."""

from src.theaterpos.client.connectivity import ConnectivityMonitor
from src.theaterpos.client.order_queue import (
    DrainReport,
    OrderInFlightError,
    OrderQueue,
    QueuedOrder,
    QueueStatus,
    backoff_seconds,
    queue_key,
)
from src.theaterpos.client.sender import OrderSender, Outcome, SendResult, classify
from src.theaterpos.client.store import JsonFileStore, MemoryStore, QueueStore

__all__ = [
    "ConnectivityMonitor",
    "DrainReport",
    "JsonFileStore",
    "MemoryStore",
    "OrderInFlightError",
    "OrderQueue",
    "OrderSender",
    "Outcome",
    "QueueStatus",
    "QueueStore",
    "QueuedOrder",
    "SendResult",
    "backoff_seconds",
    "classify",
    "queue_key",
]
