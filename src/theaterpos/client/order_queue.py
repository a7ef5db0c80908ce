"""Offline order queue - at-least-once delivery of orders to the backend.

Every order gets an idempotency key when it is queued and keeps it for
life; the server turns repeated deliveries into a single persisted order.
The whole queue for a theater is one blob, rewritten after every change:

    orderQueue:<tenantId> -> {"queue": [QueuedOrder...], "lastSyncTime": ...}
"""

import asyncio
import copy
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

from src.theaterpos.client.connectivity import ConnectivityMonitor
from src.theaterpos.client.sender import OrderSender, Outcome
from src.theaterpos.client.store import QueueStore
from src.theaterpos.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SYNCED_TTL = 24 * 60 * 60


class QueueStatus(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SYNCED = "synced"
    FAILED = "failed"


class OrderInFlightError(Exception):
    """An order being delivered cannot be withdrawn."""


@dataclass
class QueuedOrder:
    idempotency_key: str
    payload: dict[str, Any]
    created_at: float
    attempts: int = 0
    next_attempt_at: float = 0.0
    status: QueueStatus = QueueStatus.PENDING
    last_error: str | None = None
    synced_at: float | None = None
    result: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "idempotencyKey": self.idempotency_key,
            "payload": self.payload,
            "createdAt": self.created_at,
            "attempts": self.attempts,
            "nextAttemptAt": self.next_attempt_at,
            "status": self.status.value,
            "lastError": self.last_error,
            "syncedAt": self.synced_at,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueuedOrder":
        return cls(
            idempotency_key=data["idempotencyKey"],
            payload=data.get("payload") or {},
            created_at=float(data.get("createdAt") or 0),
            attempts=int(data.get("attempts") or 0),
            next_attempt_at=float(data.get("nextAttemptAt") or 0),
            status=QueueStatus(data.get("status", QueueStatus.PENDING.value)),
            last_error=data.get("lastError"),
            synced_at=data.get("syncedAt"),
            result=data.get("result") or {},
        )


@dataclass
class DrainReport:
    attempted: int = 0
    synced: int = 0
    retried: int = 0
    failed: int = 0
    offline: bool = False


ProgressCallback = Callable[[dict[str, Any]], None]


def queue_key(tenant_id: str) -> str:
    return f"orderQueue:{tenant_id}"


def backoff_seconds(attempts: int, base: float = 2.0, cap: float = 60.0) -> float:
    """2s, 4s, 8s ... capped at 60s."""
    return min(cap, base * 2 ** max(attempts - 1, 0))


class OrderQueue:
    def __init__(
        self,
        tenant_id: str,
        store: QueueStore,
        sender: OrderSender,
        monitor: ConnectivityMonitor,
        on_progress: ProgressCallback | None = None,
        backoff_base: float = 2.0,
        backoff_cap: float = 60.0,
        synced_ttl: float = DEFAULT_SYNCED_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.tenant_id = tenant_id
        self.key = queue_key(tenant_id)
        self.store = store
        self.sender = sender
        self.monitor = monitor
        self.on_progress = on_progress
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.synced_ttl = synced_ttl
        self._clock = clock
        self._orders: list[QueuedOrder] = []
        self.last_sync_time: float | None = None
        self._loaded = False
        self._lock = asyncio.Lock()
        self._wake = asyncio.Event()

    # --- Persistence ---

    async def load(self) -> None:
        """Read the blob. Orders caught in flight by a crash go back to pending."""
        blob = await self.store.load(self.key) or {}
        self._orders = [QueuedOrder.from_dict(item) for item in blob.get("queue", [])]
        self.last_sync_time = blob.get("lastSyncTime")
        restored = 0
        for order in self._orders:
            if order.status is QueueStatus.IN_FLIGHT:
                order.status = QueueStatus.PENDING
                restored += 1
        self._loaded = True
        if restored:
            logger.info("Restored interrupted orders", count=restored, tenant_id=self.tenant_id)
            await self._save()

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    async def _save(self) -> None:
        await self.store.save(
            self.key,
            {
                "queue": [order.to_dict() for order in self._orders],
                "lastSyncTime": self.last_sync_time,
            },
        )

    # --- Queue operations ---

    def snapshot(self) -> list[QueuedOrder]:
        return [copy.deepcopy(order) for order in self._orders]

    def pending(self) -> list[QueuedOrder]:
        """Pending orders, oldest first."""
        return sorted(
            (o for o in self._orders if o.status is QueueStatus.PENDING),
            key=lambda o: o.created_at,
        )

    def get(self, idempotency_key: str) -> QueuedOrder | None:
        for order in self._orders:
            if order.idempotency_key == idempotency_key:
                return order
        return None

    async def enqueue(self, payload: dict[str, Any]) -> QueuedOrder:
        """Queue an order under a fresh idempotency key and persist it."""
        await self._ensure_loaded()
        key = str(uuid4())
        order = QueuedOrder(
            idempotency_key=key,
            payload={**payload, "tenantId": self.tenant_id, "idempotencyKey": key},
            created_at=self._clock(),
        )
        async with self._lock:
            self._orders.append(order)
            await self._save()
        logger.info("Order queued", idempotency_key=key, queued=len(self.pending()))
        self._wake.set()
        return order

    async def cancel(self, idempotency_key: str) -> bool:
        """Withdraw a pending or failed order.

        Raises:
            OrderInFlightError: if the order is being delivered.
        """
        await self._ensure_loaded()
        async with self._lock:
            order = self.get(idempotency_key)
            if order is None or order.status is QueueStatus.SYNCED:
                return False
            if order.status is QueueStatus.IN_FLIGHT:
                raise OrderInFlightError(idempotency_key)
            self._orders.remove(order)
            await self._save()
        logger.info("Queued order withdrawn", idempotency_key=idempotency_key)
        return True

    async def retry_failed(self) -> int:
        """Re-arm failed orders for delivery. Attempts are kept."""
        await self._ensure_loaded()
        count = 0
        async with self._lock:
            for order in self._orders:
                if order.status is QueueStatus.FAILED:
                    order.status = QueueStatus.PENDING
                    order.next_attempt_at = 0.0
                    count += 1
            if count:
                await self._save()
        if count:
            self._wake.set()
        return count

    async def purge_synced(self) -> int:
        """Drop synced orders older than the audit TTL."""
        await self._ensure_loaded()
        cutoff = self._clock() - self.synced_ttl
        async with self._lock:
            keep = [
                o
                for o in self._orders
                if not (o.status is QueueStatus.SYNCED and (o.synced_at or 0) < cutoff)
            ]
            purged = len(self._orders) - len(keep)
            if purged:
                self._orders = keep
                await self._save()
        return purged

    # --- Delivery ---

    def _progress(self, current: int, total: int, message: str) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress({"current": current, "total": total, "message": message})
        except Exception as e:
            logger.warning("Progress callback failed", error=str(e))

    def _due(self, now: float) -> list[QueuedOrder]:
        return [o for o in self.pending() if o.next_attempt_at <= now]

    async def drain(self, check_connectivity: bool = True) -> DrainReport:
        """One delivery cycle over every pending order that is due."""
        await self._ensure_loaded()
        report = DrainReport()
        if check_connectivity and not await self.monitor.is_online():
            report.offline = True
            self._progress(0, len(self.pending()), "Offline, orders will sync when back online")
            return report

        due = self._due(self._clock())
        total = len(due)
        for index, order in enumerate(due, start=1):
            self._progress(index, total, f"Syncing order {index} of {total}")
            async with self._lock:
                if order.status is not QueueStatus.PENDING or order not in self._orders:
                    continue
                order.status = QueueStatus.IN_FLIGHT
                await self._save()

            result = await self.sender.send(order)
            report.attempted += 1
            now = self._clock()

            async with self._lock:
                if result.outcome is Outcome.SYNCED:
                    order.status = QueueStatus.SYNCED
                    order.synced_at = now
                    order.last_error = None
                    order.result = result.body
                    self.last_sync_time = now
                    report.synced += 1
                elif result.outcome is Outcome.FAILED:
                    order.status = QueueStatus.FAILED
                    order.last_error = result.error
                    report.failed += 1
                    logger.warning(
                        "Queued order rejected",
                        idempotency_key=order.idempotency_key,
                        status_code=result.status_code,
                        error=result.error,
                    )
                else:
                    order.attempts += 1
                    order.next_attempt_at = now + backoff_seconds(
                        order.attempts, self.backoff_base, self.backoff_cap
                    )
                    order.status = QueueStatus.PENDING
                    order.last_error = result.error
                    report.retried += 1
                await self._save()

            if result.outcome is Outcome.RETRY and result.unreachable:
                # Backend gone; the rest would fail the same way
                logger.info("Backend unreachable, pausing delivery", error=result.error)
                break

        self._progress(total, total, f"Synced {report.synced} of {total}")
        await self.purge_synced()
        if report.attempted:
            logger.info(
                "Queue drain finished",
                synced=report.synced,
                retried=report.retried,
                failed=report.failed,
            )
        return report

    def seconds_until_next_due(self) -> float | None:
        pending = self.pending()
        if not pending:
            return None
        return max(0.0, min(o.next_attempt_at for o in pending) - self._clock())

    async def run(self, stop: asyncio.Event, poll_interval: float = 5.0) -> None:
        """The cooperative delivery loop for this theater, until `stop` is set."""
        await self._ensure_loaded()
        while not stop.is_set():
            self._wake.clear()
            if self.pending():
                if await self.monitor.is_online():
                    await self.drain(check_connectivity=False)
                else:
                    self._progress(0, len(self.pending()), "Offline")

            wait = poll_interval
            next_due = self.seconds_until_next_due()
            if next_due is not None:
                wait = min(wait, max(next_due, 0.05))
            await self._wait(stop, wait)

    async def _wait(self, stop: asyncio.Event, timeout: float) -> None:
        wake = asyncio.ensure_future(self._wake.wait())
        stopped = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait(
                {wake, stopped}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (wake, stopped):
                task.cancel()
