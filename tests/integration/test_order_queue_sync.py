"""Offline order queue against the real API.

The queue talks to the app through httpx's ASGI transport, so every
delivery goes through authentication, the tenant authorizer and the
idempotent ingest path.
"""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from src.theaterpos.client import (
    ConnectivityMonitor,
    MemoryStore,
    OrderQueue,
    OrderSender,
    Outcome,
    QueueStatus,
    SendResult,
    queue_key,
)
from src.theaterpos.client.order_queue import QueuedOrder
from src.theaterpos.models import Theater, TheaterUser
from src.theaterpos.repositories import OrderRepository
from tests.helpers import login_staff, order_payload

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


class LossySender(OrderSender):
    """Delivers for real but can drop the next answer on the way back."""

    lose_next = False

    async def send(self, order: QueuedOrder) -> SendResult:
        result = await super().send(order)
        if self.lose_next:
            self.lose_next = False
            return SendResult(Outcome.RETRY, error="Connection reset by peer")
        return result


class Clock:
    def __init__(self) -> None:
        self.now = 1_000_000.0

    def __call__(self) -> float:
        return self.now


class Harness:
    def __init__(self, queue: OrderQueue, sender: LossySender, network: dict[str, bool]):
        self.queue = queue
        self.sender = sender
        self.network = network


@pytest.fixture
async def http(app) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def harness(http: AsyncClient, staff: TheaterUser, theater: Theater) -> Harness:
    tokens = await login_staff(http, staff.username)
    network = {"up": True}
    sender = LossySender(http, token_provider=lambda: tokens["token"])
    monitor = ConnectivityMonitor(
        "http://test/health", http, os_online=lambda: network["up"], settle_delay=0
    )
    queue = OrderQueue(str(theater.id), MemoryStore(), sender, monitor, clock=Clock())
    return Harness(queue, sender, network)


async def persisted_orders(engine: AsyncEngine, theater: Theater) -> int:
    async with AsyncSession(engine) as session:
        return await OrderRepository(session).count_for_tenant(theater.id)


def queued_payload(**overrides: Any) -> dict[str, Any]:
    payload = order_payload("ignored", **overrides)
    payload.pop("tenantId")
    return payload


async def test_offline_orders_sync_once_when_back_online(
    harness: Harness, engine: AsyncEngine, theater: Theater
):
    """Three orders taken offline reach the backend exactly once."""
    harness.network["up"] = False
    for _ in range(3):
        await harness.queue.enqueue(queued_payload())

    offline = await harness.queue.drain()

    assert offline.offline is True
    assert len(harness.queue.pending()) == 3
    assert await persisted_orders(engine, theater) == 0

    harness.network["up"] = True
    report = await harness.queue.drain()

    assert report.synced == 3
    assert harness.queue.pending() == []
    assert await persisted_orders(engine, theater) == 3
    numbers = [o.result["orderNumber"] for o in harness.queue.snapshot()]
    assert numbers == ["GA0001", "GA0002", "GA0003"]

    again = await harness.queue.drain()
    assert again.attempted == 0
    assert await persisted_orders(engine, theater) == 3


async def test_lost_response_is_replayed_not_duplicated(
    harness: Harness, engine: AsyncEngine, theater: Theater
):
    queued = await harness.queue.enqueue(queued_payload())
    harness.sender.lose_next = True

    first = await harness.queue.drain()

    assert first.retried == 1
    assert harness.queue.get(queued.idempotency_key).attempts == 1
    assert await persisted_orders(engine, theater) == 1

    harness.queue._clock.now += 60
    second = await harness.queue.drain()

    assert second.synced == 1
    assert harness.queue.get(queued.idempotency_key).status is QueueStatus.SYNCED
    assert await persisted_orders(engine, theater) == 1


async def test_order_interrupted_in_flight_is_resent_safely(
    harness: Harness, engine: AsyncEngine, theater: Theater
):
    queued = await harness.queue.enqueue(queued_payload())
    await harness.sender.send(queued)
    # The process died after sending but before recording the answer
    queued.status = QueueStatus.IN_FLIGHT
    await harness.queue._save()

    restarted = OrderQueue(
        str(theater.id),
        harness.queue.store,
        harness.sender,
        harness.queue.monitor,
        clock=harness.queue._clock,
    )
    await restarted.load()
    report = await restarted.drain()

    assert report.synced == 1
    assert await persisted_orders(engine, theater) == 1
    blob = await harness.queue.store.load(queue_key(str(theater.id)))
    assert blob["queue"][0]["status"] == "synced"


async def test_rejected_order_needs_the_user(
    harness: Harness, engine: AsyncEngine, theater: Theater
):
    rejected = await harness.queue.enqueue(queued_payload(items=[]))

    report = await harness.queue.drain()

    assert report.failed == 1
    order = harness.queue.get(rejected.idempotency_key)
    assert order.status is QueueStatus.FAILED
    assert order.last_error
    assert await persisted_orders(engine, theater) == 0
