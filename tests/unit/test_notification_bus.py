"""Tests for the notification bus."""

import asyncio
import json

import pytest

from src.theaterpos.services.notification_bus import (
    KEEPALIVE_FRAME,
    Connection,
    NotificationBus,
    format_event,
)
from tests.helpers import log_calls

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]


def decode(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: ") : -2])


class TestSubscriptions:
    async def test_new_subscription_evicts_previous(self, capturing_logger):
        bus = NotificationBus()
        first = bus.subscribe("user-1")

        second = bus.subscribe("user-1")

        assert first.closed
        assert first.close_reason == "evicted"
        assert not second.closed
        assert bus.get("user-1") is second
        assert len(bus) == 1
        assert log_calls(capturing_logger, "Evicted previous stream")

    async def test_stale_unsubscribe_leaves_new_owner(self):
        bus = NotificationBus()
        first = bus.subscribe("user-1")
        second = bus.subscribe("user-1")

        changed = bus.unsubscribe(first)

        assert changed is False
        assert bus.get("user-1") is second

    async def test_unsubscribe_owner(self):
        bus = NotificationBus()
        connection = bus.subscribe("user-1")

        assert bus.unsubscribe(connection, "closed") is True
        assert not bus.has_subscriber("user-1")
        assert connection.close_reason == "closed"


class TestDelivery:
    async def test_send_to_user_in_order(self):
        bus = NotificationBus()
        connection = bus.subscribe("user-1")

        assert bus.send_to_user("user-1", {"n": 1})
        assert bus.send_to_user("user-1", {"n": 2})

        assert decode(await connection.next_frame(keepalive=1)) == {"n": 1}
        assert decode(await connection.next_frame(keepalive=1)) == {"n": 2}

    async def test_send_to_absent_user(self):
        bus = NotificationBus()

        assert bus.send_to_user("nobody", {"n": 1}) is False

    async def test_full_queue_prunes_connection(self):
        bus = NotificationBus(max_queue=2)
        connection = bus.subscribe("slow")
        bus.send_to_user("slow", {"n": 1})
        bus.send_to_user("slow", {"n": 2})

        delivered = bus.send_to_user("slow", {"n": 3})

        assert delivered is False
        assert connection.closed
        assert connection.close_reason == "write failed"
        assert not bus.has_subscriber("slow")

    async def test_broadcast_counts_deliveries_and_prunes_dead(self):
        bus = NotificationBus(max_queue=1)
        bus.subscribe("a")
        bus.subscribe("b")
        full = bus.subscribe("c")
        full.offer({"filler": True})

        delivered = bus.broadcast({"type": "announcement"})

        assert delivered == 2
        assert sorted(bus.keys()) == ["a", "b"]

    async def test_broadcast_predicate(self):
        bus = NotificationBus()
        bus.subscribe("tenant:1", tenant_id="1")
        other = bus.subscribe("tenant:2", tenant_id="2")

        delivered = bus.broadcast({"n": 1}, lambda c: c.attrs.get("tenant_id") == "1")

        assert delivered == 1
        assert await other.next_frame(keepalive=0.01) == KEEPALIVE_FRAME

    async def test_notify_super_admins(self):
        bus = NotificationBus()
        admin = bus.subscribe("admin-1", is_super_admin=True)
        staff = bus.subscribe("staff-1", is_super_admin=False)

        delivered = bus.notify_super_admins({"type": "agent_down"})

        assert delivered == 1
        assert decode(await admin.next_frame(keepalive=1))["type"] == "agent_down"
        assert await staff.next_frame(keepalive=0.01) == KEEPALIVE_FRAME

    async def test_closed_connection_refuses_events(self):
        connection = Connection("user-1")
        connection.close("closed")

        assert connection.offer({"n": 1}) is False
        assert await connection.next_frame(keepalive=1) is None


class TestStreaming:
    async def test_stream_starts_with_connected_then_keepalive(self):
        bus = NotificationBus()
        connection = bus.subscribe("user-1")
        frames = bus.stream(connection, keepalive=0.01)

        assert decode(await anext(frames)) == {"type": "connected"}
        assert await anext(frames) == KEEPALIVE_FRAME

    async def test_stream_ends_when_connection_closes(self):
        bus = NotificationBus()
        connection = bus.subscribe("user-1")
        collected: list[str] = []

        async def consume():
            async for frame in bus.stream(connection, keepalive=5):
                collected.append(frame)

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        bus.send_to_user("user-1", {"n": 1})
        await asyncio.sleep(0.01)
        bus.close_all()
        await asyncio.wait_for(consumer, timeout=1)

        assert [decode(f) for f in collected] == [{"type": "connected"}, {"n": 1}]
        assert len(bus) == 0
        assert connection.close_reason == "shutdown"

    async def test_eviction_ends_the_old_stream(self):
        bus = NotificationBus()
        old = bus.subscribe("user-1")
        frames = bus.stream(old, keepalive=5)
        await anext(frames)

        bus.subscribe("user-1")

        with pytest.raises(StopAsyncIteration):
            await anext(frames)

    async def test_format_event_is_compact(self):
        assert format_event({"type": "x", "n": 1}) == 'data: {"type":"x","n":1}\n\n'
