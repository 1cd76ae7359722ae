"""
Tests for the Broadcast Dispatcher and Connection

These tests verify:
- publish(): One notification per subscriber, none for others
- Independent delivery: one failing subscriber does not affect the rest
- Connection: ordered sender, flush on close, closed connections refuse records

Run with: python -m pytest tests/test_dispatcher.py -v
"""

import asyncio
import logging

import pytest
from livestore.pubsub.connection import Connection
from livestore.pubsub.dispatcher import BroadcastDispatcher
from livestore.pubsub.registry import SubscriptionRegistry


class ListConnection(Connection):
    """Connection whose writes land in a list, optionally after a gate opens."""

    def __init__(self, gate: asyncio.Event = None, fail: bool = False):
        super().__init__(peer="list")
        self.written = []
        self.gate = gate
        self.fail = fail

    async def _write(self, data: str) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.written.append(data)


class TestPublish:
    """Test publish()."""

    def test_publish_reaches_every_subscriber(
            self, registry: SubscriptionRegistry, dispatcher: BroadcastDispatcher, connection_factory
    ):
        """Test that each subscriber gets exactly one notification."""
        alice, bob, carol = connection_factory("alice"), connection_factory("bob"), connection_factory("carol")
        registry.subscribe(alice, "score")
        registry.subscribe(bob, "score")
        registry.subscribe(carol, "other")

        assert dispatcher.publish("score", 5) == 2

        assert alice.messages == [{"key": "score", "value": 5}]
        assert bob.messages == [{"key": "score", "value": 5}]
        assert carol.messages == []

    def test_publish_without_subscribers(self, dispatcher: BroadcastDispatcher):
        """Test publishing to a key nobody watches."""
        assert dispatcher.publish("score", 5) == 0

    def test_publish_structured_value(
            self, registry: SubscriptionRegistry, dispatcher: BroadcastDispatcher, connection_factory
    ):
        """Test that structured values arrive intact."""
        alice = connection_factory("alice")
        registry.subscribe(alice, "player-position")

        dispatcher.publish("player-position", {"x": 100, "y": 200})

        assert alice.messages == [{"key": "player-position", "value": {"x": 100, "y": 200}}]

    def test_failed_delivery_does_not_stop_others(
            self, registry: SubscriptionRegistry, dispatcher: BroadcastDispatcher, connection_factory, caplog
    ):
        """Test that a closed subscriber is logged and skipped."""
        alice, bob = connection_factory("alice"), connection_factory("bob")
        registry.subscribe(alice, "score")
        registry.subscribe(bob, "score")
        alice.close()

        with caplog.at_level(logging.WARNING):
            assert dispatcher.publish("score", 1) == 1

        assert bob.messages == [{"key": "score", "value": 1}]
        assert "score" in caplog.text
        # Cleanup is left to the connection's own close path
        assert registry.is_subscribed(alice, "score")
        assert dispatcher.get_stats() == {"published": 1, "failed": 1}

    def test_dropped_connection_receives_nothing(
            self, registry: SubscriptionRegistry, dispatcher: BroadcastDispatcher, connection_factory
    ):
        """Test that after drop_connection no publish delivers to it."""
        alice = connection_factory("alice")
        registry.subscribe(alice, "a")
        registry.subscribe(alice, "b")
        registry.drop_connection(alice)

        dispatcher.publish("a", 1)
        dispatcher.publish("b", 2)

        assert alice.messages == []

    def test_per_key_order(
            self, registry: SubscriptionRegistry, dispatcher: BroadcastDispatcher, connection_factory
    ):
        """Test that notifications arrive in publish order."""
        alice = connection_factory("alice")
        registry.subscribe(alice, "counter")

        for i in range(5):
            dispatcher.publish("counter", i)

        assert [m["value"] for m in alice.messages] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
class TestConnection:
    """Test the Connection outbound queue and sender."""

    async def test_sender_writes_in_order(self):
        """Test that queued records are written in order."""
        conn = ListConnection()
        sender = asyncio.create_task(conn.run_sender())

        for i in range(3):
            conn.deliver(f"m{i}")
        conn.close()
        await asyncio.wait_for(sender, 1)

        assert conn.written == ["m0", "m1", "m2"]

    async def test_deliver_after_close_raises(self):
        """Test that a closed connection refuses new records."""
        conn = ListConnection()
        conn.close()

        with pytest.raises(ConnectionError):
            conn.deliver("late")

    async def test_close_is_idempotent(self):
        """Test that close can be called more than once."""
        conn = ListConnection()
        sender = asyncio.create_task(conn.run_sender())
        conn.close()
        conn.close()
        await asyncio.wait_for(sender, 1)

        assert conn.closed

    async def test_failed_write_stops_sender(self):
        """Test that a write failure closes the connection."""
        conn = ListConnection(fail=True)
        sender = asyncio.create_task(conn.run_sender())

        conn.deliver("m0")
        await asyncio.wait_for(sender, 1)

        assert conn.closed
        with pytest.raises(ConnectionError):
            conn.deliver("m1")

    async def test_stalled_subscriber_does_not_block_others(self, registry: SubscriptionRegistry):
        """Test that a subscriber stuck in a write does not delay the rest."""
        gate = asyncio.Event()
        slow, fast = ListConnection(gate=gate), ListConnection()
        senders = [asyncio.create_task(c.run_sender()) for c in (slow, fast)]
        registry.subscribe(slow, "score")
        registry.subscribe(fast, "score")
        dispatcher = BroadcastDispatcher(registry)

        dispatcher.publish("score", 1)
        dispatcher.publish("score", 2)
        await asyncio.sleep(0.05)

        assert fast.written == ['{"key":"score","value":1}', '{"key":"score","value":2}']
        assert slow.written == []

        gate.set()
        for conn in (slow, fast):
            conn.close()
        await asyncio.wait_for(asyncio.gather(*senders), 1)

        assert slow.written == fast.written
