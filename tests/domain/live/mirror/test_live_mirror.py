"""Tests for LiveMirror subscriptions over the in-memory store."""

import asyncio
from unittest.mock import patch

import pytest

from camcast.domain.live.broadcast.broadcast_gateway import BroadcastGateway
from camcast.domain.live.mirror.live_mirror import LiveMirror, LiveSnapshot
from camcast.services.store import MemoryBroadcastStore, StoreUnavailableError
from tests.fixtures.live_fixtures import ALICE, BOB, wait_until


class TestSnapshots:
    async def test_initial_snapshot(self, mirror: LiveMirror, gateway: BroadcastGateway):
        """The first snapshot holds the set as it is at subscription time."""
        # Arrange
        record_id = await gateway.create_record(ALICE, "Already live")

        # Act
        subscription = mirror.subscribe_all_active()
        snapshot = await subscription.wait_first_snapshot(timeout=1)

        # Assert
        assert snapshot.version == 1
        assert snapshot.ids() == {record_id}
        assert len(snapshot) == 1

    async def test_empty_initial_snapshot(self, mirror: LiveMirror):
        subscription = mirror.subscribe_all_active()

        snapshot = await subscription.wait_first_snapshot(timeout=1)

        assert snapshot.records == ()

    async def test_snapshot_replaced_on_change(self, mirror: LiveMirror, gateway: BroadcastGateway):
        """Each change delivers the full new set, never a delta."""
        # Arrange
        subscription = mirror.subscribe_all_active()
        await subscription.wait_first_snapshot(timeout=1)
        alice_id = await gateway.create_record(ALICE, "Alice")
        await subscription.wait_for_version(2, timeout=1)

        # Act
        bob_id = await gateway.create_record(BOB, "Bob")
        await gateway.end_record(alice_id)
        await wait_until(lambda: subscription.snapshot.ids() == {bob_id})

        # Assert
        assert not subscription.snapshot.contains(alice_id)
        assert subscription.snapshot.version >= 3

    async def test_versions_strictly_increase(self, mirror: LiveMirror, gateway: BroadcastGateway):
        # Arrange
        versions: list[int] = []
        subscription = mirror.subscribe_all_active(lambda snapshot: versions.append(snapshot.version))
        await subscription.wait_first_snapshot(timeout=1)

        # Act
        record_id = await gateway.create_record(ALICE, "One")
        await subscription.wait_for_version(2, timeout=1)
        await gateway.end_record(record_id)
        await subscription.wait_for_version(3, timeout=1)

        # Assert
        assert versions == [1, 2, 3]

    async def test_my_active_filter(self, mirror: LiveMirror, gateway: BroadcastGateway):
        """A per-owner feed never shows other broadcasters' records."""
        # Arrange
        subscription = mirror.subscribe_my_active(ALICE.uid)
        await subscription.wait_first_snapshot(timeout=1)

        # Act
        await gateway.create_record(BOB, "Bob")
        alice_id = await gateway.create_record(ALICE, "Alice")
        await wait_until(lambda: subscription.snapshot.contains(alice_id))

        # Assert
        assert subscription.snapshot.ids() == {alice_id}

    async def test_viewer_count_change_delivers_snapshot(
        self, mirror: LiveMirror, gateway: BroadcastGateway, store: MemoryBroadcastStore
    ):
        # Arrange
        record_id = await gateway.create_record(ALICE, "Popular")
        subscription = mirror.subscribe_all_active()
        await subscription.wait_first_snapshot(timeout=1)

        # Act
        await store.set_viewer_count(record_id, 12)
        snapshot = await subscription.wait_for_version(2, timeout=1)

        # Assert
        assert snapshot.records[0].viewer_count == 12

    async def test_snapshot_in_display_order(
        self, mirror: LiveMirror, gateway: BroadcastGateway, store: MemoryBroadcastStore
    ):
        """Snapshots are held newest first, then busiest first, not in store order."""
        # Arrange
        alice_id = await gateway.create_record(ALICE, "Earlier")
        bob_id = await gateway.create_record(BOB, "Later")
        await store.set_viewer_count(bob_id, 5)

        # Act
        subscription = mirror.subscribe_all_active()
        snapshot = await subscription.wait_first_snapshot(timeout=1)

        # Assert
        assert [r.id for r in snapshot.records] == [bob_id, alice_id]


class TestListeners:
    async def test_async_listener_receives_snapshots(self, mirror: LiveMirror):
        received: list[LiveSnapshot] = []

        async def listener(snapshot: LiveSnapshot) -> None:
            received.append(snapshot)

        subscription = mirror.subscribe_all_active(listener)
        await subscription.wait_first_snapshot(timeout=1)
        await wait_until(lambda: len(received) == 1)

        assert received[0].version == 1

    async def test_failing_listener_keeps_feed_alive(self, mirror: LiveMirror, gateway: BroadcastGateway):
        """A listener that raises never stops later deliveries."""
        # Arrange
        calls: list[int] = []

        def listener(snapshot: LiveSnapshot) -> None:
            calls.append(snapshot.version)
            raise RuntimeError("render failed")

        subscription = mirror.subscribe_all_active(listener)
        await subscription.wait_first_snapshot(timeout=1)

        # Act
        await gateway.create_record(ALICE, "Still delivered")
        await subscription.wait_for_version(2, timeout=1)
        await wait_until(lambda: len(calls) == 2)

        # Assert
        assert calls == [1, 2]
        assert subscription.closed is False

    async def test_subscriptions_are_independent(self, mirror: LiveMirror, gateway: BroadcastGateway):
        """Unsubscribing one feed leaves the other delivering."""
        # Arrange
        first = mirror.subscribe_all_active()
        second = mirror.subscribe_all_active()
        await first.wait_first_snapshot(timeout=1)
        await second.wait_first_snapshot(timeout=1)

        # Act
        await first.unsubscribe()
        record_id = await gateway.create_record(ALICE, "Live")
        await wait_until(lambda: second.snapshot.contains(record_id))

        # Assert
        assert first.closed is True
        assert not first.snapshot.contains(record_id)
        assert mirror.subscription_count == 1


class TestResubscribe:
    async def test_broken_feed_resubscribes(self, store: MemoryBroadcastStore, gateway: BroadcastGateway):
        """A feed that raises is re-opened after the delay and resumes delivery."""
        # Arrange
        real_watch = store.watch
        opened = 0

        async def flaky_watch(broadcast_filter):
            nonlocal opened
            opened += 1
            if opened == 1:
                raise StoreUnavailableError("connection reset")
            async for records in real_watch(broadcast_filter):
                yield records

        mirror = LiveMirror(store, resubscribe_delay=0.01)

        # Act
        with patch.object(store, "watch", flaky_watch):
            subscription = mirror.subscribe_all_active()
            await subscription.wait_first_snapshot(timeout=1)
            record_id = await gateway.create_record(ALICE, "After reconnect")
            await wait_until(lambda: subscription.snapshot.contains(record_id))

        # Assert
        assert opened == 2
        await mirror.close()


class TestUnsubscribe:
    async def test_unsubscribe_stops_store_watch(self, mirror: LiveMirror, store: MemoryBroadcastStore):
        # Arrange
        subscription = mirror.subscribe_all_active()
        await subscription.wait_first_snapshot(timeout=1)
        assert store.watcher_count == 1

        # Act
        await subscription.unsubscribe()

        # Assert
        assert store.watcher_count == 0
        assert subscription.closed is True
        assert mirror.subscription_count == 0

    async def test_unsubscribe_twice(self, mirror: LiveMirror):
        subscription = mirror.subscribe_all_active()
        await subscription.wait_first_snapshot(timeout=1)

        await subscription.unsubscribe()
        await subscription.unsubscribe()

        assert subscription.closed is True

    async def test_context_manager(self, mirror: LiveMirror, store: MemoryBroadcastStore):
        async with mirror.subscribe_all_active() as subscription:
            await subscription.wait_first_snapshot(timeout=1)
            assert store.watcher_count == 1

        assert store.watcher_count == 0

    async def test_listener_can_unsubscribe_its_own_feed(self, mirror: LiveMirror, store: MemoryBroadcastStore):
        # Arrange
        holder = {}

        async def listener(snapshot: LiveSnapshot) -> None:
            await holder["subscription"].unsubscribe()

        # Act
        holder["subscription"] = mirror.subscribe_all_active(listener)
        await wait_until(lambda: holder["subscription"].closed)

        # Assert
        await wait_until(lambda: store.watcher_count == 0)
        assert mirror.subscription_count == 0

    async def test_close_stops_everything(self, mirror: LiveMirror, store: MemoryBroadcastStore):
        subscriptions = [mirror.subscribe_all_active(), mirror.subscribe_my_active(ALICE.uid)]
        for subscription in subscriptions:
            await subscription.wait_first_snapshot(timeout=1)

        await mirror.close()

        assert all(s.closed for s in subscriptions)
        assert store.watcher_count == 0

    async def test_wait_times_out_without_change(self, mirror: LiveMirror):
        subscription = mirror.subscribe_all_active()
        await subscription.wait_first_snapshot(timeout=1)

        with pytest.raises(asyncio.TimeoutError):
            await subscription.wait_for_version(2, timeout=0.05)
