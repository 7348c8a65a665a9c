"""Live synchronization mirror.

Keeps a local, read-only copy of the active broadcast set by following the
store's change feed. Every notification replaces the held snapshot wholesale;
snapshots are held in display order.
Each consumer gets its own `MirrorSubscription` with its own pump task, so one
slow or failing listener never affects another.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from camcast.domain.utils.idgen import new_subscription_id
from camcast.services.store import BroadcastStore
from camcast.shared.utils.clock import utc_now

from ..broadcast.broadcast_models import BroadcastFilter, BroadcastRecord
from .list_projection import project


@dataclass(frozen=True)
class LiveSnapshot:
    records: tuple[BroadcastRecord, ...]
    version: int
    received_at: datetime

    def __len__(self) -> int:
        return len(self.records)

    def ids(self) -> set[str]:
        return {r.id for r in self.records}

    def contains(self, broadcast_id: str) -> bool:
        return any(r.id == broadcast_id for r in self.records)


SnapshotListener = Callable[[LiveSnapshot], Awaitable[None] | None]


class MirrorSubscription:
    """One consumer's view of one change feed.

    Usable as an async context manager; leaving the block unsubscribes.
    """

    def __init__(
        self,
        mirror: "LiveMirror",
        broadcast_filter: BroadcastFilter,
        listener: SnapshotListener | None,
    ):
        self.subscription_id = new_subscription_id()
        self.filter = broadcast_filter
        self._mirror = mirror
        self._listener = listener
        self._snapshot: LiveSnapshot | None = None
        self._version = 0
        self._first_snapshot = asyncio.Event()
        self._changed = asyncio.Condition()
        self._task: asyncio.Task | None = None

    @property
    def snapshot(self) -> LiveSnapshot | None:
        return self._snapshot

    @property
    def closed(self) -> bool:
        return self._task is None or self._task.done()

    def _start(self, store: BroadcastStore, resubscribe_delay: float) -> None:
        self._task = asyncio.create_task(
            self._pump(store, resubscribe_delay), name=f"mirror-{self.subscription_id}"
        )

    async def wait_first_snapshot(self, timeout: float | None = None) -> LiveSnapshot:
        await asyncio.wait_for(self._first_snapshot.wait(), timeout)
        assert self._snapshot is not None
        return self._snapshot

    async def wait_for_version(self, version: int, timeout: float | None = None) -> LiveSnapshot:
        """Wait until a snapshot with at least ``version`` has been received."""

        async def _wait() -> LiveSnapshot:
            async with self._changed:
                await self._changed.wait_for(lambda: self._version >= version)
            assert self._snapshot is not None
            return self._snapshot

        return await asyncio.wait_for(_wait(), timeout)

    async def _pump(self, store: BroadcastStore, resubscribe_delay: float) -> None:
        while True:
            try:
                async for records in store.watch(self.filter):
                    await self._receive(records)
                logger.warning("Feed {} for {} ended; resubscribing", self.subscription_id, self.filter.describe())
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "Feed {} for {} broke: {}; resubscribing in {}s",
                    self.subscription_id,
                    self.filter.describe(),
                    e,
                    resubscribe_delay,
                )
            await asyncio.sleep(resubscribe_delay)

    async def _receive(self, records: list[BroadcastRecord]) -> None:
        self._version += 1
        snapshot = LiveSnapshot(records=project(records), version=self._version, received_at=utc_now())
        self._snapshot = snapshot
        self._first_snapshot.set()
        async with self._changed:
            self._changed.notify_all()

        if self._listener is None:
            return
        try:
            result = self._listener(snapshot)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Listener of feed {} failed on version {}: {}", self.subscription_id, snapshot.version, e
            )

    async def unsubscribe(self) -> None:
        task, self._task = self._task, None
        self._mirror._discard(self)
        if task is None or task.done():
            return

        task.cancel()
        # A listener may unsubscribe its own feed; the pump stops at its next await.
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Feed {} unsubscribed", self.subscription_id)

    async def __aenter__(self) -> "MirrorSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unsubscribe()


class LiveMirror:
    def __init__(self, store: BroadcastStore, resubscribe_delay: float = 1.0):
        self._store = store
        self._resubscribe_delay = resubscribe_delay
        self._subscriptions: dict[str, MirrorSubscription] = {}

    def subscribe(
        self,
        broadcast_filter: BroadcastFilter,
        listener: SnapshotListener | None = None,
    ) -> MirrorSubscription:
        subscription = MirrorSubscription(self, broadcast_filter, listener)
        self._subscriptions[subscription.subscription_id] = subscription
        subscription._start(self._store, self._resubscribe_delay)
        logger.debug("Feed {} subscribed for {}", subscription.subscription_id, broadcast_filter.describe())
        return subscription

    def subscribe_all_active(self, listener: SnapshotListener | None = None) -> MirrorSubscription:
        return self.subscribe(BroadcastFilter(), listener)

    def subscribe_my_active(
        self, broadcaster_uid: str, listener: SnapshotListener | None = None
    ) -> MirrorSubscription:
        return self.subscribe(BroadcastFilter(broadcaster_uid=broadcaster_uid), listener)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def _discard(self, subscription: MirrorSubscription) -> None:
        self._subscriptions.pop(subscription.subscription_id, None)

    async def close(self) -> None:
        for subscription in list(self._subscriptions.values()):
            await subscription.unsubscribe()
