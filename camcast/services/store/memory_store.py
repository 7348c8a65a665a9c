"""In-process broadcast store used in demo mode and tests."""

import asyncio
from collections.abc import AsyncIterator

from loguru import logger

from camcast.domain.live.broadcast.broadcast_models import BroadcastFilter, BroadcastRecord
from camcast.domain.utils.idgen import new_broadcast_id
from camcast.shared.utils.clock import utc_now

from .base import ActiveBroadcastExistsError, BroadcastStore


class MemoryBroadcastStore(BroadcastStore):
    """Dictionary-backed store.

    Every mutation runs without a suspension point between its check and its
    write, so on a single event loop each one is atomic. Watchers get a wake-up
    per mutation and re-run their query.
    """

    def __init__(self):
        self._records: dict[str, BroadcastRecord] = {}
        self._watchers: set[asyncio.Queue[None]] = set()

    async def create_active(
        self,
        *,
        broadcaster_uid: str,
        broadcaster_name: str,
        title: str,
        thumbnail: str | None = None,
    ) -> BroadcastRecord:
        existing = next(
            (r for r in self._records.values() if r.is_live() and r.broadcaster_uid == broadcaster_uid),
            None,
        )
        if existing:
            raise ActiveBroadcastExistsError(broadcaster_uid, existing.id)

        now = utc_now()
        record = BroadcastRecord(
            id=new_broadcast_id(),
            broadcaster_uid=broadcaster_uid,
            broadcaster_name=broadcaster_name,
            title=title,
            active=True,
            viewer_count=0,
            start_time=now,
            end_time=None,
            thumbnail=thumbnail,
            updated_at=now,
        )
        self._records[record.id] = record
        logger.debug("Stored broadcast {} for {}", record.id, broadcaster_uid)
        self._notify()
        return record

    async def get(self, broadcast_id: str) -> BroadcastRecord | None:
        return self._records.get(broadcast_id)

    async def end(self, broadcast_id: str) -> BroadcastRecord | None:
        record = self._records.get(broadcast_id)
        if record is None or not record.active:
            return record

        now = utc_now()
        record = record.model_copy(update={"active": False, "end_time": now, "updated_at": now})
        self._records[broadcast_id] = record
        self._notify()
        return record

    async def set_thumbnail(self, broadcast_id: str, thumbnail: str) -> BroadcastRecord | None:
        record = self._records.get(broadcast_id)
        if record is None or not record.is_live():
            return None

        record = record.model_copy(update={"thumbnail": thumbnail, "updated_at": utc_now()})
        self._records[broadcast_id] = record
        self._notify()
        return record

    async def set_viewer_count(self, broadcast_id: str, viewer_count: int) -> BroadcastRecord | None:
        """Stand-in for the external presence service that owns viewer counts."""
        record = self._records.get(broadcast_id)
        if record is None:
            return None

        record = record.model_copy(update={"viewer_count": viewer_count, "updated_at": utc_now()})
        self._records[broadcast_id] = record
        self._notify()
        return record

    async def find_active(self, broadcast_filter: BroadcastFilter) -> list[BroadcastRecord]:
        return [r for r in self._records.values() if broadcast_filter.matches(r)]

    async def watch(self, broadcast_filter: BroadcastFilter) -> AsyncIterator[list[BroadcastRecord]]:
        queue: asyncio.Queue[None] = asyncio.Queue()
        self._watchers.add(queue)
        try:
            last = await self.find_active(broadcast_filter)
            yield last
            while True:
                await queue.get()
                # Coalesce wake-ups that piled up while the consumer was busy.
                while not queue.empty():
                    queue.get_nowait()
                current = await self.find_active(broadcast_filter)
                if current != last:
                    last = current
                    yield current
        finally:
            self._watchers.discard(queue)

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)

    def _notify(self) -> None:
        for queue in self._watchers:
            queue.put_nowait(None)
