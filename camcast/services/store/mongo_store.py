"""MongoDB broadcast store backed by Beanie and change streams."""

from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager

from beanie import UpdateResponse
from loguru import logger
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    PyMongoError,
    ServerSelectionTimeoutError,
)

from camcast.domain.live.broadcast.broadcast_models import BroadcastFilter, BroadcastRecord
from camcast.domain.utils.idgen import new_broadcast_id
from camcast.schemas import Broadcast
from camcast.schemas.broadcast import ACTIVE_OWNER_INDEX
from camcast.shared.utils.clock import utc_now

from .base import (
    ActiveBroadcastExistsError,
    BroadcastStore,
    StoreError,
    StorePermissionError,
    StoreUnavailableError,
)

# MongoDB "Unauthorized" server error code
_UNAUTHORIZED = 13

_WATCHED_OPERATIONS = ["insert", "update", "replace", "delete"]


class MongoBroadcastStore(BroadcastStore):
    """Store on the `broadcast` collection.

    Beanie must be initialised (see `camcast.schemas.init_beanie_odm`) before
    use. The unique partial index on `broadcaster_uid` where `active: true`
    makes a concurrent second insert for the same owner fail with a duplicate
    key error. `watch` needs a replica set.
    """

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except StoreError:
            raise
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.warning("MongoDB unavailable during {}: {}", operation, e)
            raise StoreUnavailableError(f"{operation}: {e}") from e
        except OperationFailure as e:
            if e.code == _UNAUTHORIZED:
                raise StorePermissionError(f"{operation}: {e}") from e
            raise StoreError(f"{operation}: {e}") from e
        except PyMongoError as e:
            raise StoreError(f"{operation}: {e}") from e

    async def _find_active_for_owner(self, broadcaster_uid: str) -> Broadcast | None:
        return await Broadcast.find_one(
            Broadcast.broadcaster_uid == broadcaster_uid,
            Broadcast.active == True,  # noqa: E712
        )

    async def create_active(
        self,
        *,
        broadcaster_uid: str,
        broadcaster_name: str,
        title: str,
        thumbnail: str | None = None,
    ) -> BroadcastRecord:
        with self._translate_errors("create_active"):
            existing = await self._find_active_for_owner(broadcaster_uid)
            if existing:
                raise ActiveBroadcastExistsError(broadcaster_uid, existing.broadcast_id)

            now = utc_now()
            broadcast = Broadcast(
                broadcast_id=new_broadcast_id(),
                broadcaster_uid=broadcaster_uid,
                broadcaster_name=broadcaster_name,
                title=title,
                active=True,
                viewer_count=0,
                thumbnail=thumbnail,
                start_time=now,
                end_time=None,
                updated_at=now,
            )
            try:
                await broadcast.insert()
            except DuplicateKeyError as e:
                if ACTIVE_OWNER_INDEX not in str(e):
                    raise
                # Another client won the race between our check and insert
                logger.warning("Duplicate active broadcast for {}: {}", broadcaster_uid, e)
                winner = await self._find_active_for_owner(broadcaster_uid)
                raise ActiveBroadcastExistsError(
                    broadcaster_uid, winner.broadcast_id if winner else None
                ) from e

            logger.debug("Inserted broadcast {} for {}", broadcast.broadcast_id, broadcaster_uid)
            return broadcast.to_record()

    async def get(self, broadcast_id: str) -> BroadcastRecord | None:
        with self._translate_errors("get"):
            broadcast = await Broadcast.find_one(Broadcast.broadcast_id == broadcast_id)
            return broadcast.to_record() if broadcast else None

    async def end(self, broadcast_id: str) -> BroadcastRecord | None:
        with self._translate_errors("end"):
            # active and end_time change in the same document update
            updated = await Broadcast.find_one(
                Broadcast.broadcast_id == broadcast_id,
                Broadcast.active == True,  # noqa: E712
            ).update(
                {
                    "$set": {"active": False},
                    "$currentDate": {"end_time": True, "updated_at": True},
                },
                response_type=UpdateResponse.NEW_DOCUMENT,
            )
            if updated:
                return updated.to_record()

        return await self.get(broadcast_id)

    async def set_thumbnail(self, broadcast_id: str, thumbnail: str) -> BroadcastRecord | None:
        with self._translate_errors("set_thumbnail"):
            updated = await Broadcast.find_one(
                Broadcast.broadcast_id == broadcast_id,
                Broadcast.active == True,  # noqa: E712
            ).update(
                {
                    "$set": {"thumbnail": thumbnail},
                    "$currentDate": {"updated_at": True},
                },
                response_type=UpdateResponse.NEW_DOCUMENT,
            )
            return updated.to_record() if updated else None

    async def find_active(self, broadcast_filter: BroadcastFilter) -> list[BroadcastRecord]:
        conditions = [Broadcast.active == True]  # noqa: E712
        if broadcast_filter.broadcaster_uid:
            conditions.append(Broadcast.broadcaster_uid == broadcast_filter.broadcaster_uid)

        with self._translate_errors("find_active"):
            broadcasts = await Broadcast.find(*conditions).to_list()

        records = [b.to_record() for b in broadcasts]
        return [r for r in records if broadcast_filter.matches(r)]

    async def watch(self, broadcast_filter: BroadcastFilter) -> AsyncIterator[list[BroadcastRecord]]:
        pipeline = [{"$match": {"operationType": {"$in": _WATCHED_OPERATIONS}}}]
        collection = Broadcast.get_pymongo_collection()

        with self._translate_errors("watch"):
            # Open the stream before the first query so no change falls in between.
            async with await collection.watch(pipeline) as stream:
                last = await self.find_active(broadcast_filter)
                yield last
                async for change in stream:
                    logger.trace("Change on broadcast collection: {}", change.get("operationType"))
                    current = await self.find_active(broadcast_filter)
                    if current != last:
                        last = current
                        yield current
