"""Backend document store contract for broadcast records."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from camcast.domain.live.broadcast.broadcast_models import BroadcastFilter, BroadcastRecord


class StoreError(Exception):
    """Base class for store failures."""


class ActiveBroadcastExistsError(StoreError):
    """The owner already has an active broadcast record."""

    def __init__(self, broadcaster_uid: str, existing_id: str | None = None):
        self.broadcaster_uid = broadcaster_uid
        self.existing_id = existing_id
        super().__init__(
            f"Active broadcast already exists for {broadcaster_uid}: {existing_id or 'unknown'}"
        )


class StoreUnavailableError(StoreError):
    """The store could not be reached."""


class StorePermissionError(StoreError):
    """The store refused the operation."""


class BroadcastStore(ABC):
    """Record storage with a subscribe-to-changes primitive.

    Implementations assign ids and timestamps, keep ``active``/``end_time``
    consistent in a single write and reject a second active record for the
    same owner.
    """

    @abstractmethod
    async def create_active(
        self,
        *,
        broadcaster_uid: str,
        broadcaster_name: str,
        title: str,
        thumbnail: str | None = None,
    ) -> BroadcastRecord:
        """Insert a new active record.

        Raises:
            ActiveBroadcastExistsError: If the owner already has an active record.
        """

    @abstractmethod
    async def get(self, broadcast_id: str) -> BroadcastRecord | None: ...

    @abstractmethod
    async def end(self, broadcast_id: str) -> BroadcastRecord | None:
        """Mark a record ended. Ending an ended record returns it unchanged.

        Returns:
            The record after the update, None if it does not exist.
        """

    @abstractmethod
    async def set_thumbnail(self, broadcast_id: str, thumbnail: str) -> BroadcastRecord | None:
        """Replace the thumbnail of an active record.

        Returns:
            The updated record, None if no active record has that id.
        """

    @abstractmethod
    async def find_active(self, broadcast_filter: BroadcastFilter) -> list[BroadcastRecord]: ...

    @abstractmethod
    def watch(self, broadcast_filter: BroadcastFilter) -> AsyncIterator[list[BroadcastRecord]]:
        """Yield the full matching set now and again after every change to it."""

    async def close(self) -> None:
        return None
