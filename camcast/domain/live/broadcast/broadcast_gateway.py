"""Broadcast record gateway: the only writer of broadcast records."""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from camcast.services.integrations.identity_provider import Identity
from camcast.services.store import (
    ActiveBroadcastExistsError,
    BroadcastStore,
    StoreError,
    StorePermissionError,
    StoreUnavailableError,
)

from ..device.thumbnail import EncodedImage
from ..live_errors import RemoteError, RemoteErrorKind, ValidationError, ValidationErrorKind
from .broadcast_models import BroadcastFilter, BroadcastRecord

T = TypeVar("T")


class BroadcastGateway:
    """Create, end and update broadcast records.

    Each operation is one store call (a sweep is one query plus one end per
    record). No retries happen here; store failures surface as RemoteError.
    """

    def __init__(self, store: BroadcastStore):
        self._store = store

    async def _call(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fn()
        except ActiveBroadcastExistsError as e:
            raise RemoteError(RemoteErrorKind.ACTIVE_BROADCAST_EXISTS, str(e)) from e
        except StoreUnavailableError as e:
            raise RemoteError(RemoteErrorKind.NETWORK, f"{operation}: {e}") from e
        except StorePermissionError as e:
            raise RemoteError(RemoteErrorKind.PERMISSION_DENIED, f"{operation}: {e}") from e
        except StoreError as e:
            raise RemoteError(RemoteErrorKind.UNKNOWN, f"{operation}: {e}") from e

    async def create_record(
        self,
        identity: Identity,
        title: str,
        thumbnail: EncodedImage | None = None,
    ) -> str:
        """Write a new active record and return its id.

        Raises:
            ValidationError: If the title is empty after trimming.
            RemoteError: ACTIVE_BROADCAST_EXISTS if the identity already owns an
                active record, or the mapped store failure.
        """
        clean_title = (title or "").strip()
        if not clean_title:
            raise ValidationError(ValidationErrorKind.EMPTY_TITLE)

        record = await self._call(
            "create_record",
            lambda: self._store.create_active(
                broadcaster_uid=identity.uid,
                broadcaster_name=identity.name,
                title=clean_title,
                thumbnail=thumbnail.to_data_url() if thumbnail else None,
            ),
        )
        logger.info("Broadcast {} created for {}: {!r}", record.id, identity.uid, clean_title)
        return record.id

    async def end_record(self, broadcast_id: str, owner_uid: str | None = None) -> None:
        """End a record. Ending an already ended record succeeds without change.

        Raises:
            RemoteError: NOT_FOUND if the record does not exist, PERMISSION_DENIED
                if ``owner_uid`` is given and does not own it.
        """
        if owner_uid is not None:
            record = await self.fetch_record(broadcast_id)
            if record is None:
                raise RemoteError(RemoteErrorKind.NOT_FOUND, f"Broadcast not found: {broadcast_id}")
            if not record.owned_by(owner_uid):
                raise RemoteError(
                    RemoteErrorKind.PERMISSION_DENIED,
                    f"Broadcast {broadcast_id} is not owned by {owner_uid}",
                )

        record = await self._call("end_record", lambda: self._store.end(broadcast_id))
        if record is None:
            raise RemoteError(RemoteErrorKind.NOT_FOUND, f"Broadcast not found: {broadcast_id}")

        logger.info("Broadcast {} ended at {}", broadcast_id, record.end_time)

    async def update_thumbnail(self, broadcast_id: str, image: EncodedImage) -> None:
        """Replace the thumbnail of an active record. Never recreates the record.

        Raises:
            RemoteError: NOT_FOUND if the record is missing or already ended.
        """
        record = await self._call(
            "update_thumbnail",
            lambda: self._store.set_thumbnail(broadcast_id, image.to_data_url()),
        )
        if record is None:
            raise RemoteError(
                RemoteErrorKind.NOT_FOUND, f"No active broadcast to update: {broadcast_id}"
            )

        logger.debug("Broadcast {} thumbnail updated ({} bytes)", broadcast_id, len(image.data))

    async def fetch_record(self, broadcast_id: str) -> BroadcastRecord | None:
        return await self._call("fetch_record", lambda: self._store.get(broadcast_id))

    async def list_active(self, broadcaster_uid: str | None = None) -> list[BroadcastRecord]:
        return await self._call(
            "list_active",
            lambda: self._store.find_active(BroadcastFilter(broadcaster_uid=broadcaster_uid)),
        )

    async def sweep_active_records_for_identity(self, broadcaster_uid: str) -> list[str]:
        """End every active record owned by ``broadcaster_uid``.

        Restores the at-most-one-active invariant after a session that crashed
        without ending its record.

        Returns:
            Ids of the records that were ended.
        """
        stale = await self.list_active(broadcaster_uid)
        ended: list[str] = []
        for record in stale:
            await self._call("sweep", lambda record_id=record.id: self._store.end(record_id))
            ended.append(record.id)

        if ended:
            logger.info("Swept {} active broadcast(s) for {}: {}", len(ended), broadcaster_uid, ended)
        return ended
