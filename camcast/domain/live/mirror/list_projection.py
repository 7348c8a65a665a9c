"""Display ordering of the active broadcast set."""

from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel

from ..broadcast.broadcast_models import BroadcastRecord


def _sort_key(record: BroadcastRecord) -> tuple:
    # newest first, then busiest, then id for a stable tie-break
    return (-record.start_time.timestamp(), -record.viewer_count, record.id)


def project(records: Iterable[BroadcastRecord]) -> tuple[BroadcastRecord, ...]:
    return tuple(sorted(records, key=_sort_key))


class BroadcastListItem(BaseModel):
    id: str
    title: str
    broadcaster_uid: str
    broadcaster_name: str
    viewer_count: int
    start_time: datetime
    thumbnail: str | None = None
    is_mine: bool = False


def to_list_items(records: Iterable[BroadcastRecord], viewer_uid: str | None = None) -> list[BroadcastListItem]:
    """Project ``records`` and mark the ones owned by ``viewer_uid``."""
    return [
        BroadcastListItem(
            id=r.id,
            title=r.title,
            broadcaster_uid=r.broadcaster_uid,
            broadcaster_name=r.broadcaster_name,
            viewer_count=r.viewer_count,
            start_time=r.start_time,
            thumbnail=r.thumbnail,
            is_mine=r.owned_by(viewer_uid),
        )
        for r in project(records)
    ]
