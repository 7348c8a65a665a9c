"""Broadcast ODM schema."""

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import Field, field_validator, model_validator
from pymongo import IndexModel

from camcast.domain.live.broadcast.broadcast_models import ANONYMOUS_BROADCASTER, BroadcastRecord

from .schema_utils import parse_mongo_datetime

ACTIVE_OWNER_INDEX = "broadcaster_uid_active_unique"


class Broadcast(Document):
    """Broadcast document model."""

    broadcast_id: Indexed(str, unique=True)  # type: ignore[valid-type]
    broadcaster_uid: str
    broadcaster_name: str = ANONYMOUS_BROADCASTER
    title: str

    active: bool = True
    viewer_count: int = Field(default=0, ge=0)  # owned by the presence service
    thumbnail: str | None = None  # data URL

    # Timestamps
    start_time: datetime
    end_time: datetime | None = None
    updated_at: datetime

    @field_validator("start_time", "end_time", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, v: Any) -> Any:
        """Parse MongoDB Extended JSON datetime format."""
        return parse_mongo_datetime(v)

    @model_validator(mode="after")
    def _check_active_end_time(self) -> "Broadcast":
        if self.active == (self.end_time is not None):
            raise ValueError(
                f"Broadcast {self.broadcast_id}: active={self.active} with end_time={self.end_time}"
            )
        return self

    def to_record(self) -> BroadcastRecord:
        return BroadcastRecord(
            id=self.broadcast_id,
            broadcaster_uid=self.broadcaster_uid,
            broadcaster_name=self.broadcaster_name,
            title=self.title,
            active=self.active,
            viewer_count=self.viewer_count,
            start_time=self.start_time,
            end_time=self.end_time,
            thumbnail=self.thumbnail,
            updated_at=self.updated_at,
        )

    class Settings:
        name = "broadcast"
        indexes = [
            [("broadcast_id", 1)],  # unique handled by Indexed
            IndexModel(
                [("broadcaster_uid", 1)],
                partialFilterExpression={"active": True},
                unique=True,
                name=ACTIVE_OWNER_INDEX,
            ),
            IndexModel(
                [("start_time", -1), ("viewer_count", -1)],
                partialFilterExpression={"active": True},
                name="start_time_viewer_count_active_partial",
            ),
        ]
