"""Broadcast record domain models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from camcast.shared.utils.clock import as_utc

ANONYMOUS_BROADCASTER = "Anonymous"


class BroadcastRecord(BaseModel):
    """Public state of one broadcast as held by the store.

    ``active`` and ``end_time`` always move together: an active record has no
    end time and an ended record has one.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    broadcaster_uid: str
    broadcaster_name: str = ANONYMOUS_BROADCASTER
    title: str = Field(min_length=1)
    active: bool = True
    viewer_count: int = Field(default=0, ge=0)
    start_time: datetime
    end_time: datetime | None = None
    thumbnail: str | None = None
    updated_at: datetime | None = None

    @field_validator("start_time", "end_time", "updated_at")
    @classmethod
    def _utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v is not None else None

    @model_validator(mode="after")
    def _check_active_end_time(self) -> "BroadcastRecord":
        if self.active and self.end_time is not None:
            raise ValueError(f"active broadcast {self.id} must not have an end_time")
        if not self.active and self.end_time is None:
            raise ValueError(f"ended broadcast {self.id} must have an end_time")
        return self

    def is_live(self) -> bool:
        return self.active and self.end_time is None

    def owned_by(self, uid: str | None) -> bool:
        return uid is not None and self.broadcaster_uid == uid


class BroadcastFilter(BaseModel):
    """Query scope for active broadcast lookups and change feeds."""

    model_config = ConfigDict(frozen=True)

    broadcaster_uid: str | None = None

    def matches(self, record: BroadcastRecord) -> bool:
        if not record.is_live():
            return False
        return self.broadcaster_uid is None or record.broadcaster_uid == self.broadcaster_uid

    def describe(self) -> str:
        return f"owner={self.broadcaster_uid}" if self.broadcaster_uid else "all"
