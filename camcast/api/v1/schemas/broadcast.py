from datetime import datetime

from pydantic import BaseModel, Field

from camcast.domain.live.broadcast.broadcast_models import BroadcastRecord
from camcast.domain.live.mirror.list_projection import BroadcastListItem


class EnterBroadcastIn(BaseModel):
    record_id: str | None = Field(None, description="Broadcast to resume or view")
    viewer: bool = Field(False, description="Enter as a viewer; the camera is not touched")


class DraftTitleIn(BaseModel):
    title: str = Field(..., max_length=200)


class StartBroadcastIn(BaseModel):
    title: str | None = Field(None, max_length=200, description="Defaults to the draft title")


class BroadcastRecordOut(BaseModel):
    id: str
    broadcaster_uid: str
    broadcaster_name: str
    title: str
    active: bool
    viewer_count: int
    start_time: datetime
    end_time: datetime | None = None
    thumbnail: str | None = None

    @classmethod
    def from_record(cls, record: BroadcastRecord) -> "BroadcastRecordOut":
        return cls(**record.model_dump(exclude={"updated_at"}))


class LiveListOut(BaseModel):
    broadcasts: list[BroadcastListItem]
    count: int
