"""Viewer-side endpoints: the live list, its event stream, single records."""

import asyncio
from collections.abc import AsyncIterator

import orjson
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from loguru import logger

from camcast.api.v1.dependency import CurrentIdentity, Runtime
from camcast.api.v1.schemas.base import ApiOut
from camcast.api.v1.schemas.broadcast import BroadcastRecordOut, LiveListOut
from camcast.domain.live.live_errors import RemoteError, RemoteErrorKind
from camcast.domain.live.mirror.list_projection import to_list_items
from camcast.domain.live.mirror.live_mirror import LiveSnapshot

router = APIRouter(prefix="/broadcast")

# seconds between keep-alive comments on an idle stream
SSE_HEARTBEAT_INTERVAL = 15.0
# seconds to wait for the first mirror snapshot of the live list
LIVE_LIST_TIMEOUT = 5.0


def format_sse_event(event_type: str, data: dict, event_id: str | None = None) -> str:
    lines = [f"event: {event_type}"]
    if event_id:
        lines.append(f"id: {event_id}")
    lines.append(f"data: {orjson.dumps(data).decode()}")
    return "\n".join(lines) + "\n\n"


def _live_list(snapshot_records, viewer_uid: str | None) -> LiveListOut:
    items = to_list_items(snapshot_records, viewer_uid)
    return LiveListOut(broadcasts=items, count=len(items))


@router.get("/live")
async def list_live_broadcasts(runtime: Runtime, identity: CurrentIdentity) -> ApiOut[LiveListOut]:
    """Active broadcasts, newest first, then by viewer count."""
    async with runtime.mirror.subscribe_all_active() as subscription:
        try:
            snapshot = await subscription.wait_first_snapshot(LIVE_LIST_TIMEOUT)
        except asyncio.TimeoutError:
            raise RemoteError(RemoteErrorKind.NETWORK, "Live list did not load in time")
    return ApiOut[LiveListOut](results=_live_list(snapshot.records, identity.uid if identity else None))


@router.get("/live/stream")
async def stream_live_broadcasts(request: Request, runtime: Runtime, identity: CurrentIdentity) -> StreamingResponse:
    """Server-sent events: one `snapshot` event per change of the active set."""
    viewer_uid = identity.uid if identity else None

    async def event_stream() -> AsyncIterator[str]:
        # Subscribed on first iteration so a response that is never sent holds no feed.
        queue: asyncio.Queue[LiveSnapshot] = asyncio.Queue()
        subscription = runtime.mirror.subscribe_all_active(queue.put_nowait)
        try:
            while True:
                try:
                    snapshot = await asyncio.wait_for(queue.get(), SSE_HEARTBEAT_INTERVAL)
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        break
                    yield ": heartbeat\n\n"
                    continue

                # Only the newest snapshot matters.
                while not queue.empty():
                    snapshot = queue.get_nowait()
                payload = _live_list(snapshot.records, viewer_uid).model_dump(mode="json")
                yield format_sse_event("snapshot", payload, event_id=str(snapshot.version))
        finally:
            await subscription.unsubscribe()
            logger.debug("Live stream {} closed", subscription.subscription_id)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/record/{broadcast_id}")
async def get_broadcast_record(broadcast_id: str, runtime: Runtime) -> ApiOut[BroadcastRecordOut]:
    record = await runtime.gateway.fetch_record(broadcast_id)
    if record is None:
        raise RemoteError(RemoteErrorKind.NOT_FOUND, f"Broadcast not found: {broadcast_id}")
    return ApiOut[BroadcastRecordOut](results=BroadcastRecordOut.from_record(record))
