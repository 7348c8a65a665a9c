"""Broadcaster-side session endpoints."""

from fastapi import APIRouter

from camcast.api.v1.dependency import Session
from camcast.api.v1.schemas.base import ApiOut
from camcast.api.v1.schemas.broadcast import DraftTitleIn, EnterBroadcastIn, StartBroadcastIn
from camcast.domain.live.session.session_models import SessionView

router = APIRouter(prefix="/broadcast")


@router.post("/enter")
async def enter_broadcast_page(body: EnterBroadcastIn, session: Session) -> ApiOut[SessionView]:
    """Enter the broadcast page; device and remote failures are reported in `last_error`."""
    view = await session.enter_broadcast_page(record_id=body.record_id, viewer=body.viewer)
    return ApiOut[SessionView](results=view)


@router.post("/leave")
async def leave_broadcast_page(session: Session) -> ApiOut[SessionView]:
    view = await session.leave_broadcast_page()
    return ApiOut[SessionView](results=view)


@router.post("/title")
async def set_draft_title(body: DraftTitleIn, session: Session) -> ApiOut[SessionView]:
    view = await session.set_draft_title(body.title)
    return ApiOut[SessionView](results=view)


@router.post("/start")
async def start_broadcast(body: StartBroadcastIn, session: Session) -> ApiOut[SessionView]:
    view = await session.start_broadcast(body.title)
    return ApiOut[SessionView](results=view)


@router.post("/stop")
async def stop_broadcast(session: Session) -> ApiOut[SessionView]:
    """Stop publishing. Ending the record remotely may fail; see `last_error`."""
    view = await session.stop_broadcast()
    return ApiOut[SessionView](results=view)


@router.post("/thumbnail")
async def update_thumbnail(session: Session) -> ApiOut[SessionView]:
    view = await session.update_thumbnail()
    return ApiOut[SessionView](results=view)


@router.get("/session")
async def get_session(session: Session) -> ApiOut[SessionView]:
    return ApiOut[SessionView](results=session.view())
