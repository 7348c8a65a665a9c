from typing import Annotated

from fastapi import Depends, Request

from camcast.domain.live.live_runtime import LiveRuntime
from camcast.domain.live.session.session_domain import BroadcastSession
from camcast.services.integrations.identity_provider import Identity
from camcast.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


def get_live_runtime(request: Request) -> LiveRuntime:
    runtime = getattr(request.app.state, "live", None)
    if runtime is None:
        raise AppError(
            errcode=AppErrorCode.E_INTERNAL_ERROR,
            errmesg="Broadcast engine is not running",
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )
    return runtime


Runtime = Annotated[LiveRuntime, Depends(get_live_runtime)]


def get_broadcast_session(runtime: Runtime) -> BroadcastSession:
    return runtime.session


def get_current_identity(runtime: Runtime) -> Identity | None:
    return runtime.identity_provider.current


Session = Annotated[BroadcastSession, Depends(get_broadcast_session)]
CurrentIdentity = Annotated[Identity | None, Depends(get_current_identity)]
