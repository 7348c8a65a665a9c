from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger

from camcast.domain.live.live_errors import LiveError
from camcast.shared.api.utils import ApiFailure, make_response
from camcast.utils.app_errors import AppError, HttpStatusCode


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    Convert AppError to ApiFailure.

    Broadcast engine errors answer with their user-facing message; the raw
    detail only goes to the log together with the raising call site.
    """
    log_msg = f"{exc.errcode} {exc.erresid} msg={exc.errmesg} caller={exc.caller_info}"
    if exc.status_code >= HttpStatusCode.INTERNAL_ERROR:
        logger.error(log_msg)
    else:
        logger.warning(log_msg)

    errmesg = exc.user_message if isinstance(exc, LiveError) else exc.errmesg
    failure = ApiFailure(errcode=exc.errcode, errmesg=errmesg, erresid=exc.erresid)
    return make_response(failure, status_code=exc.status_code)
