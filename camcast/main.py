import time
import traceback
import uuid
from contextlib import asynccontextmanager
from os import environ

import logfire
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from camcast.api.errors import app_error_handler
from camcast.api.v1.routers import broadcast, broadcast_viewer, identity
from camcast.app_config import get_app_environ_config
from camcast.domain.live.live_runtime import create_live_runtime
from camcast.services.integrations.capture_device import OpenCVCaptureDevice
from camcast.services.store import BroadcastStore, MemoryBroadcastStore
from camcast.shared.api import health
from camcast.shared.api.utils import api_failure, validation_exception_handler
from camcast.shared.log import init_logger
from camcast.utils.app_errors import AppError, AppErrorCode

app_config = get_app_environ_config()


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info("[{}] {} {}", request_id, request.method, request.url.path)

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000
            logger.info(
                "[{}] {} {} - Status: {} - Duration: {:.2f}ms",
                request_id,
                request.method,
                request.url.path,
                response.status_code,
                process_time,
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000
            logger.error(
                "[{}] Unhandled exception in {} {} - Duration: {:.2f}ms - Error: {}: {}\nTraceback:\n{}",
                request_id,
                request.method,
                request.url.path,
                process_time,
                type(exc).__name__,
                exc,
                traceback.format_exc(),
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR.value,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(status_code=500, content=failure.model_dump())


async def create_store() -> BroadcastStore:
    if app_config.DEMO_MODE:
        logger.info("Demo mode: broadcast records are kept in memory")
        return MemoryBroadcastStore()

    from camcast.schemas.init_schemas import init_schema
    from camcast.services.store.mongo_store import MongoBroadcastStore

    await init_schema()
    logger.info("Broadcast records stored in MongoDB database '{}'", app_config.CAMCAST_DATABASE)
    return MongoBroadcastStore()


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger(app_config.LOG_LEVEL)

    logger.info("Application startup...")

    store = await create_store()
    capture_api = OpenCVCaptureDevice(max_index=app_config.CAMERA_PROBE_MAX_INDEX)
    server.state.live = create_live_runtime(app_config, store, capture_api)

    if app_config.LOGFIRE_ENABLE:
        logger.info("Logfire initializing")

        logfire.configure(
            token=app_config.LOGFIRE_TOKEN,
            service_name="camcast",
            service_version=environ.get("BUILD_COMMIT") or "dev",
        )

        logger.info("Logfire instrument fastapi")
        logfire.instrument_fastapi(server, capture_headers=True)

        if not app_config.DEMO_MODE:
            logger.info("Logfire instrument mongo")
            logfire.instrument_pymongo(capture_statement=app_config.DEBUG)

        logger.info("Logfire instrument pydantic")
        logfire.instrument_pydantic()

    yield

    logger.info("Application shutdown...")

    await server.state.live.close()

    if not app_config.DEMO_MODE:
        from camcast.shared.storage.mongo import get_mongo_manager

        await get_mongo_manager().close_all()


app = FastAPI(
    version="1.0",
    title="Camcast API",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

app.add_middleware(HTTPLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=app_config.API_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore
app.add_exception_handler(AppError, app_error_handler)  # type: ignore

app.include_router(health.router)
for module in (broadcast, broadcast_viewer, identity):
    app.include_router(module.router, prefix="/api/v1")


def build_granian_kwargs():
    kwargs = {
        "interface": "asgi",
        "address": app_config.API_HOST,
        "port": app_config.API_PORT,
        "workers": app_config.API_WORKERS,
        "reload": app_config.DEBUG,
    }

    return kwargs


def run():
    Granian("camcast.main:app", **build_granian_kwargs()).serve()


if __name__ == "__main__":
    run()
