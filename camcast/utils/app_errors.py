"""Application error type shared by the domain and the API layer."""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL_ERROR = 500
    SERVICE_UNAVAILABLE = 503


class AppErrorCode(str, Enum):
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"

    # Capture device
    E_NO_DEVICE_FOUND = "E_NO_DEVICE_FOUND"
    E_DEVICE_BUSY = "E_DEVICE_BUSY"
    E_DEVICE_PERMISSION_DENIED = "E_DEVICE_PERMISSION_DENIED"
    E_INSECURE_CONTEXT = "E_INSECURE_CONTEXT"
    E_DEVICE_UNKNOWN = "E_DEVICE_UNKNOWN"

    # Input validation
    E_EMPTY_TITLE = "E_EMPTY_TITLE"

    # Broadcast record store
    E_BROADCAST_NOT_FOUND = "E_BROADCAST_NOT_FOUND"
    E_BROADCAST_PERMISSION_DENIED = "E_BROADCAST_PERMISSION_DENIED"
    E_BROADCAST_NETWORK = "E_BROADCAST_NETWORK"
    E_BROADCAST_EXISTS = "E_BROADCAST_EXISTS"
    E_BROADCAST_UNKNOWN = "E_BROADCAST_UNKNOWN"

    # Session lifecycle
    E_INVALID_TRANSITION = "E_INVALID_TRANSITION"
    E_NOT_SIGNED_IN = "E_NOT_SIGNED_IN"

    # Thumbnail capture
    E_CAPTURE_NOT_READY = "E_CAPTURE_NOT_READY"
    E_CAPTURE_ENCODING_FAILED = "E_CAPTURE_ENCODING_FAILED"


class AppError(Exception):
    """Error carrying an error code, a message and the HTTP status to answer with.

    The raising call site is captured so handlers can log where the error
    originated without a full traceback.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str,
        errmesg: str,
        status_code: HttpStatusCode | int = HttpStatusCode.BAD_REQUEST,
    ):
        super().__init__(errmesg)
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]
        self.caller_info = self._caller_info()

    @staticmethod
    def _caller_info() -> str:
        # Skip this frame, __init__ and any subclass __init__ frames.
        for frame_info in inspect.stack(context=0)[2:]:
            if frame_info.function != "__init__":
                module = inspect.getmodule(frame_info.frame)
                module_name = module.__name__ if module else frame_info.filename
                return f"{module_name}:{frame_info.function}:{frame_info.lineno}"
        return "unknown"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(errcode={self.errcode!r}, errmesg={self.errmesg!r})"
