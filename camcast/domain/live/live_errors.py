"""Error taxonomy surfaced by the broadcast engine.

Every error class carries a ``kind``. The kind selects the error code, the HTTP
status, the human-readable message shown to the user and whether offering a
retry action makes sense. The raw cause stays in ``errmesg`` for the logs.
"""

from enum import Enum

from pydantic import BaseModel

from camcast.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class DeviceErrorKind(str, Enum):
    NO_DEVICE_FOUND = "no_device_found"
    DEVICE_BUSY = "device_busy"
    PERMISSION_DENIED = "permission_denied"
    INSECURE_CONTEXT = "insecure_context"
    UNKNOWN = "unknown"


class ValidationErrorKind(str, Enum):
    EMPTY_TITLE = "empty_title"


class RemoteErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    NETWORK = "network"
    ACTIVE_BROADCAST_EXISTS = "active_broadcast_exists"
    UNKNOWN = "unknown"


class StateErrorKind(str, Enum):
    INVALID_TRANSITION = "invalid_transition"
    NOT_SIGNED_IN = "not_signed_in"


class CaptureErrorKind(str, Enum):
    NOT_READY = "not_ready"
    ENCODING_FAILED = "encoding_failed"


class LiveError(AppError):
    """Base class for broadcast engine errors."""

    # kind -> (error code, HTTP status, user message, retryable)
    CATALOG: dict = {}

    def __init__(self, kind: Enum, detail: str | None = None):
        errcode, status_code, user_message, retryable = self.CATALOG[kind]
        self.kind = kind
        self.user_message: str = user_message
        self.retryable: bool = retryable
        super().__init__(errcode, detail or user_message, status_code)

    def to_view(self) -> "ErrorView":
        return ErrorView(
            category=type(self).__name__,
            kind=self.kind.value,
            errcode=self.errcode,
            message=self.user_message,
            retryable=self.retryable,
        )


class DeviceError(LiveError):
    CATALOG = {
        DeviceErrorKind.NO_DEVICE_FOUND: (
            AppErrorCode.E_NO_DEVICE_FOUND,
            HttpStatusCode.SERVICE_UNAVAILABLE,
            "No camera found. Please connect a camera and try again.",
            True,
        ),
        DeviceErrorKind.DEVICE_BUSY: (
            AppErrorCode.E_DEVICE_BUSY,
            HttpStatusCode.CONFLICT,
            "Camera is in use by another application. Please close other apps using the camera.",
            True,
        ),
        DeviceErrorKind.PERMISSION_DENIED: (
            AppErrorCode.E_DEVICE_PERMISSION_DENIED,
            HttpStatusCode.FORBIDDEN,
            "Camera access denied. Please allow camera access and try again.",
            True,
        ),
        DeviceErrorKind.INSECURE_CONTEXT: (
            AppErrorCode.E_INSECURE_CONTEXT,
            HttpStatusCode.FORBIDDEN,
            "Camera capture requires a secure connection (HTTPS or localhost).",
            False,
        ),
        DeviceErrorKind.UNKNOWN: (
            AppErrorCode.E_DEVICE_UNKNOWN,
            HttpStatusCode.INTERNAL_ERROR,
            "The camera could not be started. Please try again.",
            True,
        ),
    }

    def __init__(self, kind: DeviceErrorKind, detail: str | None = None):
        super().__init__(kind, detail)


class ValidationError(LiveError):
    CATALOG = {
        ValidationErrorKind.EMPTY_TITLE: (
            AppErrorCode.E_EMPTY_TITLE,
            HttpStatusCode.BAD_REQUEST,
            "Please enter a broadcast title.",
            False,
        ),
    }

    def __init__(self, kind: ValidationErrorKind, detail: str | None = None):
        super().__init__(kind, detail)


class RemoteError(LiveError):
    CATALOG = {
        RemoteErrorKind.NOT_FOUND: (
            AppErrorCode.E_BROADCAST_NOT_FOUND,
            HttpStatusCode.NOT_FOUND,
            "This broadcast is no longer available.",
            False,
        ),
        RemoteErrorKind.PERMISSION_DENIED: (
            AppErrorCode.E_BROADCAST_PERMISSION_DENIED,
            HttpStatusCode.FORBIDDEN,
            "You are not allowed to change this broadcast.",
            False,
        ),
        RemoteErrorKind.NETWORK: (
            AppErrorCode.E_BROADCAST_NETWORK,
            HttpStatusCode.SERVICE_UNAVAILABLE,
            "Could not reach the broadcast service. Please try again.",
            True,
        ),
        RemoteErrorKind.ACTIVE_BROADCAST_EXISTS: (
            AppErrorCode.E_BROADCAST_EXISTS,
            HttpStatusCode.CONFLICT,
            "You are already broadcasting from another session.",
            True,
        ),
        RemoteErrorKind.UNKNOWN: (
            AppErrorCode.E_BROADCAST_UNKNOWN,
            HttpStatusCode.INTERNAL_ERROR,
            "The broadcast service failed. Please try again.",
            True,
        ),
    }

    def __init__(self, kind: RemoteErrorKind, detail: str | None = None):
        super().__init__(kind, detail)


class StateError(LiveError):
    CATALOG = {
        StateErrorKind.INVALID_TRANSITION: (
            AppErrorCode.E_INVALID_TRANSITION,
            HttpStatusCode.CONFLICT,
            "That action is not available right now.",
            False,
        ),
        StateErrorKind.NOT_SIGNED_IN: (
            AppErrorCode.E_NOT_SIGNED_IN,
            HttpStatusCode.UNAUTHORIZED,
            "Please sign in to broadcast.",
            False,
        ),
    }

    def __init__(self, kind: StateErrorKind, detail: str | None = None):
        super().__init__(kind, detail)


class CaptureError(LiveError):
    CATALOG = {
        CaptureErrorKind.NOT_READY: (
            AppErrorCode.E_CAPTURE_NOT_READY,
            HttpStatusCode.CONFLICT,
            "The video is not ready yet.",
            True,
        ),
        CaptureErrorKind.ENCODING_FAILED: (
            AppErrorCode.E_CAPTURE_ENCODING_FAILED,
            HttpStatusCode.INTERNAL_ERROR,
            "Could not capture a thumbnail.",
            True,
        ),
    }

    def __init__(self, kind: CaptureErrorKind, detail: str | None = None):
        super().__init__(kind, detail)


class ErrorView(BaseModel):
    """Presentation form of a classified error."""

    category: str
    kind: str
    errcode: str
    message: str
    retryable: bool
