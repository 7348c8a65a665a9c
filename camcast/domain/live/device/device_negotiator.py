from collections.abc import Sequence

from loguru import logger

from camcast.services.integrations.capture_device import (
    CaptureApiError,
    CaptureDeviceApi,
    CaptureFailureReason,
    DeviceKind,
)

from ..live_errors import DeviceError, DeviceErrorKind
from .device_models import DEFAULT_CONSTRAINT_PROFILES, ConstraintProfile, DeviceHandle

_FAILURE_KINDS: dict[CaptureFailureReason, DeviceErrorKind] = {
    CaptureFailureReason.NOT_READABLE: DeviceErrorKind.DEVICE_BUSY,
    CaptureFailureReason.NOT_ALLOWED: DeviceErrorKind.PERMISSION_DENIED,
    CaptureFailureReason.NOT_FOUND: DeviceErrorKind.NO_DEVICE_FOUND,
    CaptureFailureReason.SECURITY: DeviceErrorKind.INSECURE_CONTEXT,
}


def classify_capture_failure(error: Exception) -> DeviceError:
    """Map a capture API failure to the device error shown to the user."""
    if isinstance(error, CaptureApiError):
        kind = _FAILURE_KINDS.get(error.reason, DeviceErrorKind.UNKNOWN)
        return DeviceError(kind, error.message)
    return DeviceError(DeviceErrorKind.UNKNOWN, str(error) or type(error).__name__)


class DeviceNegotiator:
    """Obtain one live video stream by walking a ladder of constraint profiles."""

    def __init__(
        self,
        capture_api: CaptureDeviceApi,
        profiles: Sequence[ConstraintProfile] = DEFAULT_CONSTRAINT_PROFILES,
    ):
        if not profiles:
            raise ValueError("At least one constraint profile is required")
        self._capture_api = capture_api
        self._profiles = tuple(profiles)
        self._handle: DeviceHandle | None = None

    @property
    def held(self) -> DeviceHandle | None:
        if self._handle is not None and self._handle.released:
            self._handle = None
        return self._handle

    async def acquire(self) -> DeviceHandle:
        """Return a live device handle.

        A handle that is still held is returned as is. Otherwise devices are
        enumerated and each profile is tried in order until one opens.

        Raises:
            DeviceError: NO_DEVICE_FOUND when no video input exists, or the
                classification of the last profile failure.
        """
        held = self.held
        if held is not None:
            logger.debug("Reusing device handle {}", held.handle_id)
            return held

        try:
            devices = await self._capture_api.enumerate_devices()
        except Exception as e:
            logger.warning("Device enumeration failed: {}", e)
            raise classify_capture_failure(e) from e

        video_inputs = [d for d in devices if d.kind == DeviceKind.VIDEO_INPUT]
        if not video_inputs:
            raise DeviceError(DeviceErrorKind.NO_DEVICE_FOUND, "No video input device enumerated")

        last_error: Exception | None = None
        for profile in self._profiles:
            try:
                stream = await self._capture_api.open_stream(profile)
            except Exception as e:
                logger.info("Profile {} failed: {}", profile.describe(), e)
                last_error = e
                continue

            self._handle = DeviceHandle(stream=stream, profile=profile)
            logger.info("Acquired device handle {} with profile {}", self._handle.handle_id, profile.name)
            return self._handle

        assert last_error is not None
        error = classify_capture_failure(last_error)
        logger.warning("All {} constraint profiles failed; last: {}", len(self._profiles), error.errmesg)
        raise error from last_error

    def release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.release()
