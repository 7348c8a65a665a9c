"""Capture device integration.

`CaptureDeviceApi` is the contract the device negotiator talks to. The
production backend opens local cameras with OpenCV; a reader thread keeps the
most recent decoded frame so thumbnails never block on the device.

Usage:
    from camcast.services.integrations.capture_device import OpenCVCaptureDevice

    capture_api = OpenCVCaptureDevice(max_index=4)
    devices = await capture_api.enumerate_devices()
    stream = await capture_api.open_stream(profile)
    ...
    stream.stop()
"""

from __future__ import annotations

import asyncio
import os
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import cv2
import numpy as np
from loguru import logger

from camcast.domain.live.device.device_models import ConstraintProfile, FacingMode


class DeviceKind(str, Enum):
    VIDEO_INPUT = "videoinput"
    AUDIO_INPUT = "audioinput"


@dataclass(frozen=True)
class DeviceInfo:
    device_id: str
    kind: DeviceKind
    label: str = ""


class CaptureFailureReason(str, Enum):
    """Why a capture request was refused."""

    NOT_READABLE = "not_readable"  # in use elsewhere
    NOT_ALLOWED = "not_allowed"
    NOT_FOUND = "not_found"
    SECURITY = "security"
    OVERCONSTRAINED = "overconstrained"
    UNKNOWN = "unknown"


class CaptureApiError(Exception):
    def __init__(self, reason: CaptureFailureReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason
        self.message = message or reason.value


class VideoStream(Protocol):
    @property
    def active(self) -> bool: ...

    def stop(self) -> None: ...

    def latest_frame(self) -> np.ndarray | None: ...

    async def wait_frame_ready(self, timeout: float | None = None) -> bool: ...


class CaptureDeviceApi(Protocol):
    async def enumerate_devices(self) -> list[DeviceInfo]: ...

    async def open_stream(self, profile: ConstraintProfile) -> VideoStream: ...


class OpenCVVideoStream:
    """Live stream over an opened `cv2.VideoCapture`."""

    # consecutive failed reads before the stream is considered ended
    MAX_READ_FAILURES = 50
    # upper bound on waiting for an in-progress read before the device is released
    STOP_JOIN_TIMEOUT = 2.0

    def __init__(self, capture: cv2.VideoCapture, device_id: str):
        self._capture = capture
        self._device_id = device_id
        self._frame: np.ndarray | None = None
        self._frame_lock = threading.Lock()
        self._frame_ready = threading.Event()
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._read_loop, name=f"camcast-capture-{device_id}", daemon=True
        )
        self._thread.start()

    def _read_loop(self) -> None:
        failures = 0
        try:
            while not self._stopped.is_set():
                ok, frame = self._capture.read()
                if not ok or frame is None:
                    failures += 1
                    if failures >= self.MAX_READ_FAILURES:
                        logger.warning("Camera {} stopped delivering frames", self._device_id)
                        break
                    time.sleep(0.02)
                    continue

                failures = 0
                with self._frame_lock:
                    self._frame = frame
                self._frame_ready.set()
        finally:
            self._stopped.set()
            # Wake any waiter; it will see whether a frame exists.
            self._frame_ready.set()
            self._capture.release()
            logger.debug("Camera {} released", self._device_id)

    @property
    def active(self) -> bool:
        return not self._stopped.is_set()

    def stop(self) -> None:
        """Stop reading and return once the capture has been released."""
        self._stopped.set()
        self._frame_ready.set()
        if threading.current_thread() is self._thread:
            return
        self._thread.join(self.STOP_JOIN_TIMEOUT)
        if self._thread.is_alive():
            logger.warning("Camera {} reader did not exit within {}s", self._device_id, self.STOP_JOIN_TIMEOUT)

    def latest_frame(self) -> np.ndarray | None:
        with self._frame_lock:
            return self._frame

    async def wait_frame_ready(self, timeout: float | None = None) -> bool:
        if not self._frame_ready.is_set():
            await asyncio.to_thread(self._frame_ready.wait, timeout)
        return self.latest_frame() is not None


class OpenCVCaptureDevice:
    """Local cameras by OpenCV index.

    Facing modes have no portable OpenCV equivalent: `user` maps to the first
    enumerated camera and `environment` to the last one.
    """

    def __init__(self, max_index: int = 4):
        self._max_index = max_index
        self._indices: list[int] = []

    def _probe(self) -> list[int]:
        found = []
        for index in range(self._max_index):
            capture = cv2.VideoCapture(index)
            try:
                if capture.isOpened():
                    found.append(index)
            finally:
                capture.release()
        return found

    async def enumerate_devices(self) -> list[DeviceInfo]:
        try:
            self._indices = await asyncio.to_thread(self._probe)
        except cv2.error as e:
            raise CaptureApiError(CaptureFailureReason.UNKNOWN, f"Device enumeration failed: {e}") from e

        logger.info("Found {} camera(s): {}", len(self._indices), self._indices)
        return [
            DeviceInfo(device_id=str(index), kind=DeviceKind.VIDEO_INPUT, label=f"Camera {index}")
            for index in self._indices
        ]

    def _pick_index(self, profile: ConstraintProfile) -> int:
        if not self._indices:
            raise CaptureApiError(CaptureFailureReason.NOT_FOUND, "No camera enumerated")
        if profile.facing_mode == FacingMode.ENVIRONMENT:
            return self._indices[-1]
        return self._indices[0]

    def _open(self, profile: ConstraintProfile) -> OpenCVVideoStream:
        index = self._pick_index(profile)

        device_path = f"/dev/video{index}"
        if os.path.exists(device_path) and not os.access(device_path, os.R_OK):
            raise CaptureApiError(CaptureFailureReason.NOT_ALLOWED, f"No read access to {device_path}")

        capture = cv2.VideoCapture(index)
        if not capture.isOpened():
            capture.release()
            raise CaptureApiError(CaptureFailureReason.NOT_READABLE, f"Camera {index} could not be opened")

        capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        if profile.has_resolution:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, profile.width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, profile.height)

            actual_w = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
            actual_h = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
            if not profile.ideal and (actual_w, actual_h) != (profile.width, profile.height):
                capture.release()
                raise CaptureApiError(
                    CaptureFailureReason.OVERCONSTRAINED,
                    f"Camera {index} gave {actual_w}x{actual_h}, wanted {profile.width}x{profile.height}",
                )

        logger.info("Opened camera {} with profile {}", index, profile.describe())
        return OpenCVVideoStream(capture, device_id=str(index))

    async def open_stream(self, profile: ConstraintProfile) -> OpenCVVideoStream:
        try:
            return await asyncio.to_thread(self._open, profile)
        except cv2.error as e:
            raise CaptureApiError(CaptureFailureReason.UNKNOWN, str(e)) from e
