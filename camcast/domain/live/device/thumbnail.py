import base64
from dataclasses import dataclass

import cv2
import numpy as np
from loguru import logger

from camcast.services.integrations.capture_device import VideoStream

from ..live_errors import CaptureError, CaptureErrorKind

JPEG_MIME_TYPE = "image/jpeg"


@dataclass(frozen=True)
class EncodedImage:
    mime_type: str
    data: bytes
    width: int
    height: int

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"


def fit_within(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Largest size with the same aspect ratio inside the box. Never upscales."""
    scale = min(max_width / width, max_height / height, 1.0)
    return max(1, round(width * scale)), max(1, round(height * scale))


class ThumbnailPipeline:
    """Grab the latest decoded frame of a stream and encode it as a small JPEG."""

    def __init__(
        self,
        quality: int = 70,
        max_width: int = 320,
        max_height: int = 180,
        max_bytes: int = 65536,
    ):
        self.quality = quality
        self.max_width = max_width
        self.max_height = max_height
        self.max_bytes = max_bytes

    def encode(self, frame: np.ndarray) -> EncodedImage:
        """Downscale and encode one BGR frame.

        Raises:
            CaptureError: ENCODING_FAILED if OpenCV refuses the frame or the
                result is over the byte cap.
        """
        if frame.ndim < 2 or frame.shape[0] == 0 or frame.shape[1] == 0:
            raise CaptureError(CaptureErrorKind.ENCODING_FAILED, f"Unusable frame shape {frame.shape}")

        height, width = frame.shape[:2]
        target_w, target_h = fit_within(width, height, self.max_width, self.max_height)
        if (target_w, target_h) != (width, height):
            frame = cv2.resize(frame, (target_w, target_h), interpolation=cv2.INTER_AREA)

        try:
            ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(self.quality)])
        except cv2.error as e:
            raise CaptureError(CaptureErrorKind.ENCODING_FAILED, f"JPEG encoding failed: {e}") from e
        if not ok:
            raise CaptureError(CaptureErrorKind.ENCODING_FAILED, "JPEG encoding failed")

        data = buf.tobytes()
        if len(data) > self.max_bytes:
            raise CaptureError(
                CaptureErrorKind.ENCODING_FAILED,
                f"Thumbnail is {len(data)} bytes, limit is {self.max_bytes}",
            )

        return EncodedImage(mime_type=JPEG_MIME_TYPE, data=data, width=target_w, height=target_h)

    async def capture(self, source: VideoStream | None, wait_timeout: float | None = None) -> EncodedImage:
        """Capture a thumbnail from ``source``.

        With ``wait_timeout`` set, waits up to that many seconds for the first
        decoded frame; otherwise a stream with no frame yet fails immediately.

        Raises:
            CaptureError: NOT_READY when there is no decoded frame,
                ENCODING_FAILED when encoding fails.
        """
        if source is None or not source.active:
            raise CaptureError(CaptureErrorKind.NOT_READY, "No live video stream")

        frame = source.latest_frame()
        if frame is None and wait_timeout:
            await source.wait_frame_ready(wait_timeout)
            frame = source.latest_frame()
        if frame is None:
            raise CaptureError(CaptureErrorKind.NOT_READY, "No decoded frame yet")

        image = self.encode(frame)
        logger.debug("Captured thumbnail {}x{} ({} bytes)", image.width, image.height, len(image.data))
        return image
