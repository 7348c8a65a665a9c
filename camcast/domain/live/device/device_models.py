from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from camcast.domain.utils.idgen import new_device_handle_id

if TYPE_CHECKING:
    from camcast.services.integrations.capture_device import VideoStream


class FacingMode(str, Enum):
    USER = "user"
    ENVIRONMENT = "environment"


@dataclass(frozen=True)
class ConstraintProfile:
    """One rung of the acquisition ladder.

    ``ideal`` resolutions are hints the device may ignore; otherwise a given
    width/height must be matched exactly.
    """

    name: str
    facing_mode: FacingMode | None = None
    width: int | None = None
    height: int | None = None
    ideal: bool = False

    @property
    def has_resolution(self) -> bool:
        return self.width is not None and self.height is not None

    def describe(self) -> str:
        parts = [self.name]
        if self.facing_mode:
            parts.append(f"facing={self.facing_mode.value}")
        if self.has_resolution:
            kind = "ideal" if self.ideal else "exact"
            parts.append(f"{kind}={self.width}x{self.height}")
        return " ".join(parts)


DEFAULT_CONSTRAINT_PROFILES: tuple[ConstraintProfile, ...] = (
    ConstraintProfile(name="unconstrained"),
    ConstraintProfile(name="front", facing_mode=FacingMode.USER),
    ConstraintProfile(name="rear", facing_mode=FacingMode.ENVIRONMENT),
    ConstraintProfile(name="low_res", width=640, height=480),
    ConstraintProfile(name="hd", width=1280, height=720, ideal=True),
)


@dataclass(eq=False)
class DeviceHandle:
    """Exclusive hold on a live video stream.

    The hardware stays locked until ``release()``; there is no implicit timeout.
    """

    stream: VideoStream
    profile: ConstraintProfile
    handle_id: str = field(default_factory=new_device_handle_id)
    released: bool = False

    @property
    def live(self) -> bool:
        return not self.released and self.stream.active

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self.stream.stop()
        logger.debug("Device handle {} released ({})", self.handle_id, self.profile.name)
