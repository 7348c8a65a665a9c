"""Local broadcast session models."""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel

from camcast.services.integrations.identity_provider import Identity

from ..device.device_models import DeviceHandle
from ..live_errors import ErrorView, LiveError


class SessionPhase(str, Enum):
    """Local session phases.

    Phase Flow:

    IDLE → ACQUIRING_DEVICE → DEVICE_READY → PUBLISHING → STOPPING → IDLE
                 ↓
               FAILED

    Phase Descriptions:
    - IDLE: No device held, no record bound.
    - ACQUIRING_DEVICE: Walking the constraint ladder (or resuming a record).
    - DEVICE_READY: Camera live, title editable, nothing published.
    - PUBLISHING: Camera live and bound to an active broadcast record.
    - STOPPING: Device released, bound record being ended.
    - FAILED: Acquisition failed; retry by entering again.
    """

    IDLE = "idle"
    ACQUIRING_DEVICE = "acquiring_device"
    DEVICE_READY = "device_ready"
    PUBLISHING = "publishing"
    STOPPING = "stopping"
    FAILED = "failed"


@dataclass
class LocalSession:
    phase: SessionPhase = SessionPhase.IDLE
    device_handle: DeviceHandle | None = None
    draft_title: str = ""
    bound_record_id: str | None = None
    last_error: LiveError | None = None
    viewer_mode: bool = False
    # bumped whenever in-flight results must be discarded
    epoch: int = 0
    identity: Identity | None = None


class SessionView(BaseModel):
    """Read-only view of a local session for the presentation layer."""

    phase: SessionPhase
    has_device: bool
    device_profile: str | None = None
    draft_title: str = ""
    bound_record_id: str | None = None
    last_error: ErrorView | None = None
    viewer_mode: bool = False
    identity_uid: str | None = None

    @classmethod
    def from_session(cls, session: LocalSession) -> "SessionView":
        handle = session.device_handle
        return cls(
            phase=session.phase,
            has_device=handle is not None and not handle.released,
            device_profile=handle.profile.name if handle else None,
            draft_title=session.draft_title,
            bound_record_id=session.bound_record_id,
            last_error=session.last_error.to_view() if session.last_error else None,
            viewer_mode=session.viewer_mode,
            identity_uid=session.identity.uid if session.identity else None,
        )
