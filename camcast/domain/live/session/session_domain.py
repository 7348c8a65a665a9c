"""Broadcast session - drives one local broadcaster through its lifecycle.

Events are processed one at a time under a single lock. Every event captures
the session epoch when it is issued; a result that arrives after the epoch has
moved on is discarded (a created record is ended again, an acquired device is
released). Preemptive events (leaving the page, losing the identity) bump the
epoch and release the device before they wait for the lock.
"""

import asyncio

from loguru import logger

from camcast.services.integrations.identity_provider import Identity, IdentityProvider

from ..broadcast.broadcast_gateway import BroadcastGateway
from ..device.device_models import DeviceHandle
from ..device.device_negotiator import DeviceNegotiator
from ..device.thumbnail import EncodedImage, ThumbnailPipeline
from ..live_errors import (
    CaptureError,
    DeviceError,
    LiveError,
    RemoteError,
    RemoteErrorKind,
    StateError,
    StateErrorKind,
    ValidationError,
    ValidationErrorKind,
)
from ..mirror.live_mirror import LiveMirror, LiveSnapshot, MirrorSubscription
from .session_models import LocalSession, SessionPhase, SessionView
from .session_state_machine import SessionStateMachine


class BroadcastSession:
    def __init__(
        self,
        negotiator: DeviceNegotiator,
        thumbnails: ThumbnailPipeline,
        gateway: BroadcastGateway,
        mirror: LiveMirror,
        identity_provider: IdentityProvider,
        frame_wait_timeout: float = 2.0,
    ):
        self._negotiator = negotiator
        self._thumbnails = thumbnails
        self._gateway = gateway
        self._mirror = mirror
        self._identity = identity_provider
        self._frame_wait_timeout = frame_wait_timeout

        self._session = LocalSession(identity=identity_provider.current)
        self._lock = asyncio.Lock()
        self._my_active: MirrorSubscription | None = None
        self._unsubscribe_identity = identity_provider.on_change(self._on_identity_change)
        self._closed = False

    # ==================== STATE ====================

    @property
    def phase(self) -> SessionPhase:
        return self._session.phase

    @property
    def state(self) -> LocalSession:
        return self._session

    @property
    def watching_my_active(self) -> bool:
        return self._my_active is not None

    def view(self) -> SessionView:
        return SessionView.from_session(self._session)

    def _transition(self, new: SessionPhase) -> None:
        current = self._session.phase
        if current == new:
            return
        if not SessionStateMachine.can_transition(current, new):
            raise StateError(
                StateErrorKind.INVALID_TRANSITION,
                f"Invalid phase transition: {current.value} -> {new.value}",
            )
        logger.debug("Session phase {} -> {} (epoch {})", current.value, new.value, self._session.epoch)
        self._session.phase = new

    def _is_stale(self, epoch: int) -> bool:
        return self._session.epoch != epoch

    def _fail(self, error: LiveError) -> LiveError:
        self._session.last_error = error
        return error

    def _require(self, allowed: set[SessionPhase], action: str) -> None:
        if self._session.phase not in allowed:
            raise self._fail(
                StateError(
                    StateErrorKind.INVALID_TRANSITION,
                    f"Cannot {action} in phase {self._session.phase.value}",
                )
            )

    def _live_handle(self) -> DeviceHandle | None:
        handle = self._session.device_handle
        return handle if handle is not None and handle.live else None

    def _release_device(self) -> None:
        handle, self._session.device_handle = self._session.device_handle, None
        self._negotiator.release()
        if handle is not None:
            handle.release()

    def _preempt(self) -> int:
        """Invalidate in-flight work and free the device without waiting for the lock."""
        self._session.epoch += 1
        self._release_device()
        self._transition(SessionPhase.STOPPING)
        return self._session.epoch

    def _reset_to_idle(self) -> None:
        s = self._session
        if s.phase != SessionPhase.IDLE:
            self._transition(SessionPhase.STOPPING)
        self._release_device()
        s.bound_record_id = None
        s.draft_title = ""
        self._transition(SessionPhase.IDLE)

    # ==================== MY ACTIVE RECORD ====================

    def _watch_my_active(self, uid: str) -> None:
        if self._my_active is not None:
            return
        self._my_active = self._mirror.subscribe_my_active(uid, self._on_my_active_snapshot)

    async def _drop_my_active(self) -> None:
        subscription, self._my_active = self._my_active, None
        if subscription is not None:
            await subscription.unsubscribe()

    async def _on_my_active_snapshot(self, snapshot: LiveSnapshot) -> None:
        bound = self._session.bound_record_id
        if bound is None or snapshot.contains(bound):
            return

        epoch = self._session.epoch
        async with self._lock:
            s = self._session
            if self._is_stale(epoch) or s.bound_record_id != bound:
                return
            try:
                record = await self._gateway.fetch_record(bound)
            except RemoteError as e:
                logger.warning("Could not confirm state of broadcast {}: {}", bound, e.errmesg)
                return
            if self._is_stale(epoch) or (record is not None and record.is_live()):
                return

            logger.info("Broadcast {} ended elsewhere; releasing local session", bound)
            self._reset_to_idle()
            s.last_error = None
            # This runs inside the subscription's own feed; unsubscribing must come last.
            await self._drop_my_active()

    # ==================== EVENTS ====================

    async def enter_broadcast_page(self, record_id: str | None = None, viewer: bool = False) -> SessionView:
        """Enter the broadcast page.

        Viewers never touch the device. Broadcasters acquire a device, keep the
        one they already hold, or (with ``record_id``) reconcile with an existing
        record. Device and remote failures land in ``last_error``.
        """
        if viewer:
            self._session.viewer_mode = True
            return self.view()

        epoch = self._session.epoch
        async with self._lock:
            if self._is_stale(epoch):
                return self.view()
            self._session.viewer_mode = False
            if record_id:
                await self._reconcile(record_id, epoch)
            else:
                await self._enter_as_broadcaster(epoch)
            return self.view()

    async def _acquire(self, epoch: int) -> DeviceHandle | None:
        """Acquire a device for the current epoch, or None if the result is stale."""
        handle = await self._negotiator.acquire()
        if self._is_stale(epoch):
            logger.info("Discarding device handle {} acquired for epoch {}", handle.handle_id, epoch)
            self._negotiator.release()
            handle.release()
            return None
        self._session.device_handle = handle
        return handle

    async def _enter_as_broadcaster(self, epoch: int) -> None:
        s = self._session
        if s.phase == SessionPhase.PUBLISHING or (s.phase == SessionPhase.DEVICE_READY and self._live_handle()):
            logger.debug("Keeping {} session alive", s.phase.value)
            return
        if s.phase != SessionPhase.FAILED:
            # IDLE, DEVICE_READY with a dead stream, or a STOPPING left by a preemption
            self._reset_to_idle()

        self._transition(SessionPhase.ACQUIRING_DEVICE)
        try:
            handle = await self._acquire(epoch)
        except DeviceError as e:
            if not self._is_stale(epoch):
                s.last_error = e
                self._transition(SessionPhase.FAILED)
            return
        if handle is None:
            return

        identity = self._identity.current
        if s.bound_record_id:
            # retry after a failed resume
            if identity is not None:
                self._bind(s.bound_record_id, s.draft_title, identity)
                return
            await self._end_bound()
            if self._is_stale(epoch):
                return

        s.last_error = None
        self._transition(SessionPhase.DEVICE_READY)

    async def _reconcile(self, record_id: str, epoch: int) -> None:
        s = self._session
        if s.phase == SessionPhase.PUBLISHING and s.bound_record_id == record_id:
            return

        try:
            record = await self._gateway.fetch_record(record_id)
        except RemoteError as e:
            if not self._is_stale(epoch):
                s.last_error = e
            return
        if self._is_stale(epoch):
            return

        identity = self._identity.current
        owned = record is not None and record.is_live() and record.owned_by(identity.uid if identity else None)

        if s.phase == SessionPhase.PUBLISHING:
            logger.debug("Publishing {}; leaving session untouched for {}", s.bound_record_id, record_id)
            return

        if not owned:
            logger.info("Broadcast {} is missing, ended or foreign; returning to idle", record_id)
            await self._end_bound()
            self._reset_to_idle()
            await self._drop_my_active()
            return

        if s.phase == SessionPhase.DEVICE_READY and self._live_handle():
            self._bind(record_id, record.title, identity)
            return

        if s.phase != SessionPhase.FAILED:
            self._reset_to_idle()
        self._transition(SessionPhase.ACQUIRING_DEVICE)
        try:
            handle = await self._acquire(epoch)
        except DeviceError as e:
            if not self._is_stale(epoch):
                # Keep the record bound so stop_broadcast can still end it.
                s.bound_record_id = record_id
                s.draft_title = record.title
                s.last_error = e
                self._transition(SessionPhase.FAILED)
                self._watch_my_active(identity.uid)
            return
        if handle is None:
            return

        self._bind(record_id, record.title, identity)

    def _bind(self, record_id: str, title: str, identity: Identity) -> None:
        s = self._session
        self._transition(SessionPhase.PUBLISHING)
        s.bound_record_id = record_id
        s.draft_title = title
        s.last_error = None
        self._watch_my_active(identity.uid)
        logger.info("Session bound to broadcast {}", record_id)

    async def set_draft_title(self, title: str) -> SessionView:
        async with self._lock:
            self._require({SessionPhase.DEVICE_READY}, "edit the title")
            self._session.draft_title = title
            return self.view()

    async def _capture_thumbnail(self, handle: DeviceHandle) -> EncodedImage:
        return await self._thumbnails.capture(handle.stream, wait_timeout=self._frame_wait_timeout)

    async def start_broadcast(self, title: str | None = None) -> SessionView:
        """Create the broadcast record and start publishing.

        Raises:
            ValidationError: Title is empty after trimming. Nothing is sent.
            StateError: No live device, wrong phase, or not signed in.
            RemoteError: The record could not be created. The session stays
                DEVICE_READY with its device.
        """
        epoch = self._session.epoch
        clean_title = (self._session.draft_title if title is None else title).strip()
        if not clean_title:
            raise self._fail(ValidationError(ValidationErrorKind.EMPTY_TITLE))

        async with self._lock:
            s = self._session
            if self._is_stale(epoch):
                raise StateError(StateErrorKind.INVALID_TRANSITION, "Start was cancelled")
            self._require({SessionPhase.DEVICE_READY}, "start broadcasting")
            handle = self._live_handle()
            if handle is None:
                raise self._fail(StateError(StateErrorKind.INVALID_TRANSITION, "No live camera"))
            identity = self._identity.current
            if identity is None:
                raise self._fail(StateError(StateErrorKind.NOT_SIGNED_IN))

            s.draft_title = clean_title
            thumbnail = None
            try:
                thumbnail = await self._capture_thumbnail(handle)
            except CaptureError as e:
                logger.warning("Starting without thumbnail: {}", e.errmesg)

            try:
                if self._is_stale(epoch):
                    raise StateError(StateErrorKind.INVALID_TRANSITION, "Start was cancelled")
                await self._gateway.sweep_active_records_for_identity(identity.uid)
                if self._is_stale(epoch):
                    raise StateError(StateErrorKind.INVALID_TRANSITION, "Start was cancelled")
                record_id = await self._gateway.create_record(identity, clean_title, thumbnail)
            except (RemoteError, ValidationError) as e:
                if not self._is_stale(epoch):
                    s.last_error = e
                raise

            if self._is_stale(epoch):
                logger.info("Start superseded; ending orphaned broadcast {}", record_id)
                await self._end_quietly(record_id)
                raise StateError(StateErrorKind.INVALID_TRANSITION, "Start was cancelled")

            self._bind(record_id, clean_title, identity)
            return self.view()

    async def _end_quietly(self, record_id: str) -> RemoteError | None:
        """End a record, returning the failure instead of raising it."""
        try:
            await self._gateway.end_record(record_id)
        except RemoteError as e:
            if e.kind == RemoteErrorKind.NOT_FOUND:
                logger.info("Broadcast {} already gone", record_id)
                return None
            logger.warning("Failed to end broadcast {}: {}", record_id, e.errmesg)
            return e
        return None

    async def _end_bound(self) -> None:
        """End a record a failed resume left bound before the session lets go of it."""
        s = self._session
        record_id, s.bound_record_id = s.bound_record_id, None
        if record_id is None:
            return
        logger.info("Ending broadcast {} held by a failed resume", record_id)
        await self._drop_my_active()
        error = await self._end_quietly(record_id)
        if error is not None:
            s.last_error = error

    async def stop_broadcast(self) -> SessionView:
        """Stop publishing. Always ends IDLE with the device released.

        A remote failure while ending the record is kept in ``last_error``
        rather than raised.
        """
        async with self._lock:
            s = self._session
            record_id = s.bound_record_id
            can_stop = s.phase == SessionPhase.PUBLISHING or (s.phase == SessionPhase.FAILED and record_id)
            if not can_stop or record_id is None:
                raise self._fail(
                    StateError(
                        StateErrorKind.INVALID_TRANSITION,
                        f"Nothing to stop in phase {s.phase.value}",
                    )
                )

            self._transition(SessionPhase.STOPPING)
            self._release_device()
            await self._drop_my_active()

            s.last_error = await self._end_quietly(record_id)
            s.bound_record_id = None
            s.draft_title = ""
            self._transition(SessionPhase.IDLE)
            logger.info("Broadcast {} stopped", record_id)
            return self.view()

    async def update_thumbnail(self) -> SessionView:
        """Refresh the bound record's thumbnail. Failures never change the phase."""
        epoch = self._session.epoch
        async with self._lock:
            s = self._session
            self._require({SessionPhase.PUBLISHING}, "update the thumbnail")
            handle = self._live_handle()
            if handle is None or s.bound_record_id is None:
                raise self._fail(StateError(StateErrorKind.INVALID_TRANSITION, "No live camera"))

            try:
                image = await self._capture_thumbnail(handle)
                if self._is_stale(epoch):
                    raise StateError(StateErrorKind.INVALID_TRANSITION, "Session changed")
                await self._gateway.update_thumbnail(s.bound_record_id, image)
            except (CaptureError, RemoteError) as e:
                raise self._fail(e)

            s.last_error = None
            return self.view()

    async def leave_broadcast_page(self) -> SessionView:
        """Navigate away. A published broadcast stays alive for re-entry.

        Every other in-flight fetch or acquisition is cancelled, even from IDLE.
        A record kept by a failed resume stays bound in FAILED.
        """
        s = self._session
        s.viewer_mode = False
        if s.phase == SessionPhase.PUBLISHING:
            return self.view()
        if s.phase == SessionPhase.IDLE or s.bound_record_id is not None:
            s.epoch += 1
            self._release_device()
            if s.phase == SessionPhase.ACQUIRING_DEVICE:
                # retrying a failed resume
                self._transition(SessionPhase.FAILED)
            return self.view()

        epoch = self._preempt()
        async with self._lock:
            if not self._is_stale(epoch) and s.phase == SessionPhase.STOPPING:
                s.draft_title = ""
                self._transition(SessionPhase.IDLE)
            return self.view()

    async def _on_identity_change(self, previous: Identity | None, current: Identity | None) -> None:
        if self._closed:
            return
        if previous is None or (current is not None and current.uid == previous.uid):
            self._session.identity = current
            return
        await self.identity_lost(previous, current)

    async def identity_lost(self, previous: Identity, current: Identity | None = None) -> SessionView:
        """Tear the session down for a departing identity.

        Ends the bound record and every other active record of ``previous``.
        """
        logger.info("Identity {} left; tearing down session", previous.uid)
        epoch = self._preempt()
        async with self._lock:
            s = self._session
            s.identity = current
            record_id, s.bound_record_id = s.bound_record_id, None
            await self._drop_my_active()

            error = await self._end_quietly(record_id) if record_id else None
            try:
                await self._gateway.sweep_active_records_for_identity(previous.uid)
            except RemoteError as e:
                logger.warning("Sweep for {} failed: {}", previous.uid, e.errmesg)
                error = error or e

            s.last_error = error
            s.draft_title = ""
            if not self._is_stale(epoch) and s.phase == SessionPhase.STOPPING:
                self._transition(SessionPhase.IDLE)
            return self.view()

    async def close(self) -> None:
        """Full teardown: end the bound record, free the device, stop all feeds."""
        if self._closed:
            return
        self._closed = True
        self._unsubscribe_identity()

        self._preempt()
        async with self._lock:
            s = self._session
            record_id, s.bound_record_id = s.bound_record_id, None
            await self._drop_my_active()
            if record_id:
                await self._end_quietly(record_id)
            s.draft_title = ""
            self._transition(SessionPhase.IDLE)
        logger.info("Broadcast session closed")
