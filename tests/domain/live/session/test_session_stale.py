"""Results that arrive after the session moved on are discarded."""

import asyncio
from unittest.mock import patch

import pytest

from camcast.domain.live.broadcast.broadcast_gateway import BroadcastGateway
from camcast.domain.live.broadcast.broadcast_models import BroadcastFilter
from camcast.domain.live.device.device_negotiator import DeviceNegotiator
from camcast.domain.live.device.thumbnail import ThumbnailPipeline
from camcast.domain.live.live_errors import StateError
from camcast.domain.live.session.session_domain import BroadcastSession
from camcast.domain.live.session.session_models import SessionPhase
from camcast.services.integrations.capture_device import CaptureFailureReason
from camcast.services.integrations.identity_provider import Identity, IdentityProvider
from camcast.services.store import MemoryBroadcastStore
from tests.fixtures.live_fixtures import FakeCaptureApi, fail_all, wait_until


class TestStaleDevice:
    async def test_leave_during_acquisition_releases_late_device(
        self,
        session: BroadcastSession,
        capture_api: FakeCaptureApi,
        negotiator: DeviceNegotiator,
    ):
        """A device that arrives after the user left is released, never kept."""
        # Arrange
        capture_api.gate = asyncio.Event()
        enter = asyncio.create_task(session.enter_broadcast_page())
        await wait_until(lambda: capture_api.attempts == ["unconstrained"])

        # Act
        leave = asyncio.create_task(session.leave_broadcast_page())
        await wait_until(lambda: session.phase == SessionPhase.STOPPING)
        capture_api.gate.set()
        await enter
        view = await leave

        # Assert
        assert view.phase == SessionPhase.IDLE
        assert view.has_device is False
        assert capture_api.streams[0].stop_calls == 1
        assert negotiator.held is None

    async def test_reentry_after_stale_acquisition(self, session: BroadcastSession, capture_api: FakeCaptureApi):
        # Arrange
        capture_api.gate = asyncio.Event()
        enter = asyncio.create_task(session.enter_broadcast_page())
        await wait_until(lambda: len(capture_api.attempts) == 1)
        leave = asyncio.create_task(session.leave_broadcast_page())
        await wait_until(lambda: session.phase == SessionPhase.STOPPING)
        capture_api.gate.set()
        await asyncio.gather(enter, leave)

        # Act
        view = await session.enter_broadcast_page()

        # Assert
        assert view.phase == SessionPhase.DEVICE_READY
        assert len(capture_api.streams) == 2
        assert capture_api.streams[1].active is True


class TestStaleStart:
    async def test_record_created_after_sign_out_is_ended(
        self,
        session: BroadcastSession,
        signed_in: Identity,
        gateway: BroadcastGateway,
        identity_provider: IdentityProvider,
        store: MemoryBroadcastStore,
    ):
        """Sign-out while the create call is in flight: the late record is ended again."""
        # Arrange
        await session.enter_broadcast_page()
        original_create = gateway.create_record
        gate = asyncio.Event()
        created: list[str] = []

        async def slow_create(*args, **kwargs):
            record_id = await original_create(*args, **kwargs)
            created.append(record_id)
            await gate.wait()
            return record_id

        # Act
        with patch.object(gateway, "create_record", slow_create):
            start = asyncio.create_task(session.start_broadcast("Too late"))
            await wait_until(lambda: len(created) == 1)
            sign_out = asyncio.create_task(identity_provider.sign_out())
            await wait_until(lambda: session.phase == SessionPhase.STOPPING)
            gate.set()
            with pytest.raises(StateError):
                await start
            await sign_out

        # Assert
        assert session.phase == SessionPhase.IDLE
        assert session.view().bound_record_id is None
        assert (await store.get(created[0])).active is False
        assert await store.find_active(BroadcastFilter()) == []

    async def test_leave_during_thumbnail_capture_creates_nothing(
        self,
        session: BroadcastSession,
        signed_in: Identity,
        thumbnails: ThumbnailPipeline,
        store: MemoryBroadcastStore,
    ):
        # Arrange
        await session.enter_broadcast_page()
        original_capture = thumbnails.capture
        gate = asyncio.Event()
        capturing = asyncio.Event()

        async def slow_capture(*args, **kwargs):
            capturing.set()
            await gate.wait()
            return await original_capture(*args, **kwargs)

        # Act
        with patch.object(thumbnails, "capture", slow_capture):
            start = asyncio.create_task(session.start_broadcast("Never sent"))
            await capturing.wait()
            leave = asyncio.create_task(session.leave_broadcast_page())
            await wait_until(lambda: session.phase == SessionPhase.STOPPING)
            gate.set()
            with pytest.raises(StateError):
                await start
            view = await leave

        # Assert
        assert view.phase == SessionPhase.IDLE
        assert await store.find_active(BroadcastFilter()) == []


class TestStaleReconcile:
    async def test_leave_while_fetching_record_discards_resume(
        self,
        session: BroadcastSession,
        signed_in: Identity,
        gateway: BroadcastGateway,
        store: MemoryBroadcastStore,
        capture_api: FakeCaptureApi,
    ):
        """Leaving while the record lookup is in flight: no camera, no resume."""
        # Arrange
        record_id = await gateway.create_record(signed_in, "Left behind")
        original_get = store.get
        gate = asyncio.Event()
        fetching = asyncio.Event()

        async def slow_get(*args, **kwargs):
            fetching.set()
            await gate.wait()
            return await original_get(*args, **kwargs)

        # Act
        with patch.object(store, "get", slow_get):
            enter = asyncio.create_task(session.enter_broadcast_page(record_id=record_id))
            await fetching.wait()
            left = await session.leave_broadcast_page()
            gate.set()
            view = await enter

        # Assert
        assert left.phase == SessionPhase.IDLE
        assert view.phase == SessionPhase.IDLE
        assert view.has_device is False
        assert view.bound_record_id is None
        assert capture_api.attempts == []
        assert session.watching_my_active is False

    async def test_leave_discards_queued_entry(self, session: BroadcastSession, capture_api: FakeCaptureApi):
        # Arrange
        await session.enter_broadcast_page()
        await session.leave_broadcast_page()
        assert session.phase == SessionPhase.IDLE

        # Act
        async with session._lock:
            enter = asyncio.create_task(session.enter_broadcast_page())
            await asyncio.sleep(0)
            await session.leave_broadcast_page()
        view = await enter

        # Assert
        assert view.phase == SessionPhase.IDLE
        assert len(capture_api.streams) == 1

    async def test_leave_during_resume_retry_keeps_record_bound(
        self,
        session: BroadcastSession,
        signed_in: Identity,
        gateway: BroadcastGateway,
        store: MemoryBroadcastStore,
        capture_api: FakeCaptureApi,
    ):
        # Arrange
        record_id = await gateway.create_record(signed_in, "Camera trouble")
        capture_api.failures = fail_all(CaptureFailureReason.NOT_READABLE)
        await session.enter_broadcast_page(record_id=record_id)
        capture_api.failures = {}
        capture_api.gate = asyncio.Event()
        retry = asyncio.create_task(session.enter_broadcast_page())
        await wait_until(lambda: session.phase == SessionPhase.ACQUIRING_DEVICE)

        # Act
        view = await session.leave_broadcast_page()
        capture_api.gate.set()
        await retry

        # Assert
        assert view.phase == SessionPhase.FAILED
        assert session.phase == SessionPhase.FAILED
        assert session.view().bound_record_id == record_id
        assert session.view().has_device is False
        assert all(stream.active is False for stream in capture_api.streams)
        stopped = await session.stop_broadcast()
        assert stopped.phase == SessionPhase.IDLE
        assert (await store.get(record_id)).active is False
