"""Unit tests for the live list, its event stream and record lookup."""

from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from camcast.api.errors import app_error_handler
from camcast.api.v1.routers.broadcast_viewer import format_sse_event, router, stream_live_broadcasts
from camcast.domain.live.live_runtime import LiveRuntime
from camcast.services.store import MemoryBroadcastStore
from camcast.utils.app_errors import AppError
from tests.fixtures.live_fixtures import ALICE, BOB


@pytest.fixture
def test_app(live_runtime: LiveRuntime) -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.include_router(router, prefix="/api/v1")
    app.state.live = live_runtime
    return app


@pytest_asyncio.fixture
async def client(test_app: FastAPI):
    transport = ASGITransport(app=test_app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def parse_sse(chunk: str) -> dict:
    fields = dict(line.split(": ", 1) for line in chunk.strip().splitlines())
    fields["data"] = orjson.loads(fields["data"])
    return fields


class TestListLive:
    """Tests for GET /api/v1/broadcast/live."""

    async def test_empty(self, client: AsyncClient):
        response = await client.get("/api/v1/broadcast/live")

        assert response.status_code == 200
        assert response.json()["results"] == {"broadcasts": [], "count": 0}

    async def test_newest_first_with_ownership(
        self, client: AsyncClient, live_runtime: LiveRuntime, store: MemoryBroadcastStore
    ):
        # Arrange
        await live_runtime.identity_provider.sign_in(ALICE.uid, ALICE.display_name)
        alice_id = await live_runtime.gateway.create_record(ALICE, "Alice first")
        bob_id = await live_runtime.gateway.create_record(BOB, "Bob second")
        await store.set_viewer_count(bob_id, 4)

        # Act
        response = await client.get("/api/v1/broadcast/live")

        # Assert
        results = response.json()["results"]
        assert results["count"] == 2
        assert [(b["id"], b["is_mine"]) for b in results["broadcasts"]] == [(bob_id, False), (alice_id, True)]
        assert results["broadcasts"][0]["viewer_count"] == 4

    async def test_leaves_no_feed_open(self, client: AsyncClient, live_runtime: LiveRuntime):
        response = await client.get("/api/v1/broadcast/live")

        assert response.status_code == 200
        assert live_runtime.mirror.subscription_count == 0


class TestGetRecord:
    """Tests for GET /api/v1/broadcast/record/{broadcast_id}."""

    async def test_found(self, client: AsyncClient, live_runtime: LiveRuntime):
        record_id = await live_runtime.gateway.create_record(ALICE, "Game Night")

        response = await client.get(f"/api/v1/broadcast/record/{record_id}")

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["title"] == "Game Night"
        assert results["active"] is True
        assert results["end_time"] is None

    async def test_missing(self, client: AsyncClient):
        response = await client.get("/api/v1/broadcast/record/bc_missing")

        assert response.status_code == 404
        data = response.json()
        assert data["errcode"] == "E_BROADCAST_NOT_FOUND"
        assert data["errmesg"] == "This broadcast is no longer available."


class TestLiveStream:
    """Tests for the server-sent live list events."""

    def test_format_sse_event(self):
        chunk = format_sse_event("snapshot", {"count": 0}, event_id="3")

        assert chunk == 'event: snapshot\nid: 3\ndata: {"count":0}\n\n'

    async def test_snapshot_events_follow_changes(self, live_runtime: LiveRuntime):
        # Arrange
        request = MagicMock()
        request.is_disconnected = AsyncMock(return_value=False)
        response = await stream_live_broadcasts(request, live_runtime, identity=None)
        events = response.body_iterator

        # Act
        first = parse_sse(await anext(events))
        record_id = await live_runtime.gateway.create_record(ALICE, "Game Night")
        second = parse_sse(await anext(events))
        await events.aclose()

        # Assert
        assert response.media_type == "text/event-stream"
        assert first["event"] == "snapshot"
        assert first["id"] == "1"
        assert first["data"]["count"] == 0
        assert second["id"] == "2"
        assert [b["id"] for b in second["data"]["broadcasts"]] == [record_id]
        assert live_runtime.mirror.subscription_count == 0

    async def test_unsent_stream_holds_no_feed(self, live_runtime: LiveRuntime):
        """A stream response whose body never starts leaves no mirror feed behind."""
        # Arrange
        request = MagicMock()
        request.is_disconnected = AsyncMock(return_value=False)

        # Act
        response = await stream_live_broadcasts(request, live_runtime, identity=None)

        # Assert
        assert live_runtime.mirror.subscription_count == 0
        await response.body_iterator.aclose()
        assert live_runtime.mirror.subscription_count == 0
