"""Wiring of the broadcast engine for one process."""

from dataclasses import dataclass

from loguru import logger

from camcast.app_config import AppEnvironConfig
from camcast.services.integrations.capture_device import CaptureDeviceApi
from camcast.services.integrations.identity_provider import IdentityProvider
from camcast.services.store import BroadcastStore

from .broadcast.broadcast_gateway import BroadcastGateway
from .device.device_negotiator import DeviceNegotiator
from .device.thumbnail import ThumbnailPipeline
from .mirror.live_mirror import LiveMirror
from .session.session_domain import BroadcastSession


@dataclass
class LiveRuntime:
    store: BroadcastStore
    gateway: BroadcastGateway
    mirror: LiveMirror
    identity_provider: IdentityProvider
    session: BroadcastSession

    async def close(self) -> None:
        await self.session.close()
        await self.mirror.close()
        await self.store.close()
        logger.info("Live runtime closed")


def create_live_runtime(
    cfg: AppEnvironConfig,
    store: BroadcastStore,
    capture_api: CaptureDeviceApi,
    identity_provider: IdentityProvider | None = None,
) -> LiveRuntime:
    identity_provider = identity_provider or IdentityProvider()
    gateway = BroadcastGateway(store)
    mirror = LiveMirror(store, resubscribe_delay=cfg.MIRROR_RESUBSCRIBE_DELAY_SECONDS)
    thumbnails = ThumbnailPipeline(
        quality=cfg.THUMBNAIL_JPEG_QUALITY,
        max_width=cfg.THUMBNAIL_MAX_WIDTH,
        max_height=cfg.THUMBNAIL_MAX_HEIGHT,
        max_bytes=cfg.THUMBNAIL_MAX_BYTES,
    )
    session = BroadcastSession(
        negotiator=DeviceNegotiator(capture_api),
        thumbnails=thumbnails,
        gateway=gateway,
        mirror=mirror,
        identity_provider=identity_provider,
        frame_wait_timeout=cfg.THUMBNAIL_FRAME_WAIT_SECONDS,
    )
    return LiveRuntime(
        store=store,
        gateway=gateway,
        mirror=mirror,
        identity_provider=identity_provider,
        session=session,
    )
