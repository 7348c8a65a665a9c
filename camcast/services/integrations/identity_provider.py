"""Identity provider.

Holds the signed-in identity of this process and notifies listeners with
``(previous, current)`` on every change. Listeners may be plain callables or
coroutine functions; coroutines are awaited in registration order.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from camcast.domain.live.broadcast.broadcast_models import ANONYMOUS_BROADCASTER

IdentityListener = Callable[["Identity | None", "Identity | None"], Awaitable[None] | None]


@dataclass(frozen=True)
class Identity:
    uid: str
    display_name: str | None = None

    @property
    def name(self) -> str:
        """Display name with the anonymous fallback used on broadcast records."""
        return (self.display_name or "").strip() or ANONYMOUS_BROADCASTER


class IdentityProvider:
    def __init__(self, initial: Identity | None = None):
        self._current = initial
        self._listeners: list[IdentityListener] = []

    @property
    def current(self) -> Identity | None:
        return self._current

    def on_change(self, listener: IdentityListener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _set(self, identity: Identity | None) -> None:
        previous, self._current = self._current, identity
        if previous == identity:
            return

        logger.info(
            "Identity changed: {} -> {}",
            previous.uid if previous else None,
            identity.uid if identity else None,
        )
        for listener in list(self._listeners):
            result = listener(previous, identity)
            if inspect.isawaitable(result):
                await result

    async def sign_in(self, uid: str, display_name: str | None = None) -> Identity:
        identity = Identity(uid=uid, display_name=display_name)
        await self._set(identity)
        return identity

    async def sign_out(self) -> None:
        await self._set(None)
