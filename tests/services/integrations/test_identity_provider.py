"""Tests for IdentityProvider."""

from unittest.mock import AsyncMock, MagicMock

from camcast.services.integrations.identity_provider import Identity, IdentityProvider
from tests.fixtures.live_fixtures import ALICE, BOB


class TestIdentity:
    def test_name_falls_back_to_anonymous(self):
        assert Identity(uid="u1").name == "Anonymous"
        assert Identity(uid="u1", display_name="   ").name == "Anonymous"
        assert Identity(uid="u1", display_name=" Alice ").name == "Alice"


class TestIdentityProvider:
    async def test_sign_in_notifies_listeners(self, identity_provider: IdentityProvider):
        # Arrange
        sync_listener = MagicMock(return_value=None)
        async_listener = AsyncMock()
        identity_provider.on_change(sync_listener)
        identity_provider.on_change(async_listener)

        # Act
        identity = await identity_provider.sign_in(ALICE.uid, ALICE.display_name)

        # Assert
        assert identity == ALICE
        assert identity_provider.current == ALICE
        sync_listener.assert_called_once_with(None, ALICE)
        async_listener.assert_awaited_once_with(None, ALICE)

    async def test_switch_and_sign_out(self, identity_provider: IdentityProvider):
        # Arrange
        changes = []
        identity_provider.on_change(lambda previous, current: changes.append((previous, current)))

        # Act
        await identity_provider.sign_in(ALICE.uid, ALICE.display_name)
        await identity_provider.sign_in(BOB.uid, BOB.display_name)
        await identity_provider.sign_out()

        # Assert
        assert changes == [(None, ALICE), (ALICE, BOB), (BOB, None)]
        assert identity_provider.current is None

    async def test_unchanged_identity_not_announced(self, identity_provider: IdentityProvider):
        listener = MagicMock(return_value=None)
        identity_provider.on_change(listener)

        await identity_provider.sign_out()
        await identity_provider.sign_in(ALICE.uid, ALICE.display_name)
        await identity_provider.sign_in(ALICE.uid, ALICE.display_name)

        listener.assert_called_once()

    async def test_unsubscribe(self, identity_provider: IdentityProvider):
        # Arrange
        listener = MagicMock(return_value=None)
        unsubscribe = identity_provider.on_change(listener)

        # Act
        unsubscribe()
        unsubscribe()
        await identity_provider.sign_in(ALICE.uid)

        # Assert
        listener.assert_not_called()

    def test_initial_identity(self):
        assert IdentityProvider(initial=BOB).current == BOB
