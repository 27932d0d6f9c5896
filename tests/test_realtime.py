from unittest.mock import AsyncMock, MagicMock

import pytest

from techcare.services.realtime import RealtimeService


@pytest.fixture
def client():
    mock = MagicMock()
    mock.remove_channel = AsyncMock()
    mock.realtime.set_auth = AsyncMock()

    def _channel(name):
        channel = MagicMock(name=f"channel:{name}")
        channel.subscribe = AsyncMock()
        return channel

    mock.channel.side_effect = _channel
    return mock


@pytest.fixture
def service(client, logger):
    db = MagicMock()
    db.supabase = client
    db.is_online = True
    return RealtimeService(db=db, logger=logger)


class TestRealtimeService:
    @pytest.mark.asyncio
    async def test_subscribe_opens_filtered_channel(self, service, client):
        """Should open a Postgres-changes channel for the table and filter."""
        callback = MagicMock()
        name = await service.subscribe("notifications", callback, filter="user_id=eq.u1")

        assert name == "notifications:user_id=eq.u1"
        assert service.active_channels == [name]
        client.channel.assert_called_once_with(name)
        channel = service._channels[name]
        channel.on_postgres_changes.assert_called_once_with(
            "*", callback, schema="public", table="notifications", filter="user_id=eq.u1",
        )
        channel.subscribe.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unsubscribe_all(self, service, client):
        """Should close every channel."""
        await service.subscribe("notifications", MagicMock())
        await service.subscribe("bookings", MagicMock(), name="mine")
        await service.unsubscribe_all()
        assert service.active_channels == []
        assert client.remove_channel.await_count == 2

    @pytest.mark.asyncio
    async def test_refresh_reopens_with_new_token(self, service, client):
        """Should re-authenticate and rebuild every channel."""
        await service.subscribe("notifications", MagicMock())
        await service.refresh_all_connections("access-2")

        client.realtime.set_auth.assert_awaited_once_with("access-2")
        client.remove_channel.assert_awaited_once()
        assert client.channel.call_count == 2
        assert service.active_channels == ["notifications"]

    @pytest.mark.asyncio
    async def test_refresh_without_subscriptions_is_noop(self, service, client):
        """Should do nothing when no channel was ever requested."""
        await service.refresh_all_connections("access-2")
        client.realtime.set_auth.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_open_failure_is_logged(self, service, client):
        """Should not raise when the server rejects a channel."""
        client.channel.side_effect = RuntimeError("socket closed")
        await service.subscribe("notifications", MagicMock())
        assert service.active_channels == []

    @pytest.mark.asyncio
    async def test_resubscribe_replaces_channel(self, service, client):
        """Should close the old channel when a name is reused."""
        await service.subscribe("notifications", MagicMock(), name="feed")
        await service.subscribe("notifications", MagicMock(), name="feed")
        client.remove_channel.assert_awaited_once()
        assert service.active_channels == ["feed"]

    @pytest.mark.asyncio
    async def test_offline_opens_nothing(self, logger):
        """Should remember subscriptions but open no channel offline."""
        db = MagicMock()
        db.is_online = False
        service = RealtimeService(db=db, logger=logger)
        await service.subscribe("notifications", MagicMock())
        assert service.active_channels == []
        await service.unsubscribe_all()
