"""Test event callbacks."""

import asyncio

import pytest

from tunlink import ConnectionState


class TestEvents:
    """Test cases for event callbacks."""

    @pytest.mark.asyncio
    async def test_connect_event(self, supervisor, config, eventually):
        """Test on_connect event is triggered."""
        connected = []
        supervisor.events.on_connect = connected.append

        assert supervisor.start_async(config)
        assert await eventually(lambda: connected)
        assert connected == [config]

    @pytest.mark.asyncio
    async def test_status_events(self, supervisor, transport, config, eventually):
        """Test on_status reports every transition in order."""
        statuses = []
        supervisor.events.on_status = statuses.append

        assert supervisor.start_async(config)
        assert await eventually(supervisor.get_status)
        transport.session.drop()
        assert await eventually(lambda: supervisor.state is ConnectionState.DISCONNECTED)
        supervisor.close()

        assert statuses == ["connecting", "connected", "disconnected", "closed"]

    @pytest.mark.asyncio
    async def test_disconnect_event(self, supervisor, transport, config, eventually):
        """Test on_disconnect receives the drop reason."""
        reasons = []
        supervisor.events.on_disconnect = reasons.append

        assert supervisor.start_async(config)
        assert await eventually(supervisor.get_status)
        transport.session.drop("Server restarted")

        assert await eventually(lambda: reasons)
        assert reasons == ["Server restarted"]

    @pytest.mark.asyncio
    async def test_error_event(self, supervisor, transport, config, eventually):
        """Test on_error is triggered when connecting fails."""
        errors = []
        supervisor.events.on_error = errors.append
        transport.outcomes = [False]

        assert supervisor.start_async(config)
        assert await eventually(lambda: errors)
        assert isinstance(errors[0], ConnectionRefusedError)

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_break_client(self, supervisor, config, eventually, caplog):
        def on_connect(_config):
            raise RuntimeError("handler bug")

        supervisor.events.on_connect = on_connect

        assert supervisor.start_async(config)
        assert await eventually(supervisor.get_status)
        assert "Event handler on_connect failed" in caplog.text


class TestCloseFromHandlers:
    """Test cases for closing the client from inside event handlers."""

    @pytest.mark.asyncio
    async def test_close_on_connecting_status(self, supervisor, transport, config):
        def on_status(status):
            if status == "connecting":
                supervisor.close()

        supervisor.events.on_status = on_status

        assert not supervisor.start_async(config)
        assert supervisor.state is ConnectionState.CLOSED
        assert not supervisor.reconnect.is_enabled()

        await asyncio.sleep(0.1)
        assert transport.attempts == []
        assert supervisor.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_on_connected_status(self, supervisor, transport, config, eventually):
        connected = []

        def on_status(status):
            if status == "connected":
                supervisor.close()

        supervisor.events.on_status = on_status
        supervisor.events.on_connect = connected.append

        assert supervisor.start_async(config)
        assert await eventually(lambda: supervisor.state is ConnectionState.CLOSED)
        assert await eventually(lambda: transport.sessions and transport.session.closed)
        assert connected == []

        transport.session.drop()
        await asyncio.sleep(0.1)
        assert supervisor.state is ConnectionState.CLOSED
        assert not supervisor.reconnect.is_pending()

    @pytest.mark.asyncio
    async def test_close_on_connect_event(self, supervisor, transport, config, eventually):
        supervisor.events.on_connect = lambda _config: supervisor.close()

        assert supervisor.start_async(config)
        assert await eventually(lambda: supervisor.state is ConnectionState.CLOSED)
        assert await eventually(lambda: transport.session.closed)

    @pytest.mark.asyncio
    async def test_close_on_reconnect_event(self, supervisor, transport, config, eventually):
        supervisor.reconnect.set_interval(1)
        transport.outcomes = [False]
        supervisor.events.on_reconnect = lambda _attempt: supervisor.close()

        assert supervisor.start_async(config)
        assert await eventually(lambda: supervisor.state is ConnectionState.CLOSED, timeout=3)

        await asyncio.sleep(0.2)
        assert len(transport.attempts) == 1
        assert not supervisor.reconnect.is_enabled()

    @pytest.mark.asyncio
    async def test_close_on_disconnected_status(self, supervisor, transport, config, eventually):
        supervisor.reconnect.set_interval(1)

        def on_status(status):
            if status == "disconnected":
                supervisor.close()

        supervisor.events.on_status = on_status

        assert supervisor.start_async(config)
        assert await eventually(supervisor.get_status)
        transport.session.drop()

        assert await eventually(lambda: supervisor.state is ConnectionState.CLOSED)
        assert not supervisor.reconnect.is_pending()
        await asyncio.sleep(1.2)
        assert len(transport.attempts) == 1
