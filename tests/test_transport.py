from __future__ import annotations

import asyncio
import logging

import pytest
from websockets.asyncio.client import connect as ws_connect

from fake_bridge import FakeBridge, wait_for
from pebblecode.config.settings import ClientSettings
from pebblecode.runtime.transport import ReconnectingTransport
from pebblecode.services.schemas import CommandType, ConnectionState, HistoryLine
from pebblecode.state.store import SessionStore


def _settings(port: int = 8080, delay_ms: int = 100) -> ClientSettings:
    return ClientSettings(
        bridge_host="127.0.0.1",
        bridge_port=port,
        reconnect_delay_ms=delay_ms,
        open_timeout_s=2.0,
        ping_interval_s=None,
    )


class FailingConnector:
    """Connector whose every attempt fails like an unreachable bridge."""

    def __init__(self) -> None:
        self.urls: list[str] = []

    async def __call__(self, url: str, **kwargs):
        self.urls.append(url)
        raise OSError("connection refused")


@pytest.mark.asyncio
async def test_connect_requests_list_and_applies_menu() -> None:
    async with FakeBridge() as bridge:
        store = SessionStore()
        transport = ReconnectingTransport(store, _settings(bridge.port))
        transport.connect()
        assert store.current.connection is ConnectionState.CONNECTING

        await wait_for(lambda: store.sessions.value == ("alpha", "beta"))
        assert store.current.connection is ConnectionState.CONNECTED
        assert bridge.received[0] == {"type": "list"}
        assert store.current.active_session == ""
        await transport.aclose()


@pytest.mark.asyncio
async def test_join_then_auto_rejoin_after_drop() -> None:
    async with FakeBridge() as bridge:
        store = SessionStore()
        transport = ReconnectingTransport(store, _settings(bridge.port, delay_ms=50))
        states: list[ConnectionState] = []
        store.connection.subscribe(states.append)

        transport.connect()
        await wait_for(lambda: store.current.connection is ConnectionState.CONNECTED)
        transport.send(CommandType.JOIN, {"name": "alpha"})
        await wait_for(lambda: store.current.bridge_history != ())
        assert store.current.active_session == "alpha"
        assert store.current.bridge_history[1] == HistoryLine(separator=True)

        await bridge.drop_all()
        await wait_for(lambda: bridge.opened == 2 and len(bridge.commands("join")) == 2)
        await wait_for(lambda: store.current.connection is ConnectionState.CONNECTED)

        assert bridge.received[-1] == {"type": "join", "name": "alpha"}
        assert store.current.active_session == "alpha"
        assert states.count(ConnectionState.DISCONNECTED) >= 2
        assert states[-1] is ConnectionState.CONNECTED
        await transport.aclose()


@pytest.mark.asyncio
async def test_connection_failure_schedules_one_reconnect() -> None:
    connector = FailingConnector()
    store = SessionStore()
    transport = ReconnectingTransport(store, _settings(delay_ms=100), connector=connector)

    transport.connect()
    await wait_for(lambda: store.current.connection is ConnectionState.DISCONNECTED)
    assert len(connector.urls) == 1
    assert connector.urls[0] == "ws://127.0.0.1:8080"
    assert transport.reconnect_pending

    await asyncio.sleep(0.15)
    assert len(connector.urls) == 2
    await transport.aclose()


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_reconnect() -> None:
    connector = FailingConnector()
    store = SessionStore()
    transport = ReconnectingTransport(store, _settings(delay_ms=50), connector=connector)

    transport.connect()
    await wait_for(lambda: transport.reconnect_pending)
    transport.disconnect()
    assert not transport.reconnect_pending

    await asyncio.sleep(0.15)
    assert len(connector.urls) == 1
    transport.connect()
    await asyncio.sleep(0)
    assert len(connector.urls) == 1
    assert store.current.connection is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_is_noop_while_connecting() -> None:
    attempts: list[str] = []
    gate = asyncio.Event()

    async def slow_connector(url: str, **kwargs):
        attempts.append(url)
        await gate.wait()
        raise OSError("never opens")

    store = SessionStore()
    transport = ReconnectingTransport(store, _settings(), connector=slow_connector)
    transport.connect()
    transport.connect()
    await asyncio.sleep(0.01)
    transport.connect()
    assert attempts == ["ws://127.0.0.1:8080"]
    assert store.current.connection is ConnectionState.CONNECTING
    await transport.aclose()
    assert store.current.connection is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_update_host_closes_previous_connection_before_connecting() -> None:
    async with FakeBridge() as bridge:
        urls: list[str] = []

        async def connector(url: str, **kwargs):
            urls.append(url)
            if len(urls) > 1:
                raise OSError("new host unreachable")
            return await ws_connect(url, **kwargs)

        store = SessionStore()
        transport = ReconnectingTransport(store, _settings(bridge.port, delay_ms=1000), connector=connector)
        transport.connect()
        await wait_for(lambda: store.current.connection is ConnectionState.CONNECTED)

        states: list[ConnectionState] = []
        store.connection.subscribe(states.append)
        transport.update_host("vnc")

        assert states == [ConnectionState.CONNECTED, ConnectionState.DISCONNECTED, ConnectionState.CONNECTING]
        await wait_for(lambda: bridge.closed == 1)
        await wait_for(lambda: len(urls) == 2)
        assert urls[1] == "wss://vnc.taildd7ed4.ts.net"
        await transport.aclose()


@pytest.mark.asyncio
async def test_update_host_same_value_is_noop() -> None:
    connector = FailingConnector()
    store = SessionStore()
    transport = ReconnectingTransport(store, _settings(), connector=connector)
    transport.update_host("127.0.0.1")
    await asyncio.sleep(0)
    assert connector.urls == []
    await transport.aclose()


@pytest.mark.asyncio
async def test_update_host_keeps_active_session_for_rejoin() -> None:
    async with FakeBridge() as bridge:
        urls: list[str] = []

        async def redirect(url: str, **kwargs):
            # Every host lands on the local bridge.
            urls.append(url)
            return await ws_connect(f"ws://127.0.0.1:{bridge.port}", **kwargs)

        store = SessionStore()
        transport = ReconnectingTransport(store, _settings(bridge.port), connector=redirect)
        transport.connect()
        await wait_for(lambda: store.current.connection is ConnectionState.CONNECTED)
        transport.send(CommandType.JOIN, {"name": "beta"})
        await wait_for(lambda: store.current.active_session == "beta")

        transport.update_host("192.168.77.7")
        await wait_for(lambda: len(bridge.commands("join")) == 2)
        assert urls == [f"ws://127.0.0.1:{bridge.port}", f"ws://192.168.77.7:{bridge.port}"]
        assert store.current.active_session == "beta"
        assert bridge.commands("list") == [{"type": "list"}]
        await transport.aclose()


@pytest.mark.asyncio
async def test_malformed_frame_is_dropped_without_disconnecting(caplog) -> None:
    async with FakeBridge() as bridge:
        store = SessionStore()
        transport = ReconnectingTransport(store, _settings(bridge.port))
        transport.connect()
        await wait_for(lambda: store.sessions.value == ("alpha", "beta"))

        with caplog.at_level(logging.WARNING, logger="pebblecode.session"):
            await bridge.send_all("{not json")
            await bridge.send_all({"type": "menu", "sessions": ["gamma"]})
            await wait_for(lambda: store.sessions.value == ("gamma",))

        assert store.current.connection is ConnectionState.CONNECTED
        assert any("Dropped bridge frame" in r.getMessage() for r in caplog.records)
        await transport.aclose()


@pytest.mark.asyncio
async def test_hostile_frames_keep_connection_open() -> None:
    async with FakeBridge() as bridge:
        store = SessionStore()
        transport = ReconnectingTransport(store, _settings(bridge.port))
        transport.connect()
        await wait_for(lambda: store.sessions.value == ("alpha", "beta"))
        states: list[ConnectionState] = []
        store.connection.subscribe(states.append)

        await bridge.send_all('{"type": "output", "prompt": {"options": [{"num": 1e999, "label": "Yes"}]}}')
        await bridge.send_all("[" * 100000)
        await bridge.send_all({"type": "menu", "sessions": ["gamma"]})
        await wait_for(lambda: store.sessions.value == ("gamma",))

        assert states == [ConnectionState.CONNECTED]
        assert store.current.prompt.options[0].num == 1
        assert bridge.opened == 1
        await transport.aclose()


@pytest.mark.asyncio
async def test_write_failure_closes_connection_and_reconnects(caplog) -> None:
    async with FakeBridge() as bridge:

        async def broken_writer(url: str, **kwargs):
            ws = await ws_connect(url, **kwargs)

            async def send(message, *args, **kw):
                raise RuntimeError("encoder broke")

            ws.send = send  # type: ignore[method-assign]
            return ws

        store = SessionStore()
        transport = ReconnectingTransport(store, _settings(bridge.port, delay_ms=1000), connector=broken_writer)
        with caplog.at_level(logging.ERROR, logger="pebblecode.transport"):
            transport.connect()
            await wait_for(lambda: transport.reconnect_pending)

        assert store.current.connection is ConnectionState.DISCONNECTED
        assert any("Bridge write failed" in r.getMessage() for r in caplog.records)
        await wait_for(lambda: bridge.closed == 1)
        await transport.aclose()


@pytest.mark.asyncio
async def test_send_without_connection_is_dropped() -> None:
    store = SessionStore()
    transport = ReconnectingTransport(store, _settings(), connector=FailingConnector())
    transport.send(CommandType.KEY, {"content": "1"})
    assert store.current.connection is ConnectionState.DISCONNECTED
    await transport.aclose()


@pytest.mark.asyncio
async def test_no_state_change_after_disconnect() -> None:
    async with FakeBridge() as bridge:
        store = SessionStore()
        transport = ReconnectingTransport(store, _settings(bridge.port, delay_ms=20))
        transport.connect()
        await wait_for(lambda: store.current.connection is ConnectionState.CONNECTED)

        await transport.aclose()
        changes: list[object] = []
        store.state.subscribe(changes.append)
        await wait_for(lambda: bridge.closed == 1)
        await asyncio.sleep(0.1)
        assert len(changes) == 1
        assert store.current.connection is ConnectionState.DISCONNECTED
        assert bridge.opened == 1
