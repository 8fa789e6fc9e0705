from __future__ import annotations

import asyncio

import pytest

from fake_bridge import FakeBridge, wait_for
from pebblecode.config.settings import ClientSettings
from pebblecode.runtime.client import BridgeClient
from pebblecode.services.schemas import ConnectionState
from pebblecode.state import projector
from pebblecode.state.projector import Screen


def _settings(port: int) -> ClientSettings:
    return ClientSettings(bridge_host="127.0.0.1", bridge_port=port, reconnect_delay_ms=50, ping_interval_s=None)


@pytest.mark.asyncio
async def test_owned_loop_client_end_to_end() -> None:
    async with FakeBridge() as bridge:
        client = BridgeClient(_settings(bridge.port))
        loop = asyncio.get_running_loop()
        try:
            client.start()
            await wait_for(lambda: client.store.current.connection is ConnectionState.CONNECTED)
            await wait_for(lambda: client.store.current.sessions == ("alpha", "beta"))
            assert projector.screen(client.store.current) is Screen.MENU

            client.commands.create_session()
            await wait_for(lambda: client.store.current.active_session == "session-3")
            assert projector.screen(client.store.current) is Screen.SESSION

            await bridge.send_all(
                {
                    "type": "output",
                    "cleanData": {"summary": "?Run migrations?\nOPT:Yes\nOPT:No", "status": "QUESTION"},
                    "prompt": {"options": [{"num": 1, "label": "Yes"}, {"num": 2, "label": "No"}]},
                }
            )
            await wait_for(lambda: projector.screen(client.store.current) is Screen.QUESTION)
            state = client.store.current
            client.commands.send_key(projector.key_for_option(state.prompt, 1))
            await wait_for(lambda: bridge.commands("key") == [{"type": "key", "content": "2"}])

            client.commands.leave_session()
            await wait_for(lambda: bridge.commands("leave") != [])
            assert client.store.current.active_session == ""
        finally:
            await loop.run_in_executor(None, client.stop)

        assert client.store.current.connection is ConnectionState.DISCONNECTED
        await wait_for(lambda: bridge.closed == 1)


@pytest.mark.asyncio
async def test_injected_loop_client_and_host_switch() -> None:
    async with FakeBridge() as bridge:
        client = BridgeClient(_settings(bridge.port), host="vnc", loop=asyncio.get_running_loop(), connector=None)
        assert client.transport.url == "wss://vnc.taildd7ed4.ts.net"
        client.update_host("127.0.0.1")
        await wait_for(lambda: client.store.current.connection is ConnectionState.CONNECTED)
        assert client.transport.host == "127.0.0.1"

        await client.aclose()
        assert client.transport.closed
        client.connect()
        await asyncio.sleep(0.1)
        assert client.store.current.connection is ConnectionState.DISCONNECTED
