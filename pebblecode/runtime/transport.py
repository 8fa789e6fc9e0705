"""Reconnecting WebSocket transport to the bridge."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Callable, Mapping, Optional

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed

from ..config.settings import ClientSettings, get_settings
from ..core.logger import get_logger
from ..core.trace import new_connection_id
from ..services.address import resolve_bridge_url
from ..services.codec import decode_frame, encode_command
from ..services.schemas import CommandType, ConnectionChanged, ConnectionState
from ..state.store import SessionStore


Connector = Callable[..., Awaitable[ClientConnection]]

logger = get_logger("transport")


class ReconnectingTransport:
    """Keeps at most one bridge connection alive and feeds the store.

    All methods must run on ``loop``; :class:`~pebblecode.runtime.client.BridgeClient`
    is the thread-safe handle for callers living elsewhere.
    """

    def __init__(
        self,
        store: SessionStore,
        settings: Optional[ClientSettings] = None,
        *,
        host: Optional[str] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.host = host if host is not None else self.settings.bridge_host
        self.loop = loop if loop is not None else asyncio.get_running_loop()
        self._connector: Connector = connector or ws_connect
        self._ws: Optional[ClientConnection] = None
        self._outbox: Optional[asyncio.Queue[str]] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._generation = 0
        self._closed = False

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def url(self) -> str:
        return resolve_bridge_url(
            self.host,
            port=self.settings.bridge_port,
            tailnet_suffix=self.settings.tailnet_suffix,
        )

    @property
    def state(self) -> ConnectionState:
        return self.store.current.connection

    @property
    def closed(self) -> bool:
        """True once :meth:`disconnect` ran; the transport never reconnects again."""
        return self._closed

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def connect(self) -> None:
        """Open a connection unless one is open or being opened."""
        if self._closed:
            logger.debug("connect() ignored, transport is closed")
            return
        if self.state is not ConnectionState.DISCONNECTED:
            return
        self._cancel_reconnect()
        self._generation += 1
        url = self.url
        self.store.dispatch(ConnectionChanged(ConnectionState.CONNECTING))
        self._task = self.loop.create_task(self._run(url, self._generation))

    def update_host(self, host: str) -> None:
        """Switch to ``host``, dropping the current connection first."""
        if host == self.host:
            return
        self.host = host
        logger.info("Bridge host changed to %s", host)
        if self._closed:
            return
        self._teardown()
        self.store.dispatch(ConnectionChanged(ConnectionState.DISCONNECTED))
        self.connect()

    def disconnect(self) -> None:
        """Close the connection and stop reconnecting for good."""
        if self._closed:
            return
        self._teardown()
        self.store.dispatch(ConnectionChanged(ConnectionState.DISCONNECTED))
        self._closed = True
        logger.info("Transport closed")

    async def aclose(self) -> None:
        """Like :meth:`disconnect`, then wait for the connection task to finish."""
        task = self._task
        self.disconnect()
        if task is not None:
            await asyncio.wait({task})

    def send(self, command: CommandType | str, fields: Optional[Mapping[str, str]] = None) -> None:
        """Queue a command on the live connection; dropped when there is none."""
        frame = encode_command(command, fields)
        if self._outbox is None:
            logger.debug("Not connected, dropped %s", frame)
            return
        self._outbox.put_nowait(frame)

    # ------------------------------------------------------------------ #
    # Connection lifecycle
    # ------------------------------------------------------------------ #
    async def _run(self, url: str, generation: int) -> None:
        new_connection_id()
        logger.info("Connecting to %s", url)
        try:
            ws = await self._connector(
                url,
                open_timeout=self.settings.open_timeout_s,
                ping_interval=self.settings.ping_interval_s,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Bridge connection failed: %r", exc)
            self._connection_lost(generation)
            return

        outbox: asyncio.Queue[str] = asyncio.Queue()
        self._ws = ws
        self._outbox = outbox
        logger.info("Bridge connected")
        self.store.dispatch(ConnectionChanged(ConnectionState.CONNECTED))
        self._on_open()

        writer = asyncio.create_task(self._write(ws, outbox))
        try:
            async for message in ws:
                self._on_frame(message)
            logger.info("Bridge closed: %s", ws.close_reason or ws.close_code)
        except ConnectionClosed as exc:
            logger.warning("Bridge connection lost: %s", exc)
        except Exception:
            logger.exception("Bridge read loop failed")
        finally:
            writer.cancel()
            await asyncio.wait({writer})
            with contextlib.suppress(Exception):
                await ws.close()
        self._connection_lost(generation)

    def _on_open(self) -> None:
        session = self.store.current.active_session
        if session:
            logger.info("Auto-rejoining session: %s", session)
            self.send(CommandType.JOIN, {"name": session})
        else:
            self.send(CommandType.LIST)

    def _on_frame(self, message: Any) -> None:
        self.store.dispatch(decode_frame(message))

    async def _write(self, ws: ClientConnection, outbox: asyncio.Queue[str]) -> None:
        while True:
            frame = await outbox.get()
            try:
                await ws.send(frame)
            except ConnectionClosed:
                logger.debug("Connection closed, dropped %s", frame)
                return
            except Exception:
                # Closing ends the read loop, which reports the connection lost.
                logger.exception("Bridge write failed, closing connection")
                await ws.close(code=1011, reason="write failed")
                return

    def _connection_lost(self, generation: int) -> None:
        if self._closed or generation != self._generation:
            return
        self._ws = None
        self._outbox = None
        self._task = None
        self.store.dispatch(ConnectionChanged(ConnectionState.DISCONNECTED))
        self._schedule_reconnect()

    def _teardown(self) -> None:
        """Forget the current connection; its task closes the socket on cancel."""
        self._generation += 1
        self._cancel_reconnect()
        task, self._task = self._task, None
        self._ws = None
        self._outbox = None
        if task is not None and not task.done():
            task.cancel()

    # ------------------------------------------------------------------ #
    # Reconnect timer
    # ------------------------------------------------------------------ #
    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        delay = self.settings.reconnect_delay
        logger.info("Reconnecting in %.1fs", delay)
        self._reconnect_handle = self.loop.call_later(delay, self._reconnect_due)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _reconnect_due(self) -> None:
        self._reconnect_handle = None
        if not self._closed and self.state is ConnectionState.DISCONNECTED:
            self.connect()
