"""Explicitly owned bridge client: loop, store, transport and commands."""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional

from ..config.settings import ClientSettings, get_settings
from ..core.logger import get_logger
from ..state.store import SessionStore
from .commands import BridgeCommands
from .transport import Connector, ReconnectingTransport


logger = get_logger("transport")


class BridgeClient:
    """High-level handle shared by whichever hosts need the bridge.

    Without an explicit ``loop`` the client runs its own event loop in a
    daemon thread; every mutation happens on that loop.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        *,
        host: Optional[str] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self.settings = settings or get_settings()
        if loop is not None:
            self.loop = loop
            self._owns_loop = False
            self._loop_thread: Optional[threading.Thread] = None
        else:
            self.loop = asyncio.new_event_loop()
            self._owns_loop = True
            self._loop_thread = threading.Thread(target=self._run_loop, name="pebblecode-bridge", daemon=True)
            self._loop_thread.start()

        self.store = SessionStore(history_limit=self.settings.history_limit)
        self.transport = ReconnectingTransport(
            self.store,
            self.settings,
            host=host,
            loop=self.loop,
            connector=connector,
        )
        self.commands = BridgeCommands(self.store, self.transport)
        self._stopped = False

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def start(self) -> None:
        """Begin connecting; the transport keeps reconnecting until :meth:`stop`."""
        self._submit(self.transport.connect)

    def connect(self) -> None:
        """Reconnect now if disconnected (e.g. when the UI comes to the foreground)."""
        self._submit(self.transport.connect)

    def update_host(self, host: str) -> None:
        self._submit(self.transport.update_host, host)

    def stop(self, timeout: float = 2.0) -> None:
        """Tear down the connection; also stops the owned loop thread."""
        if self._stopped:
            return
        self._stopped = True
        if not self._owns_loop:
            self._submit(self.transport.disconnect)
            return
        future = asyncio.run_coroutine_threadsafe(self.transport.aclose(), self.loop)
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError:
            logger.warning("Bridge teardown timed out after %.1fs", timeout)
            future.cancel()
        self.loop.call_soon_threadsafe(self.loop.stop)
        if self._loop_thread is not None:
            self._loop_thread.join(timeout=timeout)
            self._loop_thread = None

    async def aclose(self) -> None:
        """Tear down from inside an injected, running loop."""
        self._stopped = True
        await self.transport.aclose()

    # ------------------------------------------------------------------ #
    def _submit(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            self.loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.debug("Event loop closed, %s dropped", getattr(callback, "__name__", callback))

    def _run_loop(self) -> None:
        """Run the owned asyncio loop in a dedicated thread."""
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()
        self.loop.close()
