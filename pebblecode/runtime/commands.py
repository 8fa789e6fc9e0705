"""Outward command API: user intent to bridge commands."""

from __future__ import annotations

from typing import Any, Callable

from ..core.logger import get_logger
from ..services.schemas import CommandType, SessionLeft
from ..state.store import SessionStore
from .transport import ReconnectingTransport


logger = get_logger("commands")


class BridgeCommands:
    """Fire-and-forget commands, safe to call from any thread.

    Each call is handed to the transport's event loop, so local state
    changes and sends share the store's single writer and keep call order.
    """

    def __init__(self, store: SessionStore, transport: ReconnectingTransport) -> None:
        self.store = store
        self.transport = transport

    def join_session(self, name: str) -> None:
        if not name:
            logger.debug("join_session() without a name ignored")
            return
        self._submit(self.transport.send, CommandType.JOIN, {"name": name})

    def create_session(self) -> None:
        self._submit(self.transport.send, CommandType.CREATE)

    def leave_session(self) -> None:
        """Leave locally right away, then tell the bridge."""
        self._submit(self._leave)

    def request_list(self) -> None:
        self._submit(self.transport.send, CommandType.LIST)

    def send_key(self, num: int) -> None:
        """Answer a prompt with option ``num``; non-positive keys are ignored."""
        if num <= 0:
            logger.debug("send_key(%d) ignored", num)
            return
        self._submit(self.transport.send, CommandType.KEY, {"content": str(num)})

    def send_dictation(self, text: str) -> None:
        self._submit(self.transport.send, CommandType.DICTATION, {"content": text})

    def pause(self) -> None:
        self._submit(self.transport.send, CommandType.PAUSE)

    def resume(self) -> None:
        self._submit(self.transport.send, CommandType.RESUME)

    def accept(self) -> None:
        self._submit(self.transport.send, CommandType.ACCEPT)

    # ------------------------------------------------------------------ #
    def _leave(self) -> None:
        if self.transport.closed:
            return
        self.store.dispatch(SessionLeft())
        self.transport.send(CommandType.LEAVE)

    def _submit(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            self.transport.loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.debug("Event loop closed, command dropped")
