"""Session state store: the single-writer owner of the client state."""

from __future__ import annotations

import threading
from typing import Optional

from ..core.logger import get_logger
from ..services.schemas import (
    BridgeState,
    ConnectionState,
    DecodeError,
    Event,
    HistoryLine,
    PromptData,
    SessionJoinedEvent,
    StatusSnapshot,
    UnknownEvent,
)
from .observable import StateValue
from .reducer import DEFAULT_HISTORY_LIMIT, reduce


logger = get_logger("session")


class SessionStore:
    """Applies events through :func:`reduce` and publishes the result.

    Every field is exposed as a :class:`StateValue` so observers can follow
    only what they render; ``state`` carries the whole snapshot.
    """

    def __init__(self, *, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.history_limit = history_limit
        initial = BridgeState()
        self.state: StateValue[BridgeState] = StateValue(initial, name="state")
        self.connection: StateValue[ConnectionState] = StateValue(initial.connection, name="connection")
        self.sessions: StateValue[tuple[str, ...]] = StateValue(initial.sessions, name="sessions")
        self.active_session: StateValue[str] = StateValue(initial.active_session, name="active_session")
        self.status: StateValue[StatusSnapshot] = StateValue(initial.status, name="status")
        self.prompt: StateValue[Optional[PromptData]] = StateValue(initial.prompt, name="prompt")
        self.history: StateValue[tuple[str, ...]] = StateValue(initial.history, name="history")
        self.bridge_history: StateValue[tuple[HistoryLine, ...]] = StateValue(
            initial.bridge_history, name="bridge_history"
        )
        self._current = initial
        self._writer: int | None = None

    @property
    def current(self) -> BridgeState:
        return self._current

    def dispatch(self, event: Event) -> BridgeState:
        """Apply ``event``; must always be called from the same thread."""
        self._check_writer()
        if isinstance(event, DecodeError):
            logger.warning("Dropped bridge frame: %s", event.reason)
            return self.current
        if isinstance(event, UnknownEvent):
            logger.debug("Ignored bridge message type %r", event.type)
            return self.current
        if isinstance(event, SessionJoinedEvent):
            logger.info("Bridge %s session %r", "created" if event.created else "joined", event.name)

        previous = self.current
        updated = reduce(previous, event, history_limit=self.history_limit)
        if updated == previous:
            return previous
        self._current = updated
        self._publish(previous, updated)
        return updated

    def _publish(self, previous: BridgeState, updated: BridgeState) -> None:
        if updated.active_session != previous.active_session:
            logger.info("Active session: %r", updated.active_session)
        if len(updated.bridge_history) != len(previous.bridge_history):
            logger.info("Bridge history: %d lines", len(updated.bridge_history))
        self.connection.set(updated.connection)
        self.sessions.set(updated.sessions)
        self.active_session.set(updated.active_session)
        self.status.set(updated.status)
        self.prompt.set(updated.prompt)
        self.history.set(updated.history)
        self.bridge_history.set(updated.bridge_history)
        self.state.set(updated)

    def _check_writer(self) -> None:
        ident = threading.get_ident()
        if self._writer is None:
            self._writer = ident
        elif self._writer != ident:
            raise RuntimeError("SessionStore.dispatch called from a second thread")
