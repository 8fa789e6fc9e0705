"""Pure reducer applying bridge events to the client state."""

from __future__ import annotations

from dataclasses import replace

from ..services.codec import LEGACY_MARKER, parse_legacy_status
from ..services.schemas import (
    BridgeState,
    ConnectionChanged,
    Event,
    HistoryEvent,
    MenuEvent,
    OutputEvent,
    SessionJoinedEvent,
    SessionLeft,
    StatusSnapshot,
)


DEFAULT_HISTORY_LIMIT = 50


def reduce(state: BridgeState, event: Event, *, history_limit: int = DEFAULT_HISTORY_LIMIT) -> BridgeState:
    """Return the state after ``event``; unknown and undecodable events are no-ops."""
    if isinstance(event, MenuEvent):
        # The session list never touches the active session: a reconnect
        # triggered ``list`` must not kick the user back to the menu.
        return replace(state, sessions=event.sessions)
    if isinstance(event, SessionJoinedEvent):
        return replace(
            state,
            active_session=event.name,
            status=StatusSnapshot(),
            prompt=None,
            history=(),
            bridge_history=(),
        )
    if isinstance(event, HistoryEvent):
        return replace(state, bridge_history=event.lines)
    if isinstance(event, OutputEvent):
        return _reduce_output(state, event, history_limit)
    if isinstance(event, ConnectionChanged):
        return replace(state, connection=event.state)
    if isinstance(event, SessionLeft):
        return replace(state, active_session="", status=StatusSnapshot())
    return state


def append_history(history: tuple[str, ...], summary: str, limit: int) -> tuple[str, ...]:
    """Append ``summary`` unless empty or equal to the last entry, keeping ``limit`` entries."""
    if not summary or (history and history[-1] == summary):
        return history
    updated = history + (summary,)
    if limit > 0 and len(updated) > limit:
        updated = updated[-limit:]
    return updated


def _reduce_output(state: BridgeState, event: OutputEvent, history_limit: int) -> BridgeState:
    status = state.status
    history = state.history
    if event.clean_data is not None:
        status = event.clean_data
        history = append_history(history, status.summary, history_limit)
    elif event.content.startswith(LEGACY_MARKER):
        status = parse_legacy_status(event.content)
    return replace(state, status=status, history=history, prompt=event.prompt)
