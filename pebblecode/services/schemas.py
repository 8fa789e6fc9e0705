"""Data schemas exchanged with the bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


QUESTION_STATUS = "QUESTION"
READY_STATUS = "Ready"
DONE_STATUS = "done"
HISTORY_SEPARATOR = "---SEP---"


class ConnectionState(str, Enum):
    """Lifecycle of the bridge connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class CommandType(str, Enum):
    """Commands understood by the bridge."""

    JOIN = "join"
    CREATE = "create"
    LEAVE = "leave"
    LIST = "list"
    KEY = "key"
    DICTATION = "dictation"
    PAUSE = "pause"
    RESUME = "resume"
    ACCEPT = "accept"


@dataclass(slots=True, frozen=True)
class StatusSnapshot:
    """Latest reported state of the assistant's current turn."""

    user_command: str = ""
    summary: str = ""
    status: str = READY_STATUS
    last_tool: str = ""
    suggestion: str = ""
    active_task: str = ""
    diff: str = ""

    @property
    def is_question(self) -> bool:
        return self.status == QUESTION_STATUS

    @property
    def is_ready(self) -> bool:
        return self.status == READY_STATUS

    @property
    def is_done(self) -> bool:
        return self.status.lower() == DONE_STATUS

    @property
    def is_idle(self) -> bool:
        """True when the assistant is not actively working."""
        return self.is_ready or self.is_done or not self.status

    @property
    def question_text(self) -> str:
        if not self.is_question or not self.summary.startswith("?"):
            return self.summary
        first_line, _, _rest = self.summary.partition("\n")
        return first_line[1:]

    @property
    def question_options(self) -> tuple[str, ...]:
        if not self.is_question or not self.summary.startswith("?"):
            return ()
        return tuple(
            line[len("OPT:"):]
            for line in self.summary.split("\n")
            if line.startswith("OPT:")
        )


@dataclass(slots=True, frozen=True)
class PromptOption:
    """One selectable answer of a bridge prompt."""

    num: int
    label: str = ""


@dataclass(slots=True, frozen=True)
class PromptData:
    """Server-issued request for a choice or free text."""

    options: tuple[PromptOption, ...] = ()
    is_ask_user: bool = False
    question: str = ""


@dataclass(slots=True, frozen=True)
class HistoryLine:
    """Line of the bridge-seeded transcript."""

    text: str = ""
    separator: bool = False

    @classmethod
    def from_raw(cls, raw: str) -> "HistoryLine":
        if raw == HISTORY_SEPARATOR:
            return cls(separator=True)
        return cls(text=raw)


# ---------------------------------------------------------------------- #
# Inbound events
# ---------------------------------------------------------------------- #
@dataclass(slots=True, frozen=True)
class MenuEvent:
    sessions: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class SessionJoinedEvent:
    name: str
    created: bool = False


@dataclass(slots=True, frozen=True)
class HistoryEvent:
    lines: tuple[HistoryLine, ...]


@dataclass(slots=True, frozen=True)
class OutputEvent:
    """``output`` frame; ``clean_data`` is None when the object was absent."""

    clean_data: StatusSnapshot | None = None
    prompt: PromptData | None = None
    content: str = ""


@dataclass(slots=True, frozen=True)
class UnknownEvent:
    type: str


@dataclass(slots=True, frozen=True)
class DecodeError:
    """Frame that could not be decoded; dropped by the store."""

    reason: str
    frame: str = ""


# ---------------------------------------------------------------------- #
# Local events (produced by the transport and the command facade)
# ---------------------------------------------------------------------- #
@dataclass(slots=True, frozen=True)
class ConnectionChanged:
    state: ConnectionState


@dataclass(slots=True, frozen=True)
class SessionLeft:
    pass


InboundEvent = Union[MenuEvent, SessionJoinedEvent, HistoryEvent, OutputEvent, UnknownEvent, DecodeError]
Event = Union[InboundEvent, ConnectionChanged, SessionLeft]


@dataclass(slots=True, frozen=True)
class BridgeState:
    """Authoritative client-side view of the bridge."""

    connection: ConnectionState = ConnectionState.DISCONNECTED
    sessions: tuple[str, ...] = ()
    active_session: str = ""
    status: StatusSnapshot = field(default_factory=StatusSnapshot)
    prompt: PromptData | None = None
    history: tuple[str, ...] = ()
    bridge_history: tuple[HistoryLine, ...] = ()
