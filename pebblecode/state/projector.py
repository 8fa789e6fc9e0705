"""Read-side classifications derived from the bridge state.

Everything here is a pure function of its arguments and is recomputed on
each call; presentation layers (screens, notifications, haptics) rely on
these for every decision about what the assistant is doing.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from ..services.schemas import BridgeState, HistoryLine, PromptData, StatusSnapshot


class Activity(str, Enum):
    """What the assistant is doing right now."""

    QUESTION = "question"
    ERROR = "error"
    WORKING = "working"
    IDLE = "idle"


class Screen(str, Enum):
    """Top-level view a UI should show."""

    MENU = "menu"
    SESSION = "session"
    QUESTION = "question"


_ELLIPSES = ("...", "…")


def is_error(snapshot: StatusSnapshot) -> bool:
    return "error" in snapshot.status.lower()


def is_working(snapshot: StatusSnapshot) -> bool:
    return not snapshot.is_idle and not snapshot.is_question and not is_error(snapshot)


def activity(snapshot: StatusSnapshot) -> Activity:
    if snapshot.is_question:
        return Activity.QUESTION
    if is_error(snapshot):
        return Activity.ERROR
    if is_working(snapshot):
        return Activity.WORKING
    return Activity.IDLE


def screen(state: BridgeState) -> Screen:
    if not state.active_session:
        return Screen.MENU
    if state.status.is_question:
        return Screen.QUESTION
    return Screen.SESSION


def has_actionable_prompt(prompt: Optional[PromptData]) -> bool:
    """A prompt with discrete choices (not a free-form ask) is pending."""
    return prompt is not None and not prompt.is_ask_user


def prompt_text(prompt: Optional[PromptData]) -> str:
    if prompt is None or not prompt.options:
        return ""
    return prompt.options[0].label


def question_text(snapshot: StatusSnapshot) -> str:
    return snapshot.question_text


def question_options(snapshot: StatusSnapshot) -> tuple[str, ...]:
    return snapshot.question_options


def key_for_option(prompt: Optional[PromptData], index: int) -> int:
    """Key to send for the question option at ``index``; 0 when there is none."""
    if prompt is None or index < 0 or index >= len(prompt.options):
        return 0
    return prompt.options[index].num


def status_line(snapshot: StatusSnapshot) -> str:
    return snapshot.status or "Connected"


def strip_ellipses(text: str) -> str:
    cleaned = text.strip()
    for dots in _ELLIPSES:
        if cleaned.startswith(dots):
            cleaned = cleaned[len(dots):]
        if cleaned.endswith(dots):
            cleaned = cleaned[: -len(dots)]
    return cleaned.strip()


def pill_text(snapshot: StatusSnapshot) -> str:
    if is_working(snapshot):
        if snapshot.status:
            return _strip_trailing_ellipsis(snapshot.status)
        return "Working"
    return "Ready"


def command_line(snapshot: StatusSnapshot) -> str:
    """One-line summary of the current tool activity."""
    if is_working(snapshot) and snapshot.active_task:
        return f"▸ {strip_ellipses(snapshot.active_task)}"
    if snapshot.diff and snapshot.last_tool:
        return f"◇ {strip_ellipses(snapshot.last_tool)}: {strip_ellipses(snapshot.diff)}"
    if snapshot.diff:
        return f"◇ {strip_ellipses(snapshot.diff)}"
    if snapshot.last_tool:
        return f"◇ {strip_ellipses(snapshot.last_tool)}"
    return ""


def history_turns(lines: tuple[HistoryLine, ...]) -> list[list[str]]:
    """Group bridge-seeded lines into turns split at separators."""
    turns: list[list[str]] = []
    current: list[str] = []
    for line in lines:
        if line.separator:
            if current:
                turns.append(current)
            current = []
        else:
            current.append(line.text)
    if current:
        turns.append(current)
    return turns


def _strip_trailing_ellipsis(text: str) -> str:
    for dots in _ELLIPSES:
        if text.endswith(dots):
            text = text[: -len(dots)]
    return text.strip()
