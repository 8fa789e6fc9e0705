"""JSON wire codec for bridge frames."""

from __future__ import annotations

import json
from typing import Any, Mapping

from .schemas import (
    CommandType,
    DecodeError,
    HistoryEvent,
    HistoryLine,
    InboundEvent,
    MenuEvent,
    OutputEvent,
    PromptData,
    PromptOption,
    READY_STATUS,
    SessionJoinedEvent,
    StatusSnapshot,
    UnknownEvent,
)


LEGACY_MARKER = "CLEAN:"
_LEGACY_FIELDS = 7


class _MalformedFrame(ValueError):
    """Raised internally when a recognized frame has the wrong shape."""


def encode_command(command: CommandType | str, fields: Mapping[str, str] | None = None) -> str:
    """Build an outbound frame: ``{"type": command, **fields}``."""
    kind = command.value if isinstance(command, CommandType) else str(command)
    payload: dict[str, str] = {"type": kind}
    for key, value in (fields or {}).items():
        if key == "type":
            continue
        payload[key] = str(value)
    return json.dumps(payload, ensure_ascii=False)


def decode_frame(frame: str | bytes) -> InboundEvent:
    """Decode an inbound frame into a typed event; never raises."""
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = bytes(frame).decode("utf-8")
        except UnicodeDecodeError as exc:
            return DecodeError(reason=f"invalid utf-8: {exc}")
    try:
        payload = json.loads(frame)
    except (ValueError, TypeError, RecursionError) as exc:
        return DecodeError(reason=f"invalid json: {exc}", frame=frame)
    if not isinstance(payload, dict):
        return DecodeError(reason="frame is not a JSON object", frame=frame)

    kind = ""
    try:
        kind = _opt_str(payload, "type", "")
        if kind == "menu":
            return MenuEvent(sessions=tuple(_opt_str_list(payload, "sessions")))
        if kind in ("session_joined", "session_created"):
            return SessionJoinedEvent(
                name=_opt_str(payload, "name", ""),
                created=kind == "session_created",
            )
        if kind == "history":
            lines = _opt_str_list(payload, "lines")
            return HistoryEvent(lines=tuple(HistoryLine.from_raw(line) for line in lines))
        if kind == "output":
            return _decode_output(payload)
    except _MalformedFrame as exc:
        return DecodeError(reason=f"{kind}: {exc}", frame=frame)
    except RecursionError:
        return DecodeError(reason=f"{kind}: frame nested too deeply", frame=frame)
    return UnknownEvent(type=kind)


def parse_clean_data(payload: Mapping[str, Any]) -> StatusSnapshot:
    """Build a snapshot from a structured ``cleanData`` object."""
    return StatusSnapshot(
        user_command=_opt_str(payload, "userCmd", ""),
        summary=_opt_str(payload, "summary", ""),
        status=_opt_str(payload, "status", READY_STATUS),
        last_tool=_opt_str(payload, "lastTool", ""),
        suggestion=_opt_str(payload, "suggestion", ""),
        active_task=_opt_str(payload, "activeTask", ""),
        diff=_opt_str(payload, "diff", ""),
    )


def parse_legacy_status(raw: str) -> StatusSnapshot:
    """Parse ``CLEAN:cmd|summary|status|tool|suggestion|task|diff``."""
    if not raw.startswith(LEGACY_MARKER):
        return StatusSnapshot()
    parts = raw[len(LEGACY_MARKER):].split("|", _LEGACY_FIELDS - 1)

    def part(index: int, default: str = "") -> str:
        return parts[index] if index < len(parts) else default

    return StatusSnapshot(
        user_command=part(0),
        summary=part(1),
        status=part(2, READY_STATUS),
        last_tool=part(3),
        suggestion=part(4),
        active_task=part(5),
        diff=part(6),
    )


def parse_prompt(payload: Mapping[str, Any]) -> PromptData:
    """Build prompt data; option ``num`` defaults to its 1-based position."""
    raw_options = payload.get("options")
    if raw_options is None:
        raw_options = []
    if not isinstance(raw_options, list):
        raise _MalformedFrame("prompt options is not a list")
    options: list[PromptOption] = []
    for index, item in enumerate(raw_options):
        if not isinstance(item, dict):
            raise _MalformedFrame(f"prompt option {index} is not an object")
        options.append(
            PromptOption(
                num=_opt_int(item, "num", index + 1),
                label=_opt_str(item, "label", ""),
            )
        )
    return PromptData(
        options=tuple(options),
        is_ask_user=bool(payload.get("isAskUser", False)),
        question=_opt_str(payload, "question", ""),
    )


def _decode_output(payload: Mapping[str, Any]) -> OutputEvent:
    clean = payload.get("cleanData")
    if clean is not None and not isinstance(clean, dict):
        raise _MalformedFrame("cleanData is not an object")
    prompt = payload.get("prompt")
    if prompt is not None and not isinstance(prompt, dict):
        raise _MalformedFrame("prompt is not an object")
    return OutputEvent(
        clean_data=parse_clean_data(clean) if clean is not None else None,
        prompt=parse_prompt(prompt) if prompt is not None else None,
        content=_opt_str(payload, "content", ""),
    )


def _opt_str(payload: Mapping[str, Any], key: str, default: str) -> str:
    """Read a string field the lenient way (scalars are stringified)."""
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def _opt_int(payload: Mapping[str, Any], key: str, default: int) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _opt_str_list(payload: Mapping[str, Any], key: str) -> list[str]:
    value = payload.get(key)
    if not isinstance(value, list):
        raise _MalformedFrame(f"{key} is not a list")
    return [item if isinstance(item, str) else _opt_str({"v": item}, "v", "") for item in value]
