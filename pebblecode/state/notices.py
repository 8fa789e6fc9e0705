"""Change detection over successive status snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..services.schemas import StatusSnapshot
from .projector import is_working


class NoticeKind(str, Enum):
    QUESTION = "question"
    FINISHED = "finished"
    SUMMARY = "summary"
    STATUS = "status"
    SUGGESTION = "suggestion"


@dataclass(slots=True, frozen=True)
class Notice:
    """Something worth a pulse or a notification."""

    kind: NoticeKind
    title: str
    text: str


class NoticeTracker:
    """Remembers the previous snapshot and reports what changed."""

    def __init__(self, *, summary_chars: int = 80) -> None:
        self.summary_chars = summary_chars
        self.reset()

    def reset(self) -> None:
        """Forget the previous snapshot (new session)."""
        self._was_working = False
        self._was_question = False
        self._summary = ""
        self._status = ""
        self._suggestion = ""

    def observe(self, snapshot: StatusSnapshot) -> list[Notice]:
        notices: list[Notice] = []

        if snapshot.is_question and not self._was_question:
            notices.append(Notice(NoticeKind.QUESTION, "Question", snapshot.question_text))
        if self._was_working and snapshot.is_ready:
            notices.append(Notice(NoticeKind.FINISHED, "Finished", snapshot.summary[: self.summary_chars]))

        if snapshot.summary and snapshot.summary != self._summary:
            notices.append(Notice(NoticeKind.SUMMARY, "Claude", snapshot.summary[: self.summary_chars]))
            self._summary = snapshot.summary
        if snapshot.status and snapshot.status != self._status:
            text = snapshot.summary[:60] or snapshot.active_task
            notices.append(Notice(NoticeKind.STATUS, f"Status: {snapshot.status}", text))
            self._status = snapshot.status
        if snapshot.suggestion and snapshot.suggestion != self._suggestion:
            notices.append(Notice(NoticeKind.SUGGESTION, "Suggestion", snapshot.suggestion[:60]))
            self._suggestion = snapshot.suggestion

        self._was_question = snapshot.is_question
        self._was_working = is_working(snapshot)
        return notices
