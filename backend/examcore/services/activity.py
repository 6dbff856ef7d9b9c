"""
Exam Session Engine - Activity Log
Navigation history, time spent per question and answer timestamps.

All timestamps are offsets in seconds from session start, taken from the
session timer, so analysis never depends on the wall clock at analysis time.
"""
from collections.abc import Callable
from typing import Optional

from examcore.schemas.activity import ActivityEvent, ActivitySnapshot, NavigationAction


class ActivityLog:
    """Records what the examinee did and when."""

    def __init__(self, elapsed: Callable[[], float]):
        self._elapsed = elapsed
        self._events: list[ActivityEvent] = []
        self._time_spent: dict[str, float] = {}
        self._visits: dict[str, int] = {}
        self._answered_at: dict[str, float] = {}
        self._active: Optional[str] = None
        self._entered_at = 0.0

    def _record(self, action: NavigationAction, question_id: str) -> float:
        at = self._elapsed()
        self._events.append(ActivityEvent(action=action, question_id=question_id, at_seconds=at))
        return at

    def visit(self, question_id: str) -> None:
        if question_id == self._active:
            return
        self.leave()
        at = self._record(NavigationAction.VISIT, question_id)
        self._visits[question_id] = self._visits.get(question_id, 0) + 1
        self._active = question_id
        self._entered_at = at

    def leave(self) -> None:
        """Stop the clock on the active question."""
        if self._active is None:
            return
        at = self._record(NavigationAction.LEAVE, self._active)
        spent = max(0.0, at - self._entered_at)
        self._time_spent[self._active] = self._time_spent.get(self._active, 0.0) + spent
        self._active = None

    def answer(self, question_id: str) -> None:
        self._answered_at[question_id] = self._record(NavigationAction.ANSWER, question_id)

    def clear(self, question_id: str) -> None:
        self._record(NavigationAction.CLEAR, question_id)
        self._answered_at.pop(question_id, None)

    def mark(self, question_id: str) -> None:
        self._record(NavigationAction.MARK, question_id)

    def unmark(self, question_id: str) -> None:
        self._record(NavigationAction.UNMARK, question_id)

    def close(self) -> None:
        self.leave()

    @property
    def events(self) -> tuple[ActivityEvent, ...]:
        return tuple(self._events)

    def time_spent(self, question_id: str) -> float:
        spent = self._time_spent.get(question_id, 0.0)
        if question_id == self._active:
            spent += max(0.0, self._elapsed() - self._entered_at)
        return spent

    def visits(self, question_id: str) -> int:
        return self._visits.get(question_id, 0)

    def answered_at(self, question_id: str) -> Optional[float]:
        return self._answered_at.get(question_id)

    def snapshot(self) -> ActivitySnapshot:
        time_spent = dict(self._time_spent)
        if self._active is not None:
            time_spent[self._active] = self.time_spent(self._active)
        return ActivitySnapshot(
            events=list(self._events),
            time_spent=time_spent,
            visits=dict(self._visits),
            answered_at=dict(self._answered_at),
        )

    def restore(self, snapshot: ActivitySnapshot, active_question_id: Optional[str] = None) -> None:
        self._events = list(snapshot.events)
        self._time_spent = dict(snapshot.time_spent)
        self._visits = dict(snapshot.visits)
        self._answered_at = dict(snapshot.answered_at)
        self._active = active_question_id
        self._entered_at = self._elapsed()
