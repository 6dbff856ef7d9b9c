"""
Exam Session Engine - Question Palette
Finite-state machine over per-question display status.

Status is never stored: it is derived from three facts (visited, has an
answer, marked). Events are checked against ``TRANSITIONS`` and the facts
are then updated to match the table's target status.
"""
from enum import Enum

from examcore.schemas.activity import QuestionStatus
from examcore.schemas.attempt import QuestionStateSummary
from examcore.services.answer_store import AnswerStore
from examcore.services.errors import InvalidTransition
from examcore.services.gate import SessionGate
from examcore.services.registry import QuestionRegistry


class PaletteEvent(str, Enum):
    VISIT = "visit"
    ANSWER = "answer"
    CLEAR = "clear"
    TOGGLE_MARK = "toggle-mark"


_S = QuestionStatus
_E = PaletteEvent

# (current status, event) -> next status. Missing pairs are rejected.
TRANSITIONS: dict[tuple[QuestionStatus, PaletteEvent], QuestionStatus] = {
    (_S.NOT_VISITED, _E.VISIT): _S.NOT_ANSWERED,

    (_S.NOT_ANSWERED, _E.VISIT): _S.NOT_ANSWERED,
    (_S.NOT_ANSWERED, _E.ANSWER): _S.ANSWERED,
    (_S.NOT_ANSWERED, _E.CLEAR): _S.NOT_ANSWERED,
    (_S.NOT_ANSWERED, _E.TOGGLE_MARK): _S.MARKED_FOR_REVIEW,

    (_S.ANSWERED, _E.VISIT): _S.ANSWERED,
    (_S.ANSWERED, _E.ANSWER): _S.ANSWERED,
    (_S.ANSWERED, _E.CLEAR): _S.NOT_ANSWERED,
    (_S.ANSWERED, _E.TOGGLE_MARK): _S.ANSWERED_AND_MARKED,

    (_S.MARKED_FOR_REVIEW, _E.VISIT): _S.MARKED_FOR_REVIEW,
    (_S.MARKED_FOR_REVIEW, _E.ANSWER): _S.ANSWERED_AND_MARKED,
    (_S.MARKED_FOR_REVIEW, _E.CLEAR): _S.MARKED_FOR_REVIEW,
    (_S.MARKED_FOR_REVIEW, _E.TOGGLE_MARK): _S.NOT_ANSWERED,

    (_S.ANSWERED_AND_MARKED, _E.VISIT): _S.ANSWERED_AND_MARKED,
    (_S.ANSWERED_AND_MARKED, _E.ANSWER): _S.ANSWERED_AND_MARKED,
    (_S.ANSWERED_AND_MARKED, _E.CLEAR): _S.MARKED_FOR_REVIEW,
    (_S.ANSWERED_AND_MARKED, _E.TOGGLE_MARK): _S.ANSWERED,
}

_MARKED = {_S.MARKED_FOR_REVIEW, _S.ANSWERED_AND_MARKED}


def derive_status(visited: bool, has_answer: bool, marked: bool) -> QuestionStatus:
    """Pure mapping from the three facts to a display status."""
    if not visited:
        if has_answer or marked:
            raise ValueError("A question must be visited before it is answered or marked")
        return _S.NOT_VISITED
    if marked:
        return _S.ANSWERED_AND_MARKED if has_answer else _S.MARKED_FOR_REVIEW
    return _S.ANSWERED if has_answer else _S.NOT_ANSWERED


def next_status(status: QuestionStatus, event: PaletteEvent) -> QuestionStatus | None:
    return TRANSITIONS.get((status, event))


class QuestionPalette:
    """Tracks visitation and review marks; reads answers from the store."""

    def __init__(self, registry: QuestionRegistry, answers: AnswerStore, gate: SessionGate):
        self.registry = registry
        self.answers = answers
        self.gate = gate
        self._visited: set[str] = set()
        self._marked: set[str] = set()

    def derive_status(self, question_id: str) -> QuestionStatus:
        self.registry.get(question_id)
        return derive_status(
            question_id in self._visited,
            self.answers.has_answer(question_id),
            question_id in self._marked,
        )

    def is_visited(self, question_id: str) -> bool:
        return question_id in self._visited

    def is_marked(self, question_id: str) -> bool:
        return question_id in self._marked

    def check(self, question_id: str, event: PaletteEvent) -> QuestionStatus:
        """Return the target status of ``event`` or raise if it is not allowed."""
        self.gate.ensure_open()
        current = self.derive_status(question_id)
        target = next_status(current, event)
        if target is None:
            raise InvalidTransition(question_id, current.value, event.value)
        return target

    def _apply(self, question_id: str, target: QuestionStatus) -> None:
        self._visited.add(question_id)
        if target in _MARKED:
            self._marked.add(question_id)
        else:
            self._marked.discard(question_id)

    def visit(self, question_id: str) -> QuestionStatus:
        target = self.check(question_id, PaletteEvent.VISIT)
        self._apply(question_id, target)
        return target

    def toggle_mark(self, question_id: str) -> QuestionStatus:
        target = self.check(question_id, PaletteEvent.TOGGLE_MARK)
        self._apply(question_id, target)
        return target

    def record_answer(self, question_id: str, value) -> QuestionStatus:
        """Write an answer through the store and move the palette with it."""
        target = self.check(question_id, PaletteEvent.ANSWER)
        self.answers.set_answer(question_id, value)
        self._apply(question_id, target)
        return target

    def clear_answer(self, question_id: str) -> QuestionStatus:
        target = self.check(question_id, PaletteEvent.CLEAR)
        self.answers.clear_answer(question_id)
        self._apply(question_id, target)
        return target

    def statuses(self) -> dict[str, QuestionStatus]:
        return {q: self.derive_status(q) for q in self.registry.ordered_ids}

    def summary(self) -> QuestionStateSummary:
        grouped: dict[QuestionStatus, list[str]] = {status: [] for status in QuestionStatus}
        for question_id, status in self.statuses().items():
            grouped[status].append(question_id)
        return QuestionStateSummary(
            not_visited=tuple(grouped[_S.NOT_VISITED]),
            not_answered=tuple(grouped[_S.NOT_ANSWERED]),
            answered=tuple(grouped[_S.ANSWERED]),
            marked_for_review=tuple(grouped[_S.MARKED_FOR_REVIEW]),
            answered_and_marked=tuple(grouped[_S.ANSWERED_AND_MARKED]),
        )

    def visited_count(self) -> int:
        return len(self._visited)

    def restore(self, visited: set[str], marked: set[str]) -> None:
        """Rehydrate facts from a draft; a marked question must be visited."""
        self.gate.ensure_open()
        for question_id in visited | marked:
            self.registry.get(question_id)
        if not marked <= visited:
            raise ValueError("Draft marks questions that were never visited")
        self._visited = set(visited)
        self._marked = set(marked)
