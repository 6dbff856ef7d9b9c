"""
Exam Session Engine - Attempt Schemas
Scored, immutable result of one submitted session
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from examcore.schemas.activity import ActivityEvent
from examcore.schemas.answer import AnswerEntry
from examcore.schemas.exam import QuestionType


class SubmissionReason(str, Enum):
    """Why a session was submitted."""
    MANUAL = "manual"
    EXPIRED = "expired"


class OutcomeStatus(str, Enum):
    """Scoring outcome of one question."""
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNATTEMPTED = "unattempted"


class QuestionOutcome(BaseModel):
    """Per-question correctness and marks."""
    model_config = ConfigDict(frozen=True)

    question_id: str
    section_id: str
    question_type: QuestionType
    subject: Optional[str] = None
    topic: Optional[str] = None
    answer: Optional[AnswerEntry] = None
    status: OutcomeStatus
    marks_awarded: float
    max_marks: float

    # Captured during the attempt
    time_spent_seconds: float = 0.0
    visits: int = 0
    answered_at_seconds: Optional[float] = None

    @property
    def is_attempted(self) -> bool:
        return self.status != OutcomeStatus.UNATTEMPTED

    @property
    def is_correct(self) -> bool:
        return self.status == OutcomeStatus.CORRECT


class QuestionStateSummary(BaseModel):
    """Question ids grouped by palette status at submission time."""
    model_config = ConfigDict(frozen=True)

    not_visited: tuple[str, ...] = ()
    not_answered: tuple[str, ...] = ()
    answered: tuple[str, ...] = ()
    marked_for_review: tuple[str, ...] = ()
    answered_and_marked: tuple[str, ...] = ()


class AttemptResult(BaseModel):
    """Result of one submitted session. Created once, never mutated."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    test_id: str
    student_id: str
    reason: SubmissionReason

    started_at: datetime
    submitted_at: datetime
    duration_seconds: int
    total_time_seconds: float

    outcomes: tuple[QuestionOutcome, ...]
    total_score: float
    max_score: float
    percentage: float
    correct_count: int
    incorrect_count: int
    unattempted_count: int
    visited_count: int = 0

    question_states: QuestionStateSummary = Field(default_factory=QuestionStateSummary)
    navigation_history: tuple[ActivityEvent, ...] = ()

    @property
    def attempted_count(self) -> int:
        return self.correct_count + self.incorrect_count

    def outcome_for(self, question_id: str) -> QuestionOutcome:
        for outcome in self.outcomes:
            if outcome.question_id == question_id:
                return outcome
        raise KeyError(question_id)

    def answer_order(self) -> list[QuestionOutcome]:
        """Attempted outcomes in the order their final answers were recorded."""
        position = {o.question_id: i for i, o in enumerate(self.outcomes)}
        attempted = [o for o in self.outcomes if o.is_attempted]
        return sorted(
            attempted,
            key=lambda o: (
                o.answered_at_seconds if o.answered_at_seconds is not None else float("inf"),
                position[o.question_id],
            ),
        )


class HistoricalAttempt(BaseModel):
    """Summary of a previously persisted attempt of the same test."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    attempt_id: str
    attempt_number: int
    session_id: str
    score: float
    max_score: float
    percentage: float
    time_spent_seconds: float
    submitted_at: datetime
