"""
Exam Session Engine - Session Schemas
Pydantic schemas for the session API and for autosaved drafts
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from examcore.schemas.activity import ActivitySnapshot, QuestionStatus
from examcore.schemas.answer import AnswerEntry
from examcore.schemas.attempt import AttemptResult
from examcore.schemas.exam import QuestionView


class StartSessionRequest(BaseModel):
    """Request to begin a timed test."""
    test_id: str = Field(..., min_length=1)


class NavigateRequest(BaseModel):
    """Jump to a question, or step forward/backward."""
    question_id: Optional[str] = None
    direction: Optional[Literal["next", "previous"]] = None

    @model_validator(mode="after")
    def _one_target(self) -> "NavigateRequest":
        if (self.question_id is None) == (self.direction is None):
            raise ValueError("Provide exactly one of question_id or direction")
        return self


class AnswerRequest(BaseModel):
    """Explicit save of an answer."""
    answer: AnswerEntry


class PaletteEntry(BaseModel):
    question_id: str
    section_id: str
    status: QuestionStatus


class SectionState(BaseModel):
    section_id: str
    title: str
    question_ids: list[str]
    remaining_seconds: Optional[int] = None


class SessionStateResponse(BaseModel):
    """Current view of an open (or closed) session."""
    session_id: str
    test_id: str
    closed: bool
    active_question_id: str
    current_section_id: str
    remaining_seconds: int
    palette: list[PaletteEntry]
    sections: list[SectionState]
    answers: dict[str, AnswerEntry]


class StartSessionResponse(SessionStateResponse):
    """Session state plus the questions to render."""
    duration_seconds: int
    questions: list[QuestionView]


class SubmissionResponse(BaseModel):
    """Result of a submission (or a persistence retry)."""
    persisted: bool
    attempt_id: Optional[str] = None
    result: AttemptResult


class SessionDraft(BaseModel):
    """Autosaved in-progress state, used only to survive reloads."""
    session_id: str
    test_id: str
    student_id: str
    started_at: datetime
    saved_at: datetime
    elapsed_seconds: float
    active_question_id: str
    answers: dict[str, AnswerEntry] = {}
    visited: list[str] = []
    marked: list[str] = []
    section_used_seconds: dict[str, float] = {}
    activity: ActivitySnapshot = Field(default_factory=ActivitySnapshot)
