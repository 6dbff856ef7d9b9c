"""
Exam Session Engine - Palette & Activity Schemas
"""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class QuestionStatus(str, Enum):
    """Display status of a question in the palette."""
    NOT_VISITED = "not-visited"
    NOT_ANSWERED = "not-answered"
    ANSWERED = "answered"
    MARKED_FOR_REVIEW = "marked-for-review"
    ANSWERED_AND_MARKED = "answered-and-marked"


class NavigationAction(str, Enum):
    """Kinds of events recorded in the navigation history."""
    VISIT = "visit"
    LEAVE = "leave"
    ANSWER = "answer"
    CLEAR = "clear"
    MARK = "mark"
    UNMARK = "unmark"


class ActivityEvent(BaseModel):
    """One navigation event, timestamped as an offset from session start."""
    model_config = ConfigDict(frozen=True)

    action: NavigationAction
    question_id: str
    at_seconds: float = Field(..., ge=0)


class ActivitySnapshot(BaseModel):
    """Serializable state of the activity log (used by drafts)."""
    events: list[ActivityEvent] = []
    time_spent: dict[str, float] = {}
    visits: dict[str, int] = {}
    answered_at: dict[str, float] = {}
