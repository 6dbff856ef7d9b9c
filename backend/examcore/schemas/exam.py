"""
Exam Session Engine - Test Definition Schemas
Immutable snapshot of questions, sections and marking scheme loaded for an attempt
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QuestionType(str, Enum):
    """Answer shape a question accepts."""
    SINGLE = "single"
    MULTIPLE = "multiple"
    NUMERICAL = "numerical"


class NumericalAnswerKey(BaseModel):
    """Exact value with an optional inclusive tolerance range."""
    model_config = ConfigDict(frozen=True)

    exact_value: float
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    unit: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self) -> "NumericalAnswerKey":
        if (self.min_value is None) != (self.max_value is None):
            raise ValueError("Tolerance range needs both min_value and max_value")
        if self.min_value is not None and self.min_value > self.max_value:
            raise ValueError("min_value must not exceed max_value")
        return self

    @property
    def has_range(self) -> bool:
        return self.min_value is not None

    def accepts(self, value: float) -> bool:
        if self.has_range:
            return self.min_value <= value <= self.max_value
        return value == self.exact_value


class Question(BaseModel):
    """A single question as served for one attempt."""
    model_config = ConfigDict(frozen=True)

    question_id: str = Field(..., min_length=1)
    question_type: QuestionType
    text: str = ""
    options: tuple[str, ...] = ()
    correct_options: frozenset[int] = frozenset()
    numerical_answer: Optional[NumericalAnswerKey] = None

    # Marking - negative marks are stored as values <= 0 and added directly
    marks: float = Field(default=1.0, ge=0)
    negative_marks: float = Field(default=0.0, le=0)

    # Classification used by analysis
    subject: Optional[str] = None
    topic: Optional[str] = None
    difficulty: Optional[str] = None

    @model_validator(mode="after")
    def _check_answer_key(self) -> "Question":
        if self.question_type == QuestionType.NUMERICAL:
            if self.numerical_answer is None:
                raise ValueError(f"Numerical question {self.question_id} needs a numerical_answer")
            return self

        if not self.options:
            raise ValueError(f"Question {self.question_id} needs options")
        if any(i < 0 or i >= len(self.options) for i in self.correct_options):
            raise ValueError(f"Question {self.question_id} has a correct option out of range")
        if self.question_type == QuestionType.SINGLE and len(self.correct_options) != 1:
            raise ValueError(f"Single choice question {self.question_id} needs exactly one correct option")
        if self.question_type == QuestionType.MULTIPLE and not self.correct_options:
            raise ValueError(f"Multiple choice question {self.question_id} needs at least one correct option")
        return self


class Section(BaseModel):
    """Ordered group of questions with an optional independent time allocation."""
    model_config = ConfigDict(frozen=True)

    section_id: str = Field(..., min_length=1)
    title: str = ""
    question_ids: tuple[str, ...] = Field(..., min_length=1)
    duration_seconds: Optional[int] = Field(default=None, gt=0)


class MarkingScheme(BaseModel):
    """Test-wide override of per-question marks."""
    model_config = ConfigDict(frozen=True)

    correct: Optional[float] = Field(default=None, ge=0)
    incorrect: Optional[float] = Field(default=None, le=0)


class TestDefinition(BaseModel):
    """Everything the fetch-test collaborator returns for a test id."""
    __test__ = False

    model_config = ConfigDict(frozen=True)

    test_id: str = Field(..., min_length=1)
    title: str = ""
    duration_seconds: int = Field(..., gt=0)
    sections: tuple[Section, ...] = Field(..., min_length=1)
    questions: tuple[Question, ...] = Field(..., min_length=1)
    marking_scheme: Optional[MarkingScheme] = None


class QuestionView(BaseModel):
    """Question as shown to the examinee (no answer key)."""
    question_id: str
    section_id: str
    question_type: QuestionType
    text: str
    options: list[str]
    marks: float
    negative_marks: float
    subject: Optional[str] = None
