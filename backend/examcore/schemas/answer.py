"""
Exam Session Engine - Answer Schemas
Tagged answer variants stored by the answer store
"""
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class SingleChoiceAnswer(BaseModel):
    """One selected option index."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["single"] = "single"
    option_index: int = Field(..., ge=0)


class MultipleChoiceAnswer(BaseModel):
    """A non-empty set of selected option indices."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["multiple"] = "multiple"
    option_indices: frozenset[int] = Field(..., min_length=1)

    @field_validator("option_indices")
    @classmethod
    def _non_negative(cls, value: frozenset[int]) -> frozenset[int]:
        if any(i < 0 for i in value):
            raise ValueError("Option indices must be non-negative")
        return value


class NumericAnswer(BaseModel):
    """A numeric value for numerical questions."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["numeric"] = "numeric"
    value: float = Field(..., allow_inf_nan=False)


AnswerEntry = Annotated[
    Union[SingleChoiceAnswer, MultipleChoiceAnswer, NumericAnswer],
    Field(discriminator="kind"),
]

answer_adapter: TypeAdapter[AnswerEntry] = TypeAdapter(AnswerEntry)
