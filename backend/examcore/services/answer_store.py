"""
Exam Session Engine - Answer Store
Mutable map from question id to the examinee's current answer.
"""
from collections.abc import Mapping
from types import MappingProxyType
from typing import Optional

from examcore.schemas.answer import (
    AnswerEntry,
    MultipleChoiceAnswer,
    NumericAnswer,
    SingleChoiceAnswer,
)
from examcore.schemas.exam import QuestionType
from examcore.services.errors import InvalidAnswerShape
from examcore.services.gate import SessionGate
from examcore.services.registry import QuestionRegistry

# Answer variant each question type accepts
ANSWER_KIND_BY_TYPE = {
    QuestionType.SINGLE: SingleChoiceAnswer,
    QuestionType.MULTIPLE: MultipleChoiceAnswer,
    QuestionType.NUMERICAL: NumericAnswer,
}


class AnswerStore:
    """
    Source of truth for scoring. Only mutated through ``set_answer`` and
    ``clear_answer``; everything else reads snapshots.
    """

    def __init__(self, registry: QuestionRegistry, gate: SessionGate):
        self.registry = registry
        self.gate = gate
        self._answers: dict[str, AnswerEntry] = {}

    def validate(self, question_id: str, value: AnswerEntry) -> None:
        """Raise InvalidAnswerShape unless ``value`` fits the question."""
        question = self.registry.get(question_id)
        expected = ANSWER_KIND_BY_TYPE[question.question_type]
        if not isinstance(value, expected):
            received = getattr(value, "kind", type(value).__name__)
            raise InvalidAnswerShape(question_id, question.question_type.value, str(received))

        if isinstance(value, SingleChoiceAnswer):
            indices = {value.option_index}
        elif isinstance(value, MultipleChoiceAnswer):
            indices = set(value.option_indices)
        else:
            return

        out_of_range = sorted(i for i in indices if i >= len(question.options))
        if out_of_range:
            raise InvalidAnswerShape(
                question_id,
                f"option index below {len(question.options)}",
                f"index {out_of_range[0]}",
            )

    def set_answer(self, question_id: str, value: AnswerEntry) -> None:
        self.gate.ensure_open()
        self.validate(question_id, value)
        self._answers[question_id] = value

    def clear_answer(self, question_id: str) -> None:
        self.gate.ensure_open()
        self.registry.get(question_id)
        self._answers.pop(question_id, None)

    def get_answer(self, question_id: str) -> Optional[AnswerEntry]:
        self.registry.get(question_id)
        return self._answers.get(question_id)

    def has_answer(self, question_id: str) -> bool:
        return question_id in self._answers

    def snapshot(self) -> Mapping[str, AnswerEntry]:
        """Read-only copy; later store mutations never show through it."""
        return MappingProxyType(dict(self._answers))

    def restore(self, answers: Mapping[str, AnswerEntry]) -> None:
        """Rehydrate from a draft. Every entry is validated again."""
        self.gate.ensure_open()
        for question_id, value in answers.items():
            self.validate(question_id, value)
        self._answers = dict(answers)

    def __len__(self) -> int:
        return len(self._answers)
