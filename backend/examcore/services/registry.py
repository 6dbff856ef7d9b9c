"""
Exam Session Engine - Question Registry
Read-only, per-attempt view over a test definition
"""
from collections.abc import Iterator

from examcore.schemas.exam import Question, QuestionView, Section, TestDefinition
from examcore.services.errors import InvalidTestDefinition, QuestionNotFound


class QuestionRegistry:
    """
    Ground truth for one attempt: questions, section order and marking.

    Questions are ordered by section, then by their position inside the
    section. Every question belongs to exactly one section.
    """

    def __init__(self, definition: TestDefinition):
        self.definition = definition
        self._questions: dict[str, Question] = {}
        for question in definition.questions:
            if question.question_id in self._questions:
                raise InvalidTestDefinition(f"Duplicate question id {question.question_id}")
            self._questions[question.question_id] = question

        section_ids: set[str] = set()
        self._section_of: dict[str, Section] = {}
        ordered: list[str] = []
        for section in definition.sections:
            if section.section_id in section_ids:
                raise InvalidTestDefinition(f"Duplicate section id {section.section_id}")
            section_ids.add(section.section_id)
            for question_id in section.question_ids:
                if question_id not in self._questions:
                    raise InvalidTestDefinition(
                        f"Section {section.section_id} references unknown question {question_id}"
                    )
                if question_id in self._section_of:
                    raise InvalidTestDefinition(f"Question {question_id} appears in more than one section")
                self._section_of[question_id] = section
                ordered.append(question_id)

        orphans = [q for q in self._questions if q not in self._section_of]
        if orphans:
            raise InvalidTestDefinition(f"Questions not assigned to a section: {', '.join(orphans)}")

        self._ordered: tuple[str, ...] = tuple(ordered)
        self._index = {question_id: i for i, question_id in enumerate(self._ordered)}

    @property
    def test_id(self) -> str:
        return self.definition.test_id

    @property
    def duration_seconds(self) -> int:
        return self.definition.duration_seconds

    @property
    def sections(self) -> tuple[Section, ...]:
        return self.definition.sections

    @property
    def ordered_ids(self) -> tuple[str, ...]:
        return self._ordered

    def get(self, question_id: str) -> Question:
        try:
            return self._questions[question_id]
        except KeyError:
            raise QuestionNotFound(question_id) from None

    def section_of(self, question_id: str) -> Section:
        self.get(question_id)
        return self._section_of[question_id]

    def section_index(self, section_id: str) -> int:
        for i, section in enumerate(self.sections):
            if section.section_id == section_id:
                return i
        raise KeyError(section_id)

    def index_of(self, question_id: str) -> int:
        self.get(question_id)
        return self._index[question_id]

    def effective_marks(self, question_id: str) -> float:
        scheme = self.definition.marking_scheme
        if scheme is not None and scheme.correct is not None:
            return scheme.correct
        return self.get(question_id).marks

    def effective_negative_marks(self, question_id: str) -> float:
        scheme = self.definition.marking_scheme
        if scheme is not None and scheme.incorrect is not None:
            return scheme.incorrect
        return self.get(question_id).negative_marks

    def max_score(self) -> float:
        return sum(self.effective_marks(q) for q in self._ordered)

    def views(self) -> list[QuestionView]:
        """Questions as they may be shown to the examinee."""
        return [
            QuestionView(
                question_id=question_id,
                section_id=self._section_of[question_id].section_id,
                question_type=self._questions[question_id].question_type,
                text=self._questions[question_id].text,
                options=list(self._questions[question_id].options),
                marks=self.effective_marks(question_id),
                negative_marks=self.effective_negative_marks(question_id),
                subject=self._questions[question_id].subject,
            )
            for question_id in self._ordered
        ]

    def __len__(self) -> int:
        return len(self._ordered)

    def __iter__(self) -> Iterator[Question]:
        return (self._questions[q] for q in self._ordered)

    def __contains__(self, question_id: object) -> bool:
        return question_id in self._questions
