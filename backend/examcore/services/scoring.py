"""
Exam Session Engine - Scoring
Pure functions: the same snapshot scored against the same registry always
yields the same result.
"""
from collections.abc import Mapping
from datetime import datetime
from typing import Optional

from examcore.schemas.activity import ActivitySnapshot
from examcore.schemas.answer import (
    AnswerEntry,
    MultipleChoiceAnswer,
    NumericAnswer,
    SingleChoiceAnswer,
)
from examcore.schemas.attempt import (
    AttemptResult,
    OutcomeStatus,
    QuestionOutcome,
    QuestionStateSummary,
    SubmissionReason,
)
from examcore.schemas.exam import Question, QuestionType
from examcore.services.registry import QuestionRegistry


def is_correct(question: Question, answer: AnswerEntry) -> bool:
    """Exact-set match for choice questions, tolerance match for numerical ones."""
    if isinstance(answer, SingleChoiceAnswer):
        return question.question_type == QuestionType.SINGLE and {answer.option_index} == question.correct_options
    if isinstance(answer, MultipleChoiceAnswer):
        return question.question_type == QuestionType.MULTIPLE and answer.option_indices == question.correct_options
    if isinstance(answer, NumericAnswer):
        return question.question_type == QuestionType.NUMERICAL and question.numerical_answer.accepts(answer.value)
    raise TypeError(f"Unsupported answer type {type(answer).__name__}")


def score_question(
    question: Question,
    answer: Optional[AnswerEntry],
    marks: Optional[float] = None,
    negative_marks: Optional[float] = None,
) -> tuple[OutcomeStatus, float]:
    """
    Score one question.

    ``marks`` and ``negative_marks`` default to the question's own values;
    negative marks are <= 0 and are added as-is.
    """
    if answer is None:
        return OutcomeStatus.UNATTEMPTED, 0.0
    marks = question.marks if marks is None else marks
    negative_marks = question.negative_marks if negative_marks is None else negative_marks
    if is_correct(question, answer):
        return OutcomeStatus.CORRECT, float(marks)
    return OutcomeStatus.INCORRECT, float(negative_marks)


def score_attempt(
    registry: QuestionRegistry,
    answers: Mapping[str, AnswerEntry],
    *,
    session_id: str,
    student_id: str,
    reason: SubmissionReason,
    started_at: datetime,
    submitted_at: datetime,
    total_time_seconds: float,
    activity: Optional[ActivitySnapshot] = None,
    question_states: Optional[QuestionStateSummary] = None,
    visited_count: int = 0,
) -> AttemptResult:
    """Score every question in registry order against an answer snapshot."""
    activity = activity or ActivitySnapshot()
    outcomes: list[QuestionOutcome] = []
    counts = {status: 0 for status in OutcomeStatus}
    total = 0.0

    for question in registry:
        qid = question.question_id
        answer = answers.get(qid)
        max_marks = registry.effective_marks(qid)
        status, awarded = score_question(
            question, answer, max_marks, registry.effective_negative_marks(qid)
        )
        counts[status] += 1
        total += awarded
        section = registry.section_of(qid)
        outcomes.append(
            QuestionOutcome(
                question_id=qid,
                section_id=section.section_id,
                question_type=question.question_type,
                subject=question.subject,
                topic=question.topic,
                answer=answer,
                status=status,
                marks_awarded=awarded,
                max_marks=max_marks,
                time_spent_seconds=activity.time_spent.get(qid, 0.0),
                visits=activity.visits.get(qid, 0),
                answered_at_seconds=activity.answered_at.get(qid) if answer is not None else None,
            )
        )

    max_score = registry.max_score()
    percentage = round(total / max_score * 100, 2) if max_score > 0 else 0.0

    return AttemptResult(
        session_id=session_id,
        test_id=registry.test_id,
        student_id=student_id,
        reason=reason,
        started_at=started_at,
        submitted_at=submitted_at,
        duration_seconds=registry.duration_seconds,
        total_time_seconds=total_time_seconds,
        outcomes=tuple(outcomes),
        total_score=total,
        max_score=max_score,
        percentage=percentage,
        correct_count=counts[OutcomeStatus.CORRECT],
        incorrect_count=counts[OutcomeStatus.INCORRECT],
        unattempted_count=counts[OutcomeStatus.UNATTEMPTED],
        visited_count=visited_count,
        question_states=question_states or QuestionStateSummary(),
        navigation_history=tuple(activity.events),
    )
