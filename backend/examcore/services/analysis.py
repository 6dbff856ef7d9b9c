"""
Exam Session Engine - Analysis Engine
Post-submission analytics derived from an AttemptResult and prior attempts.

Output depends only on the result and the timestamps captured during the
attempt, never on when the analysis runs.
"""
import logging
from collections.abc import Sequence
from typing import Optional

from examcore.core.config import settings
from examcore.schemas.analysis import (
    AccuracyTrendPoint,
    AnalysisReport,
    HistoricalComparison,
    PerformanceSummary,
    ProgressionMetrics,
    SpeedTrendSegment,
    SubjectMetric,
    SubjectProgression,
    TimeAnalytics,
    TimeDistribution,
)
from examcore.schemas.attempt import AttemptResult, HistoricalAttempt, QuestionOutcome
from examcore.services.errors import MissingSubjectMapping

logger = logging.getLogger(__name__)


def _ratio(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


class AnalysisEngine:
    """Stateless; one instance can analyse any number of attempts."""

    def __init__(self, segment_size: Optional[int] = None):
        self.segment_size = segment_size or settings.SPEED_TREND_SEGMENT_SIZE
        if self.segment_size < 1:
            raise ValueError("Segment size must be at least 1")

    def analyze(
        self,
        result: AttemptResult,
        history: Sequence[HistoricalAttempt] = (),
        attempt_number: Optional[int] = None,
    ) -> AnalysisReport:
        try:
            subject_wise = self.subject_wise(result)
        except MissingSubjectMapping as e:
            logger.error(f"Analysis of session {result.session_id} blocked: {e}")
            raise

        return AnalysisReport(
            session_id=result.session_id,
            test_id=result.test_id,
            performance=self.performance(result),
            subject_wise=subject_wise,
            progression_metrics=ProgressionMetrics(
                accuracy_trend=self.accuracy_trend(result),
                speed_trend=self.speed_trend(result),
                subject_progression=self.subject_progression(result),
            ),
            historical_comparison=self.historical_comparison(result, history, attempt_number),
            time_analytics=self.time_analytics(result),
        )

    @staticmethod
    def _require_subjects(result: AttemptResult) -> None:
        missing = [o.question_id for o in result.outcomes if not o.subject]
        if missing:
            raise MissingSubjectMapping(missing)

    def performance(self, result: AttemptResult) -> PerformanceSummary:
        return PerformanceSummary(
            total_questions=len(result.outcomes),
            correct=result.correct_count,
            incorrect=result.incorrect_count,
            unattempted=result.unattempted_count,
            score=result.total_score,
            max_score=result.max_score,
            percentage=result.percentage,
            accuracy=_ratio(result.correct_count, result.attempted_count),
        )

    def subject_wise(self, result: AttemptResult) -> dict[str, SubjectMetric]:
        """Per-subject counts; every question must carry a subject."""
        self._require_subjects(result)
        metrics: dict[str, SubjectMetric] = {}
        for outcome in result.outcomes:
            metric = metrics.setdefault(outcome.subject, SubjectMetric(subject=outcome.subject))
            metric.total += 1
            metric.time_spent_seconds += outcome.time_spent_seconds
            if outcome.is_attempted:
                metric.attempted += 1
                if outcome.is_correct:
                    metric.correct += 1
                else:
                    metric.incorrect += 1
        for metric in metrics.values():
            metric.accuracy = _ratio(metric.correct, metric.attempted)
        return metrics

    def accuracy_trend(self, result: AttemptResult) -> list[AccuracyTrendPoint]:
        """One point per answered question, in the order answers were recorded."""
        points = []
        correct = 0
        for sequence, outcome in enumerate(result.answer_order(), start=1):
            correct += outcome.is_correct
            points.append(
                AccuracyTrendPoint(
                    sequence=sequence,
                    question_id=outcome.question_id,
                    subject=outcome.subject,
                    cumulative_accuracy=_ratio(correct, sequence),
                    time_spent_seconds=outcome.time_spent_seconds,
                    is_correct=outcome.is_correct,
                )
            )
        return points

    def speed_trend(self, result: AttemptResult) -> list[SpeedTrendSegment]:
        """Average time per question over fixed-size chronological groups."""
        ordered = result.answer_order()
        segments = []
        for start in range(0, len(ordered), self.segment_size):
            chunk = ordered[start:start + self.segment_size]
            total = sum(o.time_spent_seconds for o in chunk)
            segments.append(
                SpeedTrendSegment(
                    segment=len(segments) + 1,
                    questions_attempted=len(chunk),
                    average_time_per_question=round(total / len(chunk), 2),
                    question_ids=[o.question_id for o in chunk],
                )
            )
        return segments

    def subject_progression(self, result: AttemptResult) -> dict[str, SubjectProgression]:
        """First-half against second-half accuracy of each subject's answers."""
        self._require_subjects(result)
        by_subject: dict[str, list[QuestionOutcome]] = {o.subject: [] for o in result.outcomes}
        for outcome in result.answer_order():
            by_subject[outcome.subject].append(outcome)

        progression = {}
        for subject, answered in by_subject.items():
            half = len(answered) // 2
            first, second = answered[:half], answered[half:]
            first_accuracy = _ratio(sum(o.is_correct for o in first), len(first))
            second_accuracy = _ratio(sum(o.is_correct for o in second), len(second))
            progression[subject] = SubjectProgression(
                subject=subject,
                first_half_accuracy=first_accuracy,
                second_half_accuracy=second_accuracy,
                first_half_count=len(first),
                second_half_count=len(second),
                change=round(second_accuracy - first_accuracy, 2),
            )
        return progression

    def historical_comparison(
        self,
        result: AttemptResult,
        history: Sequence[HistoricalAttempt],
        attempt_number: Optional[int] = None,
    ) -> HistoricalComparison:
        """Shape prior attempts of the same test; nothing is fetched here."""
        previous = [
            h for h in history
            if h.session_id != result.session_id
            and (attempt_number is None or h.attempt_number < attempt_number)
        ]
        previous.sort(key=lambda h: h.attempt_number)
        if not previous:
            return HistoricalComparison(previous_attempts=[])

        scores = [h.score for h in previous]
        return HistoricalComparison(
            previous_attempts=previous,
            best_score=max(scores),
            average_score=round(sum(scores) / len(scores), 2),
            score_change=round(result.total_score - previous[-1].score, 2),
        )

    def time_analytics(self, result: AttemptResult) -> TimeAnalytics:
        distribution = TimeDistribution()
        attempted = [o for o in result.outcomes if o.is_attempted]
        for outcome in attempted:
            spent = outcome.time_spent_seconds
            if spent < 30:
                distribution.under_30s.append(outcome.question_id)
            elif spent < 60:
                distribution.between_30s_and_60s.append(outcome.question_id)
            elif spent <= 120:
                distribution.between_1m_and_2m.append(outcome.question_id)
            else:
                distribution.over_2m.append(outcome.question_id)

        spent_total = sum(o.time_spent_seconds for o in attempted)
        return TimeAnalytics(
            total_time_seconds=result.total_time_seconds,
            average_time_per_question=round(spent_total / len(attempted), 2) if attempted else 0.0,
            distribution=distribution,
        )
