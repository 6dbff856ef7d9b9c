"""
Exam Session Engine - Analysis Schemas
Pydantic schemas for post-submission analytics
"""
from typing import Optional

from pydantic import BaseModel

from examcore.schemas.attempt import HistoricalAttempt


class SubjectMetric(BaseModel):
    """Per-subject aggregate for one attempt."""
    subject: str
    correct: int = 0
    incorrect: int = 0
    attempted: int = 0
    total: int = 0
    time_spent_seconds: float = 0.0
    accuracy: float = 0.0


class AccuracyTrendPoint(BaseModel):
    """Cumulative accuracy after one answered question."""
    sequence: int
    question_id: str
    subject: Optional[str] = None
    cumulative_accuracy: float
    time_spent_seconds: float
    is_correct: bool


class SpeedTrendSegment(BaseModel):
    """Average time per question over a chronological group of answers."""
    segment: int
    questions_attempted: int
    average_time_per_question: float
    question_ids: list[str]


class SubjectProgression(BaseModel):
    """First-half vs second-half accuracy within one subject."""
    subject: str
    first_half_accuracy: float
    second_half_accuracy: float
    first_half_count: int
    second_half_count: int
    change: float


class ProgressionMetrics(BaseModel):
    accuracy_trend: list[AccuracyTrendPoint]
    speed_trend: list[SpeedTrendSegment]
    subject_progression: dict[str, SubjectProgression]


class HistoricalComparison(BaseModel):
    """Prior attempts of the same test, shaped for comparison."""
    previous_attempts: list[HistoricalAttempt]
    best_score: Optional[float] = None
    average_score: Optional[float] = None
    score_change: Optional[float] = None


class TimeDistribution(BaseModel):
    """Attempted question ids bucketed by time spent."""
    under_30s: list[str] = []
    between_30s_and_60s: list[str] = []
    between_1m_and_2m: list[str] = []
    over_2m: list[str] = []


class TimeAnalytics(BaseModel):
    total_time_seconds: float
    average_time_per_question: float
    distribution: TimeDistribution


class PerformanceSummary(BaseModel):
    total_questions: int
    correct: int
    incorrect: int
    unattempted: int
    score: float
    max_score: float
    percentage: float
    accuracy: float


class AnalysisReport(BaseModel):
    """Everything derived from an attempt plus its history."""
    session_id: str
    test_id: str
    performance: PerformanceSummary
    subject_wise: dict[str, SubjectMetric]
    progression_metrics: ProgressionMetrics
    historical_comparison: HistoricalComparison
    time_analytics: TimeAnalytics
