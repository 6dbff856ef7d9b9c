"""
Exam Session Engine - Attempts API
Endpoints for attempt history and post-submission analysis
"""
from typing import List

from fastapi import APIRouter, Query

from examcore.api.deps import Repository, StudentId, http_error
from examcore.schemas.analysis import AnalysisReport
from examcore.schemas.attempt import HistoricalAttempt
from examcore.services.analysis import AnalysisEngine
from examcore.services.attempts import to_result
from examcore.services.errors import ExamEngineError

router = APIRouter(prefix="/attempts", tags=["Attempts"])


@router.get("/history", response_model=List[HistoricalAttempt])
async def get_history(
    student_id: StudentId,
    repository: Repository,
    test_id: str = Query(..., min_length=1),
) -> List[HistoricalAttempt]:
    """Previous attempts of a test by the current student, oldest first."""
    return await repository.fetch_history(student_id, test_id)


@router.get("/{attempt_id}/analysis", response_model=AnalysisReport)
async def get_analysis(
    attempt_id: str,
    student_id: StudentId,
    repository: Repository,
) -> AnalysisReport:
    """
    Subject-wise breakdown, progression trends, time analytics and
    comparison with the student's earlier attempts of the same test.
    """
    try:
        record = await repository.get_attempt(attempt_id, student_id)
        history = await repository.fetch_history(student_id, record.test_id)
        return AnalysisEngine().analyze(to_result(record), history, record.attempt_number)
    except ExamEngineError as e:
        raise http_error(e)
