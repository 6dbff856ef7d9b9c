"""
Exam Session Engine - API Dependencies
FastAPI dependencies for student identity, engine services and error mapping
"""
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from examcore.services.attempts import AttemptRepository
from examcore.services.errors import (
    AlreadySubmitted,
    AttemptNotFound,
    ExamEngineError,
    InvalidAnswerShape,
    InvalidTransition,
    MissingSubjectMapping,
    NotSubmitted,
    QuestionNotFound,
    SectionExpired,
    SessionClosed,
    SessionNotFound,
    SessionNotStarted,
    SubmissionPersistenceFailure,
    TestDefinitionNotFound,
)
from examcore.services.session_manager import SessionManager


async def get_student_id(
    x_student_id: Annotated[str, Header(min_length=1)],
) -> str:
    """
    Student identity, established upstream by the auth gateway.

    Raises:
        HTTPException: If the header is missing (422 via FastAPI validation)
    """
    return x_student_id


def get_session_manager(request: Request) -> SessionManager:
    """Live session registry created at startup."""
    return request.app.state.session_manager


def get_attempt_repository(request: Request) -> AttemptRepository:
    return request.app.state.session_manager.repository


_STATUS_BY_ERROR: list[tuple[tuple[type[ExamEngineError], ...], int]] = [
    (
        (SessionNotFound, QuestionNotFound, TestDefinitionNotFound, AttemptNotFound),
        status.HTTP_404_NOT_FOUND,
    ),
    (
        (
            AlreadySubmitted,
            SessionClosed,
            SessionNotStarted,
            InvalidTransition,
            SectionExpired,
            NotSubmitted,
        ),
        status.HTTP_409_CONFLICT,
    ),
    (
        (InvalidAnswerShape, MissingSubjectMapping),
        status.HTTP_422_UNPROCESSABLE_CONTENT,
    ),
]


def http_error(error: ExamEngineError) -> HTTPException:
    """Translate an engine error into the HTTP error the client sees."""
    if isinstance(error, SubmissionPersistenceFailure):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "message": str(error),
                "retryable": True,
                "result": error.result.model_dump(mode="json"),
            },
        )
    for error_types, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_types):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


# Type aliases for common dependencies
StudentId = Annotated[str, Depends(get_student_id)]
Manager = Annotated[SessionManager, Depends(get_session_manager)]
Repository = Annotated[AttemptRepository, Depends(get_attempt_repository)]
