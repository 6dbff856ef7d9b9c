"""
Exam Session Engine - Session API
Endpoints for taking a timed test: start, navigate, answer, mark, submit
"""
from fastapi import APIRouter, Response, status

from examcore.api.deps import Manager, StudentId, http_error
from examcore.schemas.session import (
    AnswerRequest,
    NavigateRequest,
    PaletteEntry,
    SectionState,
    SessionStateResponse,
    StartSessionRequest,
    StartSessionResponse,
    SubmissionResponse,
)
from examcore.services.errors import ExamEngineError
from examcore.services.session import TestSession

router = APIRouter(prefix="/sessions", tags=["Sessions"])


def _state(session: TestSession) -> dict:
    statuses = session.palette.statuses()
    registry = session.registry
    return {
        "session_id": session.session_id,
        "test_id": session.test_id,
        "closed": session.closed,
        "active_question_id": session.active_question(),
        "current_section_id": session.navigator.current_section().section_id,
        "remaining_seconds": session.remaining(),
        "palette": [
            PaletteEntry(
                question_id=question_id,
                section_id=registry.section_of(question_id).section_id,
                status=status_,
            )
            for question_id, status_ in statuses.items()
        ],
        "sections": [
            SectionState(
                section_id=section.section_id,
                title=section.title,
                question_ids=list(section.question_ids),
                remaining_seconds=session.section_remaining(section.section_id),
            )
            for section in registry.sections
        ],
        "answers": dict(session.answers.snapshot()),
    }


def _submission(session: TestSession) -> SubmissionResponse:
    coordinator = session.coordinator
    return SubmissionResponse(
        persisted=coordinator.persisted,
        attempt_id=coordinator.attempt_id,
        result=coordinator.result,
    )


@router.post(
    "",
    response_model=StartSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a timed test",
)
async def start_session(
    request: StartSessionRequest,
    student_id: StudentId,
    manager: Manager,
) -> StartSessionResponse:
    """Load the test definition, start the countdown and land on the first question."""
    try:
        session = await manager.start(student_id, request.test_id)
    except ExamEngineError as e:
        raise http_error(e)
    return StartSessionResponse(
        **_state(session),
        duration_seconds=session.registry.duration_seconds,
        questions=session.registry.views(),
    )


@router.get("/{session_id}", response_model=SessionStateResponse)
async def get_session(
    session_id: str,
    student_id: StudentId,
    manager: Manager,
) -> SessionStateResponse:
    """Palette, active question and remaining time."""
    try:
        session = manager.get(session_id, student_id)
    except ExamEngineError as e:
        raise http_error(e)
    return SessionStateResponse(**_state(session))


@router.post("/{session_id}/navigate", response_model=SessionStateResponse)
async def navigate(
    session_id: str,
    request: NavigateRequest,
    student_id: StudentId,
    manager: Manager,
) -> SessionStateResponse:
    """Jump to a question or step to the next/previous one. Does not save answers."""
    try:
        session = manager.get(session_id, student_id)
        if request.question_id is not None:
            session.go_to(request.question_id)
        elif request.direction == "next":
            session.next_question()
        else:
            session.previous_question()
        await manager.autosave(session)
    except ExamEngineError as e:
        raise http_error(e)
    return SessionStateResponse(**_state(session))


@router.put("/{session_id}/answers/{question_id}", response_model=SessionStateResponse)
async def save_answer(
    session_id: str,
    question_id: str,
    request: AnswerRequest,
    student_id: StudentId,
    manager: Manager,
) -> SessionStateResponse:
    try:
        session = manager.get(session_id, student_id)
        session.answer(question_id, request.answer)
        await manager.autosave(session)
    except ExamEngineError as e:
        raise http_error(e)
    return SessionStateResponse(**_state(session))


@router.delete("/{session_id}/answers/{question_id}", response_model=SessionStateResponse)
async def clear_answer(
    session_id: str,
    question_id: str,
    student_id: StudentId,
    manager: Manager,
) -> SessionStateResponse:
    try:
        session = manager.get(session_id, student_id)
        session.clear_answer(question_id)
        await manager.autosave(session)
    except ExamEngineError as e:
        raise http_error(e)
    return SessionStateResponse(**_state(session))


@router.post("/{session_id}/questions/{question_id}/mark", response_model=SessionStateResponse)
async def toggle_mark(
    session_id: str,
    question_id: str,
    student_id: StudentId,
    manager: Manager,
) -> SessionStateResponse:
    """Flip the review mark of a visited question."""
    try:
        session = manager.get(session_id, student_id)
        session.toggle_mark(question_id)
        await manager.autosave(session)
    except ExamEngineError as e:
        raise http_error(e)
    return SessionStateResponse(**_state(session))


@router.post("/{session_id}/submit", response_model=SubmissionResponse)
async def submit_session(
    session_id: str,
    student_id: StudentId,
    manager: Manager,
) -> SubmissionResponse:
    """
    Close the session, score it and store the attempt.

    A 503 carries the scored result; call /submit/retry to store it later.
    """
    try:
        session = await manager.submit(session_id, student_id)
    except ExamEngineError as e:
        raise http_error(e)
    return _submission(session)


@router.post("/{session_id}/submit/retry", response_model=SubmissionResponse)
async def retry_submission(
    session_id: str,
    student_id: StudentId,
    manager: Manager,
) -> SubmissionResponse:
    """Store a result whose first persistence failed. Never rescored."""
    try:
        session = await manager.retry_submission(session_id, student_id)
    except ExamEngineError as e:
        raise http_error(e)
    return _submission(session)


@router.post("/{session_id}/resume", response_model=SessionStateResponse)
async def resume_session(
    session_id: str,
    student_id: StudentId,
    manager: Manager,
) -> SessionStateResponse:
    """Rebuild a session from its last autosaved draft."""
    try:
        session = await manager.resume(session_id, student_id)
    except ExamEngineError as e:
        raise http_error(e)
    return SessionStateResponse(**_state(session))


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def abandon_session(
    session_id: str,
    student_id: StudentId,
    manager: Manager,
) -> Response:
    """Leave the test without submitting; it can be resumed from its draft."""
    try:
        await manager.abandon(session_id, student_id)
    except ExamEngineError as e:
        raise http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
