"""
Exam Session Engine - Engine Errors
"""
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from examcore.schemas.attempt import AttemptResult


class ExamEngineError(Exception):
    """Base error for the exam session engine."""
    pass


class InvalidTestDefinition(ExamEngineError, ValueError):
    """Test definition cannot be turned into a question registry."""
    pass


class QuestionNotFound(ExamEngineError):
    """Question id is not part of the registry."""

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"Question {question_id} not found in this test")


class SessionNotFound(ExamEngineError):
    """No live session with this id for this student."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class TestDefinitionNotFound(ExamEngineError):
    """Fetch-test collaborator has no test with this id."""
    __test__ = False

    def __init__(self, test_id: str):
        self.test_id = test_id
        super().__init__(f"Test {test_id} not found")


class AttemptNotFound(ExamEngineError):
    """No persisted attempt with this id for this student."""

    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Attempt {attempt_id} not found")


class InvalidAnswerShape(ExamEngineError):
    """Answer value does not match the question type."""

    def __init__(self, question_id: str, expected: str, received: str):
        self.question_id = question_id
        self.expected = expected
        self.received = received
        super().__init__(
            f"Question {question_id} expects a {expected} answer, got {received}"
        )


class SessionClosed(ExamEngineError):
    """Mutation attempted after the session was closed."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} is closed")


class InvalidTransition(ExamEngineError):
    """Palette event is not allowed from the question's current status."""

    def __init__(self, question_id: str, status: str, event: str):
        self.question_id = question_id
        self.status = status
        self.event = event
        super().__init__(f"Cannot {event} question {question_id} while it is {status}")


class AlreadySubmitted(ExamEngineError):
    """Second submission of a closed session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} has already been submitted")


class AttemptPersistenceError(ExamEngineError):
    """Raised by a persistence gateway when the attempt could not be stored."""
    pass


class SubmissionPersistenceFailure(ExamEngineError):
    """Scoring succeeded but persisting the result failed; the result is retained."""

    def __init__(self, session_id: str, result: "AttemptResult"):
        self.session_id = session_id
        self.result = result
        super().__init__(f"Attempt for session {session_id} was scored but could not be saved")


class MissingSubjectMapping(ExamEngineError):
    """One or more questions have no subject; subject-wise analysis is blocked."""

    def __init__(self, question_ids: Iterable[str]):
        self.question_ids = tuple(question_ids)
        super().__init__(
            f"Questions without a subject: {', '.join(self.question_ids)}"
        )


class SectionExpired(ExamEngineError):
    """Navigation into a section whose time allowance has run out."""

    def __init__(self, section_id: str):
        self.section_id = section_id
        super().__init__(f"Section {section_id} is closed: its time allowance has run out")


class NotSubmitted(ExamEngineError):
    """Persistence retry requested for a session that was never submitted."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} has not been submitted")


class SessionNotStarted(ExamEngineError):
    """Submission of a session whose countdown never started."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} has not been started")
