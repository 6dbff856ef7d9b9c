"""Exam Session Engine - Services initialization."""
from examcore.services.analysis import AnalysisEngine
from examcore.services.attempts import AttemptRepository
from examcore.services.drafts import DraftStore
from examcore.services.errors import (
    AlreadySubmitted,
    AttemptNotFound,
    AttemptPersistenceError,
    ExamEngineError,
    InvalidAnswerShape,
    InvalidTestDefinition,
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
from examcore.services.registry import QuestionRegistry
from examcore.services.scoring import score_attempt, score_question
from examcore.services.session import TestSession
from examcore.services.session_manager import SessionManager
from examcore.services.submission import SubmissionCoordinator
from examcore.services.timer import SessionTimer

__all__ = [
    # Engine
    "QuestionRegistry",
    "TestSession",
    "SessionTimer",
    "SubmissionCoordinator",
    "score_question",
    "score_attempt",
    "AnalysisEngine",
    # Persistence
    "AttemptRepository",
    "DraftStore",
    "SessionManager",
    # Errors
    "ExamEngineError",
    "InvalidTestDefinition",
    "QuestionNotFound",
    "SessionNotFound",
    "TestDefinitionNotFound",
    "AttemptNotFound",
    "InvalidAnswerShape",
    "SessionClosed",
    "SessionNotStarted",
    "InvalidTransition",
    "SectionExpired",
    "AlreadySubmitted",
    "NotSubmitted",
    "AttemptPersistenceError",
    "SubmissionPersistenceFailure",
    "MissingSubjectMapping",
]
