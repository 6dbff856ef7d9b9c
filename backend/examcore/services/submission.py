"""
Exam Session Engine - Submission Coordinator
Exactly-once close and scoring of a session, followed by retried persistence.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Optional, Protocol

from examcore.core.config import settings
from examcore.schemas.attempt import AttemptResult, SubmissionReason
from examcore.services.errors import (
    AlreadySubmitted,
    AttemptPersistenceError,
    SessionNotStarted,
    SubmissionPersistenceFailure,
)
from examcore.services.scoring import score_attempt

if TYPE_CHECKING:
    from examcore.services.session import TestSession

logger = logging.getLogger(__name__)


class AttemptGateway(Protocol):
    """Stores a scored attempt; must be idempotent on ``result.session_id``."""

    async def submit_attempt(self, result: AttemptResult) -> str: ...


class SubmissionCoordinator:
    """
    Closes a session once and keeps the scored result.

    Scoring is pure and happens exactly once, inside ``finalize``. Persistence
    is the only fallible step: on failure the result stays here so
    ``retry_persistence`` can resend it with the same session id.
    """

    def __init__(
        self,
        session: "TestSession",
        gateway: Optional[AttemptGateway] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        self.session = session
        self.gateway = gateway
        self.max_retries = max_retries if max_retries is not None else settings.SUBMISSION_MAX_RETRIES
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.SUBMISSION_RETRY_BACKOFF_SECONDS
        )
        self._result: Optional[AttemptResult] = None
        self._attempt_id: Optional[str] = None
        self._lock = asyncio.Lock()
        self._persisted_callbacks: list[Callable[[AttemptResult, str], Awaitable[None]]] = []

    @property
    def result(self) -> Optional[AttemptResult]:
        return self._result

    @property
    def attempt_id(self) -> Optional[str]:
        return self._attempt_id

    @property
    def persisted(self) -> bool:
        return self._attempt_id is not None

    def on_persisted(self, callback: Callable[[AttemptResult, str], Awaitable[None]]) -> None:
        self._persisted_callbacks.append(callback)

    def finalize(self, reason: SubmissionReason) -> AttemptResult:
        """
        Close the session and score it. Synchronous, so nothing can
        interleave between the closed-flag check and the snapshot.
        """
        session = self.session
        if session.started_at is None:
            raise SessionNotStarted(session.session_id)
        if not session.gate.try_close():
            raise AlreadySubmitted(session.session_id)

        session.timer.cancel()
        session.activity.close()

        elapsed = min(session.timer.elapsed(), float(session.registry.duration_seconds))
        self._result = score_attempt(
            session.registry,
            session.answers.snapshot(),
            session_id=session.session_id,
            student_id=session.student_id,
            reason=reason,
            started_at=session.started_at,
            submitted_at=session.started_at + timedelta(seconds=elapsed),
            total_time_seconds=elapsed,
            activity=session.activity.snapshot(),
            question_states=session.palette.summary(),
            visited_count=session.palette.visited_count(),
        )
        logger.info(
            f"Session {session.session_id} submitted ({reason.value}): "
            f"score {self._result.total_score}/{self._result.max_score}"
        )
        return self._result

    async def submit(self, reason: SubmissionReason = SubmissionReason.MANUAL) -> AttemptResult:
        result = self.finalize(reason)
        await self.persist()
        return result

    async def persist(self) -> Optional[str]:
        """Send the retained result to the gateway, retrying with linear backoff."""
        if self._result is None:
            raise RuntimeError("Session has not been finalized")
        if self.gateway is None:
            return None

        async with self._lock:
            if self._attempt_id is not None:
                return self._attempt_id

            last_error: Optional[AttemptPersistenceError] = None
            for attempt in range(1, self.max_retries + 1):
                try:
                    self._attempt_id = await self.gateway.submit_attempt(self._result)
                    break
                except AttemptPersistenceError as e:
                    last_error = e
                    logger.warning(
                        f"Persisting session {self._result.session_id} failed "
                        f"(attempt {attempt}/{self.max_retries}): {e}"
                    )
                    if attempt < self.max_retries:
                        await asyncio.sleep(self.backoff_seconds * attempt)
            else:
                logger.error(f"Session {self._result.session_id} scored but not saved; result retained")
                raise SubmissionPersistenceFailure(self._result.session_id, self._result) from last_error

        for callback in list(self._persisted_callbacks):
            await callback(self._result, self._attempt_id)
        return self._attempt_id

    async def retry_persistence(self) -> Optional[str]:
        """Resend the retained result; never rescored."""
        return await self.persist()
