"""
Exam Session Engine - Session Manager
Holds the live TestSessions behind the HTTP layer.
"""
import logging
import time
from collections import OrderedDict
from typing import Optional

from examcore.core.config import settings
from examcore.schemas.attempt import AttemptResult
from examcore.services.attempts import AttemptRepository
from examcore.services.drafts import DraftStore
from examcore.services.errors import AlreadySubmitted, NotSubmitted, SessionNotFound
from examcore.services.session import TestSession
from examcore.services.timer import Clock

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Live sessions keyed by session id.

    A submitted session stays live until its attempt is stored, so a failed
    persistence can be retried. Once stored it is replaced by a
    (student_id, attempt_id) record that keeps answering AlreadySubmitted;
    only the most recent ``retain_submitted`` records are kept.
    """

    def __init__(
        self,
        repository: AttemptRepository,
        drafts: DraftStore,
        *,
        clock: Clock = time.monotonic,
        auto_tick: bool = True,
        tick_interval: Optional[float] = None,
        retain_submitted: Optional[int] = None,
    ):
        self.repository = repository
        self.drafts = drafts
        self._clock = clock
        self._auto_tick = auto_tick
        self._tick_interval = tick_interval
        self._sessions: dict[str, TestSession] = {}
        self._submitted: OrderedDict[str, tuple[str, str]] = OrderedDict()
        self.retain_submitted = (
            retain_submitted if retain_submitted is not None else settings.SUBMITTED_SESSIONS_RETAINED
        )

    def _session_options(self) -> dict:
        return {
            "gateway": self.repository,
            "clock": self._clock,
            "auto_tick": self._auto_tick,
            "tick_interval": self._tick_interval,
        }

    def _register(self, session: TestSession) -> TestSession:
        session.coordinator.on_persisted(self._retire)
        self._sessions[session.session_id] = session
        return session

    async def _retire(self, result: AttemptResult, attempt_id: str) -> None:
        """Drop the stored attempt's draft and live session."""
        await self.drafts.delete(result.session_id)
        self._sessions.pop(result.session_id, None)
        self._submitted[result.session_id] = (result.student_id, attempt_id)
        while len(self._submitted) > self.retain_submitted:
            self._submitted.popitem(last=False)

    async def start(self, student_id: str, test_id: str) -> TestSession:
        definition = await self.repository.fetch_test_definition(test_id)
        session = self._register(TestSession(definition, student_id, **self._session_options()))
        session.start()
        await self.autosave(session)
        return session

    def get(self, session_id: str, student_id: str) -> TestSession:
        session = self._sessions.get(session_id)
        if session is None or session.student_id != student_id:
            record = self._submitted.get(session_id)
            if record is not None and record[0] == student_id:
                raise AlreadySubmitted(session_id)
            raise SessionNotFound(session_id)
        session.sync()
        return session

    async def resume(self, session_id: str, student_id: str) -> TestSession:
        """Rebuild a session from its last successful autosave."""
        live = self._sessions.get(session_id)
        if live is not None and live.student_id == student_id:
            if live.timer.running or live.closed:
                return self.get(session_id, student_id)
            del self._sessions[session_id]

        draft = await self.drafts.load(session_id)
        if draft is None or draft.student_id != student_id:
            raise SessionNotFound(session_id)

        definition = await self.repository.fetch_test_definition(draft.test_id)
        session = self._register(TestSession.from_draft(definition, draft, **self._session_options()))
        session.sync()
        return session

    async def autosave(self, session: TestSession) -> None:
        if session.closed:
            return
        await self.drafts.save(session.to_draft())

    async def abandon(self, session_id: str, student_id: str) -> None:
        """Stop the countdown and forget the live session; the draft stays."""
        session = self.get(session_id, student_id)
        await self.autosave(session)
        session.close()
        del self._sessions[session_id]
        logger.info(f"Session {session_id} abandoned; resumable from its draft")

    async def submit(self, session_id: str, student_id: str) -> TestSession:
        session = self.get(session_id, student_id)
        await session.submit()
        return session

    async def retry_submission(self, session_id: str, student_id: str) -> TestSession:
        session = self.get(session_id, student_id)
        if session.coordinator.result is None:
            raise NotSubmitted(session_id)
        await session.coordinator.retry_persistence()
        return session

    async def shutdown(self) -> None:
        """Save drafts of open sessions and let background persistence finish."""
        for session in list(self._sessions.values()):
            if session.closed:
                await session.wait_pending()
            else:
                await self.autosave(session)
                session.close()
        self._sessions.clear()
        self._submitted.clear()
        await self.drafts.close()
