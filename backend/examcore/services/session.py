"""
Exam Session Engine - Test Session
Caller-owned aggregate tying registry, answers, palette, navigator, timer
and submission together for one attempt.
"""
import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from examcore.schemas.activity import QuestionStatus
from examcore.schemas.answer import AnswerEntry, answer_adapter
from examcore.schemas.attempt import AttemptResult, SubmissionReason
from examcore.schemas.exam import TestDefinition
from examcore.schemas.session import SessionDraft
from examcore.services.activity import ActivityLog
from examcore.services.answer_store import AnswerStore
from examcore.services.errors import InvalidAnswerShape, SectionExpired, SubmissionPersistenceFailure
from examcore.services.gate import SessionGate
from examcore.services.navigator import SectionNavigator
from examcore.services.palette import QuestionPalette
from examcore.services.registry import QuestionRegistry
from examcore.services.submission import AttemptGateway, SubmissionCoordinator
from examcore.services.timer import Clock, SessionTimer

logger = logging.getLogger(__name__)


class TestSession:
    """
    One timed attempt of one test by one student.

    Every mutating call reconciles the timer first, so an attempt that ran
    out of time while no tick was delivered is closed before the mutation is
    considered.
    """
    __test__ = False

    def __init__(
        self,
        definition: TestDefinition,
        student_id: str,
        session_id: Optional[str] = None,
        *,
        gateway: Optional[AttemptGateway] = None,
        clock: Clock = time.monotonic,
        auto_tick: bool = True,
        tick_interval: Optional[float] = None,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.student_id = student_id
        self.registry = QuestionRegistry(definition)
        self.gate = SessionGate(self.session_id)
        self.answers = AnswerStore(self.registry, self.gate)
        self.palette = QuestionPalette(self.registry, self.answers, self.gate)
        self.timer = SessionTimer(clock=clock, tick_interval=tick_interval, auto_tick=auto_tick)
        self.navigator = SectionNavigator(self.registry, self.palette, self.gate, is_locked=self._section_locked)
        self.activity = ActivityLog(self.timer.elapsed)
        self.coordinator = SubmissionCoordinator(self, gateway)
        self.started_at: Optional[datetime] = None
        self._pending: set[asyncio.Task] = set()

        allocations = {s.section_id: s.duration_seconds for s in self.registry.sections}
        if any(seconds is not None for seconds in allocations.values()):
            self.timer.track_sections(allocations)
            self.timer.on_section_expire(self._on_section_expire)
        self.timer.on_expire(self.force_submit)

    # --- Lifecycle ---

    def start(self, started_at: Optional[datetime] = None) -> None:
        """Start the countdown and land on the first question."""
        self.started_at = started_at or datetime.now(timezone.utc)
        self.timer.start(self.registry.duration_seconds)
        self._arrive(self.navigator.go_to(self.navigator.active_question()))
        logger.info(f"Session {self.session_id} started for test {self.registry.test_id}")

    def close(self) -> None:
        """Stop the countdown without submitting (navigating away)."""
        self.timer.cancel()
        self.activity.leave()

    @property
    def closed(self) -> bool:
        return self.gate.closed

    @property
    def test_id(self) -> str:
        return self.registry.test_id

    def sync(self) -> None:
        """Reconcile the countdown with the clock."""
        self.timer.tick()

    def remaining(self) -> int:
        return self.timer.remaining()

    def section_remaining(self, section_id: str) -> Optional[int]:
        return self.timer.section_remaining(section_id)

    # --- Navigation ---

    def go_to(self, question_id: str) -> str:
        self.sync()
        return self._arrive(self.navigator.go_to(question_id))

    def next_question(self) -> str:
        self.sync()
        return self._arrive(self.navigator.next_question())

    def previous_question(self) -> str:
        self.sync()
        return self._arrive(self.navigator.previous_question())

    def active_question(self) -> str:
        return self.navigator.active_question()

    def _arrive(self, question_id: str) -> str:
        self.activity.visit(question_id)
        self.timer.enter_section(self.registry.section_of(question_id).section_id)
        return question_id

    def _section_locked(self, section_id: str) -> bool:
        sections = self.timer.sections
        return sections is not None and sections.is_expired(section_id)

    def _on_section_expire(self, section_id: str) -> None:
        if self.gate.closed or self.navigator.current_section().section_id != section_id:
            return
        following = self.navigator.next_open_section()
        if following is None:
            logger.info(f"Last section {section_id} of session {self.session_id} ran out of time")
            self.force_submit()
            return
        logger.info(f"Session {self.session_id} moved from section {section_id} to {following.section_id}")
        self._arrive(self.navigator.enter_section(following.section_id))

    # --- Answers ---

    def _ensure_writable(self, question_id: str) -> None:
        self.gate.ensure_open()
        section_id = self.registry.section_of(question_id).section_id
        if self._section_locked(section_id):
            raise SectionExpired(section_id)

    def answer(self, question_id: str, value: Any) -> QuestionStatus:
        """Explicitly save an answer. Accepts an answer model or its dict form."""
        self.sync()
        self._ensure_writable(question_id)
        entry = self._coerce(question_id, value)
        status = self.palette.record_answer(question_id, entry)
        self.activity.answer(question_id)
        return status

    def clear_answer(self, question_id: str) -> QuestionStatus:
        self.sync()
        self._ensure_writable(question_id)
        status = self.palette.clear_answer(question_id)
        self.activity.clear(question_id)
        return status

    def toggle_mark(self, question_id: str) -> QuestionStatus:
        self.sync()
        self._ensure_writable(question_id)
        status = self.palette.toggle_mark(question_id)
        if self.palette.is_marked(question_id):
            self.activity.mark(question_id)
        else:
            self.activity.unmark(question_id)
        return status

    def _coerce(self, question_id: str, value: Any) -> AnswerEntry:
        if isinstance(value, BaseModel):
            return value
        try:
            return answer_adapter.validate_python(value)
        except ValidationError as e:
            question = self.registry.get(question_id)
            raise InvalidAnswerShape(question_id, question.question_type.value, str(value)) from e

    # --- Submission ---

    def force_submit(self) -> AttemptResult:
        """Close and score on expiry; persistence is scheduled in the background."""
        logger.info(f"Session {self.session_id} time is up, submitting")
        result = self.coordinator.finalize(SubmissionReason.EXPIRED)
        if self.coordinator.gateway is not None:
            task = asyncio.get_running_loop().create_task(self._persist_in_background())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return result

    async def _persist_in_background(self) -> None:
        try:
            await self.coordinator.persist()
        except SubmissionPersistenceFailure as e:
            logger.warning(f"{e}; waiting for an explicit retry")

    async def submit(self, reason: SubmissionReason = SubmissionReason.MANUAL) -> AttemptResult:
        self.sync()
        return await self.coordinator.submit(reason)

    async def wait_pending(self) -> None:
        """Wait for background persistence started by a forced submission."""
        if self._pending:
            await asyncio.gather(*self._pending)

    # --- Drafts ---

    def to_draft(self) -> SessionDraft:
        ordered = self.registry.ordered_ids
        sections = self.timer.sections
        return SessionDraft(
            session_id=self.session_id,
            test_id=self.test_id,
            student_id=self.student_id,
            started_at=self.started_at,
            saved_at=datetime.now(timezone.utc),
            elapsed_seconds=self.timer.elapsed(),
            active_question_id=self.active_question(),
            answers=dict(self.answers.snapshot()),
            visited=[q for q in ordered if self.palette.is_visited(q)],
            marked=[q for q in ordered if self.palette.is_marked(q)],
            section_used_seconds=sections.snapshot(self.timer.now()) if sections is not None else {},
            activity=self.activity.snapshot(),
        )

    @classmethod
    def from_draft(cls, definition: TestDefinition, draft: SessionDraft, **kwargs) -> "TestSession":
        """
        Rebuild a session from its last autosaved draft.

        The countdown continues from the saved elapsed time; a draft saved
        after the deadline is submitted immediately on the next reconcile.
        """
        if draft.test_id != definition.test_id:
            raise ValueError(f"Draft belongs to test {draft.test_id}, not {definition.test_id}")

        session = cls(definition, draft.student_id, draft.session_id, **kwargs)
        session.started_at = draft.started_at
        session.answers.restore(draft.answers)
        session.palette.restore(set(draft.visited), set(draft.marked))
        session.navigator.restore(draft.active_question_id)

        session.timer.start(definition.duration_seconds, elapsed_seconds=draft.elapsed_seconds)
        if session.timer.sections is not None:
            session.timer.sections.restore(draft.section_used_seconds)
        session.activity.restore(draft.activity, draft.active_question_id)
        current = session.navigator.current_section().section_id
        session.timer.enter_section(current)
        if session._section_locked(current):
            session._on_section_expire(current)
        logger.info(f"Session {session.session_id} resumed at {draft.elapsed_seconds:.0f}s elapsed")
        return session
