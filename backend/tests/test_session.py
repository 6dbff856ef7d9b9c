"""
Exam Session Engine - Test Session and Submission Tests
"""
import asyncio

import pytest

from examcore.schemas.activity import NavigationAction, QuestionStatus
from examcore.schemas.answer import SingleChoiceAnswer
from examcore.schemas.attempt import SubmissionReason
from examcore.services.errors import (
    AlreadySubmitted,
    AttemptPersistenceError,
    InvalidAnswerShape,
    SectionExpired,
    SessionClosed,
    SessionNotStarted,
    SubmissionPersistenceFailure,
)
from examcore.services.session import TestSession


class FlakyGateway:
    """Attempt gateway that fails a set number of times before storing."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = []
        self.stored = {}

    async def submit_attempt(self, result):
        self.calls.append(result)
        if self.failures:
            self.failures -= 1
            raise AttemptPersistenceError("connection reset")
        return self.stored.setdefault(result.session_id, f"attempt-{len(self.stored) + 1}")


def new_session(definition, clock, **kwargs) -> TestSession:
    session = TestSession(definition, "student-1", clock=clock, auto_tick=False, **kwargs)
    session.start()
    return session


class TestSessionFlow:
    def test_start_lands_on_first_question(self, physics_chemistry_test, clock):
        session = new_session(physics_chemistry_test, clock)

        assert session.active_question() == "p1"
        assert session.palette.derive_status("p1") == QuestionStatus.NOT_ANSWERED
        assert session.remaining() == 600

    def test_answer_accepts_dict_form(self, physics_chemistry_test, clock):
        session = new_session(physics_chemistry_test, clock)
        status = session.answer("p1", {"kind": "single", "option_index": 2})

        assert status == QuestionStatus.ANSWERED
        assert session.answers.get_answer("p1") == SingleChoiceAnswer(option_index=2)

    def test_malformed_answer(self, physics_chemistry_test, clock):
        session = new_session(physics_chemistry_test, clock)
        with pytest.raises(InvalidAnswerShape):
            session.answer("p1", {"kind": "single", "option_index": "two"})

    def test_time_spent_is_tracked_per_question(self, physics_chemistry_test, clock):
        session = new_session(physics_chemistry_test, clock)
        clock.advance(30)
        session.next_question()
        clock.advance(15)
        session.go_to("p1")
        clock.advance(5)

        assert session.activity.time_spent("p1") == 35
        assert session.activity.time_spent("p2") == 15
        assert session.activity.visits("p1") == 2
        actions = [e.action for e in session.activity.events]
        assert actions[:3] == [NavigationAction.VISIT, NavigationAction.LEAVE, NavigationAction.VISIT]

    def test_close_stops_timer_without_submitting(self, physics_chemistry_test, clock):
        session = new_session(physics_chemistry_test, clock)
        session.close()
        clock.advance(1000)
        session.sync()

        assert not session.closed
        assert session.coordinator.result is None


class TestSubmission:
    @pytest.mark.asyncio
    async def test_manual_submit_then_second_submit_fails(self, physics_chemistry_test, clock):
        session = new_session(physics_chemistry_test, clock)
        session.answer("p1", SingleChoiceAnswer(option_index=2))
        clock.advance(42)

        result = await session.submit()

        assert result.reason == SubmissionReason.MANUAL
        assert result.total_score == 4
        assert result.total_time_seconds == 42
        with pytest.raises(AlreadySubmitted):
            await session.submit()
        assert session.coordinator.result is result

    @pytest.mark.asyncio
    async def test_closed_session_rejects_mutation(self, physics_chemistry_test, clock):
        session = new_session(physics_chemistry_test, clock)
        await session.submit()

        with pytest.raises(SessionClosed):
            session.answer("p1", SingleChoiceAnswer(option_index=2))
        with pytest.raises(SessionClosed):
            session.toggle_mark("p1")
        with pytest.raises(SessionClosed):
            session.go_to("p2")
        assert len(session.answers) == 0

    def test_forced_submission_on_expiry(self, ten_question_test, clock):
        """3 of 10 answered when time runs out."""
        session = new_session(ten_question_test, clock)
        for qid in ("q1", "q2", "q3"):
            session.go_to(qid)
            session.answer(qid, SingleChoiceAnswer(option_index=0))

        clock.advance(300)
        session.sync()
        session.sync()

        result = session.coordinator.result
        assert session.closed
        assert result.reason == SubmissionReason.EXPIRED
        assert result.correct_count == 3
        assert result.unattempted_count == 7
        assert session.remaining() == 0
        with pytest.raises(AlreadySubmitted):
            session.coordinator.finalize(SubmissionReason.MANUAL)

    def test_late_mutation_closes_the_session_first(self, ten_question_test, clock):
        session = new_session(ten_question_test, clock)
        clock.advance(301)

        with pytest.raises(SessionClosed):
            session.answer("q1", SingleChoiceAnswer(option_index=0))
        assert session.coordinator.result.unattempted_count == 10

    @pytest.mark.asyncio
    async def test_manual_submit_after_unticked_deadline_loses_to_expiry(self, ten_question_test, clock):
        session = new_session(ten_question_test, clock)
        clock.advance(400)

        with pytest.raises(AlreadySubmitted):
            await session.submit()
        assert session.coordinator.result.reason == SubmissionReason.EXPIRED
        assert session.coordinator.result.total_time_seconds == 300

    @pytest.mark.asyncio
    async def test_submit_before_start(self, physics_chemistry_test, clock):
        session = TestSession(physics_chemistry_test, "student-1", clock=clock, auto_tick=False)

        with pytest.raises(SessionNotStarted):
            await session.submit()
        assert not session.closed
        assert session.coordinator.result is None

    @pytest.mark.asyncio
    async def test_expiry_persists_in_background(self, ten_question_test, clock):
        gateway = FlakyGateway()
        session = new_session(ten_question_test, clock, gateway=gateway)

        clock.advance(300)
        session.sync()
        await session.wait_pending()

        assert session.coordinator.attempt_id == "attempt-1"
        assert len(gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_result_for_retry(self, physics_chemistry_test, clock):
        gateway = FlakyGateway(failures=5)
        session = new_session(physics_chemistry_test, clock, gateway=gateway)
        session.coordinator.max_retries = 2
        session.coordinator.backoff_seconds = 0
        session.answer("p1", SingleChoiceAnswer(option_index=2))

        with pytest.raises(SubmissionPersistenceFailure) as exc_info:
            await session.submit()

        retained = exc_info.value.result
        assert retained.total_score == 4
        assert not session.coordinator.persisted

        gateway.failures = 0
        attempt_id = await session.coordinator.retry_persistence()

        assert attempt_id == "attempt-1"
        assert gateway.calls[-1] is retained
        assert {r.session_id for r in gateway.calls} == {session.session_id}

    @pytest.mark.asyncio
    async def test_concurrent_submits_score_once(self, physics_chemistry_test, clock):
        gateway = FlakyGateway()
        session = new_session(physics_chemistry_test, clock, gateway=gateway)

        outcomes = await asyncio.gather(session.submit(), session.submit(), return_exceptions=True)

        assert sum(isinstance(o, AlreadySubmitted) for o in outcomes) == 1
        assert len(gateway.calls) == 1


class TestSectionTimers:
    def test_section_expiry_moves_to_next_section(self, sectioned_test, clock):
        session = new_session(sectioned_test, clock)
        session.answer("a1", SingleChoiceAnswer(option_index=0))

        clock.advance(60)
        session.sync()

        assert not session.closed
        assert session.active_question() == "b1"
        assert session.answers.has_answer("a1")
        with pytest.raises(SectionExpired):
            session.go_to("a2")

    def test_last_section_expiry_submits(self, sectioned_test, clock):
        session = new_session(sectioned_test, clock)
        clock.advance(60)
        session.sync()
        clock.advance(120)
        session.sync()

        assert session.closed
        assert session.coordinator.result.reason == SubmissionReason.EXPIRED

    def test_expired_section_rejects_writes(self, sectioned_test, clock):
        session = new_session(sectioned_test, clock)
        session.answer("a1", SingleChoiceAnswer(option_index=0))

        clock.advance(60)
        session.sync()

        with pytest.raises(SectionExpired):
            session.answer("a1", SingleChoiceAnswer(option_index=1))
        with pytest.raises(SectionExpired):
            session.clear_answer("a1")
        with pytest.raises(SectionExpired):
            session.toggle_mark("a1")
        assert session.answers.get_answer("a1") == SingleChoiceAnswer(option_index=0)
        assert session.palette.derive_status("a1") == QuestionStatus.ANSWERED

        session.answer("b1", SingleChoiceAnswer(option_index=0))
        assert session.answers.has_answer("b1")


class TestDrafts:
    def test_draft_round_trip_restores_progress(self, physics_chemistry_test, clock):
        session = new_session(physics_chemistry_test, clock)
        session.answer("p1", SingleChoiceAnswer(option_index=2))
        session.go_to("c1")
        session.toggle_mark("c1")
        clock.advance(100)

        draft = session.to_draft()
        session.close()
        resumed = TestSession.from_draft(physics_chemistry_test, draft, clock=clock, auto_tick=False)

        assert resumed.session_id == session.session_id
        assert resumed.active_question() == "c1"
        assert resumed.remaining() == 500
        assert resumed.palette.derive_status("p1") == QuestionStatus.ANSWERED
        assert resumed.palette.derive_status("c1") == QuestionStatus.MARKED_FOR_REVIEW
        assert resumed.palette.derive_status("p3") == QuestionStatus.NOT_VISITED

    def test_draft_past_deadline_submits_on_resume(self, physics_chemistry_test, clock):
        session = new_session(physics_chemistry_test, clock)
        clock.advance(599)
        draft = session.to_draft()
        session.close()

        resumed = TestSession.from_draft(
            physics_chemistry_test,
            draft.model_copy(update={"elapsed_seconds": 650}),
            clock=clock,
            auto_tick=False,
        )
        resumed.sync()

        assert resumed.closed
        assert resumed.coordinator.result.total_time_seconds == 600
