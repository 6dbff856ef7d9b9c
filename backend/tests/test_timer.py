"""
Exam Session Engine - Session Timer Tests
"""
import asyncio

import pytest

from examcore.services.timer import SessionTimer


@pytest.fixture
def timer(clock) -> SessionTimer:
    return SessionTimer(clock=clock, auto_tick=False)


class TestCountdown:
    def test_remaining_counts_down_in_whole_seconds(self, timer, clock):
        timer.start(60)
        assert timer.remaining() == 60

        clock.advance(0.4)
        assert timer.remaining() == 60

        clock.advance(10)
        assert timer.remaining() == 50

    def test_remaining_never_increases(self, timer, clock):
        timer.start(60)
        clock.advance(30)
        assert timer.remaining() == 30

        clock.now -= 10  # clock stepped backwards
        assert timer.remaining() == 30

    def test_missed_ticks_do_not_stretch_the_session(self, timer, clock):
        """A long gap between ticks is reconciled against the start time."""
        expired = []
        timer.on_expire(lambda: expired.append(True))
        timer.start(60)

        clock.advance(500)
        timer.tick()

        assert expired == [True]
        assert timer.remaining() == 0
        assert timer.elapsed() == 60

    def test_expiry_fires_once(self, timer, clock):
        calls = []
        timer.on_expire(lambda: calls.append(timer.remaining()))
        timer.start(10)

        clock.advance(10)
        timer.tick()
        timer.tick()
        clock.advance(5)
        timer.tick()

        assert calls == [0]
        assert timer.expired

    def test_cancel_prevents_expiry(self, timer, clock):
        calls = []
        timer.on_expire(lambda: calls.append(True))
        timer.start(10)
        clock.advance(3)

        timer.cancel()
        timer.cancel()
        clock.advance(20)
        timer.tick()

        assert calls == []
        assert timer.elapsed() == 3
        assert not timer.running

    def test_resume_from_elapsed(self, timer, clock):
        timer.start(100, elapsed_seconds=40)
        assert timer.remaining() == 60
        clock.advance(5)
        assert timer.elapsed() == 45

    def test_invalid_duration(self, timer):
        with pytest.raises(ValueError):
            timer.start(0)


class TestSectionBudgets:
    def test_section_allowance_only_spent_while_active(self, timer, clock):
        timer.track_sections({"s1": 60, "s2": 120})
        timer.start(600)

        timer.enter_section("s1")
        clock.advance(20)
        timer.enter_section("s2")
        clock.advance(50)

        assert timer.section_remaining("s1") == 40
        assert timer.section_remaining("s2") == 70

    def test_section_expiry_callback(self, timer, clock):
        expired_sections = []
        timer.on_section_expire(expired_sections.append)
        timer.track_sections({"s1": 60, "s2": None})
        timer.start(600)
        timer.enter_section("s1")

        clock.advance(61)
        timer.tick()
        timer.tick()

        assert expired_sections == ["s1"]
        assert timer.running
        assert timer.section_remaining("s2") is None


class TestAutoTick:
    @pytest.mark.asyncio
    async def test_tick_loop_expires_session(self, clock):
        expired = asyncio.Event()
        timer = SessionTimer(clock=clock, tick_interval=0.01)
        timer.on_expire(expired.set)
        timer.start(30)

        clock.advance(31)
        await asyncio.wait_for(expired.wait(), timeout=1)

        assert timer.remaining() == 0
        assert not timer.running

    @pytest.mark.asyncio
    async def test_cancel_stops_tick_loop(self, clock):
        timer = SessionTimer(clock=clock, tick_interval=0.01)
        timer.on_expire(lambda: pytest.fail("expired after cancel"))
        timer.start(30)

        timer.cancel()
        clock.advance(60)
        await asyncio.sleep(0.05)

        assert not timer.expired
