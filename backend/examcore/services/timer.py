"""
Exam Session Engine - Session Timer
Countdown controller for a test session.

Remaining time is recomputed on every tick from the start timestamp and the
configured duration rather than decremented, so missed or late ticks (a
suspended process, a busy loop) never stretch the session.
"""
import asyncio
import logging
import math
import time
from collections.abc import Callable
from typing import Optional

from examcore.core.config import settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class SectionBudget:
    """
    Per-section time allowances.

    A section's allowance is consumed only while it is the active section.
    Sections without an allowance never expire.
    """

    def __init__(self, allocations: dict[str, Optional[int]]):
        self._allocations = dict(allocations)
        self._used: dict[str, float] = {section_id: 0.0 for section_id in allocations}
        self._expired: set[str] = set()
        self._active: Optional[str] = None
        self._entered_at: Optional[float] = None

    @property
    def active(self) -> Optional[str]:
        return self._active

    def is_expired(self, section_id: str) -> bool:
        return section_id in self._expired

    def enter(self, section_id: str, now: float) -> None:
        if section_id == self._active:
            return
        self.pause(now)
        self._active = section_id
        self._entered_at = now

    def pause(self, now: float) -> None:
        if self._active is not None and self._entered_at is not None:
            self._used[self._active] += max(0.0, now - self._entered_at)
        self._active = None
        self._entered_at = None

    def used(self, section_id: str, now: float) -> float:
        used = self._used.get(section_id, 0.0)
        if section_id == self._active and self._entered_at is not None:
            used += max(0.0, now - self._entered_at)
        return used

    def remaining(self, section_id: str, now: float) -> Optional[int]:
        allocation = self._allocations.get(section_id)
        if allocation is None:
            return None
        if section_id in self._expired:
            return 0
        return max(0, math.ceil(allocation - self.used(section_id, now)))

    def check_expired(self, now: float) -> Optional[str]:
        """Return the active section if its allowance just ran out."""
        section_id = self._active
        if section_id is None or section_id in self._expired:
            return None
        if self.remaining(section_id, now) == 0:
            self._expired.add(section_id)
            return section_id
        return None

    def snapshot(self, now: float) -> dict[str, float]:
        return {section_id: self.used(section_id, now) for section_id in self._allocations}

    def restore(self, used: dict[str, float]) -> None:
        for section_id, seconds in used.items():
            if section_id in self._used:
                self._used[section_id] = seconds
                allocation = self._allocations.get(section_id)
                if allocation is not None and seconds >= allocation:
                    self._expired.add(section_id)


class SessionTimer:
    """
    Countdown for one session.

    With ``auto_tick`` the timer schedules its own tick loop on the running
    event loop; otherwise the owner drives it by calling ``tick()``.
    """

    def __init__(
        self,
        clock: Clock = time.monotonic,
        tick_interval: float | None = None,
        auto_tick: bool = True,
    ):
        self._clock = clock
        self._interval = tick_interval if tick_interval is not None else settings.TIMER_TICK_SECONDS
        self._auto_tick = auto_tick

        self._duration = 0
        self._offset = 0.0
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._last_remaining: Optional[int] = None
        self._expired = False
        self._cancelled = False
        self._task: Optional[asyncio.Task] = None

        self._expire_callbacks: list[Callable[[], None]] = []
        self._section_callbacks: list[Callable[[str], None]] = []
        self.sections: Optional[SectionBudget] = None

    # --- Lifecycle ---

    def start(self, duration_seconds: int, elapsed_seconds: float = 0.0) -> None:
        """Start (or restart) the countdown. The only way to reset it."""
        if duration_seconds <= 0:
            raise ValueError("Duration must be positive")
        self._stop_task()
        self._duration = duration_seconds
        self._offset = max(0.0, elapsed_seconds)
        self._started_at = self._clock()
        self._stopped_at = None
        self._last_remaining = None
        self._expired = False
        self._cancelled = False
        if self._auto_tick:
            self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        """Stop ticking without expiring. Safe to call more than once."""
        if not self.running:
            return
        self._cancelled = True
        self._stopped_at = self._clock()
        if self.sections is not None:
            self.sections.pause(self._stopped_at)
        self._stop_task()

    @property
    def running(self) -> bool:
        return self._started_at is not None and not self._expired and not self._cancelled

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def duration_seconds(self) -> int:
        return self._duration

    # --- Readings ---

    def now(self) -> float:
        return self._clock()

    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return self._offset + max(0.0, end - self._started_at)

    def remaining(self) -> int:
        """Whole seconds left; never negative and never increasing."""
        if self._started_at is None:
            return self._duration
        if self._expired:
            return 0
        value = max(0, math.ceil(self._duration - self.elapsed()))
        if self._last_remaining is not None:
            value = min(value, self._last_remaining)
        self._last_remaining = value
        return value

    # --- Callbacks ---

    def on_expire(self, callback: Callable[[], None]) -> None:
        self._expire_callbacks.append(callback)

    def on_section_expire(self, callback: Callable[[str], None]) -> None:
        self._section_callbacks.append(callback)

    # --- Sections ---

    def track_sections(self, allocations: dict[str, Optional[int]]) -> None:
        self.sections = SectionBudget(allocations)

    def enter_section(self, section_id: str) -> None:
        if self.sections is not None and self.running:
            self.sections.enter(section_id, self._clock())

    def section_remaining(self, section_id: str) -> Optional[int]:
        if self.sections is None:
            return None
        return self.sections.remaining(section_id, self._clock())

    # --- Ticking ---

    def tick(self) -> None:
        """Reconcile against the clock and fire expiry callbacks."""
        if not self.running:
            return
        if self.remaining() == 0:
            self._expire()
            return
        if self.sections is not None:
            section_id = self.sections.check_expired(self._clock())
            if section_id is not None:
                logger.info(f"Section {section_id} time allowance exhausted")
                for callback in list(self._section_callbacks):
                    callback(section_id)

    def _expire(self) -> None:
        self._expired = True
        self._stopped_at = self._started_at + (self._duration - self._offset)
        self._last_remaining = 0
        if self.sections is not None:
            self.sections.pause(self._clock())
        self._stop_task()
        for callback in list(self._expire_callbacks):
            callback()

    def _stop_task(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self) -> None:
        while self.running:
            await asyncio.sleep(self._interval)
            self.tick()
