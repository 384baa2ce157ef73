"""
Timer Module
Per-section countdown for a test session

tick() is the only function that decrements time. TimerController decides
whether a tick applies; TickScheduler turns elapsed wall-clock time into ticks.
"""

import threading
import time
from enum import Enum
from typing import Callable
import logging

from config.settings import TIMER_CONFIG, TimerConfig
from core.models import SessionState, TestDefinition

logger = logging.getLogger(__name__)


class TimerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"


def active_section_id(state: SessionState, test: TestDefinition) -> str:
    return test.sections[state.current_section_index].id


def tick(state: SessionState, test: TestDefinition) -> SessionState:
    """Return a copy of state with one second taken off the active section"""
    section_id = active_section_id(state, test)
    new_state = state.copy()
    new_state.remaining_seconds[section_id] = max(0, state.remaining_seconds[section_id] - 1)
    return new_state


def is_exhausted(state: SessionState, section_id: str) -> bool:
    return state.remaining_seconds[section_id] <= 0


def format_time(seconds: int) -> str:
    """Render seconds as HH:MM:SS"""
    seconds = max(0, int(seconds))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def is_warning(seconds: int, config: TimerConfig = None) -> bool:
    config = config or TIMER_CONFIG
    return seconds < config.warning_threshold_seconds


class TimerController:
    """
    Countdown state machine: IDLE -> RUNNING <-> PAUSED, RUNNING -> EXPIRED.

    The session itself lives with the caller; the controller reads it through
    read_state and hands every decremented copy to write_state, which persists
    it before on_expire can run.
    """

    def __init__(
        self,
        test: TestDefinition,
        read_state: Callable[[], SessionState],
        write_state: Callable[[SessionState], None],
        on_expire: Callable[[], None],
    ):
        self.test = test
        self.read_state = read_state
        self.write_state = write_state
        self.on_expire = on_expire
        self.status = TimerState.IDLE

    @property
    def active_section_id(self) -> str:
        return active_section_id(self.read_state(), self.test)

    @property
    def remaining(self) -> int:
        return self.read_state().remaining_seconds[self.active_section_id]

    def start(self) -> None:
        if self.status is TimerState.IDLE:
            self.status = TimerState.RUNNING

    def pause(self) -> None:
        if self.status is TimerState.RUNNING:
            self.status = TimerState.PAUSED

    def resume(self) -> None:
        if self.status is TimerState.PAUSED:
            self.status = TimerState.RUNNING

    def stop(self) -> None:
        self.status = TimerState.IDLE

    def tick(self) -> bool:
        """Apply one tick; returns False when not running"""
        if self.status is not TimerState.RUNNING:
            return False

        state = tick(self.read_state(), self.test)
        self.write_state(state)

        section_id = active_section_id(state, self.test)
        if is_exhausted(state, section_id):
            self.status = TimerState.EXPIRED
            logger.info(f"Section {section_id} of test {self.test.id} expired")
            self.on_expire()
        return True


# ===========================
# Scheduling
# ===========================

class MonotonicClock:
    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when told to"""

    def __init__(self, start: float = 0.0):
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


class TickScheduler:
    """
    Converts elapsed clock time into on_tick calls, one per interval.

    pump() is called by whatever drives the page (a rerun, a loop, a test);
    it fires one tick for every whole interval since the last one. Only one
    pump runs at a time, so a tick can never be delivered twice.
    """

    def __init__(self, on_tick: Callable[[], object], clock=None, interval: float = None):
        self.on_tick = on_tick
        self.clock = clock or MonotonicClock()
        self.interval = interval or TIMER_CONFIG.tick_seconds
        self._anchor = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._anchor is not None

    def start(self) -> None:
        if self._anchor is None:
            self._anchor = self.clock.now()

    def stop(self) -> None:
        self._anchor = None

    def restart(self) -> None:
        """Drop any partial interval and count from now"""
        if self._anchor is not None:
            self._anchor = self.clock.now()

    def pump(self) -> int:
        if not self._lock.acquire(blocking=False):
            return 0
        try:
            fired = 0
            while self._anchor is not None and self.clock.now() - self._anchor >= self.interval:
                self._anchor += self.interval
                fired += 1
                self.on_tick()
            return fired
        finally:
            self._lock.release()
