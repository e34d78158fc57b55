"""
session_timer.py — The Workout Player
Countdown state machine that walks a workout through exercise, rest and
completion, plus the tick sources that drive it.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from gym_logic import Exercise, Workout


class Phase(str, Enum):
    EXERCISING = "exercising"
    RESTING = "resting"
    COMPLETE = "complete"


@dataclass(frozen=True)
class SessionState:
    current_index: int
    phase: Phase
    time_remaining_seconds: int
    is_running: bool
    exited: bool = False


def format_time(seconds: int) -> str:
    mins, secs = divmod(max(0, int(seconds)), 60)
    return f"{mins}:{secs:02d}"


class WorkoutSession:
    """
    Drives one workout through its countdown.

    Every transition runs under a single lock, so ticks arriving from a
    timer thread never interleave with user events. A natural countdown
    end keeps the session running into rest and the next exercise; manual
    skip, previous and repeat pause it. ``on_complete`` fires once, when the
    session reaches ``Phase.COMPLETE``; exiting never fires it.
    """

    def __init__(
        self,
        workout: Workout,
        on_complete: Optional[Callable[[Workout], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not workout.exercises:
            raise ValueError("Cannot start a session without exercises")
        self.workout = workout
        self.on_complete = on_complete
        self._clock = clock
        self._lock = threading.RLock()

        self._index = 0
        self._phase = Phase.EXERCISING
        self._remaining = workout.exercises[0].duration_seconds
        self._running = False
        self._exited = False
        self._anchor: Optional[float] = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def state(self) -> SessionState:
        with self._lock:
            return SessionState(self._index, self._phase, self._remaining,
                                self._running, self._exited)

    @property
    def exercises(self) -> tuple[Exercise, ...]:
        return self.workout.exercises

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def time_remaining(self) -> int:
        return self._remaining

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_complete(self) -> bool:
        return self._phase is Phase.COMPLETE

    @property
    def exited(self) -> bool:
        return self._exited

    @property
    def is_active(self) -> bool:
        return not (self.is_complete or self._exited)

    @property
    def current_exercise(self) -> Exercise:
        return self.exercises[self._index]

    @property
    def next_exercise(self) -> Optional[Exercise]:
        if self._index + 1 < len(self.exercises):
            return self.exercises[self._index + 1]
        return None

    @property
    def is_last(self) -> bool:
        return self._index == len(self.exercises) - 1

    @property
    def can_skip(self) -> bool:
        return self.is_active and not self.is_last

    @property
    def can_go_back(self) -> bool:
        return self.is_active and self._index > 0

    @property
    def progress(self) -> float:
        if self.is_complete:
            return 1.0
        return (self._index + 1) / len(self.exercises)

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """Apply one elapsed second. Ignored while paused, complete or exited."""
        with self._lock:
            if not (self._running and self.is_active):
                return
            completed = self._tick()
        if completed:
            self._notify_complete()

    def sync(self) -> int:
        """
        Catch up with the clock: apply one tick per whole second elapsed
        since the session last started or synced. Returns ticks applied.
        """
        with self._lock:
            applied, completed = self._catch_up()
        if completed:
            self._notify_complete()
        return applied

    def _catch_up(self) -> tuple[int, bool]:
        if not (self._running and self.is_active) or self._anchor is None:
            return 0, False
        applied, completed = 0, False
        for _ in range(int(self._clock() - self._anchor)):
            completed = self._tick()
            applied += 1
            if not (self._running and self.is_active):
                break
        if self._anchor is not None:
            self._anchor += applied
        return applied, completed

    def _tick(self) -> bool:
        self._remaining = max(0, self._remaining - 1)
        if self._remaining > 0:
            return False

        if self._phase is Phase.EXERCISING:
            rest = self.current_exercise.rest_after_seconds
            if rest > 0:
                self._phase = Phase.RESTING
                self._remaining = rest
                return False
        return self._advance(keep_running=True)

    def _advance(self, keep_running: bool) -> bool:
        """Move to the next exercise; returns True when this completed the session."""
        if self.is_last:
            self._complete()
            return True
        self._index += 1
        self._phase = Phase.EXERCISING
        self._remaining = self.current_exercise.duration_seconds
        self._running = self._running and keep_running
        return False

    def _complete(self) -> None:
        self._phase = Phase.COMPLETE
        self._remaining = 0
        self._running = False
        self._anchor = None
        logger.info(f"Workout {self.workout.id} complete")

    def _notify_complete(self) -> None:
        if self.on_complete is not None:
            self.on_complete(self.workout)

    # ------------------------------------------------------------------
    # User events
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._lock:
            self._start()

    def pause(self) -> None:
        with self._lock:
            completed = self._pause()
        if completed:
            self._notify_complete()

    def toggle(self) -> None:
        with self._lock:
            if self._running:
                completed = self._pause()
            else:
                self._start()
                completed = False
        if completed:
            self._notify_complete()

    def _start(self) -> None:
        if not self.is_active or self._running:
            return
        self._running = True
        self._anchor = self._clock()

    def _pause(self) -> bool:
        """Stop the countdown after catching up; True if catching up completed it."""
        if not self._running:
            return False
        _, completed = self._catch_up()
        self._running = False
        self._anchor = None
        return completed

    def skip(self) -> None:
        """Jump to the next exercise (ends a rest early). No-op on the last one."""
        with self._lock:
            if not self.can_skip:
                return
            self._running = False
            self._anchor = None
            self._advance(keep_running=False)

    def finish(self) -> None:
        """Complete the session manually from the last exercise."""
        with self._lock:
            if not (self.is_active and self.is_last):
                return
            self._complete()
        self._notify_complete()

    def previous(self) -> None:
        with self._lock:
            if not self.can_go_back:
                return
            self._index -= 1
            self._reset_current()

    def repeat(self) -> None:
        with self._lock:
            if not self.is_active:
                return
            self._reset_current()

    def _reset_current(self) -> None:
        self._phase = Phase.EXERCISING
        self._remaining = self.current_exercise.duration_seconds
        self._running = False
        self._anchor = None

    def exit(self) -> None:
        with self._lock:
            if self._exited:
                return
            self._exited = True
            self._running = False
            self._anchor = None
        logger.info(f"Workout {self.workout.id} exited at exercise {self._index + 1}")


class SessionTicker(threading.Thread):
    """Background thread ticking a session once per interval until it ends."""

    def __init__(self, session: WorkoutSession, interval: float = 1.0) -> None:
        super().__init__(daemon=True)
        self.session = session
        self.interval = interval
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.wait(self.interval):
            if not self.session.is_active:
                break
            self.session.tick()

    def stop(self) -> None:
        self._stopped.set()
