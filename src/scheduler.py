"""
Turn Scheduler

Drives the simulation one week at a time. Continuous play polls a repeating
timer and only advances when the configured interval has elapsed; pausing
cancels the timer and resuming re-arms it without replaying missed turns.
"""

import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Optional

from core.event_system import EventType, GameEvent
from core.logger import get_logger
from core.settings import clamp_game_speed

logger = get_logger(__name__)

POLL_INTERVAL_SECONDS = 0.05
DEFAULT_AUTO_SAVE_INTERVAL = 4


class SchedulerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class TurnScheduler:
    def __init__(self, session, clock: Callable[[], float] = time.monotonic,
                 timer_factory=threading.Timer, autosave: Optional[Callable[[], Optional[str]]] = None,
                 poll_interval: float = POLL_INTERVAL_SECONDS):
        self.session = session
        self.event_bus = session.event_bus
        self.clock = clock
        self.timer_factory = timer_factory
        self.autosave = autosave
        self.poll_interval = poll_interval

        settings = session.settings
        self.speed_ms = clamp_game_speed(settings.get("game_speed_ms"))
        self.auto_save_enabled = bool(settings.get("auto_save", True))
        self.auto_save_interval = int(settings.get("auto_save_interval", DEFAULT_AUTO_SAVE_INTERVAL)) or 1

        self.state = SchedulerState.IDLE
        self.turns_run = 0
        self._timer = None
        self._last_turn_at: Optional[float] = None
        self._turn_lock = threading.Lock()
        self._unsubscribe_end = self.event_bus.subscribe(EventType.GAME_END, self.on_game_end)

    def cleanup(self):
        self._unsubscribe_end()

    def on_game_end(self, event: GameEvent):
        self.stop()

    # --- State machine --------------------------------------------------

    def start(self) -> bool:
        if self.state == SchedulerState.PAUSED:
            return self.resume()
        if self.state != SchedulerState.IDLE:
            return False
        self.state = SchedulerState.RUNNING
        self._last_turn_at = self.clock()
        self._arm_timer()
        self.event_bus.publish(EventType.GAME_STARTED, {"speed_ms": self.speed_ms})
        return True

    def pause(self) -> bool:
        """Idempotent; only a running scheduler changes state."""
        if self.state != SchedulerState.RUNNING:
            return False
        self.state = SchedulerState.PAUSED
        self._cancel_timer()
        self.event_bus.publish(EventType.GAME_PAUSED, {"week": self.session.game_state.time.week})
        return True

    def resume(self) -> bool:
        if self.state != SchedulerState.PAUSED:
            return False
        self.state = SchedulerState.RUNNING
        self._last_turn_at = self.clock()
        self._arm_timer()
        self.event_bus.publish(EventType.GAME_RESUMED, {"week": self.session.game_state.time.week})
        return True

    def stop(self) -> bool:
        if self.state == SchedulerState.STOPPED:
            return False
        self.state = SchedulerState.STOPPED
        self._cancel_timer()
        self.event_bus.publish(EventType.GAME_STOPPED, {"turns_run": self.turns_run})
        return True

    def set_speed(self, ms) -> int:
        self.speed_ms = clamp_game_speed(ms)
        return self.speed_ms

    @property
    def running(self) -> bool:
        return self.state == SchedulerState.RUNNING

    # --- Timer ----------------------------------------------------------

    def _arm_timer(self):
        self._cancel_timer()
        self._timer = self.timer_factory(self.poll_interval, self._on_timer)
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self):
        self.poll()
        if self.state == SchedulerState.RUNNING:
            self._arm_timer()

    def poll(self, now: Optional[float] = None) -> bool:
        """Advance at most one turn if the interval has elapsed. Never sleeps."""
        if self.state != SchedulerState.RUNNING:
            return False
        now = self.clock() if now is None else now
        if self._last_turn_at is not None and (now - self._last_turn_at) * 1000 < self.speed_ms:
            return False
        self._last_turn_at = now
        return self.advance_one_turn()

    # --- Turns ----------------------------------------------------------

    def advance_one_turn(self) -> bool:
        game_state = self.session.game_state
        if game_state.game_over or self.state == SchedulerState.STOPPED:
            return False
        if not self._turn_lock.acquire(blocking=False):
            logger.warning("Turn already in progress; ignoring request")
            return False

        try:
            time_state = game_state.time
            self.event_bus.publish(EventType.TURN_START, {"week": time_state.week, "year": time_state.year})

            if time_state.advance():
                self.event_bus.publish(EventType.YEAR_CHANGE, {"year": time_state.year})

            self.event_bus.publish(EventType.TURN_END, {
                "game_state": game_state,
                "rng": self.session.rng,
                "week": time_state.week,
                "year": time_state.year,
            })
            self.event_bus.drain()
            self.turns_run += 1
        finally:
            self._turn_lock.release()

        if self.auto_save_enabled and time_state.weeks_elapsed % self.auto_save_interval == 0:
            self._run_autosave()
        return True

    @contextmanager
    def exclusive(self):
        """Block until no turn is running, then hold the turn lock for the caller."""
        with self._turn_lock:
            yield

    def advance_turns(self, count: int) -> int:
        """Run up to ``count`` turns one after another, stopping early when the game ends."""
        completed = 0
        for _ in range(max(0, int(count))):
            if not self.advance_one_turn():
                break
            completed += 1
            if self.session.game_state.game_over:
                break
        return completed

    def _run_autosave(self):
        if self.autosave is None:
            return
        try:
            save_id = self.autosave()
        except Exception:
            logger.exception("Autosave failed; continuing")
            return
        if save_id is None:
            logger.warning("Autosave did not complete")
            return
        self.event_bus.publish(EventType.GAME_AUTOSAVE, {"save_id": save_id})
