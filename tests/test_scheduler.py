from types import SimpleNamespace

import pytest

from core.event_system import EventBus, EventType
from core.randomness import RandomnessEngine
from core.settings import SettingsManager
from core.state import GameState
from scheduler import TurnScheduler, SchedulerState


class FakeTimer:
    created = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def session(tmp_path):
    settings = SettingsManager(path=str(tmp_path / "settings.json"), autoload=False)
    return SimpleNamespace(
        event_bus=EventBus(),
        settings=settings,
        game_state=GameState(),
        rng=RandomnessEngine(seed=5),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(session, clock):
    FakeTimer.created = []
    return TurnScheduler(session, clock=clock, timer_factory=FakeTimer)


def record(bus, *event_types):
    seen = []
    for event_type in event_types:
        bus.subscribe(event_type, seen.append)
    return seen


class TestTurnAdvance:
    def test_turn_start_then_turn_end(self, scheduler, session):
        seen = record(session.event_bus, EventType.TURN_START, EventType.TURN_END)

        assert scheduler.advance_one_turn() is True

        assert [e.type for e in seen] == [EventType.TURN_START, EventType.TURN_END]
        assert seen[0].payload == {"week": 1, "year": 1}
        end = seen[1].payload
        assert end["game_state"] is session.game_state
        assert end["rng"] is session.rng
        assert (end["week"], end["year"]) == (2, 1)

    def test_year_change_on_rollover(self, scheduler, session):
        session.game_state.time.week = 52
        seen = record(session.event_bus, EventType.YEAR_CHANGE)

        scheduler.advance_one_turn()

        assert [e.payload["year"] for e in seen] == [2]
        assert session.game_state.time.week == 1

    def test_no_turn_after_game_over(self, scheduler, session):
        session.game_state.game_over = True
        assert scheduler.advance_one_turn() is False
        assert session.game_state.time.weeks_elapsed == 0

    def test_reentrant_request_is_ignored(self, scheduler, session):
        nested = []
        session.event_bus.subscribe(EventType.TURN_END, lambda e: nested.append(scheduler.advance_one_turn()))

        assert scheduler.advance_one_turn() is True

        assert nested == [False]
        assert session.game_state.time.weeks_elapsed == 1

    def test_exclusive_section_holds_off_timer_turns(self, scheduler, session, clock):
        scheduler.start()
        clock.now = 5.0
        with scheduler.exclusive():
            assert scheduler.poll() is False
        assert session.game_state.time.weeks_elapsed == 0

        clock.now = 10.0
        assert scheduler.poll() is True
        assert session.game_state.time.weeks_elapsed == 1

    def test_deferred_events_drained_within_turn(self, scheduler, session):
        delivered = []
        session.event_bus.subscribe(EventType.OPPOSITION_ACTION, delivered.append)
        session.event_bus.subscribe(EventType.TURN_END,
                                    lambda e: session.event_bus.enqueue(EventType.OPPOSITION_ACTION, {}))

        scheduler.advance_one_turn()

        assert len(delivered) == 1
        assert session.event_bus.pending == 0

    def test_advance_turns_stops_when_game_ends(self, scheduler, session):
        def end_on_third(event):
            if event.payload["game_state"].time.weeks_elapsed == 3:
                event.payload["game_state"].game_over = True

        session.event_bus.subscribe(EventType.TURN_END, end_on_third)

        assert scheduler.advance_turns(10) == 3


class TestContinuousPlay:
    def test_start_arms_timer_and_publishes(self, scheduler, session):
        seen = record(session.event_bus, EventType.GAME_STARTED)

        assert scheduler.start() is True

        assert scheduler.state == SchedulerState.RUNNING
        assert FakeTimer.created[-1].started
        assert FakeTimer.created[-1].daemon
        assert len(seen) == 1

    def test_poll_waits_for_interval(self, scheduler, session, clock):
        scheduler.start()

        clock.now = 0.5
        assert scheduler.poll() is False
        clock.now = 1.0
        assert scheduler.poll() is True
        assert session.game_state.time.weeks_elapsed == 1

        clock.now = 1.2
        assert scheduler.poll() is False

    def test_timer_callback_polls_and_rearms(self, scheduler, session, clock):
        scheduler.start()
        first = FakeTimer.created[-1]
        clock.now = 2.0

        first.function()

        assert session.game_state.time.weeks_elapsed == 1
        assert FakeTimer.created[-1] is not first
        assert FakeTimer.created[-1].started

    def test_pause_is_idempotent_and_cancels_timer(self, scheduler, session):
        seen = record(session.event_bus, EventType.GAME_PAUSED)
        scheduler.start()
        timer = FakeTimer.created[-1]

        assert scheduler.pause() is True
        assert scheduler.pause() is False

        assert timer.cancelled
        assert len(seen) == 1

    def test_paused_scheduler_does_not_advance(self, scheduler, session, clock):
        scheduler.start()
        scheduler.pause()
        clock.now = 10.0
        assert scheduler.poll() is False
        assert session.game_state.time.weeks_elapsed == 0

    def test_resume_does_not_replay_missed_turns(self, scheduler, session, clock):
        scheduler.start()
        scheduler.pause()
        clock.now = 30.0

        assert scheduler.resume() is True
        assert scheduler.poll() is False

        clock.now = 31.0
        assert scheduler.poll() is True
        assert session.game_state.time.weeks_elapsed == 1

    def test_game_end_stops_scheduler(self, scheduler, session):
        scheduler.start()
        session.event_bus.publish(EventType.GAME_END, {"end_condition": {}})

        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.advance_one_turn() is False

    def test_set_speed_is_clamped(self, scheduler):
        assert scheduler.set_speed(1) == 100
        assert scheduler.set_speed(60000) == 5000

    def test_cleanup_releases_subscription(self, scheduler, session):
        scheduler.cleanup()
        assert session.event_bus.subscriber_count(EventType.GAME_END) == 0


class TestAutosave:
    def test_autosave_every_interval(self, session, clock):
        calls = []
        scheduler = TurnScheduler(session, clock=clock, timer_factory=FakeTimer,
                                  autosave=lambda: calls.append(1) or "autosave")
        seen = record(session.event_bus, EventType.GAME_AUTOSAVE)

        scheduler.advance_turns(8)

        assert len(calls) == 2
        assert [e.payload["save_id"] for e in seen] == ["autosave", "autosave"]

    def test_autosave_disabled_by_setting(self, session, clock):
        session.settings.set("auto_save", False, persist=False)
        calls = []
        scheduler = TurnScheduler(session, clock=clock, timer_factory=FakeTimer,
                                  autosave=lambda: calls.append(1) or "autosave")

        scheduler.advance_turns(4)

        assert calls == []

    def test_autosave_failure_does_not_stop_play(self, session, clock):
        def failing():
            raise OSError("disk full")

        scheduler = TurnScheduler(session, clock=clock, timer_factory=FakeTimer, autosave=failing)

        assert scheduler.advance_turns(5) == 5
        assert session.game_state.time.weeks_elapsed == 5
