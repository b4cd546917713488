import pytest

from core.event_system import EventType
from core.randomness import RandomnessEngine, SequenceSource
from systems.political_events import PoliticalEventsEngine, EVENT_TEMPLATES
from systems.politics import PoliticalEngine


@pytest.fixture
def politics(bus, fixed_rng, state):
    engine = PoliticalEngine(bus, fixed_rng, state)
    yield engine
    engine.cleanup()


@pytest.fixture
def events(bus, fixed_rng, state, politics):
    engine = PoliticalEventsEngine(bus, fixed_rng, state, politics_engine=politics)
    yield engine
    engine.cleanup()


def trigger(engine, state, category, template_id):
    event = engine.create_event(state, category, template_id)
    engine.trigger_event(state, event)
    return event


def test_every_template_has_two_or_three_options():
    for templates in EVENT_TEMPLATES.values():
        for template in templates:
            assert 2 <= len(template["options"]) <= 3


class TestGeneration:
    def test_base_probability(self, events, state):
        assert events.event_probability(state) == pytest.approx(0.3)

    def test_probability_rises_under_pressure(self, events, state):
        state.politics.approval = 30.0
        state.politics.coalition_stability = 50.0
        state.time.year = 3
        state.time.week = 2
        assert events.event_probability(state) == pytest.approx(0.75)

    def test_weighted_generation(self, bus, state, politics):
        rng = RandomnessEngine(source=SequenceSource([0.1, 0.1, 0.0]))
        engine = PoliticalEventsEngine(bus, rng, state, politics_engine=politics)
        triggered = []
        bus.subscribe(EventType.POLITICAL_EVENT_TRIGGERED, triggered.append)

        event = engine.generate_random_event(state)

        assert event["template_id"] == "tax_reform"
        assert event["id"] == "tax_reform_1"
        assert event["deadline"] == 1
        assert triggered[0].payload["event"] is event
        assert state.events.pending_decisions[0]["id"] == "tax_reform_1"
        engine.cleanup()

    def test_minimum_spacing_between_events(self, bus, state, politics):
        rng = RandomnessEngine(source=SequenceSource([0.0]))
        engine = PoliticalEventsEngine(bus, rng, state, politics_engine=politics)

        assert engine.generate_random_event(state) is not None
        state.time.weeks_elapsed = 3
        assert engine.generate_random_event(state) is None
        state.time.weeks_elapsed = 4
        assert engine.generate_random_event(state) is not None
        engine.cleanup()

    def test_no_event_when_trial_fails(self, events, state):
        assert events.generate_random_event(state) is None


class TestResponses:
    def test_response_applies_effects_and_schedules_vote(self, bus, events, politics, state):
        resolved = []
        bus.subscribe(EventType.POLITICAL_EVENT_RESOLVED, resolved.append)
        event = trigger(events, state, "policy_votes", "tax_reform")

        effects = events.respond(state, event["id"], "support")

        assert effects["approval"] == pytest.approx(8.0)
        assert state.politics.approval == pytest.approx(58.0)
        assert state.economy.gdp_growth == pytest.approx(3.3)
        assert state.politics.coalition[0].support == pytest.approx(48.75)
        assert events.active_events == []
        assert state.events.pending_decisions == []
        assert [v.title for v in politics.scheduled_votes] == ["Tax Reform Bill"]
        assert resolved[0].payload["option"]["id"] == "support"

    def test_oppose_does_not_schedule_vote(self, events, politics, state):
        event = trigger(events, state, "policy_votes", "tax_reform")
        events.respond(state, event["id"], "oppose")
        assert politics.scheduled_votes == []

    def test_debt_effect_in_ratio_points(self, events, state):
        event = trigger(events, state, "policy_votes", "healthcare_funding")
        events.respond(state, event["id"], "support")
        assert state.economy.debt_ratio == pytest.approx(61.5)

    def test_unknown_option_ignored(self, events, state):
        event = trigger(events, state, "coalition_events", "coalition_tension")
        assert events.respond(state, event["id"], "abdicate") is None
        assert len(events.active_events) == 1

    def test_unknown_event_ignored(self, events, state):
        assert events.respond(state, "nope", "support") is None

    def test_response_intent(self, bus, events, state):
        event = trigger(events, state, "coalition_events", "cabinet_reshuffle")
        bus.publish(EventType.POLITICAL_EVENT_RESPONSE, {"event_id": event["id"], "option_id": "reshuffle"})
        assert events.resolved_events[0]["response"] == "reshuffle"

    def test_overdue_event_resolves_with_first_option(self, events, state):
        event = trigger(events, state, "opposition_events", "no_confidence_motion")
        state.time.weeks_elapsed = 2

        events.expire_overdue_events(state)

        assert events.resolved_events[0]["id"] == event["id"]
        assert events.resolved_events[0]["response"] == "rally_support"


def test_coalition_stability_drifts_to_baseline(events, state):
    state.politics.coalition_stability = 60.0
    assert events.update_coalition_stability(state) == pytest.approx(63.65)


def test_active_events_round_trip(bus, events, state, politics):
    trigger(events, state, "economic_events", "interest_rate_pressure")
    restored = PoliticalEventsEngine(bus, RandomnessEngine(seed=3), state, politics_engine=politics)
    restored.from_dict(events.to_dict())

    assert restored.active_events == events.active_events
    assert restored.active_events is not events.active_events
    restored.cleanup()
