import pytest

from core.event_system import EventType
from core.randomness import RandomnessEngine, SequenceSource
from systems.crisis import (
    CrisisEngine, CRISIS_TEMPLATES, outcome_tier, timing_factor, major_scandals,
)


@pytest.fixture
def crisis_engine(bus, fixed_rng, state):
    engine = CrisisEngine(bus, fixed_rng, state)
    yield engine
    engine.cleanup()


def capture(bus, event_type):
    seen = []
    bus.subscribe(event_type, seen.append)
    return seen


class TestGeneration:
    def test_generate_populates_ledger(self, bus, crisis_engine, state):
        generated = capture(bus, EventType.CRISIS_GENERATED)

        crisis = crisis_engine.generate_crisis(state, "economic", "Bank Run", severity=40)

        assert crisis.id == "crisis_1"
        assert crisis.media_attention == pytest.approx(45.0)
        assert crisis.public_concern == pytest.approx(25.0)
        assert state.crises.active == [crisis]
        assert len(generated[0].payload["responses"]) == 4

    def test_unknown_type_rejected(self, crisis_engine, state):
        with pytest.raises(ValueError):
            crisis_engine.generate_crisis(state, "alien")

    def test_probability_rises_with_bad_conditions(self, crisis_engine, state):
        assert crisis_engine.crisis_probability(state) == pytest.approx(0.05)
        state.economy.gdp_growth = -1.0
        state.economy.unemployment = 9.0
        state.politics.approval = 30.0
        assert crisis_engine.crisis_probability(state) == pytest.approx(0.12)

    def test_probability_halved_when_crowded(self, crisis_engine, state):
        crisis_engine.generate_crisis(state, "political", severity=30)
        crisis_engine.generate_crisis(state, "natural", severity=30)
        assert crisis_engine.crisis_probability(state) == pytest.approx(0.03)

    def test_difficulty_multiplier(self, bus, fixed_rng, state):
        engine = CrisisEngine(bus, fixed_rng, state, chance_multiplier=1.4)
        assert engine.crisis_probability(state) == pytest.approx(0.07)
        engine.cleanup()

    def test_random_crisis_when_trial_fires(self, bus, state):
        rng = RandomnessEngine(source=SequenceSource([0.01, 0.0, 0.0, 0.0]))
        engine = CrisisEngine(bus, rng, state)

        crisis = engine.check_for_new_crisis(state)

        assert crisis is not None
        assert crisis.type in CRISIS_TEMPLATES
        assert crisis.origin == "random"
        engine.cleanup()

    def test_no_crisis_when_trial_fails(self, crisis_engine, state):
        assert crisis_engine.check_for_new_crisis(state) is None


class TestTurn:
    def test_resolution_at_full_management(self, bus, crisis_engine, state):
        resolved = capture(bus, EventType.CRISIS_RESOLVED)
        crisis = crisis_engine.generate_crisis(state, "political", severity=30)
        crisis.management_score = 100.0
        approval_before = state.politics.approval

        crisis_engine.process_turn(state)
        crisis_engine.process_turn(state)

        assert len(resolved) == 1
        assert crisis.status == "resolved"
        assert crisis.resolution_method == "management_success"
        assert state.crises.active == []
        assert state.crises.resolved == [crisis]
        assert state.politics.approval > approval_before

    def test_escalation_happens_once(self, bus, crisis_engine, state):
        escalations = capture(bus, EventType.CRISIS_ESCALATED)
        crisis = crisis_engine.generate_crisis(state, "economic", severity=95)

        crisis_engine.process_turn(state)
        crisis_engine.process_turn(state)

        assert len(escalations) == 1
        assert crisis.has_escalated
        child = state.crises.find_active(crisis.escalated_to)
        assert child.type in CRISIS_TEMPLATES["economic"].possible_escalations
        assert child.parent_id == crisis.id
        assert child.origin == "escalation"
        assert escalations[0].payload["escalated_crisis"]["severity"] == 80.0

    def test_resolution_wins_over_escalation(self, bus, crisis_engine, state):
        escalations = capture(bus, EventType.CRISIS_ESCALATED)
        crisis = crisis_engine.generate_crisis(state, "scandal", severity=99)
        crisis.management_score = 100.0

        crisis_engine.process_turn(state)

        assert crisis.status == "resolved"
        assert escalations == []

    def test_crisis_drags_on_approval_and_growth(self, crisis_engine, state):
        crisis_engine.generate_crisis(state, "economic", severity=60)
        crisis_engine.process_turn(state)
        assert state.politics.approval < 50.0
        assert state.economy.gdp_growth < 2.1

    def test_history_bounded(self, crisis_engine, state):
        for _ in range(120):
            crisis_engine.update_history(state)
        assert len(state.crises.history) == 104


class TestResponses:
    def test_response_builds_management_score(self, bus, crisis_engine, state):
        implemented = capture(bus, EventType.CRISIS_RESPONSE_IMPLEMENTED)
        crisis = crisis_engine.generate_crisis(state, "economic", severity=40)
        debt_before = state.economy.debt

        response = crisis_engine.respond(state, crisis.id, "reform")

        assert response["current_effectiveness"] == pytest.approx(0.9 * 1.2 * 0.6875)
        assert crisis.management_score == pytest.approx(0.9 * 1.2 * 0.6875 * 20)
        assert crisis.severity == pytest.approx(32.0)
        assert state.politics.political_capital == pytest.approx(94.0)
        assert state.politics.approval == pytest.approx(51.0)
        assert state.economy.debt > debt_before
        assert implemented[0].payload["outcome"] == "Moderately Effective Response"

    def test_low_capital_halves_response(self, crisis_engine, state):
        crisis = crisis_engine.generate_crisis(state, "economic", severity=40)
        state.politics.political_capital = 1.0

        response = crisis_engine.respond(state, crisis.id, "reform")

        assert response["current_effectiveness"] == pytest.approx(0.9 * 1.2 * 0.5 * 0.6875)

    def test_unknown_response_ignored(self, crisis_engine, state):
        crisis = crisis_engine.generate_crisis(state, "economic", severity=40)
        assert crisis_engine.respond(state, crisis.id, "military") is None
        assert crisis.active_responses == []

    def test_unknown_crisis_ignored(self, crisis_engine, state):
        assert crisis_engine.respond(state, "crisis_99", "reform") is None

    def test_respond_intent(self, bus, crisis_engine, state):
        crisis = crisis_engine.generate_crisis(state, "natural", severity=40)
        bus.publish(EventType.CRISIS_RESPOND, {"crisis_id": crisis.id, "response_id": "emergency_relief"})
        assert crisis.active_responses[0]["id"] == "emergency_relief"

    def test_response_effectiveness_decays(self, crisis_engine, state):
        crisis = crisis_engine.generate_crisis(state, "security", severity=40)
        crisis_engine.respond(state, crisis.id, "emergency")
        crisis_engine.update_crisis(crisis, state)
        assert crisis.active_responses[0]["current_effectiveness"] == pytest.approx(0.9 * 0.9)


def test_timing_rewards_fast_responses(state, crisis_engine):
    crisis = crisis_engine.generate_crisis(state, "political", severity=30)
    assert timing_factor(crisis) == 1.2
    crisis.current_week = 5
    assert timing_factor(crisis) == 0.8
    crisis.current_week = 10
    assert timing_factor(crisis) == 0.6


def test_outcome_tiers():
    assert outcome_tier(0.9)[0] == "Highly Effective Response"
    assert outcome_tier(0.5)[0] == "Limited Response Success"
    assert outcome_tier(0.0)[1]["severity"] == 2


def test_major_scandals(crisis_engine, state):
    crisis_engine.generate_crisis(state, "scandal", severity=75)
    crisis_engine.generate_crisis(state, "scandal", severity=40)
    crisis_engine.generate_crisis(state, "political", severity=90)
    assert len(major_scandals(state)) == 1
