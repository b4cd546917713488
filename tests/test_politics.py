import pytest

from core.event_system import EventType
from core.randomness import RandomnessEngine, SequenceSource
from systems.politics import PoliticalEngine, classify_election, vote_pass_probability


@pytest.fixture
def politics(bus, fixed_rng, state):
    engine = PoliticalEngine(bus, fixed_rng, state)
    yield engine
    engine.cleanup()


def capture(bus, event_type):
    seen = []
    bus.subscribe(event_type, seen.append)
    return seen


@pytest.mark.parametrize("approval,expected", [
    (72.0, "victory"),
    (55.0, "victory"),
    (50.0, "narrow_victory"),
    (40.0, "coalition_required"),
    (34.9, "defeat"),
])
def test_election_bands(approval, expected):
    assert classify_election(approval) == expected


class TestApproval:
    def test_neutral_economy_only_noise(self, bus, politics, state):
        changes = capture(bus, EventType.APPROVAL_CHANGE)

        politics.update_approval(state)

        assert state.politics.approval == pytest.approx(50.0)
        assert changes[0].payload["factors"] == {"random": 0.0}

    def test_bad_economy_costs_approval(self, politics, state):
        state.economy.gdp_growth = 0.0
        state.economy.unemployment = 9.0
        state.economy.inflation = 5.0

        politics.update_approval(state)

        assert state.politics.approval == pytest.approx(50.0 - 0.3 - 0.8 - 0.5)

    def test_approval_clamped(self, politics, state):
        politics.change_approval(state, -500)
        assert state.politics.approval == 0.0


class TestCoalition:
    def test_popular_government_gains(self, bus, politics, state):
        changes = capture(bus, EventType.COALITION_CHANGE)
        state.politics.approval = 65.0

        politics.update_coalition_dynamics(state)

        assert state.politics.coalition[0].support == pytest.approx(45.1)
        assert state.politics.opposition[0].support == pytest.approx(29.9)
        assert len(changes) == 1

    def test_middle_band_is_stable(self, bus, politics, state):
        changes = capture(bus, EventType.COALITION_CHANGE)
        politics.update_coalition_dynamics(state)
        assert changes == []


class TestVotes:
    def test_pass_probability_is_clamped(self, state):
        assert vote_pass_probability(state) == pytest.approx(0.9)
        state.politics.approval = 0.0
        state.politics.coalition_stability = 0.0
        assert vote_pass_probability(state) == pytest.approx(0.1)

    def test_vote_scheduled_two_weeks_ahead(self, politics, state):
        vote = politics.schedule_vote(state, "Budget")
        assert (vote.week, vote.year) == (3, 1)
        assert state.politics.next_vote is vote

    def test_vote_schedule_wraps_year(self, politics, state):
        state.time.week = 52
        vote = politics.schedule_vote(state, "Budget")
        assert (vote.week, vote.year) == (2, 2)

    def test_vote_resolves_when_due(self, bus, politics, state):
        results = capture(bus, EventType.VOTE_RESULT)
        politics.schedule_vote(state, "Budget")

        assert politics.process_scheduled_votes(state) == []
        state.time.week = 3
        resolved = politics.process_scheduled_votes(state)

        assert resolved[0]["passed"] is True
        assert state.politics.passed_votes == 1
        assert state.politics.next_vote is None
        assert results[0].payload["title"] == "Budget"

    def test_vote_can_fail(self, bus, state):
        engine = PoliticalEngine(bus, RandomnessEngine(source=SequenceSource([0.95])), state)
        engine.schedule_vote(state, "Budget", weeks_ahead=0)

        result = engine.process_scheduled_votes(state)[0]

        assert result["passed"] is False
        assert state.politics.failed_votes == 1
        engine.cleanup()


class TestElections:
    def test_victory_and_next_term(self, bus, politics, state):
        elections = capture(bus, EventType.ELECTION)
        state.time.year = 4
        state.politics.approval = 56.0

        outcome = politics.check_election_cycle(state)

        assert outcome["result"] == "victory"
        assert state.politics.next_election.year == 8
        assert elections[0].payload["approval"] == 56.0
        assert state.politics.election_results == [outcome]

    def test_no_election_before_due(self, politics, state):
        assert politics.check_election_cycle(state) is None
        assert politics.weeks_until_election(state) == 3 * 52

    def test_defeat_reported(self, politics, state):
        state.politics.approval = 20.0
        assert politics.trigger_election(state)["result"] == "defeat"


def test_turn_end_runs_full_update(bus, politics, state):
    changes = capture(bus, EventType.APPROVAL_CHANGE)
    bus.publish(EventType.TURN_END, {"game_state": state})
    assert len(changes) == 1


def test_scheduled_votes_round_trip(bus, politics, state):
    politics.schedule_vote(state, "Budget")
    restored = PoliticalEngine(bus, RandomnessEngine(seed=1), state)
    restored.from_dict(politics.to_dict())

    assert [v.title for v in restored.scheduled_votes] == ["Budget"]
    assert state.politics.next_vote.title == "Budget"
    restored.cleanup()
