import pytest

from core.event_system import EventType
from core.randomness import RandomnessEngine
from core.state import Crisis
from systems.outcomes import OutcomeEvaluator, StreakProgress, CrisisProgress


@pytest.fixture
def outcomes(bus, fixed_rng, state):
    engine = OutcomeEvaluator(bus, fixed_rng, state)
    yield engine
    engine.cleanup()


def capture(bus, event_type):
    seen = []
    bus.subscribe(event_type, seen.append)
    return seen


def scandal(crisis_id, severity):
    return Crisis(id=crisis_id, type="scandal", title="Scandal", severity=severity,
                  media_attention=50.0, public_concern=50.0)


class TestLossConditions:
    def test_approval_collapse_ends_game_once(self, bus, outcomes, state):
        ends = capture(bus, EventType.GAME_END)
        state.politics.approval = 10.0

        outcomes.evaluate(state)
        outcomes.evaluate(state)

        assert len(ends) == 1
        assert state.game_over
        assert state.end_condition["reason"] == "approval_collapse"
        assert state.end_condition["final_stats"]["final_approval"] == 10.0

    def test_economic_collapse(self, outcomes, state):
        state.economy.unemployment = 16.0
        state.economy.gdp_growth = -6.0
        assert outcomes.evaluate(state)["reason"] == "economic_collapse"

    def test_scandal_overload(self, outcomes, state):
        state.crises.active.extend([scandal("crisis_1", 75.0), scandal("crisis_2", 80.0)])
        assert outcomes.evaluate(state)["reason"] == "scandal_overload"

    def test_minor_scandals_tolerated(self, outcomes, state):
        state.crises.active.extend([scandal("crisis_1", 75.0), scandal("crisis_2", 50.0)])
        assert outcomes.evaluate(state) is None

    def test_loss_checked_before_victory(self, outcomes, state):
        state.time.year = 8
        state.politics.approval = 60.0
        state.crises.active.extend([scandal("crisis_1", 75.0), scandal("crisis_2", 80.0)])
        assert outcomes.evaluate(state)["type"] == "defeat"

    def test_election_defeat_ends_game(self, bus, outcomes, state):
        ends = capture(bus, EventType.GAME_END)
        bus.publish(EventType.ELECTION, {"result": "defeat", "approval": 30.0})

        assert state.end_condition["reason"] == "election_loss"
        assert len(ends) == 1


class TestVictoryConditions:
    def test_two_terms_with_majority(self, outcomes, state):
        state.time.year = 8
        state.politics.approval = 55.0
        assert outcomes.evaluate(state)["reason"] == "successful_leadership"

    def test_beloved_leader(self, outcomes, state):
        state.time.year = 4
        state.politics.approval = 85.0
        assert outcomes.evaluate(state)["reason"] == "beloved_leader"

    def test_no_end_in_ordinary_times(self, bus, outcomes, state):
        ends = capture(bus, EventType.GAME_END)
        assert outcomes.evaluate(state) is None
        assert ends == []
        assert not state.game_over


class TestAchievements:
    def test_popular_leader_needs_a_streak(self, bus, outcomes, state):
        unlocked = capture(bus, EventType.ACHIEVEMENT_UNLOCKED)
        state.politics.approval = 75.0
        for _ in range(11):
            outcomes.check_achievements(state)
        assert unlocked == []

        state.politics.approval = 60.0
        outcomes.check_achievements(state)
        assert outcomes.achievements["popular_leader"].progress.consecutive_weeks == 0

        state.politics.approval = 75.0
        for _ in range(12):
            outcomes.check_achievements(state)
        assert [e.payload["achievement"]["id"] for e in unlocked] == ["popular_leader"]

    def test_crisis_manager_from_resolved_crises(self, bus, outcomes, state):
        for i in range(3):
            bus.publish(EventType.CRISIS_RESOLVED, {"crisis": {"id": f"crisis_{i}", "approval_at_start": 51.0}})

        assert outcomes.check_achievements(state) == ["crisis_manager"]
        progress = outcomes.achievements["crisis_manager"].progress
        assert isinstance(progress, CrisisProgress)
        assert progress.total_approval_loss == pytest.approx(3.0)

    def test_policy_master_counts_passed_votes(self, bus, outcomes, state):
        for _ in range(10):
            bus.publish(EventType.VOTE_RESULT, {"passed": True})
        bus.publish(EventType.VOTE_RESULT, {"passed": False})

        assert outcomes.achievements["policy_master"].progress.passed_policies == 10
        assert "policy_master" in outcomes.check_achievements(state)

    def test_landslide_from_election(self, bus, outcomes, state):
        bus.publish(EventType.ELECTION, {"result": "victory", "approval": 68.0})
        assert outcomes.achievements["landslide_victory"].unlocked
        assert not state.game_over

    def test_balanced_budget(self, outcomes, state):
        state.economy.debt = 4e11
        assert outcomes.check_achievements(state) == ["balanced_budget"]

    def test_diplomatic_master(self, outcomes, state):
        state.diplomacy.relations = {"DEU": 90.0, "FRA": 80.0}
        assert outcomes.check_achievements(state) == ["diplomatic_master"]

    def test_unlock_is_permanent_and_single(self, bus, outcomes, state):
        unlocked = capture(bus, EventType.ACHIEVEMENT_UNLOCKED)
        state.economy.debt = 4e11
        outcomes.check_achievements(state)
        state.economy.debt = 9e11
        outcomes.check_achievements(state)

        assert len(unlocked) == 1
        assert outcomes.achievements["balanced_budget"].unlocked
        assert outcomes.achievements["balanced_budget"].unlocked_at == {"week": 1, "year": 1}

    def test_final_stats_list_achievements(self, outcomes, state):
        state.economy.debt = 4e11
        outcomes.check_achievements(state)
        stats = outcomes.final_stats(state)
        assert stats["achievements"] == ["balanced_budget"]
        assert stats["time_in_office"] == "1 years, 1 weeks"


def test_progress_round_trip(bus, outcomes, state):
    state.politics.approval = 75.0
    for _ in range(5):
        outcomes.check_achievements(state)
    restored = OutcomeEvaluator(bus, RandomnessEngine(seed=2), state)
    restored.from_dict(outcomes.to_dict())

    progress = restored.achievements["popular_leader"].progress
    assert isinstance(progress, StreakProgress)
    assert progress.consecutive_weeks == 5
    restored.cleanup()
