import json

import pytest

from core.state import (
    GameState, TimeState, Crisis, record_event, push_decision, pop_decision,
    update_economy, adjust_economy, adjust_politics, update_cycle, adjust_sector,
    adjust_crisis, set_relation, independents_support, RECENT_EVENTS_LIMIT,
)


class TestTime:
    def test_year_rolls_over_after_week_52(self):
        time = TimeState(week=52, year=1, weeks_elapsed=51)
        assert time.advance() is True
        assert (time.week, time.year, time.weeks_elapsed) == (1, 2, 52)

    def test_regular_advance(self):
        time = TimeState()
        assert time.advance() is False
        assert time.week == 2

    def test_current_date_moves_by_weeks(self):
        time = TimeState(weeks_elapsed=2)
        assert time.current_date.isoformat() == "2024-01-15"

    def test_weeks_until_crosses_years(self):
        time = TimeState(week=50, year=1)
        assert time.weeks_until(2, 2) == 4


class TestBoundedUpdates:
    def test_update_clamps_to_bounds(self, state):
        update_economy(state, unemployment=150.0, interest_rate=-3.0)
        assert state.economy.unemployment == 100.0
        assert state.economy.interest_rate == 0.0

    def test_adjust_is_additive_and_clamped(self, state):
        adjust_politics(state, approval=80.0)
        assert state.politics.approval == 100.0
        adjust_economy(state, confidence=-5.0)
        assert state.economy.confidence == 70.0

    def test_unknown_field_rejected(self, state):
        with pytest.raises(ValueError):
            update_economy(state, happiness=3)

    def test_cycle_phase_validated(self, state):
        with pytest.raises(ValueError):
            update_cycle(state, phase="boom")

    def test_rejected_phase_leaves_cycle_untouched(self, state):
        with pytest.raises(ValueError):
            update_cycle(state, phase="boom", duration=9, intensity=0.9)
        cycle = state.economy.cycle
        assert (cycle.phase, cycle.duration, cycle.intensity) == ("expansion", 0, 0.5)

    def test_sector_growth_clamped(self, state):
        adjust_sector(state, "services", growth=40.0)
        assert state.economy.sectors["services"].growth == 15.0

    def test_crisis_fields_clamped(self):
        crisis = Crisis(id="crisis_1", type="economic", title="T", severity=95.0,
                        media_attention=10.0, public_concern=10.0)
        adjust_crisis(crisis, severity=20.0, media_attention=-50.0)
        assert crisis.severity == 100.0
        assert crisis.media_attention == 0.0

    def test_relation_clamped(self, state):
        assert set_relation(state.diplomacy, "USA", 140.0) == 100.0


def test_independents_is_residual_support(state):
    # 45 + 22 coalition, 30 + 3 opposition
    assert independents_support(state.politics) == 0.0
    state.politics.opposition[0].support = 20.0
    assert independents_support(state.politics) == pytest.approx(10.0)


def test_recent_events_bounded_and_stamped(state):
    for i in range(RECENT_EVENTS_LIMIT + 5):
        record_event(state, {"title": f"event {i}"})
    assert len(state.events.recent) == RECENT_EVENTS_LIMIT
    assert state.events.recent[-1]["title"] == f"event {RECENT_EVENTS_LIMIT + 4}"
    assert state.events.recent[0]["week"] == state.time.week


def test_pending_decision_pop(state):
    push_decision(state, {"id": "a"})
    push_decision(state, {"id": "b"})
    assert pop_decision(state, "a") == {"id": "a"}
    assert pop_decision(state, "a") is None
    assert [d["id"] for d in state.events.pending_decisions] == ["b"]


def test_state_survives_json_round_trip(state):
    state.time.advance()
    adjust_politics(state, approval=7)
    state.crises.active.append(Crisis(id="crisis_1", type="scandal", title="Leak",
                                      severity=40.0, media_attention=50.0, public_concern=20.0))
    set_relation(state.diplomacy, "FRA", 61.0)

    restored = GameState.from_dict(json.loads(json.dumps(state.to_dict())))

    assert restored.time == state.time
    assert restored.politics.approval == state.politics.approval
    assert restored.politics.coalition == state.politics.coalition
    assert restored.economy.sectors == state.economy.sectors
    assert restored.crises.active[0].title == "Leak"
    assert restored.diplomacy.relations == {"FRA": 61.0}
