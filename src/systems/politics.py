from typing import Dict, List, Optional, Any

from core.event_system import EventBus, EventType, GameEvent, SubscriptionGroup
from core.logger import get_logger
from core.randomness import RandomnessEngine
from core.state import (
    GameState, ScheduledVote, ElectionSchedule, adjust_politics, adjust_party_support,
    independents_support, record_event, clamp,
)

logger = get_logger(__name__)

ELECTION_TERM_YEARS = 4
VOTE_PASS_FLOOR = 0.1
VOTE_PASS_CEILING = 0.9

# Approval bands for election outcomes, checked top-down
ELECTION_BANDS = (
    (55.0, "victory"),
    (45.0, "narrow_victory"),
    (35.0, "coalition_required"),
)


def classify_election(approval: float) -> str:
    for threshold, result in ELECTION_BANDS:
        if approval >= threshold:
            return result
    return "defeat"


def vote_pass_probability(game_state: GameState) -> float:
    politics = game_state.politics
    base = politics.coalition_support / 100
    approval_bonus = (politics.approval - 50) * 0.01
    stability_bonus = (politics.coalition_stability - 50) * 0.01
    return clamp(base + approval_bonus + stability_bonus, VOTE_PASS_FLOOR, VOTE_PASS_CEILING)


class PoliticalEngine:
    """
    Approval rating, coalition/opposition drift, parliamentary votes and the
    election cycle. Runs on ``turn:end`` after the economy has moved.
    """

    def __init__(self, event_bus: EventBus, rng: RandomnessEngine, game_state: GameState):
        self.event_bus = event_bus
        self.rng = rng
        self.game_state = game_state
        self.scheduled_votes: List[ScheduledVote] = []
        self.vote_results: List[Dict[str, Any]] = []
        self._vote_counter = 0

        self._subscriptions = SubscriptionGroup(event_bus)
        self._subscriptions.subscribe(EventType.TURN_END, self.on_turn_end)

    def cleanup(self):
        self._subscriptions.dispose()

    def on_turn_end(self, event: GameEvent):
        game_state = event.payload.get("game_state", self.game_state)
        self.process_turn(game_state)

    def process_turn(self, game_state: GameState):
        self.update_approval(game_state)
        self.update_coalition_dynamics(game_state)
        self.process_scheduled_votes(game_state)
        self.check_election_cycle(game_state)

    # --- Approval -------------------------------------------------------

    def update_approval(self, game_state: GameState) -> float:
        economy = game_state.economy
        factors = {}

        if economy.gdp_growth > 3.0:
            factors["gdp_growth"] = 0.5
        elif economy.gdp_growth < 1.0:
            factors["gdp_growth"] = -0.3

        if economy.unemployment > 8.0:
            factors["unemployment"] = -0.8
        elif economy.unemployment < 4.0:
            factors["unemployment"] = 0.4

        if economy.inflation > 4.0:
            factors["inflation"] = -0.5
        elif economy.inflation < 2.0:
            factors["inflation"] = 0.2

        factors["random"] = self.rng.noise(0.5)
        return self.change_approval(game_state, sum(factors.values()), factors)

    def change_approval(self, game_state: GameState, change: float, factors: Optional[Dict[str, float]] = None) -> float:
        before = game_state.politics.approval
        after = adjust_politics(game_state, approval=change).approval
        self.event_bus.publish(EventType.APPROVAL_CHANGE, {
            "change": after - before,
            "new_approval": after,
            "factors": factors or {},
        })
        return after

    # --- Coalition ------------------------------------------------------

    def update_coalition_dynamics(self, game_state: GameState):
        politics = game_state.politics
        if politics.approval > 60:
            coalition_delta, opposition_delta = 0.1, -0.1
        elif politics.approval < 40:
            coalition_delta, opposition_delta = -0.2, 0.15
        else:
            return

        for party in politics.coalition:
            adjust_party_support(party, coalition_delta)
        for party in politics.opposition:
            adjust_party_support(party, opposition_delta)

        self.event_bus.publish(EventType.COALITION_CHANGE, {
            "coalition_support": politics.coalition_support,
            "opposition_support": politics.opposition_support,
            "independents": independents_support(politics),
        })

    # --- Votes ----------------------------------------------------------

    def schedule_vote(self, game_state: GameState, title: str, weeks_ahead: int = 2,
                      policy_type: Optional[str] = None) -> ScheduledVote:
        self._vote_counter += 1
        week = game_state.time.week + weeks_ahead
        year = game_state.time.year + (week - 1) // 52
        week = (week - 1) % 52 + 1

        vote = ScheduledVote(
            id=f"vote_{self._vote_counter}",
            title=title,
            week=week,
            year=year,
            policy_type=policy_type,
        )
        self.scheduled_votes.append(vote)
        self._refresh_next_vote(game_state)
        self.event_bus.publish(EventType.VOTE_SCHEDULED, {
            "vote": {"id": vote.id, "title": vote.title, "week": vote.week, "year": vote.year},
        })
        return vote

    def process_scheduled_votes(self, game_state: GameState) -> List[Dict[str, Any]]:
        time = game_state.time
        due = [v for v in self.scheduled_votes if time.weeks_until(v.week, v.year) <= 0]
        results = [self.resolve_vote(game_state, vote) for vote in due]
        if due:
            self.scheduled_votes = [v for v in self.scheduled_votes if v not in due]
            self._refresh_next_vote(game_state)
        return results

    def resolve_vote(self, game_state: GameState, vote: ScheduledVote) -> Dict[str, Any]:
        probability = vote_pass_probability(game_state)
        passed = self.rng.next() < probability
        margin = self.rng.randint(1, 20)

        politics = game_state.politics
        if passed:
            politics.passed_votes += 1
        else:
            politics.failed_votes += 1

        result = {
            "vote_id": vote.id,
            "title": vote.title,
            "passed": passed,
            "margin": margin,
            "pass_probability": probability,
            "coalition_unity": politics.coalition_stability,
        }
        self.vote_results.append(result)
        del self.vote_results[:-52]
        record_event(game_state, {
            "title": f"Vote {'passed' if passed else 'failed'}: {vote.title}",
            "type": "political",
            "severity": "positive" if passed else "negative",
        })
        logger.info("Vote %s %s by %d", vote.title, "passed" if passed else "failed", margin)
        self.event_bus.publish(EventType.VOTE_RESULT, result)
        return result

    def _refresh_next_vote(self, game_state: GameState):
        time = game_state.time
        upcoming = sorted(self.scheduled_votes, key=lambda v: time.weeks_until(v.week, v.year))
        game_state.politics.next_vote = upcoming[0] if upcoming else None

    # --- Elections ------------------------------------------------------

    def election_due(self, game_state: GameState) -> bool:
        time = game_state.time
        election = game_state.politics.next_election
        return time.year > election.year or (time.year == election.year and time.week >= election.week)

    def check_election_cycle(self, game_state: GameState) -> Optional[Dict[str, Any]]:
        if self.election_due(game_state):
            return self.trigger_election(game_state)
        return None

    def trigger_election(self, game_state: GameState) -> Dict[str, Any]:
        politics = game_state.politics
        approval = politics.approval
        result = classify_election(approval)

        outcome = {
            "result": result,
            "approval": approval,
            "week": game_state.time.week,
            "year": game_state.time.year,
        }
        politics.election_results.append(outcome)
        politics.next_election = ElectionSchedule(
            week=politics.next_election.week,
            year=game_state.time.year + ELECTION_TERM_YEARS,
        )

        record_event(game_state, {
            "title": f"General election: {result.replace('_', ' ')}",
            "type": "election",
            "severity": "negative" if result == "defeat" else "positive",
        })
        logger.info("Election in year %d: %s at %.1f%% approval", game_state.time.year, result, approval)
        self.event_bus.publish(EventType.ELECTION, outcome)
        return outcome

    def weeks_until_election(self, game_state: GameState) -> int:
        election = game_state.politics.next_election
        return max(0, game_state.time.weeks_until(election.week, election.year))

    # --- Persistence ----------------------------------------------------

    def to_dict(self):
        return {
            "scheduled_votes": [vars(v).copy() for v in self.scheduled_votes],
            "vote_results": list(self.vote_results),
            "vote_counter": self._vote_counter,
        }

    def from_dict(self, data):
        self.scheduled_votes = [ScheduledVote.from_dict(v) for v in data.get("scheduled_votes", [])]
        self.vote_results = list(data.get("vote_results", []))
        self._vote_counter = data.get("vote_counter", len(self.scheduled_votes))
        self._refresh_next_vote(self.game_state)
