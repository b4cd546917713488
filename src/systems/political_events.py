"""
Political Events

Periodic parliamentary and coalition events that need a player decision.
Generation is a two-stage weighted draw (category, then template); each
template carries 2-3 options with an effect vector that is applied with
+/-20% variance when the player responds.
"""

import copy
from typing import Dict, List, Optional, Any

from core.event_system import EventBus, EventType, GameEvent, SubscriptionGroup
from core.logger import get_logger
from core.randomness import RandomnessEngine
from core.state import (
    GameState, adjust_politics, adjust_party_support, update_economy, record_event,
    push_decision, pop_decision, clamp,
)

logger = get_logger(__name__)

EVENT_FREQUENCY_WEEKS = 4
BASE_EVENT_PROBABILITY = 0.3
MAX_EVENT_PROBABILITY = 0.8
EFFECT_VARIANCE = 0.4  # multiplier drawn from [0.8, 1.2)
STABILITY_BASELINE = 75.0

CATEGORY_WEIGHTS = {
    "policy_votes": 30,
    "coalition_events": 25,
    "opposition_events": 20,
    "economic_events": 25,
}

DEADLINE_WEEKS = {"high": 1, "medium": 2}
DEFAULT_DEADLINE_WEEKS = 3

# Options whose acceptance sends the bill to a parliamentary vote
VOTE_TRIGGERING_OPTIONS = {"support", "modify"}

EVENT_TEMPLATES = {
    "policy_votes": [
        {
            "id": "tax_reform",
            "title": "Tax Reform Bill",
            "description": "A comprehensive package to modernise the tax system.",
            "type": "policy_vote",
            "severity": "high",
            "options": [
                {"id": "support", "text": "Support the reform",
                 "effects": {"approval": 8, "gdp": 1.2, "coalitionSupport": 5}},
                {"id": "oppose", "text": "Oppose the reform",
                 "effects": {"approval": -3, "gdp": -0.2, "coalitionSupport": -8}},
                {"id": "modify", "text": "Propose modifications",
                 "effects": {"approval": 2, "gdp": 0.5, "coalitionSupport": -2}},
            ],
        },
        {
            "id": "healthcare_funding",
            "title": "Healthcare Funding Increase",
            "description": "Proposal to raise healthcare funding by 20%.",
            "type": "policy_vote",
            "severity": "medium",
            "options": [
                {"id": "support", "text": "Support increased funding",
                 "effects": {"approval": 12, "debt": 1.5, "coalitionSupport": 5}},
                {"id": "oppose", "text": "Oppose the increase",
                 "effects": {"approval": -5, "debt": 0, "coalitionSupport": -7}},
            ],
        },
    ],
    "coalition_events": [
        {
            "id": "coalition_tension",
            "title": "Coalition Partner Demands",
            "description": "Your coalition partner wants more influence in key ministries.",
            "type": "coalition_crisis",
            "severity": "medium",
            "options": [
                {"id": "concede", "text": "Grant more influence",
                 "effects": {"coalitionSupport": 10, "approval": -2}},
                {"id": "negotiate", "text": "Negotiate a compromise",
                 "effects": {"coalitionSupport": 3, "approval": 1}},
                {"id": "refuse", "text": "Refuse the demands",
                 "effects": {"coalitionSupport": -15, "approval": 2}},
            ],
        },
        {
            "id": "cabinet_reshuffle",
            "title": "Cabinet Reshuffle Pressure",
            "description": "Pressure is mounting to replace underperforming ministers.",
            "type": "political_pressure",
            "severity": "medium",
            "options": [
                {"id": "reshuffle", "text": "Conduct a reshuffle",
                 "effects": {"approval": 6, "coalitionSupport": 8}},
                {"id": "minor_changes", "text": "Make minor changes",
                 "effects": {"approval": 2, "coalitionSupport": 3}},
                {"id": "no_changes", "text": "Keep the cabinet",
                 "effects": {"approval": -4, "coalitionSupport": -5}},
            ],
        },
    ],
    "opposition_events": [
        {
            "id": "no_confidence_motion",
            "title": "No Confidence Motion",
            "description": "The opposition has tabled a motion of no confidence.",
            "type": "political_crisis",
            "severity": "high",
            "options": [
                {"id": "rally_support", "text": "Rally coalition support",
                 "effects": {"approval": 2, "coalitionSupport": 8}},
                {"id": "public_campaign", "text": "Take the case to the public",
                 "effects": {"approval": 5, "coalitionSupport": -2}},
                {"id": "policy_concessions", "text": "Offer policy concessions",
                 "effects": {"approval": -2, "coalitionSupport": 5}},
            ],
        },
    ],
    "economic_events": [
        {
            "id": "interest_rate_pressure",
            "title": "Interest Rate Decision Pressure",
            "description": "Central bank independence is being questioned.",
            "type": "economic_policy",
            "severity": "medium",
            "options": [
                {"id": "defend_independence", "text": "Defend central bank independence",
                 "effects": {"gdp": 0.3, "inflation": -0.2, "approval": 3}},
                {"id": "pressure_rates", "text": "Push for a rate change",
                 "effects": {"gdp": -0.2, "inflation": 0.8, "approval": -5}},
            ],
        },
    ],
}


class PoliticalEventsEngine:
    def __init__(self, event_bus: EventBus, rng: RandomnessEngine, game_state: GameState,
                 politics_engine=None):
        self.event_bus = event_bus
        self.rng = rng
        self.game_state = game_state
        self.politics_engine = politics_engine
        self.active_events: List[Dict[str, Any]] = []
        self.resolved_events: List[Dict[str, Any]] = []
        self.last_event_week: Optional[int] = None
        self._event_counter = 0

        self._subscriptions = SubscriptionGroup(event_bus)
        self._subscriptions.subscribe(EventType.TURN_END, self.on_turn_end)
        self._subscriptions.subscribe(EventType.POLITICAL_EVENT_RESPONSE, self.on_event_response)

    def cleanup(self):
        self._subscriptions.dispose()

    def on_turn_end(self, event: GameEvent):
        game_state = event.payload.get("game_state", self.game_state)
        self.process_turn(game_state)

    def on_event_response(self, event: GameEvent):
        self.respond(self.game_state, event.payload.get("event_id"), event.payload.get("option_id"))

    def process_turn(self, game_state: GameState):
        self.update_coalition_stability(game_state)
        self.expire_overdue_events(game_state)
        self.generate_random_event(game_state)

    def update_coalition_stability(self, game_state: GameState) -> float:
        politics = game_state.politics
        approval_factor = (politics.approval - 50) * 0.1
        coalition_factor = politics.coalition_support * 0.05
        decay = (STABILITY_BASELINE - politics.coalition_stability) * 0.02
        return adjust_politics(game_state, coalition_stability=approval_factor + coalition_factor + decay).coalition_stability

    # --- Generation -----------------------------------------------------

    def event_probability(self, game_state: GameState) -> float:
        politics = game_state.politics
        probability = BASE_EVENT_PROBABILITY
        if politics.approval < 40:
            probability += 0.2
        if politics.coalition_stability < 60:
            probability += 0.15
        election = politics.next_election
        if game_state.time.weeks_until(election.week, election.year) < 52:
            probability += 0.1
        return min(probability, MAX_EVENT_PROBABILITY)

    def category_weights(self, game_state: GameState) -> Dict[str, float]:
        weights = dict(CATEGORY_WEIGHTS)
        if game_state.politics.coalition_stability < 60:
            weights["coalition_events"] += 20
        if game_state.politics.approval < 40:
            weights["opposition_events"] += 15
        if game_state.economy.gdp_growth < 1.0:
            weights["economic_events"] += 15
        return weights

    def generate_random_event(self, game_state: GameState) -> Optional[Dict[str, Any]]:
        current_week = game_state.time.weeks_elapsed
        if self.last_event_week is not None and current_week - self.last_event_week < EVENT_FREQUENCY_WEEKS:
            return None
        if self.rng.next() >= self.event_probability(game_state):
            return None

        category = self.rng.weighted_choice(self.category_weights(game_state))
        event = self.create_event(game_state, category)
        self.last_event_week = current_week
        self.trigger_event(game_state, event)
        return event

    def create_event(self, game_state: GameState, category: str, template_id: Optional[str] = None) -> Dict[str, Any]:
        templates = EVENT_TEMPLATES[category]
        if template_id is None:
            template = self.rng.choose(templates)
        else:
            template = next(t for t in templates if t["id"] == template_id)

        self._event_counter += 1
        event = copy.deepcopy(template)
        weeks = DEADLINE_WEEKS.get(template["severity"], DEFAULT_DEADLINE_WEEKS)
        event.update(
            id=f"{template['id']}_{self._event_counter}",
            template_id=template["id"],
            category=category,
            triggered_week=game_state.time.week,
            triggered_year=game_state.time.year,
            deadline=game_state.time.weeks_elapsed + weeks,
            status="pending",
        )
        return event

    def trigger_event(self, game_state: GameState, event: Dict[str, Any]):
        self.active_events.append(event)
        push_decision(game_state, {
            "id": event["id"],
            "kind": "political_event",
            "title": event["title"],
            "options": [o["id"] for o in event["options"]],
            "deadline": event["deadline"],
        })
        record_event(game_state, {
            "title": event["title"],
            "description": event["description"],
            "type": "political",
            "severity": event["severity"],
            "requires_response": True,
        })
        logger.info("Political event triggered: %s", event["id"])
        self.event_bus.publish(EventType.POLITICAL_EVENT_TRIGGERED, {"event": event})

    # --- Responses ------------------------------------------------------

    def respond(self, game_state: GameState, event_id, option_id) -> Optional[Dict[str, float]]:
        """Resolve an active event with the chosen option. Unknown ids are ignored."""
        event = next((e for e in self.active_events if e["id"] == event_id), None)
        if event is None:
            logger.debug("Ignoring response to unknown political event %s", event_id)
            return None
        option = next((o for o in event["options"] if o["id"] == option_id), None)
        if option is None:
            logger.debug("Ignoring unknown option %s for %s", option_id, event_id)
            return None

        effects = self.apply_effects(game_state, option["effects"])
        event.update(status="resolved", response=option_id,
                     resolved_week=game_state.time.week, resolved_year=game_state.time.year)
        self.active_events.remove(event)
        self.resolved_events.append(event)
        del self.resolved_events[:-52]
        pop_decision(game_state, event_id)

        if (event["type"] == "policy_vote" and option_id in VOTE_TRIGGERING_OPTIONS
                and self.politics_engine is not None):
            self.politics_engine.schedule_vote(game_state, event["title"])

        record_event(game_state, {
            "title": f"Resolved: {event['title']}",
            "description": option["text"],
            "type": "political",
            "severity": "neutral",
        })
        self.event_bus.publish(EventType.POLITICAL_EVENT_RESOLVED, {
            "event": event,
            "option": option,
            "effects": effects,
        })
        return effects

    def apply_effects(self, game_state: GameState, effects: Dict[str, float]) -> Dict[str, float]:
        actual = {}

        def vary(value):
            return value * (0.8 + self.rng.next() * EFFECT_VARIANCE)

        if "approval" in effects:
            actual["approval"] = vary(effects["approval"])
            adjust_politics(game_state, approval=actual["approval"])

        if "gdp" in effects:
            actual["gdp"] = vary(effects["gdp"])
            growth = clamp(game_state.economy.gdp_growth + actual["gdp"], -5.0, 10.0)
            update_economy(game_state, gdp_growth=growth)

        if "debt" in effects:
            # Expressed in points of debt-to-GDP
            actual["debt"] = vary(effects["debt"])
            economy = game_state.economy
            ratio = clamp(economy.debt_ratio + actual["debt"], 0.0, 200.0)
            update_economy(game_state, debt=ratio / 100 * economy.gdp)

        if "inflation" in effects:
            actual["inflation"] = vary(effects["inflation"])
            update_economy(game_state, inflation=game_state.economy.inflation + actual["inflation"])

        if "coalitionSupport" in effects:
            change = vary(effects["coalitionSupport"])
            actual["coalitionSupport"] = change
            adjust_politics(game_state, coalition_stability=change)
            for party in game_state.politics.coalition:
                adjust_party_support(party, change * (0.5 + self.rng.next() * 0.5))

        return actual

    def expire_overdue_events(self, game_state: GameState):
        """Unanswered events past their deadline resolve with their first option."""
        now = game_state.time.weeks_elapsed
        for event in [e for e in self.active_events if e["deadline"] < now]:
            logger.info("Political event %s expired without a response", event["id"])
            self.respond(game_state, event["id"], event["options"][0]["id"])

    # --- Reporting ------------------------------------------------------

    def political_pressure(self, game_state: GameState) -> float:
        pressure = 0
        if game_state.politics.approval < 40:
            pressure += 30
        if game_state.politics.coalition_stability < 60:
            pressure += 25
        if len(self.active_events) > 2:
            pressure += 20
        if game_state.economy.gdp_growth < 1:
            pressure += 15
        return min(100, pressure)

    def to_dict(self):
        return {
            "active_events": copy.deepcopy(self.active_events),
            "resolved_events": copy.deepcopy(self.resolved_events),
            "last_event_week": self.last_event_week,
            "event_counter": self._event_counter,
        }

    def from_dict(self, data):
        self.active_events = copy.deepcopy(data.get("active_events", []))
        self.resolved_events = copy.deepcopy(data.get("resolved_events", []))
        self.last_event_week = data.get("last_event_week")
        self._event_counter = data.get("event_counter", 0)
