"""
Opposition AI

Adapts a strategy and an aggressiveness level from approval, time to the
next election and economic health, then rolls independent trials for
criticism, counter-proposals and debate calls each week.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any

from core.event_system import EventBus, EventType, GameEvent, SubscriptionGroup
from core.logger import get_logger
from core.randomness import RandomnessEngine
from core.state import GameState, adjust_politics, record_event, clamp

logger = get_logger(__name__)

STRATEGIES = ("balanced", "aggressive", "defensive", "opportunistic")

CRITICISM_RATE = 0.4
PROPOSAL_RATE = 0.6
DEBATE_RATE = 0.2
DEBATE_FOLLOW_THROUGH = 0.7
APPROVAL_DROP_REACTION = 0.6
ACTION_HISTORY_LIMIT = 10
DEBATE_HISTORY_LIMIT = 10
DEBATE_RESPONSE_WEEKS = 2

SUPPORT_RANGE = (5.0, 45.0)
APPROVAL_RANGE = (15.0, 70.0)

DEBATE_RESPONSE_MODIFIERS = {
    "strong_defense": 0.2,
    "compromise": 0.1,
    "deflect": -0.1,
    "weak_response": -0.2,
    "no_response": -0.3,
}

GENERIC_DEBATE_TOPICS = ("budget allocation", "healthcare reform", "education funding", "infrastructure")

DEBATE_ARGUMENTS = {
    "unemployment": (
        "Government policies have failed to create sustainable employment",
        "Small businesses need more support to hire workers",
        "Infrastructure investment would create jobs immediately",
    ),
    "inflation": (
        "Rising costs are hurting working families the most",
        "Government spending is driving inflation higher",
        "Price controls are needed on essential goods",
    ),
    "healthcare": (
        "The health system is failing those who need it most",
        "Public health services need more funding",
        "Private partnerships could improve efficiency",
    ),
}

TOPIC_ARGUMENT_KEYS = {
    "unemployment crisis": "unemployment",
    "cost of living": "inflation",
    "healthcare reform": "healthcare",
}


@dataclass
class OppositionParty:
    id: str
    name: str
    support: float
    ideology: str
    aggressiveness: float
    expertise: List[str] = field(default_factory=list)
    approval: float = 40.0

    @classmethod
    def from_dict(cls, data):
        return cls(**data)


def default_parties() -> List[OppositionParty]:
    return [
        OppositionParty("main_opposition", "Main Opposition", 30.0, "center-right", 0.7,
                        ["economy", "defense"], 45.0),
        OppositionParty("minor_opposition", "Progressive Alliance", 15.0, "left", 0.4,
                        ["social", "environment"], 35.0),
        OppositionParty("populist_party", "People's Voice", 8.0, "populist", 0.9,
                        ["populism", "media"], 25.0),
    ]


def economic_health(game_state: GameState) -> float:
    """Average of normalised unemployment, inflation and growth scores, in [0, 1]."""
    economy = game_state.economy
    unemployment_score = clamp((10 - economy.unemployment) / 5, 0.0, 1.0)
    inflation_score = clamp((5 - economy.inflation) / 3, 0.0, 1.0)
    growth_score = clamp(economy.gdp_growth / 4, 0.0, 1.0)
    return (unemployment_score + inflation_score + growth_score) / 3


class OppositionAI:
    def __init__(self, event_bus: EventBus, rng: RandomnessEngine, game_state: GameState):
        self.event_bus = event_bus
        self.rng = rng
        self.game_state = game_state
        self.parties: List[OppositionParty] = default_parties()
        self.strategy = "balanced"
        self.aggressiveness = 0.5
        self.recent_actions: List[Dict[str, Any]] = []
        self.debates: List[Dict[str, Any]] = []
        self._debate_counter = 0

        self._subscriptions = SubscriptionGroup(event_bus)
        self._subscriptions.subscribe(EventType.TURN_END, self.on_turn_end)
        self._subscriptions.subscribe(EventType.APPROVAL_CHANGE, self.on_approval_change)
        self._subscriptions.subscribe(EventType.POLICY_IMPLEMENTED, self.on_policy_implemented)
        self._subscriptions.subscribe(EventType.DEBATE_RESPONSE, self.on_debate_response)

    def cleanup(self):
        self._subscriptions.dispose()

    # --- Event handlers -------------------------------------------------

    def on_turn_end(self, event: GameEvent):
        game_state = event.payload.get("game_state", self.game_state)
        self.process_turn(game_state)

    def on_approval_change(self, event: GameEvent):
        """Sharp approval drops draw a deferred jab from the opposition."""
        change = event.payload.get("change", 0)
        if change >= -3 or self.rng.next() >= self.aggressiveness * APPROVAL_DROP_REACTION:
            return
        party = self.select_party()
        action = {
            "type": "criticism",
            "target": "leadership",
            "severity": "medium",
            "message": f"{party.name} questions the government's leadership as approval falls",
            "party": party.id,
            "impact": {"support": 0.5},
        }
        self._apply_support_impact(action["impact"])
        self._remember(action, self.game_state)
        self.event_bus.enqueue(EventType.OPPOSITION_ACTION, {"action": action, "status": self.status()})

    def on_policy_implemented(self, event: GameEvent):
        response = self.respond_to_policy(event.payload)
        self.event_bus.enqueue(EventType.OPPOSITION_POLICY_RESPONSE, {
            "policy": dict(event.payload),
            "response": response,
        })

    def on_debate_response(self, event: GameEvent):
        self.conclude_debate(self.game_state, event.payload.get("debate_id"),
                             event.payload.get("response_type", "no_response"))

    # --- Turn processing ------------------------------------------------

    def process_turn(self, game_state: GameState):
        self.update_strategy(game_state)
        self.generate_actions(game_state)
        self.expire_debates(game_state)
        self.update_party_standings(game_state)

    def weeks_to_election(self, game_state: GameState) -> int:
        election = game_state.politics.next_election
        return max(0, game_state.time.weeks_until(election.week, election.year))

    def update_strategy(self, game_state: GameState):
        approval = game_state.politics.approval
        if approval < 40:
            self.aggressiveness = min(1.0, self.aggressiveness + 0.1)
            self.strategy = "aggressive"
        elif approval > 60:
            self.aggressiveness = max(0.3, self.aggressiveness - 0.05)
            self.strategy = "defensive"

        if self.weeks_to_election(game_state) < 20:
            self.aggressiveness = min(1.0, self.aggressiveness + 0.2)

        if economic_health(game_state) < 0.4:
            self.strategy = "opportunistic"
            self.aggressiveness = min(1.0, self.aggressiveness + 0.15)

    def generate_actions(self, game_state: GameState) -> List[Dict[str, Any]]:
        actions = []
        if self.rng.next() < self.aggressiveness * CRITICISM_RATE:
            actions.append(self.generate_criticism(game_state))
        if self.rng.next() < self.aggressiveness * PROPOSAL_RATE:
            actions.append(self.generate_alternative_policy(game_state))
        if self.rng.next() < self.aggressiveness * DEBATE_RATE:
            actions.append(self.generate_debate_call(game_state))

        executed = [a for a in actions if a]
        for action in executed:
            self.execute_action(action, game_state)
        return executed

    def generate_criticism(self, game_state: GameState) -> Optional[Dict[str, Any]]:
        economy = game_state.economy
        candidates = []
        if economy.unemployment > 6.5:
            candidates.append(("unemployment", "high",
                               "Government policies have failed to address rising unemployment",
                               {"approval": -2.0, "support": 1.0}))
        if economy.inflation > 3.5:
            candidates.append(("inflation", "medium",
                               "Inflation is squeezing household budgets",
                               {"approval": -1.5, "support": 0.5}))
        if economy.gdp_growth < 1.0:
            candidates.append(("growth", "high",
                               "The economy has stagnated under this government",
                               {"approval": -2.5, "support": 1.5}))
        if game_state.politics.approval < 45:
            candidates.append(("leadership", "medium",
                               "Public confidence is gone; the country needs a new direction",
                               {"approval": -1.0, "support": 0.8}))
        if not candidates:
            return None

        target, severity, message, impact = self.rng.choose(candidates)
        return {
            "type": "criticism",
            "target": target,
            "severity": severity,
            "message": message,
            "party": self.select_party().id,
            "impact": impact,
        }

    def generate_alternative_policy(self, game_state: GameState) -> Optional[Dict[str, Any]]:
        economy = game_state.economy
        if economy.unemployment > 5.5:
            return {
                "type": "policy_proposal",
                "area": "employment",
                "title": "Job Creation Initiative",
                "message": "An employment programme for young and long-term unemployed workers",
                "party": self.select_party().id,
                "impact": {"approval": 1.5},
            }
        if economy.inflation > 3.0:
            return {
                "type": "policy_proposal",
                "area": "monetary",
                "title": "Inflation Control Measures",
                "message": "Targeted intervention to contain rising prices",
                "party": self.select_party().id,
                "impact": {"approval": 1.0},
            }
        return None

    def generate_debate_call(self, game_state: GameState) -> Optional[Dict[str, Any]]:
        if self.rng.next() >= DEBATE_FOLLOW_THROUGH:
            return None
        return {
            "type": "debate_call",
            "title": "Parliamentary Question Time",
            "message": "The opposition demands answers on recent decisions",
            "urgency": "high" if self.aggressiveness > 0.7 else "medium",
            "party": self.select_party().id,
            "topics": self.debate_topics(game_state),
        }

    def debate_topics(self, game_state: GameState) -> List[str]:
        economy = game_state.economy
        topics = []
        if economy.unemployment > 6.0:
            topics.append("unemployment crisis")
        if economy.inflation > 3.0:
            topics.append("cost of living")
        if economy.gdp_growth < 1.5:
            topics.append("economic stagnation")
        if game_state.politics.approval < 45:
            topics.append("leadership crisis")
        topics.append(self.rng.choose(GENERIC_DEBATE_TOPICS))
        return topics[:3]

    def execute_action(self, action: Dict[str, Any], game_state: GameState):
        impact = action.get("impact", {})
        if "approval" in impact and action["type"] == "criticism":
            adjust_politics(game_state, approval=impact["approval"])
        self._apply_support_impact(impact)
        self._remember(action, game_state)

        if action["type"] == "debate_call":
            self.initiate_debate(game_state, action["topics"][0], action["urgency"], action["party"])

        logger.info("Opposition action: %s - %s", action["type"], action.get("title") or action.get("message"))
        self.event_bus.publish(EventType.OPPOSITION_ACTION, {"action": action, "status": self.status()})

    def _apply_support_impact(self, impact: Dict[str, float]):
        if "support" not in impact:
            return
        for party in self.parties:
            party.support = clamp(party.support + impact["support"] * party.support / 100, *SUPPORT_RANGE)

    def _remember(self, action: Dict[str, Any], game_state: GameState):
        entry = dict(action)
        entry.update(week=game_state.time.week, year=game_state.time.year)
        self.recent_actions.append(entry)
        del self.recent_actions[:-ACTION_HISTORY_LIMIT]

    def select_party(self) -> OppositionParty:
        """Support-weighted draw over the opposition parties."""
        chosen = self.rng.weighted_choice({p.id: p.support for p in self.parties})
        return next((p for p in self.parties if p.id == chosen), self.parties[0])

    def update_party_standings(self, game_state: GameState):
        health = economic_health(game_state)
        for party in self.parties:
            if game_state.politics.approval < 40:
                party.support += self.rng.next() * 0.5
                party.approval += self.rng.next() * 1.0
            if health < 0.5:
                party.support += self.rng.next() * 0.3
            party.support = clamp(party.support, *SUPPORT_RANGE)
            party.approval = clamp(party.approval, *APPROVAL_RANGE)

    # --- Policies -------------------------------------------------------

    def respond_to_policy(self, policy: Dict[str, Any]) -> Dict[str, Any]:
        party = self.select_party()
        policy_type = policy.get("type", "")
        economic = policy_type in ("fiscal_stimulus", "tax_cut", "tax_increase", "interest_rate_change",
                                   "trade_promotion", "regulation_decrease", "agricultural_subsidies")
        social = policy_type in ("education_investment", "healthcare_investment",
                                 "minimum_wage_increase", "green_energy_investment")

        if economic and party.ideology == "center-right":
            return {"party": party.id, "stance": "oppose", "reason": "fiscal_responsibility",
                    "message": f"{party.name} opposes the policy over its fiscal impact",
                    "severity": party.aggressiveness}
        if social and party.ideology == "left":
            return {"party": party.id, "stance": "support_with_amendments", "reason": "insufficient_scope",
                    "message": f"{party.name} backs the direction but wants stronger measures",
                    "severity": 0.3}
        stance = "oppose" if self.rng.next() < 0.6 else "conditional_support"
        return {"party": party.id, "stance": stance, "reason": "political_disagreement",
                "message": f"{party.name} questions whether this approach will work",
                "severity": party.aggressiveness * 0.7}

    # --- Debates --------------------------------------------------------

    def initiate_debate(self, game_state: GameState, topic: str, urgency: str = "medium",
                        party_id: Optional[str] = None) -> Dict[str, Any]:
        party = next((p for p in self.parties if p.id == party_id), None) or self.select_party()
        self._debate_counter += 1
        arguments = DEBATE_ARGUMENTS.get(TOPIC_ARGUMENT_KEYS.get(topic, topic),
                                         ("This policy requires serious reconsideration",))
        debate = {
            "id": f"debate_{self._debate_counter}",
            "topic": topic,
            "urgency": urgency,
            "initiator": party.id,
            "status": "pending",
            "started": game_state.time.weeks_elapsed,
            "arguments": [
                {"argument": text, "strength": self.rng.next() * 0.5 + 0.5, "party": party.name}
                for text in arguments
            ],
            "public_interest": self.rng.next() * 0.5 + 0.3,
        }
        self.debates.append(debate)
        self.event_bus.publish(EventType.DEBATE_INITIATED, {
            "debate": debate,
            "required_response": urgency == "high",
        })
        return debate

    def conclude_debate(self, game_state: GameState, debate_id, response_type: str) -> Optional[Dict[str, Any]]:
        debate = next((d for d in self.debates if d["id"] == debate_id and d["status"] == "pending"), None)
        if debate is None:
            logger.debug("Ignoring response to unknown debate %s", debate_id)
            return None

        base = self.rng.next() * 0.4 + 0.3
        score = clamp(base + DEBATE_RESPONSE_MODIFIERS.get(response_type, 0.0), 0.0, 1.0)
        if score > 0.6:
            result = "player_victory"
            impact = {"approval": 1 + self.rng.next() * 1.5, "support": -(self.rng.next() * 0.5)}
        elif score > 0.4:
            result = "draw"
            impact = {"approval": self.rng.next() * 0.5 - 0.25, "support": 0.0}
        else:
            result = "opposition_victory"
            impact = {"approval": -(1 + self.rng.next() * 1.5), "support": self.rng.next() * 0.8}

        adjust_politics(game_state, approval=impact["approval"])
        initiator = next((p for p in self.parties if p.id == debate["initiator"]), None)
        if initiator is not None:
            initiator.support = clamp(initiator.support + impact["support"], *SUPPORT_RANGE)

        debate.update(status="completed", player_response=response_type)
        self._prune_debates()
        outcome = {"outcome": result, "score": score, "impact": impact}
        record_event(game_state, {
            "title": f"Debate on {debate['topic']}: {result.replace('_', ' ')}",
            "type": "debate",
            "severity": "positive" if result == "player_victory" else "neutral",
        })
        self.event_bus.publish(EventType.DEBATE_CONCLUDED, {
            "debate": debate,
            "outcome": outcome,
            "impact": impact,
        })
        return outcome

    def expire_debates(self, game_state: GameState):
        now = game_state.time.weeks_elapsed
        for debate in [d for d in self.debates if d["status"] == "pending"]:
            if now - debate["started"] >= DEBATE_RESPONSE_WEEKS:
                self.conclude_debate(game_state, debate["id"], "no_response")

    def _prune_debates(self):
        completed = [d for d in self.debates if d["status"] == "completed"]
        stale = {id(d) for d in completed[:-DEBATE_HISTORY_LIMIT]}
        self.debates = [d for d in self.debates if id(d) not in stale]

    # --- Reporting ------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "aggressiveness": self.aggressiveness,
            "parties": [asdict(p) for p in self.parties],
            "recent_actions": self.recent_actions[-5:],
            "total_support": sum(p.support for p in self.parties),
            "average_approval": sum(p.approval for p in self.parties) / len(self.parties),
        }

    def to_dict(self):
        return {
            "parties": [asdict(p) for p in self.parties],
            "strategy": self.strategy,
            "aggressiveness": self.aggressiveness,
            "recent_actions": list(self.recent_actions),
            "debates": list(self.debates),
            "debate_counter": self._debate_counter,
        }

    def from_dict(self, data):
        self.parties = [OppositionParty.from_dict(p) for p in data.get("parties", [])] or default_parties()
        self.strategy = data.get("strategy", "balanced")
        self.aggressiveness = data.get("aggressiveness", 0.5)
        self.recent_actions = list(data.get("recent_actions", []))
        self.debates = list(data.get("debates", []))
        self._debate_counter = data.get("debate_counter", len(self.debates))
