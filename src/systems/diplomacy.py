from dataclasses import dataclass
from typing import Dict, List, Optional, Any

from core.event_system import EventBus, EventType, GameEvent, SubscriptionGroup
from core.logger import get_logger
from core.randomness import RandomnessEngine
from core.state import GameState, adjust_economy, adjust_politics, set_relation, record_event, clamp

logger = get_logger(__name__)

INCIDENT_MEMORY_WEEKS = 12
INTERNATIONAL_CRISIS_CHANCE = 0.03
TRADE_DISPUTE_CHANCE = 0.01
CONFLICT_CHANGE_CHANCE = 0.05
CONFLICT_ESCALATION_SHARE = 0.3
ALLIANCE_THRESHOLD = 60.0
GLOBAL_GROWTH_RANGE = (-2.0, 5.0)


@dataclass(frozen=True)
class Country:
    name: str
    economic_power: float
    political_system: str
    region: str
    trade_importance: float
    gdp: float


COUNTRIES = {
    "USA": Country("United States", 95, "democracy", "North America", 85, 21e12),
    "CHN": Country("China", 85, "authoritarian", "East Asia", 90, 14e12),
    "DEU": Country("Germany", 70, "democracy", "Europe", 95, 4e12),
    "GBR": Country("United Kingdom", 65, "democracy", "Europe", 80, 3.1e12),
    "JPN": Country("Japan", 75, "democracy", "East Asia", 85, 5e12),
    "RUS": Country("Russia", 45, "authoritarian", "Europe/Asia", 70, 1.7e12),
    "IND": Country("India", 55, "democracy", "South Asia", 75, 3.2e12),
    "FRA": Country("France", 60, "democracy", "Europe", 85, 2.9e12),
    "BRA": Country("Brazil", 40, "democracy", "South America", 60, 2.1e12),
    "CAN": Country("Canada", 50, "democracy", "North America", 85, 1.8e12),
}

HISTORICAL_TIES = {"USA": 5, "GBR": 10, "CAN": 15, "DEU": 5, "FRA": 5, "CHN": -5, "RUS": -10}

REGIONAL_STABILITY = {
    "North America": 0.8,
    "Europe": 0.7,
    "East Asia": 0.6,
    "South Asia": 0.5,
    "South America": 0.6,
}

TRADE_ISSUES = (
    "tariff regulations",
    "intellectual property rights",
    "agricultural subsidies",
    "manufacturing standards",
    "import quotas",
    "environmental standards",
)

# type -> (description, severity min, severity spread, growth impact, approval drain)
INTERNATIONAL_CRISES = {
    "regional_conflict": ("Regional conflict threatens international stability", 30, 40, -0.5, 0.1),
    "trade_war": ("Major trade war between global powers", 25, 50, -1.0, 0.05),
    "humanitarian_crisis": ("Humanitarian crisis requires international response", 20, 60, -0.2, 0.05),
}

# Minimum average relation for each standing label, checked top-down
STANDING_BANDS = (
    (75.0, "Excellent"),
    (60.0, "Good"),
    (40.0, "Neutral"),
    (25.0, "Poor"),
)


def international_standing(game_state: GameState) -> str:
    relations = game_state.diplomacy.relations
    if not relations:
        return "Neutral"
    average = sum(relations.values()) / len(relations)
    for threshold, label in STANDING_BANDS:
        if average >= threshold:
            return label
    return "Hostile"


class DiplomacyEngine:
    """
    Bilateral relations with ten partner countries, trade agreements,
    incidents, sanctions, alliances and international crises.

    Relations follow the same damped feedback as crisis severity: a handful
    of signed contributions per turn plus regression toward 50.
    """

    def __init__(self, event_bus: EventBus, rng: RandomnessEngine, game_state: GameState):
        self.event_bus = event_bus
        self.rng = rng
        self.game_state = game_state
        self._counter = 0

        if not game_state.diplomacy.relations:
            self.initialize_relations(game_state)

        self._subscriptions = SubscriptionGroup(event_bus)
        self._subscriptions.subscribe(EventType.TURN_END, self.on_turn_end)
        self._subscriptions.subscribe(EventType.TRADE_NEGOTIATE, self.on_trade_negotiate)

    def cleanup(self):
        self._subscriptions.dispose()

    def on_turn_end(self, event: GameEvent):
        game_state = event.payload.get("game_state", self.game_state)
        self.process_turn(game_state)

    def on_trade_negotiate(self, event: GameEvent):
        self.negotiate_trade_agreement(self.game_state, event.payload.get("country"),
                                       event.payload.get("agreement_type", "bilateral_trade"))

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    # --- Relations ------------------------------------------------------

    def initialize_relations(self, game_state: GameState):
        for code in COUNTRIES:
            set_relation(game_state.diplomacy, code, self.initial_relation(code, game_state))

    def economic_similarity(self, code: str, game_state: GameState) -> float:
        return 1 - abs(COUNTRIES[code].economic_power - game_state.country.economic_power) / 100

    def initial_relation(self, code: str, game_state: GameState) -> float:
        country = COUNTRIES[code]
        home = game_state.country
        relation = 50.0

        if country.political_system == home.political_system:
            relation += 10
        elif (country.political_system == "democracy") != (home.political_system == "democracy"):
            relation -= 5

        relation += self.economic_similarity(code, game_state) * 10
        if country.region == home.region:
            relation += 15
        relation += HISTORICAL_TIES.get(code, 0)
        return clamp(relation + self.rng.noise(20), 0.0, 100.0)

    def ideology_alignment(self, code: str, game_state: GameState) -> float:
        alignment = 0.5
        if COUNTRIES[code].political_system == game_state.country.political_system:
            alignment += 0.3
        policy_alignment = 0.5 + self.rng.noise(0.4)
        return clamp(alignment + policy_alignment * 0.2, 0.0, 1.0)

    def incident_effect(self, code: str, game_state: GameState) -> float:
        now = game_state.time.weeks_elapsed
        total = 0.0
        for incident in game_state.diplomacy.incidents:
            age = now - incident["weeks_elapsed"]
            if incident["country"] == code and age <= INCIDENT_MEMORY_WEEKS:
                total += incident["effect"] * (1 - age / INCIDENT_MEMORY_WEEKS)
        return total

    def has_trade_agreement(self, code: str, game_state: GameState) -> bool:
        return any(a["country"] == code for a in game_state.diplomacy.trade_agreements)

    def relation_change(self, code: str, game_state: GameState) -> float:
        diplomacy = game_state.diplomacy
        current = diplomacy.relations.get(code, 50.0)
        change = 0.0

        if self.has_trade_agreement(code, game_state):
            change += 0.1
        change += (self.ideology_alignment(code, game_state) - 0.5) * 0.1
        if code in diplomacy.alliances:
            change += 0.1
        if code in diplomacy.sanctions:
            change -= 0.3
        change += self.incident_effect(code, game_state)

        stability = REGIONAL_STABILITY.get(COUNTRIES[code].region, 0.5)
        change += (stability - 0.5) * 0.02
        change += (50 - current) * 0.01
        change += self.rng.noise(0.2)
        return change

    def update_relations(self, game_state: GameState):
        diplomacy = game_state.diplomacy
        for code in COUNTRIES:
            if code not in diplomacy.relations:
                set_relation(diplomacy, code, self.initial_relation(code, game_state))
            change = self.relation_change(code, game_state)
            set_relation(diplomacy, code, diplomacy.relations[code] + change)

    # --- Turn processing ------------------------------------------------

    def process_turn(self, game_state: GameState):
        self.update_relations(game_state)
        self.process_trade(game_state)
        self.process_conflicts(game_state)
        self.check_for_international_crisis(game_state)
        self.update_global_economy(game_state)
        self._forget_old_incidents(game_state)

        self.event_bus.publish(EventType.INTERNATIONAL_UPDATE, {
            "relations": dict(game_state.diplomacy.relations),
            "trade_agreements": len(game_state.diplomacy.trade_agreements),
            "conflicts": list(game_state.diplomacy.conflicts),
            "global_growth": game_state.diplomacy.global_growth,
            "standing": international_standing(game_state),
        })

    def process_trade(self, game_state: GameState):
        diplomacy = game_state.diplomacy
        for agreement in list(diplomacy.trade_agreements):
            adjust_economy(game_state, gdp_growth=agreement["economic_benefit"] / 52)
            code = agreement["country"]
            set_relation(diplomacy, code, diplomacy.relations.get(code, 50.0) + 0.05)
            if self.rng.next() < TRADE_DISPUTE_CHANCE:
                self.trade_dispute(game_state, agreement)

    def trade_dispute(self, game_state: GameState, agreement: Dict[str, Any]) -> Dict[str, Any]:
        code = agreement["country"]
        dispute = {
            "id": self._next_id("trade_dispute"),
            "country": code,
            "severity": self.rng.uniform(10, 40),
            "description": f"Trade dispute with {COUNTRIES[code].name} over {self.rng.choose(TRADE_ISSUES)}",
            "economic_impact": -self.rng.next() * 0.01,
        }
        diplomacy = game_state.diplomacy
        set_relation(diplomacy, code, diplomacy.relations.get(code, 50.0) - 5)
        adjust_economy(game_state, gdp_growth=dispute["economic_impact"])
        record_event(game_state, {"title": dispute["description"], "type": "international", "severity": "negative"})
        self.event_bus.publish(EventType.INTERNATIONAL_INCIDENT, {"incident": dispute, "agreement": agreement})
        return dispute

    def process_conflicts(self, game_state: GameState):
        for conflict in list(game_state.diplomacy.conflicts):
            conflict["duration"] += 1
            adjust_economy(game_state, gdp_growth=-conflict["economic_drain"])
            adjust_politics(game_state, approval=-conflict["approval_drain"])

            if self.rng.next() < CONFLICT_CHANGE_CHANCE:
                if self.rng.next() < CONFLICT_ESCALATION_SHARE:
                    self.escalate_conflict(conflict)
                else:
                    self.resolve_conflict(game_state, conflict)

    def escalate_conflict(self, conflict: Dict[str, Any]):
        conflict["severity"] = min(100.0, conflict["severity"] + 10)
        conflict["economic_drain"] *= 1.5
        conflict["approval_drain"] *= 1.3
        logger.info("International crisis %s escalated", conflict["id"])

    def resolve_conflict(self, game_state: GameState, conflict: Dict[str, Any]):
        game_state.diplomacy.conflicts.remove(conflict)
        adjust_politics(game_state, approval=2)
        record_event(game_state, {
            "title": f"{conflict['description']} has eased",
            "type": "international",
            "severity": "positive",
        })
        logger.info("International crisis %s resolved after %d weeks", conflict["id"], conflict["duration"])

    def check_for_international_crisis(self, game_state: GameState) -> Optional[Dict[str, Any]]:
        if self.rng.next() < INTERNATIONAL_CRISIS_CHANCE:
            return self.generate_international_crisis(game_state)
        return None

    def generate_international_crisis(self, game_state: GameState, crisis_type: Optional[str] = None) -> Dict[str, Any]:
        if crisis_type is None:
            crisis_type = self.rng.choose(list(INTERNATIONAL_CRISES))
        elif crisis_type not in INTERNATIONAL_CRISES:
            raise ValueError(f"Unknown international crisis type: {crisis_type}")

        description, severity_min, severity_spread, impact, approval_drain = INTERNATIONAL_CRISES[crisis_type]
        conflict = {
            "id": self._next_id("intl_crisis"),
            "type": crisis_type,
            "description": description,
            "severity": severity_min + self.rng.next() * severity_spread,
            "economic_drain": abs(impact) / 10,
            "approval_drain": approval_drain,
            "duration": 0,
            "start_week": game_state.time.week,
            "start_year": game_state.time.year,
        }
        game_state.diplomacy.conflicts.append(conflict)
        adjust_economy(game_state, gdp_growth=impact)
        record_event(game_state, {"title": description, "type": "international", "severity": "negative"})
        logger.info("International crisis: %s", crisis_type)
        self.event_bus.publish(EventType.INTERNATIONAL_CRISIS, {"crisis": conflict})
        return conflict

    def update_global_economy(self, game_state: GameState):
        diplomacy = game_state.diplomacy
        diplomacy.global_growth = clamp(diplomacy.global_growth + self.rng.noise(0.1), *GLOBAL_GROWTH_RANGE)
        adjust_economy(game_state, gdp_growth=diplomacy.global_growth * 0.1 / 52)

    def _forget_old_incidents(self, game_state: GameState):
        now = game_state.time.weeks_elapsed
        game_state.diplomacy.incidents = [
            i for i in game_state.diplomacy.incidents
            if now - i["weeks_elapsed"] <= INCIDENT_MEMORY_WEEKS
        ]

    # --- Player actions -------------------------------------------------

    def mutual_benefit(self, code: str, game_state: GameState) -> float:
        return (self.economic_similarity(code, game_state) + COUNTRIES[code].trade_importance / 100) / 2

    def negotiation_probability(self, code: str, game_state: GameState) -> float:
        relationship = game_state.diplomacy.relations.get(code, 50.0) / 100
        political_will = game_state.politics.approval / 100 * 0.5 + 0.5
        return (relationship + self.mutual_benefit(code, game_state) + political_will) / 3

    def negotiate_trade_agreement(self, game_state: GameState, code,
                                  agreement_type: str = "bilateral_trade") -> Optional[Dict[str, Any]]:
        """Returns the new agreement, or None for an unknown country or a failed round."""
        if code not in COUNTRIES:
            logger.debug("Ignoring trade negotiation with unknown country %s", code)
            return None
        if self.has_trade_agreement(code, game_state):
            logger.debug("Trade agreement with %s already in force", code)
            return None

        diplomacy = game_state.diplomacy
        probability = self.negotiation_probability(code, game_state)
        if self.rng.next() >= probability:
            set_relation(diplomacy, code, diplomacy.relations.get(code, 50.0) - 2)
            self.event_bus.publish(EventType.TRADE_AGREEMENT, {
                "country": code,
                "success": False,
                "probability": probability,
            })
            return None

        agreement = {
            "id": self._next_id(f"trade_{code}"),
            "country": code,
            "type": agreement_type,
            "economic_benefit": self.mutual_benefit(code, game_state) * 0.02,
            "volume": min(game_state.economy.gdp, COUNTRIES[code].gdp) * 0.001
            * diplomacy.relations.get(code, 50.0) / 100,
            "week": game_state.time.week,
            "year": game_state.time.year,
        }
        diplomacy.trade_agreements.append(agreement)
        set_relation(diplomacy, code, diplomacy.relations.get(code, 50.0) + 10)
        record_event(game_state, {
            "title": f"Trade agreement signed with {COUNTRIES[code].name}",
            "type": "international",
            "severity": "positive",
        })
        self.event_bus.publish(EventType.TRADE_AGREEMENT, {
            "country": code,
            "success": True,
            "agreement": agreement,
        })
        return agreement

    def record_incident(self, game_state: GameState, code, effect: float, description: str = "") -> Optional[Dict[str, Any]]:
        if code not in COUNTRIES:
            return None
        incident = {
            "country": code,
            "effect": effect,
            "description": description or f"Diplomatic incident with {COUNTRIES[code].name}",
            "weeks_elapsed": game_state.time.weeks_elapsed,
        }
        game_state.diplomacy.incidents.append(incident)
        self.event_bus.publish(EventType.INTERNATIONAL_INCIDENT, {"incident": incident})
        return incident

    def impose_sanctions(self, game_state: GameState, code) -> bool:
        sanctions = game_state.diplomacy.sanctions
        if code not in COUNTRIES or code in sanctions:
            return False
        sanctions.append(code)
        self.record_incident(game_state, code, -1.0, f"Sanctions imposed on {COUNTRIES[code].name}")
        return True

    def lift_sanctions(self, game_state: GameState, code) -> bool:
        if code not in game_state.diplomacy.sanctions:
            return False
        game_state.diplomacy.sanctions.remove(code)
        return True

    def form_alliance(self, game_state: GameState, code) -> bool:
        diplomacy = game_state.diplomacy
        if code not in COUNTRIES or code in diplomacy.alliances or code in diplomacy.sanctions:
            return False
        if diplomacy.relations.get(code, 0.0) < ALLIANCE_THRESHOLD:
            return False
        diplomacy.alliances.append(code)
        record_event(game_state, {
            "title": f"Alliance formed with {COUNTRIES[code].name}",
            "type": "international",
            "severity": "positive",
        })
        return True

    # --- Reporting ------------------------------------------------------

    def overview(self, game_state: GameState) -> Dict[str, Any]:
        diplomacy = game_state.diplomacy
        return {
            "relations": {code: {"name": COUNTRIES[code].name, "relation": value}
                          for code, value in diplomacy.relations.items() if code in COUNTRIES},
            "trade_agreements": list(diplomacy.trade_agreements),
            "alliances": list(diplomacy.alliances),
            "sanctions": list(diplomacy.sanctions),
            "conflicts": list(diplomacy.conflicts),
            "global_growth": diplomacy.global_growth,
            "standing": international_standing(game_state),
        }

    def to_dict(self):
        return {"counter": self._counter}

    def from_dict(self, data):
        self._counter = data.get("counter", 0)
