"""
Crisis Engine

Crises are first-class incidents whose severity, media attention and
public concern feed back into each other every week. Player responses
build a management score; at 100 the crisis resolves. A crisis that
reaches severity 90 before that spawns a related crisis once.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple

from core.event_system import EventBus, EventType, GameEvent, SubscriptionGroup
from core.logger import get_logger
from core.randomness import RandomnessEngine
from core.state import (
    GameState, Crisis, adjust_crisis, adjust_economy, adjust_politics, record_event, clamp,
)

logger = get_logger(__name__)

# Weights of each feedback term in the severity update
ESCALATION_FACTORS = {
    "media_attention": 0.2,
    "public_concern": 0.3,
    "opposition_focus": 0.15,
    "management_quality": 0.35,
}

RESOLUTION_THRESHOLD = 100.0
ESCALATION_THRESHOLD = 90.0
ESCALATED_SEVERITY_CAP = 80.0
DEVELOPMENT_CHANCE = 0.1
MAJOR_SCANDAL_SEVERITY = 70.0

BASE_CRISIS_CHANCE = 0.05
CRISIS_CROWDING_THRESHOLD = 2


@dataclass(frozen=True)
class ResponseOption:
    id: str
    name: str
    cost: float
    effectiveness: float


@dataclass(frozen=True)
class CrisisTemplate:
    type: str
    base_escalation: float
    economic_impact: float
    approval_impact: float
    media_attraction: float
    possible_escalations: Tuple[str, ...]
    responses: Tuple[ResponseOption, ...]

    def response(self, response_id) -> Optional[ResponseOption]:
        return next((r for r in self.responses if r.id == response_id), None)


CRISIS_TEMPLATES = {
    "economic": CrisisTemplate("economic", 0.05, 0.3, 0.2, 0.6, ("political", "international"), (
        ResponseOption("stimulus", "Economic Stimulus", 0.8, 0.7),
        ResponseOption("austerity", "Austerity Measures", 0.3, 0.4),
        ResponseOption("reform", "Structural Reform", 0.6, 0.9),
        ResponseOption("ignore", "Minimal Response", 0.1, 0.1),
    )),
    "political": CrisisTemplate("political", 0.1, 0.1, 0.4, 0.8, ("economic", "scandal"), (
        ResponseOption("reshuffle", "Cabinet Reshuffle", 0.5, 0.6),
        ResponseOption("address", "Public Address", 0.2, 0.4),
        ResponseOption("investigation", "Independent Investigation", 0.4, 0.8),
        ResponseOption("deflect", "Deflect Blame", 0.1, 0.2),
    )),
    "scandal": CrisisTemplate("scandal", 0.15, 0.05, 0.5, 0.9, ("political",), (
        ResponseOption("resignation", "Demand Resignation", 0.7, 0.9),
        ResponseOption("defend", "Defend Official", 0.3, 0.3),
        ResponseOption("damage_control", "Damage Control PR", 0.5, 0.6),
        ResponseOption("scapegoat", "Find Scapegoat", 0.4, 0.5),
    )),
    "international": CrisisTemplate("international", 0.07, 0.25, 0.15, 0.5, ("economic", "security"), (
        ResponseOption("diplomacy", "Diplomatic Solution", 0.3, 0.7),
        ResponseOption("sanctions", "Economic Sanctions", 0.6, 0.5),
        ResponseOption("military", "Military Response", 0.9, 0.8),
        ResponseOption("isolate", "Isolate the Issue", 0.2, 0.3),
    )),
    "security": CrisisTemplate("security", 0.12, 0.15, 0.3, 0.7, ("political", "international"), (
        ResponseOption("emergency", "Emergency Measures", 0.8, 0.9),
        ResponseOption("investigation", "Security Investigation", 0.5, 0.7),
        ResponseOption("reassurance", "Public Reassurance", 0.2, 0.4),
        ResponseOption("coordination", "Inter-agency Coordination", 0.6, 0.8),
    )),
    "natural": CrisisTemplate("natural", 0.2, 0.35, 0.1, 0.6, ("economic",), (
        ResponseOption("emergency_relief", "Emergency Relief", 0.7, 0.9),
        ResponseOption("reconstruction", "Reconstruction Plan", 0.9, 0.8),
        ResponseOption("preventive", "Preventive Measures", 0.5, 0.6),
        ResponseOption("minimal", "Minimal Response", 0.1, 0.2),
    )),
}

# Headline and starting severity for randomly generated crises
CRISIS_HEADLINES = {
    "economic": (
        ("Market Volatility Crisis", "Sudden market swings threaten economic stability.", 35),
        ("Banking Sector Concerns", "Major banks face liquidity problems.", 45),
    ),
    "political": (
        ("Coalition Tensions", "Internal disagreements threaten government stability.", 30),
        ("Opposition Challenge", "Opposition parties unite against key policies.", 25),
    ),
    "scandal": (
        ("Ethics Investigation", "A senior official is under investigation for misconduct.", 40),
        ("Leaked Memos", "Leaked documents contradict the government's public statements.", 35),
    ),
    "international": (
        ("Border Dispute", "A neighbouring state contests a stretch of the border.", 30),
        ("Embassy Incident", "An incident at an embassy sours relations abroad.", 25),
    ),
    "security": (
        ("Cyber Attack", "Critical infrastructure systems have been breached.", 40),
        ("Terror Threat", "Intelligence warns of a credible threat.", 45),
    ),
    "natural": (
        ("Severe Flooding", "Floods have displaced thousands in the river valleys.", 40),
        ("Wildfires", "Wildfires are spreading across rural regions.", 35),
    ),
}

DEVELOPMENTS = (
    ("New Information Emerges", "Additional details have come to light.",
     {"severity": 5, "media_attention": 10}),
    ("Stakeholder Concerns", "Key stakeholders voice growing concern.",
     {"public_concern": 8, "severity": 3}),
    ("Opposition Criticism", "The opposition attacks the government's handling of the crisis.",
     {"media_attention": 8, "public_concern": 5}),
)

# (minimum effectiveness, title, approval, severity, media)
OUTCOME_TIERS = (
    (0.8, "Highly Effective Response", 2, -15, -10),
    (0.6, "Moderately Effective Response", 1, -8, -5),
    (0.3, "Limited Response Success", 0, -3, 0),
    (float("-inf"), "Response Proves Ineffective", -1, 2, 5),
)


def timing_factor(crisis: Crisis) -> float:
    if crisis.current_week <= 1:
        return 1.2
    if crisis.current_week <= 3:
        return 1.0
    if crisis.current_week <= 6:
        return 0.8
    return 0.6


def public_support_factor(crisis: Crisis, game_state: GameState) -> float:
    base = game_state.politics.approval / 100
    crisis_support = max(0.3, 1 - crisis.public_concern / 200)
    return (base + crisis_support) / 2


def outcome_tier(effectiveness: float):
    for minimum, title, approval, severity, media in OUTCOME_TIERS:
        if effectiveness > minimum:
            return title, {"approval": approval, "severity": severity, "media_attention": media}
    raise ValueError(f"No outcome tier for effectiveness {effectiveness}")


class CrisisEngine:
    def __init__(self, event_bus: EventBus, rng: RandomnessEngine, game_state: GameState,
                 chance_multiplier: float = 1.0):
        self.event_bus = event_bus
        self.rng = rng
        self.game_state = game_state
        self.chance_multiplier = chance_multiplier

        self._subscriptions = SubscriptionGroup(event_bus)
        self._subscriptions.subscribe(EventType.TURN_END, self.on_turn_end)
        self._subscriptions.subscribe(EventType.CRISIS_RESPOND, self.on_crisis_respond)

    def cleanup(self):
        self._subscriptions.dispose()

    def on_turn_end(self, event: GameEvent):
        game_state = event.payload.get("game_state", self.game_state)
        self.process_turn(game_state)

    def on_crisis_respond(self, event: GameEvent):
        payload = event.payload
        self.respond(self.game_state, payload.get("crisis_id"), payload.get("response_id"),
                     resources=payload.get("resources", 1.0))

    # --- Turn processing ------------------------------------------------

    def process_turn(self, game_state: GameState):
        ledger = game_state.crises
        # Crises spawned by escalation this turn are first updated next turn
        for crisis in list(ledger.active):
            self.update_crisis(crisis, game_state)
            self.apply_crisis_effects(crisis, game_state)

            # Resolution wins when both thresholds are reached in the same week
            if crisis.management_score >= RESOLUTION_THRESHOLD:
                self.resolve_crisis(crisis, game_state)
            elif crisis.severity >= ESCALATION_THRESHOLD and not crisis.has_escalated:
                self.escalate_crisis(crisis, game_state)

            if crisis.status == "active":
                self.event_bus.publish(EventType.CRISIS_UPDATE, {"crisis": crisis.to_dict()})

        self.check_for_new_crisis(game_state)
        self.update_history(game_state)

    def update_crisis(self, crisis: Crisis, game_state: GameState):
        template = CRISIS_TEMPLATES[crisis.type]

        media_factor = crisis.media_attention / 100 * ESCALATION_FACTORS["media_attention"]
        public_factor = crisis.public_concern / 100 * ESCALATION_FACTORS["public_concern"]
        opposition_factor = (0.2 if game_state.politics.approval < 50 else 0.1) * ESCALATION_FACTORS["opposition_focus"]
        management_factor = crisis.management_score / 100 * ESCALATION_FACTORS["management_quality"]

        growth = template.base_escalation + media_factor + public_factor + opposition_factor - management_factor
        adjust_crisis(crisis, severity=growth * 10)

        crisis.current_week += 1
        crisis.total_duration += 1

        media_change = crisis.severity / 100 * template.media_attraction - crisis.media_attention / 100
        media_change += self.rng.noise(0.1)
        adjust_crisis(crisis, media_attention=media_change * 10)

        public_change = (crisis.media_attention - crisis.public_concern) * 0.1 + self.rng.noise(0.05)
        adjust_crisis(crisis, public_concern=public_change * 10)

        if self.rng.next() < DEVELOPMENT_CHANCE:
            self.generate_development(crisis, game_state)

        for response in crisis.active_responses:
            response["weeks_active"] += 1
            response["current_effectiveness"] = response["base_effectiveness"] * max(0.3, 1 - response["weeks_active"] * 0.1)

    def apply_crisis_effects(self, crisis: Crisis, game_state: GameState):
        template = CRISIS_TEMPLATES[crisis.type]
        severity = crisis.severity / 100

        economic_impact = template.economic_impact * severity * 0.1
        adjust_economy(game_state, gdp_growth=-economic_impact)
        adjust_politics(game_state, approval=-template.approval_impact * severity * 0.5)

        if crisis.type == "economic":
            adjust_economy(game_state, unemployment=economic_impact * 0.5, confidence=-severity * 2)
        elif crisis.type == "political":
            adjust_politics(game_state, coalition_stability=-severity * 1.5)
        elif crisis.type == "security":
            adjust_politics(game_state, approval=-severity * 0.3)
        elif crisis.type == "natural" and crisis.current_week == 1:
            adjust_economy(game_state, gdp_growth=-severity * 0.5)

    def generate_development(self, crisis: Crisis, game_state: GameState):
        title, description, impact = self.rng.choose(DEVELOPMENTS)
        adjust_crisis(crisis, **impact)
        development = {
            "week": crisis.current_week,
            "type": "development",
            "title": title,
            "description": description,
            "impact": dict(impact),
        }
        crisis.developments.append(development)
        self.event_bus.publish(EventType.CRISIS_DEVELOPMENT, {"crisis_id": crisis.id, "development": development})

    # --- Generation -----------------------------------------------------

    def generate_crisis(self, game_state: GameState, crisis_type: str, title: Optional[str] = None,
                        description: str = "", severity: Optional[float] = None,
                        origin: str = "random", parent_id: Optional[str] = None) -> Crisis:
        if crisis_type not in CRISIS_TEMPLATES:
            raise ValueError(f"Unknown crisis type '{crisis_type}'")
        template = CRISIS_TEMPLATES[crisis_type]
        ledger = game_state.crises

        if severity is None:
            severity = self.rng.next() * 40 + 20
        crisis = Crisis(
            id=ledger.allocate_id(),
            type=crisis_type,
            title=title or f"{crisis_type.capitalize()} Crisis",
            severity=clamp(severity, 0.0, 100.0),
            media_attention=clamp(template.media_attraction * 50 + self.rng.next() * 30, 0.0, 100.0),
            public_concern=clamp(self.rng.next() * 30 + 10, 0.0, 100.0),
            origin=origin,
            parent_id=parent_id,
            start_week=game_state.time.week,
            start_year=game_state.time.year,
            approval_at_start=game_state.politics.approval,
        )
        ledger.active.append(crisis)

        record_event(game_state, {
            "title": crisis.title,
            "description": description,
            "type": "crisis",
            "severity": "critical" if crisis.severity >= 60 else "negative",
        })
        logger.info("Crisis %s generated: %s (severity %.1f)", crisis.id, crisis.title, crisis.severity)
        self.event_bus.publish(EventType.CRISIS_GENERATED, {
            "crisis": crisis.to_dict(),
            "responses": self.response_options(crisis_type),
        })
        return crisis

    def crisis_probability(self, game_state: GameState) -> float:
        active = len(game_state.crises.active)
        probability = BASE_CRISIS_CHANCE
        if game_state.economy.gdp_growth < 0:
            probability += 0.03
        if game_state.economy.unemployment > 8:
            probability += 0.02
        if game_state.politics.approval < 40:
            probability += 0.02
        if active > 0:
            probability += 0.01
        if active >= CRISIS_CROWDING_THRESHOLD:
            probability *= 0.5
        return probability * self.chance_multiplier

    def type_weights(self, game_state: GameState) -> Dict[str, float]:
        return {
            "economic": 0.3 if game_state.economy.gdp_growth < 1 else 0.15,
            "political": 0.25 if game_state.politics.approval < 50 else 0.15,
            "scandal": self.rng.next() * 0.2,
            "international": 0.15,
            "security": 0.1,
            "natural": 0.1,
        }

    def check_for_new_crisis(self, game_state: GameState) -> Optional[Crisis]:
        if self.rng.next() >= self.crisis_probability(game_state):
            return None
        return self.generate_random_crisis(game_state)

    def generate_random_crisis(self, game_state: GameState) -> Crisis:
        crisis_type = self.rng.weighted_choice(self.type_weights(game_state)) or "political"
        title, description, severity = self.rng.choose(CRISIS_HEADLINES[crisis_type])
        severity = severity + self.rng.noise(10)
        return self.generate_crisis(game_state, crisis_type, title, description, severity)

    # --- Responses ------------------------------------------------------

    def response_options(self, crisis_type: str) -> List[Dict[str, Any]]:
        return [
            {"id": r.id, "name": r.name, "cost": r.cost, "effectiveness": r.effectiveness}
            for r in CRISIS_TEMPLATES[crisis_type].responses
        ]

    def respond(self, game_state: GameState, crisis_id, response_id, resources: float = 1.0) -> Optional[Dict[str, Any]]:
        """
        Apply a named response to an active crisis. Returns the response
        record, or None when the crisis or response id is unknown.
        """
        crisis = game_state.crises.find_active(crisis_id)
        if crisis is None:
            logger.debug("Ignoring response to unknown crisis %s", crisis_id)
            return None
        option = CRISIS_TEMPLATES[crisis.type].response(response_id)
        if option is None:
            logger.debug("Ignoring unknown response %s for %s", response_id, crisis_id)
            return None

        resource_factor = self.resource_factor(game_state, option, resources)
        effectiveness = (option.effectiveness * timing_factor(crisis) * resource_factor
                         * public_support_factor(crisis, game_state))

        response = {
            "id": option.id,
            "name": option.name,
            "cost": option.cost * resources,
            "base_effectiveness": option.effectiveness,
            "current_effectiveness": effectiveness,
            "implemented_week": crisis.current_week,
            "weeks_active": 0,
        }
        crisis.active_responses.append(response)
        adjust_crisis(crisis, management_score=effectiveness * 20)
        self.apply_response_costs(game_state, response)

        title, impact = outcome_tier(effectiveness)
        adjust_politics(game_state, approval=impact["approval"])
        adjust_crisis(crisis, severity=impact["severity"], media_attention=impact["media_attention"])
        crisis.developments.append({
            "week": crisis.current_week,
            "type": "response_outcome",
            "title": title,
            "description": f"{option.name}: {title.lower()}.",
            "impact": impact,
        })

        logger.info("Response %s to %s (effectiveness %.2f)", option.id, crisis.id, effectiveness)
        self.event_bus.publish(EventType.CRISIS_RESPONSE_IMPLEMENTED, {
            "crisis": crisis.to_dict(),
            "response": response,
            "effectiveness": effectiveness,
            "outcome": title,
        })
        return response

    def resource_factor(self, game_state: GameState, option: ResponseOption, resources: float) -> float:
        """Committed resources scale the response; without the political capital to pay, it runs at half strength."""
        required = option.cost * resources * 10
        if game_state.politics.political_capital < required:
            return resources * 0.5
        return resources

    def apply_response_costs(self, game_state: GameState, response: Dict[str, Any]):
        adjust_politics(game_state, political_capital=-response["cost"] * 10)
        if response["cost"] > 0.5:
            # Points of debt-to-GDP
            economy = game_state.economy
            adjust_economy(game_state, debt=(response["cost"] - 0.5) * 0.1 / 100 * economy.gdp)

    # --- Terminal transitions -------------------------------------------

    def resolve_crisis(self, crisis: Crisis, game_state: GameState):
        ledger = game_state.crises
        if crisis not in ledger.active:
            return
        ledger.active.remove(crisis)
        crisis.status = "resolved"
        crisis.resolution_method = "management_success"
        ledger.resolved.append(crisis)

        adjust_politics(game_state, approval=3, political_capital=5)
        record_event(game_state, {
            "title": f"Resolved: {crisis.title}",
            "type": "crisis",
            "severity": "positive",
        })
        logger.info("Crisis %s resolved after %d weeks", crisis.id, crisis.total_duration)
        self.event_bus.publish(EventType.CRISIS_RESOLVED, {
            "crisis": crisis.to_dict(),
            "method": "management_success",
            "approval_change": game_state.politics.approval - crisis.approval_at_start,
        })

    def escalate_crisis(self, crisis: Crisis, game_state: GameState) -> Optional[Crisis]:
        template = CRISIS_TEMPLATES[crisis.type]
        if not template.possible_escalations:
            return None
        escalation_type = self.rng.choose(template.possible_escalations)
        escalated = self.generate_crisis(
            game_state,
            escalation_type,
            title=f"Escalated: {crisis.title}",
            description=f"{crisis.title} has grown into a broader {escalation_type} crisis.",
            severity=min(ESCALATED_SEVERITY_CAP, crisis.severity + 20),
            origin="escalation",
            parent_id=crisis.id,
        )
        crisis.has_escalated = True
        crisis.escalated_to = escalated.id

        logger.info("Crisis %s escalated into %s (%s)", crisis.id, escalated.id, escalation_type)
        self.event_bus.publish(EventType.CRISIS_ESCALATED, {
            "original_crisis": crisis.to_dict(),
            "escalated_crisis": escalated.to_dict(),
        })
        return escalated

    # --- Reporting ------------------------------------------------------

    def update_history(self, game_state: GameState):
        active = game_state.crises.active
        types = {}
        for crisis in active:
            types[crisis.type] = types.get(crisis.type, 0) + 1
        game_state.crises.record_history({
            "week": game_state.time.week,
            "year": game_state.time.year,
            "active_crises": len(active),
            "total_severity": sum(c.severity for c in active),
            "crisis_types": types,
        })

    def overview(self, game_state: GameState) -> Dict[str, Any]:
        ledger = game_state.crises
        resolved = ledger.resolved
        return {
            "active": [c.to_dict() for c in ledger.active],
            "resolved_count": len(resolved),
            "total_active_severity": sum(c.severity for c in ledger.active),
            "average_duration": sum(c.total_duration for c in resolved) / len(resolved) if resolved else 0,
        }


def major_scandals(game_state: GameState) -> List[Crisis]:
    return [c for c in game_state.crises.active
            if c.type == "scandal" and c.severity >= MAJOR_SCANDAL_SEVERITY]
