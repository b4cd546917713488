"""
Policy Implementation Engine

A policy intent becomes a phased programme rather than an instant switch.
The engine admits it only while implementation capacity, political
standing and political capital allow, releases a fifth of the economic
effects at once and the rest week by week as the programme moves through
its phases, and lets the opposition challenge it along the way.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Tuple

from core.event_system import EventBus, EventType, GameEvent, SubscriptionGroup
from core.logger import get_logger
from core.randomness import RandomnessEngine
from core.state import GameState, PolicyImplementation, adjust_politics, record_event, clamp
from systems.economy import POLICY_EFFECTS, POLICY_DEFAULT_MAGNITUDE

logger = get_logger(__name__)

IMPLEMENTATION_CAPACITY = 100
BASE_TIMELINE_WEEKS = 12
IMMEDIATE_SHARE = 0.2
MIN_APPROVAL_FACTOR = 0.7
CAPITAL_PER_BILLION = 0.5
CHALLENGE_APPROVAL_COST = 0.5

COMPLEXITY_LOAD = {"low": 15, "medium": 25, "high": 40}
COMPLEXITY_TIME = {"low": 0.8, "medium": 1.0, "high": 1.3}
COMPLEXITY_COST = {"low": 1.0, "medium": 1.5, "high": 2.0}
CATEGORY_LOAD = {"economic": 1.2, "social": 1.0, "environmental": 1.1, "foreign": 1.3}
CATEGORY_RESISTANCE = {"economic": 20, "social": 30, "environmental": 25, "foreign": 35}

# (name, share of the timeline)
PHASES = (
    ("Planning & Preparation", 0.2),
    ("Initial Implementation", 0.3),
    ("Full Deployment", 0.4),
    ("Stabilization", 0.1),
)

CHALLENGE_DESCRIPTIONS = {
    "parliamentary_question": "Opposition demands parliamentary answers about {name} implementation",
    "media_campaign": "Media campaign launched against {name}",
    "legal_challenge": "Legal challenge filed against {name} on constitutional grounds",
    "public_protest": "Public protests organized against {name}",
    "coalition_pressure": "Coalition partners express concerns about {name}",
}


@dataclass(frozen=True)
class PolicyProfile:
    category: str
    complexity: str
    base_cost: float  # billions
    requirements: Dict[str, float] = field(default_factory=dict)


POLICY_PROFILES = {
    "fiscal_stimulus": PolicyProfile("economic", "medium", 20.0),
    "tax_cut": PolicyProfile("economic", "low", 10.0),
    "tax_increase": PolicyProfile("economic", "medium", 5.0, {"approval": 35.0}),
    "interest_rate_change": PolicyProfile("economic", "low", 2.0),
    "infrastructure_investment": PolicyProfile("economic", "high", 25.0, {"coalition_support": 45.0}),
    "education_investment": PolicyProfile("social", "medium", 12.0),
    "healthcare_investment": PolicyProfile("social", "high", 18.0, {"approval": 30.0}),
    "green_energy_investment": PolicyProfile("environmental", "high", 15.0, {"approval": 40.0}),
    "trade_promotion": PolicyProfile("foreign", "low", 4.0),
    "regulation_increase": PolicyProfile("economic", "medium", 3.0, {"coalition_support": 40.0}),
    "regulation_decrease": PolicyProfile("economic", "medium", 3.0, {"coalition_support": 40.0}),
    "agricultural_subsidies": PolicyProfile("economic", "low", 6.0),
    "minimum_wage_increase": PolicyProfile("social", "medium", 4.0, {"coalition_support": 40.0}),
}


def policy_name(policy_type: str) -> str:
    return policy_type.replace("_", " ")


def phase_for(progress: float) -> str:
    cumulative = 0.0
    for name, share in PHASES:
        cumulative += share * 100
        if progress <= cumulative:
            return name
    return PHASES[-1][0]


class PolicyImplementationEngine:
    """
    Admits policy intents as phased programmes and moves them forward on
    ``turn:end``. Programmes live in ``game_state.policies`` so they are
    saved with the rest of the state.
    """

    def __init__(self, event_bus: EventBus, rng: RandomnessEngine, game_state: GameState):
        self.event_bus = event_bus
        self.rng = rng
        self.game_state = game_state
        self.last_rejection: Optional[Dict[str, Any]] = None

        self._subscriptions = SubscriptionGroup(event_bus)
        self._subscriptions.subscribe(EventType.POLICY_IMPLEMENT, self.on_policy_implement)
        self._subscriptions.subscribe(EventType.TURN_END, self.on_turn_end)

    def cleanup(self):
        self._subscriptions.dispose()

    def on_policy_implement(self, event: GameEvent):
        payload = event.payload
        self.implement(self.game_state, payload.get("type"),
                       magnitude=payload.get("magnitude"),
                       duration=payload.get("duration"),
                       ongoing_effects=payload.get("ongoing_effects"))

    def on_turn_end(self, event: GameEvent):
        game_state = event.payload.get("game_state", self.game_state)
        self.process_turn(game_state)

    # --- Assessment -----------------------------------------------------

    def load_for(self, profile: PolicyProfile) -> int:
        return round(COMPLEXITY_LOAD[profile.complexity] * CATEGORY_LOAD[profile.category])

    def resistance_for(self, game_state: GameState, profile: PolicyProfile) -> float:
        """0-100. Category base, shifted by opposition strength and by the programme's price tag."""
        opposition_strength = game_state.politics.opposition_support
        resistance = (CATEGORY_RESISTANCE[profile.category]
                      + (opposition_strength - 50) * 0.4
                      + min(20.0, profile.base_cost / 5))
        return clamp(resistance, 0.0, 100.0)

    def political_cost_for(self, profile: PolicyProfile, resistance: float) -> int:
        return round(profile.base_cost * CAPITAL_PER_BILLION
                     * COMPLEXITY_COST[profile.complexity] * (1 + resistance / 200))

    def estimate_weeks(self, game_state: GameState, profile: PolicyProfile, resistance: float) -> int:
        approval_factor = max(MIN_APPROVAL_FACTOR, game_state.politics.approval / 100)
        weeks = BASE_TIMELINE_WEEKS * COMPLEXITY_TIME[profile.complexity] * (1 + resistance / 100) / approval_factor
        return max(1, round(weeks))

    def unmet_requirements(self, game_state: GameState, profile: PolicyProfile) -> List[Tuple[str, float, float]]:
        politics = game_state.politics
        standing = {"approval": politics.approval, "coalition_support": politics.coalition_support}
        return [(name, minimum, standing[name])
                for name, minimum in profile.requirements.items() if standing[name] < minimum]

    def capacity_status(self, game_state: GameState) -> Dict[str, float]:
        used = game_state.policies.load
        return {
            "used": used,
            "total": IMPLEMENTATION_CAPACITY,
            "available": IMPLEMENTATION_CAPACITY - used,
            "percentage": used / IMPLEMENTATION_CAPACITY * 100,
        }

    # --- Admission ------------------------------------------------------

    def implement(self, game_state: GameState, policy_type: str, magnitude: Optional[float] = None,
                  duration: Optional[int] = None,
                  ongoing_effects: Optional[Dict[str, float]] = None) -> Optional[PolicyImplementation]:
        """Start a programme, or publish ``policy:rejected`` and return None."""
        profile = POLICY_PROFILES.get(policy_type)
        if profile is None or policy_type not in POLICY_EFFECTS:
            return self._reject(policy_type, "unknown_policy", f"Unknown policy type '{policy_type}'")

        load = self.load_for(profile)
        ledger = game_state.policies
        if ledger.load + load > IMPLEMENTATION_CAPACITY:
            return self._reject(policy_type, "capacity_exceeded",
                                f"Implementation capacity exceeded ({ledger.load + load}/{IMPLEMENTATION_CAPACITY})")

        unmet = self.unmet_requirements(game_state, profile)
        if unmet:
            details = ", ".join(f"{name.replace('_', ' ')} {current:.0f} < {minimum:.0f}"
                                for name, minimum, current in unmet)
            return self._reject(policy_type, "requirements_not_met", f"Political requirements not met: {details}")

        resistance = self.resistance_for(game_state, profile)
        cost = self.political_cost_for(profile, resistance)
        if game_state.politics.political_capital < cost:
            return self._reject(policy_type, "insufficient_capital",
                                f"Insufficient political capital ({game_state.politics.political_capital:.0f}/{cost})")

        if magnitude is None:
            magnitude = POLICY_DEFAULT_MAGNITUDE.get(policy_type, 1.0)
        adjust_politics(game_state, political_capital=-cost)

        time_state = game_state.time
        implementation = PolicyImplementation(
            id=ledger.allocate_id(),
            type=policy_type,
            category=profile.category,
            complexity=profile.complexity,
            magnitude=magnitude,
            load=load,
            resistance=resistance,
            political_cost=cost,
            estimated_weeks=self.estimate_weeks(game_state, profile, resistance),
            started=time_state.weeks_elapsed,
            start_week=time_state.week,
            start_year=time_state.year,
            phase=PHASES[0][0],
        )
        ledger.active.append(implementation)
        self.last_rejection = None

        logger.info("Programme %s (%s) started: %d weeks, resistance %.1f, cost %d capital",
                    implementation.id, policy_type, implementation.estimated_weeks, resistance, cost)
        self.event_bus.publish(EventType.POLICY_IMPLEMENTATION_STARTED, {
            "implementation": implementation.to_dict(),
            "capacity": self.capacity_status(game_state),
        })
        self.event_bus.publish(EventType.POLICY_IMPLEMENTED, {
            "type": policy_type,
            "magnitude": magnitude,
            "duration": duration,
            "ongoing_effects": ongoing_effects or {},
            "share": IMMEDIATE_SHARE,
            "implementation_id": implementation.id,
        })
        return implementation

    def _reject(self, policy_type, reason: str, message: str) -> None:
        self.last_rejection = {"type": policy_type, "reason": reason, "message": message}
        logger.info("Policy %s rejected: %s", policy_type, message)
        self.event_bus.publish(EventType.POLICY_REJECTED, dict(self.last_rejection))
        return None

    # --- Weekly progress ------------------------------------------------

    def process_turn(self, game_state: GameState):
        for implementation in list(game_state.policies.active):
            self.advance(game_state, implementation)

    def advance(self, game_state: GameState, implementation: PolicyImplementation):
        elapsed = game_state.time.weeks_elapsed - implementation.started
        progress = min(100.0, elapsed / implementation.estimated_weeks * 100)
        delta = progress - implementation.progress
        implementation.progress = progress

        if delta > 0:
            self.event_bus.publish(EventType.POLICY_PROGRESS, {
                "implementation_id": implementation.id,
                "type": implementation.type,
                "magnitude": implementation.magnitude,
                "progress": progress,
                "share": (1 - IMMEDIATE_SHARE) * delta / 100,
            })

        phase = phase_for(progress)
        if phase != implementation.phase:
            previous, implementation.phase = implementation.phase, phase
            self.event_bus.publish(EventType.POLICY_PHASE_CHANGE, {
                "implementation_id": implementation.id,
                "type": implementation.type,
                "from": previous,
                "to": phase,
            })

        if progress >= 100:
            self.complete(game_state, implementation)
        else:
            self.check_challenge(game_state, implementation)

    def check_challenge(self, game_state: GameState, implementation: PolicyImplementation) -> Optional[Dict[str, Any]]:
        """Resistance 100 means an even chance of a challenge every week."""
        if not self.rng.chance(implementation.resistance / 200):
            return None
        challenge_type = self.rng.choose(tuple(CHALLENGE_DESCRIPTIONS))
        challenge = {
            "type": challenge_type,
            "severity": self.rng.randint(1, 3),
            "description": CHALLENGE_DESCRIPTIONS[challenge_type].format(name=policy_name(implementation.type)),
            "week": game_state.time.week,
            "year": game_state.time.year,
        }
        implementation.challenges.append(challenge)
        adjust_politics(game_state, approval=-challenge["severity"] * CHALLENGE_APPROVAL_COST)
        self.event_bus.publish(EventType.POLICY_OPPOSITION_CHALLENGE, {
            "implementation_id": implementation.id,
            "type": implementation.type,
            "challenge": challenge,
        })
        return challenge

    def complete(self, game_state: GameState, implementation: PolicyImplementation):
        implementation.status = "completed"
        implementation.completed_at = game_state.time.weeks_elapsed
        game_state.policies.finish(implementation)

        final_effects = {target: per_unit * implementation.magnitude
                         for target, per_unit in POLICY_EFFECTS[implementation.type]}
        record_event(game_state, {
            "title": f"Programme complete: {policy_name(implementation.type)}",
            "type": "policy",
            "severity": "positive",
        })
        logger.info("Programme %s (%s) completed", implementation.id, implementation.type)
        self.event_bus.publish(EventType.POLICY_COMPLETED, {
            "implementation": implementation.to_dict(),
            "final_effects": final_effects,
        })

    # --- Reporting ------------------------------------------------------

    def active_summary(self, game_state: GameState) -> List[Dict[str, Any]]:
        return [
            {
                "id": p.id,
                "type": p.type,
                "category": p.category,
                "progress": round(p.progress, 1),
                "phase": p.phase,
                "weeks_remaining": max(0, round(p.estimated_weeks * (1 - p.progress / 100))),
                "resistance": round(p.resistance, 1),
                "challenges": len(p.challenges),
            }
            for p in game_state.policies.active
        ]

    def to_dict(self):
        return {"last_rejection": self.last_rejection}

    def from_dict(self, data):
        self.last_rejection = data.get("last_rejection")
