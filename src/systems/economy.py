"""
Economic Engine

Weekly macro model: business cycle, sector growth, GDP, unemployment
(Okun), inflation (Phillips), confidence, plus timed policies, shocks and a
probabilistic event detector. Subscribes to ``turn:end``, to
``policy:implemented`` and to the ``policy:progress`` releases of phased
programmes.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any

from core.event_system import EventBus, EventType, GameEvent, SubscriptionGroup
from core.logger import get_logger
from core.randomness import RandomnessEngine
from core.state import (
    GameState, adjust_economy, update_economy, update_cycle, adjust_sector, clamp,
)

logger = get_logger(__name__)

HISTORY_LIMIT = 104
DEFAULT_POLICY_DURATION = 12

# Smoothing factors for each metric's move toward its target
GDP_SMOOTHING = 0.3
UNEMPLOYMENT_SMOOTHING = 0.2
INFLATION_SMOOTHING = 0.25
INTEREST_SMOOTHING = 0.1

# Business cycle phase rules: (max duration, next phase)
CYCLE_LIMITS = {
    "expansion": (104, "peak"),
    "peak": (8, "recession"),
    "recession": (52, "trough"),
    "trough": (12, "expansion"),
}

UNEMPLOYMENT_PHASE_ADJUSTMENT = {
    "recession": 0.5,
    "trough": 0.2,
    "expansion": -0.3,
    "peak": -0.1,
}

CONFIDENCE_PHASE_ADJUSTMENT = {
    "expansion": 1.0,
    "recession": -2.0,
    "trough": 0.5,
}

# Immediate effects per unit of magnitude. "sectors.<name>" targets a
# sector's base growth.
POLICY_EFFECTS = {
    "fiscal_stimulus": (("confidence", 5.0), ("government_spending", 0.02)),
    "tax_cut": (("confidence", 3.0), ("consumer_spending", 0.01)),
    "tax_increase": (("confidence", -4.0), ("consumer_spending", -0.015), ("revenue_ratio", 0.01)),
    "interest_rate_change": (("interest_rate", 1.0),),
    "infrastructure_investment": (("productivity", 0.05), ("sectors.manufacturing", 0.5)),
    "education_investment": (("productivity", 0.03), ("sectors.services", 0.3)),
    "healthcare_investment": (("productivity", 0.02), ("confidence", 3.0)),
    "green_energy_investment": (("sectors.manufacturing", 0.4), ("productivity", 0.04)),
    "trade_promotion": (("net_exports", 0.01), ("sectors.manufacturing", 0.3)),
    "regulation_increase": (("sectors.services", -0.2), ("confidence", -2.0)),
    "regulation_decrease": (("sectors.services", 0.3), ("confidence", 2.0)),
    "agricultural_subsidies": (("sectors.agriculture", 0.5), ("government_spending", 0.005)),
    "minimum_wage_increase": (("consumer_spending", 0.008), ("confidence", 2.0), ("inflation", 0.3)),
}

# Interest rate changes are expressed in points; everything else is a scale.
POLICY_DEFAULT_MAGNITUDE = {"interest_rate_change": 0.25}

SHOCK_EFFECTS = {
    "oil_price_spike": (1.0, (("inflation", 1.0), ("confidence", -5.0))),
    "financial_crisis": (1.5, (("confidence", -20.0),)),
    "trade_war": (1.0, (("net_exports", -0.02), ("sectors.manufacturing", -1.0))),
    "pandemic": (1.0, (("gdp_growth", -5.0), ("unemployment", 3.0), ("sectors.services", -3.0))),
    "supply_chain_disruption": (1.0, (("sectors.manufacturing", -1.0), ("sectors.services", -0.5), ("inflation", 0.3))),
    "commodity_price_spike": (1.0, (("inflation", 1.0), ("sectors.agriculture", -0.8), ("confidence", -3.0))),
    "currency_fluctuation": (1.0, (("inflation", 0.2),)),
    "tech_innovation": (1.0, (("productivity", 0.1), ("sectors.services", 1.0), ("confidence", 5.0))),
    "natural_disaster": (1.0, (("gdp_growth", -1.0), ("sectors.agriculture", -1.5), ("confidence", -8.0))),
    "geopolitical_tension": (1.0, (("confidence", -6.0), ("net_exports", -0.01), ("investment", -0.01))),
}

# Detector trial probabilities once a threshold is met
DETECTOR_PROBABILITIES = {
    "high_inflation_warning": 0.1,
    "low_unemployment": 0.05,
    "economic_boom": 0.08,
    "deflation_risk": 0.06,
    "stagflation": 0.1,
    "zero_interest_rate": 0.05,
    "sector_boom": 0.04,
    "sector_decline": 0.06,
    "high_confidence": 0.03,
    "confidence_crisis": 0.05,
}
RANDOM_SHOCK_CHANCE = 0.02

# (shock type, minimum magnitude, magnitude spread, message, severity)
RANDOM_SHOCKS = (
    ("supply_chain_disruption", 0.5, 1.0, "Global supply chain disruption hits manufacturing and services.", "warning"),
    ("commodity_price_spike", 0.3, 0.7, "Commodity prices surge, raising production costs.", "warning"),
    ("currency_fluctuation", 0.2, 0.5, "Sharp currency swings unsettle the trade balance.", "info"),
    ("tech_innovation", 0.3, 0.4, "A technological breakthrough lifts productivity.", "success"),
    ("natural_disaster", 0.4, 0.8, "A natural disaster disrupts regional economic activity.", "danger"),
    ("geopolitical_tension", 0.3, 0.6, "Geopolitical tension weighs on trade and investors.", "warning"),
)


def smooth(current, target, factor):
    return current + (target - current) * factor


@dataclass
class Policy:
    id: str
    type: str
    magnitude: float = 1.0
    duration: int = DEFAULT_POLICY_DURATION
    weeks_elapsed: int = 0
    ongoing_effects: Dict[str, float] = field(default_factory=dict)
    implemented_week: int = 1
    implemented_year: int = 1

    @property
    def expired(self) -> bool:
        return self.weeks_elapsed >= self.duration

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**data)


class EconomicEngine:
    def __init__(self, event_bus: EventBus, rng: RandomnessEngine, game_state: GameState):
        self.event_bus = event_bus
        self.rng = rng
        self.game_state = game_state
        self.policies: List[Policy] = []
        self.shocks: List[Dict[str, Any]] = []
        self.history: List[Dict[str, Any]] = []
        self._policy_counter = 0

        self._subscriptions = SubscriptionGroup(event_bus)
        self._subscriptions.subscribe(EventType.TURN_END, self.on_turn_end)
        self._subscriptions.subscribe(EventType.POLICY_IMPLEMENTED, self.on_policy_implemented)
        self._subscriptions.subscribe(EventType.POLICY_PROGRESS, self.on_policy_progress)

    def cleanup(self):
        self._subscriptions.dispose()

    # --- Turn processing ------------------------------------------------

    def on_turn_end(self, event: GameEvent):
        game_state = event.payload.get("game_state", self.game_state)
        self.process_turn(game_state)

    def process_turn(self, game_state: GameState):
        self.update_business_cycle(game_state)
        self.update_sectors(game_state)
        self.update_gdp(game_state)
        self.update_unemployment(game_state)
        self.update_inflation(game_state)
        self.update_confidence(game_state)
        self.update_productivity(game_state)
        self.update_interest_rate(game_state)
        self.update_government_finances(game_state)
        self.apply_active_policies(game_state)
        self.check_economic_events(game_state)
        self._record_history(game_state)

        economy = game_state.economy
        self.event_bus.publish(EventType.ECONOMIC_UPDATE, {
            "metrics": self.metrics(game_state),
            "sectors": {name: asdict(s) for name, s in economy.sectors.items()},
            "cycle": asdict(economy.cycle),
        })

    def update_business_cycle(self, game_state: GameState) -> str:
        """
        Advance the cycle one week. The next phase depends only on the
        current phase, its duration and the phase's trigger metric.
        """
        economy = game_state.economy
        cycle = economy.cycle
        cycle.duration += 1
        phase = cycle.phase
        limit, next_phase = CYCLE_LIMITS[phase]
        intensity = cycle.intensity

        if phase == "expansion":
            triggered = economy.inflation > 4.5
            if cycle.duration > limit or triggered:
                intensity = min(1.0, intensity + 0.1)
            else:
                intensity = intensity + 0.02
        elif phase == "peak":
            triggered = economy.unemployment > 7.5
            if cycle.duration > limit or triggered:
                intensity = max(0.1, intensity - 0.1)
        elif phase == "recession":
            triggered = economy.gdp_growth > 0
            if cycle.duration > limit or triggered:
                intensity = max(0.1, intensity - 0.02)
            else:
                intensity = max(0.1, intensity - 0.03)
        else:
            triggered = economy.confidence > 60
            if cycle.duration > limit or triggered:
                intensity = intensity + 0.05

        if cycle.duration > limit or triggered:
            update_cycle(game_state, phase=next_phase, duration=0, intensity=intensity)
            logger.info("Business cycle moved from %s to %s", phase, next_phase)
            self.event_bus.publish(EventType.ECONOMIC_CYCLE_CHANGE, {
                "from": phase,
                "to": next_phase,
                "intensity": cycle.intensity,
            })
        else:
            update_cycle(game_state, intensity=intensity)
        return cycle.phase

    def cycle_multiplier(self, game_state: GameState) -> float:
        cycle = game_state.economy.cycle
        if cycle.phase == "expansion":
            return 1 + cycle.intensity * 0.2
        if cycle.phase == "peak":
            return 1.1
        if cycle.phase == "recession":
            return 0.8 - cycle.intensity * 0.3
        return 0.7

    def update_sectors(self, game_state: GameState):
        multiplier = self.cycle_multiplier(game_state)
        for sector in game_state.economy.sectors.values():
            volatility = (self.rng.next() - 0.5) * sector.volatility * 2
            sector.current_growth = sector.growth * multiplier + volatility

    def update_gdp(self, game_state: GameState):
        economy = game_state.economy
        weighted = sum(s.share * s.current_growth for s in economy.sectors.values())
        weighted += (economy.productivity - 1) * 0.5
        weighted += (economy.confidence - 50) / 100
        growth = smooth(economy.gdp_growth, weighted, GDP_SMOOTHING)
        update_economy(game_state, gdp_growth=growth)
        update_economy(game_state, gdp=economy.gdp * (1 + economy.gdp_growth / 52 / 100))

    def update_unemployment(self, game_state: GameState):
        economy = game_state.economy
        target = 6.0 - 0.4 * (economy.gdp_growth - 2.0)
        target += UNEMPLOYMENT_PHASE_ADJUSTMENT.get(economy.cycle.phase, 0.0)
        target = clamp(target, 3.0, 12.0)
        unemployment = clamp(smooth(economy.unemployment, target, UNEMPLOYMENT_SMOOTHING), 3.0, 12.0)
        update_economy(game_state, unemployment=unemployment)

    def update_inflation(self, game_state: GameState):
        economy = game_state.economy
        demand_pull = max(0.0, (7.0 - economy.unemployment) * 0.3)
        cost_push = economy.cycle.intensity * 0.8
        monetary = 0.5 if economy.interest_rate < 2.0 else -0.2
        target = 2.0 + demand_pull + cost_push + monetary + self.rng.noise(0.4)
        target = max(0.0, target)
        update_economy(game_state, inflation=smooth(economy.inflation, target, INFLATION_SMOOTHING))

    def update_confidence(self, game_state: GameState):
        economy = game_state.economy
        change = 0.0

        if economy.gdp_growth > 3.0:
            change += 2
        elif economy.gdp_growth < 0:
            change -= 3

        if economy.unemployment < 5.0:
            change += 1
        elif economy.unemployment > 8.0:
            change -= 2

        if economy.inflation > 4.0:
            change -= 2
        elif economy.inflation < 1.0:
            change -= 1

        change += CONFIDENCE_PHASE_ADJUSTMENT.get(economy.cycle.phase, 0.0)
        change += self.rng.noise(2.0)
        adjust_economy(game_state, confidence=change)

    def update_productivity(self, game_state: GameState):
        economy = game_state.economy
        growth = 0.001
        if economy.unemployment > 8:
            growth -= (economy.unemployment - 8) * 0.0001
        if economy.gdp_growth > 3:
            growth += 0.0002
        update_economy(game_state, productivity=economy.productivity * (1 + growth))

    def update_interest_rate(self, game_state: GameState):
        """Taylor rule drift, eased when the government is unpopular."""
        economy = game_state.economy
        target = 2.0 + (economy.inflation - 2.4) + 0.5 * (economy.gdp_growth - 2.5)
        if game_state.politics.approval < 40:
            target -= 0.5
        update_economy(game_state, interest_rate=smooth(economy.interest_rate, target, INTEREST_SMOOTHING))

    def update_government_finances(self, game_state: GameState):
        economy = game_state.economy
        compliance = 0.85 + (game_state.politics.approval - 50) / 1000
        revenue = economy.gdp * economy.revenue_ratio / 52 / 0.85 * compliance
        if economy.gdp_growth < 0:
            revenue *= 1 + economy.gdp_growth / 100
        spending = economy.gdp * economy.government_spending / 52
        update_economy(game_state, debt=economy.debt + spending - revenue)

    # --- Policies -------------------------------------------------------

    def apply_policy(self, game_state: GameState, policy_type: str, magnitude: Optional[float] = None,
                     duration: Optional[int] = None, ongoing_effects: Optional[Dict[str, float]] = None,
                     share: float = 1.0) -> Policy:
        """
        Apply a policy's immediate effects and register it for ongoing effects.
        ``share`` is the fraction of the immediate effects released now; a
        phased programme releases the rest through ``policy:progress``.
        """
        if policy_type not in POLICY_EFFECTS:
            raise ValueError(f"Unknown policy type '{policy_type}'")
        if magnitude is None:
            magnitude = POLICY_DEFAULT_MAGNITUDE.get(policy_type, 1.0)

        self._policy_counter += 1
        policy = Policy(
            id=f"policy_{self._policy_counter}",
            type=policy_type,
            magnitude=magnitude,
            duration=duration if duration else DEFAULT_POLICY_DURATION,
            ongoing_effects=dict(ongoing_effects or {}),
            implemented_week=game_state.time.week,
            implemented_year=game_state.time.year,
        )
        self.policies.append(policy)
        self._apply_effects(game_state, POLICY_EFFECTS[policy_type], magnitude * share)

        logger.info("Policy %s applied (magnitude %.2f, %d weeks)", policy_type, magnitude, policy.duration)
        self.event_bus.publish(EventType.ECONOMIC_POLICY_IMPLEMENTED, {
            "policy": policy.to_dict(),
            "metrics": self.metrics(game_state),
        })
        return policy

    def apply_active_policies(self, game_state: GameState):
        remaining = []
        for policy in self.policies:
            policy.weeks_elapsed += 1
            for metric, delta in policy.ongoing_effects.items():
                try:
                    adjust_economy(game_state, **{metric: delta})
                except ValueError:
                    logger.debug("Policy %s has unknown ongoing metric %s", policy.id, metric)
            if not policy.expired:
                remaining.append(policy)
        self.policies = remaining

    def on_policy_implemented(self, event: GameEvent):
        payload = event.payload
        self.apply_policy(
            self.game_state,
            payload.get("type"),
            magnitude=payload.get("magnitude"),
            duration=payload.get("duration"),
            ongoing_effects=payload.get("ongoing_effects"),
            share=payload.get("share", 1.0),
        )

    def on_policy_progress(self, event: GameEvent):
        payload = event.payload
        effects = POLICY_EFFECTS.get(payload.get("type"))
        if effects is None or payload.get("share", 0.0) <= 0:
            return
        self._apply_effects(self.game_state, effects, payload["magnitude"] * payload["share"])

    # --- Shocks ---------------------------------------------------------

    def apply_shock(self, game_state: GameState, shock_type: str, magnitude: Optional[float] = None,
                    message: Optional[str] = None) -> Dict[str, Any]:
        if shock_type not in SHOCK_EFFECTS:
            raise ValueError(f"Unknown shock type '{shock_type}'")
        default_magnitude, effects = SHOCK_EFFECTS[shock_type]
        if magnitude is None:
            magnitude = default_magnitude

        self._apply_effects(game_state, effects, magnitude)
        if shock_type == "financial_crisis":
            update_cycle(game_state, phase="recession", duration=0)
        elif shock_type == "currency_fluctuation":
            adjust_economy(game_state, net_exports=self.rng.noise(magnitude * 0.02))

        shock = {
            "type": shock_type,
            "magnitude": magnitude,
            "week": game_state.time.week,
            "year": game_state.time.year,
        }
        self.shocks.append(shock)
        del self.shocks[:-HISTORY_LIMIT]

        logger.info("Economic shock %s (magnitude %.2f)", shock_type, magnitude)
        self.event_bus.publish(EventType.ECONOMIC_SHOCK, {
            "shock": shock,
            "message": message,
            "metrics": self.metrics(game_state),
        })
        return shock

    def _apply_effects(self, game_state: GameState, effects, magnitude: float):
        for target, per_unit in effects:
            delta = per_unit * magnitude
            if target.startswith("sectors."):
                adjust_sector(game_state, target.split(".", 1)[1], growth=delta)
            else:
                adjust_economy(game_state, **{target: delta})

    # --- Event detector -------------------------------------------------

    def check_economic_events(self, game_state: GameState) -> List[Dict[str, Any]]:
        """
        Each condition is an independent trial once its threshold is met,
        so several events can fire in the same week.
        """
        economy = game_state.economy
        events = []

        def trial(name):
            return self.rng.next() < DETECTOR_PROBABILITIES[name]

        if economy.inflation > 4.0 and trial("high_inflation_warning"):
            events.append(("high_inflation_warning",
                           f"Inflation has reached {economy.inflation:.1f}%. Monetary tightening may be needed.",
                           "warning"))

        if economy.gdp_growth < -1.0 and economy.cycle.phase != "recession":
            events.append(("recession_warning",
                           "Leading indicators point to recession: GDP growth is negative.",
                           "danger"))

        if economy.unemployment < 4.0 and trial("low_unemployment"):
            events.append(("low_unemployment",
                           f"Unemployment has fallen to {economy.unemployment:.1f}%.",
                           "success"))

        if economy.gdp_growth > 4.0 and economy.unemployment < 5.0 and trial("economic_boom"):
            events.append(("economic_boom",
                           f"Boom conditions: growth at {economy.gdp_growth:.1f}% with low unemployment.",
                           "success"))

        if economy.inflation < 0.5 and trial("deflation_risk"):
            events.append(("deflation_risk",
                           f"Deflation risk: inflation is only {economy.inflation:.1f}%.",
                           "warning"))

        if (economy.inflation > 3.5 and economy.unemployment > 7.0 and economy.gdp_growth < 1.0
                and trial("stagflation")):
            events.append(("stagflation",
                           "Stagflation: high inflation and unemployment with stalled growth.",
                           "danger"))

        if economy.interest_rate <= 0.5 and trial("zero_interest_rate"):
            events.append(("zero_interest_rate",
                           "Interest rates are near zero; monetary policy has little room left.",
                           "warning"))

        for name, sector in economy.sectors.items():
            if sector.current_growth > 5.0 and trial("sector_boom"):
                events.append(("sector_boom",
                               f"{name.capitalize()} sector is booming at {sector.current_growth:.1f}% growth.",
                               "success"))
            elif sector.current_growth < -2.0 and trial("sector_decline"):
                events.append(("sector_decline",
                               f"{name.capitalize()} sector is contracting at {sector.current_growth:.1f}%.",
                               "warning"))

        if self.rng.next() < RANDOM_SHOCK_CHANCE:
            self.trigger_random_shock(game_state)

        if economy.confidence > 85 and trial("high_confidence"):
            events.append(("high_confidence",
                           f"Consumer confidence at {economy.confidence:.0f}%. Spending is strong.",
                           "success"))
        elif economy.confidence < 30 and trial("confidence_crisis"):
            events.append(("confidence_crisis",
                           f"Consumer confidence has collapsed to {economy.confidence:.0f}%.",
                           "danger"))

        published = []
        for event_type, message, severity in events:
            payload = {"type": event_type, "message": message, "severity": severity}
            self.event_bus.publish(EventType.ECONOMIC_EVENT, payload)
            published.append(payload)
        return published

    def trigger_random_shock(self, game_state: GameState) -> Dict[str, Any]:
        shock_type, minimum, spread, message, severity = self.rng.choose(RANDOM_SHOCKS)
        magnitude = minimum + self.rng.next() * spread
        shock = self.apply_shock(game_state, shock_type, magnitude, message=message)
        self.event_bus.publish(EventType.ECONOMIC_EVENT, {
            "type": shock_type,
            "message": message,
            "severity": severity,
            "magnitude": magnitude,
        })
        return shock

    # --- Reporting ------------------------------------------------------

    def metrics(self, game_state: GameState) -> Dict[str, float]:
        economy = game_state.economy
        return {
            "gdp": economy.gdp,
            "gdp_growth": economy.gdp_growth,
            "unemployment": economy.unemployment,
            "inflation": economy.inflation,
            "interest_rate": economy.interest_rate,
            "confidence": economy.confidence,
            "productivity": economy.productivity,
            "consumer_spending": economy.consumer_spending,
            "government_spending": economy.government_spending,
            "investment": economy.investment,
            "net_exports": economy.net_exports,
            "debt_ratio": economy.debt_ratio,
        }

    def forecast(self, game_state: GameState, weeks_ahead: int = 12) -> Dict[str, List[float]]:
        """Mean-reverting projection of the headline metrics."""
        economy = game_state.economy
        growth, unemployment, inflation = economy.gdp_growth, economy.unemployment, economy.inflation
        projection = {"gdp_growth": [], "unemployment": [], "inflation": []}
        for _ in range(weeks_ahead):
            growth = smooth(growth, 2.1, 0.05)
            unemployment = smooth(unemployment, 6.0, 0.03)
            inflation = smooth(inflation, 2.0, 0.04)
            projection["gdp_growth"].append(round(growth, 2))
            projection["unemployment"].append(round(unemployment, 1))
            projection["inflation"].append(round(inflation, 1))
        return projection

    def _record_history(self, game_state: GameState):
        entry = self.metrics(game_state)
        entry.update(week=game_state.time.week, year=game_state.time.year,
                     phase=game_state.economy.cycle.phase)
        self.history.append(entry)
        del self.history[:-HISTORY_LIMIT]

    # --- Persistence ----------------------------------------------------

    def to_dict(self):
        return {
            "policies": [p.to_dict() for p in self.policies],
            "shocks": list(self.shocks),
            "history": list(self.history),
            "policy_counter": self._policy_counter,
        }

    def from_dict(self, data):
        self.policies = [Policy.from_dict(p) for p in data.get("policies", [])]
        self.shocks = list(data.get("shocks", []))
        self.history = list(data.get("history", []))[-HISTORY_LIMIT:]
        self._policy_counter = data.get("policy_counter", len(self.policies))
