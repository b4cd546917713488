"""
Game state for a single simulation session.

One mutable aggregate record visited by every engine during ``turn:end``.
Engines never assign bounded fields directly; they go through the
``update_*`` / ``adjust_*`` helpers below, which clamp on write and reject
unknown fields.
"""

from dataclasses import dataclass, field, fields, asdict
from datetime import date, timedelta
from typing import Dict, List, Optional, Any

WEEKS_PER_YEAR = 52
START_DATE = date(2024, 1, 1)
RECENT_EVENTS_LIMIT = 10
CRISIS_HISTORY_LIMIT = 104
POLICY_HISTORY_LIMIT = 20


def clamp(value, low, high):
    return max(low, min(high, value))


# --- Time -----------------------------------------------------------------

@dataclass
class TimeState:
    week: int = 1
    year: int = 1
    weeks_elapsed: int = 0

    @property
    def current_date(self) -> date:
        return START_DATE + timedelta(days=7 * self.weeks_elapsed)

    def advance(self) -> bool:
        """Move one week forward. Returns True when the year rolled over."""
        self.weeks_elapsed += 1
        self.week += 1
        if self.week > WEEKS_PER_YEAR:
            self.week = 1
            self.year += 1
            return True
        return False

    def weeks_until(self, week: int, year: int) -> int:
        return (year - self.year) * WEEKS_PER_YEAR + (week - self.week)

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


@dataclass
class CountryProfile:
    name: str = "Democracia"
    population: int = 50_000_000
    political_system: str = "democracy"
    region: str = "Europe"
    economic_power: float = 50.0

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


# --- Economy --------------------------------------------------------------

CYCLE_PHASES = ("expansion", "peak", "recession", "trough")


@dataclass
class SectorState:
    share: float
    growth: float
    volatility: float
    current_growth: float = 0.0

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


@dataclass
class BusinessCycle:
    phase: str = "expansion"
    duration: int = 0
    intensity: float = 0.5

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


def default_sectors() -> Dict[str, SectorState]:
    return {
        "agriculture": SectorState(share=0.05, growth=1.2, volatility=0.15),
        "manufacturing": SectorState(share=0.25, growth=2.8, volatility=0.10),
        "services": SectorState(share=0.70, growth=2.0, volatility=0.05),
    }


@dataclass
class EconomyState:
    gdp: float = 1e12
    gdp_growth: float = 2.1
    unemployment: float = 6.0
    inflation: float = 2.4
    interest_rate: float = 3.5
    consumer_spending: float = 0.65
    government_spending: float = 0.20
    investment: float = 0.18
    net_exports: float = -0.03
    productivity: float = 1.0
    confidence: float = 75.0
    debt: float = 6e11
    revenue_ratio: float = 0.19
    sectors: Dict[str, SectorState] = field(default_factory=default_sectors)
    cycle: BusinessCycle = field(default_factory=BusinessCycle)

    @property
    def debt_ratio(self) -> float:
        return self.debt / self.gdp * 100 if self.gdp else 0.0

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        values = _known(cls, data)
        values["sectors"] = {
            name: SectorState.from_dict(s) for name, s in data.get("sectors", {}).items()
        } or default_sectors()
        values["cycle"] = BusinessCycle.from_dict(data.get("cycle", {}))
        return cls(**values)


ECONOMY_BOUNDS = {
    "gdp": (1e9, 1e15),
    "gdp_growth": (-15.0, 15.0),
    "unemployment": (0.0, 100.0),
    "inflation": (-10.0, 50.0),
    "interest_rate": (0.0, 15.0),
    "consumer_spending": (0.0, 1.0),
    "government_spending": (0.0, 1.0),
    "investment": (0.0, 1.0),
    "net_exports": (-0.5, 0.5),
    "productivity": (0.5, 3.0),
    "confidence": (0.0, 100.0),
    "debt": (0.0, 1e16),
    "revenue_ratio": (0.0, 1.0),
}


# --- Politics -------------------------------------------------------------

@dataclass
class Party:
    name: str
    support: float

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


@dataclass
class ElectionSchedule:
    week: int = 1
    year: int = 4

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


@dataclass
class ScheduledVote:
    id: str
    title: str
    week: int
    year: int
    policy_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


@dataclass
class PoliticsState:
    approval: float = 50.0
    coalition: List[Party] = field(default_factory=lambda: [
        Party("Government", 45.0),
        Party("Coalition Partner", 22.0),
    ])
    opposition: List[Party] = field(default_factory=lambda: [
        Party("Main Opposition", 30.0),
        Party("Minor Opposition", 3.0),
    ])
    next_election: ElectionSchedule = field(default_factory=ElectionSchedule)
    next_vote: Optional[ScheduledVote] = None
    coalition_stability: float = 100.0
    political_capital: float = 100.0
    passed_votes: int = 0
    failed_votes: int = 0
    election_results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def coalition_support(self) -> float:
        return sum(p.support for p in self.coalition)

    @property
    def opposition_support(self) -> float:
        return sum(p.support for p in self.opposition)

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        values = _known(cls, data)
        values["coalition"] = [Party.from_dict(p) for p in data.get("coalition", [])]
        values["opposition"] = [Party.from_dict(p) for p in data.get("opposition", [])]
        values["next_election"] = ElectionSchedule.from_dict(data.get("next_election", {}))
        vote = data.get("next_vote")
        values["next_vote"] = ScheduledVote.from_dict(vote) if vote else None
        values["election_results"] = list(data.get("election_results", []))
        return cls(**values)


POLITICS_BOUNDS = {
    "approval": (0.0, 100.0),
    "coalition_stability": (0.0, 100.0),
    "political_capital": (0.0, 200.0),
}


def independents_support(politics: PoliticsState) -> float:
    """Residual support not held by either bloc; computed on read."""
    return max(0.0, 100.0 - politics.coalition_support - politics.opposition_support)


def adjust_party_support(party: Party, delta: float) -> float:
    party.support = clamp(party.support + delta, 0.0, 100.0)
    return party.support


# --- Crises ---------------------------------------------------------------

@dataclass
class Crisis:
    id: str
    type: str
    title: str
    severity: float
    media_attention: float
    public_concern: float
    management_score: float = 0.0
    current_week: int = 0
    total_duration: int = 0
    has_escalated: bool = False
    escalated_to: Optional[str] = None
    parent_id: Optional[str] = None
    origin: str = "random"
    start_week: int = 1
    start_year: int = 1
    approval_at_start: float = 50.0
    active_responses: List[Dict[str, Any]] = field(default_factory=list)
    developments: List[Dict[str, Any]] = field(default_factory=list)
    status: str = "active"
    resolution_method: Optional[str] = None

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


@dataclass
class CrisisLedger:
    active: List[Crisis] = field(default_factory=list)
    resolved: List[Crisis] = field(default_factory=list)
    history: List[Dict[str, Any]] = field(default_factory=list)
    next_id: int = 1

    def find_active(self, crisis_id) -> Optional[Crisis]:
        return next((c for c in self.active if c.id == crisis_id), None)

    def allocate_id(self) -> str:
        crisis_id = f"crisis_{self.next_id}"
        self.next_id += 1
        return crisis_id

    def record_history(self, entry):
        self.history.append(entry)
        if len(self.history) > CRISIS_HISTORY_LIMIT:
            del self.history[:-CRISIS_HISTORY_LIMIT]

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(
            active=[Crisis.from_dict(c) for c in data.get("active", [])],
            resolved=[Crisis.from_dict(c) for c in data.get("resolved", [])],
            history=list(data.get("history", []))[-CRISIS_HISTORY_LIMIT:],
            next_id=data.get("next_id", 1),
        )


# --- Policy programmes ----------------------------------------------------

@dataclass
class PolicyImplementation:
    id: str
    type: str
    category: str
    complexity: str
    magnitude: float
    load: int
    resistance: float
    political_cost: int
    estimated_weeks: int
    started: int
    start_week: int = 1
    start_year: int = 1
    progress: float = 0.0
    phase: str = "Planning & Preparation"
    challenges: List[Dict[str, Any]] = field(default_factory=list)
    status: str = "in_progress"
    completed_at: Optional[int] = None

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


@dataclass
class PolicyLedger:
    active: List[PolicyImplementation] = field(default_factory=list)
    completed: List[PolicyImplementation] = field(default_factory=list)
    next_id: int = 1

    @property
    def load(self) -> int:
        return sum(p.load for p in self.active)

    def find_active(self, implementation_id) -> Optional[PolicyImplementation]:
        return next((p for p in self.active if p.id == implementation_id), None)

    def allocate_id(self) -> str:
        implementation_id = f"impl_{self.next_id}"
        self.next_id += 1
        return implementation_id

    def finish(self, implementation: PolicyImplementation):
        self.active.remove(implementation)
        self.completed.append(implementation)
        if len(self.completed) > POLICY_HISTORY_LIMIT:
            del self.completed[:-POLICY_HISTORY_LIMIT]

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(
            active=[PolicyImplementation.from_dict(p) for p in data.get("active", [])],
            completed=[PolicyImplementation.from_dict(p) for p in data.get("completed", [])][-POLICY_HISTORY_LIMIT:],
            next_id=data.get("next_id", 1),
        )


# --- Diplomacy ------------------------------------------------------------

@dataclass
class DiplomacyState:
    relations: Dict[str, float] = field(default_factory=dict)
    trade_agreements: List[Dict[str, Any]] = field(default_factory=list)
    conflicts: List[Dict[str, Any]] = field(default_factory=list)
    incidents: List[Dict[str, Any]] = field(default_factory=list)
    alliances: List[str] = field(default_factory=list)
    sanctions: List[str] = field(default_factory=list)
    global_growth: float = 3.0

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


def set_relation(diplomacy: DiplomacyState, country: str, value: float) -> float:
    diplomacy.relations[country] = clamp(value, 0.0, 100.0)
    return diplomacy.relations[country]


# --- Events ---------------------------------------------------------------

@dataclass
class EventLog:
    recent: List[Dict[str, Any]] = field(default_factory=list)
    pending_decisions: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        return cls(**_known(cls, data))


def record_event(state: "GameState", entry: Dict[str, Any]):
    entry = dict(entry)
    entry.setdefault("week", state.time.week)
    entry.setdefault("year", state.time.year)
    state.events.recent.append(entry)
    if len(state.events.recent) > RECENT_EVENTS_LIMIT:
        del state.events.recent[:-RECENT_EVENTS_LIMIT]


def push_decision(state: "GameState", decision: Dict[str, Any]):
    state.events.pending_decisions.append(decision)


def pop_decision(state: "GameState", decision_id) -> Optional[Dict[str, Any]]:
    for i, decision in enumerate(state.events.pending_decisions):
        if decision.get("id") == decision_id:
            return state.events.pending_decisions.pop(i)
    return None


# --- Aggregate ------------------------------------------------------------

@dataclass
class GameState:
    time: TimeState = field(default_factory=TimeState)
    country: CountryProfile = field(default_factory=CountryProfile)
    economy: EconomyState = field(default_factory=EconomyState)
    politics: PoliticsState = field(default_factory=PoliticsState)
    crises: CrisisLedger = field(default_factory=CrisisLedger)
    policies: PolicyLedger = field(default_factory=PolicyLedger)
    diplomacy: DiplomacyState = field(default_factory=DiplomacyState)
    events: EventLog = field(default_factory=EventLog)
    game_over: bool = False
    end_condition: Optional[Dict[str, Any]] = None

    def to_dict(self):
        data = asdict(self)
        data["time"]["current_date"] = self.time.current_date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            time=TimeState.from_dict(data.get("time", {})),
            country=CountryProfile.from_dict(data.get("country", {})),
            economy=EconomyState.from_dict(data.get("economy", {})),
            politics=PoliticsState.from_dict(data.get("politics", {})),
            crises=CrisisLedger.from_dict(data.get("crises", {})),
            policies=PolicyLedger.from_dict(data.get("policies", {})),
            diplomacy=DiplomacyState.from_dict(data.get("diplomacy", {})),
            events=EventLog.from_dict(data.get("events", {})),
            game_over=data.get("game_over", False),
            end_condition=data.get("end_condition"),
        )


# --- Typed partial updates ------------------------------------------------

def _known(cls, data):
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in (data or {}).items() if k in names}


def _apply(record, bounds, changes, additive):
    names = {f.name for f in fields(record)}
    for key, value in changes.items():
        if key not in names:
            raise ValueError(f"{type(record).__name__} has no field '{key}'")
        if additive:
            value = getattr(record, key) + value
        if key in bounds:
            value = clamp(value, *bounds[key])
        setattr(record, key, value)
    return record


def update_economy(state: GameState, **changes) -> EconomyState:
    return _apply(state.economy, ECONOMY_BOUNDS, changes, additive=False)


def adjust_economy(state: GameState, **deltas) -> EconomyState:
    return _apply(state.economy, ECONOMY_BOUNDS, deltas, additive=True)


def update_politics(state: GameState, **changes) -> PoliticsState:
    return _apply(state.politics, POLITICS_BOUNDS, changes, additive=False)


def adjust_politics(state: GameState, **deltas) -> PoliticsState:
    return _apply(state.politics, POLITICS_BOUNDS, deltas, additive=True)


def update_cycle(state: GameState, **changes) -> BusinessCycle:
    if "phase" in changes and changes["phase"] not in CYCLE_PHASES:
        raise ValueError(f"Unknown business cycle phase '{changes['phase']}'")
    return _apply(state.economy.cycle, {"intensity": (0.0, 1.0)}, changes, additive=False)


def adjust_sector(state: GameState, sector: str, growth: float = 0.0) -> SectorState:
    record = state.economy.sectors[sector]
    record.growth = clamp(record.growth + growth, -10.0, 15.0)
    return record


CRISIS_BOUNDS = {
    "severity": (0.0, 100.0),
    "media_attention": (0.0, 100.0),
    "public_concern": (0.0, 100.0),
    "management_score": (0.0, 100.0),
}


def adjust_crisis(crisis: Crisis, **deltas) -> Crisis:
    return _apply(crisis, CRISIS_BOUNDS, deltas, additive=True)
