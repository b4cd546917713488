from typing import Optional, List, Dict, Any

import json

from core.event_system import EventBus, EventType
from core.logger import get_logger
from core.randomness import RandomnessEngine
from core.settings import SettingsManager, Difficulty, DifficultySettings, parse_difficulty
from core.state import GameState, update_economy, update_politics

from systems.economy import EconomicEngine, POLICY_EFFECTS
from systems.policy_implementation import PolicyImplementationEngine
from systems.politics import PoliticalEngine
from systems.political_events import PoliticalEventsEngine
from systems.crisis import CrisisEngine
from systems.opposition import OppositionAI
from systems.diplomacy import DiplomacyEngine
from systems.outcomes import OutcomeEvaluator
from systems.persistence import SaveManager

from scheduler import TurnScheduler

logger = get_logger(__name__)


class GameSession:
    """
    One simulation session: a private event bus, the game state, the random
    source and every engine wired to them.

    Engines are constructed in turn order. Each subscribes to ``turn:end`` in
    its constructor, so the economy always moves before politics, politics
    before crises, and the outcome evaluator sees the finished turn.
    """

    def __init__(self, seed=None, difficulty=Difficulty.NORMAL, settings: Optional[SettingsManager] = None,
                 random_source=None, save_manager: Optional[SaveManager] = None,
                 game_state: Optional[GameState] = None):
        self.settings = settings or SettingsManager(autoload=False)
        self.difficulty = parse_difficulty(difficulty)
        self.difficulty_settings = DifficultySettings.get_all(self.difficulty)
        self.rng = RandomnessEngine(seed, source=random_source)
        self.event_bus = EventBus()
        self.save_manager = save_manager
        self.game_state = game_state or self.build_initial_state()

        self.economy = EconomicEngine(self.event_bus, self.rng, self.game_state)
        self.policy_implementation = PolicyImplementationEngine(self.event_bus, self.rng, self.game_state)
        self.politics = PoliticalEngine(self.event_bus, self.rng, self.game_state)
        self.political_events = PoliticalEventsEngine(self.event_bus, self.rng, self.game_state,
                                                      politics_engine=self.politics)
        self.crisis = CrisisEngine(self.event_bus, self.rng, self.game_state,
                                   chance_multiplier=self.difficulty_settings["crisis_chance_multiplier"])
        self.opposition = OppositionAI(self.event_bus, self.rng, self.game_state)
        self.diplomacy = DiplomacyEngine(self.event_bus, self.rng, self.game_state)
        self.outcomes = OutcomeEvaluator(self.event_bus, self.rng, self.game_state)

        self.scheduler = TurnScheduler(self, autosave=self.autosave if save_manager is not None else None)
        self.disposed = False

    @property
    def engines(self) -> Dict[str, Any]:
        return {
            "economy": self.economy,
            "policy_implementation": self.policy_implementation,
            "politics": self.politics,
            "political_events": self.political_events,
            "crisis": self.crisis,
            "opposition": self.opposition,
            "diplomacy": self.diplomacy,
            "outcomes": self.outcomes,
        }

    def build_initial_state(self) -> GameState:
        """Fresh state with the difficulty's starting parameters applied."""
        state = GameState()
        params = self.difficulty_settings
        update_politics(state, approval=params["approval"], political_capital=params["political_capital"])
        update_economy(state, confidence=params["confidence"],
                       debt=state.economy.gdp * params["debt_ratio"] / 100)
        return state

    # --- Turns ----------------------------------------------------------

    def advance_turn(self) -> bool:
        return self.scheduler.advance_one_turn()

    def advance_turns(self, count: int) -> int:
        return self.scheduler.advance_turns(count)

    @property
    def game_over(self) -> bool:
        return self.game_state.game_over

    # --- Intents --------------------------------------------------------
    # Intents hold the scheduler's turn lock so they never interleave with a
    # timer-driven turn.

    def implement_policy(self, policy_type: str, magnitude: Optional[float] = None,
                         duration: Optional[int] = None, ongoing_effects: Optional[Dict[str, float]] = None):
        """
        Publish a policy intent and deliver the deferred reactions to it.
        Returns the economy's record of the policy, or None when the
        programme was rejected (see ``policy_implementation.last_rejection``).
        """
        if policy_type not in POLICY_EFFECTS:
            raise ValueError(f"Unknown policy type '{policy_type}'")
        with self.scheduler.exclusive():
            before = len(self.economy.policies)
            self.event_bus.publish(EventType.POLICY_IMPLEMENT, {
                "type": policy_type,
                "magnitude": magnitude,
                "duration": duration,
                "ongoing_effects": ongoing_effects or {},
            })
            self.event_bus.drain()
            return self.economy.policies[-1] if len(self.economy.policies) > before else None

    def respond_to_event(self, event_id, option_id) -> bool:
        with self.scheduler.exclusive():
            if not any(e["id"] == event_id for e in self.political_events.active_events):
                logger.debug("No active political event %s", event_id)
                return False
            self.event_bus.publish(EventType.POLITICAL_EVENT_RESPONSE, {"event_id": event_id, "option_id": option_id})
            self.event_bus.drain()
            return not any(e["id"] == event_id for e in self.political_events.active_events)

    def respond_to_crisis(self, crisis_id, response_id, resources: float = 1.0) -> bool:
        with self.scheduler.exclusive():
            crisis = self.game_state.crises.find_active(crisis_id)
            if crisis is None:
                logger.debug("No active crisis %s", crisis_id)
                return False
            responses_before = len(crisis.active_responses)
            self.event_bus.publish(EventType.CRISIS_RESPOND, {
                "crisis_id": crisis_id,
                "response_id": response_id,
                "resources": resources,
            })
            self.event_bus.drain()
            return len(crisis.active_responses) > responses_before

    def respond_to_debate(self, debate_id, response_type: str) -> bool:
        with self.scheduler.exclusive():
            if not any(d["id"] == debate_id and d["status"] == "pending" for d in self.opposition.debates):
                logger.debug("No pending debate %s", debate_id)
                return False
            self.event_bus.publish(EventType.DEBATE_RESPONSE, {"debate_id": debate_id, "response_type": response_type})
            self.event_bus.drain()
            return True

    def negotiate_trade(self, country: str, agreement_type: str = "bilateral_trade") -> bool:
        with self.scheduler.exclusive():
            agreements_before = len(self.game_state.diplomacy.trade_agreements)
            self.event_bus.publish(EventType.TRADE_NEGOTIATE, {"country": country, "agreement_type": agreement_type})
            self.event_bus.drain()
            return len(self.game_state.diplomacy.trade_agreements) > agreements_before

    def apply_shock(self, shock_type: str, magnitude: Optional[float] = None) -> Dict[str, Any]:
        with self.scheduler.exclusive():
            return self.economy.apply_shock(self.game_state, shock_type, magnitude)

    # --- Continuous play ------------------------------------------------

    def play(self) -> bool:
        return self.scheduler.start()

    def pause(self) -> bool:
        return self.scheduler.pause()

    def resume(self) -> bool:
        return self.scheduler.resume()

    def set_speed(self, ms) -> int:
        return self.scheduler.set_speed(ms)

    def play_status(self) -> Dict[str, Any]:
        return {"state": self.scheduler.state.value, "speed_ms": self.scheduler.speed_ms}

    # --- Views ----------------------------------------------------------

    def pending_decisions(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "political_events": list(self.game_state.events.pending_decisions),
            "crises": [
                {"id": c.id, "title": c.title, "severity": c.severity,
                 "responses": self.crisis.response_options(c.type)}
                for c in self.game_state.crises.active
            ],
            "debates": [d for d in self.opposition.debates if d["status"] == "pending"],
        }

    def summary(self) -> Dict[str, Any]:
        state = self.game_state
        return {
            "week": state.time.week,
            "year": state.time.year,
            "date": state.time.current_date.isoformat(),
            "economy": self.economy.metrics(state),
            "cycle": state.economy.cycle.phase,
            "approval": state.politics.approval,
            "coalition_support": state.politics.coalition_support,
            "political_capital": state.politics.political_capital,
            "active_crises": len(state.crises.active),
            "policies_in_progress": len(state.policies.active),
            "opposition_strategy": self.opposition.strategy,
            "standing": self.diplomacy.overview(state)["standing"],
            "game_over": state.game_over,
            "end_condition": state.end_condition,
        }

    def snapshot(self) -> Dict[str, Any]:
        """A structurally independent copy of the full session, safe to hand to a save collaborator."""
        with self.scheduler.exclusive():
            return json.loads(json.dumps(self.to_dict()))

    # --- Persistence ----------------------------------------------------

    def autosave(self) -> Optional[str]:
        if self.save_manager is None:
            return None
        return self.save_manager.autosave(self.snapshot())

    def save(self, name: Optional[str] = None) -> Optional[str]:
        if self.save_manager is None:
            return None
        return self.save_manager.save(self.snapshot(), name)

    def to_dict(self):
        return {
            "difficulty": self.difficulty.value,
            "game_state": self.game_state.to_dict(),
            "rng": self.rng.to_dict(),
            "engines": {
                name: engine.to_dict()
                for name, engine in self.engines.items() if hasattr(engine, "to_dict")
            },
        }

    @classmethod
    def from_dict(cls, data, settings=None, save_manager=None, random_source=None):
        """Rebuild a session from ``to_dict`` output. Returns None for unusable data."""
        if not data or not isinstance(data, dict) or "game_state" not in data:
            return None

        rng_data = data.get("rng", {})
        session = cls(
            seed=rng_data.get("seed"),
            difficulty=parse_difficulty(data.get("difficulty")),
            settings=settings,
            random_source=random_source,
            save_manager=save_manager,
            game_state=GameState.from_dict(data["game_state"]),
        )
        if random_source is None:
            session.rng.from_dict(rng_data)

        engine_data = data.get("engines", {})
        for name, engine in session.engines.items():
            if name in engine_data and hasattr(engine, "from_dict"):
                engine.from_dict(engine_data[name])
        return session

    @classmethod
    def load(cls, save_manager: SaveManager, save_id: str, settings=None):
        data = save_manager.load(save_id)
        if data is None:
            return None
        return cls.from_dict(data, settings=settings, save_manager=save_manager)

    # --- Lifecycle ------------------------------------------------------

    def dispose(self):
        """Stop the scheduler and drop every subscription made by this session."""
        if self.disposed:
            return
        self.scheduler.stop()
        self.scheduler.cleanup()
        for engine in self.engines.values():
            engine.cleanup()
        self.disposed = True


def main():
    """Text front end; kept here so ``main.py`` can launch it."""
    from game_loop import main as run_game_loop
    run_game_loop()
