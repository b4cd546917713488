"""
Outcome Evaluator

Scans the game state after every other engine has run for the turn. Loss
conditions are checked first and short-circuit the victory checks; the game
ends through a single ``game:end`` publication. Achievements are tracked
independently and keep their own progress records between turns.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any, Union

from core.event_system import EventBus, EventType, GameEvent, SubscriptionGroup
from core.logger import get_logger
from core.randomness import RandomnessEngine
from core.state import GameState, record_event
from systems.crisis import major_scandals
from systems.diplomacy import international_standing

logger = get_logger(__name__)

APPROVAL_COLLAPSE = 15.0
ECONOMIC_COLLAPSE_UNEMPLOYMENT = 15.0
ECONOMIC_COLLAPSE_GROWTH = -5.0
SCANDAL_OVERLOAD = 2


# --- Progress variants ----------------------------------------------------

@dataclass
class StreakProgress:
    kind: str = "streak"
    consecutive_weeks: int = 0


@dataclass
class CrisisProgress:
    kind: str = "crisis"
    handled_crises: int = 0
    total_approval_loss: float = 0.0


@dataclass
class PolicyProgress:
    kind: str = "policy"
    passed_policies: int = 0


@dataclass
class ConditionProgress:
    kind: str = "condition"
    met: bool = False


Progress = Union[StreakProgress, CrisisProgress, PolicyProgress, ConditionProgress]

PROGRESS_TYPES = {
    "streak": StreakProgress,
    "crisis": CrisisProgress,
    "policy": PolicyProgress,
    "condition": ConditionProgress,
}


@dataclass
class Achievement:
    id: str
    title: str
    description: str
    requirement: Dict[str, Any]
    progress: Progress
    unlocked: bool = False
    unlocked_at: Optional[Dict[str, int]] = None

    def to_dict(self):
        return asdict(self)


def default_achievements() -> Dict[str, Achievement]:
    achievements = [
        Achievement("popular_leader", "Popular Leader",
                    "Maintain 70%+ approval rating for 12 consecutive weeks",
                    {"threshold": 70, "duration": 12}, StreakProgress()),
        Achievement("economic_miracle", "Economic Miracle",
                    "Achieve 5%+ GDP growth with unemployment below 4%",
                    {"gdp_growth": 5, "unemployment": 4}, ConditionProgress()),
        Achievement("crisis_manager", "Crisis Manager",
                    "Successfully handle 3 crises without losing more than 5% approval total",
                    {"crises": 3, "max_approval_loss": 5}, CrisisProgress()),
        Achievement("diplomatic_master", "Diplomatic Master",
                    "Achieve \"Excellent\" international standing",
                    {"standing": "Excellent"}, ConditionProgress()),
        Achievement("first_term_success", "First Term Success",
                    "Complete your first term with 60%+ approval",
                    {"year": 4, "approval": 60}, ConditionProgress()),
        Achievement("landslide_victory", "Landslide Victory",
                    "Win an election with 65%+ approval",
                    {"approval": 65}, ConditionProgress()),
        Achievement("balanced_budget", "Fiscal Responsibility",
                    "Reduce national debt below 50% of GDP",
                    {"debt_ratio": 50}, ConditionProgress()),
        Achievement("policy_master", "Policy Master",
                    "Successfully pass 10 major policy votes",
                    {"policies": 10}, PolicyProgress()),
    ]
    return {a.id: a for a in achievements}


class OutcomeEvaluator:
    def __init__(self, event_bus: EventBus, rng: RandomnessEngine, game_state: GameState):
        self.event_bus = event_bus
        self.rng = rng
        self.game_state = game_state
        self.achievements = default_achievements()

        self._subscriptions = SubscriptionGroup(event_bus)
        self._subscriptions.subscribe(EventType.TURN_END, self.on_turn_end)
        self._subscriptions.subscribe(EventType.ELECTION, self.on_election)
        self._subscriptions.subscribe(EventType.CRISIS_RESOLVED, self.on_crisis_resolved)
        self._subscriptions.subscribe(EventType.VOTE_RESULT, self.on_vote_result)

    def cleanup(self):
        self._subscriptions.dispose()

    # --- Event handlers -------------------------------------------------

    def on_turn_end(self, event: GameEvent):
        game_state = event.payload.get("game_state", self.game_state)
        self.evaluate(game_state)

    def on_election(self, event: GameEvent):
        result = event.payload.get("result")
        approval = event.payload.get("approval", 0.0)
        if result == "victory" and approval >= self.achievements["landslide_victory"].requirement["approval"]:
            self.achievements["landslide_victory"].progress.met = True
            self.unlock("landslide_victory", self.game_state)
        if result == "defeat":
            self.end_game(self.game_state, {
                "type": "defeat",
                "reason": "election_loss",
                "title": "Election Defeat",
                "description": f"You lost the election with {approval:.1f}% approval. "
                               "The people have chosen new leadership.",
            })

    def on_crisis_resolved(self, event: GameEvent):
        crisis = event.payload.get("crisis", {})
        start = crisis.get("approval_at_start", self.game_state.politics.approval)
        progress = self.achievements["crisis_manager"].progress
        progress.handled_crises += 1
        progress.total_approval_loss += max(0.0, start - self.game_state.politics.approval)

    def on_vote_result(self, event: GameEvent):
        if event.payload.get("passed"):
            self.achievements["policy_master"].progress.passed_policies += 1

    # --- Evaluation -----------------------------------------------------

    def evaluate(self, game_state: GameState) -> Optional[Dict[str, Any]]:
        if game_state.game_over:
            return game_state.end_condition
        self.check_achievements(game_state)
        condition = self.check_loss_conditions(game_state) or self.check_victory_conditions(game_state)
        if condition:
            self.end_game(game_state, condition)
        return condition

    def check_loss_conditions(self, game_state: GameState) -> Optional[Dict[str, Any]]:
        approval = game_state.politics.approval
        economy = game_state.economy

        if approval < APPROVAL_COLLAPSE:
            return {
                "type": "defeat",
                "reason": "approval_collapse",
                "title": "Government Collapse",
                "description": f"Your approval rating has collapsed to {approval:.1f}%. "
                               "You have been forced to resign.",
            }
        if economy.unemployment > ECONOMIC_COLLAPSE_UNEMPLOYMENT and economy.gdp_growth < ECONOMIC_COLLAPSE_GROWTH:
            return {
                "type": "defeat",
                "reason": "economic_collapse",
                "title": "Economic Collapse",
                "description": f"The economy has collapsed with {economy.unemployment:.1f}% unemployment "
                               f"and {economy.gdp_growth:.1f}% growth.",
            }
        if len(major_scandals(game_state)) >= SCANDAL_OVERLOAD:
            return {
                "type": "defeat",
                "reason": "scandal_overload",
                "title": "Political Scandals",
                "description": "Multiple major scandals have overwhelmed your administration. "
                               "Parliament has voted no confidence.",
            }
        return None

    def check_victory_conditions(self, game_state: GameState) -> Optional[Dict[str, Any]]:
        approval = game_state.politics.approval
        year = game_state.time.year

        if year >= 8 and approval >= 50:
            return {
                "type": "victory",
                "reason": "successful_leadership",
                "title": "Successful Leadership",
                "description": f"You led the country for {year} years with a final approval "
                               f"rating of {approval:.1f}%.",
            }
        if approval >= 80 and year >= 4:
            return {
                "type": "victory",
                "reason": "beloved_leader",
                "title": "Beloved Leader",
                "description": f"You are universally beloved with {approval:.1f}% approval.",
            }
        return None

    def check_achievements(self, game_state: GameState) -> List[str]:
        unlocked = []
        for achievement_id, achievement in self.achievements.items():
            if achievement.unlocked:
                continue
            if self.is_met(achievement, game_state):
                self.unlock(achievement_id, game_state)
                unlocked.append(achievement_id)
        return unlocked

    def is_met(self, achievement: Achievement, game_state: GameState) -> bool:
        progress = achievement.progress
        requirement = achievement.requirement
        approval = game_state.politics.approval
        economy = game_state.economy

        if isinstance(progress, StreakProgress):
            if approval >= requirement["threshold"]:
                progress.consecutive_weeks += 1
            else:
                progress.consecutive_weeks = 0
            return progress.consecutive_weeks >= requirement["duration"]

        if isinstance(progress, CrisisProgress):
            return (progress.handled_crises >= requirement["crises"]
                    and progress.total_approval_loss <= requirement["max_approval_loss"])

        if isinstance(progress, PolicyProgress):
            return progress.passed_policies >= requirement["policies"]

        if achievement.id == "economic_miracle":
            progress.met = (economy.gdp_growth >= requirement["gdp_growth"]
                            and economy.unemployment <= requirement["unemployment"])
        elif achievement.id == "diplomatic_master":
            progress.met = international_standing(game_state) == requirement["standing"]
        elif achievement.id == "first_term_success":
            progress.met = game_state.time.year >= requirement["year"] and approval >= requirement["approval"]
        elif achievement.id == "balanced_budget":
            progress.met = economy.debt_ratio < requirement["debt_ratio"]
        return progress.met

    def unlock(self, achievement_id: str, game_state: GameState) -> bool:
        achievement = self.achievements.get(achievement_id)
        if achievement is None or achievement.unlocked:
            return False
        achievement.unlocked = True
        achievement.unlocked_at = {"week": game_state.time.week, "year": game_state.time.year}

        record_event(game_state, {
            "title": f"Achievement Unlocked: {achievement.title}",
            "description": achievement.description,
            "type": "achievement",
            "severity": "positive",
        })
        logger.info("Achievement unlocked: %s", achievement.title)
        self.event_bus.publish(EventType.ACHIEVEMENT_UNLOCKED, {"achievement": achievement.to_dict()})
        return True

    # --- Game end -------------------------------------------------------

    def end_game(self, game_state: GameState, condition: Dict[str, Any]) -> bool:
        if game_state.game_over:
            return False
        condition = dict(condition)
        condition["final_stats"] = self.final_stats(game_state)
        game_state.game_over = True
        game_state.end_condition = condition

        logger.info("Game over: %s (%s)", condition["title"], condition["reason"])
        self.event_bus.publish(EventType.GAME_END, {"end_condition": condition})
        return True

    def final_stats(self, game_state: GameState) -> Dict[str, Any]:
        unlocked = self.unlocked_achievements()
        return {
            "time_in_office": f"{game_state.time.year} years, {game_state.time.week} weeks",
            "final_approval": game_state.politics.approval,
            "final_gdp_growth": game_state.economy.gdp_growth,
            "final_unemployment": game_state.economy.unemployment,
            "final_inflation": game_state.economy.inflation,
            "achievements_unlocked": len(unlocked),
            "achievements": [a.id for a in unlocked],
            "international_standing": international_standing(game_state),
        }

    def unlocked_achievements(self) -> List[Achievement]:
        return [a for a in self.achievements.values() if a.unlocked]

    # --- Persistence ----------------------------------------------------

    def to_dict(self):
        return {"achievements": {k: a.to_dict() for k, a in self.achievements.items()}}

    def from_dict(self, data):
        self.achievements = default_achievements()
        for achievement_id, saved in data.get("achievements", {}).items():
            achievement = self.achievements.get(achievement_id)
            if achievement is None:
                continue
            progress = saved.get("progress", {})
            progress_cls = PROGRESS_TYPES.get(progress.get("kind"), type(achievement.progress))
            if progress_cls is type(achievement.progress):
                achievement.progress = progress_cls(**progress)
            achievement.unlocked = saved.get("unlocked", False)
            achievement.unlocked_at = saved.get("unlocked_at")
