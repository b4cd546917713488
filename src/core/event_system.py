from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Callable, Any, Deque, Tuple
from collections import deque
from core.logger import get_logger
import time

logger = get_logger(__name__)


class EventType(str, Enum):
    # Turn lifecycle
    TURN_START = "turn:start"
    TURN_END = "turn:end"
    YEAR_CHANGE = "time:year_change"

    # Session lifecycle
    GAME_STARTED = "game:started"
    GAME_PAUSED = "game:paused"
    GAME_RESUMED = "game:resumed"
    GAME_STOPPED = "game:stopped"
    GAME_AUTOSAVE = "game:autosave"
    GAME_END = "game:end"

    # Economy
    ECONOMIC_UPDATE = "economic:update"
    ECONOMIC_EVENT = "economic:event"
    ECONOMIC_CYCLE_CHANGE = "economic:cycle_change"
    ECONOMIC_SHOCK = "economic:shock"
    ECONOMIC_POLICY_IMPLEMENTED = "economic:policy_implemented"

    # Politics
    APPROVAL_CHANGE = "political:approval_change"
    POLITICAL_EVENT_TRIGGERED = "political:event_triggered"
    POLITICAL_EVENT_RESOLVED = "political:event_resolved"
    ELECTION = "political:election"
    VOTE_SCHEDULED = "political:vote_scheduled"
    VOTE_RESULT = "political:vote_result"
    COALITION_CHANGE = "political:coalition_change"

    # Crises
    CRISIS_GENERATED = "crisis:generated"
    CRISIS_UPDATE = "crisis:update"
    CRISIS_DEVELOPMENT = "crisis:development"
    CRISIS_RESPONSE_IMPLEMENTED = "crisis:response_implemented"
    CRISIS_RESOLVED = "crisis:resolved"
    CRISIS_ESCALATED = "crisis:escalated"

    # Opposition
    OPPOSITION_ACTION = "opposition:action"
    DEBATE_INITIATED = "opposition:debate_initiated"
    DEBATE_CONCLUDED = "opposition:debate_concluded"
    OPPOSITION_POLICY_RESPONSE = "opposition:policy_response"

    # International
    INTERNATIONAL_UPDATE = "international:update"
    TRADE_AGREEMENT = "international:trade_agreement"
    INTERNATIONAL_CRISIS = "international:crisis"
    INTERNATIONAL_INCIDENT = "international:incident"

    # Policy programmes
    POLICY_IMPLEMENTED = "policy:implemented"
    POLICY_REJECTED = "policy:rejected"
    POLICY_IMPLEMENTATION_STARTED = "policy:implementation_started"
    POLICY_PHASE_CHANGE = "policy:phase_change"
    POLICY_PROGRESS = "policy:progress"
    POLICY_OPPOSITION_CHALLENGE = "policy:opposition_challenge"
    POLICY_COMPLETED = "policy:completed"

    # Outcomes
    ACHIEVEMENT_UNLOCKED = "achievement:unlocked"

    # === INTENT EVENTS ===
    # Consumers request mutations by publishing these
    POLICY_IMPLEMENT = "policy:implement"
    POLITICAL_EVENT_RESPONSE = "political:event_response"
    CRISIS_RESPOND = "crisis:respond"
    DEBATE_RESPONSE = "opposition:debate_response"
    TRADE_NEGOTIATE = "international:trade_negotiate"


@dataclass
class GameEvent:
    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


Handler = Callable[[GameEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe hub for one simulation session.

    Handlers for an event run in subscription order over a snapshot of the
    subscriber list, so subscribing or unsubscribing from inside a handler
    only affects later dispatches. A handler that raises is logged and the
    remaining handlers still run.
    """

    def __init__(self):
        self._subscribers: Dict[EventType, List[Handler]] = {}
        self._queue: Deque[GameEvent] = deque()
        self._draining = False

    def subscribe(self, event_type: EventType, callback: Handler) -> Callable[[], None]:
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(callback)

        def unsubscribe():
            self.unsubscribe(event_type, callback)

        return unsubscribe

    def unsubscribe(self, event_type: EventType, callback: Handler):
        if event_type in self._subscribers:
            if callback in self._subscribers[event_type]:
                self._subscribers[event_type].remove(callback)

    def emit(self, event: GameEvent):
        """
        Pushes an event to all subscribers.
        """
        for callback in list(self._subscribers.get(event.type, ())):
            try:
                callback(event)
            except Exception:
                logger.exception("Listener fault while processing %s", event.type.value)

    def publish(self, event_type: EventType, payload: Dict[str, Any] = None) -> GameEvent:
        event = GameEvent(event_type, payload if payload is not None else {})
        self.emit(event)
        return event

    def enqueue(self, event_type: EventType, payload: Dict[str, Any] = None):
        """Buffer an event for delivery on the next drain()."""
        self._queue.append(GameEvent(event_type, payload if payload is not None else {}))

    def drain(self) -> int:
        """
        Deliver queued events in FIFO order. Events enqueued while draining
        are delivered by the same call. Returns the number of delivered events.
        """
        if self._draining:
            return 0
        delivered = 0
        self._draining = True
        try:
            while self._queue:
                self.emit(self._queue.popleft())
                delivered += 1
        finally:
            self._draining = False
        return delivered

    @property
    def pending(self) -> int:
        return len(self._queue)

    def subscriber_count(self, event_type: EventType = None) -> int:
        if event_type is None:
            return sum(len(handlers) for handlers in self._subscribers.values())
        return len(self._subscribers.get(event_type, ()))

    def clear(self):
        self._subscribers = {}
        self._queue.clear()


class SubscriptionGroup:
    """Collects unsubscribe handles so an owner can release them together."""

    def __init__(self, bus: EventBus):
        self.bus = bus
        self._handles: List[Tuple[EventType, Callable[[], None]]] = []

    def subscribe(self, event_type: EventType, callback: Handler):
        self._handles.append((event_type, self.bus.subscribe(event_type, callback)))

    def dispose(self):
        while self._handles:
            _, unsubscribe = self._handles.pop()
            unsubscribe()

    def __len__(self):
        return len(self._handles)
