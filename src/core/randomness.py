import random
from typing import Any, Dict, Optional, Sequence, TypeVar

from core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class SequenceSource:
    """
    Replays a fixed list of floats in [0, 1), wrapping at the end.
    Used to pin down every random decision in tests and debug runs.
    """

    def __init__(self, values: Sequence[float]):
        if not values:
            raise ValueError("SequenceSource needs at least one value")
        for v in values:
            if not 0.0 <= v < 1.0:
                raise ValueError(f"Sequence value {v} outside [0, 1)")
        self.values = list(values)
        self.index = 0

    def next(self) -> float:
        value = self.values[self.index % len(self.values)]
        self.index += 1
        return value


class _MersenneSource:
    def __init__(self, seed=None):
        self.random = random.Random(seed)

    def next(self) -> float:
        return self.random.random()


class RandomnessEngine:
    """
    Every stochastic decision in the simulation goes through here.

    The underlying source only has to provide ``next() -> float in [0, 1)``;
    all helpers are derived from it so an injected sequence fully determines
    the outcome of a turn.
    """

    def __init__(self, seed=None, source=None):
        self.seed = seed
        self._source = source if source is not None else _MersenneSource(seed)

    @property
    def source(self):
        return self._source

    def next(self) -> float:
        return self._source.next()

    def random_float(self) -> float:
        return self._source.next()

    def random(self) -> float:
        return self._source.next()

    def uniform(self, low: float, high: float) -> float:
        return low + (high - low) * self._source.next()

    def noise(self, scale: float) -> float:
        """Centered noise: (r - 0.5) * scale."""
        return (self._source.next() - 0.5) * scale

    def chance(self, probability: float) -> bool:
        return self._source.next() < probability

    def randint(self, a: int, b: int) -> int:
        span = b - a + 1
        return a + min(span - 1, int(self._source.next() * span))

    def choose(self, collection: Sequence[T]) -> Optional[T]:
        if not collection:
            return None
        items = list(collection)
        return items[min(len(items) - 1, int(self._source.next() * len(items)))]

    def weighted_choice(self, weights: Dict[Any, float]):
        """
        Pick a key from a {key: weight} mapping. Iteration order of the
        mapping decides ties; non-positive weights are never chosen.
        """
        total = sum(w for w in weights.values() if w > 0)
        if total <= 0:
            return None
        roll = self._source.next() * total
        cumulative = 0.0
        last = None
        for key, weight in weights.items():
            if weight <= 0:
                continue
            cumulative += weight
            last = key
            if roll < cumulative:
                return key
        return last

    def to_dict(self):
        data = {"seed": self.seed, "rng_state": None}
        if isinstance(self._source, _MersenneSource):
            # random.getstate() returns (version, internal_state_tuple, gaussian_state)
            state = self._source.random.getstate()
            data["rng_state"] = [state[0], list(state[1]), state[2]]
        elif isinstance(self._source, SequenceSource):
            data["sequence"] = {"values": self._source.values, "index": self._source.index}
        return data

    def from_dict(self, data):
        self.seed = data.get("seed")
        sequence = data.get("sequence")
        if sequence:
            self._source = SequenceSource(sequence["values"])
            self._source.index = sequence.get("index", 0)
            return

        if not isinstance(self._source, _MersenneSource):
            self._source = _MersenneSource(self.seed)
        rng_state = data.get("rng_state")
        if rng_state:
            try:
                state = (
                    rng_state[0],
                    tuple(rng_state[1]),
                    rng_state[2]
                )
                self._source.random.setstate(state)
            except (TypeError, ValueError, IndexError) as e:
                logger.warning("Failed to restore RNG state: %s", e)
