"""
Simulation providers - the source of randomness and time for node payloads.

Handlers never call ``random`` or ``datetime.now`` directly; they ask the
provider on their context. Swap in a seeded ``RandomProvider`` for
reproducible runs, or a ``FixedProvider`` for fully deterministic tests.
"""

import random
import string
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TypeVar

T = TypeVar("T")

_BASE36 = string.digits + string.ascii_lowercase


class SimulationProvider(ABC):
    """Randomness and clock used by node output handlers."""

    @abstractmethod
    def random(self) -> float:
        """Uniform float in [0, 1)."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time."""

    def randint(self, low: int, high: int) -> int:
        """Integer in [low, high]."""
        return low + int(self.random() * (high - low + 1))

    def uniform(self, low: float, high: float) -> float:
        return low + self.random() * (high - low)

    def choice(self, options: Sequence[T]) -> T:
        if not options:
            raise IndexError("Cannot choose from an empty sequence")
        return options[min(int(self.random() * len(options)), len(options) - 1)]

    def token(self, length: int = 8) -> str:
        """Short random base-36 identifier (request ids, transaction ids)."""
        return "".join(self.choice(_BASE36) for _ in range(length))

    def timestamp(self) -> str:
        return self.now().isoformat()

    def reset(self) -> None:
        """Rewind to the start of the sequence. Called at the start of every run."""


class RandomProvider(SimulationProvider):
    """Pseudo-random provider, reproducible when seeded."""

    def __init__(self, seed: int | None = None):
        self.seed = seed
        self._rng = random.Random(seed)

    def random(self) -> float:
        return self._rng.random()

    def now(self) -> datetime:
        return datetime.now(UTC)

    def reseed(self, seed: int | None = None) -> None:
        self.seed = seed
        self._rng = random.Random(seed)

    def reset(self) -> None:
        # Unseeded providers keep drawing fresh values
        if self.seed is not None:
            self._rng = random.Random(self.seed)


class FixedProvider(SimulationProvider):
    """Always returns the same value and the same instant.

    The default of 0.75 makes IF conditions true and injects no failures.
    ``choice`` picks index ``int(0.75 * len(options))``, which is the last
    option only for sequences of one to four items.
    """

    def __init__(self, value: float = 0.75, now: datetime | None = None):
        if not 0 <= value < 1:
            raise ValueError("value must be in [0, 1)")
        self.value = value
        self._now = now or datetime(2024, 1, 1, tzinfo=UTC)

    def random(self) -> float:
        return self.value

    def now(self) -> datetime:
        return self._now
