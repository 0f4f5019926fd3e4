from __future__ import annotations

import hashlib
import math
import random
import time
from dataclasses import dataclass, field
from typing import Callable

from ..base import Metrics


def _rng_for(seed: str) -> random.Random:
    seed_bytes = hashlib.sha256(seed.encode("utf-8")).digest()[:8]
    return random.Random(int.from_bytes(seed_bytes, "big", signed=False))


@dataclass
class MockSensorBackend:
    """Synthetic temperature source for bench devices without hardware."""

    seed: str = "fwagent"
    metric_key: str = "temperature"
    clock: Callable[[], float] = time.time
    metric_keys: frozenset[str] = field(init=False)
    _rng: random.Random = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.metric_keys = frozenset({self.metric_key})
        self._rng = _rng_for(self.seed)

    def read_metrics(self) -> Metrics:
        # Slow daily swing around 21.5 C plus a little sensor noise.
        phase = (self.clock() % 86400.0) / 86400.0
        value = 21.5 + 4.0 * math.sin(2.0 * math.pi * phase) + self._rng.gauss(0.0, 0.2)
        return {self.metric_key: round(value, 1)}
