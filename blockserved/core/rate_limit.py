from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple


@dataclass
class Bucket:
    tokens: float
    last_ts: float


class InMemoryRateLimiter:
    """
    Token bucket per (client, route): `capacity` tokens, refilled at
    `refill_per_sec`. Process-local.

    A bucket that has refilled to capacity is indistinguishable from a new
    one, so those are dropped; the sweep runs at most once per full-refill
    interval.
    """
    def __init__(self, capacity: int, refill_per_sec: float, clock: Callable[[], float] = time.monotonic):
        self.capacity = float(capacity)
        self.refill_per_sec = float(refill_per_sec)
        self._clock = clock
        self._buckets: Dict[Tuple[str, str], Bucket] = {}
        self._refill_seconds = self.capacity / self.refill_per_sec if self.refill_per_sec > 0 else float("inf")
        self._last_sweep = clock()

    @classmethod
    def per_minute(cls, limit: int) -> "InMemoryRateLimiter":
        return cls(capacity=limit, refill_per_sec=limit / 60.0)

    def __len__(self) -> int:
        return len(self._buckets)

    def allow(self, client_key: str, route_key: str, cost: float = 1.0) -> bool:
        now = self._clock()
        if now - self._last_sweep >= self._refill_seconds:
            self._sweep(now)

        k = (client_key, route_key)
        b = self._buckets.get(k)
        if b is None:
            b = Bucket(tokens=self.capacity, last_ts=now)
            self._buckets[k] = b

        elapsed = max(0.0, now - b.last_ts)
        b.tokens = min(self.capacity, b.tokens + elapsed * self.refill_per_sec)
        b.last_ts = now

        if b.tokens >= cost:
            b.tokens -= cost
            return True
        return False

    def _sweep(self, now: float) -> None:
        full = [
            k for k, b in self._buckets.items()
            if b.tokens + max(0.0, now - b.last_ts) * self.refill_per_sec >= self.capacity
        ]
        for k in full:
            del self._buckets[k]
        self._last_sweep = now
