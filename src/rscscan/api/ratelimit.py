# src/rscscan/api/ratelimit.py
"""
Rate limiting for scan submissions.

The limiter is injected into the app; RateLimiter.check(key) is the whole contract.
"""

import math
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset: int  # epoch milliseconds at which a slot frees up

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


class RateLimiter(ABC):
    @abstractmethod
    def check(self, key: str) -> RateLimitDecision:
        pass


class SlidingWindowRateLimiter(RateLimiter):
    """Allows `limit` requests per key in any `window` seconds."""

    def __init__(self, limit: int = 5, window: float = 10.0, clock=time.time):
        self.limit = limit
        self.window = window
        self.clock = clock
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)
        self.lock = threading.Lock()
        self.last_sweep = clock()

    def check(self, key: str) -> RateLimitDecision:
        now = self.clock()
        with self.lock:
            if now - self.last_sweep >= self.window:
                self._sweep(now)
            hits = self.hits[key]
            while hits and hits[0] <= now - self.window:
                hits.popleft()
            allowed = len(hits) < self.limit
            if allowed:
                hits.append(now)
            reset_at = (hits[0] + self.window) if hits else now + self.window
            remaining = max(0, self.limit - len(hits))
        return RateLimitDecision(allowed, self.limit, remaining, int(math.ceil(reset_at * 1000)))

    def _sweep(self, now: float):
        # Drop keys with no hits left in the window so forged client keys cannot pile up
        stale = [key for key, hits in self.hits.items() if not hits or hits[-1] <= now - self.window]
        for key in stale:
            del self.hits[key]
        self.last_sweep = now
