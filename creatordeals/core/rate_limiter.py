"""In-memory sliding-window rate limiter keyed by user id or client IP.

Each key keeps a log of the monotonic times of its admitted requests. A
request is admitted while fewer than ``limit`` requests fall inside the
trailing window, so a burst at the end of one minute cannot be followed by a
second burst at the start of the next.
"""

import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from creatordeals.config import settings

WINDOW_SECONDS = 60
SWEEP_INTERVAL_SECONDS = 300


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_seconds: float

    def headers(self) -> dict[str, str]:
        reset = max(0, math.ceil(self.reset_seconds))
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(reset),
        }
        if not self.allowed:
            headers["Retry-After"] = str(max(1, reset))
        return headers


def limit_for(authenticated: bool) -> int:
    if authenticated:
        return settings.rest_rate_limit_authenticated
    return settings.rest_rate_limit_anonymous


class SlidingWindowRateLimiter:
    def __init__(self, window_seconds: float = WINDOW_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    def check(self, key: str, authenticated: bool = False) -> RateLimitDecision:
        """Admit or refuse one request for ``key``. Refused requests are not logged."""
        limit = limit_for(authenticated)
        now = self._clock()
        self._sweep(now)

        hits = self._hits.setdefault(key, deque())
        self._expire(hits, now)
        if len(hits) >= limit:
            return RateLimitDecision(False, limit, 0, hits[0] + self.window_seconds - now)

        hits.append(now)
        return RateLimitDecision(True, limit, limit - len(hits), hits[0] + self.window_seconds - now)

    def in_window(self, key: str) -> int:
        hits = self._hits.get(key)
        if not hits:
            return 0
        self._expire(hits, self._clock())
        return len(hits)

    def reset(self) -> None:
        self._hits.clear()

    def _expire(self, hits: deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < SWEEP_INTERVAL_SECONDS:
            return
        self._last_sweep = now
        for key in list(self._hits):
            hits = self._hits[key]
            self._expire(hits, now)
            if not hits:
                del self._hits[key]


rate_limiter = SlidingWindowRateLimiter()
