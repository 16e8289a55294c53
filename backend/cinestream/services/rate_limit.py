"""
rate_limit.py

Redis-based fixed-window rate limiter for the public API.
A window is identified by floor(now / window); its counter key expires with
the window, so no cleanup is needed.
"""
import time
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from cinestream.core.config import settings
from cinestream.core.redis_client import get_redis

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # seconds until the current window ends
    policy: str = "default"


class FixedWindowLimiter:
    """Counter per (policy, client, window index) with TTL = window."""

    def __init__(self, name: str, limit: int, window: int, clock: Callable[[], float] = time.time):
        self.name = name
        self.limit = limit
        self.window = window
        self._clock = clock

    def _window(self) -> tuple:
        now = self._clock()
        index = int(now // self.window)
        reset_after = max(1, int((index + 1) * self.window - now))
        return index, reset_after

    def _key(self, client_id: str, index: int) -> str:
        return f"rate_limit:{self.name}:{client_id}:{index}"

    async def peek(self, client_id: str) -> RateLimitResult:
        """Current usage without consuming quota."""
        index, reset_after = self._window()
        raw = await get_redis().get(self._key(client_id, index))
        count = int(raw or 0)
        return RateLimitResult(
            allowed=count < self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_after=reset_after,
            policy=self.name,
        )

    async def hit(self, client_id: str) -> RateLimitResult:
        """Consume one request from the current window."""
        index, reset_after = self._window()
        key = self._key(client_id, index)
        pipe = get_redis().pipeline()
        pipe.incr(key)
        pipe.expire(key, self.window)
        results = await pipe.execute()
        count = int(results[0])
        return RateLimitResult(
            allowed=count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_after=reset_after,
            policy=self.name,
        )


burst_limiter = FixedWindowLimiter("burst", settings.rate_limit_burst, settings.rate_limit_burst_window)
default_limiter = FixedWindowLimiter("default", settings.rate_limit_default, settings.rate_limit_default_window)
search_limiter = FixedWindowLimiter("search", settings.rate_limit_search, settings.rate_limit_search_window)

SEARCH_PATHS = ("/api/movies/search", "/api/movies/filter")
EXEMPT_PATHS = ("/health", "/docs", "/openapi.json", "/redoc")


def limiters_for_path(path: str) -> List[FixedWindowLimiter]:
    """Limiters in check order; the first exhausted one rejects the request."""
    if path in EXEMPT_PATHS:
        return []
    limiters = [burst_limiter, default_limiter]
    if path.startswith(SEARCH_PATHS):
        limiters.append(search_limiter)
    return limiters


async def check_rate_limit(client_id: str, path: str) -> Optional[RateLimitResult]:
    """Check every applicable window; consume quota only when all allow the request.

    Returns the tightest result (lowest remaining) or the rejecting one.
    None means no limiter applies.
    """
    limiters = limiters_for_path(path)
    if not limiters:
        return None
    for limiter in limiters:
        status = await limiter.peek(client_id)
        if not status.allowed:
            logger.warning(f"Rate limit '{limiter.name}' exceeded for client: {client_id}")
            return status
    results = [await limiter.hit(client_id) for limiter in limiters]
    rejected = [r for r in results if not r.allowed]
    if rejected:
        # Lost a race with a concurrent request for the last slot
        return rejected[0]
    return min(results, key=lambda r: r.remaining)
