"""
resilience.py

Retry-with-backoff and circuit breaker for calls to the upstream movie API.
- Transient failures (network errors, timeouts, 5xx, 408, 429) are retried
  with exponential backoff; 429 honors Retry-After.
- Consecutive failures open the circuit; while open, calls fail fast until
  the reset timeout elapses and a single trial call is let through.
"""
import asyncio
import time
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from cinestream.core.errors import MovieApiUnavailableError

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 429}


def is_transient(exc: BaseException) -> bool:
    """Return True for failures worth retrying."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code >= 500 or code in TRANSIENT_STATUS_CODES
    return False


def _retry_after_seconds(exc: BaseException) -> Optional[float]:
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429:
        value = exc.response.headers.get("Retry-After")
        if value:
            try:
                return max(0.0, float(value))
            except ValueError:
                return None
    return None


async def with_retry(
    func: Callable[[], Awaitable[Any]],
    retries: int = 3,
    base_delay: float = 2.0,
    max_delay: float = 30.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    name: str = "request",
):
    """Execute func, retrying transient failures up to `retries` extra times.

    Delay before retry N (1-based) is base_delay ** N, capped at max_delay.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if not is_transient(e) or attempt >= retries:
                raise
            attempt += 1
            delay = _retry_after_seconds(e)
            if delay is None:
                delay = base_delay ** attempt
            delay = min(delay, max_delay)
            logger.warning(f"{name} failed ({type(e).__name__}: {e}); retry {attempt}/{retries} in {delay:.1f}s")
            await sleep(delay)


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    closed -> open after `failure_threshold` consecutive failures.
    open -> half_open once `reset_timeout` seconds have passed.
    half_open -> closed on success, open on failure.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._state = self.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        if self._state == self.OPEN and self._clock() - self._opened_at >= self.reset_timeout:
            return self.HALF_OPEN
        return self._state

    def _before_call(self) -> None:
        state = self.state
        if state == self.OPEN:
            retry_in = self.reset_timeout - (self._clock() - self._opened_at)
            raise MovieApiUnavailableError(
                f"Circuit '{self.name}' is open",
                retry_after=round(max(retry_in, 0.0), 1),
            )
        if state == self.HALF_OPEN:
            if self._trial_in_flight:
                raise MovieApiUnavailableError(f"Circuit '{self.name}' is half-open; trial call in progress")
            self._state = self.HALF_OPEN
            self._trial_in_flight = True

    def record_success(self) -> None:
        if self._state != self.CLOSED:
            logger.info(f"Circuit '{self.name}' closed")
        self._state = self.CLOSED
        self._failures = 0
        self._opened_at = None
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self._trial_in_flight = False
        if self._state == self.HALF_OPEN:
            self._trip()
            return
        self._failures += 1
        if self._failures >= self.failure_threshold:
            self._trip()

    def _trip(self) -> None:
        self._state = self.OPEN
        self._opened_at = self._clock()
        logger.error(f"Circuit '{self.name}' opened after {self._failures} consecutive failures")

    async def call(self, func: Callable[[], Awaitable[Any]]):
        self._before_call()
        try:
            result = await func()
        except Exception as e:
            if is_transient(e):
                self.record_failure()
            else:
                # Non-transient errors (e.g. 404) mean the upstream is up
                self.record_success()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        self.record_success()
        self._failures = 0

    def snapshot(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state,
            "consecutive_failures": self._failures,
            "failure_threshold": self.failure_threshold,
            "reset_timeout": self.reset_timeout,
        }
