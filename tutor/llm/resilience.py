"""Circuit breaker and bounded retry around the completion call.

The breaker has two effective states. It is closed while fewer than
``failure_threshold`` consecutive failures have been recorded, and open
while the threshold is reached and the last failure is younger than
``open_duration``. Once that window passes the next call goes through
as the trial call: a failure re-opens the breaker at once, a success resets
the count to zero.

Example::

    breaker = CircuitBreaker()
    retry = RetryPolicy()
    response = await breaker.guard(lambda: retry.run(lambda: client.complete(req)))
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from tutor.errors import (
    CircuitOpenError,
    InvalidUpstreamResponseError,
    PipelineError,
    UpstreamNonRetryableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"


@dataclass
class CircuitBreakerState:
    """Snapshot of the shared breaker counters."""

    failure_count: int = 0
    last_failure_time: Optional[float] = None
    state: CircuitState = CircuitState.CLOSED


class CircuitBreaker:
    """Consecutive-failure breaker shared by every request in one process.

    Attributes:
        failure_threshold: Consecutive failures before opening (default 5)
        open_duration: Seconds to fail fast after the last failure (default 60)
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        open_duration: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.open_duration = open_duration
        self._clock = clock
        self._failure_count = 0
        self._last_failure: Optional[float] = None
        self._lock = threading.Lock()

    def _open_locked(self) -> bool:
        if self._failure_count < self.failure_threshold or self._last_failure is None:
            return False
        return self._clock() - self._last_failure < self.open_duration

    def is_open(self) -> bool:
        with self._lock:
            return self._open_locked()

    def retry_after(self) -> float:
        """Seconds until the breaker lets a trial call through (0 when closed)."""
        with self._lock:
            if not self._open_locked():
                return 0.0
            return max(0.0, self.open_duration - (self._clock() - self._last_failure))

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def state(self) -> CircuitBreakerState:
        with self._lock:
            return CircuitBreakerState(
                failure_count=self._failure_count,
                last_failure_time=self._last_failure,
                state=CircuitState.OPEN if self._open_locked() else CircuitState.CLOSED,
            )

    def record_success(self) -> None:
        with self._lock:
            previous = self._failure_count
            self._failure_count = 0
        if previous:
            logger.info("Circuit breaker closed after %d failure(s)", previous)

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure = self._clock()
            count = self._failure_count
            opened = count == self.failure_threshold
        logger.error("Completion call failed (consecutive failures: %d)", count)
        if opened:
            logger.warning(
                "Circuit breaker opened after %d failures; failing fast for %.0fs",
                count,
                self.open_duration,
            )

    def reset(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._last_failure = None

    async def guard(self, call: Callable[[], Awaitable[T]]) -> T:
        """Run *call* unless the breaker is open.

        Raises ``CircuitOpenError`` without invoking *call* when open.
        Any other ``PipelineError`` from *call* is recorded as one failure
        and re-raised; a normal return resets the failure count.
        """
        wait = self.retry_after()
        if wait > 0:
            raise CircuitOpenError(retry_after=wait)

        try:
            result = await call()
        except CircuitOpenError:
            raise
        except PipelineError:
            self.record_failure()
            raise
        self.record_success()
        return result


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


class RetryPolicy:
    """Sequential retries with exponential backoff.

    Attempt ``n`` (1-based, ``n > 1``) is preceded by a sleep of
    ``min(2 ** (n - 1), backoff_cap)`` seconds. Non-retryable upstream
    errors and malformed responses propagate on the first occurrence.
    When attempts run out the last error is raised.
    """

    def __init__(
        self,
        max_retries: int = 3,
        backoff_cap: float = 8.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_retries = max(1, max_retries)
        self.backoff_cap = backoff_cap
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        return float(min(2 ** (attempt - 1), self.backoff_cap))

    async def run(self, call: Callable[[], Awaitable[T]]) -> T:
        last_error: Optional[PipelineError] = None
        for attempt in range(1, self.max_retries + 1):
            if attempt > 1:
                await self._sleep(self.backoff(attempt))
            try:
                return await call()
            except (UpstreamNonRetryableError, InvalidUpstreamResponseError):
                raise
            except PipelineError as exc:
                last_error = exc
                if attempt < self.max_retries:
                    logger.warning(
                        "Attempt %d/%d failed (%s); retrying in %.0fs",
                        attempt,
                        self.max_retries,
                        exc,
                        self.backoff(attempt + 1),
                    )
                else:
                    logger.warning(
                        "Attempt %d/%d failed (%s); giving up", attempt, self.max_retries, exc
                    )
        assert last_error is not None
        raise last_error
