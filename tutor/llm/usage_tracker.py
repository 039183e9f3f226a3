"""In-memory per-session token usage and cost tracking.

Totals only grow until ``cleanup`` evicts sessions that have been idle
longer than the retention window. Different sessions never contend with
each other; updates to one session are serialized by that session's lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable

from tutor.llm.optimizer import ModelType, calculate_cost

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class SessionTokenStats:
    """Running totals for one tutoring session."""

    session_id: str
    total_tokens_used: int = 0
    total_cost: float = 0.0
    message_count: int = 0
    average_tokens_per_message: float = 0.0
    started_at: float = 0.0
    last_activity: float = 0.0


# Cost-optimization hint thresholds
HIGH_AVERAGE_TOKENS = 200
HIGH_SESSION_COST = 0.50
LONG_SESSION_MESSAGES = 20


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------


class SessionUsageTracker:
    """Thread-safe map of session id to :class:`SessionTokenStats`.

    Parameters
    ----------
    clock : Callable[[], float]
        Wall-clock source in seconds, injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._stats: dict[str, SessionTokenStats] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _session_lock(self, session_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = self._locks[session_id] = threading.Lock()
            return lock

    def _existing_lock(self, session_id: str) -> threading.Lock | None:
        with self._registry_lock:
            return self._locks.get(session_id) if session_id in self._stats else None

    # -- recording -----------------------------------------------------------

    def track(
        self,
        session_id: str,
        prompt_tokens: int,
        completion_tokens: int,
        model: ModelType | str,
    ) -> SessionTokenStats:
        """Add one call's usage to the session totals and return a snapshot."""
        total = prompt_tokens + completion_tokens
        cost = calculate_cost(prompt_tokens, completion_tokens, model)

        while True:
            lock = self._session_lock(session_id)
            with lock:
                now = self._clock()
                with self._registry_lock:
                    if self._locks.get(session_id) is not lock:
                        # Evicted by cleanup while we waited; start over.
                        continue
                    stats = self._stats.get(session_id)
                    if stats is None:
                        stats = self._stats[session_id] = SessionTokenStats(
                            session_id=session_id, started_at=now
                        )
                stats.total_tokens_used += total
                stats.total_cost += cost
                stats.message_count += 1
                stats.average_tokens_per_message = (
                    stats.total_tokens_used / stats.message_count
                )
                stats.last_activity = now
                snapshot = replace(stats)
                break

        logger.debug(
            "Tracked %d tokens (%.6f USD) for session %s", total, cost, session_id
        )
        return snapshot

    # -- querying ------------------------------------------------------------

    def get_session_stats(self, session_id: str) -> SessionTokenStats | None:
        lock = self._existing_lock(session_id)
        if lock is None:
            return None
        with lock:
            with self._registry_lock:
                stats = self._stats.get(session_id)
            return replace(stats) if stats else None

    def all_session_stats(self) -> list[SessionTokenStats]:
        with self._registry_lock:
            ids = list(self._stats)
        result = []
        for session_id in ids:
            stats = self.get_session_stats(session_id)
            if stats is not None:
                result.append(stats)
        return result

    def recommendations(self, session_id: str) -> list[str]:
        """Cost-optimization hints for a session."""
        stats = self.get_session_stats(session_id)
        if stats is None:
            return []

        hints = []
        if stats.average_tokens_per_message > HIGH_AVERAGE_TOKENS:
            hints.append(
                "Consider shorter responses for this age group to reduce token usage"
            )
        if stats.total_cost > HIGH_SESSION_COST:
            hints.append(
                "High session cost detected - consider using a cheaper model for simple questions"
            )
        if stats.message_count > LONG_SESSION_MESSAGES:
            hints.append(
                "Long conversation detected - conversation pruning is being applied automatically"
            )
        return hints

    # -- maintenance ---------------------------------------------------------

    def cleanup(self, retention_hours: float = 24) -> int:
        """Evict sessions idle longer than *retention_hours*; return how many.

        Each session is evicted under its own lock, so an update that is
        in progress finishes first and keeps the session alive.
        """
        cutoff = self._clock() - retention_hours * 3600
        with self._registry_lock:
            candidates = [
                (session_id, self._locks[session_id])
                for session_id, stats in self._stats.items()
                if stats.last_activity < cutoff
            ]
            # Locks with no stats belong to no tracked session.
            for session_id in [s for s in self._locks if s not in self._stats]:
                del self._locks[session_id]

        removed = 0
        for session_id, lock in candidates:
            with lock:
                with self._registry_lock:
                    stats = self._stats.get(session_id)
                    if (
                        stats is None
                        or stats.last_activity >= cutoff
                        or self._locks.get(session_id) is not lock
                    ):
                        continue
                    del self._stats[session_id]
                    del self._locks[session_id]
                    removed += 1
        if removed:
            logger.info("Cleaned up %d inactive session(s)", removed)
        return removed
