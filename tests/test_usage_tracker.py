"""Tests for per-session token usage tracking."""

import threading

import pytest

from tutor.llm.optimizer import ModelType
from tutor.llm.usage_tracker import SessionUsageTracker


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_usage_accumulates_per_session():
    tracker = SessionUsageTracker(clock=FakeClock())
    tracker.track("s1", 100, 50, ModelType.HAIKU)
    stats = tracker.track("s1", 100, 50, ModelType.HAIKU)

    assert stats.total_tokens_used == 300
    assert stats.message_count == 2
    assert stats.average_tokens_per_message == pytest.approx(150)
    assert stats.total_cost == pytest.approx(0.00056)

    assert tracker.get_session_stats("s2") is None


def test_returned_stats_are_snapshots():
    tracker = SessionUsageTracker(clock=FakeClock())
    first = tracker.track("s1", 10, 10, ModelType.HAIKU)
    tracker.track("s1", 10, 10, ModelType.HAIKU)
    assert first.total_tokens_used == 20


def test_unknown_model_adds_no_cost():
    tracker = SessionUsageTracker(clock=FakeClock())
    stats = tracker.track("s1", 1000, 1000, "mystery-model")
    assert stats.total_cost == 0
    assert stats.total_tokens_used == 2000


def test_cleanup_evicts_idle_sessions():
    clock = FakeClock()
    tracker = SessionUsageTracker(clock=clock)
    tracker.track("old", 10, 10, ModelType.HAIKU)
    clock.now = 20 * 3600
    tracker.track("recent", 10, 10, ModelType.HAIKU)

    clock.now = 25 * 3600
    assert tracker.cleanup(retention_hours=24) == 1
    assert tracker.get_session_stats("old") is None
    assert tracker.get_session_stats("recent") is not None
    assert [s.session_id for s in tracker.all_session_stats()] == ["recent"]


def test_recommendations():
    tracker = SessionUsageTracker(clock=FakeClock())
    assert tracker.recommendations("none") == []

    tracker.track("quiet", 20, 20, ModelType.HAIKU)
    assert tracker.recommendations("quiet") == []

    tracker.track("busy", 30_000, 5_000, ModelType.OPUS)
    hints = tracker.recommendations("busy")
    assert any("shorter responses" in h for h in hints)
    assert any("cheaper model" in h for h in hints)

    for _ in range(21):
        tracker.track("long", 10, 10, ModelType.HAIKU)
    assert any("pruning" in h for h in tracker.recommendations("long"))


def test_concurrent_updates_are_not_lost():
    tracker = SessionUsageTracker(clock=FakeClock())

    def worker():
        for _ in range(200):
            tracker.track("shared", 1, 1, ModelType.HAIKU)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stats = tracker.get_session_stats("shared")
    assert stats.message_count == 1600
    assert stats.total_tokens_used == 3200


def test_queries_for_unknown_sessions_leave_nothing_behind():
    tracker = SessionUsageTracker(clock=FakeClock())
    for i in range(100):
        assert tracker.recommendations(f"s{i}") == []
        assert tracker.get_session_stats(f"s{i}") is None

    assert tracker.cleanup(retention_hours=0) == 0
    assert tracker._locks == {}
    assert tracker._stats == {}


def test_cleanup_removes_lock_with_stats():
    clock = FakeClock()
    tracker = SessionUsageTracker(clock=clock)
    tracker.track("s1", 1, 1, ModelType.HAIKU)
    clock.now = 48 * 3600

    assert tracker.cleanup(retention_hours=24) == 1
    assert tracker._locks == {}


class CleanupDuringTrackClock:
    """Starts a cleanup on another thread from inside the second track call."""

    def __init__(self, tracker_ref):
        self.now = 0.0
        self.calls = 0
        self.tracker_ref = tracker_ref
        self.thread = None
        self.removed = []

    def __call__(self):
        self.calls += 1
        if self.calls == 2:
            tracker = self.tracker_ref[0]
            self.thread = threading.Thread(
                target=lambda: self.removed.append(tracker.cleanup(retention_hours=24))
            )
            self.thread.start()
            # Give the cleanup every chance to run while the update is in progress.
            self.thread.join(timeout=0.2)
        return self.now


def test_cleanup_does_not_lose_an_in_progress_update():
    ref = []
    clock = CleanupDuringTrackClock(ref)
    tracker = SessionUsageTracker(clock=clock)
    ref.append(tracker)

    tracker.track("s1", 100, 50, ModelType.HAIKU)
    clock.now = 100 * 3600
    tracker.track("s1", 100, 50, ModelType.HAIKU)
    clock.thread.join()

    stats = tracker.get_session_stats("s1")
    assert clock.removed == [0]
    assert stats.total_tokens_used == 300
    assert stats.message_count == 2
