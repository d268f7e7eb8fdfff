"""
Brief: Tests for blockwatch.history covering eviction, reset-aware deltas and the activity series.

Inputs:
  - None

Outputs:
  - None
"""

import threading

import pytest

from blockwatch.history import (
    ActivityPoint,
    Delta,
    DeltaStatus,
    SnapshotHistory,
)
from blockwatch.snapshot import MetricSnapshot


class FakeClock:
    def __init__(self, start=1000.0, step=10.0):
        self.now = start
        self.step = step

    def __call__(self):
        current = self.now
        self.now += self.step
        return current


def _snap(total=None, blocked=None, resolved=None):
    reasons = {}
    if blocked is not None:
        reasons["BLOCKED_DENYLIST"] = float(blocked)
    if resolved is not None:
        reasons["RESOLVED"] = float(resolved)
    return MetricSnapshot(
        total_queries=None if total is None else float(total),
        responses_by_reason=reasons or None,
    )


def _queries(s):
    return s.total_queries or 0.0


def test_push_uses_clock_and_explicit_timestamp():
    hist = SnapshotHistory(clock=FakeClock(start=50.0))
    hist.push(_snap(1))
    hist.push(_snap(2), captured_at=99.5)
    entries = hist.entries()
    assert [e.captured_at for e in entries] == [50.0, 99.5]
    assert entries[1].snapshot.total_queries == 2


def test_eviction_keeps_newest_in_order():
    hist = SnapshotHistory(capacity=30, clock=FakeClock())
    for i in range(35):
        hist.push(_snap(i))
    entries = hist.entries()
    assert len(hist) == 30
    assert [e.snapshot.total_queries for e in entries] == [float(i) for i in range(5, 35)]


def test_default_capacity_and_clamp():
    assert SnapshotHistory().capacity == 30
    hist = SnapshotHistory(capacity=0)
    assert hist.capacity == 1
    hist.push(_snap(1))
    hist.push(_snap(2))
    assert [e.snapshot.total_queries for e in hist.entries()] == [2.0]


def test_clear_empties_buffer():
    hist = SnapshotHistory()
    hist.push(_snap(1))
    hist.push(_snap(2))
    hist.clear()
    assert len(hist) == 0
    assert hist.entries() == []
    assert hist.activity_series() == []


def test_entries_returns_copy():
    hist = SnapshotHistory()
    hist.push(_snap(1))
    copy = hist.entries()
    copy.clear()
    assert len(hist) == 1


def test_latest_delta_reset_suppression():
    hist = SnapshotHistory(clock=FakeClock())
    hist.push(_snap(100))
    assert hist.latest_delta(_queries) is None
    hist.push(_snap(150))
    assert hist.latest_delta(_queries) == 50
    hist.push(_snap(40))
    assert hist.latest_delta(_queries) is None


def test_delta_distinguishes_reset_from_short_history():
    hist = SnapshotHistory(clock=FakeClock())
    assert hist.delta(_queries) == Delta(DeltaStatus.INSUFFICIENT_HISTORY)
    hist.push(_snap(100))
    assert hist.delta(_queries).status is DeltaStatus.INSUFFICIENT_HISTORY
    hist.push(_snap(150))
    assert hist.delta(_queries) == Delta(DeltaStatus.VALUE, 50.0)
    hist.push(_snap(40))
    assert hist.delta(_queries) == Delta(DeltaStatus.RESET)
    hist.push(_snap(40))
    assert hist.delta(_queries) == Delta(DeltaStatus.VALUE, 0.0)


def test_interval_helpers():
    hist = SnapshotHistory(clock=FakeClock())
    assert hist.queries_per_interval() is None
    assert hist.blocked_per_interval() is None
    hist.push(_snap(10, blocked=2, resolved=8))
    hist.push(_snap(25, blocked=5, resolved=20))
    assert hist.queries_per_interval() == 15
    assert hist.blocked_per_interval() == 3


def test_missing_totals_count_as_zero_for_interval():
    hist = SnapshotHistory(clock=FakeClock())
    hist.push(_snap())
    hist.push(_snap(7))
    assert hist.queries_per_interval() == 7


def test_activity_series_without_resets():
    hist = SnapshotHistory(clock=FakeClock(start=0.0, step=10.0))
    totals = [10, 15, 15, 40, 41]
    for t in totals:
        hist.push(_snap(t, blocked=t // 5))
    series = hist.activity_series()
    assert len(series) == len(totals) - 1
    assert [p.total for p in series] == [5, 0, 25, 1]
    assert [p.blocked for p in series] == [1, 0, 5, 0]
    assert [p.timestamp for p in series] == [10.0, 20.0, 30.0, 40.0]


def test_activity_series_drops_reset_pairs():
    hist = SnapshotHistory(clock=FakeClock(start=0.0, step=10.0))
    hist.push(_snap(100, blocked=10))
    hist.push(_snap(150, blocked=12))
    hist.push(_snap(40, blocked=1))  # restart
    hist.push(_snap(60, blocked=4))
    series = hist.activity_series()
    assert series == [
        ActivityPoint(timestamp=10.0, total=50, blocked=2),
        ActivityPoint(timestamp=30.0, total=20, blocked=3),
    ]


def test_activity_series_drops_pair_when_only_blocked_decreases():
    hist = SnapshotHistory(clock=FakeClock(start=0.0, step=10.0))
    hist.push(_snap(100, blocked=10))
    hist.push(_snap(120, blocked=9))
    assert hist.activity_series() == []


def test_activity_series_missing_fields_are_zero():
    hist = SnapshotHistory(clock=FakeClock(start=0.0, step=10.0))
    hist.push(MetricSnapshot())
    hist.push(_snap(5, blocked=2))
    assert hist.activity_series() == [ActivityPoint(timestamp=10.0, total=5, blocked=2)]


def test_custom_blocked_marker():
    hist = SnapshotHistory(blocked_marker="denied", clock=FakeClock())
    hist.push(MetricSnapshot(total_queries=1.0, responses_by_reason={"DENIED": 1.0, "BLOCKED": 5.0}))
    hist.push(MetricSnapshot(total_queries=3.0, responses_by_reason={"DENIED": 2.0, "BLOCKED": 9.0}))
    assert hist.blocked_per_interval() == 1
    assert hist.activity_series()[0].blocked == 1


def test_entries_are_immutable():
    hist = SnapshotHistory()
    hist.push(_snap(1))
    entry = hist.entries()[0]
    with pytest.raises(AttributeError):
        entry.captured_at = 0.0


def test_concurrent_readers_see_bounded_buffer():
    hist = SnapshotHistory(capacity=5)
    stop = threading.Event()
    sizes = []

    def reader():
        while True:
            sizes.append(len(hist.entries()))
            if stop.is_set():
                break

    t = threading.Thread(target=reader)
    t.start()
    try:
        for i in range(500):
            hist.push(_snap(i))
    finally:
        stop.set()
        t.join()
    assert sizes and max(sizes) <= 5


def test_stored_snapshots_cannot_be_rewritten():
    hist = SnapshotHistory(clock=FakeClock())
    hist.push(_snap(100, blocked=1))
    hist.push(_snap(150, blocked=3))
    stored = hist.entries()[-1].snapshot

    with pytest.raises(AttributeError):
        stored.total_queries = 10.0
    with pytest.raises(TypeError):
        stored.responses_by_reason["BLOCKED_DENYLIST"] = 0.0

    assert hist.queries_per_interval() == 50
    assert hist.blocked_per_interval() == 2


def test_pushed_breakdown_is_detached_from_caller_dict():
    reasons = {"BLOCKED_DENYLIST": 1.0}
    hist = SnapshotHistory(clock=FakeClock())
    hist.push(MetricSnapshot(total_queries=1.0, responses_by_reason=reasons))
    hist.push(MetricSnapshot(total_queries=2.0, responses_by_reason={"BLOCKED_DENYLIST": 4.0}))
    reasons["BLOCKED_DENYLIST"] = 100.0
    assert hist.blocked_per_interval() == 3
