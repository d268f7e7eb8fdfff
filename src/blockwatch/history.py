"""
Rolling history of metric snapshots with reset-aware deltas.

Brief:
  SnapshotHistory keeps the most recent N snapshots (FIFO) and derives
  per-interval figures from them on demand. Blocky counters only grow while the
  process is up, so any decrease between two scrapes is treated as a counter
  reset and the affected interval is dropped instead of reported as a
  negative rate.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from .snapshot import BLOCKED_MARKER, MetricSnapshot, sum_blocked_responses

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 30


@dataclass(frozen=True)
class HistoryEntry:
    """A snapshot and the epoch time it was captured at."""

    captured_at: float
    snapshot: MetricSnapshot


@dataclass(frozen=True)
class ActivityPoint:
    """Query and blocked-response counts for one scrape interval."""

    timestamp: float
    total: float
    blocked: float


class DeltaStatus(enum.Enum):
    VALUE = "value"
    RESET = "reset"
    INSUFFICIENT_HISTORY = "insufficient_history"


@dataclass(frozen=True)
class Delta:
    """
    Outcome of comparing the two newest entries.

    ``value`` is set only when ``status`` is DeltaStatus.VALUE. A RESET delta
    carries None; the raw negative difference is never surfaced.
    """

    status: DeltaStatus
    value: Optional[float] = None


class SnapshotHistory:
    """
    Thread-safe bounded buffer of HistoryEntry items, oldest first.

    Inputs (constructor):
        capacity: Maximum number of entries kept (clamped to >= 1).
        blocked_marker: Case-insensitive substring that identifies blocked
            response reasons.
        clock: Callable returning the current epoch time; used by push().

    Outputs:
        SnapshotHistory instance.

    Writers are expected to be a single poll loop. Every read copies the
    buffer under the lock so readers never see a half-applied eviction.

    Example:
        >>> hist = SnapshotHistory(capacity=2)
        >>> hist.push(MetricSnapshot(total_queries=100.0))
        >>> hist.push(MetricSnapshot(total_queries=150.0))
        >>> hist.queries_per_interval()
        50.0
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        blocked_marker: str = BLOCKED_MARKER,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity <= 0:
            capacity = 1

        self._capacity = int(capacity)
        self._blocked_marker = blocked_marker
        self._clock = clock
        self._entries: List[HistoryEntry] = []
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def push(self, snapshot: MetricSnapshot, captured_at: Optional[float] = None) -> None:
        """
        Append a snapshot, evicting the oldest entries beyond capacity.

        Inputs:
            snapshot: Parsed MetricSnapshot.
            captured_at: Optional epoch seconds; defaults to the history clock.

        Outputs:
            None
        """
        ts = self._clock() if captured_at is None else float(captured_at)
        entry = HistoryEntry(captured_at=ts, snapshot=snapshot)

        with self._lock:
            items = self._entries + [entry]
            overflow = len(items) - self._capacity
            if overflow > 0:
                items = items[overflow:]
            # Swap the whole list so concurrent readers see old or new, never partial.
            self._entries = items

    def clear(self) -> None:
        """Drop every entry (used on reconnect or explicit reset)."""
        with self._lock:
            self._entries = []
        logger.debug("Snapshot history cleared")

    def entries(self) -> List[HistoryEntry]:
        """Return a shallow copy of the entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def delta(self, extract: Callable[[MetricSnapshot], float]) -> Delta:
        """
        Compare the newest two snapshots through ``extract``.

        Inputs:
            extract: Function mapping a snapshot to a number.

        Outputs:
            Delta with status INSUFFICIENT_HISTORY (fewer than two entries),
            RESET (negative difference) or VALUE.

        Example:
            >>> hist = SnapshotHistory()
            >>> hist.delta(lambda s: s.total_queries or 0).status
            <DeltaStatus.INSUFFICIENT_HISTORY: 'insufficient_history'>
        """
        entries = self.entries()
        if len(entries) < 2:
            return Delta(DeltaStatus.INSUFFICIENT_HISTORY)

        prev = entries[-2].snapshot
        curr = entries[-1].snapshot
        diff = extract(curr) - extract(prev)
        if diff < 0:
            logger.debug("Counter reset detected (delta %s)", diff)
            return Delta(DeltaStatus.RESET)
        return Delta(DeltaStatus.VALUE, diff)

    def latest_delta(
        self, extract: Callable[[MetricSnapshot], float]
    ) -> Optional[float]:
        """Newest-pair difference, or None on short history or counter reset."""
        return self.delta(extract).value

    def queries_per_interval(self) -> Optional[float]:
        return self.latest_delta(lambda s: s.total_queries or 0.0)

    def blocked_per_interval(self) -> Optional[float]:
        return self.latest_delta(lambda s: s.blocked_responses(self._blocked_marker))

    def activity_series(self) -> List[ActivityPoint]:
        """
        Per-interval query and blocked counts for charting.

        Inputs:
            None

        Outputs:
            List of ActivityPoint, one per consecutive entry pair where both
            the query delta and the blocked delta are >= 0. Pairs spanning a
            counter reset are left out, so the list may be shorter than
            len(history) - 1 and the timestamps may be unevenly spaced.
            Missing totals or reason breakdowns count as zero here.
        """
        entries = self.entries()
        points: List[ActivityPoint] = []

        for prev_entry, curr_entry in zip(entries, entries[1:]):
            prev = prev_entry.snapshot
            curr = curr_entry.snapshot

            total_delta = (curr.total_queries or 0.0) - (prev.total_queries or 0.0)
            blocked_delta = sum_blocked_responses(
                curr.responses_by_reason, self._blocked_marker
            ) - sum_blocked_responses(prev.responses_by_reason, self._blocked_marker)

            if total_delta >= 0 and blocked_delta >= 0:
                points.append(
                    ActivityPoint(
                        timestamp=curr_entry.captured_at,
                        total=total_delta,
                        blocked=blocked_delta,
                    )
                )

        return points
