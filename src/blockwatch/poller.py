"""
Background driver that feeds scrapes into a SnapshotHistory.

The poller never talks to the network itself: callers inject a ``fetch``
callable returning the raw exposition text (or None when the endpoint is
unavailable).
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .exposition import parse_metrics_text
from .history import SnapshotHistory
from .snapshot import MetricSnapshot

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Optional[str]]


class MetricsPoller(threading.Thread):
    """
    Daemon thread that scrapes, parses and pushes on a fixed interval.

    Inputs (constructor):
        fetch: Callable returning exposition text, or None on failure.
        history: SnapshotHistory that receives parsed snapshots.
        interval_seconds: Seconds between polls (clamped to >= 1).

    Outputs:
        MetricsPoller thread instance (call start() to begin).

    A failed fetch marks the poller disconnected. The first successful fetch
    after a disconnect clears the history so intervals never span the outage.

    Example:
        >>> hist = SnapshotHistory()
        >>> poller = MetricsPoller(lambda: "blocky_query_total 5", hist)
        >>> poller.poll_once() is not None
        True
    """

    def __init__(
        self,
        fetch: FetchFn,
        history: SnapshotHistory,
        interval_seconds: float = 10.0,
    ) -> None:
        super().__init__(daemon=True, name="MetricsPoller")
        self.fetch = fetch
        self.history = history
        self.interval_seconds = max(1.0, float(interval_seconds))
        self.connected = True
        self._stop_event = threading.Event()

    def poll_once(self) -> Optional[MetricSnapshot]:
        """
        Run a single fetch/parse/push cycle.

        Inputs:
            None

        Outputs:
            The pushed MetricSnapshot, or None when the fetch failed.
        """
        try:
            text = self.fetch()
        except Exception as e:
            logger.warning("Metrics fetch failed: %s", e)
            text = None

        if text is None:
            if self.connected:
                logger.warning("Metrics endpoint unavailable; waiting for reconnect")
            self.connected = False
            return None

        if not self.connected:
            logger.info("Metrics endpoint reachable again; resetting history")
            self.history.clear()
            self.connected = True

        snapshot = parse_metrics_text(text)
        self.history.push(snapshot)
        return snapshot

    def run(self) -> None:
        """Poll immediately, then every interval until stop() is called."""
        while True:
            try:
                self.poll_once()
            except Exception as e:  # pragma: no cover
                logger.error("MetricsPoller error: %s", e, exc_info=True)
            if self._stop_event.wait(self.interval_seconds):
                break

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the poller to stop and wait for the thread to exit."""
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout=timeout)
