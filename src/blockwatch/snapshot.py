"""
Point-in-time view of a Blocky metrics scrape.

This module defines the structured record produced by the exposition parser
together with a few derived figures that dashboards read from it. A field set
to ``None`` means the scrape did not report it, which is not the same as zero
traffic.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

BLOCKED_MARKER = "blocked"


@dataclass(frozen=True)
class BuildInfo:
    """Version labels lifted from ``blocky_build_info``."""

    version: str
    build_time: str = ""


@dataclass(frozen=True)
class MetricSnapshot:
    """
    Structured result of parsing one ``/metrics`` payload.

    Inputs (constructor):
        Every field is optional and defaults to None ("not reported").

    Outputs:
        Frozen MetricSnapshot. Label breakdowns are copied into read-only
        mappings, so history entries can share snapshots safely.

    Example:
        >>> snap = MetricSnapshot(total_queries=12.0)
        >>> snap.cache_hits is None
        True
    """

    cache_hits: Optional[float] = None
    cache_misses: Optional[float] = None
    cache_entry_count: Optional[float] = None
    list_entries: Optional[Mapping[str, float]] = None
    allowlist_entries: Optional[Mapping[str, float]] = None
    prefetch_hits: Optional[float] = None
    prefetches: Optional[float] = None
    prefetch_domain_count: Optional[float] = None
    errors: Optional[float] = None
    blocking_enabled: Optional[bool] = None
    total_queries: Optional[float] = None
    queries_by_client: Optional[Mapping[str, float]] = None
    queries_by_type: Optional[Mapping[str, float]] = None
    total_responses: Optional[float] = None
    responses_by_reason: Optional[Mapping[str, float]] = None
    responses_by_type: Optional[Mapping[str, float]] = None
    responses_by_code: Optional[Mapping[str, float]] = None
    request_duration_sum: Optional[float] = None
    request_duration_count: Optional[float] = None
    last_list_refresh: Optional[float] = None
    failed_downloads: Optional[float] = None
    build_info: Optional[BuildInfo] = field(default=None)

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Mapping):
                object.__setattr__(self, f.name, MappingProxyType(dict(value)))

    def blocked_responses(self, marker: str = BLOCKED_MARKER) -> float:
        """Return the response count for reasons containing ``marker``.

        Missing ``responses_by_reason`` counts as zero.
        """
        return sum_blocked_responses(self.responses_by_reason, marker)

    def cache_hit_ratio(self) -> Optional[float]:
        """
        Fraction of cache lookups that were hits.

        Inputs:
            None

        Outputs:
            Float in [0.0, 1.0], or None when neither hits nor misses were
            reported.

        Example:
            >>> MetricSnapshot(cache_hits=3.0, cache_misses=1.0).cache_hit_ratio()
            0.75
        """
        if self.cache_hits is None and self.cache_misses is None:
            return None
        hits = self.cache_hits or 0.0
        lookups = hits + (self.cache_misses or 0.0)
        if lookups <= 0:
            return None
        return hits / lookups

    def average_request_duration(self) -> Optional[float]:
        """Mean request duration in seconds, or None when not reported."""
        if not self.request_duration_count or self.request_duration_sum is None:
            return None
        return self.request_duration_sum / self.request_duration_count

    def to_dict(self) -> Dict[str, Any]:
        """Return only the reported fields as a JSON-ready mapping."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, BuildInfo):
                value = {"version": value.version, "build_time": value.build_time}
            elif isinstance(value, Mapping):
                value = dict(value)
            out[f.name] = value
        return out


def sum_blocked_responses(
    responses_by_reason: Optional[Mapping[str, float]],
    marker: str = BLOCKED_MARKER,
) -> float:
    """
    Sum response counts whose reason label contains ``marker``.

    Inputs:
        responses_by_reason: Mapping of reason label to count, or None.
        marker: Case-insensitive substring identifying blocked reasons.

    Outputs:
        Float total (0.0 when the mapping is missing or nothing matches).

    Example:
        >>> sum_blocked_responses({"BLOCKED_DENYLIST": 3, "RESOLVED": 9})
        3.0
    """
    if not responses_by_reason:
        return 0.0
    needle = marker.lower()
    total = 0.0
    for reason, count in responses_by_reason.items():
        if needle in reason.lower():
            total += count
    return total


def format_snapshot_json(snapshot: MetricSnapshot) -> str:
    """Format a snapshot as compact single-line JSON of its reported fields."""
    return json.dumps(snapshot.to_dict(), separators=(",", ":"), sort_keys=True)
