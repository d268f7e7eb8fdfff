"""
Prometheus text exposition parser for Blocky's ``/metrics`` endpoint.

Brief:
  Converts a raw exposition payload into a :class:`MetricSnapshot`. Parsing is
  total: comments, malformed lines, non-finite values and metric names outside
  the known vocabulary are skipped rather than reported.

Inputs:
  - Raw UTF-8 text, lines separated by ``\\n``.

Outputs:
  - MetricSnapshot with only the reported fields populated.
"""

from __future__ import annotations

import logging
import math
import re
from collections import defaultdict
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from .snapshot import BuildInfo, MetricSnapshot

logger = logging.getLogger(__name__)

_LINE_RE = re.compile(r"^(\w+)(?:\{([^}]*)\})?\s+(\S+)(?:\s+-?\d+)?$")
_LABEL_RE = re.compile(r'(\w+)="([^"]*)"')
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


class MetricLine(NamedTuple):
    """One recognized sample line."""

    name: str
    labels: Dict[str, str]
    value: float


def parse_line(line: str) -> Optional[MetricLine]:
    """
    Parse a single exposition line.

    Inputs:
        line: Raw line; surrounding whitespace is ignored.

    Outputs:
        MetricLine, or None for blanks, comments and anything that does not
        match ``name{label="value",...} number``.

    Example:
        >>> parse_line('blocky_query_total{client="a",type="A"} 3')
        MetricLine(name='blocky_query_total', labels={'client': 'a', 'type': 'A'}, value=3.0)
        >>> parse_line("# HELP blocky_query_total") is None
        True
    """
    text = line.strip()
    if not text or text.startswith("#"):
        return None

    match = _LINE_RE.match(text)
    if match is None:
        return None

    name, label_text, value_text = match.groups()
    if not _NUMBER_RE.match(value_text):
        return None
    value = float(value_text)
    if not math.isfinite(value):
        return None

    labels: Dict[str, str] = {}
    if label_text:
        for key, val in _LABEL_RE.findall(label_text):
            labels[key] = val

    return MetricLine(name, labels, value)


class _Fold:
    """Running state for a single parse; discarded once the snapshot is built."""

    def __init__(self) -> None:
        self.totals: Dict[str, float] = defaultdict(float)
        self.dimensions: Dict[str, Dict[str, float]] = defaultdict(
            lambda: defaultdict(float)
        )
        self.scalars: Dict[str, object] = {}
        # breakdown field -> total field it splits
        self.parents: Dict[str, str] = {}

    def to_snapshot(self) -> MetricSnapshot:
        values: Dict[str, object] = dict(self.scalars)

        for field_name, total in self.totals.items():
            if field_name.startswith("request_duration_"):
                continue
            if total > 0:
                values[field_name] = total

        # Duration sum and count are only meaningful together.
        if self.totals.get("request_duration_count", 0.0) > 0:
            values["request_duration_sum"] = self.totals.get(
                "request_duration_sum", 0.0
            )
            values["request_duration_count"] = self.totals["request_duration_count"]

        for field_name, breakdown in self.dimensions.items():
            parent = self.parents.get(field_name)
            if parent is not None and parent not in values:
                continue
            kept = {k: v for k, v in breakdown.items() if v > 0}
            if kept:
                values[field_name] = kept

        return MetricSnapshot(**values)


_Handler = Callable[[_Fold, MetricLine], None]


def _scalar(field_name: str) -> _Handler:
    def handle(fold: _Fold, line: MetricLine) -> None:
        fold.scalars[field_name] = line.value

    return handle


def _counter(field_name: str, *splits: Tuple[str, str]) -> _Handler:
    """Accumulate into ``field_name`` and into each (label, field) breakdown."""

    def handle(fold: _Fold, line: MetricLine) -> None:
        fold.totals[field_name] += line.value
        for label, dim_field in splits:
            fold.parents[dim_field] = field_name
            key = line.labels.get(label)
            if key:
                fold.dimensions[dim_field][key] += line.value

    return handle


def _breakdown(label: str, field_name: str) -> _Handler:
    def handle(fold: _Fold, line: MetricLine) -> None:
        key = line.labels.get(label)
        if key:
            fold.dimensions[field_name][key] += line.value

    return handle


def _blocking_enabled(fold: _Fold, line: MetricLine) -> None:
    fold.scalars["blocking_enabled"] = line.value == 1


def _build_info(fold: _Fold, line: MetricLine) -> None:
    version = line.labels.get("version")
    if version:
        fold.scalars["build_info"] = BuildInfo(
            version=version, build_time=line.labels.get("build_time", "")
        )


_HANDLERS: Dict[str, _Handler] = {
    "blocky_cache_hits_total": _counter("cache_hits"),
    "blocky_cache_misses_total": _counter("cache_misses"),
    "blocky_cache_entries": _scalar("cache_entry_count"),
    "blocky_denylist_cache_entries": _breakdown("group", "list_entries"),
    "blocky_allowlist_cache_entries": _breakdown("group", "allowlist_entries"),
    "blocky_prefetch_hits_total": _scalar("prefetch_hits"),
    "blocky_prefetches_total": _scalar("prefetches"),
    "blocky_prefetch_domain_name_cache_entries": _scalar("prefetch_domain_count"),
    "blocky_error_total": _scalar("errors"),
    "blocky_blocking_enabled": _blocking_enabled,
    "blocky_query_total": _counter(
        "total_queries",
        ("client", "queries_by_client"),
        ("type", "queries_by_type"),
    ),
    "blocky_response_total": _counter(
        "total_responses",
        ("reason", "responses_by_reason"),
        ("response_type", "responses_by_type"),
        ("response_code", "responses_by_code"),
    ),
    "blocky_request_duration_seconds_sum": _counter("request_duration_sum"),
    "blocky_request_duration_seconds_count": _counter("request_duration_count"),
    "blocky_last_list_group_refresh_timestamp_seconds": _scalar("last_list_refresh"),
    "blocky_failed_downloads_total": _scalar("failed_downloads"),
    "blocky_build_info": _build_info,
}

KNOWN_METRICS = frozenset(_HANDLERS)


def parse_metrics_text(text: str) -> MetricSnapshot:
    """
    Parse a Prometheus exposition payload into a MetricSnapshot.

    Inputs:
        text: Raw payload. Any string is accepted, including "".

    Outputs:
        MetricSnapshot. Counters summing to zero are left unset, so None reads
        as "not reported". Labelled breakdowns keep only positive entries, and
        query/response breakdowns appear only alongside their total.

    Example:
        >>> snap = parse_metrics_text('blocky_query_total{client="a"} 3\\n'
        ...                           'blocky_query_total{client="a"} 4')
        >>> snap.total_queries, dict(snap.queries_by_client)
        (7.0, {'a': 7.0})
    """
    fold = _Fold()
    recognized = 0
    skipped = 0

    for raw in text.split("\n"):
        line = parse_line(raw)
        if line is None:
            if raw.strip() and not raw.lstrip().startswith("#"):
                skipped += 1
            continue
        handler = _HANDLERS.get(line.name)
        if handler is None:
            continue
        handler(fold, line)
        recognized += 1

    logger.debug(
        "Parsed metrics payload: %d recognized lines, %d malformed lines skipped",
        recognized,
        skipped,
    )
    return fold.to_snapshot()
