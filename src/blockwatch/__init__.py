"""blockwatch package"""

from .exposition import parse_metrics_text
from .history import ActivityPoint, Delta, DeltaStatus, HistoryEntry, SnapshotHistory
from .snapshot import BuildInfo, MetricSnapshot

__all__ = [
    "ActivityPoint",
    "BuildInfo",
    "Delta",
    "DeltaStatus",
    "HistoryEntry",
    "MetricSnapshot",
    "SnapshotHistory",
    "parse_metrics_text",
]
