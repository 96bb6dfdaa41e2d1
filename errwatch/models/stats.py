"""Statistics and trend result structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from errwatch.models.errors import ErrorRecord


@dataclass
class AlertStats:
    """Alert counters included in every snapshot."""

    total: int = 0
    unresolved: int = 0
    by_level: dict[str, int] = field(default_factory=dict)


@dataclass
class StatsSnapshot:
    """Point-in-time statistics over the whole store."""

    total: int
    by_type: dict[str, int]
    by_severity: dict[str, int]
    by_device: dict[str, int]
    by_browser: dict[str, int]
    by_os: dict[str, int]
    recent: list[ErrorRecord]
    critical_errors: list[ErrorRecord]
    alert_stats: AlertStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_type": dict(self.by_type),
            "by_severity": dict(self.by_severity),
            "by_device": dict(self.by_device),
            "by_browser": dict(self.by_browser),
            "by_os": dict(self.by_os),
            "recent": [r.to_dict() for r in self.recent],
            "critical_errors": [r.to_dict() for r in self.critical_errors],
            "alert_stats": {
                "total": self.alert_stats.total,
                "unresolved": self.alert_stats.unresolved,
                "by_level": dict(self.alert_stats.by_level),
            },
        }


@dataclass
class CategoryStats:
    """Breakdown of the records newer than ``cutoff_time``."""

    total: int
    by_category: dict[str, int]
    by_device: dict[str, int]
    by_browser: dict[str, int]
    by_os: dict[str, int]
    time_range: int
    cutoff_time: int


@dataclass
class TrendBucket:
    timestamp: int  # bucket start, ms
    count: int = 0
    by_severity: dict[str, int] = field(default_factory=dict)


@dataclass
class TrendSeries:
    """Bucketed error counts, oldest bucket first."""

    buckets: list[TrendBucket]
    interval: int
    time_range: int
    cutoff_time: int

    @property
    def total(self) -> int:
        return sum(b.count for b in self.buckets)
