"""Point-in-time statistics and time-bucketed trends.

Results are cached per call parameters for ``ttl_ms``. Any mutation of the
record or alert stores must call :meth:`StatsAggregator.invalidate`, which
drops the whole cache. Cached values are copied on the way out so callers
cannot corrupt them.
"""

from __future__ import annotations

import copy
import threading
from collections import Counter
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any

import structlog

from errwatch.models.alerts import Alert
from errwatch.models.errors import ErrorRecord, Severity
from errwatch.models.stats import (
    AlertStats,
    CategoryStats,
    StatsSnapshot,
    TrendBucket,
    TrendSeries,
)

_log = structlog.get_logger(component="stats.aggregator")

CRITICAL_LIMIT = 10
MAX_TREND_BUCKETS = 10_000


@dataclass
class _CacheEntry:
    value: Any
    expires_at: int


def _browser_label(record: ErrorRecord) -> str:
    return f"{record.device_info.browser_family} v{record.device_info.browser_version}"


def _count(values: list[str]) -> dict[str, int]:
    return dict(Counter(values))


class StatsAggregator:
    """Answers aggregate queries over copies of the stores' contents.

    Args:
        records:  Returns the current records, newest first.
        alerts:   Returns the current alerts.
        clock:    Wall-clock milliseconds.
        ttl_ms:   Cache lifetime. Defaults to five minutes.
        enabled:  Disable to compute every query fresh.
    """

    def __init__(
        self,
        records: Callable[[], list[ErrorRecord]],
        alerts: Callable[[], list[Alert]],
        clock: Callable[[], int],
        ttl_ms: int = 5 * 60 * 1000,
        enabled: bool = True,
    ) -> None:
        self._records = records
        self._alerts = alerts
        self._clock = clock
        self._ttl_ms = ttl_ms
        self._enabled = enabled
        self._cache: dict[Hashable, _CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()

    def _cached(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        if not self._enabled:
            return compute()
        now = self._clock()
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None and entry.expires_at > now:
                self.hits += 1
                return copy.deepcopy(entry.value)
        value = compute()
        with self._lock:
            self.misses += 1
            self._cache[key] = _CacheEntry(value=value, expires_at=now + self._ttl_ms)
        return copy.deepcopy(value)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self, recent_count: int = 8) -> StatsSnapshot:
        recent_count = max(recent_count, 0)
        return self._cached(("snapshot", recent_count), lambda: self._compute_snapshot(recent_count))

    def _compute_snapshot(self, recent_count: int) -> StatsSnapshot:
        records = self._records()
        alerts = self._alerts()

        alert_stats = AlertStats(
            total=len(alerts),
            unresolved=sum(1 for a in alerts if not a.resolved),
            by_level=_count([a.level.value for a in alerts]),
        )
        return StatsSnapshot(
            total=len(records),
            by_type=_count([r.kind for r in records]),
            by_severity={s.value: sum(1 for r in records if r.severity == s) for s in Severity},
            by_device=_count([r.device_info.device_class for r in records]),
            by_browser=_count([_browser_label(r) for r in records]),
            by_os=_count([r.device_info.os_family for r in records]),
            recent=records[:recent_count],
            critical_errors=[r for r in records if r.severity == Severity.HIGH][:CRITICAL_LIMIT],
            alert_stats=alert_stats,
        )

    # ------------------------------------------------------------------
    # Category breakdown
    # ------------------------------------------------------------------

    def categories(self, time_range_ms: int = 24 * 60 * 60 * 1000) -> CategoryStats:
        if time_range_ms <= 0:
            raise ValueError("time_range_ms must be greater than zero")
        return self._cached(("categories", time_range_ms), lambda: self._compute_categories(time_range_ms))

    def _compute_categories(self, time_range_ms: int) -> CategoryStats:
        cutoff = self._clock() - time_range_ms
        records = [r for r in self._records() if r.timestamp >= cutoff]
        return CategoryStats(
            total=len(records),
            by_category=_count([r.kind for r in records]),
            by_device=_count([r.device_info.device_class for r in records]),
            by_browser=_count([_browser_label(r) for r in records]),
            by_os=_count([r.device_info.os_family for r in records]),
            time_range=time_range_ms,
            cutoff_time=cutoff,
        )

    # ------------------------------------------------------------------
    # Trend
    # ------------------------------------------------------------------

    def trend(self, interval_ms: int = 60 * 60 * 1000, range_ms: int = 24 * 60 * 60 * 1000) -> TrendSeries:
        """Bucket records into ``interval_ms`` slots covering the last ``range_ms``.

        Buckets are aligned to multiples of ``interval_ms`` since the epoch and
        every slot in the range is present, empty ones included.
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be greater than zero")
        if range_ms <= 0:
            raise ValueError("range_ms must be greater than zero")
        if range_ms // interval_ms > MAX_TREND_BUCKETS:
            raise ValueError(f"range_ms / interval_ms must not exceed {MAX_TREND_BUCKETS} buckets")
        return self._cached(("trend", interval_ms, range_ms), lambda: self._compute_trend(interval_ms, range_ms))

    def _compute_trend(self, interval_ms: int, range_ms: int) -> TrendSeries:
        now = self._clock()
        cutoff = now - range_ms
        first = (cutoff // interval_ms) * interval_ms
        last = (now // interval_ms) * interval_ms

        buckets: dict[int, TrendBucket] = {}
        start = first
        while start <= last:
            buckets[start] = TrendBucket(timestamp=start, by_severity={s.value: 0 for s in Severity})
            start += interval_ms

        for record in self._records():
            if record.timestamp < cutoff or record.timestamp > now:
                continue
            bucket = buckets[(record.timestamp // interval_ms) * interval_ms]
            bucket.count += 1
            bucket.by_severity[record.severity.value] += 1

        _log.debug("trend_computed", interval_ms=interval_ms, range_ms=range_ms, buckets=len(buckets))
        return TrendSeries(
            buckets=list(buckets.values()),
            interval=interval_ms,
            time_range=range_ms,
            cutoff_time=cutoff,
        )
