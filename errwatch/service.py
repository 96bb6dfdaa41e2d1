"""ErrorService: the public entry point of the telemetry engine.

Ingestion runs Deduplicator -> RecordStore.insert -> RetentionPolicy.enforce
-> AlertEngine.evaluate -> Reporter.submit. All mutations are serialised
behind one lock; reads work on copies and may run concurrently. Network
delivery (reports, notifications) is fire-and-forget and happens after the
record has been committed locally.
"""

from __future__ import annotations

import copy
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import structlog

from errwatch.alerts.engine import AlertEngine
from errwatch.background import BackgroundRunner
from errwatch.classify import Classification, classify, fix_suggestions, friendly_message
from errwatch.dedup import Deduplicator
from errwatch.environment import (
    CompatibilityResult,
    EnvironmentProbe,
    ServerEnvironment,
    check_compatibility,
)
from errwatch.models.alerts import DAY_MS, DEFAULT_ALERT_RULES, HOUR_MS, Alert, AlertRule
from errwatch.models.config import ErrwatchConfig
from errwatch.models.errors import DeviceInfo, ErrorRecord, Severity
from errwatch.models.stats import CategoryStats, StatsSnapshot, TrendSeries
from errwatch.notifications.manager import Notifier, NullNotifier
from errwatch.observability.metrics import errors_deduplicated_total, errors_recorded_total, stored_records
from errwatch.reporter import Reporter
from errwatch.retention import RetentionPolicy
from errwatch.stats.aggregator import StatsAggregator
from errwatch.store.backends import KeyValueBackend, MemoryBackend, build_backend
from errwatch.store.records import AlertStore, RecordStore

_log = structlog.get_logger(component="service")


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


def _as_severity(level: Severity | str) -> Severity:
    return level if isinstance(level, Severity) else Severity(str(level).lower())


@dataclass(frozen=True)
class IngestResult:
    record: ErrorRecord
    duplicate: bool


class ErrorService:
    """Owns the stores and orchestrates ingestion, alerting and queries.

    Args:
        backend:          Slot storage. Defaults to an in-memory backend.
        max_records:      Retention budget.
        max_alerts:       Alert history cap.
        rules:            Alert rules, evaluated in the given order.
        clock:            Wall-clock milliseconds.
        environment:      Default probe for device info and context.
        notifier:         Receives newly created alerts.
        reporter:         Remote forwarding. Defaults to a disabled reporter.
        dedup_window_ms:  Duplicate suppression window.
        dedup_lookback:   How many recent records the deduplicator examines.
        cache_ttl_ms:     Statistics cache lifetime.
        cache_enabled:    Disable to compute statistics fresh on every call.
    """

    def __init__(
        self,
        backend: KeyValueBackend | None = None,
        *,
        max_records: int = 100,
        max_alerts: int = 50,
        rules: Iterable[AlertRule] = DEFAULT_ALERT_RULES,
        clock: Callable[[], int] = wall_clock_ms,
        environment: EnvironmentProbe | None = None,
        notifier: Notifier | None = None,
        reporter: Reporter | None = None,
        dedup_window_ms: int = 60_000,
        dedup_lookback: int = 50,
        cache_ttl_ms: int = 5 * 60 * 1000,
        cache_enabled: bool = True,
    ) -> None:
        self._backend = backend or MemoryBackend()
        self._clock = clock
        self._environment: EnvironmentProbe = environment or ServerEnvironment()
        self._notifier: Notifier = notifier or NullNotifier()
        self._reporter = reporter or Reporter(endpoint=None)
        self._lock = threading.RLock()
        self._closed = False

        self._records = RecordStore(self._backend)
        self._alert_store = AlertStore(self._backend, max_alerts=max_alerts)
        self._dedup = Deduplicator(window_ms=dedup_window_ms, lookback=dedup_lookback)
        self._retention = RetentionPolicy(max_records=max_records)
        self._alerts = AlertEngine(self._alert_store, rules=rules, notifier=self._notifier)
        self._stats = StatsAggregator(
            records=self._records.all,
            alerts=self._alert_store.all,
            clock=clock,
            ttl_ms=cache_ttl_ms,
            enabled=cache_enabled,
        )

        self._records.load()
        self._alert_store.load()
        # A budget lowered between runs applies to what was loaded.
        with self._lock:
            loaded = self._records.all()
            kept = self._retention.enforce(loaded)
            if len(kept) != len(loaded):
                self._records.replace(kept)
                self._records.save()
        stored_records.set(len(kept))

    @classmethod
    def from_config(
        cls,
        config: ErrwatchConfig,
        *,
        backend: KeyValueBackend | None = None,
        notifier: Notifier | None = None,
        runner: BackgroundRunner | None = None,
        **kwargs: Any,
    ) -> ErrorService:
        """Build a service from an :class:`ErrwatchConfig`."""
        reporter = Reporter(
            endpoint=config.reporter.endpoint,
            batch_size=config.reporter.batch_size,
            timeout=config.reporter.timeout_seconds,
            runner=runner,
        )
        return cls(
            backend or build_backend(config.store.backend, config.store.path),
            max_records=config.store.max_records,
            max_alerts=config.store.max_alerts,
            rules=config.alert_rules,
            notifier=notifier,
            reporter=reporter,
            dedup_window_ms=config.dedup.window_ms,
            dedup_lookback=config.dedup.lookback,
            cache_ttl_ms=config.stats.cache_ttl_ms,
            cache_enabled=config.stats.cache_enabled,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def classify(self, raw: Any) -> Classification:
        return classify(raw)

    def record(
        self,
        raw: Any,
        context: dict[str, Any] | None = None,
        environment: EnvironmentProbe | None = None,
    ) -> ErrorRecord:
        """Classify, enrich and ingest *raw*.

        Returns the stored record, or the already stored record that *raw*
        duplicates.

        Raises:
            TypeError: if *raw* is None or cannot be classified.
        """
        return self.ingest(raw, context, environment).record

    def ingest(
        self,
        raw: Any,
        context: dict[str, Any] | None = None,
        environment: EnvironmentProbe | None = None,
    ) -> IngestResult:
        """Like :meth:`record` but also reports whether *raw* was a duplicate."""
        if raw is None:
            raise TypeError("raw error must not be None")
        result = classify(raw)
        probe = environment or self._environment

        with self._lock:
            now = self._clock()
            candidate = ErrorRecord(
                kind=result.kind,
                severity=result.severity,
                name=result.name,
                message=result.message,
                stack_trace=result.stack_trace,
                location=result.location,
                timestamp=now,
                device_info=probe.device_info(),
                context=copy.deepcopy({**probe.context(), **(context or {})}),
            )

            duplicate = self._dedup.find_duplicate(candidate, self._records.recent(self._dedup.lookback))
            if duplicate is not None:
                errors_deduplicated_total.labels(kind=candidate.kind).inc()
                _log.debug("error_deduplicated", kind=candidate.kind, existing_id=duplicate.record_id)
                return IngestResult(duplicate, duplicate=True)

            self._records.insert(candidate)
            kept = self._retention.enforce(self._records.all())
            self._records.replace(kept)
            self._records.save()
            stored_records.set(len(kept))

            self._alerts.evaluate(now, kept)
            self._stats.invalidate()

        errors_recorded_total.labels(kind=candidate.kind, severity=candidate.severity.value).inc()
        _log.info(
            "error_recorded",
            record_id=candidate.record_id,
            kind=candidate.kind,
            severity=candidate.severity.value,
            location=candidate.location,
        )
        self._reporter.submit(candidate)
        return IngestResult(candidate, duplicate=False)

    def evaluate_alerts(self, now: int | None = None) -> list[Alert]:
        """Re-run the alert rules against the current store."""
        with self._lock:
            created = self._alerts.evaluate(self._clock() if now is None else now, self._records.all())
            if created:
                self._stats.invalidate()
        return created

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def records(self, severity: Severity | str | None = None) -> list[ErrorRecord]:
        if severity is None:
            return self._records.all()
        level = _as_severity(severity)
        return self._records.all(lambda r: r.severity == level)

    def stats(self, recent_count: int = 8) -> StatsSnapshot:
        return self._stats.snapshot(recent_count)

    def category_stats(self, time_range_ms: int = DAY_MS) -> CategoryStats:
        return self._stats.categories(time_range_ms)

    def trend(self, interval_ms: int = HOUR_MS, range_ms: int = DAY_MS) -> TrendSeries:
        return self._stats.trend(interval_ms, range_ms)

    def alerts(
        self,
        level: Severity | str | None = None,
        resolved: bool | None = None,
        since: int | None = None,
    ) -> list[Alert]:
        return self._alerts.alerts(
            level=_as_severity(level) if level is not None else None,
            resolved=resolved,
            since=since,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def resolve_alert(self, alert_id: str) -> Alert | None:
        with self._lock:
            alert = self._alerts.resolve(alert_id, now=self._clock())
            if alert is not None:
                self._stats.invalidate()
        return alert

    def clear(self) -> int:
        """Drop every record. Returns how many were removed."""
        with self._lock:
            removed = self._records.clear()
            self._stats.invalidate()
        stored_records.set(0)
        _log.info("errors_cleared", removed=removed)
        return removed

    def clear_by_severity(self, level: Severity | str) -> int:
        """Drop every record of *level*. Returns how many were removed."""
        severity = _as_severity(level)
        with self._lock:
            removed = self._records.remove(lambda r: r.severity == severity)
            if removed:
                self._records.save()
            self._stats.invalidate()
            remaining = len(self._records)
        stored_records.set(remaining)
        _log.info("errors_cleared_by_severity", severity=severity.value, removed=len(removed))
        return len(removed)

    def clear_alerts(self) -> int:
        with self._lock:
            removed = self._alerts.clear()
            self._stats.invalidate()
        return removed

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def batch_report(self, limit: int = 10) -> int:
        """Send the *limit* most recent records to the collector. Returns successes."""
        return await self._reporter.send_many(self._records.recent(limit))

    async def flush_reports(self) -> int:
        return await self._reporter.flush()

    # ------------------------------------------------------------------
    # User-facing helpers
    # ------------------------------------------------------------------

    @staticmethod
    def friendly_message(code: str, params: dict[str, str] | None = None) -> str:
        return friendly_message(code, params)

    @staticmethod
    def fix_suggestions(code: str) -> list[str]:
        return fix_suggestions(code)

    def check_compatibility(self, device: DeviceInfo | None = None) -> CompatibilityResult:
        return check_compatibility(device or self._environment.device_info())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Persist state and stop background delivery. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        with self._lock:
            self._records.save()
            self._alert_store.save()
        self._reporter.close()
        close_notifier = getattr(self._notifier, "close", None)
        if callable(close_notifier):
            close_notifier()
        _log.info("service_closed")

    def __enter__(self) -> ErrorService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
