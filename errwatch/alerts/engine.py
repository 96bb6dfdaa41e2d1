"""Rolling-window error-rate alerting.

Each AlertRule defines an implicit state machine keyed by
``(level, window_ms)``: *quiet* until the trailing count reaches the
threshold, then *alerted* until an operator resolves the alert. While an
alert is open and younger than its window, further breaches are absorbed.
An open alert older than its window is superseded: it is closed and a fresh
alert is created, so at most one unresolved alert per key exists.

Rules are evaluated in declaration order and independently of each other,
so one evaluation may open several alerts. At most one notification is
dispatched per evaluation, carrying the most severe alert it opened.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

import structlog

from errwatch.models.alerts import DEFAULT_ALERT_RULES, Alert, AlertRule, describe_window
from errwatch.models.errors import ErrorRecord, Severity
from errwatch.notifications.manager import Notifier, NullNotifier
from errwatch.observability.metrics import alerts_created_total
from errwatch.store.records import AlertStore

_log = structlog.get_logger(component="alerts.engine")


def count_in_window(records: Iterable[ErrorRecord], now: int, window_ms: int) -> int:
    cutoff = now - window_ms
    return sum(1 for r in records if r.timestamp >= cutoff)


class AlertEngine:
    """Turns threshold breaches into stateful Alert objects."""

    def __init__(
        self,
        store: AlertStore,
        rules: Iterable[AlertRule] = DEFAULT_ALERT_RULES,
        notifier: Notifier | None = None,
    ) -> None:
        self._store = store
        self._rules: tuple[AlertRule, ...] = tuple(rules)
        if not self._rules:
            raise ValueError("at least one alert rule is required")
        self._notifier: Notifier = notifier or NullNotifier()
        self._lock = threading.RLock()

    @property
    def rules(self) -> tuple[AlertRule, ...]:
        return self._rules

    def evaluate(self, now: int, records: list[ErrorRecord]) -> list[Alert]:
        """Check every rule against *records* at time *now*.

        Returns the alerts created by this call, in rule order.
        """
        created: list[Alert] = []
        with self._lock:
            for rule in self._rules:
                alert = self._evaluate_rule(rule, now, records)
                if alert is not None:
                    created.append(alert)
            if created:
                self._store.save()

        if created:
            self._notify(created)
        return created

    def _evaluate_rule(self, rule: AlertRule, now: int, records: list[ErrorRecord]) -> Alert | None:
        count = count_in_window(records, now, rule.window_ms)
        if count < rule.threshold:
            return None

        existing = self._store.find_unresolved(rule.level, rule.window_ms)
        if existing is not None:
            if existing.created_at >= now - rule.window_ms:
                return None
            self._store.resolve(existing.alert_id, at=now)
            _log.info(
                "alert_superseded",
                alert_id=existing.alert_id,
                level=rule.level.value,
                window=describe_window(rule.window_ms),
            )

        alert = Alert(
            level=rule.level,
            error_count=count,
            threshold=rule.threshold,
            window_ms=rule.window_ms,
            message=(
                f"{count} errors in the last {describe_window(rule.window_ms)} "
                f"(threshold {rule.threshold})"
            ),
            created_at=now,
        )
        self._store.add(alert)
        alerts_created_total.labels(level=rule.level.value).inc()
        _log.warning(
            "alert_created",
            alert_id=alert.alert_id,
            level=alert.level.value,
            error_count=count,
            threshold=rule.threshold,
            window=describe_window(rule.window_ms),
        )
        return alert

    def _notify(self, created: list[Alert]) -> None:
        # max() keeps the first of equally severe alerts, i.e. rule order.
        chosen = max(created, key=lambda a: a.level.rank)
        try:
            self._notifier.notify(chosen)
        except Exception as exc:  # noqa: BLE001
            _log.error("alert_notify_failed", alert_id=chosen.alert_id, error=str(exc))

    def resolve(self, alert_id: str, now: int) -> Alert | None:
        with self._lock:
            alert = self._store.resolve(alert_id, at=now)
            if alert is None:
                _log.warning("alert_not_found", alert_id=alert_id)
                return None
            self._store.save()
        _log.info("alert_resolved", alert_id=alert_id, level=alert.level.value)
        return alert

    def alerts(
        self,
        level: Severity | None = None,
        resolved: bool | None = None,
        since: int | None = None,
    ) -> list[Alert]:
        """Return alerts matching every given filter, newest first."""

        def _matches(alert: Alert) -> bool:
            if level is not None and alert.level != level:
                return False
            if resolved is not None and alert.resolved != resolved:
                return False
            if since is not None and alert.created_at < since:
                return False
            return True

        return self._store.all(_matches)

    def clear(self) -> int:
        with self._lock:
            removed = self._store.clear()
        _log.info("alerts_cleared", removed=removed)
        return removed
