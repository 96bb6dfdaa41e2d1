"""Bounded stores for error records and alerts.

Each store owns one backend slot holding a JSON array. Loading tolerates a
missing, empty, non-JSON or non-array payload by starting empty; individual
malformed entries are skipped. Writers and readers always exchange copies.
"""

from __future__ import annotations

import copy
import json
import threading
from collections.abc import Callable

import structlog

from errwatch.models.alerts import Alert
from errwatch.models.errors import ErrorRecord, Severity
from errwatch.store.backends import KeyValueBackend

_log = structlog.get_logger(component="store.records")

ERRORS_SLOT = "errors"
ALERTS_SLOT = "alerts"


def _load_array(backend: KeyValueBackend, slot: str) -> list[object]:
    try:
        payload = backend.read(slot)
    except UnicodeDecodeError as exc:
        _log.warning("store_payload_corrupt", slot=slot, error=str(exc))
        return []
    except OSError as exc:
        _log.warning("store_read_failed", slot=slot, backend=backend.backend_name, error=str(exc))
        return []
    if not payload:
        return []
    try:
        data = json.loads(payload)
    except ValueError as exc:
        _log.warning("store_payload_corrupt", slot=slot, error=str(exc))
        return []
    if not isinstance(data, list):
        _log.warning("store_payload_not_array", slot=slot, payload_type=type(data).__name__)
        return []
    return data


def _save_array(backend: KeyValueBackend, slot: str, items: list[dict[str, object]]) -> bool:
    try:
        backend.write(slot, json.dumps(items, ensure_ascii=False, default=str))
        return True
    except (OSError, TypeError, ValueError) as exc:
        _log.error("store_save_failed", slot=slot, backend=backend.backend_name, error=str(exc))
        return False


class RecordStore:
    """Error records, logically newest first.

    Physical order is irrelevant: every query re-sorts by timestamp
    descending. Capacity is enforced by the retention policy, not here.
    """

    def __init__(self, backend: KeyValueBackend, slot: str = ERRORS_SLOT) -> None:
        self._backend = backend
        self._slot = slot
        self._records: list[ErrorRecord] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def load(self) -> int:
        """Replace in-memory contents with the persisted slot. Returns the count loaded."""
        records: list[ErrorRecord] = []
        for item in _load_array(self._backend, self._slot):
            if not isinstance(item, dict):
                continue
            try:
                records.append(ErrorRecord.from_dict(item))
            except (KeyError, ValueError, TypeError, OverflowError) as exc:
                _log.debug("store_record_skipped", error=str(exc))
        with self._lock:
            self._records = _sorted(records)
        _log.info("records_loaded", count=len(records), backend=self._backend.backend_name)
        return len(records)

    def save(self) -> bool:
        with self._lock:
            items = [r.to_dict() for r in self._records]
        return _save_array(self._backend, self._slot, items)

    def insert(self, record: ErrorRecord) -> None:
        if record is None:
            raise TypeError("record must not be None")
        with self._lock:
            self._records.insert(0, copy.deepcopy(record))

    def all(self, predicate: Callable[[ErrorRecord], bool] | None = None) -> list[ErrorRecord]:
        """Return detached copies of the matching records, newest first.

        Records are frozen but their ``context`` is a plain dict, so each one
        is deep-copied to keep callers from editing stored state.
        """
        with self._lock:
            snapshot = copy.deepcopy(self._records)
        if predicate is not None:
            snapshot = [r for r in snapshot if predicate(r)]
        return _sorted(snapshot)

    def recent(self, limit: int) -> list[ErrorRecord]:
        return self.all()[:limit]

    def remove(self, predicate: Callable[[ErrorRecord], bool]) -> list[ErrorRecord]:
        """Drop every record matching *predicate* and return them."""
        with self._lock:
            removed = [r for r in self._records if predicate(r)]
            if removed:
                self._records = [r for r in self._records if not predicate(r)]
        return removed

    def replace(self, records: list[ErrorRecord]) -> None:
        with self._lock:
            self._records = _sorted(records)

    def clear(self) -> int:
        """Drop every record and the persisted slot. Returns how many were held."""
        with self._lock:
            removed = len(self._records)
            self._records = []
        try:
            self._backend.delete(self._slot)
        except OSError as exc:
            _log.error("store_clear_failed", slot=self._slot, error=str(exc))
        return removed


def _sorted(records: list[ErrorRecord]) -> list[ErrorRecord]:
    return sorted(records, key=lambda r: r.timestamp, reverse=True)


class AlertStore:
    """Alerts, newest first, capped at ``max_alerts``.

    When over capacity the oldest resolved alerts are dropped first so that
    open alerts survive as long as possible.
    """

    def __init__(self, backend: KeyValueBackend, max_alerts: int = 50, slot: str = ALERTS_SLOT) -> None:
        if max_alerts <= 0:
            raise ValueError("max_alerts must be greater than zero")
        self._backend = backend
        self._slot = slot
        self._max_alerts = max_alerts
        self._alerts: list[Alert] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)

    def load(self) -> int:
        alerts: list[Alert] = []
        for item in _load_array(self._backend, self._slot):
            if not isinstance(item, dict):
                continue
            try:
                alerts.append(Alert.from_dict(item))
            except (KeyError, ValueError, TypeError, OverflowError) as exc:
                _log.debug("store_alert_skipped", error=str(exc))
        with self._lock:
            self._alerts = sorted(alerts, key=lambda a: a.created_at, reverse=True)
            self._trim()
        _log.info("alerts_loaded", count=len(alerts), backend=self._backend.backend_name)
        return len(alerts)

    def save(self) -> bool:
        with self._lock:
            items = [a.to_dict() for a in self._alerts]
        return _save_array(self._backend, self._slot, items)

    def add(self, alert: Alert) -> None:
        with self._lock:
            self._alerts.insert(0, alert)
            self._trim()

    def _trim(self) -> None:
        overflow = len(self._alerts) - self._max_alerts
        if overflow <= 0:
            return
        # Oldest resolved first, then oldest overall.
        victims = [a for a in reversed(self._alerts) if a.resolved][:overflow]
        if len(victims) < overflow:
            remaining = [a for a in reversed(self._alerts) if not a.resolved]
            victims.extend(remaining[: overflow - len(victims)])
        victim_ids = {a.alert_id for a in victims}
        self._alerts = [a for a in self._alerts if a.alert_id not in victim_ids]

    def all(self, predicate: Callable[[Alert], bool] | None = None) -> list[Alert]:
        """Return copies of the matching alerts, newest first."""
        with self._lock:
            snapshot = [copy.copy(a) for a in self._alerts]
        if predicate is not None:
            snapshot = [a for a in snapshot if predicate(a)]
        return snapshot

    def get(self, alert_id: str) -> Alert | None:
        with self._lock:
            for alert in self._alerts:
                if alert.alert_id == alert_id:
                    return copy.copy(alert)
        return None

    def find_unresolved(self, level: Severity, window_ms: int) -> Alert | None:
        with self._lock:
            for alert in self._alerts:
                if not alert.resolved and alert.key == (level, window_ms):
                    return copy.copy(alert)
        return None

    def resolve(self, alert_id: str, at: int) -> Alert | None:
        """Mark an alert resolved. Resolving twice keeps the first timestamp."""
        with self._lock:
            for alert in self._alerts:
                if alert.alert_id == alert_id:
                    if not alert.resolved:
                        alert.resolved = True
                        alert.resolved_at = at
                    return copy.copy(alert)
        return None

    def clear(self) -> int:
        with self._lock:
            removed = len(self._alerts)
            self._alerts = []
        try:
            self._backend.delete(self._slot)
        except OSError as exc:
            _log.error("store_clear_failed", slot=self._slot, error=str(exc))
        return removed
