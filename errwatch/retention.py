"""Severity-tiered retention.

High-severity records may take up to ``high_share`` of the budget; whatever
is left is split ``medium_share`` / remainder between medium and low. Within
each tier the most recent records win. Slots the high tier does not need go
to medium and low; slots medium does not need go to low. Quotas apply on
every call, including when the store is under budget.
"""

from __future__ import annotations

import math

import structlog

from errwatch.models.errors import ErrorRecord, Severity
from errwatch.observability.metrics import records_evicted_total

_log = structlog.get_logger(component="retention")


class RetentionPolicy:
    def __init__(self, max_records: int = 100, high_share: float = 0.5, medium_share: float = 0.7) -> None:
        if max_records <= 0:
            raise ValueError("max_records must be greater than zero")
        if not 0 <= high_share <= 1:
            raise ValueError("high_share must be between 0 and 1")
        if not 0 <= medium_share <= 1:
            raise ValueError("medium_share must be between 0 and 1")
        self._max_records = max_records
        self._high_share = high_share
        self._medium_share = medium_share

    @property
    def max_records(self) -> int:
        return self._max_records

    def quotas(self, high: int, medium: int, low: int) -> tuple[int, int, int]:
        """Return how many (high, medium, low) records to keep given the tier sizes."""
        keep_high = min(high, math.floor(self._max_records * self._high_share))
        remaining = self._max_records - keep_high
        keep_medium = min(medium, math.floor(remaining * self._medium_share))
        keep_low = min(low, remaining - keep_medium)
        return keep_high, keep_medium, keep_low

    def enforce(self, records: list[ErrorRecord]) -> list[ErrorRecord]:
        """Return the records to keep, newest first. Never longer than ``max_records``."""
        tiers: dict[Severity, list[ErrorRecord]] = {s: [] for s in Severity}
        for record in records:
            tiers[record.severity].append(record)
        for bucket in tiers.values():
            bucket.sort(key=lambda r: r.timestamp, reverse=True)

        keep_high, keep_medium, keep_low = self.quotas(
            len(tiers[Severity.HIGH]),
            len(tiers[Severity.MEDIUM]),
            len(tiers[Severity.LOW]),
        )
        kept = (
            tiers[Severity.HIGH][:keep_high]
            + tiers[Severity.MEDIUM][:keep_medium]
            + tiers[Severity.LOW][:keep_low]
        )

        for severity, keep in ((Severity.HIGH, keep_high), (Severity.MEDIUM, keep_medium), (Severity.LOW, keep_low)):
            evicted = len(tiers[severity]) - keep
            if evicted:
                records_evicted_total.labels(severity=severity.value).inc(evicted)

        _log.debug(
            "retention_enforced",
            before=len(records),
            after=len(kept),
            kept_high=keep_high,
            kept_medium=keep_medium,
            kept_low=keep_low,
        )
        return sorted(kept, key=lambda r: r.timestamp, reverse=True)
