"""Duplicate suppression for error storms.

A candidate is a duplicate when one of the most recent ``lookback`` stored
records has the same ``(message, kind, location)`` and lies less than
``window_ms`` away in time. The scan is linear; ``lookback`` keeps it small.
"""

from __future__ import annotations

import structlog

from errwatch.models.errors import ErrorRecord

_log = structlog.get_logger(component="dedup")

_DEFAULT_WINDOW_MS = 60_000
_DEFAULT_LOOKBACK = 50


class Deduplicator:
    def __init__(self, window_ms: int = _DEFAULT_WINDOW_MS, lookback: int = _DEFAULT_LOOKBACK) -> None:
        if window_ms <= 0:
            raise ValueError("window_ms must be greater than zero")
        if lookback <= 0:
            raise ValueError("lookback must be greater than zero")
        self._window_ms = window_ms
        self._lookback = lookback

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @property
    def lookback(self) -> int:
        return self._lookback

    def find_duplicate(self, candidate: ErrorRecord, recent: list[ErrorRecord]) -> ErrorRecord | None:
        """Return the stored record *candidate* duplicates, if any.

        *recent* must be ordered newest first; only its head is examined.
        """
        fingerprint = candidate.fingerprint
        for stored in recent[: self._lookback]:
            if abs(candidate.timestamp - stored.timestamp) >= self._window_ms:
                continue
            if stored.fingerprint == fingerprint:
                _log.debug(
                    "duplicate_detected",
                    kind=candidate.kind,
                    existing_id=stored.record_id,
                    delta_ms=candidate.timestamp - stored.timestamp,
                )
                return stored
        return None

    def is_duplicate(self, candidate: ErrorRecord, recent: list[ErrorRecord]) -> bool:
        return self.find_duplicate(candidate, recent) is not None
