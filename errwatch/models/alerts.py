"""Alert data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from errwatch.models.errors import Severity

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS


@dataclass(frozen=True)
class AlertRule:
    """Fires when at least ``threshold`` errors fall inside the trailing window."""

    threshold: int
    window_ms: int
    level: Severity

    def __post_init__(self) -> None:
        if self.threshold <= 0:
            raise ValueError("threshold must be greater than zero")
        if self.window_ms <= 0:
            raise ValueError("window_ms must be greater than zero")


DEFAULT_ALERT_RULES: tuple[AlertRule, ...] = (
    AlertRule(threshold=5, window_ms=HOUR_MS, level=Severity.LOW),
    AlertRule(threshold=15, window_ms=HOUR_MS, level=Severity.MEDIUM),
    AlertRule(threshold=30, window_ms=HOUR_MS, level=Severity.HIGH),
    AlertRule(threshold=100, window_ms=DAY_MS, level=Severity.HIGH),
)


@dataclass
class Alert:
    """Emitted by the AlertEngine, consumed by the notification system.

    Only ``resolved``/``resolved_at`` ever change after creation.
    """

    level: Severity
    error_count: int
    threshold: int
    window_ms: int
    message: str
    created_at: int
    resolved: bool = False
    resolved_at: int | None = None
    alert_id: str = field(default_factory=lambda: uuid4().hex)

    @property
    def key(self) -> tuple[Severity, int]:
        return (self.level, self.window_ms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "level": self.level.value,
            "error_count": self.error_count,
            "threshold": self.threshold,
            "window_ms": self.window_ms,
            "message": self.message,
            "created_at": self.created_at,
            "resolved": self.resolved,
            "resolved_at": self.resolved_at,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Alert:
        resolved_at = raw.get("resolved_at")
        return cls(
            alert_id=str(raw["alert_id"]),
            level=Severity(raw["level"]),
            error_count=int(raw["error_count"]),
            threshold=int(raw["threshold"]),
            window_ms=int(raw["window_ms"]),
            message=str(raw.get("message", "")),
            created_at=int(raw["created_at"]),
            resolved=bool(raw.get("resolved", False)),
            resolved_at=int(resolved_at) if resolved_at is not None else None,
        )


def describe_window(window_ms: int) -> str:
    """Render a window length the way operators write it (``1h``, ``24h``, ``15m``)."""
    minutes, rem = divmod(window_ms, 60_000)
    if rem:
        return f"{window_ms}ms"
    hours, rem_minutes = divmod(minutes, 60)
    if hours and not rem_minutes:
        return f"{hours}h"
    return f"{minutes}m"
