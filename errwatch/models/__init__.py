"""Core data structures for errwatch."""

from errwatch.models.alerts import DEFAULT_ALERT_RULES, Alert, AlertRule
from errwatch.models.config import ErrwatchConfig
from errwatch.models.errors import DeviceInfo, ErrorKind, ErrorRecord, RawError, Severity
from errwatch.models.stats import (
    AlertStats,
    CategoryStats,
    StatsSnapshot,
    TrendBucket,
    TrendSeries,
)

__all__ = [
    "DEFAULT_ALERT_RULES",
    "Alert",
    "AlertRule",
    "AlertStats",
    "CategoryStats",
    "DeviceInfo",
    "ErrorKind",
    "ErrorRecord",
    "ErrwatchConfig",
    "RawError",
    "Severity",
    "StatsSnapshot",
    "TrendBucket",
    "TrendSeries",
]
