"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from errwatch.models.alerts import DEFAULT_ALERT_RULES, AlertRule
from errwatch.models.config import (
    APIConfig,
    DedupConfig,
    ErrwatchConfig,
    LogConfig,
    NotificationConfig,
    ReporterConfig,
    StatsConfig,
    StoreConfig,
)
from errwatch.models.errors import Severity

_WINDOW_UNITS_MS = {"m": 60_000, "h": 3_600_000, "d": 86_400_000}


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"ERRWATCH_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def parse_time_window(value: str) -> int:
    """Convert ``<n>(m|h|d)`` to milliseconds."""
    match = re.match(r"^([0-9]+)(m|h|d)$", value.strip())
    if not match or int(match.group(1)) == 0:
        raise ValueError(f"Invalid time window format: {value}")
    return int(match.group(1)) * _WINDOW_UNITS_MS[match.group(2)]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_backend(value: str) -> str:
    valid = {"memory", "file"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid store backend: {value}. Must be one of {valid}")
    return value.lower()


def parse_alert_rules(value: str) -> tuple[AlertRule, ...]:
    """Parse ``"5/1h/low,100/24h/high"`` into alert rules.

    An empty string yields the default rule set.
    """
    if not value.strip():
        return DEFAULT_ALERT_RULES
    rules: list[AlertRule] = []
    for item in value.split(","):
        parts = [p.strip() for p in item.split("/")]
        if len(parts) != 3:
            raise ValueError(f"Invalid alert rule: {item!r}. Expected <threshold>/<window>/<level>")
        threshold, window, level = parts
        try:
            severity = Severity(level.lower())
        except ValueError:
            raise ValueError(f"Invalid alert level in rule {item!r}: {level}") from None
        rules.append(AlertRule(threshold=int(threshold), window_ms=parse_time_window(window), level=severity))
    return tuple(rules)


def load_config() -> ErrwatchConfig:
    """Load configuration from ERRWATCH_* environment variables."""
    return ErrwatchConfig(
        store=StoreConfig(
            backend=_validate_backend(_env("STORE_BACKEND", "memory")),
            path=_env("STORE_PATH", ".errwatch"),
            max_records=_env_int("STORE_MAX_RECORDS", 100, min_val=1, max_val=10_000),
            max_alerts=_env_int("STORE_MAX_ALERTS", 50, min_val=1, max_val=1_000),
        ),
        dedup=DedupConfig(
            window_ms=parse_time_window(_env("DEDUP_WINDOW", "1m")),
            lookback=_env_int("DEDUP_LOOKBACK", 50, min_val=1, max_val=1_000),
        ),
        stats=StatsConfig(
            cache_ttl_ms=parse_time_window(_env("STATS_CACHE_TTL", "5m")),
            cache_enabled=_env_bool("STATS_CACHE_ENABLED", True),
        ),
        reporter=ReporterConfig(
            endpoint=_env("REPORTER_ENDPOINT", ""),
            batch_size=_env_int("REPORTER_BATCH_SIZE", 10, min_val=1, max_val=500),
            timeout_seconds=_env_float("REPORTER_TIMEOUT", 10.0),
        ),
        notifications=NotificationConfig(
            email_secret_ref=_env("NOTIFICATIONS_EMAIL_SECRET_REF", ""),
            email_to=_env("NOTIFICATIONS_EMAIL_TO", ""),
            webhook_secret_ref=_env("NOTIFICATIONS_WEBHOOK_SECRET_REF", ""),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
        alert_rules=parse_alert_rules(_env("ALERT_RULES", "")),
    )
