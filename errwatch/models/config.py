"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field

from errwatch.models.alerts import DEFAULT_ALERT_RULES, AlertRule


@dataclass
class StoreConfig:
    """Persistent store configuration."""

    backend: str = "memory"
    path: str = ".errwatch"
    max_records: int = 100
    max_alerts: int = 50


@dataclass
class DedupConfig:
    """Duplicate suppression configuration."""

    window_ms: int = 60_000
    lookback: int = 50


@dataclass
class StatsConfig:
    """Statistics cache configuration."""

    cache_ttl_ms: int = 5 * 60 * 1000
    cache_enabled: bool = True


@dataclass
class ReporterConfig:
    """Remote collector configuration. An empty endpoint disables reporting."""

    endpoint: str = ""
    batch_size: int = 10
    timeout_seconds: float = 10.0


@dataclass
class NotificationConfig:
    """Notification system configuration."""

    email_secret_ref: str = ""
    email_to: str = ""
    webhook_secret_ref: str = ""


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class ErrwatchConfig:
    """Top-level errwatch configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    stats: StatsConfig = field(default_factory=StatsConfig)
    reporter: ReporterConfig = field(default_factory=ReporterConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
    alert_rules: tuple[AlertRule, ...] = DEFAULT_ALERT_RULES
