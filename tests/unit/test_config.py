"""Unit tests for ERRWATCH_* environment configuration."""

from __future__ import annotations

import pytest

from errwatch.config import load_config, parse_alert_rules, parse_time_window
from errwatch.models.alerts import DAY_MS, DEFAULT_ALERT_RULES, HOUR_MS, AlertRule
from errwatch.models.errors import Severity


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    import os

    for key in list(os.environ):
        if key.startswith("ERRWATCH_"):
            monkeypatch.delenv(key)


class TestLoadConfig:
    def test_defaults(self) -> None:
        config = load_config()
        assert config.store.backend == "memory"
        assert config.store.max_records == 100
        assert config.store.max_alerts == 50
        assert config.dedup.window_ms == 60_000
        assert config.dedup.lookback == 50
        assert config.stats.cache_ttl_ms == 5 * 60_000
        assert config.stats.cache_enabled is True
        assert config.reporter.endpoint == ""
        assert config.api.port == 8080
        assert config.log.level == "info"
        assert config.alert_rules == DEFAULT_ALERT_RULES

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ERRWATCH_STORE_BACKEND", "FILE")
        monkeypatch.setenv("ERRWATCH_STORE_PATH", "/var/lib/errwatch")
        monkeypatch.setenv("ERRWATCH_STORE_MAX_RECORDS", "250")
        monkeypatch.setenv("ERRWATCH_DEDUP_WINDOW", "2m")
        monkeypatch.setenv("ERRWATCH_STATS_CACHE_ENABLED", "false")
        monkeypatch.setenv("ERRWATCH_REPORTER_ENDPOINT", "https://collector.example.com")
        monkeypatch.setenv("ERRWATCH_LOG_LEVEL", "DEBUG")

        config = load_config()

        assert config.store.backend == "file"
        assert config.store.path == "/var/lib/errwatch"
        assert config.store.max_records == 250
        assert config.dedup.window_ms == 120_000
        assert config.stats.cache_enabled is False
        assert config.reporter.endpoint == "https://collector.example.com"
        assert config.log.level == "debug"

    def test_integers_are_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ERRWATCH_STORE_MAX_RECORDS", "0")
        monkeypatch.setenv("ERRWATCH_API_PORT", "80")
        config = load_config()
        assert config.store.max_records == 1
        assert config.api.port == 1024

    def test_invalid_log_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ERRWATCH_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="Invalid log level"):
            load_config()

    def test_invalid_backend(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ERRWATCH_STORE_BACKEND", "redis")
        with pytest.raises(ValueError, match="Invalid store backend"):
            load_config()

    def test_alert_rules_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ERRWATCH_ALERT_RULES", "3/15m/medium, 50/1d/high")
        assert load_config().alert_rules == (
            AlertRule(threshold=3, window_ms=15 * 60_000, level=Severity.MEDIUM),
            AlertRule(threshold=50, window_ms=DAY_MS, level=Severity.HIGH),
        )


class TestParsers:
    @pytest.mark.parametrize(
        "value, expected",
        [("1m", 60_000), ("1h", HOUR_MS), ("24h", DAY_MS), ("2d", 2 * DAY_MS)],
    )
    def test_time_windows(self, value: str, expected: int) -> None:
        assert parse_time_window(value) == expected

    @pytest.mark.parametrize("value", ["", "0m", "10s", "h", "1.5h", "-1h"])
    def test_invalid_time_windows(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_time_window(value)

    def test_empty_rules_use_defaults(self) -> None:
        assert parse_alert_rules("  ") == DEFAULT_ALERT_RULES

    @pytest.mark.parametrize("value", ["5/1h", "5/1h/critical", "0/1h/low", "x/1h/low"])
    def test_invalid_rules(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_alert_rules(value)
