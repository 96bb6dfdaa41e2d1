"""Alerting package: rolling-window threshold rules and alert lifecycle."""

from errwatch.alerts.engine import AlertEngine, count_in_window, describe_window

__all__ = ["AlertEngine", "count_in_window", "describe_window"]
