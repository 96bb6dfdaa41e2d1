"""Prometheus metrics for the error telemetry pipeline."""

from prometheus_client import Counter, Gauge

errors_recorded_total = Counter(
    "errwatch_errors_recorded_total",
    "Total number of error records committed to the store",
    ["kind", "severity"],
)

errors_deduplicated_total = Counter(
    "errwatch_errors_deduplicated_total",
    "Total number of incoming errors dropped as duplicates",
    ["kind"],
)

records_evicted_total = Counter(
    "errwatch_records_evicted_total",
    "Total number of records evicted by the retention policy",
    ["severity"],
)

stored_records = Gauge(
    "errwatch_stored_records",
    "Number of error records currently held in the store",
)

alerts_created_total = Counter(
    "errwatch_alerts_created_total",
    "Total number of alerts created",
    ["level"],
)

notifications_total = Counter(
    "errwatch_notifications_total",
    "Notification delivery attempts",
    ["channel", "success"],
)

reports_total = Counter(
    "errwatch_reports_total",
    "Remote report delivery attempts",
    ["success"],
)
