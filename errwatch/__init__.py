"""errwatch: error telemetry, deduplication and rate-based alerting."""

__version__ = "0.1.0"
