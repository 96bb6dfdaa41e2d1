"""Statistics over the record store."""

from errwatch.stats.aggregator import CRITICAL_LIMIT, StatsAggregator

__all__ = ["CRITICAL_LIMIT", "StatsAggregator"]
