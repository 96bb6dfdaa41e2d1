"""Unit tests for duplicate suppression and severity-tiered retention."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from errwatch.dedup import Deduplicator
from errwatch.models.errors import ErrorKind, ErrorRecord, Severity
from errwatch.retention import RetentionPolicy

T0 = 1_700_000_000_000


def _record(severity: Severity, timestamp: int, message: str = "m") -> ErrorRecord:
    return ErrorRecord(kind="TEST", severity=severity, name="Error", message=message, timestamp=timestamp)


# ===========================================================================
# Deduplicator
# ===========================================================================


class TestDeduplicator:
    def test_identical_within_window_is_duplicate(self, make_record) -> None:
        stored = make_record(timestamp=T0)
        candidate = make_record(timestamp=T0 + 59_999)
        dedup = Deduplicator()
        assert dedup.find_duplicate(candidate, [stored]) is stored

    def test_exactly_window_apart_is_not_duplicate(self, make_record) -> None:
        stored = make_record(timestamp=T0)
        candidate = make_record(timestamp=T0 + 60_000)
        assert not Deduplicator().is_duplicate(candidate, [stored])

    @pytest.mark.parametrize(
        "field, value",
        [
            ("message", "different message"),
            ("kind", ErrorKind.TIMEOUT_ERROR),
            ("location", "other.js:1"),
        ],
    )
    def test_any_fingerprint_difference_is_not_duplicate(self, make_record, field: str, value: str) -> None:
        stored = make_record(timestamp=T0)
        candidate = make_record(timestamp=T0 + 1_000, **{field: value})
        assert not Deduplicator().is_duplicate(candidate, [stored])

    def test_device_and_context_do_not_matter(self, make_record) -> None:
        stored = make_record(timestamp=T0, browser="Firefox", context={"a": 1})
        candidate = make_record(timestamp=T0 + 1_000, browser="Chrome", context={"b": 2})
        assert Deduplicator().is_duplicate(candidate, [stored])

    def test_only_lookback_records_are_examined(self, make_record) -> None:
        target = make_record(timestamp=T0)
        newer = [make_record(message=f"other {i}", timestamp=T0 + i) for i in range(1, 4)]
        recent = list(reversed(newer)) + [target]
        candidate = make_record(timestamp=T0 + 10)
        assert Deduplicator(lookback=3).find_duplicate(candidate, recent) is None
        assert Deduplicator(lookback=4).find_duplicate(candidate, recent) is target

    def test_invalid_parameters(self) -> None:
        with pytest.raises(ValueError):
            Deduplicator(window_ms=0)
        with pytest.raises(ValueError):
            Deduplicator(lookback=0)


# ===========================================================================
# RetentionPolicy
# ===========================================================================


class TestRetentionPolicy:
    def test_eight_low_four_high_with_budget_ten(self) -> None:
        records = [_record(Severity.LOW, T0 + i) for i in range(8)]
        records += [_record(Severity.HIGH, T0 + 100 + i) for i in range(4)]

        kept = RetentionPolicy(max_records=10).enforce(records)

        assert len(kept) == 10
        assert sum(1 for r in kept if r.severity == Severity.HIGH) == 4
        lows = [r for r in kept if r.severity == Severity.LOW]
        assert len(lows) == 6
        # The two oldest lows are the ones evicted.
        assert min(r.timestamp for r in lows) == T0 + 2

    def test_result_is_sorted_newest_first(self) -> None:
        records = [_record(s, T0 + i) for i, s in enumerate([Severity.LOW, Severity.HIGH, Severity.MEDIUM] * 5)]
        kept = RetentionPolicy(max_records=10).enforce(records)
        timestamps = [r.timestamp for r in kept]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_high_is_capped_at_half_the_budget(self) -> None:
        records = [_record(Severity.HIGH, T0 + i) for i in range(20)]
        records += [_record(Severity.LOW, T0 + i) for i in range(20)]
        kept = RetentionPolicy(max_records=10).enforce(records)
        assert sum(1 for r in kept if r.severity == Severity.HIGH) == 5
        assert len(kept) == 10

    def test_medium_quota_is_seventy_percent_of_remaining(self) -> None:
        policy = RetentionPolicy(max_records=100)
        assert policy.quotas(high=60, medium=100, low=100) == (50, 35, 15)
        assert policy.quotas(high=0, medium=100, low=100) == (0, 70, 30)

    def test_quotas_apply_under_budget(self) -> None:
        # A medium-only store is capped at floor(MAX * 0.7) even under budget.
        records = [_record(Severity.MEDIUM, T0 + i) for i in range(80)]
        kept = RetentionPolicy(max_records=100).enforce(records)
        assert len(kept) == 70

    def test_empty_input(self) -> None:
        assert RetentionPolicy(max_records=10).enforce([]) == []

    def test_invalid_budget(self) -> None:
        with pytest.raises(ValueError):
            RetentionPolicy(max_records=0)

    @given(
        severities=st.lists(st.sampled_from(list(Severity)), max_size=300),
        max_records=st.integers(min_value=1, max_value=120),
    )
    @settings(max_examples=200)
    def test_retention_invariant(self, severities: list[Severity], max_records: int) -> None:
        records = [_record(s, T0 + i) for i, s in enumerate(severities)]
        kept = RetentionPolicy(max_records=max_records).enforce(records)

        high_count = sum(1 for s in severities if s == Severity.HIGH)
        assert len(kept) <= max_records
        assert sum(1 for r in kept if r.severity == Severity.HIGH) == min(high_count, max_records // 2)
        assert [r.timestamp for r in kept] == sorted((r.timestamp for r in kept), reverse=True)

    @given(severities=st.lists(st.sampled_from(list(Severity)), min_size=1, max_size=200))
    @settings(max_examples=100)
    def test_each_tier_keeps_its_most_recent_records(self, severities: list[Severity]) -> None:
        records = [_record(s, T0 + i) for i, s in enumerate(severities)]
        kept = RetentionPolicy(max_records=20).enforce(records)
        for severity in Severity:
            kept_ts = {r.timestamp for r in kept if r.severity == severity}
            tier_ts = sorted((r.timestamp for r in records if r.severity == severity), reverse=True)
            assert kept_ts == set(tier_ts[: len(kept_ts)])
