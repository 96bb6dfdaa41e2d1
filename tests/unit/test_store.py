"""Unit tests for slot backends and the record/alert stores."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from errwatch.models.alerts import HOUR_MS, Alert
from errwatch.models.errors import Severity
from errwatch.store.backends import FileBackend, MemoryBackend, build_backend
from errwatch.store.records import ALERTS_SLOT, ERRORS_SLOT, AlertStore, RecordStore

T0 = 1_700_000_000_000


def _alert(created_at: int, level: Severity = Severity.LOW, resolved: bool = False) -> Alert:
    return Alert(
        level=level,
        error_count=5,
        threshold=5,
        window_ms=HOUR_MS,
        message="5 errors in the last 1h",
        created_at=created_at,
        resolved=resolved,
    )


# ===========================================================================
# Backends
# ===========================================================================


class TestBackends:
    def test_memory_round_trip(self) -> None:
        backend = MemoryBackend()
        assert backend.read("errors") is None
        backend.write("errors", "[]")
        assert backend.read("errors") == "[]"
        backend.delete("errors")
        assert backend.read("errors") is None

    def test_file_round_trip(self, tmp_path: Path) -> None:
        backend = FileBackend(tmp_path / "state")
        backend.write("errors", '[{"a": 1}]')
        assert (tmp_path / "state" / "errors.json").exists()
        assert FileBackend(tmp_path / "state").read("errors") == '[{"a": 1}]'
        backend.delete("errors")
        assert backend.read("errors") is None

    def test_delete_missing_slot_is_a_noop(self, tmp_path: Path) -> None:
        FileBackend(tmp_path).delete("alerts")

    @pytest.mark.parametrize("slot", ["", "../etc", "Errors", "a/b"])
    def test_invalid_slot_names_rejected(self, slot: str) -> None:
        with pytest.raises(ValueError):
            MemoryBackend().write(slot, "[]")

    def test_build_backend(self, tmp_path: Path) -> None:
        assert isinstance(build_backend("memory"), MemoryBackend)
        assert isinstance(build_backend("file", str(tmp_path)), FileBackend)
        with pytest.raises(ValueError):
            build_backend("redis")


# ===========================================================================
# RecordStore
# ===========================================================================


class TestRecordStore:
    def test_all_is_sorted_newest_first_regardless_of_insert_order(self, backend, make_record) -> None:
        store = RecordStore(backend)
        for ts in (T0 + 5, T0 + 1, T0 + 9):
            store.insert(make_record(timestamp=ts, message=str(ts)))
        assert [r.timestamp for r in store.all()] == [T0 + 9, T0 + 5, T0 + 1]

    def test_all_with_filter(self, backend, make_record) -> None:
        store = RecordStore(backend)
        store.insert(make_record(severity=Severity.HIGH))
        store.insert(make_record(severity=Severity.LOW, timestamp=T0 + 1))
        assert [r.severity for r in store.all(lambda r: r.severity == Severity.LOW)] == [Severity.LOW]

    def test_all_returns_a_copy(self, backend, make_record) -> None:
        store = RecordStore(backend)
        store.insert(make_record())
        store.all().clear()
        assert len(store) == 1

    def test_returned_context_edits_do_not_reach_the_store(self, backend, make_record) -> None:
        store = RecordStore(backend)
        store.insert(make_record(context={"page": "/a", "nested": {"n": 1}}))

        leaked = store.all()[0]
        leaked.context["page"] = "/hacked"
        leaked.context["nested"]["n"] = 2

        assert store.all()[0].context == {"page": "/a", "nested": {"n": 1}}
        store.save()
        assert json.loads(backend.read(ERRORS_SLOT))[0]["context"]["page"] == "/a"

    def test_inserted_record_is_detached_from_the_caller(self, backend, make_record) -> None:
        record = make_record(context={"page": "/a"})
        store = RecordStore(backend)
        store.insert(record)
        record.context["page"] = "/b"
        assert store.all()[0].context["page"] == "/a"

    def test_clear_returns_removed_count(self, backend, make_record) -> None:
        store = RecordStore(backend)
        store.insert(make_record())
        store.insert(make_record(timestamp=T0 + 1))
        assert store.clear() == 2
        assert store.clear() == 0

    def test_remove_returns_removed(self, backend, make_record) -> None:
        store = RecordStore(backend)
        store.insert(make_record(severity=Severity.HIGH))
        store.insert(make_record(severity=Severity.LOW, timestamp=T0 + 1))
        removed = store.remove(lambda r: r.severity == Severity.HIGH)
        assert len(removed) == 1
        assert len(store) == 1

    def test_insert_none_raises(self, backend) -> None:
        with pytest.raises(TypeError):
            RecordStore(backend).insert(None)  # type: ignore[arg-type]

    def test_save_then_load_round_trip(self, backend, make_record) -> None:
        store = RecordStore(backend)
        original = make_record(context={"page_path": "/chat", "viewport": {"width": 1280}})
        store.insert(original)
        assert store.save()

        reloaded = RecordStore(backend)
        assert reloaded.load() == 1
        assert reloaded.all() == [original]

    def test_persisted_payload_is_json_array_newest_first(self, backend, make_record) -> None:
        store = RecordStore(backend)
        store.insert(make_record(timestamp=T0, message="old"))
        store.insert(make_record(timestamp=T0 + 1, message="new"))
        store.save()
        payload = json.loads(backend.read(ERRORS_SLOT))
        assert [item["message"] for item in payload] == ["new", "old"]

    @pytest.mark.parametrize("payload", ["", "not json", "{}", '"string"', "42", "null"])
    def test_corrupt_payload_loads_empty(self, payload: str) -> None:
        store = RecordStore(MemoryBackend({ERRORS_SLOT: payload}))
        assert store.load() == 0
        assert store.all() == []

    def test_undecodable_file_loads_empty(self, tmp_path: Path) -> None:
        (tmp_path / "errors.json").write_bytes(b"\xff\xfe[garbage")
        store = RecordStore(FileBackend(tmp_path))
        assert store.load() == 0
        assert store.all() == []

    @pytest.mark.parametrize("timestamp", ["Infinity", "-Infinity", "1e999", "NaN"])
    def test_non_finite_timestamps_are_skipped(self, make_record, timestamp: str) -> None:
        good = json.dumps(make_record().to_dict())
        bad = json.dumps({**make_record(message="bad").to_dict(), "timestamp": 0}).replace(
            '"timestamp": 0', f'"timestamp": {timestamp}'
        )
        store = RecordStore(MemoryBackend({ERRORS_SLOT: f"[{good}, {bad}]"}))
        assert store.load() == 1
        assert [r.message for r in store.all()] == ["Failed to fetch"]

    def test_malformed_entries_are_skipped(self, make_record) -> None:
        good = make_record().to_dict()
        payload = json.dumps([good, {"kind": "X"}, "junk", {**good, "record_id": "b", "severity": "fatal"}])
        store = RecordStore(MemoryBackend({ERRORS_SLOT: payload}))
        assert store.load() == 1

    def test_clear_deletes_slot(self, backend, make_record) -> None:
        store = RecordStore(backend)
        store.insert(make_record())
        store.save()
        store.clear()
        assert len(store) == 0
        assert backend.read(ERRORS_SLOT) is None

    def test_save_failure_is_reported_not_raised(self, make_record) -> None:
        class BrokenBackend(MemoryBackend):
            def write(self, slot: str, payload: str) -> None:
                raise OSError("disk full")

        store = RecordStore(BrokenBackend())
        store.insert(make_record())
        assert store.save() is False
        assert len(store) == 1


# ===========================================================================
# AlertStore
# ===========================================================================


class TestAlertStore:
    def test_round_trip(self, backend) -> None:
        store = AlertStore(backend)
        alert = _alert(T0)
        store.add(alert)
        store.save()

        reloaded = AlertStore(backend)
        assert reloaded.load() == 1
        assert reloaded.all()[0].to_dict() == alert.to_dict()

    def test_corrupt_payload_loads_empty(self) -> None:
        store = AlertStore(MemoryBackend({ALERTS_SLOT: "{broken"}))
        assert store.load() == 0

    def test_undecodable_file_loads_empty(self, tmp_path: Path) -> None:
        (tmp_path / "alerts.json").write_bytes(b"\xff\xfe[garbage")
        assert AlertStore(FileBackend(tmp_path)).load() == 0

    @pytest.mark.parametrize("field", ["created_at", "error_count", "window_ms", "resolved_at"])
    def test_non_finite_numbers_are_skipped(self, field: str) -> None:
        good = json.dumps(_alert(T0).to_dict())
        bad = json.dumps({**_alert(T0 + 1, resolved=True).to_dict(), field: 0}).replace(
            f'"{field}": 0', f'"{field}": 1e999'
        )
        store = AlertStore(MemoryBackend({ALERTS_SLOT: f"[{good}, {bad}]"}))
        assert store.load() == 1
        assert store.all()[0].created_at == T0

    def test_clear_returns_removed_count(self, backend) -> None:
        store = AlertStore(backend)
        store.add(_alert(T0))
        assert store.clear() == 1
        assert store.all() == []

    def test_copies_are_handed_out(self, backend) -> None:
        store = AlertStore(backend)
        alert = _alert(T0)
        store.add(alert)
        store.all()[0].resolved = True
        assert store.get(alert.alert_id).resolved is False

    def test_resolve_is_idempotent(self, backend) -> None:
        store = AlertStore(backend)
        alert = _alert(T0)
        store.add(alert)
        first = store.resolve(alert.alert_id, at=T0 + 10)
        second = store.resolve(alert.alert_id, at=T0 + 20)
        assert first.resolved and second.resolved
        assert second.resolved_at == T0 + 10

    def test_resolve_unknown_returns_none(self, backend) -> None:
        assert AlertStore(backend).resolve("missing", at=T0) is None

    def test_find_unresolved_matches_level_and_window(self, backend) -> None:
        store = AlertStore(backend)
        low = _alert(T0, level=Severity.LOW)
        store.add(low)
        store.add(_alert(T0, level=Severity.HIGH, resolved=True))
        assert store.find_unresolved(Severity.LOW, HOUR_MS).alert_id == low.alert_id
        assert store.find_unresolved(Severity.HIGH, HOUR_MS) is None
        assert store.find_unresolved(Severity.LOW, 2 * HOUR_MS) is None

    def test_capacity_drops_oldest_resolved_first(self, backend) -> None:
        store = AlertStore(backend, max_alerts=3)
        old_resolved = _alert(T0, resolved=True)
        old_open = _alert(T0 + 1)
        store.add(old_resolved)
        store.add(old_open)
        store.add(_alert(T0 + 2))
        store.add(_alert(T0 + 3))

        ids = {a.alert_id for a in store.all()}
        assert len(ids) == 3
        assert old_resolved.alert_id not in ids
        assert old_open.alert_id in ids

    def test_capacity_drops_oldest_open_when_none_resolved(self, backend) -> None:
        store = AlertStore(backend, max_alerts=2)
        oldest = _alert(T0)
        for alert in (oldest, _alert(T0 + 1), _alert(T0 + 2)):
            store.add(alert)
        assert oldest.alert_id not in {a.alert_id for a in store.all()}
