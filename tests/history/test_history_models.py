"""Tests for shardwise.history.models."""

from __future__ import annotations

import pytest

from shardwise.history.models import (
    HISTORY_SCHEMA_VERSION,
    HistoryEntry,
    HistoryRecord,
    HistorySnapshot,
    ShardRunSummary,
)


def _ts(n: int) -> str:
    return f"2026-03-01T00:00:{n:02d}+00:00"


def _run(n: int, total: float = 10.0) -> ShardRunSummary:
    return ShardRunSummary(
        timestamp=_ts(n), shard_count=2, total_duration=total, avg_accuracy=0.9, success_rate=1.0
    )


class TestHistoryRecord:
    def test_append_updates_aggregates(self) -> None:
        record = HistoryRecord(path="t.py")
        record.append(HistoryEntry(2.0, _ts(1), True))
        record.append(HistoryEntry(4.0, _ts(2), True))

        assert record.avg_duration == pytest.approx(3.0)
        assert record.failure_rate == 0.0
        assert record.last_seen == _ts(2)

    def test_cap_evicts_oldest_first(self) -> None:
        record = HistoryRecord(path="t.py")
        for i in range(5):
            record.append(HistoryEntry(float(i), _ts(i), True), cap=3)

        assert [e.duration for e in record.entries] == [2.0, 3.0, 4.0]
        assert record.avg_duration == pytest.approx(3.0)

    def test_failures_excluded_from_average(self) -> None:
        record = HistoryRecord(path="t.py")
        record.append(HistoryEntry(1.0, _ts(1), True))
        record.append(HistoryEntry(100.0, _ts(2), False))

        assert record.avg_duration == pytest.approx(1.0)
        assert record.failure_rate == pytest.approx(0.5)

    def test_only_failures_has_no_average(self) -> None:
        record = HistoryRecord(path="t.py")
        record.append(HistoryEntry(5.0, _ts(1), False))
        assert record.avg_duration is None
        assert record.failure_rate == 1.0

    def test_empty_record(self) -> None:
        record = HistoryRecord(path="t.py")
        record.recompute()
        assert record.avg_duration is None
        assert record.last_seen == ""

    def test_from_dict_recomputes_aggregates(self) -> None:
        data = {
            "avg_duration": 999.0,
            "failure_rate": 0.9,
            "entries": [{"duration": 2.0, "timestamp": _ts(1), "success": True}],
        }
        record = HistoryRecord.from_dict("t.py", data)
        assert record.avg_duration == pytest.approx(2.0)
        assert record.failure_rate == 0.0


class TestHistorySnapshot:
    def test_record_creates_units(self) -> None:
        snapshot = HistorySnapshot()
        snapshot.record("a.py", HistoryEntry(1.0, _ts(1), True))

        assert snapshot.avg_duration("a.py") == 1.0
        assert snapshot.avg_duration("missing.py") is None
        assert snapshot.failure_rate("missing.py") == 0.0

    def test_copy_is_independent(self) -> None:
        snapshot = HistorySnapshot()
        snapshot.record("a.py", HistoryEntry(1.0, _ts(1), True))
        clone = snapshot.copy()
        clone.record("a.py", HistoryEntry(3.0, _ts(2), True))

        assert snapshot.avg_duration("a.py") == 1.0
        assert clone.avg_duration("a.py") == 2.0

    def test_append_run_caps(self) -> None:
        snapshot = HistorySnapshot()
        for i in range(6):
            snapshot.append_run(_run(i), cap=4)

        assert [r.timestamp for r in snapshot.runs] == [_ts(2), _ts(3), _ts(4), _ts(5)]
        assert [r.timestamp for r in snapshot.recent_runs(2)] == [_ts(4), _ts(5)]
        assert snapshot.recent_runs(0) == []

    def test_stale_paths_reported_not_removed(self) -> None:
        snapshot = HistorySnapshot()
        snapshot.record("a.py", HistoryEntry(1.0, _ts(1), True))
        snapshot.record("gone.py", HistoryEntry(1.0, _ts(1), True))

        assert snapshot.stale_paths(["a.py"]) == ["gone.py"]
        assert "gone.py" in snapshot.units

    def test_prune_stale(self) -> None:
        snapshot = HistorySnapshot(version=3)
        snapshot.record("a.py", HistoryEntry(1.0, _ts(1), True))
        snapshot.record("gone.py", HistoryEntry(1.0, _ts(1), True))

        pruned = snapshot.prune_stale(["a.py"])

        assert set(pruned.units) == {"a.py"}
        assert pruned.version == 4
        assert set(snapshot.units) == {"a.py", "gone.py"}

    def test_prune_stale_noop_keeps_version(self) -> None:
        snapshot = HistorySnapshot(version=3)
        snapshot.record("a.py", HistoryEntry(1.0, _ts(1), True))
        assert snapshot.prune_stale(["a.py"]).version == 3

    def test_prune_unseen_for_runs(self) -> None:
        snapshot = HistorySnapshot()
        snapshot.record("old.py", HistoryEntry(1.0, _ts(1), True))
        snapshot.record("fresh.py", HistoryEntry(1.0, _ts(5), True))
        for i in range(2, 6):
            snapshot.append_run(_run(i))

        pruned = snapshot.prune_unseen_for_runs(3)

        assert set(pruned.units) == {"fresh.py"}
        assert pruned.version == snapshot.version + 1

    def test_prune_unseen_waits_for_enough_runs(self) -> None:
        snapshot = HistorySnapshot()
        snapshot.record("old.py", HistoryEntry(1.0, _ts(1), True))
        snapshot.append_run(_run(9))
        assert set(snapshot.prune_unseen_for_runs(3).units) == {"old.py"}

    def test_serialization(self) -> None:
        snapshot = HistorySnapshot(version=7)
        snapshot.record("a.py", HistoryEntry(1.5, _ts(1), True))
        snapshot.record("a.py", HistoryEntry(2.5, _ts(2), False))
        snapshot.append_run(_run(2, total=12.5))

        data = snapshot.to_dict()
        assert data["schema_version"] == HISTORY_SCHEMA_VERSION
        assert data["units"]["a.py"]["failure_rate"] == 0.5

        restored = HistorySnapshot.from_dict(data)
        assert restored == snapshot

    def test_newer_schema_rejected(self) -> None:
        with pytest.raises(ValueError, match="schema_version"):
            HistorySnapshot.from_dict({"schema_version": HISTORY_SCHEMA_VERSION + 1})

    def test_malformed_units_rejected(self) -> None:
        with pytest.raises((TypeError, ValueError)):
            HistorySnapshot.from_dict({"units": ["a.py"]})
