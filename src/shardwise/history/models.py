"""History data models: per-unit rolling windows and run summaries.

A ``HistorySnapshot`` is the only learning state shardwise keeps between
runs.  It is passed explicitly to the estimator (read-only) and to the
tracker, which works on a copy and returns the next version.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from statistics import fmean
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

HISTORY_SCHEMA_VERSION = 1
"""On-disk layout version written alongside every snapshot."""

DEFAULT_PER_UNIT_CAP = 100
DEFAULT_PER_RUN_CAP = 50


@dataclass(frozen=True)
class HistoryEntry:
    """One observation of a test unit."""

    duration: float
    timestamp: str
    success: bool

    def to_dict(self) -> dict[str, Any]:
        return {"duration": self.duration, "timestamp": self.timestamp, "success": self.success}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(
            duration=float(data["duration"]),
            timestamp=str(data["timestamp"]),
            success=bool(data["success"]),
        )


@dataclass
class HistoryRecord:
    """Rolling window of observations for a single test unit."""

    path: str
    """Test unit path this record belongs to."""

    entries: list[HistoryEntry] = field(default_factory=list)
    """Observations, oldest first."""

    avg_duration: float | None = None
    """Mean duration of successful entries (``None`` when there are none)."""

    failure_rate: float = 0.0
    """Fraction of entries that were not successful."""

    def append(self, entry: HistoryEntry, cap: int = DEFAULT_PER_UNIT_CAP) -> None:
        """Append an entry, evict the oldest beyond *cap*, refresh aggregates."""
        self.entries.append(entry)
        if len(self.entries) > cap:
            del self.entries[: len(self.entries) - cap]
        self.recompute()

    def recompute(self) -> None:
        """Recompute ``avg_duration`` and ``failure_rate`` from the window."""
        if not self.entries:
            self.avg_duration = None
            self.failure_rate = 0.0
            return

        successful = [e.duration for e in self.entries if e.success]
        self.avg_duration = fmean(successful) if successful else None
        failures = len(self.entries) - len(successful)
        self.failure_rate = failures / len(self.entries)

    @property
    def last_seen(self) -> str:
        """Timestamp of the newest entry, or an empty string."""
        return self.entries[-1].timestamp if self.entries else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "avg_duration": self.avg_duration,
            "failure_rate": self.failure_rate,
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, path: str, data: dict[str, Any]) -> HistoryRecord:
        record = cls(
            path=path,
            entries=[HistoryEntry.from_dict(e) for e in data.get("entries", [])],
        )
        record.recompute()
        return record


@dataclass(frozen=True)
class ShardRunSummary:
    """Run-level snapshot used for trend analysis."""

    timestamp: str
    shard_count: int
    total_duration: float
    """Makespan of the run in seconds."""

    avg_accuracy: float
    """Run-level estimation accuracy (0.0-1.0, higher is better)."""

    success_rate: float
    """Fraction of executed shards that succeeded."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "shard_count": self.shard_count,
            "total_duration": self.total_duration,
            "avg_accuracy": self.avg_accuracy,
            "success_rate": self.success_rate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ShardRunSummary:
        return cls(
            timestamp=str(data["timestamp"]),
            shard_count=int(data["shard_count"]),
            total_duration=float(data["total_duration"]),
            avg_accuracy=float(data["avg_accuracy"]),
            success_rate=float(data["success_rate"]),
        )


@dataclass
class HistorySnapshot:
    """Versioned view of all historical data."""

    version: int = 0
    """Incremented every time the snapshot is updated."""

    units: dict[str, HistoryRecord] = field(default_factory=dict)
    runs: list[ShardRunSummary] = field(default_factory=list)

    def get(self, path: str) -> HistoryRecord | None:
        return self.units.get(path)

    def avg_duration(self, path: str) -> float | None:
        record = self.units.get(path)
        return record.avg_duration if record else None

    def failure_rate(self, path: str) -> float:
        record = self.units.get(path)
        return record.failure_rate if record else 0.0

    def copy(self) -> HistorySnapshot:
        """Return a deep copy that can be mutated freely."""
        return copy.deepcopy(self)

    def record(self, path: str, entry: HistoryEntry, cap: int = DEFAULT_PER_UNIT_CAP) -> None:
        """Append *entry* to the record for *path*, creating it if needed."""
        record = self.units.get(path)
        if record is None:
            record = HistoryRecord(path=path)
            self.units[path] = record
        record.append(entry, cap)

    def append_run(self, summary: ShardRunSummary, cap: int = DEFAULT_PER_RUN_CAP) -> None:
        """Append a run summary, evicting the oldest beyond *cap*."""
        self.runs.append(summary)
        if len(self.runs) > cap:
            del self.runs[: len(self.runs) - cap]

    def recent_runs(self, count: int) -> list[ShardRunSummary]:
        return self.runs[-count:] if count > 0 else []

    # ── Retention ────────────────────────────────────────────────

    def stale_paths(self, discovered: Iterable[str]) -> list[str]:
        """Paths with history that were not discovered in this pass."""
        known = set(discovered)
        return sorted(path for path in self.units if path not in known)

    def prune_stale(self, discovered: Iterable[str]) -> HistorySnapshot:
        """Return a new snapshot without records for undiscovered paths."""
        stale = set(self.stale_paths(discovered))
        pruned = self.copy()
        for path in stale:
            del pruned.units[path]
        if stale:
            pruned.version += 1
            logger.info("Pruned %d stale history records", len(stale))
        return pruned

    def prune_unseen_for_runs(self, runs: int) -> HistorySnapshot:
        """Return a new snapshot without records idle for the last *runs* runs.

        A record is idle when its newest entry predates the oldest of the
        last *runs* run summaries.  Does nothing until that many runs exist.
        """
        if runs <= 0 or len(self.runs) < runs:
            return self.copy()
        cutoff = self.runs[-runs].timestamp
        idle = [path for path, rec in self.units.items() if rec.last_seen < cutoff]
        pruned = self.copy()
        for path in idle:
            del pruned.units[path]
        if idle:
            pruned.version += 1
            logger.info("Pruned %d history records idle for %d runs", len(idle), runs)
        return pruned

    # ── Serialization ────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": HISTORY_SCHEMA_VERSION,
            "version": self.version,
            "units": {path: rec.to_dict() for path, rec in sorted(self.units.items())},
            "runs": [run.to_dict() for run in self.runs],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistorySnapshot:
        """Build a snapshot from its serialized form.

        Raises:
            KeyError, TypeError, ValueError: The data is malformed.
        """
        schema = int(data.get("schema_version", HISTORY_SCHEMA_VERSION))
        if schema > HISTORY_SCHEMA_VERSION:
            raise ValueError(f"unsupported history schema_version {schema}")

        units_raw = data.get("units", {})
        if not isinstance(units_raw, dict):
            raise TypeError("history 'units' must be a mapping")

        return cls(
            version=int(data.get("version", 0)),
            units={path: HistoryRecord.from_dict(path, rec) for path, rec in units_raw.items()},
            runs=[ShardRunSummary.from_dict(run) for run in data.get("runs", [])],
        )
