"""Post-run accuracy tracking and history updates.

The tracker is the only writer of history.  It runs once per run, after
the executor's join barrier, and produces the next ``HistorySnapshot``
version from a copy of the current one.

Per-unit attribution: a shard's runtime is only observed as a whole.  When
the runner reports measured per-file durations they are recorded as-is.
Otherwise each unit gets its share of the measured shard time, in
proportion to its pre-run estimate.  Recording the bare estimate instead
would compound: history-based estimates are inflated by complexity, so
every run would push the recorded averages further up without ever
learning from the measured shard time.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from statistics import fmean, pstdev
from typing import TYPE_CHECKING

from shardwise.history.models import (
    DEFAULT_PER_RUN_CAP,
    DEFAULT_PER_UNIT_CAP,
    HistoryEntry,
    ShardRunSummary,
)
from shardwise.sharding.models import ShardStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from shardwise.history.models import HistorySnapshot
    from shardwise.sharding.models import ShardAssignment, ShardExecution, TestUnit

logger = logging.getLogger(__name__)

# Actual durations at or below this are treated as "nothing ran".
_NEGLIGIBLE_DURATION = 1e-3

_MIN_SHARDS_FOR_BALANCE = 2


def shard_accuracy(estimated: float, actual: float, floor: float = 0.01) -> float:
    """Relative estimation error ``|actual - estimated| / estimated``.

    Returns 0.0 when the two match, and when the estimate sits at its floor
    while the actual duration is negligible.
    """
    if estimated <= floor and actual <= _NEGLIGIBLE_DURATION:
        return 0.0
    if estimated <= 0:
        return 0.0
    return abs(actual - estimated) / estimated


def load_balance_score(durations: list[float]) -> float:
    """``1 - stdev / mean`` of shard durations; 1.0 for fewer than two shards."""
    if len(durations) < _MIN_SHARDS_FOR_BALANCE:
        return 1.0
    mean = fmean(durations)
    if mean <= 0:
        return 1.0
    return 1.0 - pstdev(durations) / mean


def estimation_accuracy(errors: list[float]) -> float:
    """Run-level accuracy in [0, 1] from per-shard relative errors."""
    if not errors:
        return 1.0
    return max(0.0, 1.0 - fmean(errors))


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class TrackingResult:
    """Everything the tracker derived from one run."""

    snapshot: HistorySnapshot
    """The next history version (not yet persisted)."""

    shards: list[ShardAssignment] = field(default_factory=list)
    """Shards with actual duration, status and accuracy filled in."""

    makespan: float = 0.0
    load_balance_score: float = 1.0
    estimation_accuracy: float = 1.0
    success_rate: float = 1.0
    units_recorded: int = 0


class AccuracyTracker:
    """Compares predictions with outcomes and updates history."""

    def __init__(
        self,
        *,
        per_unit_cap: int = DEFAULT_PER_UNIT_CAP,
        per_run_cap: int = DEFAULT_PER_RUN_CAP,
        record_failures: bool = True,
        min_duration: float = 0.01,
        clock: Callable[[], str] = _utc_now,
    ) -> None:
        self._per_unit_cap = per_unit_cap
        self._per_run_cap = per_run_cap
        self._record_failures = record_failures
        self._min_duration = min_duration
        self._clock = clock

    def update(
        self,
        history: HistorySnapshot,
        units: list[TestUnit],
        shards: list[ShardAssignment],
        executions: dict[int, ShardExecution],
    ) -> TrackingResult:
        """Fold one run's results into a new history snapshot.

        Must be called exactly once per run; calling it again with the same
        results records them twice.
        """
        now = self._clock()
        snapshot = history.copy()
        by_path = {unit.path: unit for unit in units}

        completed: list[ShardAssignment] = []
        recorded = 0
        for shard in shards:
            execution = executions.get(shard.id)
            if execution is None:
                logger.warning("No execution result for shard %d", shard.id)
                completed.append(shard)
                continue

            accuracy = (
                shard_accuracy(shard.estimated_duration, execution.duration, self._min_duration)
                if shard.files
                else None
            )
            completed.append(
                dataclasses.replace(
                    shard,
                    actual_duration=execution.duration,
                    status=execution.status,
                    accuracy=accuracy,
                )
            )
            recorded += self._record_units(snapshot, shard, execution, by_path, now)

        ran = [s for s in completed if s.files and s.status is not None]
        actual = [s.actual_duration or 0.0 for s in ran]
        errors = [s.accuracy for s in ran if s.accuracy is not None]
        succeeded = [s for s in ran if s.status is ShardStatus.PASSED]

        result = TrackingResult(
            snapshot=snapshot,
            shards=completed,
            makespan=max(actual, default=0.0),
            load_balance_score=load_balance_score(actual),
            estimation_accuracy=estimation_accuracy(errors),
            success_rate=len(succeeded) / len(ran) if ran else 1.0,
            units_recorded=recorded,
        )

        snapshot.append_run(
            ShardRunSummary(
                timestamp=now,
                shard_count=len(shards),
                total_duration=result.makespan,
                avg_accuracy=result.estimation_accuracy,
                success_rate=result.success_rate,
            ),
            self._per_run_cap,
        )
        snapshot.version += 1

        logger.info(
            "Tracked run: makespan %.2fs, balance %.2f, accuracy %.2f, %d units recorded",
            result.makespan,
            result.load_balance_score,
            result.estimation_accuracy,
            recorded,
        )
        return result

    def _record_units(
        self,
        snapshot: HistorySnapshot,
        shard: ShardAssignment,
        execution: ShardExecution,
        by_path: dict[str, TestUnit],
        now: str,
    ) -> int:
        """Append one history entry per unit of *shard*; return how many."""
        if not execution.succeeded and not self._record_failures:
            return 0

        scale = (
            execution.duration / shard.estimated_duration
            if shard.estimated_duration > 0 and execution.duration > 0
            else 1.0
        )
        recorded = 0
        for path in shard.files:
            unit = by_path.get(path)
            if unit is None:
                continue
            duration = execution.unit_durations.get(
                path, max(unit.estimated_duration * scale, self._min_duration)
            )
            snapshot.record(
                path,
                HistoryEntry(duration=duration, timestamp=now, success=execution.succeeded),
                self._per_unit_cap,
            )
            recorded += 1
        return recorded
