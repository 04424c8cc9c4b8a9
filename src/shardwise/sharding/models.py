"""Data models shared by the sharding pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ShardStatus(Enum):
    """Outcome of a single shard run."""

    PASSED = "passed"
    FAILED = "failed"
    """Runner exited non-zero (tests failed)."""

    TIMEOUT = "timeout"
    """Per-shard timeout expired."""

    CRASHED = "crashed"
    """Runner could not start or raised unexpectedly."""

    ABORTED = "aborted"
    """Cancelled by the global run timeout."""

    EMPTY = "empty"
    """Shard had no files; nothing was run."""

    @property
    def succeeded(self) -> bool:
        return self in {ShardStatus.PASSED, ShardStatus.EMPTY}


TIMEOUT_EXIT_CODE = -1
"""Exit code reported for shards stopped by a timeout or abort."""


@dataclass(frozen=True)
class TestUnit:
    """One discoverable test file."""

    __test__ = False  # not a pytest test class

    path: str
    """Stable identifier, relative to the project root."""

    estimated_duration: float
    """Predicted run time in seconds (always positive)."""

    test_count: int = 0
    complexity_score: float = 0.0
    dependencies: frozenset[str] = frozenset()
    historical_failure_rate: float = 0.0

    from_history: bool = False
    """True when the estimate is based on recorded durations."""


@dataclass(frozen=True)
class ShardAssignment:
    """A partition of test units that run together.

    The post-execution fields stay ``None`` until the tracker fills them in.
    """

    id: int
    """1-based shard id."""

    files: tuple[str, ...] = ()
    estimated_duration: float = 0.0

    actual_duration: float | None = None
    status: ShardStatus | None = None
    accuracy: float | None = None
    """Relative estimation error ``|actual - estimated| / estimated``."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "files": list(self.files),
            "estimated_duration": self.estimated_duration,
            "actual_duration": self.actual_duration,
            "status": self.status.value if self.status else None,
            "accuracy": self.accuracy,
        }


@dataclass(frozen=True)
class RunnerResult:
    """What the test-runner collaborator reports for one shard."""

    exit_code: int
    duration: float
    """Elapsed seconds."""

    stdout_ref: str = ""
    stderr_ref: str = ""

    unit_durations: dict[str, float] = field(default_factory=dict)
    """Measured per-file durations, when the runner can observe them."""


@dataclass(frozen=True)
class ShardExecution:
    """Outcome of running one shard."""

    shard_id: int
    status: ShardStatus
    duration: float
    """Seconds; the timeout value for timed-out shards."""

    exit_code: int | None = None
    stdout_ref: str = ""
    stderr_ref: str = ""
    unit_durations: dict[str, float] = field(default_factory=dict)
    error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status.succeeded


@dataclass
class ShardPlan:
    """Everything decided before execution starts."""

    units: list[TestUnit] = field(default_factory=list)
    shards: list[ShardAssignment] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    """Paths that could not be analyzed, mapped to the reason."""

    @property
    def estimated_makespan(self) -> float:
        return max((s.estimated_duration for s in self.shards), default=0.0)

    @property
    def discovered_paths(self) -> list[str]:
        """Every path found on disk, including the ones skipped."""
        paths = [u.path for u in self.units]
        seen = set(paths)
        return paths + [p for p in self.skipped if p not in seen]

    @property
    def cold_start_paths(self) -> list[str]:
        return [u.path for u in self.units if not u.from_history]
