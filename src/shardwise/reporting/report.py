"""Optimization report generation.

Turns one run's tracking result into a structured report: an execution
summary, a per-shard breakdown, a makespan trend over recent runs and a
list of recommendations derived from fixed heuristics.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from statistics import fmean
from typing import TYPE_CHECKING, Any

from shardwise.config import ReportConfig
from shardwise.sharding.models import ShardStatus

if TYPE_CHECKING:
    from shardwise.history.models import HistorySnapshot, ShardRunSummary
    from shardwise.sharding.models import ShardExecution, TestUnit
    from shardwise.sharding.tracker import TrackingResult

logger = logging.getLogger(__name__)

_MAX_SLOW_UNITS = 3
_MIN_TREND_POINTS = 2


class TrendDirection(Enum):
    """Direction of the recent makespan trend."""

    IMPROVING = "improving"
    DEGRADING = "degrading"
    STABLE = "stable"


class WarningKind(Enum):
    """Recoverable problems surfaced in the report."""

    DISCOVERY_ERROR = "DiscoveryError"
    ESTIMATION_DEGRADED = "EstimationDegraded"
    SHARD_TIMEOUT = "ShardExecutionTimeout"
    SHARD_CRASH = "ShardExecutionCrash"
    HISTORY_PERSISTENCE_FAILURE = "HistoryPersistenceFailure"


@dataclass(frozen=True)
class RunWarning:
    """A recoverable problem encountered during the run."""

    kind: WarningKind
    message: str
    subject: str = ""
    """File path or shard the warning concerns, when there is one."""


@dataclass
class ExecutionSummary:
    """Run-level figures."""

    total_duration: float = 0.0
    """Makespan: the longest shard's actual duration, in seconds."""

    estimated_makespan: float = 0.0
    estimation_accuracy: float = 1.0
    success_rate: float = 1.0
    load_balance_score: float = 1.0
    shard_count: int = 0
    unit_count: int = 0
    failed_shards: int = 0


@dataclass
class ShardBreakdown:
    """Per-shard line of the report."""

    id: int
    file_count: int
    estimated_duration: float
    actual_duration: float | None
    status: str
    accuracy: float | None
    exit_code: int | None = None
    stdout_ref: str = ""
    stderr_ref: str = ""
    error: str = ""


@dataclass
class TrendAnalysis:
    """Makespan trend over recent runs."""

    direction: TrendDirection = TrendDirection.STABLE
    slope: float = 0.0
    """Least-squares makespan change per run, in seconds."""

    runs_considered: int = 0


@dataclass
class OptimizationReport:
    """Structured result of one scheduler run."""

    summary: ExecutionSummary
    shards: list[ShardBreakdown] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    trend: TrendAnalysis = field(default_factory=TrendAnalysis)
    warnings: list[RunWarning] = field(default_factory=list)
    stale_units: list[str] = field(default_factory=list)
    history_updated: bool = True
    history_version: int = 0
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def success(self) -> bool:
        return self.summary.failed_shards == 0

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "timestamp": self.timestamp,
            "success": self.success,
            "summary": asdict(self.summary),
            "shards": [asdict(s) for s in self.shards],
            "recommendations": list(self.recommendations),
            "trend": {
                "direction": self.trend.direction.value,
                "slope": self.trend.slope,
                "runs_considered": self.trend.runs_considered,
            },
            "warnings": [
                {"kind": w.kind.value, "message": w.message, "subject": w.subject}
                for w in self.warnings
            ],
            "stale_units": list(self.stale_units),
            "history_updated": self.history_updated,
            "history_version": self.history_version,
        }


def analyze_trend(
    runs: list[ShardRunSummary],
    *,
    window: int = 5,
    threshold: float = 0.05,
) -> TrendAnalysis:
    """Classify the makespans of the last *window* runs.

    The least-squares slope is normalised by the mean makespan; a relative
    slope below ``-threshold`` is improving, above ``threshold`` degrading.
    Fewer than two runs is reported as stable.
    """
    recent = runs[-window:] if window > 0 else []
    if len(recent) < _MIN_TREND_POINTS:
        return TrendAnalysis(runs_considered=len(recent))

    ys = [run.total_duration for run in recent]
    xs = list(range(len(ys)))
    mean_x = fmean(xs)
    mean_y = fmean(ys)
    denominator = sum((x - mean_x) ** 2 for x in xs)
    slope = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys, strict=True)) / denominator

    relative = slope / mean_y if mean_y > 0 else 0.0
    if relative < -threshold:
        direction = TrendDirection.IMPROVING
    elif relative > threshold:
        direction = TrendDirection.DEGRADING
    else:
        direction = TrendDirection.STABLE

    return TrendAnalysis(direction=direction, slope=slope, runs_considered=len(recent))


class ReportGenerator:
    """Builds an ``OptimizationReport`` from tracking results."""

    def __init__(self, config: ReportConfig | None = None) -> None:
        self._config = config or ReportConfig()

    def generate(
        self,
        tracking: TrackingResult,
        executions: dict[int, ShardExecution],
        history: HistorySnapshot,
        *,
        units: list[TestUnit] | None = None,
        warnings: list[RunWarning] | None = None,
        stale_units: list[str] | None = None,
        history_updated: bool = True,
    ) -> OptimizationReport:
        """Assemble the report for one run.

        Args:
            tracking: Output of the accuracy tracker for this run.
            executions: Executor results keyed by shard id.
            history: Snapshot whose run summaries feed trend analysis.
            units: Units of the run, used to name the slowest ones.
            warnings: Recoverable problems gathered by earlier stages.
            stale_units: History paths not discovered in this run.
            history_updated: Whether the new snapshot was persisted.
        """
        all_warnings = list(warnings or [])
        breakdown: list[ShardBreakdown] = []

        for shard in tracking.shards:
            execution = executions.get(shard.id)
            status = shard.status.value if shard.status else "not-run"
            breakdown.append(
                ShardBreakdown(
                    id=shard.id,
                    file_count=len(shard.files),
                    estimated_duration=shard.estimated_duration,
                    actual_duration=shard.actual_duration,
                    status=status,
                    accuracy=shard.accuracy,
                    exit_code=execution.exit_code if execution else None,
                    stdout_ref=execution.stdout_ref if execution else "",
                    stderr_ref=execution.stderr_ref if execution else "",
                    error=execution.error if execution else "",
                )
            )
            if shard.status in {ShardStatus.TIMEOUT, ShardStatus.ABORTED}:
                all_warnings.append(
                    RunWarning(
                        WarningKind.SHARD_TIMEOUT,
                        execution.error if execution else "timed out",
                        subject=f"shard {shard.id}",
                    )
                )
            elif shard.status is ShardStatus.CRASHED:
                all_warnings.append(
                    RunWarning(
                        WarningKind.SHARD_CRASH,
                        execution.error if execution else "crashed",
                        subject=f"shard {shard.id}",
                    )
                )

        failed = [
            s for s in tracking.shards if s.status is not None and not s.status.succeeded
        ]

        summary = ExecutionSummary(
            total_duration=tracking.makespan,
            estimated_makespan=max((s.estimated_duration for s in tracking.shards), default=0.0),
            estimation_accuracy=tracking.estimation_accuracy,
            success_rate=tracking.success_rate,
            load_balance_score=tracking.load_balance_score,
            shard_count=len(tracking.shards),
            unit_count=sum(len(s.files) for s in tracking.shards),
            failed_shards=len(failed),
        )

        trend = analyze_trend(
            history.runs,
            window=self._config.trend_window,
            threshold=self._config.trend_threshold,
        )

        report = OptimizationReport(
            summary=summary,
            shards=breakdown,
            recommendations=self._recommend(summary, failed, trend, units or []),
            trend=trend,
            warnings=all_warnings,
            stale_units=list(stale_units or []),
            history_updated=history_updated,
            history_version=history.version,
        )
        logger.info(
            "Report: %d recommendations, %d warnings, trend %s",
            len(report.recommendations),
            len(report.warnings),
            trend.direction.value,
        )
        return report

    def _recommend(
        self,
        summary: ExecutionSummary,
        failed: list[Any],
        trend: TrendAnalysis,
        units: list[TestUnit],
    ) -> list[str]:
        cfg = self._config
        recommendations: list[str] = []

        variation = 1.0 - summary.load_balance_score
        if variation > cfg.rebalance_variance_threshold:
            recommendations.append(
                f"Shard durations vary by {variation:.0%} (coefficient of variation); "
                "rebalance shards, since estimates no longer match actual run times."
            )

        if summary.estimation_accuracy < cfg.accuracy_threshold:
            recommendations.append(
                f"Estimation accuracy is {summary.estimation_accuracy:.0%}; collect more "
                "historical runs before relying on duration estimates."
            )

        if failed:
            ids = ", ".join(str(s.id) for s in failed)
            statuses = ", ".join(sorted({s.status.value for s in failed}))
            recommendations.append(
                f"Shard(s) {ids} failed ({statuses}); isolate flaky tests "
                "or raise the per-shard timeout."
            )

        if summary.total_duration > cfg.makespan_ceiling:
            slowest = sorted(units, key=lambda u: u.estimated_duration, reverse=True)
            names = ", ".join(u.path for u in slowest[:_MAX_SLOW_UNITS])
            hint = f" Slowest units: {names}." if names else ""
            recommendations.append(
                f"Makespan of {summary.total_duration:.1f}s exceeds the "
                f"{cfg.makespan_ceiling:.1f}s ceiling; increase the shard count "
                f"or optimize slow units.{hint}"
            )

        if trend.direction is TrendDirection.DEGRADING:
            recommendations.append(
                f"Makespan has grown by {trend.slope:.1f}s per run over the last "
                f"{trend.runs_considered} runs; review recently added slow tests."
            )

        return recommendations
