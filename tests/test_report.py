"""Tests for shardwise.reporting.report."""

from __future__ import annotations

import json

import pytest

from shardwise.config import ReportConfig
from shardwise.history.models import HistorySnapshot, ShardRunSummary
from shardwise.reporting.report import (
    OptimizationReport,
    ReportGenerator,
    RunWarning,
    TrendDirection,
    WarningKind,
    analyze_trend,
)
from shardwise.sharding.models import (
    ShardAssignment,
    ShardExecution,
    ShardStatus,
    TestUnit,
)
from shardwise.sharding.tracker import TrackingResult


def _runs(*makespans: float) -> list[ShardRunSummary]:
    return [
        ShardRunSummary(
            timestamp=f"2026-03-01T00:00:{i:02d}+00:00",
            shard_count=2,
            total_duration=m,
            avg_accuracy=0.9,
            success_rate=1.0,
        )
        for i, m in enumerate(makespans)
    ]


def _tracking(
    *shards: tuple[float, float, ShardStatus],
    balance: float = 1.0,
    accuracy: float = 1.0,
    runs: list[ShardRunSummary] | None = None,
) -> TrackingResult:
    assignments = [
        ShardAssignment(
            id=i,
            files=(f"test_{i}.py",),
            estimated_duration=est,
            actual_duration=act,
            status=status,
            accuracy=abs(act - est) / est,
        )
        for i, (est, act, status) in enumerate(shards, start=1)
    ]
    ran = [s for s in assignments if s.status is not None]
    return TrackingResult(
        snapshot=HistorySnapshot(version=1, runs=runs or []),
        shards=assignments,
        makespan=max((s.actual_duration or 0.0 for s in ran), default=0.0),
        load_balance_score=balance,
        estimation_accuracy=accuracy,
        success_rate=sum(1 for s in ran if s.status is ShardStatus.PASSED) / len(ran),
    )


def _executions(tracking: TrackingResult) -> dict[int, ShardExecution]:
    return {
        s.id: ShardExecution(
            s.id,
            s.status or ShardStatus.PASSED,
            s.actual_duration or 0.0,
            exit_code=0 if s.status is ShardStatus.PASSED else 1,
            stdout_ref=f"shard-{s.id}.stdout.log",
            error="" if s.status is ShardStatus.PASSED else "broke",
        )
        for s in tracking.shards
    }


def _generate(
    tracking: TrackingResult,
    *,
    config: ReportConfig | None = None,
    units: list[TestUnit] | None = None,
    warnings: list[RunWarning] | None = None,
    stale_units: list[str] | None = None,
    history_updated: bool = True,
) -> OptimizationReport:
    return ReportGenerator(config).generate(
        tracking,
        _executions(tracking),
        tracking.snapshot,
        units=units,
        warnings=warnings,
        stale_units=stale_units,
        history_updated=history_updated,
    )


class TestAnalyzeTrend:
    def test_too_few_runs_is_stable(self) -> None:
        trend = analyze_trend(_runs(10.0))
        assert trend.direction is TrendDirection.STABLE
        assert trend.runs_considered == 1

    def test_improving(self) -> None:
        trend = analyze_trend(_runs(20.0, 18.0, 16.0, 14.0))
        assert trend.direction is TrendDirection.IMPROVING
        assert trend.slope == pytest.approx(-2.0)

    def test_degrading(self) -> None:
        assert analyze_trend(_runs(10.0, 12.0, 14.0)).direction is TrendDirection.DEGRADING

    def test_flat_is_stable(self) -> None:
        trend = analyze_trend(_runs(10.0, 10.2, 9.9, 10.1))
        assert trend.direction is TrendDirection.STABLE

    def test_window_limits_runs(self) -> None:
        # Old runs trend down, the last three are flat.
        trend = analyze_trend(_runs(50.0, 40.0, 30.0, 10.0, 10.0, 10.0), window=3)
        assert trend.runs_considered == 3
        assert trend.direction is TrendDirection.STABLE


class TestReportGenerator:
    def test_summary_and_breakdown(self) -> None:
        tracking = _tracking(
            (10.0, 10.0, ShardStatus.PASSED), (10.0, 9.0, ShardStatus.PASSED), balance=0.95
        )

        report = _generate(tracking)

        assert report.success
        assert report.summary.total_duration == 10.0
        assert report.summary.estimated_makespan == 10.0
        assert report.summary.shard_count == 2
        assert report.summary.unit_count == 2
        assert report.summary.load_balance_score == 0.95
        assert report.shards[1].status == "passed"
        assert report.shards[1].stdout_ref == "shard-2.stdout.log"
        assert report.recommendations == []
        assert report.history_version == 1

    def test_rebalance_recommended_on_high_variation(self) -> None:
        tracking = _tracking(
            (10.0, 15.0, ShardStatus.PASSED), (10.0, 5.0, ShardStatus.PASSED), balance=0.5
        )
        report = _generate(tracking, config=ReportConfig(accuracy_threshold=0.0))

        assert len(report.recommendations) == 1
        assert "rebalance" in report.recommendations[0]
        assert "50%" in report.recommendations[0]

    def test_low_accuracy_recommends_more_history(self) -> None:
        tracking = _tracking((10.0, 10.0, ShardStatus.PASSED), accuracy=0.4)
        report = _generate(tracking)

        assert any("collect more historical runs" in r for r in report.recommendations)

    def test_accuracy_at_threshold_not_flagged(self) -> None:
        tracking = _tracking((10.0, 10.0, ShardStatus.PASSED), accuracy=0.7)
        assert _generate(tracking).recommendations == []

    def test_failed_shards_reported(self) -> None:
        tracking = _tracking(
            (10.0, 10.0, ShardStatus.PASSED),
            (10.0, 10.0, ShardStatus.TIMEOUT),
            (10.0, 1.0, ShardStatus.CRASHED),
        )
        report = _generate(tracking)

        assert not report.success
        assert report.summary.failed_shards == 2
        failure = next(r for r in report.recommendations if "failed" in r)
        assert "2, 3" in failure
        assert "crashed, timeout" in failure
        kinds = [w.kind for w in report.warnings]
        assert kinds == [WarningKind.SHARD_TIMEOUT, WarningKind.SHARD_CRASH]
        assert report.warnings[0].subject == "shard 2"

    def test_makespan_ceiling_names_slowest_units(self) -> None:
        tracking = _tracking((500.0, 700.0, ShardStatus.PASSED))
        units = [
            TestUnit(path="fast.py", estimated_duration=1.0),
            TestUnit(path="slow.py", estimated_duration=400.0),
            TestUnit(path="mid.py", estimated_duration=99.0),
        ]
        report = _generate(
            tracking,
            units=units,
            config=ReportConfig(makespan_ceiling=600.0, accuracy_threshold=0.0),
        )

        ceiling = next(r for r in report.recommendations if "ceiling" in r)
        assert "slow.py, mid.py, fast.py" in ceiling

    def test_degrading_trend_recommendation(self) -> None:
        tracking = _tracking(
            (10.0, 10.0, ShardStatus.PASSED), runs=_runs(10.0, 12.0, 14.0, 16.0)
        )
        report = _generate(tracking)

        assert report.trend.direction is TrendDirection.DEGRADING
        assert any("grown" in r for r in report.recommendations)

    def test_warnings_and_stale_units_carried(self) -> None:
        tracking = _tracking((10.0, 10.0, ShardStatus.PASSED))
        warning = RunWarning(WarningKind.DISCOVERY_ERROR, "syntax error", subject="bad.py")
        report = _generate(
            tracking, warnings=[warning], stale_units=["gone.py"], history_updated=False
        )

        assert report.warnings == [warning]
        assert report.stale_units == ["gone.py"]
        assert report.history_updated is False

    def test_to_dict_is_json_serializable(self) -> None:
        tracking = _tracking((10.0, 12.0, ShardStatus.FAILED))
        warning = RunWarning(WarningKind.ESTIMATION_DEGRADED, "no history", subject="a.py")
        data = _generate(tracking, warnings=[warning]).to_dict()

        decoded = json.loads(json.dumps(data))
        assert decoded["success"] is False
        assert decoded["trend"]["direction"] == "stable"
        assert decoded["warnings"][0]["kind"] == "EstimationDegraded"
        assert decoded["shards"][0]["status"] == "failed"
        assert decoded["summary"]["failed_shards"] == 1
