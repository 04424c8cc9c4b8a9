"""Scheduler orchestrating one sharded test run.

Pipeline: load history -> discover and estimate units -> partition ->
execute shards concurrently -> track accuracy and update history ->
generate the optimization report.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from shardwise.analysis.profiles import get_profile
from shardwise.analysis.static import StaticAnalyzer
from shardwise.config import ensure_valid_config
from shardwise.history.store import HistoryStore
from shardwise.reporting.report import ReportGenerator, RunWarning, WarningKind
from shardwise.sharding.discovery import GlobFileSource, build_units
from shardwise.sharding.estimator import DurationEstimator
from shardwise.sharding.executor import execute_shards
from shardwise.sharding.models import ShardPlan
from shardwise.sharding.partitioner import partition
from shardwise.sharding.runner import CommandShardRunner
from shardwise.sharding.tracker import AccuracyTracker

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shardwise.config import ShardwiseConfig
    from shardwise.history.models import HistorySnapshot
    from shardwise.history.store import HistoryPersistence
    from shardwise.reporting.report import OptimizationReport
    from shardwise.sharding.runner import ShardRunner

logger = logging.getLogger(__name__)


class ShardScheduler:
    """Plans and runs test shards from a validated configuration.

    Collaborators default to the file-backed implementations derived from
    the configuration; tests inject their own.
    """

    def __init__(
        self,
        config: ShardwiseConfig,
        *,
        runner: ShardRunner | None = None,
        history_store: HistoryPersistence | None = None,
        file_source: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self.config = config
        self.root = Path(config.root)
        self._runner = runner
        self._history_store = history_store
        self._file_source = file_source

    # ── Collaborators ──────────────────────────────────────────────────

    @property
    def history_store(self) -> HistoryPersistence:
        if self._history_store is None:
            self._history_store = HistoryStore(self.root, self.config.history.path)
        return self._history_store

    @property
    def runner(self) -> ShardRunner:
        if self._runner is None:
            execution = self.config.execution
            self._runner = CommandShardRunner(
                execution.command,
                cwd=self.root,
                log_dir=self.root / execution.log_dir if execution.log_dir else None,
            )
        return self._runner

    def _build_analyzer(self) -> StaticAnalyzer:
        sharding = self.config.sharding
        profile = get_profile(sharding.framework)
        if profile is None:
            raise ValueError(f"Unknown framework profile: {sharding.framework}")
        return StaticAnalyzer(
            profile,
            indicators=sharding.indicators,
            test_markers=sharding.test_markers or None,
        )

    # ── Stages ─────────────────────────────────────────────────────────

    def load_history(self) -> HistorySnapshot:
        """Load history, applying the configured idle-record retention."""
        history = self.history_store.load()
        stale_after = self.config.history.stale_after_runs
        if stale_after > 0:
            history = history.prune_unseen_for_runs(stale_after)
        return history

    def plan(self, history: HistorySnapshot | None = None) -> ShardPlan:
        """Discover, estimate and partition test units.

        Raises:
            InvalidConfigurationError: Before any file is read when the
                configuration is unusable.
        """
        ensure_valid_config(self.config)
        if history is None:
            history = self.load_history()

        sharding = self.config.sharding
        analyzer = self._build_analyzer()
        estimator = DurationEstimator(
            base_time_per_test=sharding.base_time_per_test,
            min_duration=sharding.min_duration,
        )

        source = self._file_source
        if source is None:
            source = GlobFileSource(self.root, sharding.file_patterns)

        skipped: dict[str, str] = {}
        units = build_units(source, analyzer, estimator, history, skipped)
        if isinstance(source, GlobFileSource):
            for error in source.errors:
                skipped[error.path] = error.reason

        shards = partition(units, sharding.shard_count)
        plan = ShardPlan(units=units, shards=shards, skipped=skipped)
        logger.info(
            "Planned %d units into %d shards, estimated makespan %.2fs",
            len(units),
            len(shards),
            plan.estimated_makespan,
        )
        return plan

    async def run(self, plan: ShardPlan | None = None) -> OptimizationReport:
        """Execute a full run and return its optimization report.

        When *plan* is given (for example one read back from a plan file)
        discovery and partitioning are skipped.

        Raises:
            InvalidConfigurationError: The configuration is unusable.  No
                shard runs and history is left untouched.
        """
        ensure_valid_config(self.config)
        history = self.load_history()
        if plan is None:
            plan = self.plan(history)

        warnings = self._planning_warnings(plan)
        execution = self.config.execution
        executions = await execute_shards(
            plan.shards,
            self.runner,
            per_shard_timeout=execution.per_shard_timeout,
            global_timeout=execution.global_timeout,
        )

        history_config = self.config.history
        tracker = AccuracyTracker(
            per_unit_cap=history_config.per_unit_cap,
            per_run_cap=history_config.per_run_cap,
            record_failures=history_config.record_failures,
            min_duration=self.config.sharding.min_duration,
        )
        tracking = tracker.update(history, plan.units, plan.shards, executions)

        saved = self.history_store.save(tracking.snapshot)
        if not saved:
            warnings.append(
                RunWarning(
                    WarningKind.HISTORY_PERSISTENCE_FAILURE,
                    "history snapshot could not be written; previous history kept",
                )
            )

        generator = ReportGenerator(self.config.report)
        return generator.generate(
            tracking,
            executions,
            tracking.snapshot,
            units=plan.units,
            warnings=warnings,
            stale_units=tracking.snapshot.stale_paths(plan.discovered_paths),
            history_updated=saved,
        )

    @staticmethod
    def _planning_warnings(plan: ShardPlan) -> list[RunWarning]:
        warnings = [
            RunWarning(WarningKind.DISCOVERY_ERROR, reason, subject=path)
            for path, reason in sorted(plan.skipped.items())
        ]
        warnings.extend(
            RunWarning(
                WarningKind.ESTIMATION_DEGRADED,
                "no history; estimated from static analysis",
                subject=path,
            )
            for path in plan.cold_start_paths
        )
        return warnings
