"""Adaptive test sharding: discovery, estimation, partitioning, execution."""

from shardwise.sharding.discovery import GlobFileSource, build_units, discover_test_files
from shardwise.sharding.estimator import DurationEstimator
from shardwise.sharding.executor import execute_shards
from shardwise.sharding.models import (
    RunnerResult,
    ShardAssignment,
    ShardExecution,
    ShardPlan,
    ShardStatus,
    TestUnit,
)
from shardwise.sharding.partitioner import partition, select_shard
from shardwise.sharding.plan_io import read_shard_plan, serialize_plan, write_shard_plan
from shardwise.sharding.runner import CommandShardRunner, ShardRunner
from shardwise.sharding.tracker import AccuracyTracker, TrackingResult

__all__ = [
    "AccuracyTracker",
    "CommandShardRunner",
    "DurationEstimator",
    "GlobFileSource",
    "RunnerResult",
    "ShardAssignment",
    "ShardExecution",
    "ShardPlan",
    "ShardRunner",
    "ShardStatus",
    "TestUnit",
    "TrackingResult",
    "build_units",
    "discover_test_files",
    "execute_shards",
    "partition",
    "read_shard_plan",
    "select_shard",
    "serialize_plan",
    "write_shard_plan",
]
