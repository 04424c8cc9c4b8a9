"""Shard plan serialization for handing assignments to other jobs."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from shardwise.sharding.models import ShardAssignment, ShardPlan, TestUnit

if TYPE_CHECKING:
    from pathlib import Path

PLAN_FORMAT_VERSION = 1


def write_shard_plan(plan: ShardPlan, output_path: Path) -> None:
    """Serialize and write a shard plan to a JSON file."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(serialize_plan(plan), indent=2), encoding="utf-8")


def read_shard_plan(path: Path) -> ShardPlan:
    """Read a shard plan JSON file written by ``write_shard_plan``.

    Raises:
        ValueError: If the file is not a shard plan this version understands.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict) or data.get("format_version") != PLAN_FORMAT_VERSION:
        msg = f"{path} is not a version {PLAN_FORMAT_VERSION} shard plan"
        raise ValueError(msg)

    units = [
        TestUnit(
            path=u["path"],
            estimated_duration=u["estimated_duration"],
            test_count=u.get("test_count", 0),
            complexity_score=u.get("complexity_score", 0.0),
            dependencies=frozenset(u.get("dependencies", [])),
            historical_failure_rate=u.get("historical_failure_rate", 0.0),
            from_history=u.get("from_history", False),
        )
        for u in data.get("units", [])
    ]

    shards = [
        ShardAssignment(
            id=s["id"],
            files=tuple(s["files"]),
            estimated_duration=s["estimated_duration"],
        )
        for s in data.get("shards", [])
    ]

    return ShardPlan(units=units, shards=shards, skipped=dict(data.get("skipped", {})))


def serialize_plan(plan: ShardPlan) -> dict[str, Any]:
    """Convert a ShardPlan to a JSON-serializable dict."""
    return {
        "format_version": PLAN_FORMAT_VERSION,
        "shard_count": len(plan.shards),
        "estimated_makespan": plan.estimated_makespan,
        "shards": [
            {
                "id": s.id,
                "files": list(s.files),
                "estimated_duration": s.estimated_duration,
            }
            for s in plan.shards
        ],
        "units": [
            {
                "path": u.path,
                "estimated_duration": u.estimated_duration,
                "test_count": u.test_count,
                "complexity_score": u.complexity_score,
                "dependencies": sorted(u.dependencies),
                "historical_failure_rate": u.historical_failure_rate,
                "from_history": u.from_history,
            }
            for u in plan.units
        ],
        "skipped": dict(plan.skipped),
    }
