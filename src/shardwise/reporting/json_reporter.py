"""JSON reporter for optimization reports and shard plans.

Produces machine-readable output for CI steps that consume the scheduler's
results.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from shardwise.sharding.plan_io import serialize_plan

if TYPE_CHECKING:
    from pathlib import Path

    from shardwise.reporting.report import OptimizationReport
    from shardwise.sharding.models import ShardPlan

logger = logging.getLogger(__name__)


class JSONReporter:
    """Serialize reports and plans as JSON documents."""

    def generate(self, output_path: Path, report: OptimizationReport) -> Path:
        """Write *report* to *output_path* and return the path."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.generate_string(report), encoding="utf-8")
        logger.info("JSON report written to %s", output_path)
        return output_path

    def generate_string(self, report: OptimizationReport) -> str:
        """Return *report* as a JSON string."""
        return _dumps(report.to_dict())

    def plan_string(self, plan: ShardPlan) -> str:
        """Return *plan* as a JSON string."""
        return _dumps(serialize_plan(plan))


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)
