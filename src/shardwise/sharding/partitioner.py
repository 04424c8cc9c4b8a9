"""Load-balanced shard partitioning.

Uses Longest Processing Time (LPT) greedy bin-packing: units are sorted by
estimated duration (longest first) and each one goes to the shard with the
smallest accumulated load.  The resulting makespan is within 4/3 of the
optimum, and the output depends only on the input order and estimates.
"""

from __future__ import annotations

import heapq
import logging
from typing import TYPE_CHECKING

from shardwise.errors import InvalidConfigurationError
from shardwise.sharding.models import ShardAssignment

if TYPE_CHECKING:
    from shardwise.sharding.models import TestUnit

logger = logging.getLogger(__name__)


def partition(units: list[TestUnit], shard_count: int) -> list[ShardAssignment]:
    """Group *units* into *shard_count* shards minimizing the makespan.

    Ties in duration keep discovery order.  Ties in shard load go to the
    shard holding fewer units, then to the lowest shard id, so zero-duration
    units spread round-robin.  Shards may be empty when there are fewer
    units than shards.

    Args:
        units: Test units in discovery order.
        shard_count: Number of shards (K >= 1).

    Returns:
        Shards with ids ``1..shard_count``, in id order.

    Raises:
        InvalidConfigurationError: If *shard_count* is below 1.
    """
    if shard_count < 1:
        raise InvalidConfigurationError([f"shard_count must be >= 1, got {shard_count}"])

    ordered = sorted(
        enumerate(units),
        key=lambda pair: (-pair[1].estimated_duration, pair[0]),
    )

    files: list[list[str]] = [[] for _ in range(shard_count)]
    loads: list[float] = [0.0] * shard_count
    # (load, unit count, index)
    heap: list[tuple[float, int, int]] = [(0.0, 0, index) for index in range(shard_count)]

    for _, unit in ordered:
        load, count, index = heapq.heappop(heap)
        files[index].append(unit.path)
        loads[index] = load + unit.estimated_duration
        heapq.heappush(heap, (loads[index], count + 1, index))

    shards = [
        ShardAssignment(id=index + 1, files=tuple(files[index]), estimated_duration=loads[index])
        for index in range(shard_count)
    ]

    logger.info(
        "Partitioned %d units into %d shards (estimated makespan %.2fs)",
        len(units),
        shard_count,
        max(loads),
    )
    return shards


def select_shard(shards: list[ShardAssignment], shard_id: int) -> ShardAssignment:
    """Return the shard with the given 1-based id.

    Raises:
        ValueError: If no shard has that id.
    """
    for shard in shards:
        if shard.id == shard_id:
            return shard
    msg = f"shard_id must be in [1, {len(shards)}], got {shard_id}"
    raise ValueError(msg)
