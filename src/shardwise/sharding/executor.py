"""Concurrent shard execution with per-shard and global deadlines.

All shards of a run execute inside one ``asyncio.TaskGroup``, so the
function returns only after every shard task has finished, timed out or
been cancelled.  Shard failures never propagate: each one becomes a
``ShardExecution`` with a non-passing status.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from shardwise.errors import ShardExecutionCrash, ShardExecutionTimeout
from shardwise.sharding.models import TIMEOUT_EXIT_CODE, ShardExecution, ShardStatus

if TYPE_CHECKING:
    from shardwise.sharding.models import ShardAssignment
    from shardwise.sharding.runner import ShardRunner

logger = logging.getLogger(__name__)


async def _run_shard(
    shard: ShardAssignment,
    runner: ShardRunner,
    timeout: float,
) -> ShardExecution:
    """Run one shard, converting every failure into a result."""
    if not shard.files:
        return ShardExecution(shard_id=shard.id, status=ShardStatus.EMPTY, duration=0.0)

    logger.info("Shard %d: running %d files", shard.id, len(shard.files))
    try:
        result = await asyncio.wait_for(
            runner.run(shard.id, list(shard.files), timeout=timeout),
            timeout=timeout,
        )
    except (TimeoutError, ShardExecutionTimeout) as exc:
        logger.warning("Shard %d timed out after %.1fs", shard.id, timeout)
        return ShardExecution(
            shard_id=shard.id,
            status=ShardStatus.TIMEOUT,
            duration=timeout,
            exit_code=TIMEOUT_EXIT_CODE,
            stdout_ref=getattr(exc, "stdout_ref", ""),
            stderr_ref=getattr(exc, "stderr_ref", ""),
            error=f"exceeded per-shard timeout of {timeout}s",
        )
    except ShardExecutionCrash as exc:
        logger.warning("Shard %d crashed: %s", shard.id, exc)
        return ShardExecution(
            shard_id=shard.id,
            status=ShardStatus.CRASHED,
            duration=0.0,
            stdout_ref=exc.stdout_ref,
            stderr_ref=exc.stderr_ref,
            error=str(exc),
        )
    except Exception as exc:
        logger.exception("Shard %d runner raised unexpectedly", shard.id)
        return ShardExecution(
            shard_id=shard.id,
            status=ShardStatus.CRASHED,
            duration=0.0,
            error=f"{type(exc).__name__}: {exc}",
        )

    status = ShardStatus.PASSED if result.exit_code == 0 else ShardStatus.FAILED
    log = logger.info if status is ShardStatus.PASSED else logger.warning
    log("Shard %d finished: exit %d in %.2fs", shard.id, result.exit_code, result.duration)

    return ShardExecution(
        shard_id=shard.id,
        status=status,
        duration=result.duration,
        exit_code=result.exit_code,
        stdout_ref=result.stdout_ref,
        stderr_ref=result.stderr_ref,
        unit_durations=dict(result.unit_durations),
        error="" if status is ShardStatus.PASSED else f"runner exited with {result.exit_code}",
    )


async def execute_shards(
    shards: list[ShardAssignment],
    runner: ShardRunner,
    *,
    per_shard_timeout: float,
    global_timeout: float | None = None,
) -> dict[int, ShardExecution]:
    """Run every shard concurrently and collect one result per shard id.

    At most ``len(shards)`` runs are in flight.  A shard exceeding
    *per_shard_timeout* is marked ``TIMEOUT`` with ``duration`` equal to the
    timeout while its siblings continue.  When *global_timeout* expires all
    outstanding shards are cancelled and marked ``ABORTED`` with the elapsed
    time; shards that already finished keep their results.
    """
    results: dict[int, ShardExecution] = {}
    started = time.perf_counter()

    async def _collect(shard: ShardAssignment) -> None:
        results[shard.id] = await _run_shard(shard, runner, per_shard_timeout)

    try:
        async with asyncio.timeout(global_timeout):
            async with asyncio.TaskGroup() as group:
                for shard in shards:
                    group.create_task(_collect(shard))
    except TimeoutError:
        elapsed = time.perf_counter() - started
        logger.warning("Global timeout of %ss reached after %.2fs", global_timeout, elapsed)
        for shard in shards:
            if shard.id not in results:
                results[shard.id] = ShardExecution(
                    shard_id=shard.id,
                    status=ShardStatus.ABORTED,
                    duration=elapsed,
                    exit_code=TIMEOUT_EXIT_CODE,
                    error=f"aborted by global timeout of {global_timeout}s",
                )

    return results
