"""Test-runner collaborators that execute one shard's files."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from shardwise.errors import ShardExecutionCrash, ShardExecutionTimeout
from shardwise.sharding.models import RunnerResult
from shardwise.utils.subprocess_runner import SubprocessError, run_subprocess

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class ShardRunner(Protocol):
    """Runs the test files of one shard.

    Implementations report a non-zero ``exit_code`` for failing tests, raise
    ``ShardExecutionTimeout`` when they stop a run for taking too long, and
    raise ``ShardExecutionCrash`` when the run cannot happen at all.
    """

    async def run(self, shard_id: int, files: list[str], *, timeout: float) -> RunnerResult: ...


class CommandShardRunner:
    """Runs a shard as ``command + files`` in a subprocess.

    Output is written to ``shard-<id>.stdout.log`` / ``shard-<id>.stderr.log``
    under *log_dir*; the log paths are returned as output references.
    """

    def __init__(self, command: list[str], cwd: Path, log_dir: Path | None = None) -> None:
        if not command:
            raise ValueError("Runner command cannot be empty")
        self._command = list(command)
        self._cwd = cwd
        self._log_dir = log_dir

    async def run(self, shard_id: int, files: list[str], *, timeout: float) -> RunnerResult:
        cmd = [*self._command, *files]
        try:
            result = await run_subprocess(cmd, cwd=self._cwd, timeout=timeout)
        except SubprocessError as exc:
            stdout_ref, stderr_ref = self._write_logs(shard_id, "", exc.result.stderr)
            raise ShardExecutionCrash(
                str(exc), stdout_ref=stdout_ref, stderr_ref=stderr_ref
            ) from exc

        stdout_ref, stderr_ref = self._write_logs(shard_id, result.stdout, result.stderr)

        if result.timed_out:
            raise ShardExecutionTimeout(
                f"shard {shard_id} exceeded {timeout}s",
                stdout_ref=stdout_ref,
                stderr_ref=stderr_ref,
            )

        return RunnerResult(
            exit_code=result.returncode,
            duration=result.duration,
            stdout_ref=stdout_ref,
            stderr_ref=stderr_ref,
        )

    def _write_logs(self, shard_id: int, stdout: str, stderr: str) -> tuple[str, str]:
        """Persist output, returning the log paths (empty when not logging)."""
        if self._log_dir is None:
            return "", ""

        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            stdout_path = self._log_dir / f"shard-{shard_id}.stdout.log"
            stderr_path = self._log_dir / f"shard-{shard_id}.stderr.log"
            stdout_path.write_text(stdout, encoding="utf-8")
            stderr_path.write_text(stderr, encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not write logs for shard %d: %s", shard_id, exc)
            return "", ""
        return str(stdout_path), str(stderr_path)
