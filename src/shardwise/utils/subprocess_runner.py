"""Async subprocess execution with timeout, cancellation and output capture."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


@dataclass
class SubprocessResult:
    """Result of subprocess execution."""

    returncode: int
    """Exit code of the process (-1 when killed on timeout)."""

    stdout: str
    """Standard output captured from the process."""

    stderr: str
    """Standard error captured from the process."""

    timed_out: bool = False
    """True if the process was killed because it exceeded its timeout."""

    duration: float = 0.0
    """Wall-clock duration in seconds."""

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class SubprocessError(Exception):
    """Raised when a subprocess cannot be started."""

    def __init__(self, message: str, result: SubprocessResult) -> None:
        super().__init__(message)
        self.result = result


async def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()


async def run_subprocess(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    timeout: float = 120.0,
    env: dict[str, str] | None = None,
) -> SubprocessResult:
    """Execute *command* and capture its output.

    The process is killed when *timeout* expires (the result has
    ``timed_out`` set) and also when the awaiting task is cancelled, in
    which case the cancellation propagates after the kill.

    Args:
        command: Command and arguments.
        cwd: Working directory. Defaults to the current directory.
        timeout: Maximum seconds to wait for completion.
        env: Extra environment variables merged over ``os.environ``.

    Returns:
        SubprocessResult with exit code, output and duration.

    Raises:
        SubprocessError: If the executable cannot be found or started.
        ValueError: If command is empty, timeout is invalid or cwd is missing.
    """
    if not command:
        raise ValueError("Command cannot be empty")

    if timeout <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout}")

    work_dir = cwd.resolve() if cwd else Path.cwd()
    if not work_dir.exists():
        raise ValueError(f"Working directory does not exist: {work_dir}")

    full_env = {**os.environ, **env} if env else None

    logger.debug(
        "Running subprocess: %s (cwd=%s, timeout=%s)",
        " ".join(str(c) for c in command),
        work_dir,
        timeout,
    )

    start_time = time.perf_counter()
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=work_dir,
            env=full_env,
        )
    except (FileNotFoundError, PermissionError) as exc:
        logger.error("Cannot start %s: %s", command[0], exc)
        raise SubprocessError(
            f"Cannot start {command[0]}: {exc}",
            result=SubprocessResult(returncode=-1, stdout="", stderr=str(exc)),
        ) from exc

    timed_out = False
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        logger.warning("Subprocess timed out after %s seconds", timeout)
        timed_out = True
        await _kill(process)
        stdout_bytes, stderr_bytes = b"", b"Process timed out and was killed"
    except asyncio.CancelledError:
        logger.debug("Subprocess cancelled, killing pid %s", process.pid)
        await _kill(process)
        raise

    duration = time.perf_counter() - start_time
    returncode = -1 if timed_out else (process.returncode or 0)

    result = SubprocessResult(
        returncode=returncode,
        stdout=stdout_bytes.decode("utf-8", errors="replace"),
        stderr=stderr_bytes.decode("utf-8", errors="replace"),
        timed_out=timed_out,
        duration=duration,
    )

    logger.debug(
        "Subprocess completed: returncode=%d, duration=%.2fs, success=%s",
        returncode,
        duration,
        result.success,
    )
    return result
