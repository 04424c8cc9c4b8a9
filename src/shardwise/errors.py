"""Exception hierarchy for shardwise.

Only ``InvalidConfigurationError`` escapes to callers of the scheduler.
Every other error is raised and caught inside a stage, then surfaced as a
``RunWarning`` entry in the final report.
"""

from __future__ import annotations


class ShardwiseError(Exception):
    """Base exception for all shardwise errors."""


class InvalidConfigurationError(ShardwiseError):
    """Configuration is unusable; raised before any work starts."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


class DiscoveryError(ShardwiseError):
    """A candidate test file could not be read or analyzed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class ShardExecutionError(ShardwiseError):
    """A shard run did not complete successfully."""

    def __init__(self, message: str, *, stdout_ref: str = "", stderr_ref: str = "") -> None:
        super().__init__(message)
        self.stdout_ref = stdout_ref
        self.stderr_ref = stderr_ref


class ShardExecutionTimeout(ShardExecutionError):
    """The runner gave up on a shard because it exceeded its timeout."""


class ShardExecutionCrash(ShardExecutionError):
    """The runner could not be started or died unexpectedly."""


class HistoryPersistenceError(ShardwiseError):
    """The history snapshot could not be written."""
