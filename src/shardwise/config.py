"""Configuration parsing from ``.shardwise.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from shardwise.analysis.profiles import Indicator, get_profile
from shardwise.errors import InvalidConfigurationError
from shardwise.history.models import DEFAULT_PER_RUN_CAP, DEFAULT_PER_UNIT_CAP
from shardwise.history.store import DEFAULT_HISTORY_PATH

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".shardwise.yml"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

_DEFAULT_PATTERNS = ["tests/**/test_*.py", "tests/**/*_test.py"]
_DEFAULT_COMMAND = ["pytest", "-q"]


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    return value if isinstance(value, dict) else {}


@dataclass
class ShardingConfig:
    """Discovery, analysis and partitioning settings."""

    shard_count: int = 4
    """Number of shards to partition tests into."""

    file_patterns: list[str] = field(default_factory=lambda: list(_DEFAULT_PATTERNS))
    """Glob patterns (relative to the project root) selecting test files."""

    framework: str = "pytest"
    """Built-in framework profile supplying markers and indicators."""

    indicators: dict[str, Indicator] = field(default_factory=dict)
    """Indicator categories added to or overriding the profile's."""

    test_markers: list[str] = field(default_factory=list)
    """Test-declaration patterns replacing the profile's (empty = profile default)."""

    base_time_per_test: float = 0.5
    """Seconds per test used for units without history."""

    min_duration: float = 0.01
    """Floor applied to every estimate, in seconds."""


@dataclass
class ExecutionConfig:
    """Shard execution settings."""

    per_shard_timeout: float = 300.0
    """Seconds a single shard may run before it is marked timed out."""

    global_timeout: float | None = None
    """Seconds the whole run may take (``None`` = unbounded)."""

    command: list[str] = field(default_factory=lambda: list(_DEFAULT_COMMAND))
    """Runner command; the shard's files are appended as arguments."""

    log_dir: str = ".shardwise/logs"
    """Directory for per-shard stdout/stderr logs."""


@dataclass
class HistoryConfig:
    """History store settings."""

    path: str = DEFAULT_HISTORY_PATH
    """History file relative to the project root."""

    per_unit_cap: int = DEFAULT_PER_UNIT_CAP
    """Entries kept per test unit."""

    per_run_cap: int = DEFAULT_PER_RUN_CAP
    """Run summaries kept."""

    record_failures: bool = True
    """Record units of failed shards as unsuccessful observations."""

    stale_after_runs: int = 0
    """Prune records unseen for this many runs (0 = never prune)."""


@dataclass
class ReportConfig:
    """Thresholds driving report recommendations."""

    rebalance_variance_threshold: float = 0.2
    """Coefficient of variation of shard durations above which rebalancing is advised."""

    accuracy_threshold: float = 0.7
    """Estimation accuracy (0.0-1.0) below which estimates are flagged as unreliable."""

    makespan_ceiling: float = 600.0
    """Makespan in seconds above which more shards are advised."""

    trend_window: int = 5
    """Number of recent runs considered for trend analysis."""

    trend_threshold: float = 0.05
    """Relative makespan slope per run that counts as a trend."""


@dataclass
class ShardwiseConfig:
    """Complete shardwise configuration from ``.shardwise.yml``."""

    root: str
    """Project root directory."""

    sharding: ShardingConfig = field(default_factory=ShardingConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    report: ReportConfig = field(default_factory=ReportConfig)

    parse_errors: list[str] = field(default_factory=list)
    """Problems found while parsing, reported by ``validate_config``."""

    raw: dict[str, Any] = field(default_factory=dict)
    """Raw parsed YAML for extension/debugging."""


def _parse_indicators(raw: Any, errors: list[str]) -> dict[str, Indicator]:
    """Parse ``{name: {pattern, weight}}`` indicator overrides."""
    if not isinstance(raw, dict):
        if raw:
            errors.append("sharding.indicators must be a mapping")
        return {}

    indicators: dict[str, Indicator] = {}
    for name, entry in raw.items():
        if not isinstance(entry, dict) or "pattern" not in entry:
            errors.append(f"sharding.indicators.{name} needs a 'pattern' (and optional 'weight')")
            continue
        try:
            weight = float(entry.get("weight", 1.0))
        except (TypeError, ValueError):
            errors.append(f"sharding.indicators.{name}.weight must be a number")
            continue
        indicators[str(name)] = Indicator(pattern=str(entry["pattern"]), weight=weight)
    return indicators


def _parse_optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _parse_sharding_config(raw: dict[str, Any], errors: list[str]) -> ShardingConfig:
    """Parse the ``sharding`` section."""
    sharding_raw = _section(raw, "sharding")

    patterns_raw = sharding_raw.get("file_patterns", _DEFAULT_PATTERNS)
    patterns = [str(p) for p in patterns_raw] if isinstance(patterns_raw, list) else []

    markers_raw = sharding_raw.get("test_markers", [])
    markers = [str(m) for m in markers_raw] if isinstance(markers_raw, list) else []

    return ShardingConfig(
        shard_count=int(
            sharding_raw.get("shard_count", os.environ.get("SHARDWISE_SHARD_COUNT", 4))
        ),
        file_patterns=patterns,
        framework=str(sharding_raw.get("framework", "pytest")),
        indicators=_parse_indicators(sharding_raw.get("indicators", {}), errors),
        test_markers=markers,
        base_time_per_test=float(sharding_raw.get("base_time_per_test", 0.5)),
        min_duration=float(sharding_raw.get("min_duration", 0.01)),
    )


def _parse_execution_config(raw: dict[str, Any]) -> ExecutionConfig:
    """Parse the ``execution`` section."""
    exec_raw = _section(raw, "execution")

    command_raw = exec_raw.get("command", _DEFAULT_COMMAND)
    if isinstance(command_raw, str):
        command = command_raw.split()
    elif isinstance(command_raw, list):
        command = [str(part) for part in command_raw]
    else:
        command = []

    return ExecutionConfig(
        per_shard_timeout=float(
            exec_raw.get(
                "per_shard_timeout", os.environ.get("SHARDWISE_PER_SHARD_TIMEOUT", 300.0)
            )
        ),
        global_timeout=_parse_optional_float(
            exec_raw.get("global_timeout", os.environ.get("SHARDWISE_GLOBAL_TIMEOUT"))
        ),
        command=command,
        log_dir=str(exec_raw.get("log_dir", ".shardwise/logs")),
    )


def _parse_history_config(raw: dict[str, Any]) -> HistoryConfig:
    """Parse the ``history`` section."""
    history_raw = _section(raw, "history")

    return HistoryConfig(
        path=str(history_raw.get("path", DEFAULT_HISTORY_PATH)),
        per_unit_cap=int(history_raw.get("per_unit_cap", DEFAULT_PER_UNIT_CAP)),
        per_run_cap=int(history_raw.get("per_run_cap", DEFAULT_PER_RUN_CAP)),
        record_failures=bool(history_raw.get("record_failures", True)),
        stale_after_runs=int(history_raw.get("stale_after_runs", 0)),
    )


def _parse_report_config(raw: dict[str, Any]) -> ReportConfig:
    """Parse the ``report`` section."""
    report_raw = _section(raw, "report")

    return ReportConfig(
        rebalance_variance_threshold=float(report_raw.get("rebalance_variance_threshold", 0.2)),
        accuracy_threshold=float(report_raw.get("accuracy_threshold", 0.7)),
        makespan_ceiling=float(report_raw.get("makespan_ceiling", 600.0)),
        trend_window=int(report_raw.get("trend_window", 5)),
        trend_threshold=float(report_raw.get("trend_threshold", 0.05)),
    )


def load_config(root: str | Path) -> ShardwiseConfig:
    """Load and parse the complete ``.shardwise.yml`` configuration.

    Falls back to defaults and ``SHARDWISE_*`` environment variables when
    the YAML file is missing or incomplete.  Values that cannot be
    converted raise ``InvalidConfigurationError``.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_file.is_file():
        try:
            parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise InvalidConfigurationError([f"{CONFIG_FILENAME} is not valid YAML: {exc}"]) from exc
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)

    errors: list[str] = []
    try:
        sharding = _parse_sharding_config(raw, errors)
        execution = _parse_execution_config(raw)
        history = _parse_history_config(raw)
        report = _parse_report_config(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidConfigurationError([f"malformed value in {CONFIG_FILENAME}: {exc}"]) from exc

    return ShardwiseConfig(
        root=str(root_path),
        sharding=sharding,
        execution=execution,
        history=history,
        report=report,
        parse_errors=errors,
        raw=raw,
    )


def _validate_sharding_config(sharding: ShardingConfig) -> list[str]:
    """Validate discovery, analysis and partitioning settings."""
    errors: list[str] = []

    if sharding.shard_count < 1:
        errors.append(f"sharding.shard_count must be >= 1 (got: {sharding.shard_count})")

    if not sharding.file_patterns:
        errors.append("sharding.file_patterns must contain at least one glob pattern")

    if get_profile(sharding.framework) is None:
        errors.append(f"sharding.framework not recognized: {sharding.framework}")

    for name, indicator in sharding.indicators.items():
        if indicator.weight < 0:
            errors.append(
                f"sharding.indicators.{name}.weight must be non-negative (got: {indicator.weight})"
            )
        try:
            re.compile(indicator.pattern)
        except re.error as exc:
            errors.append(f"sharding.indicators.{name}.pattern does not compile: {exc}")

    for marker in sharding.test_markers:
        try:
            re.compile(marker)
        except re.error as exc:
            errors.append(f"sharding.test_markers entry {marker!r} does not compile: {exc}")

    if sharding.base_time_per_test <= 0:
        errors.append(
            f"sharding.base_time_per_test must be positive (got: {sharding.base_time_per_test})"
        )

    if sharding.min_duration <= 0:
        errors.append(f"sharding.min_duration must be positive (got: {sharding.min_duration})")

    return errors


def _validate_execution_config(execution: ExecutionConfig) -> list[str]:
    """Validate shard execution settings."""
    errors: list[str] = []

    if execution.per_shard_timeout <= 0:
        errors.append(
            f"execution.per_shard_timeout must be positive (got: {execution.per_shard_timeout})"
        )

    if execution.global_timeout is not None and execution.global_timeout <= 0:
        errors.append(
            f"execution.global_timeout must be positive or null (got: {execution.global_timeout})"
        )

    if not execution.command:
        errors.append("execution.command must not be empty")

    return errors


def _validate_history_config(history: HistoryConfig) -> list[str]:
    """Validate history store settings."""
    errors: list[str] = []

    if history.per_unit_cap < 1:
        errors.append(f"history.per_unit_cap must be >= 1 (got: {history.per_unit_cap})")

    if history.per_run_cap < 1:
        errors.append(f"history.per_run_cap must be >= 1 (got: {history.per_run_cap})")

    if history.stale_after_runs < 0:
        errors.append(
            f"history.stale_after_runs must be non-negative (got: {history.stale_after_runs})"
        )

    return errors


def _validate_report_config(report: ReportConfig) -> list[str]:
    """Validate recommendation thresholds."""
    errors: list[str] = []

    if report.rebalance_variance_threshold < 0:
        errors.append(
            "report.rebalance_variance_threshold must be non-negative "
            f"(got: {report.rebalance_variance_threshold})"
        )

    if not 0.0 <= report.accuracy_threshold <= 1.0:
        errors.append(
            f"report.accuracy_threshold must be between 0.0 and 1.0 "
            f"(got: {report.accuracy_threshold})"
        )

    if report.makespan_ceiling <= 0:
        errors.append(f"report.makespan_ceiling must be positive (got: {report.makespan_ceiling})")

    min_trend_window = 2
    if report.trend_window < min_trend_window:
        errors.append(
            f"report.trend_window must be at least {min_trend_window} (got: {report.trend_window})"
        )

    if report.trend_threshold < 0:
        errors.append(f"report.trend_threshold must be non-negative (got: {report.trend_threshold})")

    return errors


def validate_config(config: ShardwiseConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = list(config.parse_errors)

    errors.extend(_validate_sharding_config(config.sharding))
    errors.extend(_validate_execution_config(config.execution))
    errors.extend(_validate_history_config(config.history))
    errors.extend(_validate_report_config(config.report))

    return errors


def ensure_valid_config(config: ShardwiseConfig) -> None:
    """Raise ``InvalidConfigurationError`` if *config* has any problem."""
    errors = validate_config(config)
    if errors:
        raise InvalidConfigurationError(errors)
