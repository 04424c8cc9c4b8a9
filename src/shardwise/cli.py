"""shardwise CLI: top-level command group."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from shardwise import __version__
from shardwise.config import ShardwiseConfig, load_config, validate_config
from shardwise.errors import InvalidConfigurationError
from shardwise.history.store import HistoryStore
from shardwise.reporting.json_reporter import JSONReporter
from shardwise.reporting.terminal import TerminalReporter
from shardwise.scheduler import ShardScheduler
from shardwise.sharding.partitioner import select_shard
from shardwise.sharding.plan_io import read_shard_plan, write_shard_plan

logger = logging.getLogger(__name__)
console = Console()
reporter = TerminalReporter(console)

_PATH_OPTION = click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)


def _configure_logging(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _ci_mode() -> bool:
    ctx = click.get_current_context()
    return bool(ctx.obj.get("ci", False)) if ctx.obj else False


def _load_config_or_abort(path: str) -> ShardwiseConfig:
    try:
        return load_config(path)
    except InvalidConfigurationError as e:
        _print_config_errors(e.errors)
        raise click.Abort from e


def _print_config_errors(errors: list[str]) -> None:
    reporter.print_error(f"Found {len(errors)} configuration error(s):")
    for idx, error in enumerate(errors, start=1):
        console.print(f"  {idx}. [red]{escape(error)}[/red]")


def _apply_overrides(config: ShardwiseConfig, **overrides: Any) -> None:
    if overrides.get("shard_count") is not None:
        config.sharding.shard_count = overrides["shard_count"]
    if overrides.get("per_shard_timeout") is not None:
        config.execution.per_shard_timeout = overrides["per_shard_timeout"]
    if overrides.get("global_timeout") is not None:
        config.execution.global_timeout = overrides["global_timeout"]


def _config_to_dict(config: ShardwiseConfig) -> dict[str, Any]:
    result = dataclasses.asdict(config)
    result.pop("raw", None)
    result.pop("parse_errors", None)
    return result


@click.group()
@click.option(
    "--ci",
    is_flag=True,
    help="CI mode: machine-readable JSON output and exit codes for pass/fail.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.version_option(version=__version__, prog_name="shardwise")
@click.pass_context
def cli(ctx: click.Context, *, ci: bool, verbose: bool) -> None:
    """shardwise: adaptive test sharding with learned duration estimates."""
    ctx.ensure_object(dict)
    ctx.obj["ci"] = ci
    _configure_logging(verbose=verbose)


# ── plan ───────────────────────────────────────────────────────────────


@cli.command()
@_PATH_OPTION
@click.option("--shard-count", type=int, default=None, help="Override sharding.shard_count.")
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the plan as JSON to this file.",
)
@click.option(
    "--shard-id",
    type=int,
    default=None,
    help="Print only the files assigned to this shard, one per line.",
)
@click.option("--json-output", "as_json", is_flag=True, help="Print the plan as JSON.")
def plan(
    path: str,
    shard_count: int | None,
    output_path: str | None,
    shard_id: int | None,
    *,
    as_json: bool,
) -> None:
    """Discover, estimate and partition tests without running them.

    Example:
      shardwise plan --shard-count 4 --output shard-plan.json
      pytest $(shardwise plan --shard-id 2)
    """
    config = _load_config_or_abort(path)
    _apply_overrides(config, shard_count=shard_count)

    try:
        shard_plan = ShardScheduler(config).plan()
    except InvalidConfigurationError as e:
        _print_config_errors(e.errors)
        raise click.Abort from e

    if output_path:
        write_shard_plan(shard_plan, Path(output_path))
        if not as_json and shard_id is None:
            reporter.print_info(f"Shard plan written to {output_path}")

    if shard_id is not None:
        try:
            shard = select_shard(shard_plan.shards, shard_id)
        except ValueError as e:
            raise click.UsageError(str(e)) from e
        for file_path in shard.files:
            click.echo(file_path)
        return

    if as_json or _ci_mode():
        click.echo(JSONReporter().plan_string(shard_plan))
    else:
        reporter.print_plan(shard_plan)


# ── run ────────────────────────────────────────────────────────────────


@cli.command()
@_PATH_OPTION
@click.option("--shard-count", type=int, default=None, help="Override sharding.shard_count.")
@click.option(
    "--per-shard-timeout",
    type=float,
    default=None,
    help="Override execution.per_shard_timeout (seconds).",
)
@click.option(
    "--global-timeout",
    type=float,
    default=None,
    help="Override execution.global_timeout (seconds).",
)
@click.option(
    "--plan",
    "plan_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Execute a plan written by 'shardwise plan --output' instead of planning.",
)
@click.option(
    "--report",
    "report_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the optimization report as JSON to this file.",
)
@click.option("--json-output", "as_json", is_flag=True, help="Print the report as JSON.")
def run(
    path: str,
    shard_count: int | None,
    per_shard_timeout: float | None,
    global_timeout: float | None,
    plan_file: str | None,
    report_path: str | None,
    *,
    as_json: bool,
) -> None:
    """Run all shards concurrently and report on the run.

    Exits non-zero when any shard did not pass.
    """
    json_mode = as_json or _ci_mode()
    config = _load_config_or_abort(path)
    _apply_overrides(
        config,
        shard_count=shard_count,
        per_shard_timeout=per_shard_timeout,
        global_timeout=global_timeout,
    )

    shard_plan = None
    if plan_file:
        try:
            shard_plan = read_shard_plan(Path(plan_file))
        except (ValueError, KeyError, TypeError) as e:
            reporter.print_error(f"Could not read plan: {e}")
            raise click.Abort from e

    if not json_mode:
        reporter.print_header("shardwise run")

    try:
        report = asyncio.run(ShardScheduler(config).run(shard_plan))
    except InvalidConfigurationError as e:
        _print_config_errors(e.errors)
        raise click.Abort from e

    json_reporter = JSONReporter()
    if report_path:
        json_reporter.generate(Path(report_path), report)

    if json_mode:
        click.echo(json_reporter.generate_string(report))
    else:
        reporter.print_report(report)

    if not report.success:
        if not json_mode:
            reporter.print_error(f"{report.summary.failed_shards} shard(s) did not pass")
        raise click.Abort

    if not json_mode:
        reporter.print_success("All shards passed!")


# ── history ────────────────────────────────────────────────────────────


@cli.group("history")
def history_group() -> None:
    """Inspect and maintain recorded run history."""


def _history_store(path: str) -> HistoryStore:
    config = _load_config_or_abort(path)
    return HistoryStore(Path(path), config.history.path)


@history_group.command("show")
@_PATH_OPTION
@click.option("--limit", type=int, default=10, help="Number of recent runs to show.")
@click.option("--json-output", "as_json", is_flag=True, help="Print history as JSON.")
def history_show(path: str, limit: int, *, as_json: bool) -> None:
    """Display recorded unit durations and recent runs."""
    store = _history_store(path)
    if not store.exists():
        reporter.print_warning("No history recorded yet.")
        return

    snapshot = store.load()
    if as_json or _ci_mode():
        click.echo(json.dumps(snapshot.to_dict(), indent=2))
    else:
        reporter.print_history(snapshot, limit=limit)


@history_group.command("prune")
@_PATH_OPTION
def history_prune(path: str) -> None:
    """Remove history records for test files that no longer exist."""
    config = _load_config_or_abort(path)
    store = HistoryStore(Path(path), config.history.path)
    if not store.exists():
        reporter.print_warning("No history recorded yet.")
        return

    try:
        shard_plan = ShardScheduler(config, history_store=store).plan()
    except InvalidConfigurationError as e:
        _print_config_errors(e.errors)
        raise click.Abort from e

    snapshot = store.load()
    discovered = shard_plan.discovered_paths
    stale = snapshot.stale_paths(discovered)
    if not stale:
        reporter.print_success("No stale history records.")
        return

    if not store.save(snapshot.prune_stale(discovered)):
        reporter.print_error("Could not write pruned history.")
        raise click.Abort
    reporter.print_success(f"Pruned {len(stale)} stale history record(s).")


@history_group.command("clear")
@_PATH_OPTION
@click.confirmation_option(prompt="Delete all recorded history?")
def history_clear(path: str) -> None:
    """Delete the history file."""
    _history_store(path).clear()
    reporter.print_success("History cleared.")


# ── config ─────────────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Inspect `.shardwise.yml` configuration."""


@config_group.command("show")
@_PATH_OPTION
@click.option("--json-output", "as_json", is_flag=True, help="Output as JSON instead of YAML.")
def config_show(path: str, *, as_json: bool) -> None:
    """Display the resolved configuration, defaults included."""
    config = _load_config_or_abort(path)
    config_dict = _config_to_dict(config)

    if as_json:
        click.echo(json.dumps(config_dict, indent=2))
    else:
        console.print()
        console.print("[bold cyan]Configuration:[/bold cyan]")
        console.print()
        click.echo(yaml.safe_dump(config_dict, sort_keys=False, default_flow_style=False))


@config_group.command("validate")
@_PATH_OPTION
def config_validate(path: str) -> None:
    """Validate `.shardwise.yml`.

    Example:
      shardwise config validate
    """
    config = _load_config_or_abort(path)
    errors = validate_config(config)

    if not errors:
        reporter.print_success("Configuration is valid!")
        return

    _print_config_errors(errors)
    console.print()
    console.print(
        "[dim]Fix these errors in .shardwise.yml and run 'shardwise config validate' again.[/dim]"
    )
    raise click.Abort
