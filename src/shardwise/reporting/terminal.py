"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from shardwise.reporting.report import TrendDirection

if TYPE_CHECKING:
    from shardwise.history.models import HistorySnapshot
    from shardwise.reporting.report import OptimizationReport
    from shardwise.sharding.models import ShardPlan

console = Console()


_GOOD_SCORE = 0.8
_FAIR_SCORE = 0.6
_SECONDS_PER_MINUTE = 60.0
_MAX_FILES_DISPLAY = 3

_STATUS_STYLES = {
    "passed": "green",
    "empty": "dim",
    "failed": "red",
    "timeout": "yellow",
    "crashed": "red",
    "aborted": "yellow",
}

_TREND_STYLES = {
    TrendDirection.IMPROVING: "[green]improving[/green]",
    TrendDirection.DEGRADING: "[red]degrading[/red]",
    TrendDirection.STABLE: "[dim]stable[/dim]",
}


def _score_color(score: float) -> str:
    """Return a Rich color name for a score in [0, 1]."""
    if score >= _GOOD_SCORE:
        return "green"
    if score >= _FAIR_SCORE:
        return "yellow"
    return "red"


def _format_duration(seconds: float | None) -> str:
    """Format a duration in seconds to a human-readable string."""
    if seconds is None:
        return "-"
    if seconds >= _SECONDS_PER_MINUTE:
        return f"{seconds / _SECONDS_PER_MINUTE:.1f}m"
    return f"{seconds:.1f}s"


def _format_files(files: tuple[str, ...]) -> str:
    shown = escape(", ".join(files[:_MAX_FILES_DISPLAY]))
    if len(files) > _MAX_FILES_DISPLAY:
        shown += f" (+{len(files) - _MAX_FILES_DISPLAY} more)"
    return shown or "[dim]none[/dim]"


class TerminalReporter:
    """Rich terminal output for plans, reports and history."""

    def __init__(self, target: Console | None = None) -> None:
        self.console = target or console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{title}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{message}[/dim]")

    # ── Plans ──────────────────────────────────────────────────────────

    def print_plan(self, plan: ShardPlan) -> None:
        """Print the shard assignment table for a plan."""
        table = Table(title="Shard Plan", show_header=True, header_style="bold cyan")
        table.add_column("Shard", justify="right")
        table.add_column("Files", justify="right")
        table.add_column("Estimated", justify="right")
        table.add_column("Units")

        for shard in plan.shards:
            table.add_row(
                str(shard.id),
                str(len(shard.files)),
                _format_duration(shard.estimated_duration),
                _format_files(shard.files),
            )

        self.console.print(table)
        self.console.print(
            f"Estimated makespan: [bold]{_format_duration(plan.estimated_makespan)}[/bold]"
            f"  ({len(plan.units)} units, {len(plan.cold_start_paths)} without history)"
        )
        for path, reason in sorted(plan.skipped.items()):
            self.print_warning(escape(f"Skipped {path}: {reason}"))

    # ── Reports ────────────────────────────────────────────────────────

    def print_report(self, report: OptimizationReport) -> None:
        """Print the full optimization report."""
        summary = report.summary
        balance = summary.load_balance_score
        accuracy = summary.estimation_accuracy

        lines = [
            f"Makespan: [bold]{_format_duration(summary.total_duration)}[/bold]"
            f" (estimated {_format_duration(summary.estimated_makespan)})",
            f"Load balance: [{_score_color(balance)}]{balance:.2f}[/{_score_color(balance)}]",
            f"Estimation accuracy: [{_score_color(accuracy)}]{accuracy:.0%}"
            f"[/{_score_color(accuracy)}]",
            f"Shard success rate: {summary.success_rate:.0%}",
            f"Trend: {_TREND_STYLES[report.trend.direction]}"
            f" over {report.trend.runs_considered} runs",
        ]
        border = "green" if report.success else "red"
        self.console.print(Panel("\n".join(lines), title="Run Summary", border_style=border))

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Shard", justify="right")
        table.add_column("Status")
        table.add_column("Files", justify="right")
        table.add_column("Estimated", justify="right")
        table.add_column("Actual", justify="right")
        table.add_column("Error", justify="right")

        for shard in report.shards:
            style = _STATUS_STYLES.get(shard.status, "white")
            table.add_row(
                str(shard.id),
                f"[{style}]{shard.status}[/{style}]",
                str(shard.file_count),
                _format_duration(shard.estimated_duration),
                _format_duration(shard.actual_duration),
                "-" if shard.accuracy is None else f"{shard.accuracy:.0%}",
            )
        self.console.print(table)

        for warning in report.warnings:
            subject = f"{warning.subject}: " if warning.subject else ""
            self.print_warning(escape(f"[{warning.kind.value}] {subject}{warning.message}"))

        if report.stale_units:
            self.print_info(
                f"{len(report.stale_units)} history records no longer match a test file"
            )

        if report.recommendations:
            self.print_header("Recommendations")
            for recommendation in report.recommendations:
                self.console.print(f"  • {escape(recommendation)}")

        if not report.history_updated:
            self.print_warning("History was not saved; the next run will use the old estimates")

    # ── History ────────────────────────────────────────────────────────

    def print_history(self, snapshot: HistorySnapshot, *, limit: int = 10) -> None:
        """Print recorded units and recent run summaries."""
        self.print_info(f"History version {snapshot.version}")

        units = Table(title="Test Units", show_header=True, header_style="bold cyan")
        units.add_column("Path")
        units.add_column("Runs", justify="right")
        units.add_column("Avg", justify="right")
        units.add_column("Failure rate", justify="right")
        units.add_column("Last seen")
        for path in sorted(snapshot.units):
            record = snapshot.units[path]
            units.add_row(
                path,
                str(len(record.entries)),
                _format_duration(record.avg_duration),
                f"{record.failure_rate:.0%}",
                record.last_seen,
            )
        self.console.print(units)

        runs = Table(title="Recent Runs", show_header=True, header_style="bold cyan")
        runs.add_column("Timestamp")
        runs.add_column("Shards", justify="right")
        runs.add_column("Makespan", justify="right")
        runs.add_column("Accuracy", justify="right")
        runs.add_column("Success", justify="right")
        for run in snapshot.recent_runs(limit):
            runs.add_row(
                run.timestamp,
                str(run.shard_count),
                _format_duration(run.total_duration),
                f"{run.avg_accuracy:.0%}",
                f"{run.success_rate:.0%}",
            )
        self.console.print(runs)
