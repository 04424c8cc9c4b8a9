"""Optimization reports and their renderers."""

from shardwise.reporting.json_reporter import JSONReporter
from shardwise.reporting.report import (
    ExecutionSummary,
    OptimizationReport,
    ReportGenerator,
    RunWarning,
    ShardBreakdown,
    TrendAnalysis,
    TrendDirection,
    WarningKind,
    analyze_trend,
)
from shardwise.reporting.terminal import TerminalReporter

__all__ = [
    "ExecutionSummary",
    "JSONReporter",
    "OptimizationReport",
    "ReportGenerator",
    "RunWarning",
    "ShardBreakdown",
    "TerminalReporter",
    "TrendAnalysis",
    "TrendDirection",
    "WarningKind",
    "analyze_trend",
]
