"""Static analysis of test files."""

from shardwise.analysis.profiles import (
    BUILTIN_PROFILES,
    FrameworkProfile,
    Indicator,
    get_profile,
)
from shardwise.analysis.static import AnalysisResult, StaticAnalyzer

__all__ = [
    "BUILTIN_PROFILES",
    "AnalysisResult",
    "FrameworkProfile",
    "Indicator",
    "StaticAnalyzer",
    "get_profile",
]
