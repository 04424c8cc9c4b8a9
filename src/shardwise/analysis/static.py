"""Static analysis of test files.

Produces the structural metrics the duration estimator needs without
executing anything:

1. Counts test declarations using the profile's marker patterns
2. Scores runtime complexity from weighted indicator categories
3. Extracts imported module names as the unit's dependency set
"""

from __future__ import annotations

import ast
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shardwise.errors import DiscoveryError, InvalidConfigurationError

if TYPE_CHECKING:
    from shardwise.analysis.profiles import FrameworkProfile, Indicator

logger = logging.getLogger(__name__)

# Score contributed by every non-empty line, so no file scores zero.
LINE_WEIGHT = 0.1


@dataclass(frozen=True)
class AnalysisResult:
    """Structural metrics for a single test file."""

    test_count: int = 0
    """Number of test declarations found."""

    complexity_score: float = 0.0
    """Weighted indicator score plus the per-line base term."""

    dependencies: frozenset[str] = frozenset()
    """Imported module identifiers."""

    indicator_counts: dict[str, int] = field(default_factory=dict)
    """Match count per indicator category."""


@dataclass(frozen=True)
class _CompiledIndicator:
    name: str
    regex: re.Pattern[str]
    weight: float


class StaticAnalyzer:
    """Framework-agnostic analyzer driven by a ``FrameworkProfile``.

    All patterns are compiled once at construction time; ``analyze`` is a
    pure function of its input.
    """

    def __init__(
        self,
        profile: FrameworkProfile,
        *,
        indicators: dict[str, Indicator] | None = None,
        test_markers: list[str] | None = None,
    ) -> None:
        """Compile the profile, applying optional overrides.

        Args:
            profile: Base framework profile.
            indicators: Extra or replacement indicator categories.
            test_markers: Replacement test-declaration patterns.

        Raises:
            InvalidConfigurationError: A pattern does not compile or a weight
                is negative.
        """
        self.profile = profile
        merged = dict(profile.indicators)
        merged.update(indicators or {})

        errors: list[str] = []
        self._markers = _compile_all(
            test_markers if test_markers else list(profile.test_markers),
            "test marker",
            errors,
        )
        self._imports = _compile_all(list(profile.import_patterns), "import pattern", errors)
        self._indicators: list[_CompiledIndicator] = []
        for name, indicator in sorted(merged.items()):
            if indicator.weight < 0:
                errors.append(f"indicator '{name}' has negative weight {indicator.weight}")
                continue
            compiled = _compile_all([indicator.pattern], f"indicator '{name}'", errors)
            if compiled:
                self._indicators.append(_CompiledIndicator(name, compiled[0], indicator.weight))

        if errors:
            raise InvalidConfigurationError(errors)

    @property
    def indicator_names(self) -> list[str]:
        """Names of the active indicator categories."""
        return [ind.name for ind in self._indicators]

    def analyze(self, path: str, content: str) -> AnalysisResult:
        """Analyze the content of one test file.

        Raises:
            DiscoveryError: The content is binary or does not parse.
        """
        if "\x00" in content:
            raise DiscoveryError(path, "binary content")

        if self.profile.syntax == "python":
            try:
                ast.parse(content, filename=path)
            except (SyntaxError, ValueError) as exc:
                raise DiscoveryError(path, f"syntax error: {exc}") from exc

        test_count = sum(len(regex.findall(content)) for regex in self._markers)

        counts: dict[str, int] = {}
        score = 0.0
        for ind in self._indicators:
            hits = len(ind.regex.findall(content))
            counts[ind.name] = hits
            score += hits * ind.weight

        non_empty_lines = sum(1 for line in content.splitlines() if line.strip())
        score += LINE_WEIGHT * non_empty_lines

        dependencies: set[str] = set()
        for regex in self._imports:
            dependencies.update(m.group(1) for m in regex.finditer(content))

        logger.debug(
            "Analyzed %s: %d tests, complexity %.2f, %d dependencies",
            path,
            test_count,
            score,
            len(dependencies),
        )

        return AnalysisResult(
            test_count=test_count,
            complexity_score=score,
            dependencies=frozenset(dependencies),
            indicator_counts=counts,
        )


def _compile_all(patterns: list[str], label: str, errors: list[str]) -> list[re.Pattern[str]]:
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.MULTILINE))
        except re.error as exc:
            errors.append(f"{label} {pattern!r} does not compile: {exc}")
    return compiled
