"""Test file discovery and unit construction."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from shardwise.errors import DiscoveryError
from shardwise.sharding.models import TestUnit

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

    from shardwise.analysis.static import StaticAnalyzer
    from shardwise.history.models import HistorySnapshot
    from shardwise.sharding.estimator import DurationEstimator

logger = logging.getLogger(__name__)


def discover_test_files(project_path: Path, patterns: list[str]) -> list[Path]:
    """Discover test files matching the given glob patterns.

    Args:
        project_path: Root of the project.
        patterns: Glob patterns relative to *project_path*.

    Returns:
        Sorted list of unique matching files.
    """
    files: set[Path] = set()
    for pattern in patterns:
        files.update(p for p in project_path.glob(pattern) if p.is_file())
    return sorted(files)


class GlobFileSource:
    """Lazily yields ``(path, content)`` for files matching glob patterns.

    Paths are POSIX strings relative to the project root, in sorted order.
    Files that cannot be read are skipped and recorded in ``errors``.
    Iterating consumes the source; it cannot be restarted.
    """

    def __init__(self, project_path: Path, patterns: list[str]) -> None:
        self._root = project_path
        self._patterns = list(patterns)
        self._consumed = False
        self.errors: list[DiscoveryError] = []

    def __iter__(self) -> Iterator[tuple[str, str]]:
        if self._consumed:
            raise RuntimeError("GlobFileSource can only be iterated once")
        self._consumed = True
        return self._generate()

    def _generate(self) -> Iterator[tuple[str, str]]:
        for file_path in discover_test_files(self._root, self._patterns):
            rel = file_path.relative_to(self._root).as_posix()
            try:
                content = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                error = DiscoveryError(rel, f"unreadable: {exc}")
                logger.warning("Skipping %s", error)
                self.errors.append(error)
                continue
            yield rel, content


def build_units(
    source: Iterable[tuple[str, str]],
    analyzer: StaticAnalyzer,
    estimator: DurationEstimator,
    history: HistorySnapshot,
    skipped: dict[str, str] | None = None,
) -> list[TestUnit]:
    """Analyze and estimate every file the source yields.

    Units come back in discovery order.  Files the analyzer rejects are
    logged, recorded in *skipped* (path -> reason) and left out.
    """
    units: list[TestUnit] = []
    seen: set[str] = set()

    for path, content in source:
        if path in seen:
            logger.debug("Ignoring duplicate path %s", path)
            continue
        seen.add(path)

        try:
            analysis = analyzer.analyze(path, content)
        except DiscoveryError as exc:
            logger.warning("Skipping %s", exc)
            if skipped is not None:
                skipped[path] = exc.reason
            continue

        estimate = estimator.estimate(
            path, analysis.test_count, analysis.complexity_score, history
        )
        units.append(
            TestUnit(
                path=path,
                estimated_duration=estimate,
                test_count=analysis.test_count,
                complexity_score=analysis.complexity_score,
                dependencies=analysis.dependencies,
                historical_failure_rate=history.failure_rate(path),
                from_history=history.avg_duration(path) is not None,
            )
        )

    logger.info("Discovered %d test units (%d skipped)", len(units), len(skipped or {}))
    return units
