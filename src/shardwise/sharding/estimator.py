"""Duration estimation from history and static complexity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shardwise.history.models import HistorySnapshot

logger = logging.getLogger(__name__)

DEFAULT_BASE_TIME_PER_TEST = 0.5
DEFAULT_MIN_DURATION = 0.01

# Complexity may inflate a historical baseline by at most (1 + cap).
_HISTORY_INFLATION_CAP = 2.0
_HISTORY_COMPLEXITY_DIVISOR = 100.0
_COLD_START_COMPLEXITY_DIVISOR = 200.0


@dataclass(frozen=True)
class DurationEstimator:
    """Predicts how long a test unit will take to run."""

    base_time_per_test: float = DEFAULT_BASE_TIME_PER_TEST
    """Seconds per test case when no history exists."""

    min_duration: float = DEFAULT_MIN_DURATION
    """Strictly positive floor for every estimate."""

    def estimate(
        self,
        path: str,
        test_count: int,
        complexity_score: float,
        history: HistorySnapshot,
    ) -> float:
        """Return the estimated duration of *path* in seconds.

        With a recorded average the estimate is
        ``avg * (1 + min(complexity / 100, 2.0))``; otherwise it falls back to
        ``test_count * base_time_per_test * (1 + complexity / 200)``.
        """
        avg = history.avg_duration(path)
        if avg is not None:
            factor = 1.0 + min(complexity_score / _HISTORY_COMPLEXITY_DIVISOR, _HISTORY_INFLATION_CAP)
            value = avg * factor
        else:
            logger.debug("No history for %s, using cold-start estimate", path)
            value = (
                test_count
                * self.base_time_per_test
                * (1.0 + complexity_score / _COLD_START_COMPLEXITY_DIVISOR)
            )
        return max(value, self.min_duration)
