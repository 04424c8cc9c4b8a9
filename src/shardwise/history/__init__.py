"""Historical run data and its persistence."""

from shardwise.history.models import (
    DEFAULT_PER_RUN_CAP,
    DEFAULT_PER_UNIT_CAP,
    HistoryEntry,
    HistoryRecord,
    HistorySnapshot,
    ShardRunSummary,
)
from shardwise.history.store import HistoryPersistence, HistoryStore, JsonStore

__all__ = [
    "DEFAULT_PER_RUN_CAP",
    "DEFAULT_PER_UNIT_CAP",
    "HistoryEntry",
    "HistoryPersistence",
    "HistoryRecord",
    "HistorySnapshot",
    "HistoryStore",
    "JsonStore",
    "ShardRunSummary",
]
