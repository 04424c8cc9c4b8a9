"""JSON-file persistence for shardwise state.

``JsonStore`` is a small generic JSON document store rooted in the
project's ``.shardwise/`` directory.  ``HistoryStore`` builds the history
persistence contract on top of it: ``load()`` always yields a usable
snapshot and ``save()`` reports failure instead of raising.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol, cast

from shardwise.errors import HistoryPersistenceError
from shardwise.history.models import HistorySnapshot

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_PATH = ".shardwise/history.json"


class HistoryPersistence(Protocol):
    """Storage contract the scheduler depends on."""

    def load(self) -> HistorySnapshot: ...

    def save(self, snapshot: HistorySnapshot) -> bool: ...


class JsonStore:
    """Stores and retrieves one JSON document on disk."""

    def __init__(self, project_root: Path, relative_path: str) -> None:
        """Initialize the store.

        Args:
            project_root: Root directory of the project.
            relative_path: Location of the JSON file relative to *project_root*.
        """
        self._root = project_root
        self._file_path = project_root / relative_path

    def save(self, data: dict[str, Any]) -> None:
        """Write *data* atomically (temp file, then rename).

        Raises:
            OSError: The file could not be written.
        """
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._file_path.with_suffix(self._file_path.suffix + ".tmp")
        temp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        temp_path.replace(self._file_path)
        logger.info("Saved %s", self._file_path)

    def load(self) -> dict[str, Any] | None:
        """Load the document.

        Returns:
            The parsed mapping, or None if the file is missing or unreadable.
        """
        if not self._file_path.exists():
            logger.debug("No file found at %s", self._file_path)
            return None

        try:
            data = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load %s: %s", self._file_path, exc)
            return None

        if not isinstance(data, dict):
            logger.error("Expected a JSON object in %s", self._file_path)
            return None
        return cast("dict[str, Any]", data)

    def exists(self) -> bool:
        return self._file_path.exists()

    def clear(self) -> None:
        """Delete the file if present."""
        if self._file_path.exists():
            self._file_path.unlink()
            logger.info("Cleared %s", self._file_path)

    @property
    def file_path(self) -> Path:
        return self._file_path


class HistoryStore(JsonStore):
    """History persistence backed by a single JSON file."""

    def __init__(self, project_root: Path, relative_path: str = DEFAULT_HISTORY_PATH) -> None:
        super().__init__(project_root, relative_path)

    def load(self) -> HistorySnapshot:  # type: ignore[override]
        """Return the stored snapshot, or an empty one if none is usable."""
        data = super().load()
        if data is None:
            return HistorySnapshot()

        try:
            snapshot = HistorySnapshot.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed history in %s: %s", self.file_path, exc)
            return HistorySnapshot()

        logger.debug(
            "Loaded history v%d (%d units, %d runs)",
            snapshot.version,
            len(snapshot.units),
            len(snapshot.runs),
        )
        return snapshot

    def write(self, snapshot: HistorySnapshot) -> None:
        """Persist *snapshot*.

        Raises:
            HistoryPersistenceError: The file could not be written.
        """
        try:
            super().save(snapshot.to_dict())
        except OSError as exc:
            raise HistoryPersistenceError(f"cannot write {self.file_path}: {exc}") from exc

    def save(self, snapshot: HistorySnapshot) -> bool:  # type: ignore[override]
        """Persist *snapshot*, returning False instead of raising on failure."""
        try:
            self.write(snapshot)
        except HistoryPersistenceError as exc:
            logger.warning("History not updated: %s", exc)
            return False
        return True
