"""
Snapshot storage for the board.

A storage object holds one JSON document and exposes exactly two
operations: read the whole snapshot, and replace the whole snapshot.
There is no partial write and no locking; two writers racing on the
same file lose one update (last write wins).
"""
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


def empty_data_snapshot() -> Dict[str, Any]:
    return {"projects": [], "tasks": []}


def empty_auth_snapshot() -> Dict[str, Any]:
    return {"users": [], "refreshTokens": []}


def _conform(data: Dict[str, Any], fallback: Dict[str, Any]) -> Dict[str, Any]:
    """Missing or non-list collections become empty; non-object records are dropped."""
    for key, default in fallback.items():
        value = data.get(key)
        if not isinstance(value, list):
            data[key] = copy.deepcopy(default)
        else:
            data[key] = [r for r in value if isinstance(r, dict)]
    return data


class JsonFileStorage:
    """Whole-file JSON snapshot on disk."""

    def __init__(self, path, fallback: Dict[str, Any]):
        self.path = Path(path)
        self.fallback = fallback
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _ensure_file(self) -> None:
        if not self.path.exists():
            self.write_snapshot(self.fallback)

    def read_snapshot(self) -> Dict[str, Any]:
        """Return the current document; empty or corrupt files yield the fallback."""
        self._ensure_file()
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return copy.deepcopy(self.fallback)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt JSON in {self.path} ({e}); resetting to empty snapshot")
            self.write_snapshot(self.fallback)
            return copy.deepcopy(self.fallback)
        if not isinstance(data, dict):
            logger.warning(f"Unexpected document in {self.path}; resetting to empty snapshot")
            self.write_snapshot(self.fallback)
            return copy.deepcopy(self.fallback)
        return _conform(data, self.fallback)

    def write_snapshot(self, data: Dict[str, Any]) -> None:
        """Replace the file contents with data."""
        # Atomic write: write to temp, then rename
        tmp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_file, self.path)


class MemoryStorage:
    """In-process snapshot, for tests and throwaway servers."""

    def __init__(self, fallback: Dict[str, Any], initial: Dict[str, Any] = None):
        self.fallback = fallback
        self._data = copy.deepcopy(initial if initial is not None else fallback)
        self.writes = 0

    def read_snapshot(self) -> Dict[str, Any]:
        data = copy.deepcopy(self._data)
        return _conform(data, self.fallback)

    def write_snapshot(self, data: Dict[str, Any]) -> None:
        self._data = copy.deepcopy(data)
        self.writes += 1
