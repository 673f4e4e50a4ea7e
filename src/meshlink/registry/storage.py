"""
Key-value persistence for cached endpoints and selection state.

Values are stored alongside the time they were written so callers can
apply a maximum age on load. Storage failures are logged and never
propagate; a missing or unreadable store behaves like an empty one.
"""

import logging
from pathlib import Path
from typing import Any

import orjson

from meshlink.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


def _is_fresh(entry: dict[str, Any], max_age_ms: int | None) -> bool:
    if max_age_ms is None:
        return True
    timestamp = entry.get("timestamp")
    if not isinstance(timestamp, int) or isinstance(timestamp, bool):
        return False
    return get_timestamp_ms() - timestamp < max_age_ms


class MemoryStore:
    """In-process store, used by tests and when no cache path is configured."""

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, Any]] = {}

    def load(self, key: str, max_age_ms: int | None = None) -> Any | None:
        entry = self._entries.get(key)
        if entry is None or not _is_fresh(entry, max_age_ms):
            return None
        return entry["value"]

    def save(self, key: str, value: Any) -> None:
        self._entries[key] = {"value": value, "timestamp": get_timestamp_ms()}

    def save_with_timestamp(self, key: str, value: Any, timestamp_ms: int) -> None:
        """Store a value with an explicit write time."""
        self._entries[key] = {"value": value, "timestamp": timestamp_ms}

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class JsonFileStore:
    """
    Single JSON file holding every key.

    The whole file is rewritten on each save; the state is a handful of
    small records so this stays cheap.
    """

    def __init__(self, path: Path) -> None:
        """
        Initialize file store.

        Args:
            path: File to read and write. Parent directories are created on save.
        """
        self._path = path
        self._entries: dict[str, dict[str, Any]] = self._read()

    def _read(self) -> dict[str, dict[str, Any]]:
        if not self._path.exists():
            return {}

        try:
            data = orjson.loads(self._path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable state file {self._path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed state file {self._path}")
            return {}

        return {
            k: v
            for k, v in data.items()
            if isinstance(v, dict) and "value" in v and isinstance(v.get("timestamp"), int)
        }

    def _write(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_bytes(orjson.dumps(self._entries, option=orjson.OPT_INDENT_2))
            tmp.replace(self._path)
        except OSError as e:
            logger.warning(f"Could not persist state to {self._path}: {e}")

    def load(self, key: str, max_age_ms: int | None = None) -> Any | None:
        entry = self._entries.get(key)
        if entry is None or not _is_fresh(entry, max_age_ms):
            return None
        return entry["value"]

    def save(self, key: str, value: Any) -> None:
        self._entries[key] = {"value": value, "timestamp": get_timestamp_ms()}
        self._write()

    def delete(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._write()

    @property
    def path(self) -> Path:
        """Backing file path."""
        return self._path
