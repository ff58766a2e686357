"""
Antnet Storage
===============
The colony's two external stores:

- FoodStore: the nest's food stash. Items expire naturally, like
  perishable food; the oldest item is eaten first.
- JsonFileStore / MemoryStore: key-value persistence for the ant
  population, colony stats and the pheromone registry.
"""

import asyncio
import copy
import json
import time
import logging
from pathlib import Path
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("antnet.storage")


class FoodStore:
    """
    Append-only food stash with expiry.

    Labels are unique; storing an existing label replaces the item and
    refreshes its age.
    """

    def __init__(self, max_age_seconds: float = 3600.0, max_value_chars: int = 3800,
                 clock: Optional[Callable[[], float]] = None):
        self.max_age_seconds = max_age_seconds
        self.max_value_chars = max_value_chars
        self.clock = clock or time.time
        # label -> (stored_at, value), oldest first
        self._items: "OrderedDict[str, tuple]" = OrderedDict()

    def _expire(self):
        cutoff = self.clock() - self.max_age_seconds
        expired = [label for label, (stored_at, _) in self._items.items() if stored_at < cutoff]
        for label in expired:
            del self._items[label]

    def store(self, label: str, value: str) -> bool:
        """Store a food item. Values are truncated to max_value_chars."""
        if label in self._items:
            del self._items[label]
        self._items[label] = (self.clock(), str(value)[:self.max_value_chars])
        return True

    def count(self) -> int:
        self._expire()
        return len(self._items)

    def consume(self) -> Optional[str]:
        """Remove and return the oldest item, or None when empty"""
        self._expire()
        if not self._items:
            return None
        _, (_, value) = self._items.popitem(last=False)
        return value

    def clear(self):
        self._items.clear()

    def estimate_weight(self) -> int:
        """Approximate byte count of the stash"""
        self._expire()
        return sum(len(label) + len(value) + 3 for label, (_, value) in self._items.items())

    def to_list(self) -> List[Dict[str, Any]]:
        self._expire()
        return [
            {"label": label, "storedAt": stored_at, "value": value}
            for label, (stored_at, value) in self._items.items()
        ]

    def from_list(self, rows: List[Dict[str, Any]]) -> int:
        loaded = 0
        for row in rows:
            try:
                self._items[str(row["label"])] = (float(row["storedAt"]), str(row["value"]))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed food item {row!r}: {e}")
                continue
            loaded += 1
        self._expire()
        return loaded


class MemoryStore:
    """In-process key-value store; values are deep-copied on the way in and out"""

    def __init__(self):
        self.data: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self.data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self.data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """
    One JSON document per key inside a directory.

    File I/O runs in a worker thread so the tick loop is not blocked.
    Errors (disk full, permissions, corrupt JSON) propagate.
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r") as f:
            return json.load(f)

    def _write(self, key: str, value: Any):
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump(value, f)
        tmp.replace(path)

    def _delete(self, key: str):
        path = self._path(key)
        if path.exists():
            path.unlink()

    async def get(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)
