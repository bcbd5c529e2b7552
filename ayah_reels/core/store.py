"""Keyed stores for transient per-request state.

Progress and push subscriptions are kept behind ``KeyedStore`` so the process
local map can be swapped for a shared backend without touching the pipeline.
Values are plain JSON-compatible dicts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Callable

from ayah_reels.core.config import settings
from ayah_reels.core.storage import atomic_write_json, json_lock, read_json

Updater = Callable[[dict | None], dict | None]


class KeyedStore(ABC):
    @abstractmethod
    def get(self, key: str) -> dict | None: ...

    @abstractmethod
    def put(self, key: str, value: dict) -> None: ...

    @abstractmethod
    def pop(self, key: str) -> dict | None: ...

    @abstractmethod
    def update(self, key: str, fn: Updater) -> dict | None:
        """Atomically replace the value with ``fn(current)``; ``None`` removes it."""

    def claim(self, key: str, value: dict, replaceable: Callable[[dict], bool]) -> bool:
        """Store ``value`` unless a current value exists that is not ``replaceable``."""
        claimed = False

        def _claim(current: dict | None) -> dict | None:
            nonlocal claimed
            if current is not None and not replaceable(current):
                return current
            claimed = True
            return value

        self.update(key, _claim)
        return claimed


class MemoryStore(KeyedStore):
    def __init__(self) -> None:
        self._items: dict[str, dict] = {}
        self._guard = Lock()

    def get(self, key: str) -> dict | None:
        with self._guard:
            value = self._items.get(key)
            return dict(value) if value is not None else None

    def put(self, key: str, value: dict) -> None:
        with self._guard:
            self._items[key] = dict(value)

    def pop(self, key: str) -> dict | None:
        with self._guard:
            return self._items.pop(key, None)

    def update(self, key: str, fn: Updater) -> dict | None:
        with self._guard:
            current = self._items.get(key)
            result = fn(dict(current) if current is not None else None)
            if result is None:
                self._items.pop(key, None)
            else:
                self._items[key] = dict(result)
            return result

    def __len__(self) -> int:
        with self._guard:
            return len(self._items)


class JsonFileStore(KeyedStore):
    """Single JSON document shared between processes through a file lock."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = json_lock(path)

    def _load(self) -> dict:
        payload = read_json(self.path, default={})
        return payload if isinstance(payload, dict) else {}

    def get(self, key: str) -> dict | None:
        with self._lock:
            value = self._load().get(key)
        return value if isinstance(value, dict) else None

    def put(self, key: str, value: dict) -> None:
        with self._lock:
            payload = self._load()
            payload[key] = value
            atomic_write_json(self.path, payload)

    def pop(self, key: str) -> dict | None:
        with self._lock:
            payload = self._load()
            value = payload.pop(key, None)
            if value is not None:
                atomic_write_json(self.path, payload)
        return value

    def update(self, key: str, fn: Updater) -> dict | None:
        with self._lock:
            payload = self._load()
            current = payload.get(key)
            result = fn(current if isinstance(current, dict) else None)
            if result is None:
                payload.pop(key, None)
            else:
                payload[key] = result
            atomic_write_json(self.path, payload)
        return result


def build_store(path: Path) -> KeyedStore:
    if settings.progress_backend == "file":
        return JsonFileStore(path)
    return MemoryStore()
