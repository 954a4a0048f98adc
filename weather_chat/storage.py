"""Key-value storage media for the session store.

The store writes plain strings under a handful of fixed keys, the same
contract browser local storage offers. ``JsonFileStorage`` keeps every
key in one JSON document on disk:

Default location: ~/.weather-chat/storage.json
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from .errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PATH = Path.home() / ".weather-chat" / "storage.json"


class KeyValueStorage(ABC):
    """String key -> string value storage."""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``. Raises StorageError on failure."""
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...

    def has_item(self, key: str) -> bool:
        return self.get_item(key) is not None


class MemoryStorage(KeyValueStorage):
    """In-process storage; nothing survives the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileStorage(KeyValueStorage):
    """Persistent storage backed by a single JSON object file."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path else DEFAULT_STORAGE_PATH
        self._cache: dict[str, str] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if self._path.exists():
            try:
                data = json.loads(self._path.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    self._cache = {k: v for k, v in data.items() if isinstance(v, str)}
            except (ValueError, OSError) as e:
                logger.warning(f"Ignoring unreadable storage file {self._path}: {e}")
                self._cache = {}

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(json.dumps(self._cache, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as e:
            raise StorageError(f"Could not write {self._path}: {e}") from e

    def get_item(self, key: str) -> str | None:
        return self._cache.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._cache[key] = value
        self._save()

    def remove_item(self, key: str) -> None:
        if self._cache.pop(key, None) is not None:
            self._save()
