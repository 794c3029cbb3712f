"""
Session-scoped key-value stores.

Plain string values with JSON helpers, read-modify-written without locking:
exactly one writer (the orchestrator run of a session) is assumed.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal synchronous string store (the shape of a browser session store)."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def keys(self) -> list[str]:
        raise NotImplementedError

    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode a JSON value; corrupt values are logged and treated as missing."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt JSON value for key=%s", key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False, default=str))


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store; the default, and the one used in tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Store persisted as one JSON object on disk.

    Every read goes to disk so that another process (e.g. `main.py progress`)
    sees what the running orchestrator published.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError:
            logger.warning("Session store %s is corrupt; starting empty", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Session store %s does not hold an object; starting empty", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    def keys(self) -> list[str]:
        return list(self._read_all())


def make_store(path: Path | None) -> KeyValueStore:
    """File-backed store when a path is configured, in-memory otherwise."""
    if path is None:
        return InMemoryKeyValueStore()
    logger.debug("Using file-backed session store at %s", path)
    return JsonFileKeyValueStore(path)
