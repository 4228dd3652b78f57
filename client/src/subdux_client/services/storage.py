"""
Durable key-value storage used by the credential store, the rate cache and
the currency preference.

All backends expose the same small synchronous surface (``init``, ``get``,
``set``, ``delete``, ``delete_many``) over string keys and string values.
Reads and writes are deliberately synchronous: they never suspend, so a
read-modify-write sequence performed by one component cannot interleave
with another coroutine on the same event loop.

* :class:`MemoryStorage` keeps everything in a dict.
* :class:`JsonFileStorage` persists all keys in one JSON document.
* :class:`RedisStorage` keeps all keys in one Redis hash so several
  processes can share a session.  Writes are last-write-wins.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Iterable, Optional

import redis


logger = logging.getLogger(__name__)


class KeyValueStorage:
    """Abstract base class for storage backends."""

    def init(self) -> None:
        """Prepare the backend; safe to call more than once."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        self.delete_many([key])

    def delete_many(self, keys: Iterable[str]) -> None:
        """Remove every key in one write."""
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        """Copy of the stored values, mostly for tests."""
        return dict(self._data)


class JsonFileStorage(KeyValueStorage):
    """Store all keys in a single JSON object on disk.

    The file is re-read on every access so that separate processes pointed
    at the same path see each other's writes.  A missing or unreadable file
    behaves as an empty store.
    """

    def __init__(self, path: str = "subdux_state.json") -> None:
        self.path = os.path.abspath(path)

    def init(self) -> None:
        if os.path.exists(self.path):
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._write_file({})

    def _read_file(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data: Any = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring storage file %s: top level is not an object", self.path)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write_file(self, data: Dict[str, str]) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Optional[str]:
        return self._read_file().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_file()
        data[key] = value
        self._write_file(data)

    def delete_many(self, keys: Iterable[str]) -> None:
        data = self._read_file()
        removed = False
        for key in keys:
            if key in data:
                del data[key]
                removed = True
        if removed:
            self._write_file(data)


class RedisStorage(KeyValueStorage):
    """Keep every key as a field of one Redis hash."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        *,
        namespace: str = "subdux:client",
        client: Optional[Any] = None,
    ) -> None:
        self.namespace = namespace
        self._client = client if client is not None else redis.Redis(
            host=host, port=port, decode_responses=True
        )

    def get(self, key: str) -> Optional[str]:
        value = self._client.hget(self.namespace, key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        self._client.hset(self.namespace, key, value)

    def delete_many(self, keys: Iterable[str]) -> None:
        fields = list(keys)
        if fields:
            self._client.hdel(self.namespace, *fields)


def build_storage(settings: Any) -> KeyValueStorage:
    """Return the backend selected by ``settings.storage_backend``."""
    backend = settings.storage_backend
    if backend == "file":
        storage: KeyValueStorage = JsonFileStorage(settings.storage_path)
    elif backend == "redis":
        storage = RedisStorage(settings.redis_host, settings.redis_port)
    else:
        storage = MemoryStorage()
    storage.init()
    return storage


__all__ = [
    "KeyValueStorage",
    "MemoryStorage",
    "JsonFileStorage",
    "RedisStorage",
    "build_storage",
]
