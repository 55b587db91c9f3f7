"""Namespaced key/value persistence used by the timer and scoring managers.

Values are JSON-compatible structures. Backends raise :class:`PersistenceError`
on failure; managers log it and keep their in-memory state authoritative.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import orjson
import structlog

from .errors import PersistenceError

LOGGER = structlog.get_logger(__name__)

DEFAULT_NAMESPACE = "quizcore"


@runtime_checkable
class Storage(Protocol):
    """Key/value contract consumed by the managers."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStorage:
    """In-process store. Values are encoded on write so callers never share references."""

    def __init__(self, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.namespace = namespace
        self._items: Dict[str, bytes] = {}

    def _key(self, key: str) -> str:
        return f"{self.namespace}/{key}"

    def get(self, key: str) -> Optional[Any]:
        raw = self._items.get(self._key(key))
        if raw is None:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise PersistenceError(key, f"stored value is not valid JSON ({exc})") from exc

    def set(self, key: str, value: Any) -> None:
        try:
            self._items[self._key(key)] = orjson.dumps(value)
        except TypeError as exc:
            raise PersistenceError(key, f"value is not JSON serializable ({exc})") from exc

    def remove(self, key: str) -> None:
        self._items.pop(self._key(key), None)

    def clear(self) -> None:
        prefix = f"{self.namespace}/"
        for key in [k for k in self._items if k.startswith(prefix)]:
            del self._items[key]

    def keys(self) -> list[str]:
        prefix = f"{self.namespace}/"
        return [k[len(prefix):] for k in self._items if k.startswith(prefix)]


class JsonFileStorage:
    """Store backed by a single JSON document on disk.

    The whole document is rewritten on every ``set``/``remove``, mirroring how a
    browser's localStorage persists synchronously.
    """

    def __init__(self, path: Path, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.path = Path(path)
        self.namespace = namespace
        self._cache: Dict[str, Any] = self._read()

    def _key(self, key: str) -> str:
        return f"{self.namespace}/{key}"

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as exc:
            LOGGER.error("storage.read_failed", path=str(self.path), error=str(exc))
            return {}
        if not isinstance(data, dict):
            LOGGER.warning("storage.unexpected_document", path=str(self.path))
            return {}
        return data

    def _flush(self, key: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(orjson.dumps(self._cache, option=orjson.OPT_INDENT_2))
        except (OSError, TypeError) as exc:
            raise PersistenceError(key, f"could not write {self.path} ({exc})") from exc

    def get(self, key: str) -> Optional[Any]:
        value = self._cache.get(self._key(key))
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        try:
            # Round-trip so the cache only ever holds plain JSON values.
            self._cache[self._key(key)] = orjson.loads(orjson.dumps(value))
        except TypeError as exc:
            raise PersistenceError(key, f"value is not JSON serializable ({exc})") from exc
        self._flush(key)

    def remove(self, key: str) -> None:
        if self._cache.pop(self._key(key), None) is not None:
            self._flush(key)

    def clear(self) -> None:
        prefix = f"{self.namespace}/"
        for key in [k for k in self._cache if k.startswith(prefix)]:
            del self._cache[key]
        self._flush(prefix)
