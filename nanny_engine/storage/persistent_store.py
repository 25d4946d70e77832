"""
Durable key-value storage for engine state.

The reconciliation cache is serialized as a JSON-compatible map and kept
under a fixed key. Backends: in-memory (tests), JSON file, Redis.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import redis.asyncio as redis

from ..config import StorageSettings

logger = logging.getLogger(__name__)


class PersistentStore(ABC):
    """Minimal get/set capability for JSON-compatible values."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a JSON-compatible value under key."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryStore(PersistentStore):
    """
    Process-local store.

    Values are round-tripped through JSON so callers cannot keep references
    into stored state.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._data[key] = json.dumps(value)

    async def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def keys(self):
        return list(self._data.keys())


class JsonFileStore(PersistentStore):
    """
    Store backed by a single JSON document on disk.

    Writes go to a temporary sibling file and are moved into place so a
    crash mid-write never leaves a truncated document.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring state file {self.path}: not a JSON object")
            return {}
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh)
        tmp_path.replace(self.path)

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            return self._read_all().get(key)

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)


class RedisStore(PersistentStore):
    """Store backed by Redis, one JSON string per key."""

    def __init__(
        self,
        url: Optional[str] = None,
        prefix: str = "nanny",
        client: Optional[redis.Redis] = None,
    ):
        self.prefix = prefix
        self._url = url
        self._client = client

    def _key(self, key: str) -> str:
        """Build key with prefix."""
        return f"{self.prefix}:{key}"

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self._url,
                encoding='utf-8',
                decode_responses=True,
            )
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        client = await self._get_client()
        value = await client.get(self._key(key))
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning(f"Discarding non-JSON value stored under {self._key(key)}")
            return None

    async def set(self, key: str, value: Any) -> None:
        client = await self._get_client()
        await client.set(self._key(key), json.dumps(value))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def create_store(settings: StorageSettings) -> PersistentStore:
    """
    Create the configured store backend.

    Args:
        settings: Storage settings.

    Returns:
        PersistentStore instance.
    """
    backend = settings.backend.lower()
    if backend == "memory":
        return InMemoryStore()
    if backend == "file":
        return JsonFileStore(settings.file_path)
    if backend == "redis":
        return RedisStore(url=settings.redis_url, prefix=settings.redis_prefix)
    raise ValueError(f"Unknown storage backend: {settings.backend}")
