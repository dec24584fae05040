from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from storecart.core.config import Settings, settings
from storecart.core.redis_client import get_redis

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.:-]{1,128}$")

# Failures a storage backend can raise when its medium is unreachable.
STORAGE_ERRORS: tuple[type[Exception], ...] = (OSError, RedisError)


class StorageConfigError(RuntimeError):
    pass


class KeyValueStorage(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage; used for tab-scoped session data and in tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._data


class FileStorage:
    """Durable storage keeping one file per key under a root directory."""

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root or settings.durable_storage_path)

    def _path_for(self, key: str) -> Path:
        if not _KEY_RE.match(key or ""):
            raise ValueError(f"Invalid storage key {key!r}")
        return self.root / f"{key}.json"

    async def get(self, key: str) -> str | None:
        path = self._path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    async def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        self.root.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    async def delete(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)


class RedisStorage:
    """Durable storage shared by every process pointing at the same Redis."""

    def __init__(self, client: Redis, *, namespace: str = "storecart") -> None:
        self.client = client
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> str | None:
        return await self.client.get(self._key(key))

    async def set(self, key: str, value: str) -> None:
        await self.client.set(self._key(key), value)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))


def build_durable_storage(config: Settings | None = None) -> KeyValueStorage:
    cfg = config or settings
    backend = cfg.durable_storage_backend
    if backend == "memory":
        return MemoryStorage()
    if backend == "redis":
        client = get_redis()
        if client is None:
            raise StorageConfigError("STORECART_REDIS_URL is required for the redis storage backend")
        return RedisStorage(client)
    return FileStorage(cfg.durable_storage_path)
