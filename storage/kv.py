import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from config import settings


class KeyValueStore(Protocol):
    """String key-value persistence. Either call may raise."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def close(self) -> None: ...


class MemoryStore:
    """Process-local store, used for tests and `--history-backend memory`."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def close(self) -> None:
        pass


class JsonFileStore:
    """All keys in a single JSON document on disk.

    Writes go to a temp file in the same directory and are renamed into
    place, so a crash never leaves a half-written document.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.history_path)

    async def get(self, key: str) -> Optional[str]:
        document = await asyncio.to_thread(self._read)
        value = document.get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write_key, key, value)

    async def close(self) -> None:
        pass

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        document = json.loads(self.path.read_text(encoding="utf-8"))
        return document if isinstance(document, dict) else {}

    def _write_key(self, key: str, value: str) -> None:
        try:
            document = self._read()
        except (OSError, ValueError):
            document = {}
        document[key] = value

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


class RedisStore:
    """Redis-backed store. The connection is created lazily."""

    def __init__(self, url: str | None = None):
        self.url = url or settings.redis_url
        self._client = None

    @property
    def client(self):
        """Lazy-initialized async Redis client."""
        if self._client is None:
            import redis.asyncio as aioredis

            self._client = aioredis.from_url(self.url, decode_responses=True)
        return self._client

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str) -> None:
        await self.client.set(key, value)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def build_store(backend: str | None = None) -> KeyValueStore:
    """Create the store named by settings.history_backend."""
    backend = (backend or settings.history_backend).lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "file":
        return JsonFileStore()
    if backend == "redis":
        if not settings.redis_url:
            raise ValueError("history_backend=redis requires BACKDROP_REDIS_URL")
        return RedisStore()
    raise ValueError(f"Unknown history backend: {backend!r}")
