"""Tests for key-value store backends (Redis mocked)."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from storage.kv import JsonFileStore, MemoryStore, RedisStore, build_store


@pytest.mark.asyncio
async def test_memory_store_get_set():
    store = MemoryStore()
    assert await store.get("k") is None
    await store.set("k", "v")
    assert await store.get("k") == "v"


@pytest.mark.asyncio
async def test_file_store_round_trip(tmp_path):
    path = tmp_path / "nested" / "history.json"
    store = JsonFileStore(path)

    assert await store.get("k") is None
    await store.set("k", "[1, 2]")
    await store.set("other", "x")

    assert await JsonFileStore(path).get("k") == "[1, 2]"
    assert json.loads(path.read_text()) == {"k": "[1, 2]", "other": "x"}
    assert list(path.parent.glob("*.tmp")) == []


@pytest.mark.asyncio
async def test_file_store_overwrites_corrupt_document(tmp_path):
    path = tmp_path / "history.json"
    path.write_text("{broken")
    store = JsonFileStore(path)

    with pytest.raises(ValueError):
        await store.get("k")

    await store.set("k", "v")
    assert await store.get("k") == "v"


@pytest.mark.asyncio
async def test_redis_store_uses_client():
    store = RedisStore("redis://localhost:6379/0")
    client = MagicMock()
    client.get = AsyncMock(return_value="[]")
    client.set = AsyncMock()
    client.aclose = AsyncMock()
    store._client = client

    assert await store.get("key") == "[]"
    await store.set("key", "[1]")
    client.set.assert_awaited_once_with("key", "[1]")

    await store.close()
    client.aclose.assert_awaited_once()
    assert store._client is None


def test_redis_client_created_lazily():
    store = RedisStore("redis://localhost:6379/0")
    with patch("redis.asyncio.from_url") as from_url:
        client = store.client
        assert store.client is client
    from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)


def test_build_store_backends(tmp_path):
    assert isinstance(build_store("memory"), MemoryStore)
    assert isinstance(build_store("file"), JsonFileStore)
    with pytest.raises(ValueError, match="Unknown history backend"):
        build_store("sqlite")


def test_build_store_redis_requires_url():
    with patch("storage.kv.settings") as mock_settings:
        mock_settings.redis_url = ""
        with pytest.raises(ValueError, match="REDIS_URL"):
            build_store("redis")

        mock_settings.redis_url = "redis://cache:6379/0"
        assert isinstance(build_store("redis"), RedisStore)
