from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .config import AppSettings, get_settings
from .errors import StoreUnavailableError
from .logging import get_logger

logger = get_logger(__name__)

# Writes ARGV[2] with a PX of ARGV[3] only while the stored JSON document
# still carries version ARGV[1].
SET_IF_VERSION_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then
  return 0
end
local ok, decoded = pcall(cjson.decode, current)
if not ok or tonumber(decoded['version']) ~= tonumber(ARGV[1]) then
  return 0
end
redis.call('SET', KEYS[1], ARGV[2], 'PX', ARGV[3])
return 1
"""


class InMemoryKeyValueStore:
    """Key-value store that mimics the Redis interface for tests."""

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.time
        self._values: dict[str, tuple[str, float | None]] = {}
        self._sets: dict[str, set[str]] = {}

    def _live_value(self, key: str) -> str | None:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if deadline is not None and self._clock() >= deadline:
            del self._values[key]
            return None
        return value

    def _deadline(self, ttl_ms: int | None) -> float | None:
        if ttl_ms is None:
            return None
        return self._clock() + ttl_ms / 1000

    async def get(self, key: str) -> str | None:
        return self._live_value(key)

    async def set(self, key: str, value: str, *, ttl_ms: int | None = None) -> None:
        self._values[key] = (value, self._deadline(ttl_ms))

    async def set_if_absent(self, key: str, value: str, *, ttl_ms: int | None = None) -> bool:
        if self._live_value(key) is not None:
            return False
        self._values[key] = (value, self._deadline(ttl_ms))
        return True

    async def set_if_version(
        self, key: str, expected_version: int, value: str, *, ttl_ms: int
    ) -> bool:
        current = self._live_value(key)
        if current is None:
            return False
        try:
            stored_version = json.loads(current).get("version")
        except ValueError:
            return False
        if stored_version != expected_version:
            return False
        self._values[key] = (value, self._deadline(ttl_ms))
        return True

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)

    async def add_member(self, key: str, member: str) -> None:
        self._sets.setdefault(key, set()).add(member)

    async def remove_member(self, key: str, member: str) -> None:
        self._sets.get(key, set()).discard(member)

    async def members(self, key: str) -> set[str]:
        return set(self._sets.get(key, set()))

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


@asynccontextmanager
async def _translate_errors(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as exc:
        logger.error("Store %s failed: %s", operation, exc, exc_info=True)
        raise StoreUnavailableError("store unavailable") from exc
    except RedisError as exc:
        logger.error("Store %s failed: %s", operation, exc, exc_info=True)
        raise StoreUnavailableError("store error") from exc


class RedisKeyValueStore:
    """Wrapper around a real Redis connection."""

    def __init__(self, client: Any) -> None:
        self._client = client
        self._set_if_version = client.register_script(SET_IF_VERSION_SCRIPT)

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisKeyValueStore":
        return cls(Redis.from_url(redis_url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        async with _translate_errors("get"):
            value = await self._client.get(key)
        if isinstance(value, bytes):
            value = value.decode()
        return value

    async def set(self, key: str, value: str, *, ttl_ms: int | None = None) -> None:
        async with _translate_errors("set"):
            await self._client.set(key, value, px=ttl_ms)

    async def set_if_absent(self, key: str, value: str, *, ttl_ms: int | None = None) -> bool:
        async with _translate_errors("set_if_absent"):
            created = await self._client.set(key, value, px=ttl_ms, nx=True)
        return bool(created)

    async def set_if_version(
        self, key: str, expected_version: int, value: str, *, ttl_ms: int
    ) -> bool:
        async with _translate_errors("set_if_version"):
            written = await self._set_if_version(keys=[key], args=[expected_version, value, ttl_ms])
        return bool(written)

    async def delete(self, key: str) -> None:
        async with _translate_errors("delete"):
            await self._client.delete(key)

    async def add_member(self, key: str, member: str) -> None:
        async with _translate_errors("add_member"):
            await self._client.sadd(key, member)

    async def remove_member(self, key: str, member: str) -> None:
        async with _translate_errors("remove_member"):
            await self._client.srem(key, member)

    async def members(self, key: str) -> set[str]:
        async with _translate_errors("members"):
            raw = await self._client.smembers(key)
        return {item.decode() if isinstance(item, bytes) else item for item in raw}

    async def ping(self) -> bool:
        async with _translate_errors("ping"):
            return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


KeyValueStore = InMemoryKeyValueStore | RedisKeyValueStore

_store_instance: RedisKeyValueStore | None = None


def connect_kv_store(settings: AppSettings) -> RedisKeyValueStore:
    """Return the process-wide Redis store, connecting on first use."""
    global _store_instance  # noqa: PLW0603
    if _store_instance is None:
        _store_instance = RedisKeyValueStore.from_url(settings.redis_url)
    return _store_instance


def get_kv_store(settings: AppSettings = Depends(get_settings)) -> RedisKeyValueStore:
    return connect_kv_store(settings)


async def close_kv_store() -> None:
    global _store_instance  # noqa: PLW0603
    if _store_instance is not None:
        await _store_instance.close()
        _store_instance = None
