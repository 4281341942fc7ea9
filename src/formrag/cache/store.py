"""Key-value cache adapters."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Protocol

from redis import asyncio as redis_async
from redis.exceptions import RedisError

from formrag.errors import CacheError
from formrag.metrics.observability import get_logger

_logger = get_logger("cache")


class CacheStore(Protocol):
    """Protocol for JSON-valued caches with per-key TTL."""

    async def get(self, key: str) -> Any | None:
        """Return the decoded value, or ``None`` when missing or unreadable."""

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store ``value`` as JSON, expiring after ``ttl`` seconds."""

    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    async def exists(self, key: str) -> bool:
        """Return whether ``key`` is currently set."""

    async def ping(self) -> bool:
        """Round-trip to the backend."""

    async def close(self) -> None:
        """Release the underlying connection."""


class RedisCacheStore:
    """Redis-backed cache; one long-lived client per process."""

    def __init__(self, client: redis_async.Redis, default_ttl: int = 3600) -> None:
        self._redis = client
        self._default_ttl = default_ttl

    @classmethod
    def from_url(cls, url: str, default_ttl: int = 3600) -> "RedisCacheStore":
        client = redis_async.from_url(url, decode_responses=True)
        return cls(client, default_ttl=default_ttl)

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            _logger.error("cache.get_failed", key=key, error=str(exc))
            raise CacheError(f"get {key} failed: {exc}") from exc
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            _logger.warning("cache.corrupt_value", key=key)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self._redis.set(key, json.dumps(value), ex=ttl or self._default_ttl)
        except RedisError as exc:
            _logger.error("cache.set_failed", key=key, error=str(exc))
            raise CacheError(f"set {key} failed: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            raise CacheError(f"delete {key} failed: {exc}") from exc

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._redis.exists(key))
        except RedisError as exc:
            raise CacheError(f"exists {key} failed: {exc}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            raise CacheError(f"ping failed: {exc}") from exc

    async def close(self) -> None:
        await self._redis.aclose()
        _logger.info("cache.closed")


class InMemoryCacheStore:
    """Process-local cache used for development and tests."""

    def __init__(self, default_ttl: int = 3600) -> None:
        self._default_ttl = default_ttl
        self._lock = asyncio.Lock()
        self._entries: dict[str, tuple[float, str]] = {}

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._live_entry(key)
        if entry is None:
            return None
        try:
            return json.loads(entry)
        except json.JSONDecodeError:
            _logger.warning("cache.corrupt_value", key=key)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + (ttl or self._default_ttl)
        async with self._lock:
            self._entries[key] = (expires_at, json.dumps(value))

    async def set_raw(self, key: str, raw: str, ttl: int | None = None) -> None:
        """Store an undecoded payload; lets tests simulate corrupt entries."""

        expires_at = time.monotonic() + (ttl or self._default_ttl)
        async with self._lock:
            self._entries[key] = (expires_at, raw)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live_entry(key) is not None

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        async with self._lock:
            self._entries.clear()

    def _live_entry(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if expires_at <= time.monotonic():
            self._entries.pop(key, None)
            return None
        return raw
