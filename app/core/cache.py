"""Cache backends for read projections such as mentor balances.

Values are plain strings; callers serialize. A write that changes a cached
projection deletes its key in the same request, so staleness is bounded by
the TTL only when an invalidation is lost.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    """Minimal key/value contract the services rely on."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class NoopCacheBackend:
    """Disables caching; every read is a miss."""

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryCacheBackend:
    """Single-process cache with lazy expiry, for development and tests."""

    def __init__(self, now_provider: Callable[[], float] | None = None) -> None:
        self._entries: dict[str, tuple[str, float | None]] = {}
        self._lock = asyncio.Lock()
        self._clock = now_provider or time.monotonic

    def _expired(self, deadline: float | None) -> bool:
        return deadline is not None and deadline <= self._clock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            value, deadline = self._entries.get(key, (None, None))
            if value is not None and self._expired(deadline):
                self._entries.pop(key, None)
                return None
            return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        deadline = self._clock() + ttl_seconds if ttl_seconds else None
        async with self._lock:
            self._entries[key] = (value, deadline)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        async with self._lock:
            self._entries.clear()


class RedisCacheBackend:
    """Shared cache for multi-instance deployments; keys are namespaced."""

    def __init__(self, *, redis_url: str, namespace: str) -> None:
        self._redis_url = redis_url
        self._namespace = namespace
        self._connect_lock = asyncio.Lock()
        self._redis: Any | None = None

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def _client(self) -> Any:
        if self._redis is None:
            async with self._connect_lock:
                if self._redis is None:
                    # redis is only imported when this backend is configured
                    from redis.asyncio import from_url

                    self._redis = from_url(self._redis_url, encoding="utf-8", decode_responses=True)
        return self._redis

    async def get(self, key: str) -> str | None:
        client = await self._client()
        return await client.get(self._key(key))

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        client = await self._client()
        await client.set(self._key(key), value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        client = await self._client()
        await client.delete(self._key(key))

    async def ping(self) -> bool:
        client = await self._client()
        return bool(await client.ping())

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


_cache_backend: CacheBackend | None = None
_cache_backend_signature: tuple[str, str | None, str] | None = None

_BACKEND_FACTORIES: dict[str, Callable[[Settings], CacheBackend]] = {
    "redis": lambda settings: RedisCacheBackend(
        redis_url=settings.redis_url or "",
        namespace=settings.cache_namespace,
    ),
    "memory": lambda settings: InMemoryCacheBackend(),
    "noop": lambda settings: NoopCacheBackend(),
}


def _build_cache_backend(settings: Settings) -> CacheBackend:
    factory = _BACKEND_FACTORIES.get(settings.cache_backend, _BACKEND_FACTORIES["noop"])
    backend = factory(settings)
    logger.debug("Cache backend %s initialised", type(backend).__name__)
    return backend


def get_cache_backend() -> CacheBackend:
    """Process-wide backend, rebuilt when the cache settings change."""
    global _cache_backend, _cache_backend_signature
    settings = get_settings()
    signature = (settings.cache_backend, settings.redis_url, settings.cache_namespace)
    if _cache_backend is None or _cache_backend_signature != signature:
        _cache_backend = _build_cache_backend(settings)
        _cache_backend_signature = signature
    return _cache_backend


async def close_cache_backend() -> None:
    global _cache_backend, _cache_backend_signature
    if _cache_backend is not None:
        await _cache_backend.close()
    _cache_backend = None
    _cache_backend_signature = None
