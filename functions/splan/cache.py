"""
Optional cache layer.

The Redis connection is best-effort: when REDIS_URL is missing or the
handshake fails the service keeps running and every cache read misses.
Call sites only ever talk to the ``Cache`` interface, never to the raw
Redis client.
"""

from __future__ import annotations

import enum
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

from splan.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
MEMORY_CACHE_SIZE = 1000

# Errors that mean "the cache is not there right now".
CACHE_ERRORS = (redis_exceptions.RedisError, OSError)
# from_url raises ValueError for a malformed URL.
CONNECT_ERRORS = CACHE_ERRORS + (ValueError,)


class CacheState(str, enum.Enum):
    ABSENT = "absent"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class CacheConnection:
    """
    Lifecycle wrapper around a single Redis client.

    Owned by the application lifespan: ``connect()`` on startup and
    ``disconnect()`` on shutdown. Neither call raises.
    """

    def __init__(
        self,
        url: Optional[str],
        *,
        socket_timeout: float = 5.0,
        client_factory: Callable[..., redis.Redis] = redis.Redis.from_url,
    ):
        self.url = url
        self.socket_timeout = socket_timeout
        self._client_factory = client_factory
        self.client: Optional[redis.Redis] = None
        self.state = CacheState.ABSENT

    @property
    def is_connected(self) -> bool:
        return self.client is not None and self.state == CacheState.CONNECTED

    def connect(self) -> None:
        if not self.url:
            logger.info("Redis URL not provided, skipping Redis connection")
            return
        if self.client is not None:
            return

        self.state = CacheState.CONNECTING
        try:
            client = self._client_factory(
                self.url,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
            )
            client.ping()
        except CONNECT_ERRORS as exc:
            logger.warning(
                "Redis connection failed, continuing without Redis: %s", exc
            )
            self.client = None
            self.state = CacheState.ABSENT
            return

        self.client = client
        self.state = CacheState.CONNECTED
        logger.info("Redis connected successfully")

    def disconnect(self) -> None:
        if self.client is None:
            return
        try:
            self.client.close()
            logger.info("Redis disconnected successfully")
        except CACHE_ERRORS as exc:
            logger.error("Redis disconnection failed: %s", exc)
        finally:
            self.client = None
            self.state = CacheState.DISCONNECTED


class Cache(Protocol):
    """Operations the rest of the service may perform against the cache."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...

    def stats(self) -> dict:
        ...


class NullCache:
    """Disabled cache: every read misses and writes are dropped."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        return None

    def delete(self, key: str) -> None:
        return None

    def clear(self) -> None:
        return None

    def stats(self) -> dict:
        return {"backend": "disabled", "redis_connected": False}


@dataclass
class _MemoryEntry:
    value: Any
    stored_at: float
    expires_at: float


@dataclass
class MemoryCache:
    """Per-process TTL cache for development and tests."""

    default_ttl: int = DEFAULT_TTL_SECONDS
    max_entries: int = MEMORY_CACHE_SIZE
    entries: dict[str, _MemoryEntry] = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self.entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= time.time():
                del self.entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        now = time.time()
        with self._lock:
            if key not in self.entries and len(self.entries) >= self.max_entries:
                self._evict(now)
            self.entries[key] = _MemoryEntry(
                value=value,
                stored_at=now,
                expires_at=now + (ttl or self.default_ttl),
            )

    def _evict(self, now: float) -> None:
        expired = [k for k, e in self.entries.items() if e.expires_at <= now]
        for key in expired:
            del self.entries[key]
        if len(self.entries) < self.max_entries:
            return
        oldest = sorted(self.entries.items(), key=lambda item: item[1].stored_at)
        for key, _ in oldest[: max(1, int(self.max_entries * 0.2))]:
            del self.entries[key]

    def delete(self, key: str) -> None:
        with self._lock:
            self.entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self.entries.clear()

    def stats(self) -> dict:
        return {
            "backend": "memory",
            "redis_connected": False,
            "entries": len(self.entries),
        }


@dataclass
class RedisCache:
    """
    Redis-backed cache. Values are stored as JSON under ``key_prefix``.

    Behaves like ``NullCache`` while the connection holds no client, and
    turns any Redis error into a miss.
    """

    connection: CacheConnection
    key_prefix: str = "splan"
    default_ttl: int = DEFAULT_TTL_SECONDS

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    def get(self, key: str) -> Optional[Any]:
        client = self.connection.client
        if client is None:
            return None
        try:
            raw = client.get(self._key(key))
        except CACHE_ERRORS as exc:
            logger.warning("Cache get failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Dropping undecodable cache entry %s", key)
            return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        client = self.connection.client
        if client is None:
            return
        try:
            client.setex(
                self._key(key), ttl or self.default_ttl, json.dumps(value, default=str)
            )
        except CACHE_ERRORS as exc:
            logger.warning("Cache set failed for %s: %s", key, exc)

    def delete(self, key: str) -> None:
        client = self.connection.client
        if client is None:
            return
        try:
            client.delete(self._key(key))
        except CACHE_ERRORS as exc:
            logger.warning("Cache delete failed for %s: %s", key, exc)

    def clear(self) -> None:
        client = self.connection.client
        if client is None:
            return
        try:
            keys = list(client.scan_iter(match=self._key("*")))
            if keys:
                client.delete(*keys)
        except CACHE_ERRORS as exc:
            logger.warning("Cache clear failed: %s", exc)

    def stats(self) -> dict:
        return {
            "backend": "redis",
            "redis_connected": self.connection.is_connected,
            "state": self.connection.state.value,
        }


def build_cache(settings: Settings, connection: CacheConnection) -> Cache:
    if settings.redis_url:
        return RedisCache(
            connection=connection,
            key_prefix=settings.cache_key_prefix,
            default_ttl=settings.cache_ttl_seconds,
        )
    if settings.use_in_memory_backends:
        return MemoryCache(default_ttl=settings.cache_ttl_seconds)
    return NullCache()


def cached(
    cache: Cache, key: str, loader: Callable[[], Any], ttl: int | None = None
) -> Any:
    """
    Read-through helper. The loader always answers a miss, so a dead cache
    only costs the extra trip to the primary store.
    """
    hit = cache.get(key)
    if hit is not None:
        return hit
    value = loader()
    cache.set(key, value, ttl)
    return value
