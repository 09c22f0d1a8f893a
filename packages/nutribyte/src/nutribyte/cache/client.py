"""Injectable cache capability.

The response cache gate never touches a global client. It receives a
``CacheClient``: a Redis-backed one when caching is enabled, or the no-op
``NullCacheClient`` when it is disabled.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

import redis.asyncio as aioredis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from nutribyte.config import Settings

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


class CacheClient(Protocol):
    @property
    def is_ready(self) -> bool: ...

    async def connect(self) -> bool: ...

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> int: ...

    async def scan(self, pattern: str) -> list[str]: ...

    async def close(self) -> None: ...


class NullCacheClient:
    """Cache client that stores nothing and is never ready."""

    @property
    def is_ready(self) -> bool:
        return False

    async def connect(self) -> bool:
        return False

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        return None

    async def delete(self, key: str) -> int:
        return 0

    async def scan(self, pattern: str) -> list[str]:
        return []

    async def close(self) -> None:
        return None


def _decode(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisCacheClient:
    """Redis-backed cache client with a bounded reconnect policy.

    ``connect`` retries with increasing backoff and gives up after
    ``retries`` attempts. A connection failure at runtime marks the client
    not ready and schedules one more bounded reconnect cycle; once a cycle is
    exhausted the client stays not ready for the rest of the process lifetime.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        retries: int = 3,
        backoff_base: float = 0.1,
        backoff_cap: float = 3.0,
        maxmemory_policy: str | None = None,
        maxmemory: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._redis = client
        self._retries = max(retries, 0)
        self._backoff = ExponentialBackoff(cap=backoff_cap, base=backoff_base)
        self._maxmemory_policy = maxmemory_policy
        self._maxmemory = maxmemory
        self._sleep = sleep
        self._ready = False
        self._gave_up = False
        self._reconnect_task: asyncio.Task[bool] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisCacheClient":
        client = aioredis.from_url(
            settings.redis_url,
            decode_responses=False,
            socket_connect_timeout=settings.cache_connect_timeout_seconds,
        )
        return cls(
            client,
            retries=settings.cache_reconnect_retries,
            backoff_base=settings.cache_reconnect_base_ms / 1000,
            backoff_cap=settings.cache_reconnect_max_ms / 1000,
            maxmemory_policy=settings.cache_maxmemory_policy,
            maxmemory=settings.cache_maxmemory if settings.is_production else None,
        )

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def gave_up(self) -> bool:
        return self._gave_up

    async def connect(self) -> bool:
        """Connect, retrying with backoff. Returns whether the client is ready."""
        if self._gave_up:
            return False
        for attempt in range(self._retries + 1):
            try:
                await self._redis.ping()
            except (RedisError, OSError) as exc:
                if attempt >= self._retries:
                    logger.warning(
                        "Redis connection failed after %s retries: %s",
                        self._retries,
                        exc,
                    )
                    break
                delay = self._backoff.compute(attempt + 1)
                logger.info("Redis client reconnecting in %.2fs...", delay)
                await self._sleep(delay)
                continue

            self._ready = True
            await self._apply_memory_policy()
            logger.info("Connected to Redis")
            return True

        self._ready = False
        self._gave_up = True
        logger.warning("Redis caching disabled for this process")
        return False

    async def _apply_memory_policy(self) -> None:
        """Best-effort memory settings; hosted Redis often forbids CONFIG."""
        try:
            if self._maxmemory_policy:
                await self._redis.config_set("maxmemory-policy", self._maxmemory_policy)
            if self._maxmemory:
                await self._redis.config_set("maxmemory", self._maxmemory)
        except RedisError as exc:
            logger.warning("Could not configure Redis memory settings: %s", exc)

    def _on_connection_error(self, exc: BaseException) -> None:
        if not self._ready:
            return
        self._ready = False
        logger.error("Redis client error: %s", exc)
        if self._gave_up:
            return
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self.connect())

    async def get(self, key: str) -> str | None:
        try:
            value = await self._redis.get(key)
        except _CONNECTION_ERRORS as exc:
            self._on_connection_error(exc)
            raise
        if value is None:
            return None
        return _decode(value)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._redis.set(key, value, ex=max(int(ttl_seconds), 1))
        except _CONNECTION_ERRORS as exc:
            self._on_connection_error(exc)
            raise

    async def delete(self, key: str) -> int:
        try:
            return int(await self._redis.delete(key))
        except _CONNECTION_ERRORS as exc:
            self._on_connection_error(exc)
            raise

    async def scan(self, pattern: str) -> list[str]:
        try:
            return [_decode(key) async for key in self._redis.scan_iter(match=pattern)]
        except _CONNECTION_ERRORS as exc:
            self._on_connection_error(exc)
            raise

    async def close(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reconnect_task
        self._ready = False
        try:
            await self._redis.aclose()
            logger.info("Redis connection closed")
        except RedisError as exc:
            logger.error("Error closing Redis connection: %s", exc)


def create_cache_client(settings: Settings) -> CacheClient:
    """Build the cache client for this process from configuration."""
    if not settings.cache_enabled:
        logger.info("Redis explicitly disabled via configuration")
        return NullCacheClient()
    return RedisCacheClient.from_settings(settings)
