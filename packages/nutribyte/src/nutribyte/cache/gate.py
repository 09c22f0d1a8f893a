"""Response cache gate.

Short-circuits expensive upstream GET requests with cached JSON bodies. Every
cache operation is bounded: it races the operation against a timer and, on
timeout, abandons the operation (it is left to finish or fail on its own) and
carries on as if it had failed. A slow, unreachable or corrupt cache therefore
degrades to "no cache" instead of a slow or failed request.

Cache keys are ``<prefix><path>?<query>`` verbatim. Queries that differ only
in parameter order map to different keys.
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from nutribyte.cache.client import CacheClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_KEY_PREFIX = "api:"
DEFAULT_READ_TIMEOUT = 0.2
DEFAULT_WRITE_TIMEOUT = 0.5


class CacheTimeoutError(TimeoutError):
    """A bounded cache operation did not finish within its budget."""


def _consume_result(task: "asyncio.Future[Any]") -> None:
    # Abandoned operations may still fail; retrieve the error so it is not
    # reported as "exception was never retrieved".
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned cache operation failed: %s", exc)


async def bounded(operation: Awaitable[T], timeout: float) -> T:
    """Await ``operation`` for at most ``timeout`` seconds.

    On timeout the operation keeps running in the background, its outcome is
    ignored and ``CacheTimeoutError`` is raised.
    """
    task = asyncio.ensure_future(operation)
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if task not in done:
        task.add_done_callback(_consume_result)
        raise CacheTimeoutError(f"cache operation exceeded {timeout:.3f}s")
    return task.result()


class ResponseCacheGate:
    """Read-through/write-through cache for JSON responses."""

    def __init__(
        self,
        client: CacheClient,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        write_timeout: float = DEFAULT_WRITE_TIMEOUT,
    ) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self._pending_writes: set[asyncio.Task[bool]] = set()

    @property
    def enabled(self) -> bool:
        return self.client.is_ready

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    def cache_key(self, path_with_query: str) -> str:
        return f"{self.key_prefix}{path_with_query}"

    async def lookup(self, key: str) -> Any | None:
        """Return the cached JSON payload for ``key``, or None on any kind of miss."""
        if not self.client.is_ready:
            return None
        try:
            raw = await bounded(self.client.get(key), self.read_timeout)
        except CacheTimeoutError:
            logger.warning("Cache read timed out for %s", key)
            return None
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            return None

        if raw is None:
            logger.debug("Cache miss for %s", key)
            return None
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            logger.warning("Discarding corrupt cache entry %s: %s", key, exc)
            return None
        logger.debug("Cache hit for %s", key)
        return payload

    async def store(self, key: str, body: str, ttl_seconds: int) -> bool:
        """Write ``body`` under ``key`` within the write budget. Never raises."""
        if not self.client.is_ready:
            return False
        try:
            await bounded(self.client.set(key, body, ttl_seconds), self.write_timeout)
        except CacheTimeoutError:
            logger.warning("Cache write timed out for %s", key)
            return False
        except Exception as exc:
            logger.error("Failed to cache response for %s: %s", key, exc)
            return False
        return True

    def store_later(self, key: str, body: str, ttl_seconds: int) -> None:
        """Schedule ``store`` without waiting for it."""
        if not self.client.is_ready:
            return
        task = asyncio.create_task(self.store(key, body, ttl_seconds))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def clear(self, pattern: str | None = None) -> int:
        """Delete every entry whose key matches ``<prefix><pattern>``.

        Keys are deleted one by one; failures are logged and skipped.
        """
        if not self.client.is_ready:
            logger.warning("Redis not available, cannot clear cache")
            return 0
        match = self.cache_key(pattern or "*")
        try:
            keys = await self.client.scan(match)
        except Exception as exc:
            logger.error("Failed to clear cache: %s", exc)
            return 0

        if not keys:
            logger.info("No cache entries found to clear")
            return 0

        logger.info("Clearing %s cache entries", len(keys))
        results = await asyncio.gather(
            *(self.client.delete(key) for key in keys),
            return_exceptions=True,
        )
        cleared = 0
        for key, result in zip(keys, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Failed to delete cache entry %s: %s", key, result)
                continue
            cleared += int(result)
        return cleared

    async def close(self, timeout: float | None = None) -> None:
        """Give outstanding writes a bounded chance to finish."""
        if not self._pending_writes:
            return
        _, pending = await asyncio.wait(
            set(self._pending_writes),
            timeout=self.write_timeout if timeout is None else timeout,
        )
        for task in pending:
            task.cancel()
        if pending:
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.gather(*pending, return_exceptions=True)
