"""Redis-backed response cache."""

from nutribyte.cache.client import (
    CacheClient,
    NullCacheClient,
    RedisCacheClient,
    create_cache_client,
)
from nutribyte.cache.gate import CacheTimeoutError, ResponseCacheGate, bounded
from nutribyte.cache.middleware import CacheGateMiddleware, CacheRule

__all__ = [
    "CacheClient",
    "CacheGateMiddleware",
    "CacheRule",
    "CacheTimeoutError",
    "NullCacheClient",
    "RedisCacheClient",
    "ResponseCacheGate",
    "bounded",
    "create_cache_client",
]
