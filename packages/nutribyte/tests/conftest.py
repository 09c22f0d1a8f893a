from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from redis.exceptions import ConnectionError as RedisConnectionError

from nutribyte.cluster import set_cluster_view
from nutribyte.config import Settings

_ENV_VARS = (
    "ENABLE_CLUSTERING",
    "REDIS_ENABLED",
    "REDISCLOUD_URL",
    "USDA_API_KEY",
    "NUTRIBYTE_ENV",
    "NUTRIBYTE_WORKERS",
    "NUTRIBYTE_CLUSTERING_ENABLED",
    "NUTRIBYTE_CACHE_ENABLED",
    "NUTRIBYTE_REDIS_URL",
    "NUTRIBYTE_USDA_API_KEY",
)


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    set_cluster_view(None)


@pytest.fixture
def make_settings():
    def _make(**overrides: object) -> Settings:
        return Settings(_env_file=None, **overrides)  # type: ignore[call-arg]

    return _make


@pytest_asyncio.fixture
async def fake_redis() -> AsyncIterator[FakeRedis]:
    client = FakeRedis(decode_responses=False)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


class StubCacheClient:
    """Scriptable cache client that counts every call."""

    def __init__(
        self,
        *,
        ready: bool = True,
        get_error: BaseException | None = None,
        set_error: BaseException | None = None,
        hang: bool = False,
        hang_writes: bool = False,
        hang_connect: bool = False,
        values: dict[str, str] | None = None,
    ) -> None:
        self._ready = ready
        self._get_error = get_error
        self._set_error = set_error
        self._hang = hang
        self._hang_writes = hang or hang_writes
        self._hang_connect = hang_connect
        self.values = dict(values or {})
        self.calls: list[str] = []
        self.failing_deletes: set[str] = set()

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def connect(self) -> bool:
        if self._hang_connect:
            await asyncio.Event().wait()
        return self._ready

    async def _maybe_hang(self, *, write: bool = False) -> None:
        if self._hang_writes if write else self._hang:
            await asyncio.Event().wait()

    async def get(self, key: str) -> str | None:
        self.calls.append("get")
        await self._maybe_hang()
        if self._get_error is not None:
            raise self._get_error
        return self.values.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.calls.append("set")
        await self._maybe_hang(write=True)
        if self._set_error is not None:
            raise self._set_error
        self.values[key] = value

    async def delete(self, key: str) -> int:
        self.calls.append("delete")
        if key in self.failing_deletes:
            raise RedisConnectionError("connection reset")
        return 1 if self.values.pop(key, None) is not None else 0

    async def scan(self, pattern: str) -> list[str]:
        self.calls.append("scan")
        prefix = pattern.rstrip("*")
        return [key for key in self.values if key.startswith(prefix)]

    async def close(self) -> None:
        return None


@pytest.fixture
def make_stub_cache():
    return StubCacheClient
