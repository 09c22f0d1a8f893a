from __future__ import annotations

import asyncio
import json
import time

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from nutribyte.cache import (
    CacheTimeoutError,
    RedisCacheClient,
    ResponseCacheGate,
    bounded,
)


@pytest_asyncio.fixture
async def redis_gate(fake_redis):
    client = RedisCacheClient(fake_redis, retries=0)
    assert await client.connect()
    gate = ResponseCacheGate(client, read_timeout=1.0, write_timeout=1.0)
    yield gate
    await gate.close()


def test_cache_key_is_prefix_plus_path_and_query_verbatim(make_stub_cache) -> None:
    gate = ResponseCacheGate(make_stub_cache())

    assert gate.cache_key("/api/foods/search?query=apple") == (
        "api:/api/foods/search?query=apple"
    )
    assert gate.cache_key("/api/x?b=2&a=1") != gate.cache_key("/api/x?a=1&b=2")


@pytest.mark.asyncio
async def test_store_then_lookup_returns_the_same_body(redis_gate) -> None:
    body = json.dumps({"foods": [{"fdcId": 1, "description": "Apple"}]})
    key = redis_gate.cache_key("/api/foods/search?query=apple")

    assert await redis_gate.store(key, body, 1800)

    assert await redis_gate.lookup(key) == json.loads(body)
    assert await redis_gate.lookup(key) == json.loads(body)


@pytest.mark.asyncio
async def test_entries_carry_the_requested_ttl(redis_gate, fake_redis) -> None:
    await redis_gate.store("api:/a", "{}", 1800)
    await redis_gate.store("api:/b", "{}", 0)

    assert 0 < await fake_redis.ttl("api:/a") <= 1800
    assert await fake_redis.ttl("api:/b") == 1


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss(redis_gate, fake_redis) -> None:
    await fake_redis.set("api:/api/food/1", b"{not json")

    assert await redis_gate.lookup("api:/api/food/1") is None


@pytest.mark.asyncio
async def test_lookup_misses_when_client_errors(make_stub_cache) -> None:
    client = make_stub_cache(get_error=RedisConnectionError("down"))
    gate = ResponseCacheGate(client)

    assert await gate.lookup("api:/x") is None
    assert client.calls == ["get"]


@pytest.mark.asyncio
async def test_lookup_is_bounded_when_client_hangs(make_stub_cache) -> None:
    gate = ResponseCacheGate(make_stub_cache(hang=True), read_timeout=0.05)

    started = time.perf_counter()
    assert await gate.lookup("api:/x") is None
    assert time.perf_counter() - started < 1.0


@pytest.mark.asyncio
async def test_store_never_raises(make_stub_cache) -> None:
    failing = ResponseCacheGate(make_stub_cache(set_error=RedisConnectionError("down")))
    hanging = ResponseCacheGate(make_stub_cache(hang=True), write_timeout=0.05)

    assert await failing.store("api:/x", "{}", 10) is False
    assert await hanging.store("api:/x", "{}", 10) is False


@pytest.mark.asyncio
async def test_not_ready_client_is_never_called(make_stub_cache) -> None:
    client = make_stub_cache(ready=False)
    gate = ResponseCacheGate(client)

    assert await gate.lookup("api:/x") is None
    assert await gate.store("api:/x", "{}", 10) is False
    gate.store_later("api:/x", "{}", 10)
    assert await gate.clear() == 0

    assert client.calls == []
    assert gate.pending_writes == 0


@pytest.mark.asyncio
async def test_store_later_returns_before_the_write_lands(make_stub_cache) -> None:
    client = make_stub_cache()
    gate = ResponseCacheGate(client)

    gate.store_later("api:/x", '{"a": 1}', 10)
    assert gate.pending_writes == 1
    assert "api:/x" not in client.values

    await gate.close()
    assert client.values["api:/x"] == '{"a": 1}'
    assert gate.pending_writes == 0


@pytest.mark.asyncio
async def test_bounded_abandons_instead_of_cancelling() -> None:
    release = asyncio.Event()
    finished = []

    async def slow() -> str:
        await release.wait()
        finished.append(True)
        return "done"

    with pytest.raises(CacheTimeoutError):
        await bounded(slow(), 0.01)

    release.set()
    await asyncio.sleep(0.01)
    assert finished == [True]


@pytest.mark.asyncio
async def test_clear_deletes_only_matching_prefixed_keys(redis_gate, fake_redis) -> None:
    await fake_redis.set("api:/api/foods/search?query=apple", b"{}")
    await fake_redis.set("api:/api/foods/search?query=pear", b"{}")
    await fake_redis.set("api:/api/food/123", b"{}")
    await fake_redis.set("session:abc", b"{}")

    assert await redis_gate.clear("/api/foods/search*") == 2
    assert await fake_redis.exists("api:/api/food/123") == 1

    assert await redis_gate.clear() == 1
    assert await fake_redis.exists("session:abc") == 1


@pytest.mark.asyncio
async def test_clear_skips_keys_that_fail_to_delete(make_stub_cache) -> None:
    client = make_stub_cache(values={"api:/a": "{}", "api:/b": "{}", "api:/c": "{}"})
    client.failing_deletes.add("api:/b")
    gate = ResponseCacheGate(client)

    assert await gate.clear() == 2
    assert list(client.values) == ["api:/b"]


@pytest.mark.asyncio
async def test_entry_expires_after_its_ttl(redis_gate) -> None:
    key = redis_gate.cache_key("/api/food/12345")
    await redis_gate.store(key, '{"fdcId": 12345}', 1)

    assert await redis_gate.lookup(key) == {"fdcId": 12345}

    await asyncio.sleep(1.1)
    assert await redis_gate.lookup(key) is None
