from __future__ import annotations

import httpx
import pytest

from nutribyte.services import FoodDataCentralClient, MissingApiKeyError, UpstreamError


def _client(handler, *, api_key: str | None = "key") -> FoodDataCentralClient:
    return FoodDataCentralClient(
        base_url="https://fdc.example/v1/",
        api_key=api_key,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_get_food_proxies_path_and_params() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"fdcId": 171688})

    client = _client(handler)
    try:
        assert await client.get_food("171688", {"format": "abridged"}) == {"fdcId": 171688}
    finally:
        await client.close()

    [request] = seen
    assert request.url.path == "/v1/food/171688"
    assert request.url.params["format"] == "abridged"
    assert request.url.params["api_key"] == "key"


@pytest.mark.asyncio
async def test_missing_key_raises_before_any_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("upstream must not be called")

    client = _client(handler, api_key=None)
    try:
        assert client.has_api_key is False
        with pytest.raises(MissingApiKeyError):
            await client.search_foods({"query": "apple"})
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_upstream_status_and_body_are_preserved() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"code": "OVER_RATE_LIMIT"}})

    client = _client(handler)
    try:
        with pytest.raises(UpstreamError) as exc_info:
            await client.search_foods({"query": "apple"})
    finally:
        await client.close()

    assert exc_info.value.status_code == 429
    assert exc_info.value.detail == {"error": {"code": "OVER_RATE_LIMIT"}}


@pytest.mark.asyncio
async def test_transport_failure_has_no_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    client = _client(handler)
    try:
        with pytest.raises(UpstreamError) as exc_info:
            await client.search_foods({"query": "apple"})
    finally:
        await client.close()

    assert exc_info.value.status_code is None
