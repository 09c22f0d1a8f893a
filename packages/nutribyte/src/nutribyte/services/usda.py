"""FoodData Central upstream client."""

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from nutribyte.config import Settings

logger = logging.getLogger(__name__)


class MissingApiKeyError(RuntimeError):
    """The upstream API key is not configured."""


class UpstreamError(Exception):
    """The upstream API answered with an error or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, detail: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class FoodDataCentralClient:
    """Thin async proxy for the USDA FoodData Central API."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "FoodDataCentralClient":
        return cls(
            base_url=settings.usda_base_url,
            api_key=settings.usda_api_key,
            timeout=max(settings.usda_timeout_seconds, 0.1),
            transport=transport,
        )

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    async def search_foods(self, params: Mapping[str, Any]) -> Any:
        return await self._get("/foods/search", params)

    async def get_food(self, fdc_id: str, params: Mapping[str, Any]) -> Any:
        return await self._get(f"/food/{fdc_id}", params)

    async def _get(self, path: str, params: Mapping[str, Any]) -> Any:
        if not self._api_key:
            raise MissingApiKeyError("USDA API key is not configured")

        request_params = {**params, "api_key": self._api_key}
        try:
            response = await self._client.get(path, params=request_params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail: Any
            try:
                detail = exc.response.json()
            except ValueError:
                detail = exc.response.text
            logger.error(
                "USDA API request %s failed with status %s",
                path,
                exc.response.status_code,
            )
            raise UpstreamError(
                str(exc), status_code=exc.response.status_code, detail=detail
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Error proxying USDA API request %s: %s", path, exc)
            raise UpstreamError(str(exc), detail=str(exc)) from exc

        logger.debug("USDA API response status for %s: %s", path, response.status_code)
        return response.json()

    async def close(self) -> None:
        await self._client.aclose()
