"""FoodData Central proxy routes.

Responses are cached by ``CacheGateMiddleware``; these handlers only talk to
the upstream API.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from nutribyte.routes.deps import get_food_client
from nutribyte.services import FoodDataCentralClient, MissingApiKeyError, UpstreamError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["foods"])

SEARCH_PATH = "/foods/search"
DETAIL_PATH = "/food"


def _error_response(message: str, exc: MissingApiKeyError | UpstreamError) -> JSONResponse:
    # A missing key fails this request only, never the process.
    if isinstance(exc, MissingApiKeyError):
        return JSONResponse(status_code=500, content={"message": str(exc)})
    return JSONResponse(
        status_code=exc.status_code or 500,
        content={"message": message, "error": exc.detail},
    )


@router.get(SEARCH_PATH)
async def search_foods(
    request: Request,
    client: FoodDataCentralClient = Depends(get_food_client),
) -> Any:
    try:
        return await client.search_foods(dict(request.query_params))
    except (MissingApiKeyError, UpstreamError) as exc:
        return _error_response("Error fetching food data", exc)


@router.get(f"{DETAIL_PATH}/{{fdc_id}}")
async def get_food(
    fdc_id: str,
    request: Request,
    client: FoodDataCentralClient = Depends(get_food_client),
) -> Any:
    try:
        return await client.get_food(fdc_id, dict(request.query_params))
    except (MissingApiKeyError, UpstreamError) as exc:
        logger.warning("Food detail request for ID %s failed: %s", fdc_id, exc)
        return _error_response("Error fetching food details", exc)
