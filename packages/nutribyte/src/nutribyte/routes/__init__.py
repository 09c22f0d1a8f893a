"""API routes."""

from fastapi import APIRouter

from nutribyte.routes.cache import router as cache_router
from nutribyte.routes.cluster import router as cluster_router
from nutribyte.routes.foods import DETAIL_PATH, SEARCH_PATH
from nutribyte.routes.foods import router as foods_router
from nutribyte.routes.health import router as health_router

API_PREFIX = "/api"

api_router = APIRouter(prefix=API_PREFIX)
api_router.include_router(cluster_router)
api_router.include_router(foods_router)
api_router.include_router(cache_router)

__all__ = [
    "API_PREFIX",
    "DETAIL_PATH",
    "SEARCH_PATH",
    "api_router",
    "health_router",
]
