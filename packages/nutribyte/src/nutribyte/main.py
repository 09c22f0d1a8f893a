"""NutriByte API application factory."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nutribyte.cache import (
    CacheClient,
    CacheGateMiddleware,
    CacheRule,
    ResponseCacheGate,
    create_cache_client,
)
from nutribyte.cluster import ClusterView, WorkerAgent
from nutribyte.config import Settings
from nutribyte.middleware import (
    GENERIC_ERROR_MESSAGE,
    CorrelationIDMiddleware,
    WorkerContextMiddleware,
)
from nutribyte.routes import (
    API_PREFIX,
    DETAIL_PATH,
    SEARCH_PATH,
    api_router,
    health_router,
)
from nutribyte.services import FoodDataCentralClient

logger = logging.getLogger(__name__)


def cache_rules(settings: Settings) -> list[CacheRule]:
    """Per-route TTLs for the upstream proxy routes."""
    return [
        CacheRule(f"{API_PREFIX}{SEARCH_PATH}", settings.food_search_cache_ttl_seconds),
        CacheRule(f"{API_PREFIX}{DETAIL_PATH}/", settings.food_detail_cache_ttl_seconds),
    ]


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error for %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(status_code=500, content={"message": GENERIC_ERROR_MESSAGE})


async def _connect_cache(cache_client: CacheClient) -> None:
    try:
        if await cache_client.connect():
            logger.info("Redis caching enabled")
        else:
            logger.warning("Redis caching disabled - continuing without cache")
    except Exception as exc:
        logger.error("Redis connection error: %s", exc)
        logger.warning("Continuing without Redis caching")


def create_app(
    settings: Settings,
    *,
    view: ClusterView | None = None,
    agent: WorkerAgent | None = None,
    cache_client: CacheClient | None = None,
    food_client: FoodDataCentralClient | None = None,
) -> FastAPI:
    """Build the API app for one serving process.

    ``agent`` is only passed in clustered workers; without it the app runs
    with no IPC and no background timers.
    """
    view = view or (agent.view if agent is not None else ClusterView.single_process())
    cache_client = cache_client or create_cache_client(settings)
    food_client = food_client or FoodDataCentralClient.from_settings(settings)
    gate = ResponseCacheGate(
        cache_client,
        key_prefix=settings.cache_key_prefix,
        read_timeout=settings.cache_read_timeout,
        write_timeout=settings.cache_write_timeout,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("Starting NutriByte API (worker %s)...", view.worker_id)
        logger.info(
            "USDA API key status: %s",
            "Key is set" if food_client.has_api_key else "Key is missing",
        )

        # The gate passes through until the client reports ready.
        cache_connect = asyncio.create_task(_connect_cache(cache_client))

        if agent is not None:
            await agent.start()

        yield

        logger.info("Shutting down NutriByte API (worker %s)...", view.worker_id)
        if agent is not None:
            await agent.stop()
        cache_connect.cancel()
        with suppress(asyncio.CancelledError):
            await cache_connect
        await gate.close()
        await cache_client.close()
        await food_client.close()

    app = FastAPI(
        title="NutriByte API",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.cluster_view = view
    app.state.cache_gate = gate
    app.state.food_client = food_client

    # Middleware added last runs first.
    app.add_middleware(CacheGateMiddleware, gate=gate, rules=cache_rules(settings))
    app.add_middleware(WorkerContextMiddleware, view=view, reporter=agent)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "X-User-Email"],
        expose_headers=["X-Worker-ID", "X-Request-ID", "X-Cache"],
    )
    app.add_exception_handler(Exception, _unhandled_error)

    app.include_router(health_router)
    app.include_router(api_router)
    return app
