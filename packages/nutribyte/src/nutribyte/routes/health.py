"""Health check route."""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from nutribyte.cache import NullCacheClient, ResponseCacheGate
from nutribyte.cluster import ClusterView
from nutribyte.routes.deps import get_gate, get_view

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    worker: str
    cache: Literal["ready", "unavailable", "disabled"]


@router.get("/health", response_model=HealthResponse)
async def health(
    view: ClusterView = Depends(get_view),
    gate: ResponseCacheGate = Depends(get_gate),
) -> HealthResponse:
    if isinstance(gate.client, NullCacheClient):
        cache = "disabled"
    elif gate.enabled:
        cache = "ready"
    else:
        cache = "unavailable"
    return HealthResponse(worker=view.worker_id, cache=cache)
