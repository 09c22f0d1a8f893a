"""Administrative cache invalidation."""

from fastapi import APIRouter, Depends, Query

from nutribyte.cache import ResponseCacheGate
from nutribyte.routes.deps import get_gate

router = APIRouter(prefix="/cache", tags=["cache"])


@router.delete("")
async def clear_cache(
    pattern: str = Query("*", description="Key pattern after the cache prefix"),
    gate: ResponseCacheGate = Depends(get_gate),
) -> dict[str, int]:
    cleared = await gate.clear(pattern)
    return {"cleared": cleared}
