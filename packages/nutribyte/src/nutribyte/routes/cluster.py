"""Cluster status route."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from nutribyte.cluster import ClusterView
from nutribyte.contracts import ClusterStatusResponse
from nutribyte.routes.deps import get_view

router = APIRouter(prefix="/cluster", tags=["cluster"])


@router.get("/status", response_model=ClusterStatusResponse)
async def cluster_status(view: ClusterView = Depends(get_view)) -> ClusterStatusResponse:
    """Return this worker's cached view of the cluster.

    Read-only and served from memory, so it is safe to poll every few seconds.
    The snapshot may lag the primary by one broadcast interval.
    """
    return ClusterStatusResponse(
        current_worker=view.worker_id,
        timestamp=datetime.now(UTC).isoformat(),
        cluster_enabled=view.clustering_enabled,
        cluster_info=view.get_cluster_info(),
    )
