"""Primary/worker process topology."""

from nutribyte.cluster.agent import WorkerAgent
from nutribyte.cluster.spawner import (
    ProcessSpawner,
    ProcessWorkerHandle,
    WorkerHandle,
    WorkerSpawner,
)
from nutribyte.cluster.state import (
    PRIMARY_WORKER_ID,
    SINGLE_PROCESS_WORKER_ID,
    ClusterView,
    current_worker_id,
    get_cluster_view,
    set_cluster_view,
)
from nutribyte.cluster.supervisor import (
    Supervisor,
    SupervisorEvent,
    WorkerExited,
    WorkerMessageReceived,
)

__all__ = [
    "PRIMARY_WORKER_ID",
    "SINGLE_PROCESS_WORKER_ID",
    "ClusterView",
    "ProcessSpawner",
    "ProcessWorkerHandle",
    "Supervisor",
    "SupervisorEvent",
    "WorkerAgent",
    "WorkerExited",
    "WorkerHandle",
    "WorkerMessageReceived",
    "WorkerSpawner",
    "current_worker_id",
    "get_cluster_view",
    "set_cluster_view",
]
