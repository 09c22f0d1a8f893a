"""Cluster snapshot contract payloads.

Field names are snake_case in Python and camelCase on the wire, matching
the keys the cluster dashboard reads.
"""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WorkerState(StrEnum):
    """Worker lifecycle state visible to consumers.

    Workers are only ever marked online or removed from the table.
    """

    ONLINE = "online"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WorkerRecord(_CamelModel):
    """One live worker process as tracked by the supervisor."""

    id: int = Field(ge=1, description="Logical worker ID assigned by the supervisor")
    pid: int | None = None
    status: WorkerState = WorkerState.ONLINE
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    requests_handled: int = Field(default=0, ge=0)


class ClusterSnapshot(_CamelModel):
    """Point-in-time view of every live worker."""

    total_cpus: int = Field(default=0, alias="totalCPUs")
    configured_workers: int = 0
    active_workers: int = 0
    workers: list[WorkerRecord] = Field(default_factory=list)


class ClusterStatusResponse(_CamelModel):
    """Cluster status endpoint response."""

    current_worker: str
    timestamp: str
    cluster_enabled: bool
    cluster_info: ClusterSnapshot


__all__ = [
    "WorkerState",
    "WorkerRecord",
    "ClusterSnapshot",
    "ClusterStatusResponse",
]
