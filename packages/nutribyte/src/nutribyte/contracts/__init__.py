"""Contract models shared by the supervisor, workers and routes."""

from nutribyte.contracts.cluster import (
    ClusterSnapshot,
    ClusterStatusResponse,
    WorkerRecord,
    WorkerState,
)
from nutribyte.contracts.messages import (
    ClusterInfoMessage,
    ClusterMessage,
    GetClusterInfoMessage,
    IncrementRequestsMessage,
    InvalidMessageError,
    MessageType,
    WorkerIdMessage,
    decode_message,
    encode_message,
)

__all__ = [
    # Cluster snapshot
    "WorkerState",
    "WorkerRecord",
    "ClusterSnapshot",
    "ClusterStatusResponse",
    # IPC messages
    "MessageType",
    "WorkerIdMessage",
    "IncrementRequestsMessage",
    "GetClusterInfoMessage",
    "ClusterInfoMessage",
    "ClusterMessage",
    "InvalidMessageError",
    "encode_message",
    "decode_message",
]
