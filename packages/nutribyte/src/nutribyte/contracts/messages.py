"""Typed IPC messages exchanged between the supervisor and its workers.

Every payload crossing the parent/child channel is one member of the
``ClusterMessage`` union, discriminated by ``type``. Messages travel as JSON
bytes so either side can reject anything outside the union.
"""

from enum import StrEnum
from typing import Annotated, Literal, TypeAlias

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from nutribyte.contracts.cluster import ClusterSnapshot


class MessageType(StrEnum):
    WORKER_ID = "WORKER_ID"
    INCREMENT_REQUESTS = "INCREMENT_REQUESTS"
    GET_CLUSTER_INFO = "GET_CLUSTER_INFO"
    CLUSTER_INFO = "CLUSTER_INFO"


class WorkerIdMessage(BaseModel):
    """Supervisor -> worker: the logical ID assigned to this worker."""

    type: Literal[MessageType.WORKER_ID] = MessageType.WORKER_ID
    id: int = Field(ge=1)


class IncrementRequestsMessage(BaseModel):
    """Worker -> supervisor: one request was handled.

    The sender is identified by the channel the message arrived on.
    """

    type: Literal[MessageType.INCREMENT_REQUESTS] = MessageType.INCREMENT_REQUESTS


class GetClusterInfoMessage(BaseModel):
    """Worker -> supervisor: reply with the current snapshot."""

    type: Literal[MessageType.GET_CLUSTER_INFO] = MessageType.GET_CLUSTER_INFO


class ClusterInfoMessage(BaseModel):
    """Supervisor -> worker: replace the cached snapshot wholesale."""

    type: Literal[MessageType.CLUSTER_INFO] = MessageType.CLUSTER_INFO
    data: ClusterSnapshot


ClusterMessage: TypeAlias = Annotated[
    WorkerIdMessage
    | IncrementRequestsMessage
    | GetClusterInfoMessage
    | ClusterInfoMessage,
    Field(discriminator="type"),
]

_cluster_message_adapter: TypeAdapter[ClusterMessage] = TypeAdapter(ClusterMessage)


class InvalidMessageError(ValueError):
    """Raised when bytes received over IPC are not a known cluster message."""


def encode_message(message: BaseModel) -> bytes:
    """Serialize a cluster message for the IPC channel."""
    return message.model_dump_json().encode("utf-8")


def decode_message(payload: bytes | str) -> ClusterMessage:
    """Parse bytes received over the IPC channel into a typed message."""
    try:
        return _cluster_message_adapter.validate_json(payload)
    except ValidationError as exc:
        raise InvalidMessageError(f"Invalid cluster message: {exc}") from exc


__all__ = [
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
