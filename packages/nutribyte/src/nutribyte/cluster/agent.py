"""Worker-side end of the supervisor IPC channel."""

import asyncio
import contextlib
import logging
from multiprocessing.connection import Connection
from typing import assert_never

from pydantic import BaseModel

from nutribyte.cluster.state import ClusterView
from nutribyte.contracts import (
    ClusterInfoMessage,
    ClusterMessage,
    GetClusterInfoMessage,
    IncrementRequestsMessage,
    InvalidMessageError,
    WorkerIdMessage,
    decode_message,
    encode_message,
)

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_INFO_POLL_INTERVAL = 5.0


class WorkerAgent:
    """Applies supervisor messages to the local view and reports activity.

    Messages are applied in arrival order. Each ``CLUSTER_INFO`` replaces the
    cached snapshot wholesale, so only the most recent one matters.
    """

    def __init__(
        self,
        connection: Connection,
        view: ClusterView,
        *,
        poll_interval: float = DEFAULT_CLUSTER_INFO_POLL_INTERVAL,
    ) -> None:
        self._connection = connection
        self._view = view
        self._poll_interval = poll_interval
        self._loop: asyncio.AbstractEventLoop | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._reader_attached = False
        self._channel_open = True

    @property
    def view(self) -> ClusterView:
        return self._view

    @property
    def channel_open(self) -> bool:
        return self._channel_open

    # =========================================================================
    # INBOUND
    # =========================================================================

    def drain(self, timeout: float = 0.0) -> int:
        """Apply every message already waiting on the channel.

        ``timeout`` bounds the wait for the first message, which lets a freshly
        spawned worker pick up its ``WORKER_ID`` before it starts serving.
        """
        applied = 0
        if not self._channel_open:
            return applied
        try:
            ready = self._connection.poll(timeout)
            while ready:
                if self._receive_one():
                    applied += 1
                if not self._channel_open:
                    break
                ready = self._connection.poll()
        except (EOFError, OSError):
            self._mark_closed()
        return applied

    def _receive_one(self) -> bool:
        try:
            payload = self._connection.recv_bytes()
        except (EOFError, OSError):
            self._mark_closed()
            return False
        try:
            message = decode_message(payload)
        except InvalidMessageError as exc:
            logger.warning("Dropping message from primary: %s", exc)
            return False
        self.handle_message(message)
        return True

    def handle_message(self, message: ClusterMessage) -> None:
        if isinstance(message, WorkerIdMessage):
            self._view.assign_worker_id(message.id)
            logger.info("Worker assigned ID: %s", message.id)
        elif isinstance(message, ClusterInfoMessage):
            self._view.replace_snapshot(message.data)
        elif isinstance(message, (IncrementRequestsMessage, GetClusterInfoMessage)):
            logger.warning("Ignoring %s from primary", message.type)
        else:
            assert_never(message)

    def _on_readable(self) -> None:
        self.drain()

    def _mark_closed(self) -> None:
        if not self._channel_open:
            return
        self._channel_open = False
        logger.warning("Channel to primary closed")
        self._detach_reader()

    def _detach_reader(self) -> None:
        if self._reader_attached and self._loop is not None:
            with contextlib.suppress(ValueError, OSError):
                self._loop.remove_reader(self._connection.fileno())
        self._reader_attached = False

    # =========================================================================
    # OUTBOUND
    # =========================================================================

    def _send(self, message: BaseModel) -> None:
        if not self._channel_open:
            return
        try:
            self._connection.send_bytes(encode_message(message))
        except (OSError, ValueError) as exc:
            logger.error("Failed to send message to primary process: %s", exc)

    def report_request(self) -> None:
        """Tell the supervisor this worker handled one more request."""
        self._send(IncrementRequestsMessage())

    def request_cluster_info(self) -> None:
        self._send(GetClusterInfoMessage())

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Attach to the running loop, ask for a snapshot now and then periodically."""
        self._loop = asyncio.get_running_loop()
        self.drain()
        if self._channel_open and not self._reader_attached:
            self._loop.add_reader(self._connection.fileno(), self._on_readable)
            self._reader_attached = True
        self.request_cluster_info()
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        while self._channel_open:
            try:
                await asyncio.sleep(self._poll_interval)
                self.request_cluster_info()
            except asyncio.CancelledError:
                break

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None
        self._detach_reader()
