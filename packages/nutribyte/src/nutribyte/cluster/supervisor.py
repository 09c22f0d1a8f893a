"""Primary-side process supervisor.

The supervisor forks the worker pool, assigns each worker a sequential logical
ID, counts the requests each worker reports, replaces workers that exit, and
periodically broadcasts a cluster snapshot back to every worker.

All inputs (IPC messages and exit notifications) are turned into events and
queued; only ``process_events`` mutates the worker table, so the table has a
single writer.

A worker that crashes in a tight loop is respawned indefinitely unless
``respawn_limit`` is configured. There is no backoff.
"""

import logging
import os
import signal
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from multiprocessing.connection import wait
from typing import TypeAlias, assert_never

from nutribyte.cluster.spawner import WorkerHandle, WorkerSpawner
from nutribyte.config import Settings
from nutribyte.contracts import (
    ClusterInfoMessage,
    ClusterMessage,
    ClusterSnapshot,
    GetClusterInfoMessage,
    IncrementRequestsMessage,
    InvalidMessageError,
    WorkerIdMessage,
    WorkerRecord,
    WorkerState,
    decode_message,
)

logger = logging.getLogger(__name__)

# Upper bound on a single wait so stop requests are noticed promptly.
MAX_POLL_SECONDS = 0.5

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass(frozen=True)
class WorkerExited:
    logical_id: int
    exitcode: int | None


@dataclass(frozen=True)
class WorkerMessageReceived:
    logical_id: int
    message: ClusterMessage


SupervisorEvent: TypeAlias = WorkerExited | WorkerMessageReceived


def describe_exit(exitcode: int | None) -> tuple[int | None, str | None]:
    """Split a multiprocessing exit code into (exit code, signal name)."""
    if exitcode is None or exitcode >= 0:
        return exitcode, None
    try:
        return None, signal.Signals(-exitcode).name
    except ValueError:
        return None, str(-exitcode)


class Supervisor:
    """Owns the worker pool and the primary's copy of the cluster snapshot."""

    def __init__(
        self,
        settings: Settings,
        spawner: WorkerSpawner,
        *,
        cpu_count: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._spawner = spawner
        self._clock = clock
        self.total_cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
        self.configured_workers = settings.configured_worker_count(self.total_cpus)

        self._next_logical_id = 1
        self._records: dict[int, WorkerRecord] = {}
        self._handles: dict[int, WorkerHandle] = {}
        self._closed_channels: set[int] = set()
        self._events: deque[SupervisorEvent] = deque()
        self._respawn_times: deque[float] = deque()

        self._snapshot = ClusterSnapshot(
            total_cpus=self.total_cpus,
            configured_workers=self.configured_workers,
        )
        self._snapshot_built_at: float | None = None
        self._should_exit = threading.Event()

    # =========================================================================
    # WORKER TABLE
    # =========================================================================

    @property
    def workers(self) -> dict[int, WorkerRecord]:
        return dict(self._records)

    def handle_for(self, logical_id: int) -> WorkerHandle | None:
        return self._handles.get(logical_id)

    def start(self) -> None:
        """Fork the configured number of workers."""
        logger.info(
            "Primary %s is running; starting %s workers (%s CPUs detected)",
            os.getpid(),
            self.configured_workers,
            self.total_cpus,
        )
        for _ in range(self.configured_workers):
            self._spawn_worker()
        self.refresh_snapshot(force=True)

    def _spawn_worker(self) -> WorkerRecord:
        logical_id = self._next_logical_id
        self._next_logical_id += 1

        handle = self._spawner.spawn(logical_id)
        record = WorkerRecord(
            id=logical_id,
            pid=handle.pid,
            status=WorkerState.ONLINE,
            requests_handled=0,
        )
        self._records[logical_id] = record
        self._handles[logical_id] = handle
        self._send(logical_id, WorkerIdMessage(id=logical_id))
        logger.info("Worker %s started (PID: %s)", logical_id, handle.pid)
        return record

    def _respawn_allowed(self) -> bool:
        limit = self._settings.respawn_limit
        if limit <= 0:
            return True
        now = self._clock()
        window = max(self._settings.respawn_window_seconds, 0.0)
        while self._respawn_times and now - self._respawn_times[0] > window:
            self._respawn_times.popleft()
        if len(self._respawn_times) >= limit:
            return False
        self._respawn_times.append(now)
        return True

    # =========================================================================
    # EVENTS (single writer)
    # =========================================================================

    def submit(self, event: SupervisorEvent) -> None:
        """Queue an event for ``process_events``."""
        self._events.append(event)

    def process_events(self) -> int:
        """Apply every queued event in arrival order."""
        processed = 0
        while self._events:
            self._apply(self._events.popleft())
            processed += 1
        return processed

    def _apply(self, event: SupervisorEvent) -> None:
        if isinstance(event, WorkerExited):
            self._handle_exit(event)
        elif isinstance(event, WorkerMessageReceived):
            self._handle_message(event.logical_id, event.message)
        else:
            assert_never(event)

    def _handle_exit(self, event: WorkerExited) -> None:
        record = self._records.pop(event.logical_id, None)
        handle = self._handles.pop(event.logical_id, None)
        self._closed_channels.discard(event.logical_id)
        if record is None:
            logger.debug("Exit reported for unknown worker %s", event.logical_id)
            return
        if handle is not None:
            handle.close()

        exitcode, signal_name = describe_exit(event.exitcode)
        logger.warning(
            "Worker %s died (PID: %s) exit code=%s signal=%s",
            record.id,
            record.pid,
            exitcode,
            signal_name,
        )

        if self._should_exit.is_set():
            return
        if not self._respawn_allowed():
            logger.error(
                "Worker %s not replaced: %s respawns within %.0fs reached",
                record.id,
                self._settings.respawn_limit,
                self._settings.respawn_window_seconds,
            )
            return

        replacement = self._spawn_worker()
        logger.info(
            "New worker %s started (PID: %s) replacing worker %s",
            replacement.id,
            replacement.pid,
            record.id,
        )

    def _handle_message(self, logical_id: int, message: ClusterMessage) -> None:
        if isinstance(message, IncrementRequestsMessage):
            record = self._records.get(logical_id)
            if record is None:
                logger.warning("Worker %s not found in workers registry", logical_id)
                return
            record.requests_handled += 1
            logger.debug(
                "Worker %s request count updated to %s",
                logical_id,
                record.requests_handled,
            )
        elif isinstance(message, GetClusterInfoMessage):
            self._send(logical_id, ClusterInfoMessage(data=self.refresh_snapshot()))
        elif isinstance(message, (WorkerIdMessage, ClusterInfoMessage)):
            logger.warning(
                "Ignoring %s sent by worker %s; only the primary sends it",
                message.type,
                logical_id,
            )
        else:
            assert_never(message)

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def refresh_snapshot(self, *, force: bool = False) -> ClusterSnapshot:
        """Rebuild the snapshot, at most once per configured minimum interval.

        Inside the guard interval the previously built snapshot is returned.
        """
        now = self._clock()
        min_interval = max(self._settings.cluster_snapshot_min_interval_seconds, 0.0)
        if (
            not force
            and self._snapshot_built_at is not None
            and now - self._snapshot_built_at < min_interval
        ):
            return self._snapshot

        workers = [record.model_copy() for record in self._records.values()]
        self._snapshot = ClusterSnapshot(
            total_cpus=self.total_cpus,
            configured_workers=self.configured_workers,
            active_workers=len(workers),
            workers=workers,
        )
        self._snapshot_built_at = now
        return self._snapshot

    def get_cluster_info(self) -> ClusterSnapshot:
        return self.refresh_snapshot()

    def broadcast(self) -> ClusterSnapshot:
        """Send the current snapshot to every live worker."""
        snapshot = self.refresh_snapshot()
        message = ClusterInfoMessage(data=snapshot)
        logger.debug(
            "Broadcasting cluster info to %s workers, containing %s workers data",
            len(self._handles),
            snapshot.active_workers,
        )
        for logical_id in list(self._handles):
            self._send(logical_id, message)
        return snapshot

    def _send(self, logical_id: int, message: ClusterMessage) -> None:
        handle = self._handles.get(logical_id)
        if handle is None:
            return
        try:
            handle.send(message)
        except (OSError, ValueError) as exc:
            logger.error(
                "Failed to send %s to worker %s: %s", message.type, logical_id, exc
            )

    # =========================================================================
    # LOOP
    # =========================================================================

    def poll(self, timeout: float) -> int:
        """Wait for worker messages or exits and queue them as events."""
        readers: dict[object, int] = {}
        sentinels: dict[object, int] = {}
        for logical_id, handle in self._handles.items():
            if logical_id not in self._closed_channels:
                readers[handle.connection] = logical_id
            sentinels[handle.sentinel] = logical_id

        ready = wait([*readers, *sentinels], timeout)
        queued = 0
        # Drain messages before exits so a dying worker's last reports count.
        for obj in ready:
            if obj in readers:
                queued += self._read_messages(readers[obj])
        for obj in ready:
            if obj in sentinels:
                logical_id = sentinels[obj]
                handle = self._handles[logical_id]
                handle.join(0)
                self.submit(WorkerExited(logical_id, handle.exitcode))
                queued += 1
        return queued

    def _read_messages(self, logical_id: int) -> int:
        connection = self._handles[logical_id].connection
        queued = 0
        try:
            while connection.poll():
                payload = connection.recv_bytes()
                try:
                    message = decode_message(payload)
                except InvalidMessageError as exc:
                    logger.warning("Dropping message from worker %s: %s", logical_id, exc)
                    continue
                self.submit(WorkerMessageReceived(logical_id, message))
                queued += 1
        except (EOFError, OSError):
            # The exit itself is reported through the process sentinel.
            self._closed_channels.add(logical_id)
        return queued

    def request_stop(self) -> None:
        self._should_exit.set()

    def _handle_signal(self, sig: int, frame: object) -> None:  # pragma: no cover
        logger.info("%s received, stopping workers", signal.Signals(sig).name)
        self.request_stop()

    def run(self) -> None:
        """Start the pool and supervise it until a stop is requested."""
        for sig in HANDLED_SIGNALS:
            signal.signal(sig, self._handle_signal)

        self.start()
        interval = max(self._settings.cluster_broadcast_interval_seconds, 0.1)
        next_broadcast = self._clock() + interval
        try:
            while not self._should_exit.is_set():
                timeout = min(max(next_broadcast - self._clock(), 0.0), MAX_POLL_SECONDS)
                self.poll(timeout)
                self.process_events()
                if not self._handles:
                    logger.error("No workers left to supervise, shutting down")
                    break
                if self._clock() >= next_broadcast:
                    self.broadcast()
                    next_broadcast = self._clock() + interval
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Terminate every worker, killing any that outlive the timeout."""
        self._should_exit.set()
        handles = list(self._handles.values())
        for handle in handles:
            handle.terminate()
        timeout = max(self._settings.worker_shutdown_timeout_seconds, 0.0)
        for handle in handles:
            handle.join(timeout)
            if handle.is_alive():
                logger.warning("Worker PID %s did not exit in time, killing", handle.pid)
                handle.kill()
                handle.join()
            handle.close()
        self._handles.clear()
        self._records.clear()
        self._closed_channels.clear()
        self._events.clear()
        logger.info("Primary %s stopped", os.getpid())
