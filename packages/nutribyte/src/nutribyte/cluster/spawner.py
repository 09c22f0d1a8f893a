"""Worker process spawning.

The supervisor only talks to workers through ``WorkerHandle``; the
multiprocessing-backed implementation lives here so the supervisor can be
driven by fake handles in tests.
"""

import logging
import multiprocessing
import socket
from collections.abc import Callable
from multiprocessing.connection import Connection
from multiprocessing.context import BaseContext
from multiprocessing.process import BaseProcess
from typing import Any, Protocol

from pydantic import BaseModel

from nutribyte.config import Settings
from nutribyte.contracts import encode_message

logger = logging.getLogger(__name__)

WorkerTarget = Callable[..., None]


class WorkerHandle(Protocol):
    """Primary-side handle on one worker process."""

    @property
    def pid(self) -> int | None: ...

    @property
    def connection(self) -> Connection: ...

    @property
    def sentinel(self) -> Any: ...

    @property
    def exitcode(self) -> int | None: ...

    def is_alive(self) -> bool: ...

    def send(self, message: BaseModel) -> None: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...

    def join(self, timeout: float | None = None) -> None: ...

    def close(self) -> None: ...


class WorkerSpawner(Protocol):
    def spawn(self, logical_id: int) -> WorkerHandle: ...


class ProcessWorkerHandle:
    """``WorkerHandle`` backed by a ``multiprocessing.Process`` and a duplex pipe."""

    def __init__(self, process: BaseProcess, connection: Connection) -> None:
        self._process = process
        self._connection = connection

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def sentinel(self) -> int:
        return self._process.sentinel

    @property
    def exitcode(self) -> int | None:
        return self._process.exitcode

    def is_alive(self) -> bool:
        return self._process.is_alive()

    def send(self, message: BaseModel) -> None:
        self._connection.send_bytes(encode_message(message))

    def terminate(self) -> None:
        if self._process.exitcode is None:
            self._process.terminate()

    def kill(self) -> None:
        if self._process.exitcode is None:
            self._process.kill()

    def join(self, timeout: float | None = None) -> None:
        self._process.join(timeout)

    def close(self) -> None:
        self._connection.close()


class ProcessSpawner:
    """Fork worker processes that serve the app on an inherited socket.

    Each worker gets its own end of a ``multiprocessing.Pipe``; this is the only
    channel between the primary and that worker.
    """

    def __init__(
        self,
        settings: Settings,
        target: WorkerTarget,
        sockets: list[socket.socket],
        *,
        context: BaseContext | None = None,
    ) -> None:
        self._settings = settings
        self._target = target
        self._sockets = sockets
        self._context = context or multiprocessing.get_context("spawn")

    def spawn(self, logical_id: int) -> ProcessWorkerHandle:
        parent_conn, child_conn = self._context.Pipe(duplex=True)
        process = self._context.Process(
            target=self._target,
            kwargs={
                "settings": self._settings,
                "connection": child_conn,
                "sockets": self._sockets,
            },
            name=f"nutribyte-worker-{logical_id}",
        )
        process.start()
        # The child holds its own copy; closing ours lets EOF surface on exit.
        child_conn.close()
        logger.debug("Spawned %s (PID: %s)", process.name, process.pid)
        return ProcessWorkerHandle(process, parent_conn)
