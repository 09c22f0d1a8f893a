"""Worker process entrypoint.

Runs in a freshly spawned interpreter: sets up logging, picks up the logical
ID sent by the supervisor, then serves the app with uvicorn on the listening
socket inherited from the primary.
"""

import logging
import socket
from multiprocessing.connection import Connection

import uvicorn

from nutribyte.cluster.agent import WorkerAgent
from nutribyte.cluster.state import ClusterView, set_cluster_view
from nutribyte.config import Settings
from nutribyte.logging import configure_logging
from nutribyte.main import create_app

logger = logging.getLogger(__name__)

WORKER_ID_WAIT_SECONDS = 2.0


def run_worker(
    settings: Settings,
    connection: Connection,
    sockets: list[socket.socket],
) -> None:
    configure_logging(log_format=settings.log_format, debug=settings.debug)

    view = ClusterView(clustering_enabled=True)
    set_cluster_view(view)
    agent = WorkerAgent(
        connection,
        view,
        poll_interval=settings.cluster_info_poll_interval_seconds,
    )
    agent.drain(timeout=WORKER_ID_WAIT_SECONDS)
    logger.info("Worker %s started", view.worker_id)

    app = create_app(settings, view=view, agent=agent)
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=False,
    )
    server = uvicorn.Server(config)
    server.run(sockets=sockets)
