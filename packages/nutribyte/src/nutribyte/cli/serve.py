"""Serve command: single process or supervised worker pool."""

import logging
from typing import Any

import typer
import uvicorn

from nutribyte.cli._console import error_panel
from nutribyte.cluster import (
    PRIMARY_WORKER_ID,
    ClusterView,
    ProcessSpawner,
    Supervisor,
    set_cluster_view,
)
from nutribyte.cluster.worker import run_worker
from nutribyte.config import Settings, get_settings
from nutribyte.logging import configure_logging
from nutribyte.main import create_app

logger = logging.getLogger(__name__)


def resolve_settings(
    base: Settings,
    *,
    host: str | None = None,
    port: int | None = None,
    workers: int | None = None,
    cluster: bool | None = None,
    verbose: bool = False,
) -> Settings:
    """Apply command-line overrides on top of environment configuration."""
    update: dict[str, Any] = {}
    if host is not None:
        update["host"] = host
    if port is not None:
        update["port"] = port
    if workers is not None:
        update["workers"] = workers
        # Asking for a worker count implies clustering unless disabled explicitly.
        if cluster is None:
            update["clustering_enabled"] = True
    if cluster is not None:
        update["clustering_enabled"] = cluster
    if verbose:
        update["debug"] = True
    return base.model_copy(update=update) if update else base


def run_single_process(settings: Settings) -> None:
    """Serve in this process under worker ID 1, with no IPC or timers."""
    view = ClusterView.single_process()
    set_cluster_view(view)
    logger.info("Clustering disabled - running in single process mode")
    app = create_app(settings, view=view)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        access_log=False,
    )


def run_cluster(settings: Settings) -> None:
    """Bind the listening socket here and supervise a pool of workers on it."""
    config = uvicorn.Config(
        "nutribyte.main:create_app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
    sock = config.bind_socket()
    try:
        supervisor = Supervisor(settings, ProcessSpawner(settings, run_worker, [sock]))
        set_cluster_view(
            ClusterView(
                worker_id=PRIMARY_WORKER_ID,
                clustering_enabled=True,
                snapshot_source=supervisor.get_cluster_info,
            )
        )
        supervisor.run()
    finally:
        sock.close()


def serve(
    host: str | None = typer.Option(
        None, "--host", help="Bind host (overrides NUTRIBYTE_HOST)"
    ),
    port: int | None = typer.Option(
        None, "--port", "-p", help="Bind port (overrides NUTRIBYTE_PORT)"
    ),
    workers: int | None = typer.Option(
        None,
        "--workers",
        "-w",
        min=1,
        help="Worker processes to run (still capped by available CPUs)",
    ),
    cluster: bool | None = typer.Option(
        None,
        "--cluster/--no-cluster",
        help="Run a supervised worker pool (overrides ENABLE_CLUSTERING)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """
    Start the NutriByte API.

    Examples:
        nutribyte serve                      # Single process on port 8080
        nutribyte serve --cluster            # One worker per CPU, capped
        nutribyte serve -w 4 --port 9000
    """
    settings = resolve_settings(
        get_settings(),
        host=host,
        port=port,
        workers=workers,
        cluster=cluster,
        verbose=verbose,
    )
    configure_logging(log_format=settings.log_format, debug=settings.debug)

    try:
        if settings.clustering_enabled:
            run_cluster(settings)
        else:
            run_single_process(settings)
    except OSError as e:
        error_panel(str(e), title="Server start failed")
        raise typer.Exit(1) from e
