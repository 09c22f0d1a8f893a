"""Cluster status command."""

import httpx
import typer
from rich.table import Table

from nutribyte.cli._console import console, error_panel, nl
from nutribyte.contracts import ClusterStatusResponse

DEFAULT_URL = "http://localhost:8080"
STATUS_PATH = "/api/cluster/status"


def fetch_status(
    base_url: str, *, timeout: float = 5.0
) -> tuple[ClusterStatusResponse, str | None]:
    """Fetch the status payload and the ``X-Worker-ID`` of the responding worker."""
    response = httpx.get(f"{base_url.rstrip('/')}{STATUS_PATH}", timeout=timeout)
    response.raise_for_status()
    payload = ClusterStatusResponse.model_validate(response.json())
    return payload, response.headers.get("X-Worker-ID")


def render_status(status: ClusterStatusResponse) -> Table:
    info = status.cluster_info
    table = Table(
        title=(
            f"Workers {info.active_workers}/{info.configured_workers} "
            f"({info.total_cpus} CPUs)"
        ),
        title_justify="left",
        show_edge=False,
    )
    table.add_column("ID", justify="right")
    table.add_column("PID", justify="right")
    table.add_column("Status")
    table.add_column("Started")
    table.add_column("Requests", justify="right")

    for worker in info.workers:
        marker = " *" if str(worker.id) == status.current_worker else ""
        table.add_row(
            f"{worker.id}{marker}",
            str(worker.pid) if worker.pid is not None else "-",
            worker.status,
            worker.start_time.strftime("%Y-%m-%d %H:%M:%S"),
            str(worker.requests_handled),
        )
    return table


def status(
    url: str = typer.Option(
        DEFAULT_URL,
        "--url",
        "-u",
        envvar="NUTRIBYTE_URL",
        help="Base URL of a running NutriByte API",
    ),
) -> None:
    """
    Show the worker table as seen by whichever worker answers.

    The table is that worker's cached copy and can lag the primary by one
    broadcast interval.
    """
    try:
        payload, served_by = fetch_status(url)
    except httpx.HTTPError as e:
        error_panel(str(e), title="Could not fetch cluster status")
        raise typer.Exit(1) from e

    nl()
    mode = "clustered" if payload.cluster_enabled else "single process"
    console.print(
        f"[bold]NutriByte[/bold] [dim]{mode} · answered by worker "
        f"{served_by or payload.current_worker} at {payload.timestamp}[/dim]"
    )
    nl()
    if payload.cluster_info.workers:
        console.print(render_status(payload))
    else:
        console.print("  [dim]No worker data reported yet[/dim]")
    nl()
