"""NutriByte CLI."""

import typer

from nutribyte.cli._console import console
from nutribyte.cli.cache import clear as cache_clear
from nutribyte.cli.serve import serve
from nutribyte.cli.status import status as cluster_status

app = typer.Typer(
    name="nutribyte",
    help="NutriByte API server and operational commands.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        from nutribyte import __version__

        console.print(f"[bold]nutribyte[/bold] [dim]{__version__}[/dim]")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version",
    ),
) -> None:
    """NutriByte API server and operational commands."""


# Register commands
app.command()(serve)

cache_app = typer.Typer(
    help="Response cache commands.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
cache_app.command("clear")(cache_clear)
app.add_typer(cache_app, name="cache")

cluster_app = typer.Typer(
    help="Cluster inspection commands.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
cluster_app.command("status")(cluster_status)
app.add_typer(cluster_app, name="cluster")
