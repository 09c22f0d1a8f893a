"""Console output for one-shot CLI commands.

``serve`` logs through ``nutribyte.logging`` instead, since its output comes
from several processes at once.
"""

import logging
import os

from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.text import Text

console = Console(
    highlight=False,
    no_color=os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes"),
)


def _mark(symbol: str, style: str, msg: str) -> None:
    console.print(f"  [{style}]{symbol}[/{style}] {msg}")


def success(msg: str) -> None:
    _mark("✓", "green", msg)


def warning(msg: str) -> None:
    _mark("!", "yellow", msg)


def info(msg: str) -> None:
    _mark("→", "dim", msg)


def nl() -> None:
    console.print()


def error_panel(msg: str, *, title: str = "Failed") -> None:
    """Print a failure with its reason in a red panel."""
    body = Text.assemble(("✗ ", "red bold"), (title, "red"), "\n\n", (msg, "dim"))
    console.print(
        Panel(body, border_style="red dim", box=ROUNDED, padding=(0, 1), expand=False)
    )


def setup_logging(verbose: bool = False) -> None:
    """Show only warnings from the cache and HTTP clients unless ``verbose``."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=console,
                show_time=False,
                show_path=False,
                rich_tracebacks=True,
                markup=False,
            )
        ],
        force=True,
    )
    for name in ("httpx", "httpcore", "redis"):
        logging.getLogger(name).setLevel(logging.WARNING)
