"""Response cache commands."""

import asyncio

import typer

from nutribyte.cache import RedisCacheClient, ResponseCacheGate
from nutribyte.cli._console import error_panel, info, setup_logging, success, warning
from nutribyte.config import Settings, get_settings


async def _clear(settings: Settings, pattern: str) -> int | None:
    client = RedisCacheClient.from_settings(settings)
    gate = ResponseCacheGate(
        client,
        key_prefix=settings.cache_key_prefix,
        read_timeout=settings.cache_read_timeout,
        write_timeout=settings.cache_write_timeout,
    )
    try:
        if not await client.connect():
            return None
        return await gate.clear(pattern)
    finally:
        await client.close()


def clear(
    pattern: str = typer.Argument(
        "*", help="Key pattern after the cache prefix, e.g. '/api/foods/search*'"
    ),
    redis_url: str | None = typer.Option(
        None,
        "--redis-url",
        help="Redis URL (overrides NUTRIBYTE_REDIS_URL)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """
    Delete cached responses whose key matches PATTERN.

    Examples:
        nutribyte cache clear                       # Everything under api:
        nutribyte cache clear '/api/food/*'         # Detail lookups only
    """
    setup_logging(verbose=verbose)

    settings = get_settings()
    if redis_url:
        settings = settings.model_copy(update={"redis_url": redis_url})

    info(f"Clearing {settings.cache_key_prefix}{pattern}")
    cleared = asyncio.run(_clear(settings, pattern))
    if cleared is None:
        error_panel(f"Could not connect to {settings.redis_url}", title="Redis unavailable")
        raise typer.Exit(1)
    if cleared == 0:
        warning("No cache entries found to clear")
        return
    success(f"Cleared {cleared} cache entries")
