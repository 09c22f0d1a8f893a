"""Runtime configuration."""

from enum import StrEnum
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nutribyte import __version__


class Environments(StrEnum):
    DEV = "dev"
    PROD = "prod"

    def is_production(self) -> bool:
        return self == self.PROD


class Settings(BaseSettings):
    """Runtime configuration.

    Assembled once at process entry and passed down to the supervisor,
    the worker entrypoint and the app factory.
    """

    model_config = SettingsConfigDict(
        env_prefix="NUTRIBYTE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    env: Environments = Environments.DEV
    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_format: Literal["text", "json"] = "text"
    cors_allow_origins: str = "http://localhost:8080,http://localhost:5173"

    # Process supervisor
    clustering_enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "NUTRIBYTE_CLUSTERING_ENABLED", "ENABLE_CLUSTERING"
        ),
    )
    workers: int | None = None
    worker_safety_cap: int = 2
    cluster_broadcast_interval_seconds: float = 10.0
    cluster_snapshot_min_interval_seconds: float = 2.0
    cluster_info_poll_interval_seconds: float = 5.0
    worker_shutdown_timeout_seconds: float = 5.0

    # Crash-loop policy. 0 keeps the unbounded 1-for-1 respawn behaviour.
    respawn_limit: int = 0
    respawn_window_seconds: float = 60.0

    # Response cache
    cache_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("NUTRIBYTE_CACHE_ENABLED", "REDIS_ENABLED"),
    )
    redis_url: str = Field(
        default="redis://localhost:6379",
        validation_alias=AliasChoices("NUTRIBYTE_REDIS_URL", "REDISCLOUD_URL"),
    )
    cache_key_prefix: str = "api:"
    cache_read_timeout_ms: int = 200
    cache_write_timeout_ms: int = 500
    cache_connect_timeout_seconds: float = 5.0
    cache_reconnect_retries: int = 3
    cache_reconnect_base_ms: int = 100
    cache_reconnect_max_ms: int = 3000
    cache_maxmemory_policy: str | None = "allkeys-lru"
    cache_maxmemory: str | None = None
    food_search_cache_ttl_seconds: int = 1800
    food_detail_cache_ttl_seconds: int = 86_400

    # Upstream FoodData Central API
    usda_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("NUTRIBYTE_USDA_API_KEY", "USDA_API_KEY"),
    )
    usda_base_url: str = "https://api.nal.usda.gov/fdc/v1"
    usda_timeout_seconds: float = 15.0

    version: str = __version__

    @field_validator("env", mode="before")
    @classmethod
    def _normalize_env_aliases(cls, value: object) -> object:
        """Accept long-form environment names."""
        if isinstance(value, str):
            normalized = value.strip().lower()
            aliases = {
                "development": Environments.DEV.value,
                "production": Environments.PROD.value,
            }
            return aliases.get(normalized, normalized)
        return value

    @property
    def is_production(self) -> bool:
        return self.env.is_production()

    @property
    def cors_allow_origins_list(self) -> list[str]:
        """Parse comma-delimited CORS origins into a list."""
        origins = [origin.strip() for origin in self.cors_allow_origins.split(",")]
        cleaned = [origin for origin in origins if origin]
        return cleaned or ["*"]

    @property
    def cache_read_timeout(self) -> float:
        return max(self.cache_read_timeout_ms, 0) / 1000

    @property
    def cache_write_timeout(self) -> float:
        return max(self.cache_write_timeout_ms, 0) / 1000

    def configured_worker_count(self, cpu_count: int | None) -> int:
        """Resolve the target worker count.

        The override (or the safety cap when unset) bounds the CPU count so
        memory-constrained hosts are not over-subscribed.
        """
        cap = self.workers if self.workers is not None else self.worker_safety_cap
        cpus = cpu_count or 1
        return max(1, min(cpus, cap))


@lru_cache
def get_settings() -> Settings:
    return Settings()
