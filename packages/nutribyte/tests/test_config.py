from __future__ import annotations

import pytest

from nutribyte.config import Environments


@pytest.mark.parametrize(
    ("cpus", "workers", "expected"),
    [
        (8, None, 2),
        (1, None, 1),
        (8, 4, 4),
        (2, 4, 2),
        (None, None, 1),
    ],
)
def test_configured_worker_count(make_settings, cpus, workers, expected) -> None:
    settings = make_settings(workers=workers)

    assert settings.configured_worker_count(cpus) == expected


def test_legacy_environment_names_are_accepted(make_settings, monkeypatch) -> None:
    monkeypatch.setenv("ENABLE_CLUSTERING", "true")
    monkeypatch.setenv("REDIS_ENABLED", "false")
    monkeypatch.setenv("REDISCLOUD_URL", "redis://cache.internal:6380")
    monkeypatch.setenv("USDA_API_KEY", "abc123")
    monkeypatch.setenv("NUTRIBYTE_ENV", "production")

    settings = make_settings()

    assert settings.clustering_enabled is True
    assert settings.cache_enabled is False
    assert settings.redis_url == "redis://cache.internal:6380"
    assert settings.usda_api_key == "abc123"
    assert settings.env is Environments.PROD
    assert settings.is_production


def test_defaults(make_settings) -> None:
    settings = make_settings()

    assert settings.clustering_enabled is False
    assert settings.cache_enabled is True
    assert settings.cache_key_prefix == "api:"
    assert settings.cache_read_timeout == 0.2
    assert settings.cache_write_timeout == 0.5
    assert settings.respawn_limit == 0
    assert settings.cors_allow_origins_list == [
        "http://localhost:8080",
        "http://localhost:5173",
    ]
