"""Upstream services."""

from nutribyte.services.usda import (
    FoodDataCentralClient,
    MissingApiKeyError,
    UpstreamError,
)

__all__ = [
    "FoodDataCentralClient",
    "MissingApiKeyError",
    "UpstreamError",
]
