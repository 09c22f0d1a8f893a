"""NutriByte API runtime: worker cluster supervision and cached USDA proxying."""

__version__ = "0.1.0"

__all__ = ["__version__"]
