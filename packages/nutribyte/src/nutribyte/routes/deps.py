"""Request-scoped accessors for objects wired onto ``app.state``."""

from fastapi import Request

from nutribyte.cache import ResponseCacheGate
from nutribyte.cluster import ClusterView
from nutribyte.services import FoodDataCentralClient


def get_view(request: Request) -> ClusterView:
    return request.app.state.cluster_view


def get_gate(request: Request) -> ResponseCacheGate:
    return request.app.state.cache_gate


def get_food_client(request: Request) -> FoodDataCentralClient:
    return request.app.state.food_client
