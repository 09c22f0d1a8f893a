"""Response cache middleware.

Routes opt in by path prefix, each with its own TTL. Search endpoints use a
short TTL since relevance-scored results shift; detail-by-ID endpoints use a
long one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from nutribyte.cache.gate import ResponseCacheGate

logger = logging.getLogger(__name__)

CACHE_STATUS_HEADER = "X-Cache"


@dataclass(frozen=True)
class CacheRule:
    """Cache GET responses under ``path_prefix`` for ``ttl_seconds``."""

    path_prefix: str
    ttl_seconds: int

    def matches(self, path: str) -> bool:
        return path.startswith(self.path_prefix)


def _is_json(response: Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip() == "application/json"


def _raw_target(request: Request) -> str:
    """Path and query exactly as the client sent them, percent-escapes intact."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("latin-1")
    else:
        path = request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    return f"{path}?{query}" if query else path


class CacheGateMiddleware(BaseHTTPMiddleware):
    """Serve cached JSON for matching GET requests and cache fresh 2xx responses.

    The client never waits on the cache write: it is scheduled and the
    buffered body is returned right away.
    """

    def __init__(
        self,
        app: Any,
        gate: ResponseCacheGate,
        rules: list[CacheRule],
    ) -> None:
        super().__init__(app)
        self._gate = gate
        self._rules = list(rules)

    def _rule_for(self, path: str) -> CacheRule | None:
        for rule in self._rules:
            if rule.matches(path):
                return rule
        return None

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method != "GET":
            return await call_next(request)

        rule = self._rule_for(request.url.path)
        if rule is None or not self._gate.enabled:
            return await call_next(request)

        key = self._gate.cache_key(_raw_target(request))

        cached = await self._gate.lookup(key)
        if cached is not None:
            logger.info("Cache hit for %s", key)
            return JSONResponse(
                cached, status_code=200, headers={CACHE_STATUS_HEADER: "HIT"}
            )

        logger.info("Cache miss for %s", key)
        response = await call_next(request)
        if not (200 <= response.status_code < 300) or not _is_json(response):
            return response

        body = b""
        async for chunk in response.body_iterator:  # type: ignore[attr-defined]
            body += chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")

        self._gate.store_later(key, body.decode("utf-8"), rule.ttl_seconds)

        headers = dict(response.headers)
        headers.pop("content-length", None)
        headers[CACHE_STATUS_HEADER.lower()] = "MISS"
        return Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
            media_type=response.media_type,
            background=response.background,
        )
