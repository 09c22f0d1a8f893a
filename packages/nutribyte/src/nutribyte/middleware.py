"""Request-context middleware and the matching log filter."""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Protocol

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from nutribyte.cluster.state import ClusterView, current_worker_id

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Request-ID"
WORKER_ID_HEADER = "X-Worker-ID"
GENERIC_ERROR_MESSAGE = "Something went wrong with the API!"

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class RequestReporter(Protocol):
    def report_request(self) -> None: ...


def _path_with_query(request: Request) -> str:
    if request.url.query:
        return f"{request.url.path}?{request.url.query}"
    return request.url.path


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Echo the caller's ``X-Request-ID`` or mint one, and expose it to logging."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = request_id
        token = correlation_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers[CORRELATION_ID_HEADER] = request_id
        return response


class WorkerContextMiddleware(BaseHTTPMiddleware):
    """Tag responses with the serving worker and report them to the supervisor.

    Every response carries ``X-Worker-ID``, including the generic 500 built
    here for unhandled errors, which outer middleware then decorates. When
    ``reporter`` is set (clustered mode) each request is reported over IPC so
    the supervisor can count it against this worker.
    """

    def __init__(
        self,
        app: ASGIApp,
        view: ClusterView,
        reporter: RequestReporter | None = None,
    ) -> None:
        super().__init__(app)
        self._view = view
        self._reporter = reporter

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled error for %s %s", request.method, request.url.path
            )
            response = JSONResponse(
                status_code=500, content={"message": GENERIC_ERROR_MESSAGE}
            )
        worker_id = self._view.worker_id
        response.headers[WORKER_ID_HEADER] = worker_id

        logger.info(
            "Worker %s - %s %s - %.0fms",
            worker_id,
            request.method,
            _path_with_query(request),
            (time.perf_counter() - started) * 1000,
        )
        if self._reporter is not None:
            self._reporter.report_request()
        return response


class RequestContextFilter(logging.Filter):
    """Stamp every record with this process's worker ID and the request ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.worker_id = current_worker_id()  # type: ignore[attr-defined]
        record.correlation_id = correlation_id_var.get()  # type: ignore[attr-defined]
        return True
