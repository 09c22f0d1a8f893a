"""Per-process logging setup.

The primary and every spawned worker configure logging for themselves: a
spawned child starts from a fresh interpreter and inherits no handlers.
Every record is tagged with the worker that produced it.
"""

import json
import logging
from datetime import UTC, datetime

from nutribyte.middleware import RequestContextFilter

TEXT_FORMAT = "%(asctime)s - [%(worker_id)s] %(name)s - %(levelname)s - %(message)s"

# Attributes injected by RequestContextFilter, emitted only when set.
_CONTEXT_FIELDS = ("worker_id", "correlation_id")

# Reconnects and upstream calls are already reported by our own loggers.
_QUIET_LOGGERS = ("redis", "httpx", "httpcore")


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "pid": record.process,
            "message": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            entry["error"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "stacktrace": self.formatException(record.exc_info),  # type: ignore[arg-type]
            }
        return json.dumps(entry, default=str)


def build_handler(log_format: str = "text") -> logging.Handler:
    handler = logging.StreamHandler()
    handler.addFilter(RequestContextFilter())
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    return handler


def configure_logging(*, log_format: str = "text", debug: bool = False) -> None:
    """Replace the root handlers with a single worker-tagged stream handler."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[build_handler(log_format)],
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
