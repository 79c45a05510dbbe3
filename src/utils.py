"""
Line Logger Utilities
Shared utilities for logging, request tracking, and error handling.
"""

import uuid
import time
import orjson
import structlog
from typing import Dict, Any, Optional
from fastapi.responses import JSONResponse

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.JSONRenderer(serializer=orjson.dumps)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.BytesLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

REQUEST_ID_HEADER = b"x-request-id"


class ErrorType:
    """Error types reported in ingestion error bodies."""

    INVALID_CONTENT_TYPE = "invalid_content_type"
    INVALID_JSON = "invalid_json"
    INVALID_EVENT = "invalid_event"
    SINK_UNAVAILABLE = "sink_unavailable"
    SINK_WRITE_FAILED = "sink_write_failed"


ERROR_STATUS = {
    ErrorType.INVALID_CONTENT_TYPE: 400,
    ErrorType.INVALID_JSON: 400,
    ErrorType.INVALID_EVENT: 400,
    ErrorType.SINK_UNAVAILABLE: 503,
    ErrorType.SINK_WRITE_FAILED: 500,
}


def request_id_from_headers(headers) -> str:
    """Reuse the caller's X-Request-ID when present, otherwise mint one."""
    for name, value in headers:
        if name.lower() == REQUEST_ID_HEADER:
            supplied = value.decode("latin-1").strip()
            if supplied:
                return supplied[:128]
    return str(uuid.uuid4())


class RequestContextMiddleware:
    """Bind a request_id to all logs and echo it in the X-Request-ID header."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = request_id_from_headers(scope.get("headers", []))
        scope["request_id"] = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        async def send_with_request_id(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER, request_id.encode("latin-1")))
                message = {**message, "headers": headers}
            await send(message)

        await self.app(scope, receive, send_with_request_id)


def error_response(
    error_type: str,
    message: str,
    details: Optional[Dict[str, Any]] = None
) -> JSONResponse:
    """Build an ingestion error body; the status code follows the error type."""
    content = {
        "error": {
            "type": error_type,
            "message": message,
        }
    }
    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=ERROR_STATUS.get(error_type, 500),
        content=content
    )


class LatencyTracker:
    """Track request latency."""

    def __init__(self):
        self.start_time = None

    def start(self):
        """Start timing."""
        self.start_time = time.perf_counter()

    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds."""
        if self.start_time is None:
            return 0.0
        return (time.perf_counter() - self.start_time) * 1000


def classify_sink_error(exception: Exception) -> str:
    """
    Map a sink exception to a failure reason for structured logging.

    Args:
        exception: The exception raised by the sink

    Returns:
        One of "write_cancelled", "sink_closed", "sink_io_error",
        or "unknown_error_<Type>"
    """
    from file_sink import SinkClosedError, SinkError, WriteCancelledError

    if isinstance(exception, WriteCancelledError):
        return "write_cancelled"
    elif isinstance(exception, SinkClosedError):
        return "sink_closed"
    elif isinstance(exception, (SinkError, OSError)):
        return "sink_io_error"

    return f"unknown_error_{type(exception).__name__}"


def log_request(
    request_id: str,
    level: Optional[str],
    latency_ms: float,
    status: str = "accepted",
    app: Optional[str] = None,
    failure_reason: Optional[str] = None
):
    """
    Log structured request information.

    Args:
        request_id: Unique request identifier
        level: Level of the ingested event, if it got that far
        latency_ms: Request latency in milliseconds
        status: Request status (accepted/rejected/failed)
        app: App tag of the ingested event
        failure_reason: Specific failure reason if status != accepted
    """
    log_data = {
        "request_id": request_id,
        "level": level,
        "latency_ms": round(latency_ms, 2),
        "status": status
    }

    if app:
        log_data["app"] = app
    if failure_reason:
        log_data["failure_reason"] = failure_reason

    if status == "accepted":
        logger.info("log_accepted", **log_data)
    elif status == "rejected":
        logger.warning("log_rejected", **log_data)
    else:
        logger.error("log_failed", **log_data)
