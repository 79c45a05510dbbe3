"""
Line Logger Server - FastAPI Application
Accepts structured log events over HTTP and appends them to per-day files.
"""

import threading
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import orjson
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from starlette.concurrency import run_in_threadpool

from events import EventPayload, EventValidationError
from file_sink import FileSink, SinkError
from line_format import format_event
from utils import RequestContextMiddleware, ErrorType, error_response, LatencyTracker, log_request, classify_sink_error

logger = structlog.get_logger()

VERSION = "0.1.0"


class Settings(BaseSettings):
    """Application settings from environment."""

    model_config = SettingsConfigDict(env_file="config/.env", env_file_encoding="utf-8")

    log_dir: str = "./logs"

    host: str = "0.0.0.0"
    port: int = 8080
    server_log_level: str = "INFO"

    # None disables the check; 24 reproduces the historical +/- one day rule
    timestamp_window_hours: Optional[float] = None

    @field_validator("port", mode="before")
    @classmethod
    def _strip_port_colon(cls, value):
        if isinstance(value, str):
            value = value.strip().lstrip(":")
            return value or 8080
        return value


# Global state
settings = Settings()
file_sink: Optional[FileSink] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global file_sink

    logger.info("server_startup", version=VERSION, log_dir=settings.log_dir)
    file_sink = FileSink(settings.log_dir)
    logger.info("server_ready", port=settings.port)

    yield

    logger.info("server_shutdown")
    if file_sink:
        try:
            file_sink.close()
        except SinkError as e:
            logger.error("sink_close_failed", error=str(e))


app = FastAPI(
    title="Line Logger",
    description="Structured log ingestion into date-partitioned files",
    version=VERSION,
    lifespan=lifespan
)

app.add_middleware(RequestContextMiddleware)


def _timestamp_window() -> Optional[timedelta]:
    if settings.timestamp_window_hours is None:
        return None
    return timedelta(hours=settings.timestamp_window_hours)


@app.get("/health")
async def health():
    """Health check endpoint."""
    sink_open = file_sink is not None and not file_sink.closed

    return {
        "status": "healthy" if sink_open else "degraded",
        "sink": "open" if sink_open else "closed",
        "log_dir": settings.log_dir
    }


@app.post("/logs")
async def post_log(raw_request: Request):
    """
    Ingest one log event and append its rendered line to the day's file.
    """
    tracker = LatencyTracker()
    tracker.start()

    request_id = raw_request.scope.get("request_id", "unknown")

    content_type = raw_request.headers.get("content-type", "")
    if not content_type.lower().startswith("application/json"):
        log_request(request_id, None, tracker.elapsed_ms(), "rejected", failure_reason="content_type")
        return error_response(ErrorType.INVALID_CONTENT_TYPE, "Content-Type must be application/json")

    try:
        data = orjson.loads(await raw_request.body())
        payload = EventPayload.model_validate(data)
    except (orjson.JSONDecodeError, ValidationError):
        log_request(request_id, None, tracker.elapsed_ms(), "rejected", failure_reason="invalid_json")
        return error_response(ErrorType.INVALID_JSON, "invalid JSON body")

    # The JSON body wins over the query parameter.
    if not (payload.app or "").strip():
        payload.app = raw_request.query_params.get("app")

    try:
        event = payload.to_event(window=_timestamp_window())
    except EventValidationError as e:
        log_request(request_id, payload.level, tracker.elapsed_ms(), "rejected", failure_reason=str(e))
        return error_response(ErrorType.INVALID_EVENT, str(e))

    line = format_event(event)

    if file_sink is None:
        return error_response(ErrorType.SINK_UNAVAILABLE, "log sink is not initialised")

    cancel = threading.Event()
    if await raw_request.is_disconnected():
        cancel.set()

    try:
        await run_in_threadpool(file_sink.write, line, event.timestamp, cancel)
    except SinkError as e:
        reason = classify_sink_error(e)
        log_request(request_id, event.level.value, tracker.elapsed_ms(), "failed", event.app, reason)
        return error_response(ErrorType.SINK_WRITE_FAILED, "failed to write log", {"reason": reason})

    log_request(request_id, event.level.value, tracker.elapsed_ms(), app=event.app)
    return JSONResponse(status_code=202, content={"status": "ok"})


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Line Logger",
        "version": VERSION,
        "endpoints": {
            "health": "/health",
            "logs": "/logs"
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "log_server:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.server_log_level.lower(),
        reload=False
    )
