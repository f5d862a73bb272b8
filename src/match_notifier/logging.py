"""Structured logging for the match notifier.

structlog renders JSON for the server and a console layout for the CLI.
Two context variables correlate events: the HTTP request being served and
the capture job being run. Capture jobs execute in their own asyncio task,
so a job id bound there never leaks into request logs.

Usage:
    from match_notifier.logging import bind_job_id, setup_logging

    setup_logging("INFO")
    bind_job_id("3f2a9c1d4e5b")
"""

from __future__ import annotations

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor

if TYPE_CHECKING:
    from fastapi import Request, Response
    from starlette.middleware.base import RequestResponseEndpoint

REQUEST_ID_HEADER = "X-Request-ID"

# Loggers that are chatty at INFO: the webhook client and the realtime socket
NOISY_LOGGERS = ("httpx", "httpcore", "websockets", "realtime", "hpack")

# Polled by orchestrators every few seconds
QUIET_PATHS = ("/health", "/health/ready")

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)


def set_request_id(request_id: str | None) -> None:
    _request_id_var.set(request_id)


def bind_job_id(job_id: str | None) -> None:
    """Tag every event logged from the current task with a capture job id."""
    _job_id_var.set(job_id)


def _add_correlation_ids(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    request_id = _request_id_var.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    job_id = _job_id_var.get()
    if job_id:
        event_dict.setdefault("job_id", job_id)
    return event_dict


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog and route stdlib loggers through it.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines when True, human-readable console output otherwise
    """
    shared_processors: list[Processor] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_correlation_ids,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Captions are Korean; keep them readable in the JSON output
    renderer: Processor = (
        structlog.processors.JSONRenderer(ensure_ascii=False)
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    handler = logging.StreamHandler(sys.stdout if json_output else sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=shared_processors,
        )
    )

    level = level.upper()
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.addHandler(handler)
        uvicorn_logger.propagate = False

    if level != "DEBUG":
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)


class LoggingMiddleware:
    """HTTP middleware that logs each request and tags it with a request id.

    An incoming X-Request-ID is reused so a caller pushing images through
    /send-image can correlate its own logs with ours. Health checks are
    logged at DEBUG.
    """

    def __init__(self, app: Any) -> None:
        self.app = app
        self.logger = structlog.get_logger("match_notifier.http")

    async def __call__(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        set_request_id(request_id)

        path = request.url.path
        log = self.logger.debug if path in QUIET_PATHS else self.logger.info
        log("request_started", method=request.method, path=path)

        start_time = time.monotonic()
        try:
            response = await call_next(request)
            log(
                "request_completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            )
        except Exception as exc:
            self.logger.error(
                "request_failed",
                method=request.method,
                path=path,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
                error=str(exc),
            )
            raise
        finally:
            set_request_id(None)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# --- Audit Event Functions ---


def log_state_change(
    logger: structlog.stdlib.BoundLogger,
    old_state: str,
    new_state: str,
    job_id: str | None = None,
) -> None:
    """Log a capture coordinator state transition.

    Args:
        logger: Logger instance
        old_state: Previous state
        new_state: New state
        job_id: Capture job the transition belongs to
    """
    logger.info(
        "state_change",
        old_state=old_state,
        new_state=new_state,
        job_id=job_id,
    )


def log_capture_stored(
    logger: structlog.stdlib.BoundLogger,
    job_id: str,
    filepath: str,
    duration_ms: float,
) -> None:
    """Log a screenshot written to disk.

    Args:
        logger: Logger instance
        job_id: Capture job identifier
        filepath: Path where the screenshot was stored
        duration_ms: Time from acquire to screenshot
    """
    logger.info(
        "capture_stored",
        job_id=job_id,
        filepath=filepath,
        duration_ms=round(duration_ms, 2),
    )


def log_dispatch_result(
    logger: structlog.stdlib.BoundLogger,
    filename: str,
    success: bool,
    status_code: int | None = None,
    error: str | None = None,
) -> None:
    """Log the outcome of a webhook dispatch.

    Args:
        logger: Logger instance
        filename: Name of the uploaded file part
        success: Whether the webhook accepted the upload
        status_code: HTTP status returned by the webhook, if any
        error: Error message (no webhook URL or secrets)
    """
    if success:
        logger.info("dispatch_succeeded", filename=filename, status_code=status_code)
    else:
        logger.error(
            "dispatch_failed",
            filename=filename,
            status_code=status_code,
            error=error,
        )


def log_change_event(
    logger: structlog.stdlib.BoundLogger,
    event_type: str,
    schema: str | None,
    table: str | None,
    payload: dict[str, Any],
) -> None:
    """Log a raw change event received from the change stream.

    Args:
        logger: Logger instance
        event_type: INSERT, UPDATE or DELETE
        schema: Schema the change happened in
        table: Table the change happened in
        payload: Raw event record as delivered by the stream
    """
    logger.info(
        "change_event_received",
        event_type=event_type,
        schema=schema,
        table=table,
        payload=payload,
    )
