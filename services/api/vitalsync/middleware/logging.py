"""Structured logging with secret redaction.

OAuth callbacks carry authorization codes in the query string and the
provider client logs bearer headers on failure, so every rendered event
passes through ``redact_event`` before it is written.
"""

import logging
import re
import time
import uuid
from typing import Any, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Patterns for values that must never reach the logs
BEARER_PATTERN = re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=-]+")
OAUTH_PARAM_PATTERN = re.compile(r"(?i)\b(code|state|access_token|refresh_token|client_secret)=([^&\s\"']+)")
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


def redact_secrets(text: str) -> str:
    """Redact bearer tokens, OAuth parameters and email addresses from text."""
    text = BEARER_PATTERN.sub(r"\1[REDACTED]", text)
    text = OAUTH_PARAM_PATTERN.sub(r"\1=[REDACTED]", text)
    text = EMAIL_PATTERN.sub("[REDACTED_EMAIL]", text)
    return text


def redact_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: redact every string value of an event."""
    return {key: redact_secrets(value) if isinstance(value, str) else value for key, value in event_dict.items()}


def setup_logging(debug: bool = False) -> None:
    """Configure structlog for JSON output and quiet the HTTP client."""
    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            redact_event,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=log_level)
    # httpx logs full request URLs, which carry OAuth codes on the token exchange
    logging.getLogger("httpx").setLevel(logging.WARNING)


def describe_url(request: Request) -> str:
    """Path plus redacted query string, for log lines."""
    query = request.url.query
    return f"{request.url.path}?{redact_secrets(query)}" if query else request.url.path


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each request/response pair under a short request id.

    The id is bound into structlog's context so sync and webhook log lines
    emitted while handling the request carry it too.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = uuid.uuid4().hex[:8]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.perf_counter()
        logger = structlog.get_logger()

        await logger.ainfo(
            "request_started",
            method=request.method,
            url=describe_url(request),
            client=request.client.host if request.client else "unknown",
        )

        response = await call_next(request)

        await logger.ainfo(
            "request_completed",
            method=request.method,
            url=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

        response.headers["X-Request-ID"] = request_id
        return response
