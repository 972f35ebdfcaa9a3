"""Global error handling middleware."""

import logging
import traceback

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from vitalsync.exceptions import ConfigurationError
from vitalsync.middleware.logging import redact_secrets

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and return safe error responses."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except ConfigurationError as exc:
            logger.error("Configuration error: %s", redact_secrets(str(exc)))
            return JSONResponse(
                status_code=500,
                content={"detail": "Service is not configured.", "error_type": "ConfigurationError"},
            )
        except Exception as exc:
            # Tokens can appear in provider error bodies and tracebacks
            error_msg = redact_secrets(str(exc))
            tb = traceback.format_exc()

            logger.error(
                "Unhandled exception: %s\n%s",
                error_msg,
                redact_secrets(tb),
            )

            return JSONResponse(
                status_code=500,
                content={
                    "detail": "An internal error occurred. Please try again later.",
                    "error_type": type(exc).__name__,
                },
            )
