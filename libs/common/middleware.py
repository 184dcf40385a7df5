"""Observability middleware for FastAPI.

Provides:
- Request ID generation and propagation
- Request/response timing
- Request logging with visitor tokens redacted from the query string

Usage:
    from libs.common.middleware import add_observability_middleware

    app = FastAPI()
    add_observability_middleware(app)
"""

import time
from typing import Callable
from urllib.parse import parse_qsl, urlencode

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)

# Query parameters that identify a visitor or carry a credential.
REDACTED_QUERY_PARAMS = frozenset({"session_id", "api_key", "token"})
SKIP_LOGGING_PATHS = frozenset({"/health"})


def redact_query(query: str) -> str:
    """Return the query string with visitor tokens and credentials masked."""
    if not query:
        return ""
    pairs = [
        (key, "***" if key in REDACTED_QUERY_PARAMS else value)
        for key, value in parse_qsl(query, keep_blank_values=True)
    ]
    return urlencode(pairs)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Sets request context for tracing and logs the request lifecycle.

    The X-Request-ID header is propagated when present and generated otherwise,
    and echoed back on the response for client-side correlation.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get("X-Request-ID"),
            path=request.url.path,
            method=request.method,
        )
        should_log = request.url.path not in SKIP_LOGGING_PATHS
        start_time = time.perf_counter()

        if should_log:
            logger.info(
                "Request started",
                extra={"extra_fields": {"query": redact_query(request.url.query) or None}},
            )

        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000

            if should_log:
                log_level = "warning" if response.status_code >= 400 else "info"
                getattr(logger, log_level)(
                    "Request completed",
                    extra={
                        "extra_fields": {
                            "status_code": response.status_code,
                            "duration_ms": round(duration_ms, 2),
                        }
                    },
                )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                "Request failed with unhandled exception",
                extra={
                    "extra_fields": {
                        "error": str(e),
                        "duration_ms": round(duration_ms, 2),
                    }
                },
            )
            raise

        finally:
            clear_request_context()


def add_observability_middleware(app: FastAPI) -> None:
    """
    Configure logging and install the request context middleware.
    """
    configure_logging()
    app.add_middleware(RequestContextMiddleware)
    logger.info("Observability middleware initialized")
