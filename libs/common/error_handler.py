"""Domain exceptions and the FastAPI handlers that render them.

Service-layer code raises these instead of HTTPException so the same
functions can be driven from routers, maintenance jobs and tests.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from libs.common.logging import get_logger

logger = get_logger(__name__)


class DesignServiceError(Exception):
    """Base exception for design lifecycle errors."""

    error_kind = "unknown"
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class InvalidInputError(DesignServiceError):
    """Malformed serial, missing identifier or unmet checkout requirement."""

    error_kind = "invalid_input"
    status_code = 400


class NotFoundError(DesignServiceError):
    error_kind = "not_found"
    status_code = 404


class StateConflictError(DesignServiceError):
    """The requested transition does not fit the current design state."""

    error_kind = "state_conflict"
    status_code = 409


async def design_error_handler(
    request: Request, exc: DesignServiceError
) -> JSONResponse:
    logger.info(
        "Design request rejected (%s): %s",
        exc.error_kind,
        exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_kind": exc.error_kind},
    )


def add_exception_handlers(app: FastAPI) -> None:
    """Register handlers for consistent error responses."""
    app.add_exception_handler(DesignServiceError, design_error_handler)
