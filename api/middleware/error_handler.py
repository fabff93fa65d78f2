"""
Exception handlers for the local control API.
Every error body has the shape {"error": {"message", "error_code", ...}}.
"""

from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.logger import get_logger
from modules.tunnel.exceptions import (
    ElevationDeclinedError,
    ServiceNotInstalledError,
    TunnelError
)

logger = get_logger(__name__)

# (status code, error code) per tunnel error type; TunnelError itself is the fallback
TUNNEL_ERROR_CODES = {
    ServiceNotInstalledError: (status.HTTP_409_CONFLICT, "service_not_installed"),
    ElevationDeclinedError: (status.HTTP_403_FORBIDDEN, "elevation_declined"),
}
TUNNEL_ERROR_DEFAULT = (status.HTTP_502_BAD_GATEWAY, "tunnel_control_failed")


class APIError(Exception):
    """Base API error with structured response."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or "internal_error"
        self.details = details or {}
        super().__init__(self.message)


def _error_response(status_code: int, message: str, error_code: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "error_code": error_code, **extra}}
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions with a generic 500."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An internal server error occurred",
        "internal_error",
        path=request.url.path,
        method=request.method
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions (auth failures, unknown routes)."""
    logger.warning(
        "HTTP exception",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        detail=str(exc.detail)
    )
    return _error_response(exc.status_code, str(exc.detail), f"http_{exc.status_code}", path=request.url.path)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors with per-field details."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error.get("loc", [])),
            "message": error.get("msg"),
            "type": error.get("type")
        }
        for error in exc.errors()
    ]
    logger.warning("Validation error", path=request.url.path, method=request.method, errors=errors)
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "validation_error",
        details=errors
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle APIError exceptions."""
    logger.warning(
        "API error",
        path=request.url.path,
        method=request.method,
        error_code=exc.error_code,
        message=exc.message
    )
    return _error_response(exc.status_code, exc.message, exc.error_code, details=exc.details)


async def tunnel_error_handler(request: Request, exc: TunnelError) -> JSONResponse:
    """
    Map tunnel control failures to distinct error codes.

    Args:
        request: The request that triggered the action
        exc: ServiceNotInstalledError, ElevationDeclinedError or TunnelControlError

    Returns:
        JSONResponse: 409 service_not_installed, 403 elevation_declined or 502 tunnel_control_failed
    """
    status_code, error_code = TUNNEL_ERROR_CODES.get(type(exc), TUNNEL_ERROR_DEFAULT)
    details = exc.result.to_dict() if exc.result is not None else {}

    logger.warning(
        "Tunnel action failed",
        path=request.url.path,
        error_code=error_code,
        message=exc.message
    )
    return _error_response(status_code, exc.message, error_code, details=details)
