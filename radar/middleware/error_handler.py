"""Standard error handler — one error envelope across every Control API route."""

from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import PlatformAPIError, RadarError
from ..utils.logging import get_logger

logger = get_logger("middleware.error_handler")


def error_body(request: Request, status_code: int, detail, **extra) -> dict:
    """Build the standard error envelope."""
    return {
        "error": True,
        "status_code": status_code,
        "detail": detail,
        **extra,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": getattr(request.state, "request_id", None),
    }


def register_error_handlers(app: FastAPI) -> None:
    """Register standard error handlers on the app."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(request, exc.status_code, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_body(request, 422, "Validation error", errors=exc.errors()),
        )

    @app.exception_handler(RadarError)
    async def radar_exception_handler(request: Request, exc: RadarError):
        # Scanner error messages are returned verbatim
        status_code = 502 if isinstance(exc, PlatformAPIError) else 500
        logger.error(
            "request_failed",
            error=str(exc),
            request_id=getattr(request.state, "request_id", None),
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=status_code,
            content=error_body(request, status_code, str(exc)),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            request_id=getattr(request.state, "request_id", None),
            path=str(request.url.path),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=error_body(request, 500, "Internal server error"),
        )
