from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base error: mapped to exactly one HTTP response at the request boundary."""

    status_code = 500
    error_code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, *, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(AppError):
    """Malformed or out-of-range request parameters. Never reaches storage."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    error_code = "NOT_FOUND"


class StorageError(AppError):
    """
    Connection failure, constraint violation, query failure or timeout.
    The client gets a generic message; the cause is only attached in DEBUG.
    """

    status_code = 500
    error_code = "STORAGE_ERROR"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


def _error_body(
    *,
    request: Request,
    error_code: str,
    message: str,
    details: Any = None,
) -> dict[str, Any]:
    return {
        "status": "error",
        "error_code": error_code,
        "message": message,
        "details": details,
        "path": request.url.path,
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
    }


def register_error_handlers(app: FastAPI, *, debug: bool = False) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        details = exc.details
        if isinstance(exc, StorageError):
            logger.error(
                "%s %s failed: %s (%r)",
                request.method,
                request.url.path,
                exc.message,
                exc.cause,
            )
            details = repr(exc.cause) if (debug and exc.cause is not None) else None
        else:
            logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                request=request,
                error_code=exc.error_code,
                message=exc.message,
                details=details,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=ValidationError.status_code,
            content=_error_body(
                request=request,
                error_code=ValidationError.error_code,
                message="Invalid request parameters",
                details=jsonable_encoder(exc.errors()),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            error_code, message = "NOT_FOUND", f"Route {request.method} {request.url.path} not found"
        else:
            error_code, message = "HTTP_ERROR", str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request=request, error_code=error_code, message=message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                request=request,
                error_code="INTERNAL_SERVER_ERROR",
                message="Internal server error",
                details=repr(exc) if debug else None,
            ),
        )
