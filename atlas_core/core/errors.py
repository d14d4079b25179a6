# atlas_core/core/errors.py
"""
Error envelope and application exception handlers.

Every failure leaves the API as `{"ok": false, "error": ...}`. Services raise
`HTTPException` (or `ApiError` when extra envelope keys are needed); store errors
that reach the edge are mapped to 503 when transient and 500 otherwise.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException
from loguru import logger

from atlas_core.core.database import is_transient_error
from atlas_core.models.api_common import ErrorDetail, ErrorResponse, ValidationErrorResponse


class ApiError(HTTPException):
    """HTTPException carrying extra keys for the error envelope."""

    def __init__(self, status_code: int, error: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=status_code, detail=error)
        self.extra = extra or {}


def error_response(status_code: int, error: str, **extra: Any) -> JSONResponse:
    body = ErrorResponse(error=error, **extra)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    log = logger.bind(path=request.url.path)
    if exc.status_code >= 500:
        log.error(f"HTTP {exc.status_code}: {exc.detail}")
    else:
        log.info(f"HTTP {exc.status_code}: {exc.detail}")
    extra = getattr(exc, "extra", {}) or {}
    response = error_response(exc.status_code, str(exc.detail), **extra)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [part for part in err.get("loc", ()) if part != "body"]
        field = loc[0] if len(loc) == 1 else (loc or None)
        errors.append(ErrorDetail(field=field, message=err.get("msg", "invalid")))
    logger.bind(path=request.url.path).info(f"Validation error: {[e.model_dump() for e in errors]}")
    body = ValidationErrorResponse(errors=errors)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())


async def store_exception_handler(request: Request, exc: PyMongoError):
    if is_transient_error(exc):
        logger.bind(path=request.url.path).warning(f"Transient store error: {exc}")
        return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "database_unavailable")
    logger.bind(path=request.url.path).exception(f"Store error: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "server_error")


async def generic_exception_handler(request: Request, exc: Exception):
    if is_transient_error(exc):
        logger.bind(path=request.url.path).warning(f"Transient error: {exc}")
        return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "database_unavailable")
    logger.bind(path=request.url.path).exception(f"Unhandled Exception: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "server_error")


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PyMongoError, store_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
