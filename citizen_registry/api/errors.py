"""Exception handlers rendering every failure in one error envelope.

Body shape: ``{"error": <code>, "message": <text>, "correlation_id": <id>}``
plus ``fields`` for validation errors.
"""

from typing import Any, Optional
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from citizen_registry.errors import RegistryError, ValidationFailedError

logger = structlog.get_logger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "NOT_FOUND",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    fields: Optional[list[dict[str, Any]]] = None,
) -> JSONResponse:
    correlation_id = _correlation_id(request)
    content: dict[str, Any] = {
        "error": code,
        "message": message,
        "correlation_id": correlation_id,
    }
    if fields is not None:
        content["fields"] = fields
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={"X-Correlation-Id": correlation_id},
    )


def _field_name(loc: tuple) -> str:
    # Drop the "body"/"query" prefix FastAPI adds to every location
    parts = [str(part) for part in loc[1:]] if len(loc) > 1 else [str(part) for part in loc]
    return ".".join(parts) or "unknown"


async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
    fields = exc.fields if isinstance(exc, ValidationFailedError) else None
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        error_code=exc.code,
        message=exc.message,
    )
    return error_response(request, exc.status_code, exc.code, exc.message, fields)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report every invalid field, not only the first."""
    fields = [
        {"field": _field_name(tuple(error.get("loc", ()))), "message": error.get("msg", "Invalid value")}
        for error in exc.errors()
    ]
    logger.warning(
        "validation_error",
        path=request.url.path,
        fields=[f["field"] for f in fields],
    )
    return error_response(
        request,
        400,
        ValidationFailedError.code,
        "Request validation failed",
        fields,
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    code = _DEFAULT_ERROR_CODES.get(exc.status_code, "INTERNAL")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(request, exc.status_code, code, message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return error_response(request, 500, "INTERNAL", "An unexpected error occurred")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RegistryError, registry_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
