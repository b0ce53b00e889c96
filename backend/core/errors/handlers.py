"""HTTP boundary for AppError

Every failure leaves the API as ``{"error": {...}}`` with the status taken
from the error code, whether it started as an ``Err`` from an engine, a
pydantic validation failure, a Starlette HTTPException or a stray exception.
"""
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.logging import current_correlation_id, get_logger

from .boundaries import ValidationErrorMapper
from .types import AppError, ErrorCode, Result

log = get_logger("errors.handlers")

_validation_mapper = ValidationErrorMapper("request_validation")

# Starlette raises these for unmatched routes and methods
_HTTP_STATUS_CODES = {
    401: ErrorCode.E3004_TOKEN_MISSING,
    403: ErrorCode.E3011_RESOURCE_FORBIDDEN,
    404: ErrorCode.E4010_NOT_FOUND,
    409: ErrorCode.E5002_STATE_CONFLICT,
}


class AppErrorException(Exception):
    """Carries an AppError out of a route or dependency, which cannot return a Result."""

    def __init__(self, error: AppError):
        self.error = error
        super().__init__(str(error))


def _request_context(request: Request, origin: str | None = None) -> dict:
    context = {
        "correlation_id": current_correlation_id() or request.headers.get("X-Correlation-ID"),
        "request_id": request.headers.get("X-Request-ID"),
    }
    if origin:
        context["origin"] = origin
    return context


def result_to_response(error: AppError) -> JSONResponse:
    status_code = error.code.http_status

    log_method = log.warning if status_code < 500 else log.error
    log_method(
        "error_response",
        error_code=error.code.name,
        status=status_code,
        message=error.message,
        origin=error.context.origin,
        correlation_id=error.context.correlation_id,
        metadata=error.metadata,
    )
    return JSONResponse(status_code=status_code, content=error.to_dict())


async def app_error_handler(request: Request, exc: AppErrorException) -> JSONResponse:
    return result_to_response(exc.error.with_context(**_request_context(request)))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code in (400, 422):
        code = ErrorCode.E2000_VALIDATION_GENERIC
    elif exc.status_code >= 500:
        code = ErrorCode.E9001_UNEXPECTED_ERROR
    else:
        code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.E9000_INTERNAL_GENERIC)

    error = AppError(
        code=code,
        message=str(exc.detail) if exc.detail else f"HTTP {exc.status_code}",
    ).with_context(**_request_context(request, "http"))
    return result_to_response(error)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """One field error is returned as-is; several are folded into a single E2000."""
    details = _validation_mapper.map_pydantic_errors(list(exc.errors()))

    if len(details) == 1:
        error = details[0]
    else:
        error = AppError(
            code=ErrorCode.E2000_VALIDATION_GENERIC,
            message=f"Request validation failed: {len(details)} errors",
            metadata={
                "error_count": len(details),
                "errors": [d.metadata for d in details],
            },
        )
    return result_to_response(error.with_context(**_request_context(request, "request_validation")))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    error = AppError(
        code=ErrorCode.E9001_UNEXPECTED_ERROR,
        message="An unexpected error occurred",
        cause=exc,
    ).with_context(**_request_context(request, "unhandled"))

    log.exception(
        "unhandled_exception",
        error_type=type(exc).__name__,
        correlation_id=error.context.correlation_id,
    )
    return result_to_response(error)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppErrorException, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


def raise_error(error: AppError) -> None:
    """Raise ``error`` for FastAPI to render.

    Usage:
        if course.instructor_id != user_id:
            raise_error(insufficient_permissions("reorder modules", "course").error)
    """
    raise AppErrorException(error)


def raise_result(result: Result) -> None:
    """Raise if ``result`` is an Err; return normally otherwise."""
    if result.is_err():
        raise AppErrorException(result.unwrap_err())
