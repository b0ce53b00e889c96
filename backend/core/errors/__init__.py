"""Result-based error handling

Engines return ``Result[T, AppError]`` for expected failures; routers call
``raise_result`` and the registered handlers render the error body.

    from core.errors import Ok, Result, AppError, not_found

    async def load_course(session, course_id) -> Result[Course, AppError]:
        course = await session.get(Course, course_id)
        if course is None:
            return not_found("Course", course_id, origin="courses")
        return Ok(course)
"""
from .types import AppError, Err, ErrorCode, ErrorContext, Ok, Result
from .builders import (
    db_connection_failed,
    duplicate_key,
    foreign_key_violation,
    insufficient_permissions,
    internal_error,
    not_found,
    order_mismatch,
    out_of_range,
    resource_forbidden,
    token_expired,
    token_invalid,
    token_missing,
    transaction_failed,
)
from .boundaries import (
    AuthErrorMapper,
    DatabaseErrorMapper,
    ErrorMapper,
    ValidationErrorMapper,
    map_db_errors,
    map_errors,
)
from .handlers import (
    AppErrorException,
    raise_error,
    raise_result,
    register_error_handlers,
    result_to_response,
)

__all__ = [
    "AppError",
    "Err",
    "ErrorCode",
    "ErrorContext",
    "Ok",
    "Result",
    "db_connection_failed",
    "duplicate_key",
    "foreign_key_violation",
    "insufficient_permissions",
    "internal_error",
    "not_found",
    "order_mismatch",
    "out_of_range",
    "resource_forbidden",
    "token_expired",
    "token_invalid",
    "token_missing",
    "transaction_failed",
    "AuthErrorMapper",
    "DatabaseErrorMapper",
    "ErrorMapper",
    "ValidationErrorMapper",
    "map_db_errors",
    "map_errors",
    "AppErrorException",
    "raise_error",
    "raise_result",
    "register_error_handlers",
    "result_to_response",
]
