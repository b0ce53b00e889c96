"""Exception boundaries

Third-party layers (SQLAlchemy, python-jose, pydantic) signal failure by
raising. The mappers here turn those exceptions into AppErrors where they
surface, so everything above the boundary deals in Results.
"""
from __future__ import annotations

import functools
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, TypeVar

from jose import ExpiredSignatureError, JWTError
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from .types import AppError, ErrorCode, ErrorContext, Err, Result
from .builders import (
    db_connection_failed,
    duplicate_key,
    foreign_key_violation,
    internal_error,
    token_expired,
    token_invalid,
    transaction_failed,
)

T = TypeVar("T")


def _driver_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


class ErrorMapper(ABC):
    """Converts one library's exceptions into AppErrors tagged with ``origin``."""

    def __init__(self, origin: str):
        self.origin = origin

    @abstractmethod
    def map_exception(self, exc: Exception) -> AppError:
        ...

    def tag(self, error: AppError) -> AppError:
        """Fill in the origin of an error returned without one."""
        return error if error.context.origin else error.with_context(origin=self.origin)


class DatabaseErrorMapper(ErrorMapper):
    """SQLAlchemy exceptions to E4xxx codes.

    Constraint violations are recognised from the driver message, which
    differs between SQLite ("UNIQUE constraint failed") and PostgreSQL
    ("violates unique constraint").
    """

    def __init__(self, origin: str = "database"):
        super().__init__(origin)

    def map_exception(self, exc: Exception) -> AppError:
        if isinstance(exc, IntegrityError):
            return self._integrity(exc)
        if isinstance(exc, OperationalError):
            message = _driver_message(exc)
            if "connect" in message.lower():
                return db_connection_failed(message, origin=self.origin).error
            # sqlite "database is locked" lands here once the busy timeout expires
            return transaction_failed(message, origin=self.origin, cause=exc).error
        if isinstance(exc, SQLAlchemyError):
            return transaction_failed(str(exc), origin=self.origin, cause=exc).error
        return internal_error(f"Database error: {exc}", origin=self.origin, cause=exc).error

    def _integrity(self, exc: IntegrityError) -> AppError:
        message = _driver_message(exc)
        lowered = message.lower()

        if "unique constraint" in lowered or "duplicate key" in lowered:
            return duplicate_key("record", "unknown", "unknown", origin=self.origin).error
        if "foreign key" in lowered:
            return foreign_key_violation("record", "unknown", origin=self.origin).error
        return AppError(
            code=ErrorCode.E4013_CHECK_CONSTRAINT,
            message=f"Constraint violation: {message}",
            context=ErrorContext(origin=self.origin),
            cause=exc,
        )


class AuthErrorMapper(ErrorMapper):
    """python-jose decode failures to E3xxx codes."""

    def __init__(self, origin: str = "auth"):
        super().__init__(origin)

    def map_exception(self, exc: Exception) -> AppError:
        if isinstance(exc, ExpiredSignatureError):
            return token_expired(origin=self.origin).error
        if isinstance(exc, JWTError):
            return token_invalid(str(exc), origin=self.origin).error
        return internal_error(f"Authentication error: {exc}", origin=self.origin, cause=exc).error


class ValidationErrorMapper(ErrorMapper):
    """pydantic v2 error dicts to E2xxx codes, one AppError per failing field."""

    def __init__(self, origin: str = "validation"):
        super().__init__(origin)

    @staticmethod
    def format_location(loc: tuple[Any, ...] | list[Any]) -> str:
        """``("body", "ids", 1)`` becomes ``body.ids[1]``."""
        path = ""
        for segment in loc:
            if isinstance(segment, int):
                path += f"[{segment}]"
            else:
                path += f".{segment}" if path else str(segment)
        return path or "$"

    @staticmethod
    def code_for(err_type: str) -> ErrorCode:
        if err_type == "missing":
            return ErrorCode.E2001_REQUIRED_FIELD_MISSING
        if err_type.endswith(("_type", "_parsing")):
            return ErrorCode.E2004_INVALID_TYPE
        if err_type.startswith(("greater_than", "less_than", "too_")):
            return ErrorCode.E2003_OUT_OF_RANGE
        if err_type.startswith("string_") or err_type == "value_error":
            return ErrorCode.E2002_INVALID_FORMAT
        return ErrorCode.E2000_VALIDATION_GENERIC

    def map_exception(self, exc: Exception) -> AppError:
        return AppError(
            code=ErrorCode.E2000_VALIDATION_GENERIC,
            message=str(exc),
            context=ErrorContext(origin=self.origin),
            cause=exc,
        )

    def map_pydantic_errors(self, errors: list[dict]) -> list[AppError]:
        mapped = []
        for err in errors:
            field = self.format_location(err.get("loc", ()))
            msg = err.get("msg", "Validation error")
            err_type = err.get("type", "value_error")
            mapped.append(AppError(
                code=self.code_for(err_type),
                message=f"{field}: {msg}",
                context=ErrorContext(origin=self.origin),
                metadata={"field": field, "constraint": err_type, "message": msg},
            ))
        return mapped


def map_errors(mapper: ErrorMapper):
    """Decorate an async Result-returning function so SQLAlchemy failures come back as Err.

    Usage:
        @map_db_errors("ordering_engine")
        async def reorder_modules(...) -> Result[list[CourseModule], AppError]:
            ...
    """
    def decorator(fn: Callable[..., Awaitable[Result[T, AppError]]]):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> Result[T, AppError]:
            try:
                result = await fn(*args, **kwargs)
            except SQLAlchemyError as e:
                return Err(mapper.map_exception(e))
            if result.is_err():
                return Err(mapper.tag(result.unwrap_err()))
            return result
        return wrapper
    return decorator


def map_db_errors(origin: str = "database"):
    return map_errors(DatabaseErrorMapper(origin))
