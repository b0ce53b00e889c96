"""Error values

Engines report expected failures (missing rows, stale reorder requests,
invalid point amounts) by returning ``Err(AppError)`` instead of raising.
Routers turn an ``Err`` into an HTTP response at the boundary.

Codes are grouped by thousands:

    E2xxx  request validation
    E3xxx  authentication and authorization
    E4xxx  persistence
    E5xxx  business rules
    E9xxx  anything unexpected
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, NoReturn, TypeVar, Union, final
from uuid import uuid4

T = TypeVar("T")
E = TypeVar("E", bound="AppError")


class ErrorCode(Enum):
    E2000_VALIDATION_GENERIC = 2000
    E2001_REQUIRED_FIELD_MISSING = 2001
    E2002_INVALID_FORMAT = 2002
    E2003_OUT_OF_RANGE = 2003
    E2004_INVALID_TYPE = 2004

    E3000_AUTH_GENERIC = 3000
    E3002_TOKEN_EXPIRED = 3002
    E3003_TOKEN_INVALID = 3003
    E3004_TOKEN_MISSING = 3004
    E3010_INSUFFICIENT_PERMISSIONS = 3010
    E3011_RESOURCE_FORBIDDEN = 3011

    E4000_DATABASE_GENERIC = 4000
    E4001_CONNECTION_FAILED = 4001
    E4003_TRANSACTION_FAILED = 4003
    E4010_NOT_FOUND = 4010
    E4011_DUPLICATE_KEY = 4011
    E4012_FOREIGN_KEY_VIOLATION = 4012
    E4013_CHECK_CONSTRAINT = 4013

    E5000_BUSINESS_GENERIC = 5000
    E5002_STATE_CONFLICT = 5002
    E5005_ORDER_MISMATCH = 5005  # reorder payload is not the current sibling set

    E9000_INTERNAL_GENERIC = 9000
    E9001_UNEXPECTED_ERROR = 9001

    @property
    def http_status(self) -> int:
        if self in _STATUS_OVERRIDES:
            return _STATUS_OVERRIDES[self]
        return _STATUS_BY_GROUP.get(self.value // 1000, 500)

    @property
    def category(self) -> str:
        return _CATEGORY_BY_GROUP.get(self.value // 1000, "internal")


_STATUS_BY_GROUP = {2: 400, 3: 401, 4: 503, 5: 409}

# Authorization failures are 403 and row-level database outcomes are client
# errors; only connectivity and unclassified database failures are 503.
_STATUS_OVERRIDES = {
    ErrorCode.E3010_INSUFFICIENT_PERMISSIONS: 403,
    ErrorCode.E3011_RESOURCE_FORBIDDEN: 403,
    ErrorCode.E4010_NOT_FOUND: 404,
    ErrorCode.E4011_DUPLICATE_KEY: 409,
    ErrorCode.E4012_FOREIGN_KEY_VIOLATION: 409,
    ErrorCode.E4013_CHECK_CONSTRAINT: 409,
}

_CATEGORY_BY_GROUP = {2: "validation", 3: "auth", 4: "database", 5: "business"}


def _short_id() -> str:
    return uuid4().hex[:8]


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Where and when an error happened, for correlating logs with responses."""
    correlation_id: str = field(default_factory=_short_id)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    origin: str = ""
    user_id: str | None = None
    request_id: str | None = None


@dataclass(frozen=True, slots=True)
class AppError:
    code: ErrorCode
    message: str
    context: ErrorContext = field(default_factory=ErrorContext)
    metadata: dict = field(default_factory=dict)
    cause: Exception | None = None

    def with_context(self, **changes) -> AppError:
        """Copy with context fields replaced.

        An empty ``correlation_id`` keeps the existing one, so callers can pass
        a request header through without checking it first.
        """
        if not changes.get("correlation_id"):
            changes.pop("correlation_id", None)
        return dataclasses.replace(self, context=dataclasses.replace(self.context, **changes))

    def with_metadata(self, **extra) -> AppError:
        return dataclasses.replace(self, metadata={**self.metadata, **extra})

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code.name,
                "code_num": self.code.value,
                "message": self.message,
                "category": self.code.category,
                "correlation_id": self.context.correlation_id,
                "timestamp": self.context.timestamp.isoformat(),
                "metadata": self.metadata,
            }
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (correlation_id={self.context.correlation_id})"


@final
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value


@final
@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise ValueError(f"Called unwrap on Err: {self.error}")

    def unwrap_err(self) -> E:
        return self.error


Result = Union[Ok[T], Err[E]]
