"""Error constructors

Each helper returns ``Err(AppError(...))`` so engines can ``return`` it
directly. Metadata keys with a ``None`` value are dropped.
"""
from typing import Sequence
from uuid import UUID

from .types import AppError, ErrorCode, ErrorContext, Err


def _err(
    code: ErrorCode,
    message: str,
    *,
    origin: str = "",
    user_id: str | None = None,
    cause: Exception | None = None,
    **metadata,
) -> Err[AppError]:
    return Err(AppError(
        code=code,
        message=message,
        context=ErrorContext(origin=origin, user_id=user_id),
        metadata={k: v for k, v in metadata.items() if v is not None},
        cause=cause,
    ))


def _with_reason(message: str, reason: str) -> str:
    return f"{message}: {reason}" if reason else message


# Validation

def out_of_range(
    field: str,
    value,
    min_val: int | float | None = None,
    max_val: int | float | None = None,
    origin: str = "",
) -> Err[AppError]:
    bounds = [f">= {min_val}" if min_val is not None else "", f"<= {max_val}" if max_val is not None else ""]
    return _err(
        ErrorCode.E2003_OUT_OF_RANGE,
        f"Value {value!r} for '{field}' out of range ({', '.join(b for b in bounds if b)})",
        origin=origin,
        field=field,
        value=repr(value),
        min=min_val,
        max=max_val,
    )


# Authentication and authorization

def token_expired(origin: str = "") -> Err[AppError]:
    return _err(ErrorCode.E3002_TOKEN_EXPIRED, "Authentication token has expired", origin=origin)


def token_invalid(reason: str = "", origin: str = "") -> Err[AppError]:
    return _err(ErrorCode.E3003_TOKEN_INVALID, _with_reason("Invalid authentication token", reason), origin=origin)


def token_missing(origin: str = "") -> Err[AppError]:
    return _err(ErrorCode.E3004_TOKEN_MISSING, "Authentication token required", origin=origin)


def insufficient_permissions(
    action: str, resource: str | None = None, user_id: str | None = None, origin: str = ""
) -> Err[AppError]:
    message = f"Insufficient permissions to {action}"
    if resource:
        message += f" on {resource}"
    return _err(
        ErrorCode.E3010_INSUFFICIENT_PERMISSIONS,
        message,
        origin=origin,
        user_id=user_id,
        action=action,
        resource=resource,
    )


def resource_forbidden(
    resource: str, reason: str = "", user_id: str | None = None, origin: str = ""
) -> Err[AppError]:
    return _err(
        ErrorCode.E3011_RESOURCE_FORBIDDEN,
        _with_reason(f"Access to '{resource}' is forbidden", reason),
        origin=origin,
        user_id=user_id,
        resource=resource,
    )


# Persistence

def not_found(entity: str, id: str | UUID | None = None, origin: str = "") -> Err[AppError]:
    return _err(
        ErrorCode.E4010_NOT_FOUND,
        f"{entity} not found: {id}" if id else f"{entity} not found",
        origin=origin,
        entity=entity,
        entity_id=str(id) if id else None,
    )


def duplicate_key(entity: str, field: str, value: str, origin: str = "") -> Err[AppError]:
    return _err(
        ErrorCode.E4011_DUPLICATE_KEY,
        f"{entity} with {field}='{value}' already exists",
        origin=origin,
        entity=entity,
        field=field,
    )


def foreign_key_violation(entity: str, reference: str, origin: str = "") -> Err[AppError]:
    return _err(
        ErrorCode.E4012_FOREIGN_KEY_VIOLATION,
        f"Referenced {reference} does not exist for {entity}",
        origin=origin,
        entity=entity,
        reference=reference,
    )


def db_connection_failed(reason: str = "", origin: str = "") -> Err[AppError]:
    return _err(ErrorCode.E4001_CONNECTION_FAILED, _with_reason("Database connection failed", reason), origin=origin)


def transaction_failed(reason: str = "", origin: str = "", cause: Exception | None = None) -> Err[AppError]:
    return _err(
        ErrorCode.E4003_TRANSACTION_FAILED,
        _with_reason("Database transaction failed", reason),
        origin=origin,
        cause=cause,
    )


# Business rules

def order_mismatch(
    collection: str,
    parent_id: str | UUID,
    *,
    unknown: Sequence[str | UUID] = (),
    missing: Sequence[str | UUID] = (),
    duplicates: Sequence[str | UUID] = (),
    origin: str = "",
) -> Err[AppError]:
    """A reorder named something other than exactly the current siblings.

    The client's copy of the list is stale; it should refetch and retry.
    """
    return _err(
        ErrorCode.E5005_ORDER_MISMATCH,
        f"Supplied {collection} order does not match the current {collection} of {parent_id}",
        origin=origin,
        collection=collection,
        parent_id=str(parent_id),
        unknown=sorted(map(str, unknown)),
        missing=sorted(map(str, missing)),
        duplicates=sorted(map(str, duplicates)),
    )


# Internal

def internal_error(message: str, *, origin: str = "", cause: Exception | None = None) -> Err[AppError]:
    return _err(ErrorCode.E9001_UNEXPECTED_ERROR, message, origin=origin, cause=cause)
