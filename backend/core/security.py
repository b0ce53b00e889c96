"""Bearer token verification.

Tokens are minted by the identity service; this module only checks the
signature and expiry and extracts the user ID from the ``sub`` claim.
Write routes depend on ``get_current_member``, which also makes sure the
local profile row exists before anything references it.
"""
from datetime import datetime, timedelta, timezone
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import dialect_insert, get_db
from core.errors import (
    AuthErrorMapper,
    AppError,
    DatabaseErrorMapper,
    Err,
    Ok,
    Result,
    raise_error,
    token_invalid,
    token_missing,
)
from core.logging import auth_logger, bind_context
from models.user import User

log = auth_logger()

_bearer = HTTPBearer(auto_error=False)
_auth_mapper = AuthErrorMapper("security")
_db_mapper = DatabaseErrorMapper("security")


def create_access_token(user_id: UUID | str, expires_minutes: int | None = None) -> str:
    """Sign a token for ``user_id``. Used by seed scripts and tests."""
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    claims = {"sub": str(user_id), "exp": expire}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Result[UUID, AppError]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        return Err(_auth_mapper.map_exception(e))

    subject = payload.get("sub")
    if not subject:
        return token_invalid("missing subject", origin="security")
    try:
        return Ok(UUID(subject))
    except ValueError:
        return token_invalid("subject is not a user id", origin="security")


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> UUID:
    """FastAPI dependency resolving the authenticated user's ID."""
    if credentials is None:
        raise_error(token_missing(origin="security").error)

    result = decode_access_token(credentials.credentials)
    if result.is_err():
        log.warning("token_rejected", code=result.unwrap_err().code.name)
        raise_error(result.unwrap_err())

    user_id = result.unwrap()
    bind_context(user_id=str(user_id))
    return user_id


async def get_current_member(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> UUID:
    """Authenticated user ID, with a bare profile row created on first write.

    Profile details arrive later through ``PUT /api/users/me``; until then the
    row only carries the ID so posts, enrollments and points can reference it.
    """
    now = datetime.utcnow()
    stmt = dialect_insert(db, User).values(id=user_id, created_at=now, updated_at=now)
    stmt = stmt.on_conflict_do_nothing(index_elements=[User.id]).returning(User.id)
    try:
        created = (await db.execute(stmt)).scalar_one_or_none() is not None
    except SQLAlchemyError as e:
        await db.rollback()
        raise_error(_db_mapper.map_exception(e))
    if created:
        log.info("profile_stub_created", user_id=user_id)
    return user_id
