"""User Profile API Routes

The identity service owns accounts; this keeps the local profile mirror
(used for display names and foreign keys) in sync with it.
"""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db, fetch_one, commit, dialect_insert
from core.logging import api_logger
from core.security import get_current_user_id
from core.errors import raise_result, raise_error, duplicate_key
from models.user import User

log = api_logger()

router = APIRouter()


class ProfileUpsert(BaseModel):
    email: str | None = Field(None, max_length=255)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    profile_image_url: str | None = Field(None, max_length=500)


class UserResponse(BaseModel):
    id: UUID
    email: str | None
    first_name: str | None
    last_name: str | None
    profile_image_url: str | None
    display_name: str
    created_at: datetime | None

    class Config:
        from_attributes = True


@router.put("/me", response_model=UserResponse)
async def upsert_me(
    data: ProfileUpsert,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create or update the caller's profile from identity-provider claims."""
    now = datetime.utcnow()
    fields = data.model_dump()
    stmt = dialect_insert(db, User).values(id=user_id, created_at=now, updated_at=now, **fields)
    stmt = stmt.on_conflict_do_update(
        index_elements=[User.id],
        set_={**fields, "updated_at": now},
    )
    try:
        await db.execute(stmt)
    except IntegrityError:
        await db.rollback()
        raise_error(duplicate_key("User", "email", data.email or "", origin="api.users").error)
    raise_result(await commit(db))

    user = await db.get(User, user_id, populate_existing=True)
    log.info("profile_synced", user_id=user_id)
    return user


@router.get("/me", response_model=UserResponse)
async def get_me(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await fetch_one(db, User, user_id, "User")
    raise_result(result)
    return result.unwrap()
