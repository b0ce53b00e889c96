"""Community Feed API Routes

Post, like and comment creation. Each of these earns points for the
acting user (or, for likes, the post author).
"""
from datetime import datetime
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db, fetch_one, commit, dialect_insert
from core.logging import api_logger
from core.security import get_current_member
from core.errors import raise_result
from models.community import Post, PostLike, Comment
from engines.points import PointReason, PointsLedger

log = api_logger()

router = APIRouter()

ledger = PointsLedger()


class PostCreate(BaseModel):
    title: str | None = Field(None, max_length=255)
    content: str = Field(min_length=1)
    category: str = "general"


class PostResponse(BaseModel):
    id: UUID
    author_id: UUID
    title: str | None
    content: str
    category: str | None
    created_at: datetime | None
    points_awarded: int = 0

    class Config:
        from_attributes = True


class LikeResponse(BaseModel):
    post_id: UUID
    liked: bool
    like_count: int


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    parent_id: UUID | None = None


class CommentResponse(BaseModel):
    id: UUID
    post_id: UUID
    author_id: UUID
    parent_id: UUID | None
    content: str
    created_at: datetime | None
    points_awarded: int = 0

    class Config:
        from_attributes = True


@router.post("", response_model=PostResponse, status_code=201)
async def create_post(
    data: PostCreate,
    user_id: UUID = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    post = Post(author_id=user_id, **data.model_dump())
    db.add(post)
    await db.flush()

    award = await ledger.award_for(db, user_id, PointReason.POST_CREATED, reference_id=post.id)
    raise_result(award)
    raise_result(await commit(db))

    return PostResponse(
        **PostResponse.model_validate(post).model_dump(exclude={"points_awarded"}),
        points_awarded=ledger.awards[PointReason.POST_CREATED],
    )


@router.post("/{post_id}/like", response_model=LikeResponse)
async def toggle_like(
    post_id: UUID,
    user_id: UUID = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """Like or unlike a post.

    A like earns the post author a point. Unliking only removes the like;
    points already earned stay.
    """
    result = await fetch_one(db, Post, post_id, "Post")
    raise_result(result)
    post = result.unwrap()

    removed = await db.execute(
        delete(PostLike).where(PostLike.post_id == post_id, PostLike.user_id == user_id)
    )
    liked = False
    if removed.rowcount == 0:
        stmt = dialect_insert(db, PostLike).values(
            id=uuid4(), post_id=post_id, user_id=user_id, created_at=datetime.utcnow()
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=[PostLike.post_id, PostLike.user_id],
        ).returning(PostLike.id)
        liked = (await db.execute(stmt)).scalar_one_or_none() is not None

        if liked:
            award = await ledger.award_for(db, post.author_id, PointReason.LIKE_RECEIVED, reference_id=post_id)
            raise_result(award)

    like_count = await db.scalar(select(func.count(PostLike.id)).where(PostLike.post_id == post_id))
    raise_result(await commit(db))

    log.info("post_like_toggled", post_id=post_id, liked=liked)
    return LikeResponse(post_id=post_id, liked=liked, like_count=like_count)


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=201)
async def create_comment(
    post_id: UUID,
    data: CommentCreate,
    user_id: UUID = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    raise_result(await fetch_one(db, Post, post_id, "Post"))
    if data.parent_id is not None:
        raise_result(await fetch_one(db, Comment, data.parent_id, "Comment"))

    comment = Comment(post_id=post_id, author_id=user_id, **data.model_dump())
    db.add(comment)
    await db.flush()

    award = await ledger.award_for(db, user_id, PointReason.COMMENT_CREATED, reference_id=comment.id)
    raise_result(award)
    raise_result(await commit(db))

    return CommentResponse(
        **CommentResponse.model_validate(comment).model_dump(exclude={"points_awarded"}),
        points_awarded=ledger.awards[PointReason.COMMENT_CREATED],
    )
