"""Points API Routes

Leaderboard and the caller's own balance, standing and award history.
"""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import get_db
from core.security import get_current_user_id
from engines.leaderboard import LeaderboardAggregator
from engines.points import PointsLedger

router = APIRouter()

ledger = PointsLedger()
leaderboard = LeaderboardAggregator()


class LeaderboardEntryResponse(BaseModel):
    rank: int
    user_id: UUID
    display_name: str
    profile_image_url: str | None
    points: int

    class Config:
        from_attributes = True


class MyPointsResponse(BaseModel):
    user_id: UUID
    points: int
    rank: int | None
    updated_at: datetime | None


class PointEventResponse(BaseModel):
    id: UUID
    amount: int
    reason: str
    reference_id: UUID | None
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/leaderboard", response_model=list[LeaderboardEntryResponse])
async def get_leaderboard(
    limit: int = Query(settings.LEADERBOARD_DEFAULT_LIMIT, ge=1, le=settings.LEADERBOARD_MAX_LIMIT),
    db: AsyncSession = Depends(get_db),
):
    """Top point holders, highest first."""
    return await leaderboard.top_n(db, limit)


@router.get("/points/me", response_model=MyPointsResponse)
async def get_my_points(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    balance = await ledger.balance(db, user_id)
    standing = await leaderboard.standing(db, user_id)
    return MyPointsResponse(
        user_id=user_id,
        points=balance.points,
        rank=standing.rank if standing else None,
        updated_at=balance.updated_at,
    )


@router.get("/points/me/history", response_model=list[PointEventResponse])
async def get_my_point_history(
    limit: int = Query(settings.POINTS_HISTORY_LIMIT, ge=1, le=200),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await ledger.history(db, user_id, limit)
