"""Leaderboard Aggregator

Ranks point totals on demand; no rank is stored. Ties on points go to the
account that started earning first, then to the lower user ID, so the order
is the same on every read.
"""
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.logging import points_logger
from models.points import PointsAccount
from models.user import User

log = points_logger()

RANKING_ORDER = (
    PointsAccount.points.desc(),
    PointsAccount.created_at.asc(),
    PointsAccount.user_id.asc(),
)


@dataclass(slots=True)
class LeaderboardEntry:
    rank: int
    user_id: UUID
    display_name: str
    profile_image_url: str | None
    points: int


class LeaderboardAggregator:
    """Read-only ranked view over PointsAccount."""

    __slots__ = ("max_limit",)

    def __init__(self, max_limit: int | None = None):
        self.max_limit = max_limit or settings.LEADERBOARD_MAX_LIMIT

    async def top_n(self, session: AsyncSession, n: int) -> list[LeaderboardEntry]:
        """At most ``n`` accounts, highest total first, ranked 1..k by position."""
        if n <= 0:
            return []
        limit = min(n, self.max_limit)
        result = await session.execute(
            select(PointsAccount.user_id, PointsAccount.points, User)
            .join(User, User.id == PointsAccount.user_id)
            .order_by(*RANKING_ORDER)
            .limit(limit)
        )
        entries = [
            LeaderboardEntry(
                rank=position,
                user_id=user_id,
                display_name=user.display_name,
                profile_image_url=user.profile_image_url,
                points=points,
            )
            for position, (user_id, points, user) in enumerate(result.all(), start=1)
        ]
        log.debug("leaderboard_read", requested=n, returned=len(entries))
        return entries

    async def standing(self, session: AsyncSession, user_id: UUID) -> LeaderboardEntry | None:
        """The user's entry under the same ordering as ``top_n``; None without an account."""
        result = await session.execute(
            select(PointsAccount, User)
            .join(User, User.id == PointsAccount.user_id)
            .where(PointsAccount.user_id == user_id)
        )
        row = result.first()
        if row is None:
            return None
        account, user = row

        ahead = await session.scalar(
            select(func.count()).select_from(PointsAccount).where(
                or_(
                    PointsAccount.points > account.points,
                    and_(
                        PointsAccount.points == account.points,
                        PointsAccount.created_at < account.created_at,
                    ),
                    and_(
                        PointsAccount.points == account.points,
                        PointsAccount.created_at == account.created_at,
                        PointsAccount.user_id < account.user_id,
                    ),
                )
            )
        )
        return LeaderboardEntry(
            rank=ahead + 1,
            user_id=user.id,
            display_name=user.display_name,
            profile_image_url=user.profile_image_url,
            points=account.points,
        )
