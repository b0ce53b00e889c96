"""Points Ledger

Awards gamification points as a side effect of feed and course activity.
Each award is one atomic upsert-increment on the user's account plus an
insert-only PointEvent row; there is no decrement path.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import dialect_insert
from core.errors import AppError, Ok, Result, map_db_errors, out_of_range
from core.logging import points_logger
from models.points import PointsAccount, PointEvent

log = points_logger()


class PointReason(str, Enum):
    POST_CREATED = "post_created"
    LIKE_RECEIVED = "like_received"
    COMMENT_CREATED = "comment_created"
    LESSON_COMPLETED = "lesson_completed"
    MANUAL = "manual"


# Business policy, not protocol
POINT_AWARDS: dict[PointReason, int] = {
    PointReason.POST_CREATED: 10,
    PointReason.LIKE_RECEIVED: 1,
    PointReason.COMMENT_CREATED: 5,
    PointReason.LESSON_COMPLETED: 20,
}


@dataclass(slots=True)
class PointsBalance:
    user_id: UUID
    points: int
    updated_at: datetime | None


class PointsLedger:
    """Accumulates point awards into per-user running totals."""

    __slots__ = ("awards",)

    def __init__(self, awards: dict[PointReason, int] | None = None):
        self.awards = dict(POINT_AWARDS if awards is None else awards)

    @map_db_errors("points_ledger")
    async def award(
        self,
        session: AsyncSession,
        user_id: UUID,
        amount: int,
        reason: PointReason = PointReason.MANUAL,
        reference_id: UUID | None = None,
    ) -> Result[int, AppError]:
        """Add ``amount`` to the user's total and return the new total.

        The account is created with ``amount`` on first award. The increment
        happens inside the INSERT ... ON CONFLICT statement, so concurrent
        awards for the same user never overwrite each other.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            return out_of_range("amount", amount, min_val=1, origin="points_ledger")

        now = datetime.utcnow()
        stmt = dialect_insert(session, PointsAccount).values(
            user_id=user_id,
            points=amount,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[PointsAccount.user_id],
            set_={
                "points": PointsAccount.points + stmt.excluded.points,
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(PointsAccount.points)

        total = (await session.execute(stmt)).scalar_one()

        session.add(PointEvent(
            user_id=user_id,
            amount=amount,
            reason=PointReason(reason).value,
            reference_id=reference_id,
            created_at=now,
        ))
        await session.flush()

        log.info(
            "points_awarded",
            user_id=user_id,
            amount=amount,
            reason=PointReason(reason).value,
            total=total,
        )
        return Ok(total)

    async def award_for(
        self,
        session: AsyncSession,
        user_id: UUID,
        reason: PointReason,
        reference_id: UUID | None = None,
    ) -> Result[int, AppError]:
        """Award the policy amount configured for ``reason``."""
        return await self.award(session, user_id, self.awards[reason], reason, reference_id)

    async def balance(self, session: AsyncSession, user_id: UUID) -> PointsBalance:
        account = await session.get(PointsAccount, user_id, populate_existing=True)
        if account is None:
            return PointsBalance(user_id=user_id, points=0, updated_at=None)
        return PointsBalance(user_id=user_id, points=account.points, updated_at=account.updated_at)

    async def history(
        self,
        session: AsyncSession,
        user_id: UUID,
        limit: int = 50,
    ) -> list[PointEvent]:
        """Most recent awards first."""
        result = await session.execute(
            select(PointEvent)
            .where(PointEvent.user_id == user_id)
            .order_by(PointEvent.created_at.desc(), PointEvent.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def total_from_events(self, session: AsyncSession, user_id: UUID) -> int:
        """Recompute a total from the audit trail; equals the account total."""
        result = await session.execute(
            select(func.coalesce(func.sum(PointEvent.amount), 0)).where(PointEvent.user_id == user_id)
        )
        return int(result.scalar_one())
