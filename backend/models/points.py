"""Gamification Models

PointsAccount holds the running total that the leaderboard ranks on;
PointEvent is the insert-only audit trail of every award.
"""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Index, CheckConstraint

from core.database import Base, GUID


class PointsAccount(Base):
    __tablename__ = "points_accounts"
    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_points_accounts_non_negative"),
        Index("ix_points_accounts_ranking", "points", "created_at"),
    )

    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    points = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class PointEvent(Base):
    __tablename__ = "point_events"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_point_events_positive"),
        Index("ix_point_events_user_created", "user_id", "created_at"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Integer, nullable=False)
    reason = Column(String(50), nullable=False)  # see engines.points.PointReason
    reference_id = Column(GUID)  # post / comment / lesson that earned the points
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
