"""Per-user lesson completion state."""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, DateTime, ForeignKey, Boolean, Index

from core.database import Base, GUID


class LessonProgress(Base):
    """Completion flag for one (user, lesson) pair.

    ``completed_at`` follows the flag and is cleared on un-complete.
    ``first_completed_at`` is written once and never cleared; it marks that
    the completion reward has been paid.
    """
    __tablename__ = "lesson_progress"
    __table_args__ = (
        Index("ix_lesson_progress_user_lesson", "user_id", "lesson_id", unique=True),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    lesson_id = Column(GUID, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime)
    first_completed_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
