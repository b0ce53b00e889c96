"""Course Models

Course → CourseModule → Lesson, each level ordered by a contiguous
``order_index`` scoped to its parent, plus per-user enrollments.
"""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Integer, Boolean, Index
from sqlalchemy.orm import relationship

from core.database import Base, GUID


class Course(Base):
    __tablename__ = "courses"

    id = Column(GUID, primary_key=True, default=uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    thumbnail_url = Column(String(500))
    instructor_id = Column(GUID, ForeignKey("users.id"), nullable=False)
    is_published = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    modules = relationship(
        "CourseModule",
        back_populates="course",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CourseModule.order_index",
    )


class CourseModule(Base):
    """A chapter of a course; position among siblings is ``order_index``."""
    __tablename__ = "course_modules"
    __table_args__ = (
        Index("ix_course_modules_course_order", "course_id", "order_index"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    course_id = Column(GUID, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    course = relationship("Course", back_populates="modules")
    lessons = relationship(
        "Lesson",
        back_populates="module",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Lesson.order_index",
    )


class Lesson(Base):
    __tablename__ = "lessons"
    __table_args__ = (
        Index("ix_lessons_module_order", "module_id", "order_index"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    module_id = Column(GUID, ForeignKey("course_modules.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(Text)
    video_url = Column(String(500))
    duration = Column(Integer)  # minutes
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    module = relationship("CourseModule", back_populates="lessons")


class Enrollment(Base):
    """A user is tracked for progress in a course. One row per (user, course)."""
    __tablename__ = "enrollments"
    __table_args__ = (
        Index("ix_enrollments_user_course", "user_id", "course_id", unique=True),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(GUID, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    enrolled_at = Column(DateTime, default=datetime.utcnow)
