"""Progress Tracker

Lesson completion state per user and its roll-up into course percentages.

A course's progress is always derived from the lessons that currently exist
under its modules, so deleting a lesson removes it from both sides of the
ratio without any bookkeeping.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable
from uuid import UUID, uuid4

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import dialect_insert
from core.errors import AppError, Err, Ok, Result, map_db_errors
from core.logging import engine_logger
from engines.points import PointReason, PointsLedger
from models.course import Course, CourseModule, Enrollment, Lesson
from models.progress import LessonProgress

log = engine_logger()


def completion_percent(completed: int, total: int) -> int:
    """``round(100 * completed / total)`` with halves rounded up; 0 for empty courses."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


@dataclass(slots=True)
class CompletionOutcome:
    progress: LessonProgress
    first_completion: bool
    points_awarded: int
    points_total: int | None = None


@dataclass(slots=True)
class CourseProgress:
    course_id: UUID
    total_lessons: int
    completed_lessons: int

    @property
    def percent(self) -> int:
        return completion_percent(self.completed_lessons, self.total_lessons)


@dataclass(slots=True)
class EnrolledCourse:
    course: Course
    enrolled_at: datetime
    progress: int


class ProgressTracker:
    """Completion state at lesson and course granularity."""

    __slots__ = ("ledger",)

    def __init__(self, ledger: PointsLedger | None = None):
        self.ledger = ledger or PointsLedger()

    async def get_lesson_progress(
        self,
        session: AsyncSession,
        user_id: UUID,
        lesson_id: UUID,
    ) -> LessonProgress | None:
        result = await session.execute(
            select(LessonProgress).where(
                LessonProgress.user_id == user_id,
                LessonProgress.lesson_id == lesson_id,
            )
        )
        return result.scalar_one_or_none()

    async def is_lesson_completed(
        self,
        session: AsyncSession,
        user_id: UUID,
        lesson_id: UUID,
    ) -> bool:
        result = await session.execute(
            select(LessonProgress.is_completed).where(
                LessonProgress.user_id == user_id,
                LessonProgress.lesson_id == lesson_id,
            )
        )
        return bool(result.scalar_one_or_none())

    @map_db_errors("progress_tracker")
    async def set_lesson_completion(
        self,
        session: AsyncSession,
        user_id: UUID,
        lesson_id: UUID,
        completed: bool,
    ) -> Result[CompletionOutcome, AppError]:
        """Upsert the (user, lesson) row and pay the completion reward once.

        The row is written with a single INSERT ... ON CONFLICT. When marking
        complete, ``first_completed_at`` is then claimed with a conditional
        UPDATE; only the request whose UPDATE matched a row awards points, so
        double submits and complete/uncomplete/complete cycles pay once.
        """
        now = datetime.utcnow()
        stmt = dialect_insert(session, LessonProgress).values(
            id=uuid4(),
            user_id=user_id,
            lesson_id=lesson_id,
            is_completed=completed,
            completed_at=now if completed else None,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[LessonProgress.user_id, LessonProgress.lesson_id],
            set_={
                "is_completed": stmt.excluded.is_completed,
                # keep the original timestamp when an already-complete lesson is re-marked
                "completed_at": (
                    func.coalesce(LessonProgress.completed_at, stmt.excluded.completed_at)
                    if completed else None
                ),
                "updated_at": stmt.excluded.updated_at,
            },
        ).returning(LessonProgress.id)
        progress_id = (await session.execute(stmt)).scalar_one()

        first_completion = False
        if completed:
            claimed = await session.execute(
                update(LessonProgress)
                .where(
                    LessonProgress.id == progress_id,
                    LessonProgress.first_completed_at.is_(None),
                )
                .values(first_completed_at=now)
                .execution_options(synchronize_session=False)
            )
            first_completion = claimed.rowcount == 1

        points_awarded = 0
        points_total = None
        if first_completion:
            award = await self.ledger.award_for(
                session, user_id, PointReason.LESSON_COMPLETED, reference_id=lesson_id
            )
            if award.is_err():
                return Err(award.unwrap_err())
            points_awarded = self.ledger.awards[PointReason.LESSON_COMPLETED]
            points_total = award.unwrap()

        result = await session.execute(
            select(LessonProgress)
            .where(LessonProgress.id == progress_id)
            .execution_options(populate_existing=True)
        )
        progress = result.scalar_one()

        log.info(
            "lesson_completion_set",
            user_id=user_id,
            lesson_id=lesson_id,
            completed=completed,
            first_completion=first_completion,
            points_awarded=points_awarded,
        )
        return Ok(CompletionOutcome(
            progress=progress,
            first_completion=first_completion,
            points_awarded=points_awarded,
            points_total=points_total,
        ))

    async def course_totals(
        self,
        session: AsyncSession,
        user_id: UUID,
        course_id: UUID,
    ) -> CourseProgress:
        """Lesson count and completed count over the course's current lessons."""
        result = await session.execute(
            select(
                func.count(Lesson.id),
                func.count(LessonProgress.id),
            )
            .select_from(Lesson)
            .join(CourseModule, Lesson.module_id == CourseModule.id)
            .outerjoin(
                LessonProgress,
                and_(
                    LessonProgress.lesson_id == Lesson.id,
                    LessonProgress.user_id == user_id,
                    LessonProgress.is_completed.is_(True),
                ),
            )
            .where(CourseModule.course_id == course_id)
        )
        total, completed = result.one()
        return CourseProgress(course_id=course_id, total_lessons=total, completed_lessons=completed)

    async def course_progress(
        self,
        session: AsyncSession,
        user_id: UUID,
        course_id: UUID,
    ) -> int:
        """Completion percentage in [0, 100]."""
        totals = await self.course_totals(session, user_id, course_id)
        return totals.percent

    async def bulk_course_progress(
        self,
        session: AsyncSession,
        user_id: UUID,
        course_ids: Iterable[UUID],
    ) -> dict[UUID, int]:
        """Progress for several courses in one grouped query."""
        course_ids = list(course_ids)
        if not course_ids:
            return {}

        result = await session.execute(
            select(
                CourseModule.course_id,
                func.count(Lesson.id),
                func.count(LessonProgress.id),
            )
            .select_from(Lesson)
            .join(CourseModule, Lesson.module_id == CourseModule.id)
            .outerjoin(
                LessonProgress,
                and_(
                    LessonProgress.lesson_id == Lesson.id,
                    LessonProgress.user_id == user_id,
                    LessonProgress.is_completed.is_(True),
                ),
            )
            .where(CourseModule.course_id.in_(course_ids))
            .group_by(CourseModule.course_id)
        )
        progress = {course_id: 0 for course_id in course_ids}
        for course_id, total, completed in result.all():
            progress[course_id] = completion_percent(completed, total)
        return progress

    async def course_lesson_map(
        self,
        session: AsyncSession,
        user_id: UUID,
        course_id: UUID,
    ) -> dict[UUID, bool]:
        """Every lesson of the course mapped to the user's completion flag."""
        result = await session.execute(
            select(Lesson.id, LessonProgress.is_completed)
            .join(CourseModule, Lesson.module_id == CourseModule.id)
            .outerjoin(
                LessonProgress,
                and_(
                    LessonProgress.lesson_id == Lesson.id,
                    LessonProgress.user_id == user_id,
                ),
            )
            .where(CourseModule.course_id == course_id)
            .order_by(CourseModule.order_index, Lesson.order_index)
        )
        return {lesson_id: bool(done) for lesson_id, done in result.all()}

    # Enrollment

    async def is_enrolled(
        self,
        session: AsyncSession,
        user_id: UUID,
        course_id: UUID,
    ) -> bool:
        result = await session.execute(
            select(Enrollment.id).where(
                Enrollment.user_id == user_id,
                Enrollment.course_id == course_id,
            )
        )
        return result.scalar_one_or_none() is not None

    @map_db_errors("progress_tracker")
    async def enroll(
        self,
        session: AsyncSession,
        user_id: UUID,
        course_id: UUID,
    ) -> Result[bool, AppError]:
        """Create the enrollment if absent. Returns True when a row was created."""
        stmt = dialect_insert(session, Enrollment).values(
            id=uuid4(),
            user_id=user_id,
            course_id=course_id,
            enrolled_at=datetime.utcnow(),
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=[Enrollment.user_id, Enrollment.course_id],
        ).returning(Enrollment.id)
        created = (await session.execute(stmt)).scalar_one_or_none() is not None

        if created:
            log.info("course_enrolled", user_id=user_id, course_id=course_id)
        return Ok(created)

    async def enrolled_courses(
        self,
        session: AsyncSession,
        user_id: UUID,
    ) -> list[EnrolledCourse]:
        """The user's courses, newest enrollment first, with progress."""
        result = await session.execute(
            select(Course, Enrollment.enrolled_at)
            .join(Enrollment, Enrollment.course_id == Course.id)
            .where(Enrollment.user_id == user_id)
            .order_by(Enrollment.enrolled_at.desc())
        )
        rows = result.all()
        progress = await self.bulk_course_progress(session, user_id, [course.id for course, _ in rows])
        return [
            EnrolledCourse(course=course, enrolled_at=enrolled_at, progress=progress[course.id])
            for course, enrolled_at in rows
        ]
