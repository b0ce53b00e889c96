"""Ordering Engine

Keeps ``order_index`` contiguous (0..n-1) for modules within a course and
lessons within a module.

Reorders take the complete new sequence of sibling IDs. The sequence is
checked against the current siblings before anything is written, and all
index updates are flushed in the caller's transaction, so a rejected or
failed reorder leaves the stored order untouched. Creation appends at the
end; deletion closes the gap by shifting later siblings down by one.
"""
from collections import Counter
from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.errors import AppError, Ok, Result, map_db_errors, not_found, order_mismatch
from core.logging import engine_logger
from models.course import Course, CourseModule, Lesson

log = engine_logger()


@dataclass(frozen=True, slots=True)
class OrderDiff:
    """How a requested ordering differs from the current sibling set."""
    unknown: frozenset[UUID]
    missing: frozenset[UUID]
    duplicates: frozenset[UUID]

    @property
    def matches(self) -> bool:
        return not (self.unknown or self.missing or self.duplicates)


def diff_order(current_ids: Sequence[UUID], requested_ids: Sequence[UUID]) -> OrderDiff:
    counts = Counter(requested_ids)
    current = set(current_ids)
    requested = set(counts)
    return OrderDiff(
        unknown=frozenset(requested - current),
        missing=frozenset(current - requested),
        duplicates=frozenset(i for i, n in counts.items() if n > 1),
    )


class OrderingEngine:
    """Whole-list reorder, append-on-create and renumber-on-delete."""

    __slots__ = ()

    async def _lock_course(self, session: AsyncSession, course_id: UUID) -> bool:
        result = await session.execute(
            select(Course.id).where(Course.id == course_id).with_for_update()
        )
        return result.scalar_one_or_none() is not None

    async def _lock_module(self, session: AsyncSession, module_id: UUID) -> bool:
        result = await session.execute(
            select(CourseModule.id).where(CourseModule.id == module_id).with_for_update()
        )
        return result.scalar_one_or_none() is not None

    async def _apply_order(
        self,
        session: AsyncSession,
        siblings: Sequence[CourseModule | Lesson],
        ordered_ids: Sequence[UUID],
        collection: str,
        parent_id: UUID,
    ) -> Result[list, AppError]:
        diff = diff_order([s.id for s in siblings], ordered_ids)
        if not diff.matches:
            log.warning(
                "reorder_rejected",
                collection=collection,
                parent_id=parent_id,
                unknown=len(diff.unknown),
                missing=len(diff.missing),
                duplicates=len(diff.duplicates),
            )
            return order_mismatch(
                collection,
                parent_id,
                unknown=diff.unknown,
                missing=diff.missing,
                duplicates=diff.duplicates,
                origin="ordering_engine",
            )

        by_id = {s.id: s for s in siblings}
        changed = 0
        for position, sibling_id in enumerate(ordered_ids):
            sibling = by_id[sibling_id]
            if sibling.order_index != position:
                sibling.order_index = position
                changed += 1
        await session.flush()

        log.info("reordered", collection=collection, parent_id=parent_id, size=len(ordered_ids), changed=changed)
        return Ok([by_id[i] for i in ordered_ids])

    @map_db_errors("ordering_engine")
    async def reorder_modules(
        self,
        session: AsyncSession,
        course_id: UUID,
        ordered_module_ids: Sequence[UUID],
    ) -> Result[list[CourseModule], AppError]:
        """Set each module's order_index to its position in ``ordered_module_ids``.

        The IDs must be exactly the course's current modules, each once.
        """
        if not await self._lock_course(session, course_id):
            return not_found("Course", course_id, origin="ordering_engine")

        result = await session.execute(
            select(CourseModule)
            .where(CourseModule.course_id == course_id)
            .with_for_update()
        )
        return await self._apply_order(
            session, result.scalars().all(), ordered_module_ids, "modules", course_id
        )

    @map_db_errors("ordering_engine")
    async def reorder_lessons(
        self,
        session: AsyncSession,
        module_id: UUID,
        ordered_lesson_ids: Sequence[UUID],
    ) -> Result[list[Lesson], AppError]:
        """Same contract as ``reorder_modules``, scoped to one module's lessons."""
        if not await self._lock_module(session, module_id):
            return not_found("Module", module_id, origin="ordering_engine")

        result = await session.execute(
            select(Lesson)
            .where(Lesson.module_id == module_id)
            .with_for_update()
        )
        return await self._apply_order(
            session, result.scalars().all(), ordered_lesson_ids, "lessons", module_id
        )

    @map_db_errors("ordering_engine")
    async def append_module(
        self,
        session: AsyncSession,
        course_id: UUID,
        title: str,
        description: str | None = None,
    ) -> Result[CourseModule, AppError]:
        if not await self._lock_course(session, course_id):
            return not_found("Course", course_id, origin="ordering_engine")

        count = await session.scalar(
            select(func.count(CourseModule.id)).where(CourseModule.course_id == course_id)
        )
        module = CourseModule(
            course_id=course_id,
            title=title,
            description=description,
            order_index=count,
        )
        session.add(module)
        await session.flush()

        log.info("module_appended", course_id=course_id, module_id=module.id, order_index=count)
        return Ok(module)

    @map_db_errors("ordering_engine")
    async def append_lesson(
        self,
        session: AsyncSession,
        module_id: UUID,
        title: str,
        content: str | None = None,
        video_url: str | None = None,
        duration: int | None = None,
    ) -> Result[Lesson, AppError]:
        if not await self._lock_module(session, module_id):
            return not_found("Module", module_id, origin="ordering_engine")

        count = await session.scalar(
            select(func.count(Lesson.id)).where(Lesson.module_id == module_id)
        )
        lesson = Lesson(
            module_id=module_id,
            title=title,
            content=content,
            video_url=video_url,
            duration=duration,
            order_index=count,
        )
        session.add(lesson)
        await session.flush()

        log.info("lesson_appended", module_id=module_id, lesson_id=lesson.id, order_index=count)
        return Ok(lesson)

    @map_db_errors("ordering_engine")
    async def remove_module(
        self,
        session: AsyncSession,
        module_id: UUID,
    ) -> Result[None, AppError]:
        """Delete a module (its lessons and their progress cascade) and close the gap."""
        module = await session.get(CourseModule, module_id)
        if module is None:
            return not_found("Module", module_id, origin="ordering_engine")
        course_id, position = module.course_id, module.order_index

        await self._lock_course(session, course_id)
        await session.execute(delete(CourseModule).where(CourseModule.id == module_id))
        shifted = await session.execute(
            update(CourseModule)
            .where(
                CourseModule.course_id == course_id,
                CourseModule.order_index > position,
            )
            .values(order_index=CourseModule.order_index - 1)
        )

        log.info("module_removed", course_id=course_id, module_id=module_id, shifted=shifted.rowcount)
        return Ok(None)

    @map_db_errors("ordering_engine")
    async def remove_lesson(
        self,
        session: AsyncSession,
        lesson_id: UUID,
    ) -> Result[None, AppError]:
        """Delete a lesson (its progress rows cascade) and close the gap."""
        lesson = await session.get(Lesson, lesson_id)
        if lesson is None:
            return not_found("Lesson", lesson_id, origin="ordering_engine")
        module_id, position = lesson.module_id, lesson.order_index

        await self._lock_module(session, module_id)
        await session.execute(delete(Lesson).where(Lesson.id == lesson_id))
        shifted = await session.execute(
            update(Lesson)
            .where(
                Lesson.module_id == module_id,
                Lesson.order_index > position,
            )
            .values(order_index=Lesson.order_index - 1)
        )

        log.info("lesson_removed", module_id=module_id, lesson_id=lesson_id, shifted=shifted.rowcount)
        return Ok(None)

    async def list_modules_with_lessons(
        self,
        session: AsyncSession,
        course_id: UUID,
    ) -> list[CourseModule]:
        """Modules in persisted order, each with its lessons in persisted order."""
        result = await session.execute(
            select(CourseModule)
            .options(selectinload(CourseModule.lessons))
            .where(CourseModule.course_id == course_id)
            .order_by(CourseModule.order_index)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
