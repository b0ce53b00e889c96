"""Courses API Routes

Course outline (modules and lessons in persisted order), instructor-only
outline edits and reorders, enrollment, and per-user lesson progress.
"""
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db, fetch_one, commit
from core.logging import api_logger
from core.security import get_current_member, get_current_user_id
from core.errors import raise_result, raise_error, insufficient_permissions, resource_forbidden
from models.course import Course, CourseModule, Lesson
from engines.ordering import OrderingEngine
from engines.progress import ProgressTracker

log = api_logger()

router = APIRouter()

ordering = OrderingEngine()
tracker = ProgressTracker()


class CourseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    thumbnail_url: str | None = None
    is_published: bool = False


class CourseResponse(BaseModel):
    id: UUID
    title: str
    description: str | None
    thumbnail_url: str | None
    instructor_id: UUID
    is_published: bool
    created_at: datetime | None

    class Config:
        from_attributes = True


class CourseDetailResponse(CourseResponse):
    module_count: int
    lesson_count: int
    is_enrolled: bool
    progress: int | None


class ModuleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None


class LessonCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str | None = None
    video_url: str | None = None
    duration: int | None = Field(None, ge=0)


class LessonResponse(BaseModel):
    id: UUID
    module_id: UUID
    title: str
    content: str | None
    video_url: str | None
    duration: int | None
    order_index: int

    class Config:
        from_attributes = True


class ModuleResponse(BaseModel):
    id: UUID
    course_id: UUID
    title: str
    description: str | None
    order_index: int

    class Config:
        from_attributes = True


class ModuleWithLessonsResponse(ModuleResponse):
    lessons: list[LessonResponse]


class ReorderRequest(BaseModel):
    """The complete new order: every current sibling ID exactly once."""
    ids: list[UUID]


class EnrollmentResponse(BaseModel):
    course_id: UUID
    enrolled: bool
    created: bool


class EnrolledCourseResponse(BaseModel):
    course: CourseResponse
    enrolled_at: datetime
    progress: int

    class Config:
        from_attributes = True


class LessonProgressUpdate(BaseModel):
    is_completed: bool


class LessonProgressResponse(BaseModel):
    lesson_id: UUID
    course_id: UUID
    is_completed: bool
    completed_at: datetime | None
    first_completion: bool
    points_awarded: int
    course_progress: int


class CourseProgressResponse(BaseModel):
    course_id: UUID
    progress: int
    completed_lessons: int
    total_lessons: int
    lessons: dict[UUID, bool]


async def _require_instructor(
    db: AsyncSession, course_id: UUID, user_id: UUID, action: str
) -> Course:
    result = await fetch_one(db, Course, course_id, "Course")
    raise_result(result)
    course = result.unwrap()
    if course.instructor_id != user_id:
        log.warning("instructor_check_failed", course_id=course_id, action=action)
        raise_error(insufficient_permissions(
            action, f"course {course_id}", user_id=str(user_id), origin="api.courses"
        ).error)
    return course


async def _module_for_instructor(
    db: AsyncSession, module_id: UUID, user_id: UUID, action: str
) -> CourseModule:
    result = await fetch_one(db, CourseModule, module_id, "Module")
    raise_result(result)
    module = result.unwrap()
    await _require_instructor(db, module.course_id, user_id, action)
    return module


@router.get("/enrollments/my", response_model=list[EnrolledCourseResponse])
async def my_enrollments(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Courses the caller is enrolled in, with completion percentage."""
    return await tracker.enrolled_courses(db, user_id)


@router.post("", response_model=CourseResponse, status_code=201)
async def create_course(
    data: CourseCreate,
    user_id: UUID = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """Create a course; the caller becomes its instructor."""
    course = Course(instructor_id=user_id, **data.model_dump())
    db.add(course)
    raise_result(await commit(db))
    log.info("course_created", course_id=course.id)
    return course


@router.get("/{course_id}", response_model=CourseDetailResponse)
async def get_course(
    course_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await fetch_one(db, Course, course_id, "Course")
    raise_result(result)
    course = result.unwrap()

    module_count = await db.scalar(
        select(func.count(CourseModule.id)).where(CourseModule.course_id == course_id)
    )
    totals = await tracker.course_totals(db, user_id, course_id)
    enrolled = await tracker.is_enrolled(db, user_id, course_id)

    return CourseDetailResponse(
        **CourseResponse.model_validate(course).model_dump(),
        module_count=module_count,
        lesson_count=totals.total_lessons,
        is_enrolled=enrolled,
        progress=totals.percent if enrolled else None,
    )


@router.get("/{course_id}/modules", response_model=list[ModuleWithLessonsResponse])
async def get_modules(
    course_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """Modules with lessons, both sorted by order_index."""
    raise_result(await fetch_one(db, Course, course_id, "Course"))
    return await ordering.list_modules_with_lessons(db, course_id)


@router.post("/{course_id}/modules", response_model=ModuleResponse, status_code=201)
async def create_module(
    course_id: UUID,
    data: ModuleCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await _require_instructor(db, course_id, user_id, "add modules")
    result = await ordering.append_module(db, course_id, data.title, data.description)
    raise_result(result)
    raise_result(await commit(db))
    return result.unwrap()


@router.put("/{course_id}/modules/order", response_model=list[ModuleResponse])
async def reorder_modules(
    course_id: UUID,
    data: ReorderRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Replace the module order. 409 if ``ids`` is not exactly the course's modules."""
    await _require_instructor(db, course_id, user_id, "reorder modules")
    result = await ordering.reorder_modules(db, course_id, data.ids)
    raise_result(result)
    raise_result(await commit(db))
    return result.unwrap()


@router.delete("/modules/{module_id}", status_code=204)
async def delete_module(
    module_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await _module_for_instructor(db, module_id, user_id, "delete modules")
    raise_result(await ordering.remove_module(db, module_id))
    raise_result(await commit(db))


@router.post("/modules/{module_id}/lessons", response_model=LessonResponse, status_code=201)
async def create_lesson(
    module_id: UUID,
    data: LessonCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await _module_for_instructor(db, module_id, user_id, "add lessons")
    result = await ordering.append_lesson(db, module_id, **data.model_dump())
    raise_result(result)
    raise_result(await commit(db))
    return result.unwrap()


@router.put("/modules/{module_id}/lessons/order", response_model=list[LessonResponse])
async def reorder_lessons(
    module_id: UUID,
    data: ReorderRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Replace the lesson order. 409 if ``ids`` is not exactly the module's lessons."""
    await _module_for_instructor(db, module_id, user_id, "reorder lessons")
    result = await ordering.reorder_lessons(db, module_id, data.ids)
    raise_result(result)
    raise_result(await commit(db))
    return result.unwrap()


@router.delete("/lessons/{lesson_id}", status_code=204)
async def delete_lesson(
    lesson_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await fetch_one(db, Lesson, lesson_id, "Lesson")
    raise_result(result)
    await _module_for_instructor(db, result.unwrap().module_id, user_id, "delete lessons")
    raise_result(await ordering.remove_lesson(db, lesson_id))
    raise_result(await commit(db))


@router.post("/{course_id}/enroll", response_model=EnrollmentResponse)
async def enroll(
    course_id: UUID,
    user_id: UUID = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """Enroll the caller. Enrolling twice is a no-op."""
    raise_result(await fetch_one(db, Course, course_id, "Course"))
    result = await tracker.enroll(db, user_id, course_id)
    raise_result(result)
    raise_result(await commit(db))
    return EnrollmentResponse(course_id=course_id, enrolled=True, created=result.unwrap())


@router.get("/{course_id}/progress", response_model=CourseProgressResponse)
async def get_course_progress(
    course_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    raise_result(await fetch_one(db, Course, course_id, "Course"))
    totals = await tracker.course_totals(db, user_id, course_id)
    lessons = await tracker.course_lesson_map(db, user_id, course_id)
    return CourseProgressResponse(
        course_id=course_id,
        progress=totals.percent,
        completed_lessons=totals.completed_lessons,
        total_lessons=totals.total_lessons,
        lessons=lessons,
    )


@router.patch("/lessons/{lesson_id}/progress", response_model=LessonProgressResponse)
async def update_lesson_progress(
    lesson_id: UUID,
    data: LessonProgressUpdate,
    user_id: UUID = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """Mark a lesson complete or incomplete for the caller.

    The first completion of a lesson earns points; later toggles do not.
    """
    lesson_result = await fetch_one(db, Lesson, lesson_id, "Lesson")
    raise_result(lesson_result)
    module_result = await fetch_one(db, CourseModule, lesson_result.unwrap().module_id, "Module")
    raise_result(module_result)
    course_id = module_result.unwrap().course_id

    if not await tracker.is_enrolled(db, user_id, course_id):
        raise_error(resource_forbidden(
            f"Lesson {lesson_id}", "not enrolled in course", user_id=str(user_id), origin="api.courses"
        ).error)

    result = await tracker.set_lesson_completion(db, user_id, lesson_id, data.is_completed)
    raise_result(result)
    outcome = result.unwrap()
    progress = await tracker.course_progress(db, user_id, course_id)
    raise_result(await commit(db))

    return LessonProgressResponse(
        lesson_id=lesson_id,
        course_id=course_id,
        is_completed=outcome.progress.is_completed,
        completed_at=outcome.progress.completed_at,
        first_completion=outcome.first_completion,
        points_awarded=outcome.points_awarded,
        course_progress=progress,
    )
