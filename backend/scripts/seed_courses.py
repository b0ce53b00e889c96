#!/usr/bin/env python3
"""Seed courses from the file system.

Reads every YAML file under data/content/courses and creates the instructor
profile, the course, and its modules and lessons in file order. Re-running
replaces courses with the same title and instructor.

Run with: python3 -m scripts.seed_courses
"""
import asyncio
from pathlib import Path

import yaml
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db_session, init_models
from core.security import create_access_token
from engines.ordering import OrderingEngine
from models.course import Course
from models.user import User


CONTENT_DIR = Path(__file__).parent.parent.parent / "data" / "content" / "courses"

ordering = OrderingEngine()


def load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


async def get_or_create_instructor(session: AsyncSession, data: dict) -> User:
    result = await session.execute(select(User).where(User.email == data["email"]))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(
            email=data["email"],
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            profile_image_url=data.get("profile_image_url"),
        )
        session.add(user)
        await session.flush()
        print(f"Instructor: {data['email']} (created)")
    else:
        print(f"Instructor: {data['email']}")
    return user


async def create_course(session: AsyncSession, path: Path) -> None:
    data = load_yaml(path)
    if "course" not in data or "instructor" not in data:
        print(f"Skipping {path.name}: missing course or instructor")
        return

    instructor = await get_or_create_instructor(session, data["instructor"])
    course_info = data["course"]

    await session.execute(
        delete(Course).where(
            Course.title == course_info["title"],
            Course.instructor_id == instructor.id,
        )
    )

    course = Course(
        title=course_info["title"],
        description=course_info.get("description"),
        thumbnail_url=course_info.get("thumbnail_url"),
        is_published=course_info.get("is_published", False),
        instructor_id=instructor.id,
    )
    session.add(course)
    await session.flush()
    print(f"  Course: {course.title}")

    for module_info in data.get("modules", []):
        module = (await ordering.append_module(
            session, course.id, module_info["title"], module_info.get("description")
        )).unwrap()
        print(f"    Module {module.order_index}: {module.title}")

        for lesson_info in module_info.get("lessons", []):
            lesson = (await ordering.append_lesson(
                session,
                module.id,
                lesson_info["title"],
                content=lesson_info.get("content"),
                video_url=lesson_info.get("video_url"),
                duration=lesson_info.get("duration"),
            )).unwrap()
            print(f"      Lesson {lesson.order_index}: {lesson.title}")

    print(f"  Instructor token: {create_access_token(instructor.id)}")


async def main():
    print("Creating tables...")
    await init_models()

    files = sorted(CONTENT_DIR.glob("*.yaml"))
    if not files:
        print(f"No course files found in {CONTENT_DIR}")
        return

    print("\nSeeding courses from file system...")
    async with get_db_session() as session:
        for path in files:
            await create_course(session, path)
        await session.commit()
        print("\nCourse seeding complete!")


if __name__ == "__main__":
    asyncio.run(main())
