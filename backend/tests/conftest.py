"""Shared fixtures: a throwaway SQLite database per test and an HTTP client
bound to the app with its session dependency pointed at that database.

SQLite transactions open with BEGIN IMMEDIATE, so a session that has read
anything holds the write lock until it commits or closes. Fixtures that seed
data therefore use short-lived sessions.
"""
from uuid import UUID, uuid4

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import models  # noqa: F401
from core.database import Base, build_engine, build_sessionmaker, get_db
from core.security import create_access_token
from engines.ordering import OrderingEngine
from models.course import Course
from models.user import User


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'cohort-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return build_sessionmaker(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(session_factory):
    async def _make(first_name: str | None = "Test", last_name: str | None = None, email: str | None = None) -> UUID:
        async with session_factory() as session:
            user = User(
                email=email or f"{uuid4().hex[:10]}@example.com",
                first_name=first_name,
                last_name=last_name,
            )
            session.add(user)
            await session.commit()
            return user.id

    return _make


@pytest_asyncio.fixture
async def make_course(session_factory):
    """Build a course whose modules hold the given number of lessons.

    Returns (course_id, [(module_id, [lesson_id, ...]), ...]) in creation order.
    """
    ordering = OrderingEngine()

    async def _make(instructor_id: UUID, lessons_per_module: list[int], title: str = "Course"):
        async with session_factory() as session:
            course = Course(title=title, instructor_id=instructor_id, is_published=True)
            session.add(course)
            await session.flush()

            tree = []
            for m, lesson_count in enumerate(lessons_per_module, start=1):
                module = (await ordering.append_module(session, course.id, f"M{m}")).unwrap()
                lesson_ids = []
                for n in range(1, lesson_count + 1):
                    lesson = (await ordering.append_lesson(session, module.id, f"M{m}L{n}")).unwrap()
                    lesson_ids.append(lesson.id)
                tree.append((module.id, lesson_ids))

            await session.commit()
            return course.id, tree

    return _make


@pytest_asyncio.fixture
async def client_factory(session_factory):
    from main import app

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    clients: list[AsyncClient] = []

    async def _make(user_id: UUID | None = None) -> AsyncClient:
        headers = {}
        if user_id is not None:
            headers["Authorization"] = f"Bearer {create_access_token(user_id)}"
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()
