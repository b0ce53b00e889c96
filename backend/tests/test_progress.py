import asyncio

import pytest

from engines.ordering import OrderingEngine
from engines.points import PointsLedger
from engines.progress import ProgressTracker, completion_percent


@pytest.mark.parametrize(
    "completed,total,expected",
    [
        (0, 0, 0),
        (0, 4, 0),
        (1, 4, 25),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),
        (1, 200, 1),
        (4, 4, 100),
    ],
)
def test_completion_percent(completed, total, expected):
    assert completion_percent(completed, total) == expected


@pytest.fixture
def tracker():
    return ProgressTracker(PointsLedger())


@pytest.mark.asyncio
async def test_completing_twice_awards_once(session_factory, make_user, make_course, tracker):
    instructor = await make_user("Ada")
    learner = await make_user("Lin")
    course_id, [(_, lessons)] = await make_course(instructor, [4])

    async with session_factory() as session:
        first = (await tracker.set_lesson_completion(session, learner, lessons[0], True)).unwrap()
        second = (await tracker.set_lesson_completion(session, learner, lessons[0], True)).unwrap()
        await session.commit()

    assert first.first_completion is True
    assert first.points_awarded == 20
    assert first.points_total == 20
    assert second.first_completion is False
    assert second.points_awarded == 0
    assert second.progress.completed_at == first.progress.completed_at

    async with session_factory() as session:
        assert (await tracker.ledger.balance(session, learner)).points == 20
        assert await tracker.course_progress(session, learner, course_id) == 25


@pytest.mark.asyncio
async def test_uncomplete_then_recomplete_does_not_pay_again(session_factory, make_user, make_course, tracker):
    instructor = await make_user("Ada")
    learner = await make_user("Lin")
    course_id, [(_, lessons)] = await make_course(instructor, [2])

    async with session_factory() as session:
        await tracker.set_lesson_completion(session, learner, lessons[0], True)
        undone = (await tracker.set_lesson_completion(session, learner, lessons[0], False)).unwrap()
        assert undone.progress.is_completed is False
        assert undone.progress.completed_at is None
        assert undone.progress.first_completed_at is not None
        assert await tracker.course_progress(session, learner, course_id) == 0

        redone = (await tracker.set_lesson_completion(session, learner, lessons[0], True)).unwrap()
        await session.commit()

    assert redone.progress.is_completed is True
    assert redone.progress.completed_at is not None
    assert redone.points_awarded == 0

    async with session_factory() as session:
        assert (await tracker.ledger.balance(session, learner)).points == 20
        assert await tracker.course_progress(session, learner, course_id) == 50


@pytest.mark.asyncio
async def test_marking_incomplete_first_creates_row_without_points(session_factory, make_user, make_course, tracker):
    instructor = await make_user("Ada")
    learner = await make_user("Lin")
    _, [(_, lessons)] = await make_course(instructor, [1])

    async with session_factory() as session:
        outcome = (await tracker.set_lesson_completion(session, learner, lessons[0], False)).unwrap()
        await session.commit()

        assert outcome.first_completion is False
        assert outcome.points_awarded == 0
        assert await tracker.get_lesson_progress(session, learner, lessons[0]) is not None
        assert await tracker.is_lesson_completed(session, learner, lessons[0]) is False
        assert (await tracker.ledger.balance(session, learner)).points == 0


@pytest.mark.asyncio
async def test_progress_counts_lessons_across_modules(session_factory, make_user, make_course, tracker):
    instructor = await make_user("Ada")
    learner = await make_user("Lin")
    course_id, [(_, first), (_, second)] = await make_course(instructor, [2, 1])

    async with session_factory() as session:
        await tracker.set_lesson_completion(session, learner, first[1], True)
        await tracker.set_lesson_completion(session, learner, second[0], True)
        await session.commit()

        totals = await tracker.course_totals(session, learner, course_id)
        assert (totals.total_lessons, totals.completed_lessons, totals.percent) == (3, 2, 67)

        lesson_map = await tracker.course_lesson_map(session, learner, course_id)
        assert list(lesson_map) == [first[0], first[1], second[0]]
        assert list(lesson_map.values()) == [False, True, True]


@pytest.mark.asyncio
async def test_course_without_lessons_is_zero_percent(session_factory, make_user, make_course, tracker):
    instructor = await make_user("Ada")
    course_id, _ = await make_course(instructor, [0])

    async with session_factory() as session:
        assert await tracker.course_progress(session, instructor, course_id) == 0
        assert await tracker.bulk_course_progress(session, instructor, [course_id]) == {course_id: 0}


@pytest.mark.asyncio
async def test_deleted_lesson_leaves_the_ratio(session_factory, make_user, make_course, tracker):
    instructor = await make_user("Ada")
    learner = await make_user("Lin")
    course_id, [(_, lessons)] = await make_course(instructor, [4])

    async with session_factory() as session:
        await tracker.set_lesson_completion(session, learner, lessons[0], True)
        await tracker.set_lesson_completion(session, learner, lessons[1], True)
        await session.commit()

    async with session_factory() as session:
        (await OrderingEngine().remove_lesson(session, lessons[0])).unwrap()
        await session.commit()

    async with session_factory() as session:
        totals = await tracker.course_totals(session, learner, course_id)
        assert (totals.total_lessons, totals.completed_lessons) == (3, 1)
        assert totals.percent == 33
        # points earned on the deleted lesson stay
        assert (await tracker.ledger.balance(session, learner)).points == 40


@pytest.mark.asyncio
async def test_bulk_progress_matches_single_course(session_factory, make_user, make_course, tracker):
    instructor = await make_user("Ada")
    learner = await make_user("Lin")
    course_a, [(_, lessons_a)] = await make_course(instructor, [3], title="A")
    course_b, [(_, lessons_b)] = await make_course(instructor, [2], title="B")

    async with session_factory() as session:
        await tracker.set_lesson_completion(session, learner, lessons_a[0], True)
        await tracker.set_lesson_completion(session, learner, lessons_b[0], True)
        await tracker.set_lesson_completion(session, learner, lessons_b[1], True)
        await session.commit()

        bulk = await tracker.bulk_course_progress(session, learner, [course_a, course_b])
        assert bulk == {course_a: 33, course_b: 100}
        assert bulk[course_a] == await tracker.course_progress(session, learner, course_a)


@pytest.mark.asyncio
async def test_enroll_is_idempotent(session_factory, make_user, make_course, tracker):
    instructor = await make_user("Ada")
    learner = await make_user("Lin")
    course_id, _ = await make_course(instructor, [1])

    async with session_factory() as session:
        assert await tracker.is_enrolled(session, learner, course_id) is False
        assert (await tracker.enroll(session, learner, course_id)).unwrap() is True
        assert (await tracker.enroll(session, learner, course_id)).unwrap() is False
        await session.commit()

        assert await tracker.is_enrolled(session, learner, course_id) is True
        enrolled = await tracker.enrolled_courses(session, learner)
        assert [e.course.id for e in enrolled] == [course_id]
        assert enrolled[0].progress == 0


@pytest.mark.asyncio
async def test_concurrent_first_completions_award_once(session_factory, make_user, make_course, tracker):
    instructor = await make_user("Ada")
    learner = await make_user("Lin")
    _, [(_, lessons)] = await make_course(instructor, [1])

    async def complete():
        async with session_factory() as session:
            outcome = (await tracker.set_lesson_completion(session, learner, lessons[0], True)).unwrap()
            await session.commit()
            return outcome

    outcomes = await asyncio.gather(*(complete() for _ in range(5)))

    assert sum(o.first_completion for o in outcomes) == 1
    assert sum(o.points_awarded for o in outcomes) == 20
    async with session_factory() as session:
        assert (await tracker.ledger.balance(session, learner)).points == 20
        assert await tracker.ledger.total_from_events(session, learner) == 20
