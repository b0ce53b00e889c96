from itertools import permutations
from uuid import uuid4

import pytest

from core.errors import ErrorCode
from engines.ordering import OrderingEngine, diff_order


@pytest.fixture
def ordering():
    return OrderingEngine()


async def _module_order(session_factory, ordering, course_id):
    async with session_factory() as session:
        modules = await ordering.list_modules_with_lessons(session, course_id)
        return [m.id for m in modules], [m.order_index for m in modules]


def test_diff_order_reports_each_kind_of_mismatch():
    a, b, c, stranger = uuid4(), uuid4(), uuid4(), uuid4()

    assert diff_order([a, b], [b, a]).matches
    diff = diff_order([a, b, c], [a, a, stranger])

    assert diff.unknown == {stranger}
    assert diff.missing == {b, c}
    assert diff.duplicates == {a}
    assert not diff.matches


@pytest.mark.asyncio
async def test_appends_take_the_next_index(session_factory, make_user, make_course, ordering):
    instructor = await make_user()
    course_id, tree = await make_course(instructor, [3, 0, 1])

    ids, indexes = await _module_order(session_factory, ordering, course_id)
    assert ids == [module_id for module_id, _ in tree]
    assert indexes == [0, 1, 2]

    async with session_factory() as session:
        modules = await ordering.list_modules_with_lessons(session, course_id)
        assert [lesson.order_index for lesson in modules[0].lessons] == [0, 1, 2]
        assert [lesson.id for lesson in modules[0].lessons] == tree[0][1]


@pytest.mark.asyncio
async def test_every_permutation_reads_back(session_factory, make_user, make_course, ordering):
    instructor = await make_user()
    course_id, tree = await make_course(instructor, [0, 0, 0])
    module_ids = [module_id for module_id, _ in tree]

    for wanted in permutations(module_ids):
        async with session_factory() as session:
            (await ordering.reorder_modules(session, course_id, list(wanted))).unwrap()
            await session.commit()

        ids, indexes = await _module_order(session_factory, ordering, course_id)
        assert ids == list(wanted)
        assert indexes == [0, 1, 2]


@pytest.mark.asyncio
async def test_reorder_is_idempotent(session_factory, make_user, make_course, ordering):
    instructor = await make_user()
    course_id, tree = await make_course(instructor, [0, 0])
    wanted = [tree[1][0], tree[0][0]]

    for _ in range(2):
        async with session_factory() as session:
            (await ordering.reorder_modules(session, course_id, wanted)).unwrap()
            await session.commit()

    ids, _ = await _module_order(session_factory, ordering, course_id)
    assert ids == wanted


@pytest.mark.asyncio
@pytest.mark.parametrize("mutation", ["foreign", "missing", "duplicate"])
async def test_mismatched_reorder_is_rejected_without_writes(
    session_factory, make_user, make_course, ordering, mutation
):
    instructor = await make_user()
    course_id, tree = await make_course(instructor, [0, 0, 0])
    _, other_tree = await make_course(instructor, [0], title="Other")
    m1, m2, m3 = [module_id for module_id, _ in tree]

    requested = {
        "foreign": [m3, m2, other_tree[0][0]],
        "missing": [m3, m2],
        "duplicate": [m3, m2, m2],
    }[mutation]

    async with session_factory() as session:
        result = await ordering.reorder_modules(session, course_id, requested)
        await session.commit()

    assert result.is_err()
    error = result.unwrap_err()
    assert error.code == ErrorCode.E5005_ORDER_MISMATCH
    assert error.code.http_status == 409
    ids, indexes = await _module_order(session_factory, ordering, course_id)
    assert ids == [m1, m2, m3]
    assert indexes == [0, 1, 2]


@pytest.mark.asyncio
async def test_reorder_lessons_within_module(session_factory, make_user, make_course, ordering):
    instructor = await make_user()
    course_id, [(module_id, lessons)] = await make_course(instructor, [3])
    wanted = [lessons[2], lessons[0], lessons[1]]

    async with session_factory() as session:
        reordered = (await ordering.reorder_lessons(session, module_id, wanted)).unwrap()
        await session.commit()
    assert [lesson.id for lesson in reordered] == wanted

    async with session_factory() as session:
        [module] = await ordering.list_modules_with_lessons(session, course_id)
        assert [lesson.id for lesson in module.lessons] == wanted
        assert [lesson.order_index for lesson in module.lessons] == [0, 1, 2]


@pytest.mark.asyncio
async def test_lesson_ids_from_another_module_are_rejected(session_factory, make_user, make_course, ordering):
    instructor = await make_user()
    _, [(first, _), (_, second_lessons)] = await make_course(instructor, [1, 1])

    async with session_factory() as session:
        result = await ordering.reorder_lessons(session, first, [second_lessons[0]])

    assert result.unwrap_err().code == ErrorCode.E5005_ORDER_MISMATCH


@pytest.mark.asyncio
async def test_removing_a_module_closes_the_gap(session_factory, make_user, make_course, ordering):
    instructor = await make_user()
    course_id, tree = await make_course(instructor, [1, 2, 0, 0])
    m1, m2, m3, m4 = [module_id for module_id, _ in tree]

    async with session_factory() as session:
        (await ordering.remove_module(session, m2)).unwrap()
        await session.commit()

    ids, indexes = await _module_order(session_factory, ordering, course_id)
    assert ids == [m1, m3, m4]
    assert indexes == [0, 1, 2]

    async with session_factory() as session:
        module = (await ordering.append_module(session, course_id, "Appendix")).unwrap()
        await session.commit()
    assert module.order_index == 3


@pytest.mark.asyncio
async def test_removing_a_lesson_closes_the_gap(session_factory, make_user, make_course, ordering):
    instructor = await make_user()
    course_id, [(_, lessons)] = await make_course(instructor, [4])

    async with session_factory() as session:
        (await ordering.remove_lesson(session, lessons[0])).unwrap()
        await session.commit()

    async with session_factory() as session:
        [module] = await ordering.list_modules_with_lessons(session, course_id)
        assert [lesson.id for lesson in module.lessons] == lessons[1:]
        assert [lesson.order_index for lesson in module.lessons] == [0, 1, 2]


@pytest.mark.asyncio
async def test_unknown_parents_are_not_found(session_factory, ordering):
    async with session_factory() as session:
        missing_course = await ordering.reorder_modules(session, uuid4(), [])
        missing_module = await ordering.append_lesson(session, uuid4(), "Orphan")
        missing_lesson = await ordering.remove_lesson(session, uuid4())

    for result in (missing_course, missing_module, missing_lesson):
        assert result.unwrap_err().code == ErrorCode.E4010_NOT_FOUND
