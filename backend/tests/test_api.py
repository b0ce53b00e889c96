from uuid import uuid4

import pytest
from httpx import AsyncClient

from core.security import create_access_token


@pytest.mark.asyncio
async def test_completing_every_lesson_reports_progress_and_points(client_factory, make_user, make_course):
    instructor = await make_user("Ada")
    learner = await make_user("Lin")
    course_id, tree = await make_course(instructor, [2, 2])
    lessons = [lesson for _, lesson_ids in tree for lesson in lesson_ids]
    client = await client_factory(learner)

    enrolled = await client.post(f"/api/courses/{course_id}/enroll")
    assert enrolled.status_code == 200
    assert enrolled.json()["created"] is True
    again = await client.post(f"/api/courses/{course_id}/enroll")
    assert again.json() == {"course_id": str(course_id), "enrolled": True, "created": False}

    seen = []
    for lesson_id in lessons:
        response = await client.patch(f"/api/courses/lessons/{lesson_id}/progress", json={"is_completed": True})
        assert response.status_code == 200
        body = response.json()
        assert body["first_completion"] is True
        assert body["points_awarded"] == 20
        seen.append(body["course_progress"])
    assert seen == [25, 50, 75, 100]

    repeat = await client.patch(f"/api/courses/lessons/{lessons[0]}/progress", json={"is_completed": True})
    assert repeat.json()["points_awarded"] == 0

    me = (await client.get("/api/points/me")).json()
    assert me["points"] == 80
    assert me["rank"] == 1

    progress = (await client.get(f"/api/courses/{course_id}/progress")).json()
    assert progress["progress"] == 100
    assert progress["completed_lessons"] == progress["total_lessons"] == 4

    mine = (await client.get("/api/courses/enrollments/my")).json()
    assert [(c["course"]["id"], c["progress"]) for c in mine] == [(str(course_id), 100)]

    history = (await client.get("/api/points/me/history")).json()
    assert [event["reason"] for event in history] == ["lesson_completed"] * 4


@pytest.mark.asyncio
async def test_progress_requires_enrollment(client_factory, make_user, make_course):
    instructor = await make_user()
    learner = await make_user()
    _, [(_, lessons)] = await make_course(instructor, [1])
    client = await client_factory(learner)

    response = await client.patch(f"/api/courses/lessons/{lessons[0]}/progress", json={"is_completed": True})

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "E3011_RESOURCE_FORBIDDEN"
    assert (await client.get("/api/points/me")).json()["points"] == 0


@pytest.mark.asyncio
async def test_reorder_modules_is_reflected_in_outline(client_factory, make_user, make_course):
    instructor = await make_user()
    course_id, [(m1, _), (m2, _)] = await make_course(instructor, [1, 1])
    client = await client_factory(instructor)

    response = await client.put(f"/api/courses/{course_id}/modules/order", json={"ids": [str(m2), str(m1)]})
    assert response.status_code == 200
    assert [m["order_index"] for m in response.json()] == [0, 1]

    outline = (await client.get(f"/api/courses/{course_id}/modules")).json()
    assert [m["id"] for m in outline] == [str(m2), str(m1)]
    assert [m["order_index"] for m in outline] == [0, 1]


@pytest.mark.asyncio
async def test_stale_reorder_is_a_conflict(client_factory, make_user, make_course):
    instructor = await make_user()
    course_id, [(m1, _), (m2, _)] = await make_course(instructor, [0, 0])
    client = await client_factory(instructor)

    created = await client.post(f"/api/courses/{course_id}/modules", json={"title": "Added elsewhere"})
    assert created.status_code == 201
    assert created.json()["order_index"] == 2

    response = await client.put(f"/api/courses/{course_id}/modules/order", json={"ids": [str(m2), str(m1)]})

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "E5005_ORDER_MISMATCH"
    assert error["metadata"]["missing"] == [created.json()["id"]]

    outline = (await client.get(f"/api/courses/{course_id}/modules")).json()
    assert [m["id"] for m in outline] == [str(m1), str(m2), created.json()["id"]]


@pytest.mark.asyncio
async def test_only_the_instructor_edits_the_outline(client_factory, make_user, make_course):
    instructor = await make_user()
    stranger = await make_user()
    course_id, [(m1, lessons)] = await make_course(instructor, [2])
    client = await client_factory(stranger)

    responses = [
        await client.put(f"/api/courses/{course_id}/modules/order", json={"ids": [str(m1)]}),
        await client.post(f"/api/courses/{course_id}/modules", json={"title": "Nope"}),
        await client.delete(f"/api/courses/lessons/{lessons[0]}"),
    ]

    for response in responses:
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E3010_INSUFFICIENT_PERMISSIONS"


@pytest.mark.asyncio
async def test_instructor_builds_and_prunes_a_course(client_factory, make_user):
    instructor = await make_user()
    client = await client_factory(instructor)

    course = await client.post("/api/courses", json={"title": "Pricing Workshop", "is_published": True})
    assert course.status_code == 201
    course_id = course.json()["id"]

    module = (await client.post(f"/api/courses/{course_id}/modules", json={"title": "Basics"})).json()
    lesson_ids = []
    for title in ("Anchors", "Tiers", "Discounts"):
        lesson = await client.post(f"/api/courses/modules/{module['id']}/lessons", json={"title": title})
        assert lesson.status_code == 201
        lesson_ids.append(lesson.json()["id"])

    assert (await client.delete(f"/api/courses/lessons/{lesson_ids[1]}")).status_code == 204

    [outline] = (await client.get(f"/api/courses/{course_id}/modules")).json()
    assert [lesson["id"] for lesson in outline["lessons"]] == [lesson_ids[0], lesson_ids[2]]
    assert [lesson["order_index"] for lesson in outline["lessons"]] == [0, 1]

    detail = (await client.get(f"/api/courses/{course_id}")).json()
    assert detail["module_count"] == 1
    assert detail["lesson_count"] == 2
    assert detail["is_enrolled"] is False
    assert detail["progress"] is None


@pytest.mark.asyncio
async def test_feed_activity_earns_points(client_factory, make_user):
    author = await make_user("Author")
    fan = await make_user("Fan")
    author_client = await client_factory(author)
    fan_client = await client_factory(fan)

    post = await author_client.post("/api/posts", json={"title": "Hello", "content": "First week recap"})
    assert post.status_code == 201
    assert post.json()["points_awarded"] == 10
    post_id = post.json()["id"]

    liked = (await fan_client.post(f"/api/posts/{post_id}/like")).json()
    assert liked == {"post_id": post_id, "liked": True, "like_count": 1}
    assert (await author_client.get("/api/points/me")).json()["points"] == 11

    unliked = (await fan_client.post(f"/api/posts/{post_id}/like")).json()
    assert unliked == {"post_id": post_id, "liked": False, "like_count": 0}
    assert (await author_client.get("/api/points/me")).json()["points"] == 11

    comment = await fan_client.post(f"/api/posts/{post_id}/comments", json={"content": "Nice"})
    assert comment.status_code == 201
    assert comment.json()["points_awarded"] == 5
    assert (await fan_client.get("/api/points/me")).json()["points"] == 5

    board = (await fan_client.get("/api/leaderboard", params={"limit": 5})).json()
    assert [(entry["user_id"], entry["points"], entry["rank"]) for entry in board] == [
        (str(author), 11, 1),
        (str(fan), 5, 2),
    ]
    assert board[0]["display_name"] == "Author"


@pytest.mark.asyncio
async def test_leaderboard_limit_is_validated(client_factory):
    client = await client_factory()

    assert (await client.get("/api/leaderboard")).json() == []
    for limit in (0, 101):
        response = await client.get("/api/leaderboard", params={"limit": limit})
        assert response.status_code == 400
        assert response.json()["error"]["category"] == "validation"


@pytest.mark.asyncio
async def test_invalid_body_is_a_validation_error(client_factory, make_user):
    client = await client_factory(await make_user())

    response = await client.post("/api/courses", json={"title": ""})

    assert response.status_code == 400
    assert response.json()["error"]["category"] == "validation"


@pytest.mark.asyncio
async def test_missing_or_bad_token_is_rejected(client_factory, make_user):
    anonymous = await client_factory()
    response = await anonymous.get("/api/points/me")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "E3004_TOKEN_MISSING"

    expired = await client_factory()
    expired.headers["Authorization"] = f"Bearer {create_access_token(await make_user(), expires_minutes=-5)}"
    assert (await expired.get("/api/points/me")).status_code == 401

    garbage: AsyncClient = await client_factory()
    garbage.headers["Authorization"] = "Bearer not-a-token"
    assert (await garbage.get("/api/points/me")).status_code == 401


@pytest.mark.asyncio
async def test_profile_upsert_drives_display_name(client_factory, make_user):
    user_id = await make_user(None, None, "first@example.com")
    client = await client_factory(user_id)

    updated = await client.put("/api/users/me", json={"email": "first@example.com", "first_name": "Rae"})
    assert updated.status_code == 200
    assert updated.json()["display_name"] == "Rae"
    assert (await client.get("/api/users/me")).json()["first_name"] == "Rae"


@pytest.mark.asyncio
async def test_health_reports_database(client_factory):
    client = await client_factory()

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "ok"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_first_write_creates_a_bare_profile(client_factory):
    user_id = uuid4()
    client = await client_factory(user_id)

    post = await client.post("/api/posts", json={"content": "hello"})
    assert post.status_code == 201
    assert post.json()["points_awarded"] == 10

    me = (await client.get("/api/users/me")).json()
    assert me["id"] == str(user_id)
    assert me["display_name"] == "Member"

    board = (await client.get("/api/leaderboard")).json()
    assert [(entry["user_id"], entry["points"]) for entry in board] == [(str(user_id), 10)]

    await client.put("/api/users/me", json={"first_name": "Noor"})
    assert (await client.get("/api/leaderboard")).json()[0]["display_name"] == "Noor"


@pytest.mark.asyncio
async def test_progress_is_readable_without_enrollment(client_factory, make_user, make_course):
    instructor = await make_user()
    course_id, [(_, lessons)] = await make_course(instructor, [2])
    client = await client_factory(await make_user())

    response = await client.get(f"/api/courses/{course_id}/progress")

    assert response.status_code == 200
    body = response.json()
    assert body["progress"] == 0
    assert body["lessons"] == {str(lesson): False for lesson in lessons}
