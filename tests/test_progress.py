import pytest

from elearn.core import config
from elearn.progress.progress_service import compute_lecture_progress, is_course_complete, is_video_complete

from conftest import auth, create_account, create_course, create_purchase, create_student

COURSE = {
    "lectures": [
        {"lecture_id": "L1", "videos": [{"video_id": "V1"}, {"video_id": "V2"}]},
        {"lecture_id": "L2", "videos": [{"video_id": "V3"}]},
        {"lecture_id": "L3", "videos": []},
    ]
}


def test_video_complete_at_threshold():
    assert is_video_complete(120, 120)
    assert not is_video_complete(119, 120)
    assert is_video_complete(10, 120, flagged=True)
    assert is_video_complete(5, 0)


def test_video_threshold_is_configurable(monkeypatch):
    monkeypatch.setattr(config, "VIDEO_COMPLETION_THRESHOLD", 0.9)

    assert is_video_complete(108, 120)
    assert not is_video_complete(100, 120)


def test_lecture_progress_percentages():
    progress = [
        {"lecture_id": "L1", "video_id": "V1", "completed": True},
        {"lecture_id": "L1", "video_id": "V2", "completed": False},
    ]

    assert compute_lecture_progress(COURSE, progress) == [
        {"lecture_id": "L1", "percentage_completed": 50},
        {"lecture_id": "L2", "percentage_completed": 0},
    ]


def test_course_complete_needs_every_video():
    progress = [
        {"lecture_id": "L1", "video_id": "V1", "completed": True},
        {"lecture_id": "L1", "video_id": "V2", "completed": True},
    ]
    assert not is_course_complete(COURSE, progress)

    progress.append({"lecture_id": "L2", "video_id": "V3", "completed": True})
    assert is_course_complete(COURSE, progress)

    assert not is_course_complete({"lectures": []}, [])


async def test_watching_every_video_completes_course(client, db):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    student, token = await create_student(db)
    await create_purchase(db, student, course)
    url = f"/api/v1/progress/{course['course_id']}"

    res = await client.put(url, json={"lecture_id": "LEC_1", "video_id": "VID_1", "timestamp": 60}, headers=auth(token))
    assert res.status_code == 200
    purchase = res.json()["data"]
    assert purchase["progress"][0]["completed"] is False
    assert purchase["minutes_spent"] == 1
    assert purchase["is_completed"] == 0

    await client.put(url, json={"lecture_id": "LEC_1", "video_id": "VID_1", "timestamp": 120}, headers=auth(token))
    res = await client.put(url, json={"lecture_id": "LEC_1", "video_id": "VID_2", "timestamp": 60}, headers=auth(token))

    purchase = res.json()["data"]
    assert purchase["minutes_spent"] == 3
    assert purchase["lecture_progress"] == [{"lecture_id": "LEC_1", "percentage_completed": 100}]
    assert purchase["is_completed"] == 1


async def test_rewinding_does_not_add_minutes(client, db):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    student, token = await create_student(db)
    await create_purchase(db, student, course)
    url = f"/api/v1/progress/{course['course_id']}"

    await client.put(url, json={"lecture_id": "LEC_1", "video_id": "VID_1", "timestamp": 90}, headers=auth(token))
    res = await client.put(url, json={"lecture_id": "LEC_1", "video_id": "VID_1", "timestamp": 30}, headers=auth(token))

    assert res.json()["data"]["minutes_spent"] == 1.5
    assert len(res.json()["data"]["progress"]) == 1


async def test_client_can_flag_completion(client, db):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    student, token = await create_student(db)
    await create_purchase(db, student, course)

    res = await client.put(
        f"/api/v1/progress/{course['course_id']}",
        json={"lecture_id": "LEC_1", "video_id": "VID_2", "timestamp": 5, "is_completed": True},
        headers=auth(token),
    )

    assert res.json()["data"]["progress"][0]["completed"] is True


@pytest.mark.parametrize("payload, status", [
    ({"lecture_id": "LEC_1", "video_id": "VID_1"}, 400),
    ({"lecture_id": "LEC_X", "video_id": "VID_1", "timestamp": 1}, 404),
    ({"lecture_id": "LEC_1", "video_id": "VID_X", "timestamp": 1}, 404),
])
async def test_progress_errors(client, db, payload, status):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    student, token = await create_student(db)
    await create_purchase(db, student, course)

    res = await client.put(f"/api/v1/progress/{course['course_id']}", json=payload, headers=auth(token))

    assert res.status_code == status


async def test_progress_requires_purchase(client, db):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    _, token = await create_student(db)

    res = await client.put(
        f"/api/v1/progress/{course['course_id']}",
        json={"lecture_id": "LEC_1", "video_id": "VID_1", "timestamp": 10},
        headers=auth(token),
    )

    assert res.status_code == 404


async def test_continue_watching(client, db):
    tutor, _ = await create_account(db)
    course = await create_course(db, tutor)
    student, token = await create_student(db)

    res = await client.get("/api/v1/progress/continue-watching", headers=auth(token))
    assert res.status_code == 404

    await create_purchase(db, student, course)
    await client.put(
        f"/api/v1/progress/{course['course_id']}",
        json={"lecture_id": "LEC_1", "video_id": "VID_1", "timestamp": 45},
        headers=auth(token),
    )

    res = await client.get("/api/v1/progress/continue-watching", headers=auth(token))

    assert res.status_code == 200
    item = res.json()["data"][0]
    assert item["course_title"] == course["title"]
    assert item["progress"] == [{
        "lecture_id": "LEC_1",
        "lecture_title": "Getting started",
        "video_id": "VID_1",
        "video_title": "1.mp4",
        "timestamp": 45,
        "completed": False,
    }]
