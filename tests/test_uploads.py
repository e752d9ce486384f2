import ffmpeg

from elearn.core.permissions import AccountRole
from elearn.uploads import media
from elearn.uploads.storage import is_video

from conftest import auth, create_account, create_student


def unreadable(filename):
    raise ffmpeg.Error("ffprobe", b"", b"Invalid data found when processing input")


def test_is_video():
    assert is_video("lesson.MP4")
    assert is_video("clip.webm")
    assert not is_video("notes.pdf")
    assert not is_video(None)


def test_measure_duration_rounds_to_seconds(monkeypatch):
    seen = []

    def fake_metadata(filename):
        seen.append(filename)
        return {"format": {"duration": "93.48"}}

    monkeypatch.setattr(media.ffmpeg, "probe", fake_metadata)

    assert media.measure_duration(b"\x00\x01", "intro.mp4") == 93
    assert seen[0].endswith(".mp4")


def test_measure_duration_unreadable(monkeypatch):
    monkeypatch.setattr(media.ffmpeg, "probe", unreadable)
    assert media.measure_duration(b"junk", "intro.mp4") is None

    monkeypatch.setattr(media.ffmpeg, "probe", lambda filename: {"format": {}})
    assert media.measure_duration(b"junk", "intro.mp4") is None


async def test_upload_video_measures_duration(client, db, storage, monkeypatch):
    _, token = await create_account(db)
    monkeypatch.setattr(media.ffmpeg, "probe", lambda filename: {"format": {"duration": "121.9"}})

    res = await client.post(
        "/api/v1/upload",
        files={"file": ("intro.mp4", b"\x00\x01fake-video", "video/mp4")},
        data={"duration": "1"},
        headers=auth(token),
    )

    assert res.status_code == 200
    data = res.json()["data"]
    assert data["filename"] == "intro.mp4"
    assert data["duration"] == 122
    assert data["url"] == "http://localhost:9000/test-bucket/intro.mp4"
    assert storage.objects["intro.mp4"] == b"\x00\x01fake-video"


async def test_upload_video_falls_back_to_client_duration(client, db, monkeypatch):
    _, token = await create_account(db)
    monkeypatch.setattr(media.ffmpeg, "probe", unreadable)

    res = await client.post(
        "/api/v1/upload",
        files={"file": ("intro.mp4", b"\x00\x01fake-video", "video/mp4")},
        data={"duration": "93.5"},
        headers=auth(token),
    )

    assert res.json()["data"]["duration"] == 93.5


async def test_upload_document_has_no_duration(client, db):
    _, token = await create_account(db, role=AccountRole.ADMIN, email="admin@example.com")

    res = await client.post(
        "/api/v1/upload",
        files={"file": ("syllabus.pdf", b"%PDF-1.4", "application/pdf")},
        data={"duration": "10"},
        headers=auth(token),
    )

    assert res.json()["data"]["duration"] is None


async def test_upload_errors(client, db, storage):
    _, token = await create_account(db)

    res = await client.post("/api/v1/upload", files={"file": ("empty.mp4", b"", "video/mp4")}, headers=auth(token))
    assert res.status_code == 400

    storage.fail = True
    res = await client.post("/api/v1/upload", files={"file": ("a.mp4", b"data", "video/mp4")}, headers=auth(token))
    assert res.status_code == 400
    assert res.json()["message"] == "failed to upload"


async def test_students_cannot_upload(client, db):
    _, token = await create_student(db)

    res = await client.post("/api/v1/upload", files={"file": ("a.mp4", b"data", "video/mp4")}, headers=auth(token))

    assert res.status_code == 403
