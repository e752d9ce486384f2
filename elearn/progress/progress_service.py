"""
Watch progress for purchased courses

Lecture percentages and course completion are recomputed from the stored
per-video entries on every update.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core import config

logger = logging.getLogger(__name__)


def is_video_complete(timestamp: float, duration: float, flagged: bool = False) -> bool:
    if flagged:
        return True
    # Unknown duration: any report finishes the video
    if not duration or duration <= 0:
        return True
    return timestamp >= duration * config.VIDEO_COMPLETION_THRESHOLD


def compute_lecture_progress(course: dict, progress: list) -> list:
    completed = {(p["lecture_id"], p["video_id"]) for p in progress if p.get("completed")}
    result = []
    for lecture in course.get("lectures", []):
        videos = lecture.get("videos", [])
        if not videos:
            continue
        done = sum(1 for v in videos if (lecture["lecture_id"], v["video_id"]) in completed)
        result.append({
            "lecture_id": lecture["lecture_id"],
            "percentage_completed": round(done / len(videos) * 100, 2),
        })
    return result


def is_course_complete(course: dict, progress: list) -> bool:
    all_videos = [v["video_id"] for lecture in course.get("lectures", []) for v in lecture.get("videos", [])]
    completed = {p["video_id"] for p in progress if p.get("completed")}
    return bool(all_videos) and all(video_id in completed for video_id in all_videos)


async def update_progress(
    db: AsyncIOMotorDatabase,
    student_id: str,
    course_id: str,
    lecture_id: Optional[str],
    video_id: Optional[str],
    timestamp: Optional[float],
    is_completed: bool = False
) -> dict:
    if not student_id or not course_id or not lecture_id or not video_id or timestamp is None:
        raise HTTPException(status_code=400, detail="Something is missing from payload")

    purchase = await db.purchased_courses.find_one({"student_id": student_id, "course_id": course_id})
    if not purchase:
        raise HTTPException(status_code=404, detail="This Course has not been purchased by this student")

    course = await db.courses.find_one({"course_id": course_id})
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")

    lecture = next((l for l in course.get("lectures", []) if l["lecture_id"] == lecture_id), None)
    if not lecture:
        raise HTTPException(status_code=404, detail="Lecture not found")

    video = next((v for v in lecture.get("videos", []) if v["video_id"] == video_id), None)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")

    duration = video.get("duration") or 0
    now = datetime.utcnow()
    progress = list(purchase.get("progress", []))
    minutes_spent = purchase.get("minutes_spent", 0)

    entry = next(
        (p for p in progress if p["lecture_id"] == lecture_id and p["video_id"] == video_id),
        None
    )
    if entry:
        delta = timestamp - entry.get("timestamp", 0)
        entry["timestamp"] = timestamp
        entry["completed"] = entry.get("completed", False) or is_video_complete(timestamp, duration, is_completed)
        entry["updated_at"] = now
    else:
        delta = timestamp
        progress.append({
            "lecture_id": lecture_id,
            "video_id": video_id,
            "timestamp": timestamp,
            "completed": is_video_complete(timestamp, duration, is_completed),
            "updated_at": now,
        })

    if delta > 0:
        minutes_spent += delta / 60

    updates = {
        "progress": progress,
        "lecture_progress": compute_lecture_progress(course, progress),
        "minutes_spent": round(minutes_spent, 2),
        "is_completed": 1 if is_course_complete(course, progress) else 0,
        "updated_at": now,
    }
    await db.purchased_courses.update_one({"purchase_id": purchase["purchase_id"]}, {"$set": updates})

    if updates["is_completed"] and not purchase.get("is_completed"):
        logger.info("Student %s completed course %s", student_id, course_id)

    return await db.purchased_courses.find_one({"purchase_id": purchase["purchase_id"]}, {"_id": 0})


async def continue_watching(db: AsyncIOMotorDatabase, student_id: str) -> list:
    purchases = await db.purchased_courses.find(
        {"student_id": student_id, "is_completed": {"$ne": 1}, "is_active": {"$ne": False}},
        {"_id": 0}
    ).to_list(length=None)

    if not purchases:
        raise HTTPException(status_code=404, detail="No ongoing progress found")

    courses = await db.courses.find(
        {"course_id": {"$in": [p["course_id"] for p in purchases]}}, {"_id": 0}
    ).to_list(length=None)
    by_id = {c["course_id"]: c for c in courses}

    result = []
    for purchase in purchases:
        course = by_id.get(purchase["course_id"], {})
        lectures = {l["lecture_id"]: l for l in course.get("lectures", [])}

        entries = []
        for p in purchase.get("progress", []):
            if p.get("completed"):
                continue
            lecture = lectures.get(p["lecture_id"], {})
            video = next((v for v in lecture.get("videos", []) if v["video_id"] == p["video_id"]), {})
            entries.append({
                "lecture_id": p["lecture_id"],
                "lecture_title": lecture.get("title"),
                "video_id": p["video_id"],
                "video_title": video.get("filename"),
                "timestamp": p.get("timestamp", 0),
                "completed": False,
            })

        result.append({
            "course_id": purchase["course_id"],
            "course_title": course.get("title"),
            "thumbnail_url": course.get("thumbnail_url"),
            "progress": entries,
            "lecture_progress": purchase.get("lecture_progress", []),
        })

    return result
