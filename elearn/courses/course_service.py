import logging
import re
from datetime import datetime
from typing import Optional, List

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core.database import generate_id, paginate
from elearn.core.permissions import ActorContext
from elearn.courses.course_models import CourseStatus

logger = logging.getLogger(__name__)

# Only moderated, published courses are visible in the catalogue
PUBLIC_COURSE_FILTER = {"is_published": True, "status": CourseStatus.APPROVED.value}

# Reviews of deleted students are deactivated
ACTIVE_REVIEW = {"is_active": {"$ne": False}}

PUBLISH_REQUIREMENTS_MESSAGE = (
    "Your course must have a title, description, and at least one lecture "
    "before publishing. Do not leave Blank"
)


def build_lectures(lectures: List[dict]) -> List[dict]:
    """Give every lecture and video a stable id and number lectures in order"""
    built = []
    for index, lecture in enumerate(lectures, start=1):
        built.append({
            "lecture_id": lecture.get("lecture_id") or generate_id("LEC"),
            "title": lecture["title"],
            "description": lecture.get("description"),
            "lecture_number": lecture.get("lecture_number") or index,
            "videos": [
                {
                    "video_id": video.get("video_id") or generate_id("VID"),
                    "url": video["url"],
                    "filename": video["filename"],
                    "duration": video.get("duration", 0),
                }
                for video in lecture.get("videos", [])
            ],
        })
    return built


def check_publishable(title: Optional[str], description: Optional[str], lectures: Optional[list]):
    if not title or not description or not lectures:
        raise HTTPException(status_code=400, detail=PUBLISH_REQUIREMENTS_MESSAGE)


async def get_course_or_404(db: AsyncIOMotorDatabase, course_id: str, message: str = "Course not found") -> dict:
    course = await db.courses.find_one({"course_id": course_id}, {"_id": 0})
    if not course:
        raise HTTPException(status_code=404, detail=message)
    return course


# ==================== AUTHORING ====================

async def create_course(db: AsyncIOMotorDatabase, tutor: ActorContext, data: dict) -> dict:
    lectures = build_lectures(data.pop("lectures", []))

    if data.get("is_published"):
        check_publishable(data.get("title"), data.get("description"), lectures)

    now = datetime.utcnow()
    course = {
        "course_id": generate_id("COURSE"),
        **data,
        "lectures": lectures,
        "tutor_id": tutor.actor_id,
        "tutor_name": tutor.full_name,
        "tutor_email": tutor.email,
        "rating": 0,
        "review_count": 0,
        "views": 0,
        "purchase_count": 0,
        "is_published": bool(data.get("is_published", False)),
        "status": CourseStatus.PENDING.value,
        "rejection_reason": None,
        "reviewed_by": None,
        "reviewed_at": None,
        "created_at": now,
        "updated_at": now,
    }
    await db.courses.insert_one(course)
    course.pop("_id", None)

    logger.info("Tutor %s created course %s", tutor.actor_id, course["course_id"])
    return course


async def update_and_publish_course(
    db: AsyncIOMotorDatabase,
    tutor: ActorContext,
    course_id: str,
    data: dict
) -> dict:
    """
    Save changes to a draft, optionally publishing it

    Publishing sends the course back to the moderation queue.
    """
    course = await get_course_or_404(db, course_id, "This course does not exist")

    if course["tutor_id"] != tutor.actor_id:
        raise HTTPException(status_code=403, detail="You can only edit your own courses")

    if course.get("is_published"):
        raise HTTPException(status_code=400, detail="This course has been published already")

    publish = data.pop("is_published", False)
    updates = {k: v for k, v in data.items() if v is not None}
    if "lectures" in updates:
        updates["lectures"] = build_lectures(updates["lectures"])

    if publish:
        check_publishable(
            updates.get("title", course.get("title")),
            updates.get("description", course.get("description")),
            updates.get("lectures", course.get("lectures")),
        )
        updates.update({
            "is_published": True,
            "status": CourseStatus.PENDING.value,
            "rejection_reason": None,
        })

    updates["updated_at"] = datetime.utcnow()
    await db.courses.update_one({"course_id": course_id}, {"$set": updates})

    return await db.courses.find_one({"course_id": course_id}, {"_id": 0})


async def update_what_you_will_learn(db: AsyncIOMotorDatabase, course_id: str, items: List[str]) -> dict:
    await get_course_or_404(db, course_id, "CourseId is invalid")

    await db.courses.update_one(
        {"course_id": course_id},
        {"$set": {"what_you_will_learn": items, "updated_at": datetime.utcnow()}}
    )
    return await db.courses.find_one({"course_id": course_id}, {"_id": 0})


async def delete_course(db: AsyncIOMotorDatabase, actor: ActorContext, course_id: str) -> None:
    course = await get_course_or_404(db, course_id, "This course does not exist")

    if not actor.is_admin and course["tutor_id"] != actor.actor_id:
        raise HTTPException(status_code=403, detail="You can only delete your own courses")

    await db.courses.delete_one({"course_id": course_id})
    logger.info("Course %s deleted by %s", course_id, actor.actor_id)


# ==================== CATALOGUE ====================

async def get_all_courses(
    db: AsyncIOMotorDatabase,
    page: int = 1,
    limit: int = 10,
    filters: Optional[dict] = None
) -> dict:
    page, limit, skip = paginate(page, limit)

    query = dict(PUBLIC_COURSE_FILTER)
    for field, value in (filters or {}).items():
        if value is not None:
            query[field] = value

    courses = await db.courses.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(length=limit)
    total = await db.courses.count_documents(query)

    return {
        "data": courses,
        "page": page,
        "no_per_page": limit,
        "total_counts": total,
    }


async def find_course(db: AsyncIOMotorDatabase, search: Optional[str], page: int = 1, limit: int = 10) -> list:
    if not search or not search.strip():
        raise HTTPException(status_code=400, detail="Search query is required")

    page, limit, skip = paginate(page, limit)
    pattern = re.escape(search.strip())
    query = {
        **PUBLIC_COURSE_FILTER,
        "$or": [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"tutor_name": {"$regex": pattern, "$options": "i"}},
        ],
    }

    courses = await db.courses.find(query, {"_id": 0}).skip(skip).limit(limit).to_list(length=limit)
    if not courses:
        raise HTTPException(status_code=404, detail="Sorry!, No course matches your criteria")

    return courses


async def get_each_course(db: AsyncIOMotorDatabase, course_id: str) -> dict:
    return await get_course_or_404(db, course_id, "There is no Course with this ID")


async def course_views(db: AsyncIOMotorDatabase, course_id: str) -> None:
    result = await db.courses.update_one({"course_id": course_id}, {"$inc": {"views": 1}})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Course not found")


# ==================== REVIEWS ====================

async def rate_course(
    db: AsyncIOMotorDatabase,
    student_id: str,
    course_id: str,
    rating: float,
    review_text: Optional[str] = None
) -> dict:
    """One review per student per course; the course average is recomputed"""
    if rating < 1 or rating > 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")

    await get_course_or_404(db, course_id)

    now = datetime.utcnow()
    await db.reviews.update_one(
        {"course_id": course_id, "student_id": student_id},
        {
            "$set": {"rating": rating, "review_text": review_text, "updated_at": now},
            "$setOnInsert": {"review_id": generate_id("REV"), "is_active": True, "created_at": now},
        },
        upsert=True
    )

    await refresh_course_rating(db, course_id)
    return await db.courses.find_one({"course_id": course_id}, {"_id": 0})


async def refresh_course_rating(db: AsyncIOMotorDatabase, course_id: str) -> None:
    """Recompute the cached average from reviews that are still active"""
    reviews = await db.reviews.find({"course_id": course_id, **ACTIVE_REVIEW}).to_list(length=None)
    ratings = [r["rating"] for r in reviews]
    average = sum(ratings) / len(ratings) if ratings else 0

    await db.courses.update_one(
        {"course_id": course_id},
        {"$set": {"rating": round(average, 2), "review_count": len(ratings)}}
    )


async def attach_student_names(db: AsyncIOMotorDatabase, docs: List[dict]) -> List[dict]:
    """Populate first/last name of the student behind each document"""
    student_ids = list({d["student_id"] for d in docs if d.get("student_id")})
    students = await db.students.find(
        {"student_id": {"$in": student_ids}},
        {"_id": 0, "student_id": 1, "first_name": 1, "last_name": 1}
    ).to_list(length=None)
    by_id = {s["student_id"]: s for s in students}

    for doc in docs:
        student = by_id.get(doc.get("student_id"))
        doc["student"] = {
            "student_id": student["student_id"],
            "first_name": student.get("first_name"),
            "last_name": student.get("last_name"),
        } if student else None
    return docs


async def fetch_reviews(db: AsyncIOMotorDatabase, course_id: str) -> tuple:
    """Returns (course title, review summary)"""
    course = await get_course_or_404(db, course_id)

    reviews = await db.reviews.find(
        {"course_id": course_id, **ACTIVE_REVIEW},
        {"_id": 0, "review_id": 1, "student_id": 1, "rating": 1, "review_text": 1, "created_at": 1, "updated_at": 1}
    ).sort("created_at", -1).to_list(length=None)

    if not reviews:
        return course["title"], {"average_rating": 0, "total_reviews": 0, "reviews": []}

    average = round(sum(r["rating"] for r in reviews) / len(reviews), 2)
    return course["title"], {
        "average_rating": average,
        "total_reviews": len(reviews),
        "reviews": await attach_student_names(db, reviews),
    }


# ==================== COMMENTS ====================

async def leave_comment(db: AsyncIOMotorDatabase, student_id: str, course_id: str, text: str) -> dict:
    await get_course_or_404(db, course_id)

    now = datetime.utcnow()
    comment = {
        "comment_id": generate_id("CMT"),
        "course_id": course_id,
        "student_id": student_id,
        "text": text,
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    await db.comments.insert_one(comment)
    comment.pop("_id", None)
    return comment


async def get_comments(db: AsyncIOMotorDatabase, course_id: str) -> List[dict]:
    comments = await db.comments.find(
        {"course_id": course_id, "is_active": True}, {"_id": 0}
    ).sort("created_at", -1).to_list(length=None)

    if not comments:
        raise HTTPException(status_code=404, detail="There are no comments on this course")

    return await attach_student_names(db, comments)


async def delete_comment(db: AsyncIOMotorDatabase, student_id: str, comment_id: str) -> None:
    comment = await db.comments.find_one({"comment_id": comment_id})
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")

    if comment["student_id"] != student_id:
        raise HTTPException(status_code=403, detail="You are unauthorized to delete this comment")

    await db.comments.delete_one({"comment_id": comment_id})


# ==================== MODERATION ====================

async def list_pending_courses(db: AsyncIOMotorDatabase, page: int = 1, limit: int = 10) -> dict:
    page, limit, skip = paginate(page, limit)
    query = {"is_published": True, "status": CourseStatus.PENDING.value}

    courses = await db.courses.find(query, {"_id": 0}).sort("updated_at", 1).skip(skip).limit(limit).to_list(length=limit)
    return {
        "data": courses,
        "page": page,
        "no_per_page": limit,
        "total_counts": await db.courses.count_documents(query),
    }


async def review_course(
    db: AsyncIOMotorDatabase,
    admin: ActorContext,
    course_id: str,
    status: CourseStatus,
    reason: Optional[str] = None
) -> dict:
    """Approve or reject a published course"""
    course = await get_course_or_404(db, course_id)

    if not course.get("is_published"):
        raise HTTPException(status_code=400, detail="Only published courses can be reviewed")

    if status == CourseStatus.REJECTED and not (reason and reason.strip()):
        raise HTTPException(status_code=400, detail="A rejection reason is required")

    await db.courses.update_one(
        {"course_id": course_id},
        {"$set": {
            "status": status.value,
            "rejection_reason": reason.strip() if status == CourseStatus.REJECTED else None,
            # Rejected courses go back to draft so the tutor can fix and resubmit them
            "is_published": status != CourseStatus.REJECTED,
            "reviewed_by": admin.actor_id,
            "reviewed_at": datetime.utcnow(),
        }}
    )
    logger.info("Course %s marked %s by %s", course_id, status.value, admin.actor_id)
    return await db.courses.find_one({"course_id": course_id}, {"_id": 0})
