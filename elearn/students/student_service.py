import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core import config
from elearn.core.database import generate_id, paginate
from elearn.core.security import (
    hash_password, verify_password, generate_token, generate_pin, create_access_token
)
from elearn.courses.course_service import PUBLIC_COURSE_FILTER, refresh_course_rating
from elearn.utils.mail import Mailer, send_mail
from elearn.utils.templates import get_template

logger = logging.getLogger(__name__)

STUDENT_PROJECTION = {
    "_id": 0,
    "password_hash": 0,
    "verification_token": 0,
    "verification_token_expires": 0,
    "reset_pin": 0,
    "reset_pin_expires": 0,
}

RECOMMENDATION_TYPES = ("random", "related", "different", "sameTutor")


# ==================== ACCOUNT ====================

async def signup(db: AsyncIOMotorDatabase, mailer: Mailer, data: dict) -> dict:
    """Register a student and email a verification link"""
    if await db.students.find_one({"email": data["email"]}):
        raise HTTPException(status_code=400, detail="Email already exists")

    now = datetime.utcnow()
    verification_token = generate_token(32)

    student = {
        "student_id": generate_id("STU"),
        "first_name": data["first_name"],
        "last_name": data["last_name"],
        "email": data["email"],
        "phone": data.get("phone"),
        "password_hash": hash_password(data["password"]),
        "verification_token": verification_token,
        "verification_token_expires": now + timedelta(minutes=config.VERIFICATION_TOKEN_TTL_MINUTES),
        "is_verified": False,
        "is_active": False,
        "deleted_at": None,
        "privacy_settings": {
            "show_profile": True,
            "show_courses": True,
            "block_popups": False,
            "store_activity_history": True,
        },
        "created_at": now,
        "updated_at": now,
    }
    await db.students.insert_one(student)

    verification_link = (
        f"{config.STUDENT_FRONTEND_HOST}/verified-email?verificationToken={verification_token}"
    )
    html = get_template(
        "verifyemail.html",
        first_name=data["first_name"],
        verification_link=verification_link,
    )
    await send_mail(mailer, data["email"], "VERIFY YOUR EMAIL", html)

    return {
        "first_name": student["first_name"],
        "last_name": student["last_name"],
        "email": student["email"],
    }


async def verify_signup(db: AsyncIOMotorDatabase, verification_token: Optional[str]) -> None:
    student = None
    if verification_token:
        student = await db.students.find_one({
            "verification_token": verification_token,
            "verification_token_expires": {"$gt": datetime.utcnow()}
        })

    if not student:
        raise HTTPException(status_code=400, detail="Invalid or Token Expired.")

    await db.students.update_one(
        {"student_id": student["student_id"]},
        {
            "$set": {"is_verified": True, "is_active": True, "updated_at": datetime.utcnow()},
            "$unset": {"verification_token": "", "verification_token_expires": ""}
        }
    )


async def login(db: AsyncIOMotorDatabase, email: str, password: str) -> dict:
    student = await db.students.find_one({"email": email})

    if not student:
        raise HTTPException(status_code=404, detail="Student details incorrect")

    if not student.get("is_verified"):
        raise HTTPException(
            status_code=400,
            detail="Only verified students can login. Please verify your email"
        )

    if not student.get("is_active"):
        raise HTTPException(status_code=404, detail="This account does not exist.")

    if not verify_password(password, student.get("password_hash")):
        raise HTTPException(status_code=400, detail="Invalid password")

    return {
        "return_data": {
            "student_id": student["student_id"],
            "email": student["email"],
            "is_verified": student["is_verified"],
            "first_name": student.get("first_name"),
        },
        "auth_token": create_access_token(student["student_id"], "student", student["email"]),
    }


async def forgot_password(db: AsyncIOMotorDatabase, mailer: Mailer, email: Optional[str]) -> None:
    if not email:
        raise HTTPException(
            status_code=400,
            detail="This field cannot be empty. Please input your email"
        )

    student = await db.students.find_one({"email": email})
    if not student:
        raise HTTPException(status_code=400, detail="Incorrect email! Please check and try again")

    reset_pin = generate_pin()
    await db.students.update_one(
        {"student_id": student["student_id"]},
        {"$set": {
            "reset_pin": reset_pin,
            "reset_pin_expires": datetime.utcnow() + timedelta(minutes=config.RESET_PIN_TTL_MINUTES),
        }}
    )

    html = get_template("resetpin.html", first_name=student.get("first_name"), reset_pin=reset_pin)
    try:
        await send_mail(mailer, student["email"], "RESET PASSWORD", html)
    except Exception as e:
        logger.error("Reset pin email failed for %s: %s", student["email"], e)
        raise HTTPException(
            status_code=500,
            detail="Unable to send reset pin. Please try again later"
        )


async def verify_reset_pin(db: AsyncIOMotorDatabase, reset_pin: Optional[str]) -> None:
    if not reset_pin:
        raise HTTPException(status_code=400, detail="Cannot be empty. Input reset pin")

    student = await db.students.find_one({
        "reset_pin": reset_pin,
        "reset_pin_expires": {"$gt": datetime.utcnow()}
    })
    if not student:
        raise HTTPException(status_code=400, detail="Reset PIN is expired or invalid")

    await db.students.update_one(
        {"student_id": student["student_id"]},
        {"$unset": {"reset_pin": "", "reset_pin_expires": ""}}
    )


async def reset_password(db: AsyncIOMotorDatabase, email: str, password: str) -> dict:
    student = await db.students.find_one({"email": email})
    if not student:
        raise HTTPException(status_code=400, detail="Incorrect details")

    await db.students.update_one(
        {"student_id": student["student_id"]},
        {
            "$set": {"password_hash": hash_password(password), "updated_at": datetime.utcnow()},
            "$unset": {"reset_pin": "", "reset_pin_expires": ""}
        }
    )
    return {"student_id": student["student_id"], "email": email}


# ==================== DASHBOARD ====================

def count_videos(course: Optional[dict]) -> int:
    if not course:
        return 0
    return sum(len(lecture.get("videos", [])) for lecture in course.get("lectures", []))


def build_course_progress(purchase: dict, course: Optional[dict]) -> dict:
    """Attach watched/total counts and the resume point to a purchase"""
    progress = purchase.get("progress", [])
    total_videos = count_videos(course)
    watched_videos = len({p["video_id"] for p in progress if p.get("completed")})

    incomplete = [p for p in progress if not p.get("completed")]
    incomplete.sort(key=lambda p: p.get("updated_at") or datetime.min, reverse=True)
    last = incomplete[0] if incomplete else None

    return {
        **purchase,
        "course": course,
        "watched_videos": watched_videos,
        "total_videos": total_videos,
        "progress_count": f"{watched_videos}/{total_videos}",
        "resume": {
            "lecture_id": last["lecture_id"],
            "video_id": last["video_id"],
            "timestamp": last.get("timestamp", 0),
        } if last else None,
    }


async def get_student_courses(db: AsyncIOMotorDatabase, student_id: str) -> list:
    purchases = await db.purchased_courses.find(
        {"student_id": student_id, "is_active": {"$ne": False}}, {"_id": 0}
    ).sort("purchase_date", -1).to_list(length=None)

    course_ids = [p["course_id"] for p in purchases]
    courses = await db.courses.find({"course_id": {"$in": course_ids}}, {"_id": 0}).to_list(length=None)
    by_id = {c["course_id"]: c for c in courses}

    return [build_course_progress(p, by_id.get(p["course_id"])) for p in purchases]


async def get_each_course(db: AsyncIOMotorDatabase, student_id: str, course_id: str) -> dict:
    purchase = await db.purchased_courses.find_one(
        {"student_id": student_id, "course_id": course_id}, {"_id": 0}
    )
    if not purchase:
        raise HTTPException(status_code=404, detail="There is no Course with this ID")

    course = await db.courses.find_one({"course_id": course_id}, {"_id": 0})
    return build_course_progress(purchase, course)


async def get_student_overview(db: AsyncIOMotorDatabase, student_id: str) -> dict:
    purchases = await db.purchased_courses.find(
        {"student_id": student_id, "is_active": {"$ne": False}}
    ).to_list(length=None)

    total = len(purchases)
    completed = sum(1 for p in purchases if p.get("is_completed") == 1)
    minutes = sum(p.get("minutes_spent", 0) for p in purchases)

    return {
        "course_completion_rate": round(completed / total * 100, 2) if total else 0,
        "total_enrolled_courses": total,
        "completed_courses": completed,
        "total_watch_time": round(minutes / 60, 2),
    }


async def get_recommendations(
    db: AsyncIOMotorDatabase,
    student_id: str,
    page: int = 1,
    limit: int = 10,
    rec_type: str = "random"
) -> dict:
    """
    Recommend published courses

    type:
        random     - any course
        related    - same categories as purchased courses
        different  - categories the student has not bought from
        sameTutor  - other courses by tutors the student has bought from
    """
    if rec_type not in RECOMMENDATION_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"type must be one of: {', '.join(RECOMMENDATION_TYPES)}"
        )

    page, limit, skip = paginate(page, limit)
    query = dict(PUBLIC_COURSE_FILTER)

    if rec_type != "random":
        purchases = await db.purchased_courses.find({"student_id": student_id}).to_list(length=None)
        bought = await db.courses.find(
            {"course_id": {"$in": [p["course_id"] for p in purchases]}}
        ).to_list(length=None)

        if rec_type == "sameTutor":
            query["tutor_id"] = {"$in": list({c["tutor_id"] for c in bought})}
        else:
            categories = list({
                c.get("basic_information", {}).get("category")
                for c in bought
                if c.get("basic_information", {}).get("category")
            })
            operator = "$in" if rec_type == "related" else "$nin"
            query["basic_information.category"] = {operator: categories}

    total = await db.courses.count_documents(query)
    courses = await db.courses.find(query, {"_id": 0}).skip(skip).limit(limit).to_list(length=limit)

    return {
        "courses": courses,
        "page": page,
        "total_pages": math.ceil(total / limit),
        "total_courses": total,
    }


# ==================== PROFILE ====================

async def update_student(db: AsyncIOMotorDatabase, student_id: str, updates: dict) -> dict:
    if updates:
        updates["updated_at"] = datetime.utcnow()
        await db.students.update_one({"student_id": student_id}, {"$set": updates})

    return await db.students.find_one({"student_id": student_id}, STUDENT_PROJECTION)


async def update_password(db: AsyncIOMotorDatabase, student: dict, old_password: str, new_password: str) -> None:
    if not verify_password(old_password, student.get("password_hash")):
        raise HTTPException(status_code=400, detail="This password is incorrect")

    await db.students.update_one(
        {"student_id": student["student_id"]},
        {"$set": {"password_hash": hash_password(new_password), "updated_at": datetime.utcnow()}}
    )


async def delete_account(db: AsyncIOMotorDatabase, student_id: str) -> dict:
    """Soft delete the student and deactivate everything that points at them"""
    result = await db.students.update_one(
        {"student_id": student_id, "is_active": True},
        {"$set": {"is_active": False, "deleted_at": datetime.utcnow()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Student not found or already deleted")

    deactivate = {"$set": {"is_active": False}}
    await db.purchased_courses.update_many({"student_id": student_id}, deactivate)
    reviewed = {
        r["course_id"] for r in await db.reviews.find(
            {"student_id": student_id}, {"_id": 0, "course_id": 1}
        ).to_list(length=None)
    }
    await db.reviews.update_many({"student_id": student_id}, deactivate)
    for course_id in reviewed:
        await refresh_course_rating(db, course_id)
    await db.comments.update_many({"student_id": student_id}, deactivate)
    await db.chats.update_many({"student_id": student_id}, deactivate)
    await db.messages.update_many(
        {"$or": [{"sender_id": student_id}, {"receiver_id": student_id}]}, deactivate
    )

    # Payment history is kept for accounting
    await db.payments.update_many({"student_id": student_id}, {"$unset": {"student_id": ""}})

    logger.info("Student %s deleted their account", student_id)
    return await db.students.find_one({"student_id": student_id}, STUDENT_PROJECTION)


async def update_privacy_settings(db: AsyncIOMotorDatabase, student_id: str, settings: dict) -> dict:
    result = await db.students.update_one(
        {"student_id": student_id},
        {"$set": {"privacy_settings": settings, "updated_at": datetime.utcnow()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Student not found")

    return await db.students.find_one({"student_id": student_id}, STUDENT_PROJECTION)
