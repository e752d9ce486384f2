"""
Analytics for the admin dashboard
"""

import calendar
from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core import config
from elearn.core.permissions import AccountRole


async def get_core_metrics(db: AsyncIOMotorDatabase) -> dict:
    return {
        "total_students": await db.students.count_documents({"deleted_at": None}),
        "total_tutors": await db.accounts.count_documents({"role": AccountRole.TUTOR.value}),
        "total_courses": await db.courses.count_documents({}),
        "total_purchases": await db.purchased_courses.count_documents({}),
        "completed_courses": await db.purchased_courses.count_documents({"is_completed": 1}),
    }


async def get_total_revenue(db: AsyncIOMotorDatabase) -> float:
    result = await db.payments.aggregate([
        {"$match": {"status": "success"}},
        {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
    ]).to_list(length=1)
    return result[0]["total"] if result else 0


async def get_bar_chart_data(db: AsyncIOMotorDatabase, year: Optional[int] = None) -> list:
    """Monthly revenue for a calendar year split into tutor share and platform charge"""
    year = year or datetime.utcnow().year
    payments = await db.payments.find({
        "status": "success",
        "created_at": {"$gte": datetime(year, 1, 1), "$lt": datetime(year + 1, 1, 1)},
    }).to_list(length=None)

    monthly = {}
    for payment in payments:
        month = payment["created_at"].month
        monthly[month] = monthly.get(month, 0) + payment.get("amount", 0)

    return [
        {
            "month": calendar.month_abbr[month],
            "tutor_revenue": round(total * (1 - config.PLATFORM_CHARGE_RATE), 2),
            "platform_charge": round(total * config.PLATFORM_CHARGE_RATE, 2),
        }
        for month, total in sorted(monthly.items())
    ]


async def _activities(db: AsyncIOMotorDatabase, collection: str, activity_type: str, date_field: str) -> list:
    docs = await db[collection].find({}).sort(date_field, -1).limit(5).to_list(length=5)
    activities = []
    for doc in docs:
        student = await db.students.find_one({"student_id": doc.get("student_id")}) or {}
        course = await db.courses.find_one({"course_id": doc.get("course_id")}) or {}
        activities.append({
            "activity_type": activity_type,
            "student_name": f"{student.get('first_name', '')} {student.get('last_name', '')}".strip(),
            "course_title": course.get("title", "Unknown Course"),
            "created_at": doc.get(date_field),
        })
    return activities


async def get_recent_activities(db: AsyncIOMotorDatabase, limit: int = 5) -> list:
    """Latest purchases, comments and reviews merged into one feed"""
    activities = (
        await _activities(db, "purchased_courses", "purchase", "purchase_date")
        + await _activities(db, "comments", "comment", "created_at")
        + await _activities(db, "reviews", "review", "created_at")
    )
    activities.sort(key=lambda a: a["created_at"] or datetime.min, reverse=True)
    return activities[:limit]


async def get_top_courses(db: AsyncIOMotorDatabase, limit: int = 3) -> list:
    top = await db.purchased_courses.aggregate([
        {"$group": {"_id": "$course_id", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
        {"$limit": limit},
    ]).to_list(length=limit)

    result = []
    for item in top:
        course = await db.courses.find_one({"course_id": item["_id"]}) or {}
        result.append({
            "course_id": item["_id"],
            "title": course.get("title", "Unknown Course"),
            "tutor_name": course.get("tutor_name"),
            "purchases": item["count"],
        })
    return result


async def get_top_tutors(db: AsyncIOMotorDatabase, limit: int = 3) -> list:
    """Tutors ranked by the completion rate of their students"""
    courses = await db.courses.find({}, {"course_id": 1, "tutor_id": 1}).to_list(length=None)
    by_tutor = {}
    for course in courses:
        by_tutor.setdefault(course["tutor_id"], []).append(course["course_id"])

    stats = []
    for tutor_id, course_ids in by_tutor.items():
        tutor = await db.accounts.find_one({"account_id": tutor_id})
        if not tutor:
            continue
        purchases = await db.purchased_courses.find({"course_id": {"$in": course_ids}}).to_list(length=None)
        total = len(purchases)
        completed = sum(1 for p in purchases if p.get("is_completed") == 1)
        stats.append({
            "tutor_id": tutor_id,
            "name": f"{tutor.get('first_name', '')} {tutor.get('last_name', '')}".strip(),
            "email": tutor.get("email"),
            "completion_rate": round(completed / total * 100, 2) if total else 0,
        })

    stats.sort(key=lambda s: s["completion_rate"], reverse=True)
    return stats[:limit]


async def get_recent_transactions(db: AsyncIOMotorDatabase, limit: int = 5) -> list:
    payments = await db.payments.find(
        {"status": "success"}, {"_id": 0}
    ).sort("created_at", -1).limit(limit).to_list(length=limit)

    for payment in payments:
        student = await db.students.find_one({"student_id": payment.get("student_id")}) or {}
        payment["student_name"] = f"{student.get('first_name', '')} {student.get('last_name', '')}".strip()
    return payments


async def admin_overview(db: AsyncIOMotorDatabase) -> dict:
    metrics = await get_core_metrics(db)
    purchases = metrics["total_purchases"]

    return {
        **metrics,
        "completion_rate": round(metrics["completed_courses"] / purchases * 100, 2) if purchases else 0,
        "total_revenue": await get_total_revenue(db),
        "bar_chart_data": await get_bar_chart_data(db),
        "recent_activities": await get_recent_activities(db),
        "top_courses": await get_top_courses(db),
        "top_tutors": await get_top_tutors(db),
        "recent_transactions": await get_recent_transactions(db),
    }
