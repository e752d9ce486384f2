import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from elearn.core import config
from elearn.core.database import generate_id
from elearn.core.permissions import AccountRole
from elearn.core.security import hash_password, verify_password
from elearn.courses.course_service import ACTIVE_REVIEW
from elearn.payments.paystack import PaystackClient, PaystackError, to_kobo
from elearn.utils.references import generate_withdrawal_reference

logger = logging.getLogger(__name__)

TIME_PERIODS = ("week", "month", "year")
NEW_STUDENT_WINDOW_DAYS = 30

TUTOR_PROJECTION = {"_id": 0, "password_hash": 0, "registration_token": 0, "token_expiration": 0}
BANK_ACCOUNT_PROJECTION = {"_id": 0, "recipient_code": 0}


# ==================== HELPERS ====================

def period_range(time_period: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Half-open [start, end) window for the current week (from Sunday), month or year"""
    now = now or datetime.utcnow()
    today = datetime(now.year, now.month, now.day)

    if time_period == "week":
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start, start + timedelta(days=7)
    if time_period == "month":
        start = today.replace(day=1)
        if start.month == 12:
            return start, start.replace(year=start.year + 1, month=1)
        return start, start.replace(month=start.month + 1)
    if time_period == "year":
        return datetime(now.year, 1, 1), datetime(now.year + 1, 1, 1)

    raise HTTPException(status_code=400, detail="Invalid time period")


async def get_tutor_courses(db: AsyncIOMotorDatabase, tutor_id: str) -> List[dict]:
    return await db.courses.find({"tutor_id": tutor_id}, {"_id": 0}).to_list(length=None)


async def get_paid_purchases(db: AsyncIOMotorDatabase, course_ids: List[str], extra: Optional[dict] = None) -> List[dict]:
    """Purchases of the given courses whose payment went through, each with its payment attached"""
    purchases = await db.purchased_courses.find(
        {"course_id": {"$in": course_ids}, **(extra or {})}, {"_id": 0}
    ).to_list(length=None)

    payment_ids = list({p.get("payment_id") for p in purchases if p.get("payment_id")})
    payments = await db.payments.find(
        {"payment_id": {"$in": payment_ids}, "status": "success"}, {"_id": 0}
    ).to_list(length=None)
    by_id = {p["payment_id"]: p for p in payments}

    paid = []
    for purchase in purchases:
        payment = by_id.get(purchase.get("payment_id"))
        if payment:
            paid.append({**purchase, "payment": payment})
    return paid


def purchase_amount(purchase: dict) -> float:
    # Purchases carry their own line price; fall back to the payment total
    if purchase.get("amount") is not None:
        return purchase["amount"]
    return purchase["payment"].get("amount", 0)


async def _student_names(db: AsyncIOMotorDatabase, student_ids) -> dict:
    students = await db.students.find(
        {"student_id": {"$in": list(student_ids)}},
        {"_id": 0, "student_id": 1, "first_name": 1, "last_name": 1, "email": 1}
    ).to_list(length=None)
    return {s["student_id"]: s for s in students}


def _full_name(person: Optional[dict], default: str = "Unknown Student") -> str:
    if not person:
        return default
    return f"{person.get('first_name') or 'N/A'} {person.get('last_name') or 'N/A'}"


# ==================== DASHBOARD ====================

async def tutor_stats(db: AsyncIOMotorDatabase, tutor_id: str, time_period: str = "month") -> dict:
    """Overview for the tutor dashboard within the current week, month or year"""
    if time_period not in TIME_PERIODS:
        raise HTTPException(status_code=400, detail="Invalid time period")
    start, end = period_range(time_period)
    in_period = {"$gte": start, "$lt": end}

    courses = await get_tutor_courses(db, tutor_id)
    if not courses:
        raise HTTPException(status_code=404, detail="No courses found for the tutor")

    course_ids = [c["course_id"] for c in courses]
    titles = {c["course_id"]: c["title"] for c in courses}

    purchases = await db.purchased_courses.find(
        {"course_id": {"$in": course_ids}, "purchase_date": in_period}
    ).to_list(length=None)
    enrolled_courses = len(purchases)
    enrolled_students = len({p["student_id"] for p in purchases})
    certificates = sum(1 for p in purchases if p.get("is_completed") == 1)

    paid = await get_paid_purchases(db, course_ids, {"purchase_date": in_period})
    total_amount = sum(purchase_amount(p) for p in paid)

    enrolled_per_course = {}
    for purchase in purchases:
        enrolled_per_course.setdefault(purchase["course_id"], set()).add(purchase["student_id"])

    reviews = await db.reviews.find(
        {"course_id": {"$in": course_ids}, "created_at": in_period, **ACTIVE_REVIEW}, {"_id": 0}
    ).sort("created_at", -1).to_list(length=None)

    # Most rated course by average rating within the period
    rating_groups = {}
    for review in reviews:
        rating_groups.setdefault(review["course_id"], []).append(review["rating"])
    most_rated = None
    if rating_groups:
        best_id, ratings = max(rating_groups.items(), key=lambda item: sum(item[1]) / len(item[1]))
        most_rated = {
            "course_id": best_id,
            "course_title": titles.get(best_id),
            "average_rating": round(sum(ratings) / len(ratings), 2),
            "review_count": len(ratings),
        }

    recent = reviews[:5]
    students = await _student_names(db, {r["student_id"] for r in recent})
    recent_reviews = [
        {
            "course_title": titles.get(r["course_id"], "Unknown Course"),
            "reviewer_name": _full_name(students.get(r["student_id"])),
            "rating": r["rating"],
            "review_text": r.get("review_text"),
        }
        for r in recent
    ]

    completion_rate = certificates / enrolled_courses * 100 if enrolled_courses else 0
    retention_rate = completion_rate
    feedback_rate = sum(r["rating"] for r in reviews) / len(reviews) if reviews else 0
    performance_score = retention_rate * 0.4 + completion_rate * 0.4 + feedback_rate * 0.2

    return {
        "quickStats": {
            "enrolledCourses": enrolled_courses,
            "enrolledStudents": enrolled_students,
            "certificates": certificates,
            "totalAmount": total_amount,
        },
        "courseStatistics": [
            {
                "course_id": c["course_id"],
                "title": c["title"],
                "enrolled": len(enrolled_per_course.get(c["course_id"], ())),
                "views": c.get("views", 0),
                "review_count": c.get("review_count", 0),
            }
            for c in courses
        ],
        "mostRatedCourse": most_rated,
        "recentReviews": recent_reviews,
        "performanceChart": {
            "retentionRate": round(retention_rate, 2),
            "completionRate": round(completion_rate, 2),
            "feedbackRate": round(feedback_rate, 2),
            "performanceScore": round(performance_score, 2),
        },
        "period": {"start": start, "end": end},
    }


async def tutor_courses(db: AsyncIOMotorDatabase, tutor_id: str) -> dict:
    courses = await get_tutor_courses(db, tutor_id)
    if not courses:
        raise HTTPException(status_code=404, detail="There are no courses found for this Tutor")

    course_ids = [c["course_id"] for c in courses]
    purchases = await db.purchased_courses.find({"course_id": {"$in": course_ids}}).to_list(length=None)

    per_course = {}
    for purchase in purchases:
        stats = per_course.setdefault(purchase["course_id"], {"students": set(), "purchases": 0, "minutes": 0})
        stats["students"].add(purchase["student_id"])
        stats["purchases"] += 1
        stats["minutes"] += purchase.get("minutes_spent", 0) or 0

    weekly, monthly = {}, {}
    total_revenue = 0
    for purchase in await get_paid_purchases(db, course_ids):
        amount = purchase_amount(purchase)
        paid_on = purchase["payment"].get("created_at") or purchase.get("purchase_date")
        total_revenue += amount
        if isinstance(paid_on, datetime):
            year, week, _ = paid_on.isocalendar()
            weekly[(year, week)] = weekly.get((year, week), 0) + amount
            monthly[(paid_on.year, paid_on.month)] = monthly.get((paid_on.year, paid_on.month), 0) + amount

    ratings = []
    published = unpublished = 0
    total_students = 0
    total_minutes = 0
    course_enrolled = []
    for course in courses:
        stats = per_course.get(course["course_id"], {"students": set(), "purchases": 0, "minutes": 0})
        if course.get("is_published"):
            published += 1
        else:
            unpublished += 1
        total_students += len(stats["students"])
        total_minutes += stats["minutes"]
        course_enrolled.append({
            "course_title": course["title"],
            "total_purchase": stats["purchases"],
            "is_published": course.get("is_published", False),
            "status": course.get("status"),
        })
        ratings.append({"title": course["title"], "rating": course.get("rating", 0)})

    ratings.sort(key=lambda r: r["rating"], reverse=True)

    return {
        "overview": {
            "total_enrolled_students": total_students,
            "total_watch_hours": round(total_minutes / 60, 2),
            "total_revenue": total_revenue,
        },
        "ratings": {
            "top_rated_course": ratings[0] if ratings else None,
            "least_rated_course": ratings[-1] if ratings else None,
        },
        "course_details": {
            "published_courses": published,
            "unpublished_courses": unpublished,
            "course_enrolled": course_enrolled,
        },
        "revenue": {
            "weekly": [{"year": y, "week": w, "revenue": r} for (y, w), r in sorted(weekly.items())],
            "monthly": [{"year": y, "month": m, "revenue": r} for (y, m), r in sorted(monthly.items())],
        },
        "courses": courses,
    }


async def tutor_transactions(db: AsyncIOMotorDatabase, tutor_id: str) -> dict:
    """Successful sales of the tutor's courses with the platform charge taken out"""
    courses = await get_tutor_courses(db, tutor_id)
    if not courses:
        raise HTTPException(status_code=404, detail="No courses found for this tutor.")

    titles = {c["course_id"]: c["title"] for c in courses}
    paid = await get_paid_purchases(db, list(titles))
    if not paid:
        raise HTTPException(status_code=404, detail="No transactions found for this tutor's courses.")

    students = await _student_names(db, {p["student_id"] for p in paid})

    history = []
    total_income = 0
    for purchase in sorted(paid, key=lambda p: p.get("purchase_date") or datetime.min, reverse=True):
        payment = purchase["payment"]
        amount = purchase_amount(purchase)
        total_income += amount
        history.append({
            "email": payment.get("email") or "N/A",
            "amount": amount,
            "date": payment.get("paid_at") or payment.get("created_at"),
            "reference": payment.get("reference") or "N/A",
            "course": titles.get(purchase["course_id"], "Unknown Course"),
            "student_name": _full_name(students.get(purchase["student_id"])),
        })

    total_charges = round(total_income * config.PLATFORM_CHARGE_RATE, 2)
    return {
        "transaction_history": history,
        "total_income": total_income,
        "total_charges": total_charges,
        "net_income": round(total_income - total_charges, 2),
    }


async def tutor_students(db: AsyncIOMotorDatabase, tutor_id: str) -> dict:
    courses = await get_tutor_courses(db, tutor_id)
    if not courses:
        raise HTTPException(status_code=404, detail="There are no courses found for this tutor")

    by_course = {c["course_id"]: c for c in courses}
    purchases = await db.purchased_courses.find(
        {"course_id": {"$in": list(by_course)}}
    ).to_list(length=None)

    students = await _student_names(db, {p["student_id"] for p in purchases})
    details = {}
    for purchase in purchases:
        student = students.get(purchase["student_id"])
        if not student:
            continue
        entry = details.setdefault(purchase["student_id"], {
            "student_id": purchase["student_id"],
            "first_name": student.get("first_name"),
            "last_name": student.get("last_name"),
            "email": student.get("email"),
            "courses_purchased": [],
        })
        course = by_course[purchase["course_id"]]
        entry["courses_purchased"].append({
            "course_id": course["course_id"],
            "title": course["title"],
            "price": course.get("price", 0),
            "purchase_date": purchase.get("purchase_date"),
        })

    if not details:
        raise HTTPException(status_code=404, detail="No student details found")

    cutoff = datetime.utcnow() - timedelta(days=NEW_STUDENT_WINDOW_DAYS)
    new_students = [
        s for s in details.values()
        if any(c["purchase_date"] and c["purchase_date"] >= cutoff for c in s["courses_purchased"])
    ]
    completions = sum(1 for p in purchases if p.get("is_completed") == 1)

    paid = await get_paid_purchases(db, list(by_course))
    return {
        "total_students": len(details),
        "new_students": len(new_students),
        "retention_percentage": round(completions / len(details) * 100, 2),
        "total_amount": sum(purchase_amount(p) for p in paid),
        "student_details": list(details.values()),
    }


async def tutor_course_analytics(db: AsyncIOMotorDatabase, tutor_id: str) -> list:
    """Views to purchase conversion per course"""
    courses = await get_tutor_courses(db, tutor_id)
    counts = {}
    if courses:
        grouped = await db.purchased_courses.aggregate([
            {"$match": {"course_id": {"$in": [c["course_id"] for c in courses]}}},
            {"$group": {"_id": "$course_id", "count": {"$sum": 1}}},
        ]).to_list(length=None)
        counts = {g["_id"]: g["count"] for g in grouped}

    analytics = []
    for course in courses:
        views = course.get("views", 0) or 0
        purchases = counts.get(course["course_id"], 0)
        percentage = round(purchases / views * 100, 2) if views else 0
        analytics.append({
            "course_id": course["course_id"],
            "title": course["title"],
            "views": views,
            "purchases": purchases,
            "purchase_percentage": f"{percentage}%",
        })
    return analytics


# ==================== PROFILE ====================

async def change_password(db: AsyncIOMotorDatabase, tutor: dict, old_password: Optional[str], new_password: Optional[str]) -> None:
    if not old_password or not new_password:
        raise HTTPException(status_code=400, detail="Old and new passwords are required")

    if not tutor.get("password_hash"):
        raise HTTPException(status_code=400, detail="Tutor password is not set. Please contact support.")

    if not verify_password(old_password, tutor["password_hash"]):
        raise HTTPException(status_code=400, detail="This password is incorrect")

    await db.accounts.update_one(
        {"account_id": tutor["account_id"]},
        {"$set": {"password_hash": hash_password(new_password), "updated_at": datetime.utcnow()}}
    )
    logger.info("Tutor %s changed password", tutor["account_id"])


async def update_profile(db: AsyncIOMotorDatabase, tutor_id: str, updates: dict) -> dict:
    updates = {k: v for k, v in updates.items() if v is not None}
    if updates:
        updates["updated_at"] = datetime.utcnow()
        await db.accounts.update_one({"account_id": tutor_id}, {"$set": updates})

    return await db.accounts.find_one({"account_id": tutor_id}, TUTOR_PROJECTION)


async def delete_account(db: AsyncIOMotorDatabase, tutor_id: str) -> dict:
    """Soft delete; courses stay in the catalogue"""
    result = await db.accounts.update_one(
        {"account_id": tutor_id, "role": AccountRole.TUTOR.value, "is_active": True},
        {"$set": {"is_active": False, "deleted_at": datetime.utcnow()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Tutor not found or already deleted")

    return await db.accounts.find_one({"account_id": tutor_id}, TUTOR_PROJECTION)


# ==================== BANK ACCOUNTS ====================

async def add_bank_details(db: AsyncIOMotorDatabase, tutor_id: str, data: dict) -> dict:
    account = {
        "account_id": generate_id("BANK"),
        "tutor_id": tutor_id,
        "account_name": data["account_name"],
        "account_number": data["account_number"],
        "bank_name": data["bank_name"],
        "bank_code": data["bank_code"],
        "recipient_code": None,
        "created_at": datetime.utcnow(),
    }
    try:
        await db.bank_accounts.insert_one(account)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="This account number is already registered")

    return {k: v for k, v in account.items() if k not in BANK_ACCOUNT_PROJECTION}


async def get_bank_accounts(db: AsyncIOMotorDatabase, tutor_id: str) -> list:
    accounts = await db.bank_accounts.find({"tutor_id": tutor_id}, BANK_ACCOUNT_PROJECTION).to_list(length=None)
    if not accounts:
        raise HTTPException(status_code=404, detail="No bank accounts found")
    return accounts


async def delete_bank_account(db: AsyncIOMotorDatabase, tutor_id: str, account_id: str) -> None:
    result = await db.bank_accounts.delete_one({"account_id": account_id, "tutor_id": tutor_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=400, detail="Bank account not found or unauthorized")


# ==================== WITHDRAWALS ====================

async def calculate_earnings(db: AsyncIOMotorDatabase, tutor_id: str) -> float:
    """Lifetime sales of the tutor's courses less the platform charge"""
    courses = await get_tutor_courses(db, tutor_id)
    paid = await get_paid_purchases(db, [c["course_id"] for c in courses])
    total = sum(purchase_amount(p) for p in paid)
    return round(total * (1 - config.PLATFORM_CHARGE_RATE), 2)


# Withdrawals in these states are held against the balance
HELD_WITHDRAWAL_STATUSES = ["pending", "success"]


async def available_balance(db: AsyncIOMotorDatabase, tutor_id: str) -> float:
    withdrawn = await db.withdrawals.aggregate([
        {"$match": {"tutor_id": tutor_id, "status": {"$in": HELD_WITHDRAWAL_STATUSES}}},
        {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
    ]).to_list(length=1)
    earnings = await calculate_earnings(db, tutor_id)
    return round(earnings - (withdrawn[0]["total"] if withdrawn else 0), 2)


async def request_withdrawal(
    db: AsyncIOMotorDatabase,
    gateway: PaystackClient,
    tutor_id: str,
    amount: float,
    account_id: str
) -> dict:
    """
    Pay out part of the tutor's balance to one of their bank accounts.
    The withdrawal is recorded as pending before the transfer starts so it
    counts against the balance straight away. The gateway settles transfers
    asynchronously; the webhook moves the record to success, failed or reversed.
    """
    balance = await available_balance(db, tutor_id)
    if amount > balance:
        raise HTTPException(status_code=400, detail="Insufficient balance")

    account = await db.bank_accounts.find_one({"account_id": account_id, "tutor_id": tutor_id})
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")

    now = datetime.utcnow()
    withdrawal = {
        "withdrawal_id": generate_id("WD"),
        "tutor_id": tutor_id,
        "account_id": account_id,
        "amount": amount,
        "reference": generate_withdrawal_reference(),
        "transfer_code": None,
        "status": "pending",
        "transferred_at": None,
        "created_at": now,
    }
    await db.withdrawals.insert_one(withdrawal)
    withdrawal.pop("_id", None)

    try:
        recipient_code = account.get("recipient_code")
        if not recipient_code:
            recipient = await gateway.create_transfer_recipient(
                account_name=account["account_name"],
                account_number=account["account_number"],
                bank_code=account["bank_code"],
            )
            recipient_code = recipient["recipient_code"]
            await db.bank_accounts.update_one(
                {"account_id": account_id}, {"$set": {"recipient_code": recipient_code}}
            )

        transfer = await gateway.initiate_transfer(
            amount_kobo=to_kobo(amount),
            recipient_code=recipient_code,
            reference=withdrawal["reference"],
            reason="Tutor earnings withdrawal",
        )
    except PaystackError as e:
        logger.error("Withdrawal for tutor %s failed: %s", tutor_id, e)
        await db.withdrawals.update_one(
            {"withdrawal_id": withdrawal["withdrawal_id"]}, {"$set": {"status": "failed"}}
        )
        raise HTTPException(status_code=500, detail="Unable to initiate this transfer")

    updates = {"transfer_code": transfer.get("transfer_code")}
    if transfer.get("status") == "success":
        updates.update(status="success", transferred_at=datetime.utcnow())
    await db.withdrawals.update_one({"withdrawal_id": withdrawal["withdrawal_id"]}, {"$set": updates})
    withdrawal.update(updates)

    logger.info("Withdrawal %s of %s recorded as %s", withdrawal["reference"], amount, withdrawal["status"])
    return withdrawal


async def list_withdrawals(db: AsyncIOMotorDatabase, tutor_id: str) -> list:
    return await db.withdrawals.find(
        {"tutor_id": tutor_id}, {"_id": 0}
    ).sort("created_at", -1).to_list(length=None)
