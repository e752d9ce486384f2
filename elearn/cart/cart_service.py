import logging
from datetime import datetime
from typing import List

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core import config
from elearn.core.database import generate_id
from elearn.core.permissions import ActorContext
from elearn.payments.paystack import PaystackClient, PaystackError, to_kobo
from elearn.utils.references import generate_reference

logger = logging.getLogger(__name__)

COURSE_SUMMARY_PROJECTION = {
    "_id": 0, "course_id": 1, "title": 1, "rating": 1, "thumbnail_url": 1, "tutor_name": 1
}


async def load_cart(db: AsyncIOMotorDatabase, student_id: str) -> dict:
    """Cart lines with a course summary attached and the running total"""
    items = await db.carts.find({"student_id": student_id}, {"_id": 0}).to_list(length=None)

    courses = await db.courses.find(
        {"course_id": {"$in": [item["course_id"] for item in items]}},
        COURSE_SUMMARY_PROJECTION
    ).to_list(length=None)
    by_id = {c["course_id"]: c for c in courses}

    for item in items:
        item["course"] = by_id.get(item["course_id"])

    total_price = sum(item["quantity"] * item["price"] for item in items)
    return {"cart_items": items, "total_price": total_price}


async def add_to_cart(db: AsyncIOMotorDatabase, student_id: str, course_id: str) -> dict:
    if not student_id or not course_id:
        raise HTTPException(status_code=400, detail="Student and course ids are required")

    course = await db.courses.find_one({"course_id": course_id})
    if not course:
        raise HTTPException(status_code=404, detail="This Course does not exist")

    price = course.get("price", 0)
    existing = await db.carts.find_one({"student_id": student_id, "course_id": course_id})

    if existing:
        await db.carts.update_one(
            {"cart_id": existing["cart_id"]},
            {"$inc": {"quantity": 1}, "$set": {"price": price, "updated_at": datetime.utcnow()}}
        )
    else:
        await db.carts.insert_one({
            "cart_id": generate_id("CART"),
            "student_id": student_id,
            "course_id": course_id,
            "quantity": 1,
            "price": price,
            "status": "pending",
            "payment_reference": None,
            "created_at": datetime.utcnow(),
            "updated_at": datetime.utcnow(),
        })

    return await load_cart(db, student_id)


async def remove_from_cart(db: AsyncIOMotorDatabase, student_id: str, course_ids: List[str]) -> dict:
    if not course_ids:
        raise HTTPException(status_code=400, detail="Course ids are required")

    for course_id in course_ids:
        item = await db.carts.find_one({"student_id": student_id, "course_id": course_id})
        if not item:
            continue

        if item.get("status") == "success" or item["quantity"] <= 1:
            await db.carts.delete_one({"cart_id": item["cart_id"]})
        else:
            await db.carts.update_one({"cart_id": item["cart_id"]}, {"$inc": {"quantity": -1}})

    return await load_cart(db, student_id)


async def get_cart_items(db: AsyncIOMotorDatabase, student_id: str) -> dict:
    cart = await load_cart(db, student_id)
    if not cart["cart_items"]:
        raise HTTPException(status_code=404, detail="Cart is empty")
    return cart


async def initiate_payment(
    db: AsyncIOMotorDatabase,
    gateway: PaystackClient,
    student: ActorContext,
    cart_ids: List[str]
) -> dict:
    """
    Start a gateway checkout for the given cart lines

    Unknown cart ids are skipped. The pending Payment is only recorded once
    the gateway has accepted the transaction.
    """
    total = 0
    valid_cart_ids = []
    course_ids = []

    for cart_id in cart_ids:
        item = await db.carts.find_one({"cart_id": cart_id, "student_id": student.actor_id})
        if not item:
            logger.warning("Cart %s not found for %s", cart_id, student.actor_id)
            continue
        total += item["price"]
        valid_cart_ids.append(cart_id)
        course_ids.append(item["course_id"])

    if total <= 0:
        raise HTTPException(status_code=400, detail="No valid carts found for payment")

    try:
        transaction = await gateway.initialize_transaction(
            email=student.email,
            amount_kobo=to_kobo(total),
            reference=generate_reference(),
            metadata={
                "cart_ids": valid_cart_ids,
                "student_id": student.actor_id,
                "course_ids": course_ids,
            },
        )
    except PaystackError as e:
        raise HTTPException(status_code=500, detail=f"Error initiating payment: {e}")

    reference = transaction["reference"]
    now = datetime.utcnow()
    await db.payments.insert_one({
        "payment_id": generate_id("PAY"),
        "email": student.email,
        "amount": total,
        "reference": reference,
        "status": "pending",
        "student_id": student.actor_id,
        "cart_ids": valid_cart_ids,
        "course_ids": course_ids,
        "currency": config.PAYMENT_CURRENCY,
        "created_at": now,
        "updated_at": now,
    })

    await db.carts.update_many(
        {"cart_id": {"$in": valid_cart_ids}},
        {"$set": {"status": "initiated", "payment_reference": reference}}
    )

    logger.info("Checkout %s started for %s (%s %s)", reference, student.actor_id, total, config.PAYMENT_CURRENCY)
    return {
        "authorization_url": transaction.get("authorization_url"),
        "access_code": transaction.get("access_code"),
        "reference": reference,
    }
