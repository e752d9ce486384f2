import logging
from datetime import datetime

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core import config
from elearn.core.database import generate_id
from elearn.payments.paystack import PaystackClient, PaystackError
from elearn.utils.mail import Mailer, send_mail
from elearn.utils.templates import get_template

logger = logging.getLogger(__name__)

TRANSFER_STATUSES = {
    "transfer.success": "success",
    "transfer.failed": "failed",
    "transfer.reversed": "reversed",
}


async def handle_webhook(
    db: AsyncIOMotorDatabase,
    gateway: PaystackClient,
    mailer: Mailer,
    payload: dict
) -> tuple:
    """
    Dispatch a gateway event

    Returns (message, data) for the response envelope.
    """
    event = payload.get("event")
    logger.info("Webhook received: %s", event)

    if event == "charge.success":
        return await handle_charge_success(db, gateway, mailer, payload.get("data") or {})

    if event in TRANSFER_STATUSES:
        return await handle_transfer_update(db, event, payload.get("data") or {})

    raise HTTPException(status_code=400, detail=f"Unhandled webhook event: {event}")


async def handle_charge_success(
    db: AsyncIOMotorDatabase,
    gateway: PaystackClient,
    mailer: Mailer,
    data: dict
) -> tuple:
    reference = data.get("reference")
    if not reference:
        raise HTTPException(status_code=400, detail="Payment reference missing")

    payment = await db.payments.find_one({"reference": reference})
    if not payment:
        logger.warning("Payment reference %s not found", reference)
        raise HTTPException(status_code=404, detail="This payment Reference does not exist")

    # Best-effort idempotency: a repeated delivery of an already settled payment is a no-op
    if payment.get("status") == "success":
        return "Transaction already processed", None

    try:
        verified = await gateway.verify_transaction(reference)
    except PaystackError as e:
        logger.error("Verification of %s failed: %s", reference, e)
        raise HTTPException(status_code=500, detail="Payment verification failed")

    if verified.get("status") != "success":
        raise HTTPException(status_code=500, detail="Payment verification failed")

    metadata = verified.get("metadata") or {}
    cart_ids = metadata.get("cart_ids")
    student_id = metadata.get("student_id")
    if not cart_ids or not student_id:
        logger.error("Missing metadata in verification response for %s", reference)
        raise HTTPException(status_code=400, detail="Invalid payment metadata")

    student = await db.students.find_one({"student_id": student_id}) or {}
    enrolled = []

    for cart_id in cart_ids:
        cart = await db.carts.find_one({"cart_id": cart_id})
        if not cart:
            continue
        course = await db.courses.find_one({"course_id": cart["course_id"]})
        if not course:
            continue

        already_owned = await db.purchased_courses.find_one({
            "student_id": student_id, "course_id": course["course_id"]
        })
        if not already_owned:
            await db.purchased_courses.insert_one({
                "purchase_id": generate_id("PUR"),
                "student_id": student_id,
                "course_id": course["course_id"],
                "payment_id": payment["payment_id"],
                "amount": cart.get("price", course.get("price", 0)),
                "purchase_date": datetime.utcnow(),
                "is_completed": 0,
                "minutes_spent": 0,
                "progress": [],
                "lecture_progress": [],
                "is_active": True,
                "created_at": datetime.utcnow(),
            })
            await db.courses.update_one(
                {"course_id": course["course_id"]},
                {"$inc": {"purchase_count": 1}}
            )
            enrolled.append(course["course_id"])
            await notify_tutor(db, mailer, course, student, cart.get("price", course.get("price", 0)))

        await db.carts.update_one({"cart_id": cart_id}, {"$set": {"status": "success"}})

    # Settled only after every enrolment so a redelivery can finish a partial run
    await db.payments.update_one(
        {"payment_id": payment["payment_id"]},
        {"$set": {
            "transaction_id": verified.get("id"),
            "channel": verified.get("channel"),
            "paid_at": verified.get("paid_at") or verified.get("paidAt"),
            "currency": verified.get("currency") or payment.get("currency"),
            "status": "success",
            "updated_at": datetime.utcnow(),
        }}
    )

    await db.carts.delete_many({"student_id": student_id, "status": "success"})

    logger.info("Payment %s settled, enrolled %s in %s", reference, student_id, enrolled)
    return "Transaction verified and noted", {"reference": reference, "enrolled_courses": enrolled}


async def notify_tutor(db: AsyncIOMotorDatabase, mailer: Mailer, course: dict, student: dict, price: float):
    """Purchase email to the course tutor; failures are logged, never rolled back"""
    tutor = await db.accounts.find_one({"account_id": course.get("tutor_id")})
    email = (tutor or {}).get("email") or course.get("tutor_email")
    if not email:
        return

    platform_charge = round(price * config.PLATFORM_CHARGE_RATE, 2)
    html = get_template(
        "purchasenotification.html",
        tutor_name=course.get("tutor_name", ""),
        student_name=f"{student.get('first_name', '')} {student.get('last_name', '')}".strip() or "A student",
        course_title=course.get("title"),
        currency=config.PAYMENT_CURRENCY,
        price=price,
        charge_percent=int(config.PLATFORM_CHARGE_RATE * 100),
        platform_charge=platform_charge,
        tutor_earning=round(price - platform_charge, 2),
    )
    try:
        await send_mail(mailer, email, "NEW COURSE PURCHASE", html)
    except Exception as e:
        logger.error("Purchase notification to %s failed: %s", email, e)


async def handle_transfer_update(db: AsyncIOMotorDatabase, event: str, data: dict) -> tuple:
    reference = data.get("reference")
    withdrawal = await db.withdrawals.find_one({"reference": reference}) if reference else None
    if not withdrawal:
        raise HTTPException(status_code=404, detail="Withdrawal reference not found")

    status = TRANSFER_STATUSES[event]
    await db.withdrawals.update_one(
        {"reference": reference},
        {"$set": {"status": status, "transferred_at": datetime.utcnow()}}
    )
    logger.info("Withdrawal %s updated to %s", reference, status)

    return "Withdrawal status updated", await db.withdrawals.find_one({"reference": reference}, {"_id": 0})
