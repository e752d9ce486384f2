import logging
from datetime import datetime, timedelta

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from elearn.core import config
from elearn.core.database import generate_id, paginate
from elearn.core.permissions import AccountRole
from elearn.core.security import hash_password, verify_password, generate_token, create_access_token
from elearn.utils.mail import Mailer, send_mail
from elearn.utils.templates import get_template

logger = logging.getLogger(__name__)

ACCOUNT_PROJECTION = {"_id": 0, "password_hash": 0, "registration_token": 0, "token_expiration": 0}
STUDENT_LIST_PROJECTION = {
    "_id": 0, "password_hash": 0, "verification_token": 0, "verification_token_expires": 0,
    "reset_pin": 0, "reset_pin_expires": 0,
}


async def create_account(db: AsyncIOMotorDatabase, mailer: Mailer, data: dict) -> dict:
    """Create an admin, tutor or staff account and email a set-password link"""
    if await db.accounts.find_one({"email": data["email"]}):
        raise HTTPException(status_code=403, detail="Email already registered. Please provide another")

    now = datetime.utcnow()
    registration_token = generate_token(20)
    account = {
        "account_id": generate_id("ACC"),
        "first_name": data["first_name"],
        "last_name": data["last_name"],
        "email": data["email"],
        "phone": data.get("phone"),
        "description": data.get("description"),
        "profile_picture": None,
        "role": data.get("role", AccountRole.STAFF.value),
        "password_hash": None,
        "registration_token": registration_token,
        "token_expiration": now + timedelta(minutes=config.REGISTRATION_TOKEN_TTL_MINUTES),
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    await db.accounts.insert_one(account)

    html = get_template(
        "setpassword.html",
        first_name=account["first_name"],
        registration_link=f"{config.ADMIN_HOST_FRONTEND}set-password?registrationToken={registration_token}",
    )
    await send_mail(mailer, account["email"], "SET PASSWORD", html)

    logger.info("Account %s created with role %s", account["account_id"], account["role"])
    return {
        "account_id": account["account_id"],
        "first_name": account["first_name"],
        "last_name": account["last_name"],
        "email": account["email"],
        "role": account["role"],
    }


async def set_password(db: AsyncIOMotorDatabase, registration_token: str, password: str) -> None:
    account = await db.accounts.find_one({
        "registration_token": registration_token,
        "token_expiration": {"$gt": datetime.utcnow()}
    })
    if not account:
        raise HTTPException(status_code=401, detail="Invalid or Expired Token")

    await db.accounts.update_one(
        {"account_id": account["account_id"]},
        {
            "$set": {"password_hash": hash_password(password), "updated_at": datetime.utcnow()},
            "$unset": {"registration_token": "", "token_expiration": ""}
        }
    )


async def login(db: AsyncIOMotorDatabase, email: str, password: str) -> dict:
    account = await db.accounts.find_one({"email": email})
    if not account:
        raise HTTPException(status_code=400, detail="Email incorrect")

    if not verify_password(password, account.get("password_hash")):
        raise HTTPException(status_code=403, detail="Password Incorrect")

    if not account.get("is_active", True):
        raise HTTPException(status_code=403, detail="This account has been deactivated")

    user = {k: v for k, v in account.items() if k not in ACCOUNT_PROJECTION}
    return {
        "user": user,
        "auth_token": create_access_token(account["account_id"], "account", account["email"]),
    }


async def get_tutor_by_id(db: AsyncIOMotorDatabase, tutor_id: str) -> dict:
    tutor = await db.accounts.find_one(
        {"account_id": tutor_id, "role": AccountRole.TUTOR.value}, ACCOUNT_PROJECTION
    )
    if not tutor:
        raise HTTPException(status_code=404, detail="There is no tutor with this Id")
    return tutor


async def get_all_tutors(db: AsyncIOMotorDatabase, page: int = 1, limit: int = 10) -> dict:
    page, limit, skip = paginate(page, limit)
    match = {"role": AccountRole.TUTOR.value}

    tutors = await db.accounts.find(match, ACCOUNT_PROJECTION).sort("created_at", -1).skip(skip).limit(limit).to_list(length=limit)
    return {
        "tutor_count": await db.accounts.count_documents(match),
        "tutors": tutors,
        "page": page,
        "limit": limit,
    }


async def list_students(db: AsyncIOMotorDatabase, page: int = 1, limit: int = 10) -> dict:
    page, limit, skip = paginate(page, limit)
    match = {"deleted_at": None}

    students = await db.students.find(match, STUDENT_LIST_PROJECTION).sort("created_at", -1).skip(skip).limit(limit).to_list(length=limit)
    return {
        "student_count": await db.students.count_documents(match),
        "students": students,
        "page": page,
        "limit": limit,
    }


async def seed_admin(db: AsyncIOMotorDatabase) -> None:
    """Create the first admin account on an empty install"""
    if await db.accounts.find_one({"role": AccountRole.ADMIN.value}):
        return

    if not config.ADMIN_PASSWORD:
        logger.warning("ADMIN_PASSWORD not set; skipping admin seeding")
        return

    now = datetime.utcnow()
    try:
        await db.accounts.insert_one({
            "account_id": generate_id("ACC"),
            "first_name": "Platform",
            "last_name": "Admin",
            "email": config.ADMIN_EMAIL,
            "phone": None,
            "role": AccountRole.ADMIN.value,
            "password_hash": hash_password(config.ADMIN_PASSWORD),
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        })
    except DuplicateKeyError:
        logger.warning("Seed admin email %s already taken by another account", config.ADMIN_EMAIL)
        return

    logger.info("Admin seeding successful (%s)", config.ADMIN_EMAIL)
