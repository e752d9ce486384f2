"""
MongoDB connection lifecycle, indexes and collection validators
"""

import logging
import uuid
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import CollectionInvalid, OperationFailure

from elearn.core import config

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages MongoDB connection lifecycle"""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    def connect(self):
        if not config.MONGO_URL:
            raise RuntimeError("MONGO_URL environment variable required")

        self.client = AsyncIOMotorClient(config.MONGO_URL)
        self.db = self.client[config.MONGO_DB_NAME]
        logger.info("MongoDB connected (database=%s)", config.MONGO_DB_NAME)

    def disconnect(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB disconnected")

    def get_database(self) -> AsyncIOMotorDatabase:
        if self.db is None:
            raise RuntimeError("Database not initialized. Call connect() first.")
        return self.db


db_manager = DatabaseManager()


def get_db() -> AsyncIOMotorDatabase:
    """FastAPI dependency for database access"""
    return db_manager.get_database()


# ==================== HELPERS ====================

def generate_id(prefix: str) -> str:
    """Business identifier such as COURSE_3F2A9B01C4DE"""
    return f"{prefix}_{uuid.uuid4().hex[:12].upper()}"


def serialize_mongo(doc: Optional[dict]) -> Optional[dict]:
    """Drop the ObjectId so the document is JSON friendly"""
    if doc is None:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    return doc


def serialize_many(docs: list) -> list:
    return [serialize_mongo(doc) for doc in docs]


def paginate(page: int, limit: int) -> tuple:
    """Normalise page/limit query values into (page, limit, skip)"""
    page = max(int(page or 1), 1)
    limit = max(int(limit or config.DEFAULT_PAGE_SIZE), 1)
    return page, limit, (page - 1) * limit


# ==================== COLLECTION VALIDATORS ====================

COLLECTION_VALIDATORS = {
    "accounts": {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["account_id", "email", "role"],
            "properties": {
                "account_id": {"bsonType": "string"},
                "email": {"bsonType": "string"},
                "role": {"enum": ["0", "1", "2"]},
                "is_active": {"bsonType": "bool"},
            },
        }
    },
    "students": {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["student_id", "email", "password_hash"],
            "properties": {
                "student_id": {"bsonType": "string"},
                "email": {"bsonType": "string"},
                "is_verified": {"bsonType": "bool"},
                "is_active": {"bsonType": "bool"},
            },
        }
    },
    "courses": {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["course_id", "title", "tutor_id", "status", "is_published"],
            "properties": {
                "course_id": {"bsonType": "string"},
                "title": {"bsonType": "string"},
                "price": {"bsonType": ["int", "long", "double", "decimal"], "minimum": 0},
                "status": {"enum": ["pending", "approved", "rejected"]},
                "is_published": {"bsonType": "bool"},
                "lectures": {"bsonType": "array"},
            },
        }
    },
    "carts": {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["cart_id", "student_id", "course_id", "quantity", "status"],
            "properties": {
                "quantity": {"bsonType": "int", "minimum": 1},
                "status": {"enum": ["pending", "initiated", "success"]},
            },
        }
    },
    "payments": {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["payment_id", "reference", "amount", "status"],
            "properties": {
                "reference": {"bsonType": "string"},
                "status": {"enum": ["pending", "success", "failed"]},
            },
        }
    },
    "reviews": {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["review_id", "course_id", "student_id", "rating"],
            "properties": {
                "rating": {"bsonType": ["int", "long", "double"], "minimum": 1, "maximum": 5},
            },
        }
    },
    "withdrawals": {
        "$jsonSchema": {
            "bsonType": "object",
            "required": ["withdrawal_id", "tutor_id", "amount", "status", "reference"],
            "properties": {
                "status": {"enum": ["pending", "success", "failed", "reversed"]},
            },
        }
    },
}


async def apply_validators(db: AsyncIOMotorDatabase):
    """Create collections with their $jsonSchema validator, or update existing ones"""
    existing = set(await db.list_collection_names())
    for name, validator in COLLECTION_VALIDATORS.items():
        try:
            if name in existing:
                await db.command({"collMod": name, "validator": validator})
            else:
                await db.create_collection(name, validator=validator)
        except (CollectionInvalid, OperationFailure) as e:
            logger.warning("Validator setup for %s skipped: %s", name, e)


async def create_indexes(db: AsyncIOMotorDatabase):
    """
    Create database indexes for data integrity and query performance
    Called during application startup
    """
    await db.accounts.create_index("account_id", unique=True)
    await db.accounts.create_index("email", unique=True)
    await db.accounts.create_index("role")

    await db.students.create_index("student_id", unique=True)
    await db.students.create_index("email", unique=True)
    await db.students.create_index("verification_token")

    await db.courses.create_index("course_id", unique=True)
    await db.courses.create_index("tutor_id")
    await db.courses.create_index([("is_published", 1), ("status", 1)])
    await db.courses.create_index("basic_information.category")

    await db.carts.create_index("cart_id", unique=True)
    await db.carts.create_index([("student_id", 1), ("course_id", 1)])

    await db.payments.create_index("payment_id", unique=True)
    await db.payments.create_index("reference", unique=True)
    await db.payments.create_index("student_id")

    await db.purchased_courses.create_index("purchase_id", unique=True)
    await db.purchased_courses.create_index([("student_id", 1), ("course_id", 1)])

    await db.reviews.create_index([("course_id", 1), ("student_id", 1)], unique=True)
    await db.comments.create_index("comment_id", unique=True)
    await db.comments.create_index("course_id")

    await db.chats.create_index("chat_id", unique=True)
    await db.chats.create_index([("student_id", 1), ("tutor_id", 1)], unique=True)
    await db.messages.create_index("chat_id")

    await db.withdrawals.create_index("reference", unique=True)
    await db.withdrawals.create_index("tutor_id")
    await db.bank_accounts.create_index("account_id", unique=True)
    await db.bank_accounts.create_index("account_number", unique=True)

    logger.info("Indexes created successfully")
