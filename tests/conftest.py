"""
Shared fixtures: an in-memory motor database, fake gateway / mailer / storage
wired in through dependency overrides, and helpers that seed actors and courses.
"""

import hashlib
import hmac
import json
import smtplib
from datetime import datetime

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient

from elearn.core.database import generate_id, get_db
from elearn.core.permissions import AccountRole
from elearn.core.security import create_access_token, hash_password
from elearn.courses.course_models import CourseStatus
from elearn.main import app
from elearn.payments.paystack import PaystackClient, PaystackError, get_gateway
from elearn.uploads.storage import MediaStorage, StorageError, get_storage
from elearn.utils.mail import Mailer, get_mailer

PAYSTACK_TEST_SECRET = "sk_test_secret"
PASSWORD = "secret123"


class FakeMailer(Mailer):
    def __init__(self):
        super().__init__(host="localhost", port=25, username="", password="")
        self.sent = []
        self.fail = False

    def send_email(self, to_email, subject, html):
        if self.fail:
            raise smtplib.SMTPException("smtp down")
        self.sent.append({"to": to_email, "subject": subject, "html": html})


class FakeGateway(PaystackClient):
    """Records calls instead of talking to Paystack; signatures are checked for real"""

    def __init__(self):
        super().__init__(base_url="https://paystack.test", secret_key=PAYSTACK_TEST_SECRET)
        self.transactions = {}
        self.transfers = []
        self.recipients = []
        self.verify_status = "success"
        self.transfer_status = "pending"
        self.fail = False

    async def initialize_transaction(self, email, amount_kobo, reference, metadata):
        if self.fail:
            raise PaystackError("gateway down")
        self.transactions[reference] = {"email": email, "amount": amount_kobo, "metadata": metadata}
        return {
            "authorization_url": f"https://checkout.paystack.test/{reference}",
            "access_code": "ACCESS_test",
            "reference": reference,
        }

    async def verify_transaction(self, reference):
        if self.fail:
            raise PaystackError("gateway down")
        transaction = self.transactions.get(reference, {})
        return {
            "id": 1001,
            "status": self.verify_status,
            "channel": "card",
            "currency": "NGN",
            "paid_at": "2024-01-01T10:00:00.000Z",
            "metadata": transaction.get("metadata"),
        }

    async def list_banks(self, currency="NGN"):
        return [{"name": "Test Bank", "code": "999", "slug": "test-bank"}]

    async def create_transfer_recipient(self, account_name, account_number, bank_code):
        self.recipients.append(account_number)
        return {"recipient_code": f"RCP_{account_number}"}

    async def initiate_transfer(self, amount_kobo, recipient_code, reference, reason):
        if self.fail:
            raise PaystackError("transfer rejected")
        self.transfers.append({"amount": amount_kobo, "recipient": recipient_code, "reference": reference})
        return {"status": self.transfer_status, "transfer_code": "TRF_test", "reference": reference}

    def sign(self, body: bytes) -> str:
        return hmac.new(PAYSTACK_TEST_SECRET.encode(), body, hashlib.sha512).hexdigest()


class FakeStorage(MediaStorage):
    def __init__(self):
        super().__init__(endpoint="localhost:9000", access_key="test", secret_key="test",
                         bucket="test-bucket", region="us-east-1", secure=False)
        self.objects = {}
        self.fail = False

    def upload_bytes(self, data, filename, content_type=None):
        if self.fail:
            raise StorageError("Failed to upload to storage")
        self.objects[filename] = data
        return {"url": self.object_url(filename), "object_name": filename}


@pytest.fixture
def db():
    return AsyncMongoMockClient()["elearn_test"]


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
async def client(db, mailer, gateway, storage):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_storage] = lambda: storage

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== SEED HELPERS ====================

def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def signed_webhook(gateway: FakeGateway, payload: dict) -> tuple:
    body = json.dumps(payload).encode()
    return body, {"x-paystack-signature": gateway.sign(body), "content-type": "application/json"}


async def create_student(db, email="ada@example.com", **overrides) -> tuple:
    now = datetime.utcnow()
    student = {
        "student_id": generate_id("STU"),
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": email,
        "password_hash": hash_password(PASSWORD),
        "is_verified": True,
        "is_active": True,
        "deleted_at": None,
        "created_at": now,
        "updated_at": now,
        **overrides,
    }
    await db.students.insert_one(student)
    student.pop("_id", None)
    return student, create_access_token(student["student_id"], "student", student["email"])


async def create_account(db, role=AccountRole.TUTOR, email="tutor@example.com", **overrides) -> tuple:
    now = datetime.utcnow()
    account = {
        "account_id": generate_id("ACC"),
        "first_name": "Alan",
        "last_name": "Turing",
        "email": email,
        "role": role.value,
        "password_hash": hash_password(PASSWORD),
        "is_active": True,
        "created_at": now,
        "updated_at": now,
        **overrides,
    }
    await db.accounts.insert_one(account)
    account.pop("_id", None)
    return account, create_access_token(account["account_id"], "account", account["email"])


async def create_course(db, tutor: dict, **overrides) -> dict:
    now = datetime.utcnow()
    course = {
        "course_id": generate_id("COURSE"),
        "title": "Intro to Python",
        "description": "Learn Python from scratch",
        "thumbnail_url": "https://cdn.test/python.png",
        "price": 5000,
        "basic_information": {"language": "English", "level": "beginner", "category": "Programming"},
        "what_you_will_learn": ["Variables"],
        "lectures": [
            {
                "lecture_id": "LEC_1",
                "title": "Getting started",
                "lecture_number": 1,
                "videos": [
                    {"video_id": "VID_1", "url": "https://cdn.test/1.mp4", "filename": "1.mp4", "duration": 120},
                    {"video_id": "VID_2", "url": "https://cdn.test/2.mp4", "filename": "2.mp4", "duration": 60},
                ],
            }
        ],
        "tutor_id": tutor["account_id"],
        "tutor_name": f"{tutor['first_name']} {tutor['last_name']}",
        "tutor_email": tutor["email"],
        "rating": 0,
        "review_count": 0,
        "views": 0,
        "purchase_count": 0,
        "is_published": True,
        "status": CourseStatus.APPROVED.value,
        "created_at": now,
        "updated_at": now,
        **overrides,
    }
    await db.courses.insert_one(course)
    course.pop("_id", None)
    return course


async def create_purchase(db, student: dict, course: dict, payment_status="success", amount=None, **overrides) -> dict:
    now = datetime.utcnow()
    payment = {
        "payment_id": generate_id("PAY"),
        "email": student["email"],
        "amount": course["price"] if amount is None else amount,
        "reference": generate_id("REF"),
        "status": payment_status,
        "student_id": student["student_id"],
        "created_at": now,
    }
    await db.payments.insert_one(payment)

    purchase = {
        "purchase_id": generate_id("PUR"),
        "student_id": student["student_id"],
        "course_id": course["course_id"],
        "payment_id": payment["payment_id"],
        "amount": payment["amount"],
        "purchase_date": now,
        "is_completed": 0,
        "minutes_spent": 0,
        "progress": [],
        "lecture_progress": [],
        "is_active": True,
        "created_at": now,
        **overrides,
    }
    await db.purchased_courses.insert_one(purchase)
    purchase.pop("_id", None)
    return purchase
