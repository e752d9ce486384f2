import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from elearn.core.database import generate_id
from elearn.core.permissions import AccountRole, ActorContext, Role
from elearn.messaging.manager import manager

logger = logging.getLogger(__name__)

# Message parties: tutors live on the accounts collection ("Admin"), students on their own
SENDER_TYPES = {Role.STUDENT: "Student", Role.TUTOR: "Admin"}
RECEIVER_TYPES = ("Admin", "Student")

PERSON_PROJECTION = {"_id": 0, "first_name": 1, "last_name": 1, "email": 1}


async def list_tutors_for_student(db: AsyncIOMotorDatabase, student_id: str) -> list:
    """Distinct tutors of every course the student has bought"""
    purchases = await db.purchased_courses.find({"student_id": student_id}).to_list(length=None)
    courses = await db.courses.find(
        {"course_id": {"$in": [p["course_id"] for p in purchases]}}
    ).to_list(length=None)

    tutor_ids = list(dict.fromkeys(c["tutor_id"] for c in courses))
    return await db.accounts.find(
        {"account_id": {"$in": tutor_ids}},
        {**PERSON_PROJECTION, "account_id": 1}
    ).to_list(length=None)


async def list_students_for_tutor(db: AsyncIOMotorDatabase, tutor_id: str) -> list:
    courses = await db.courses.find({"tutor_id": tutor_id}).to_list(length=None)
    titles = {c["course_id"]: c["title"] for c in courses}

    purchases = await db.purchased_courses.find(
        {"course_id": {"$in": list(titles)}}
    ).to_list(length=None)
    students = await db.students.find(
        {"student_id": {"$in": list({p["student_id"] for p in purchases})}},
        {**PERSON_PROJECTION, "student_id": 1}
    ).to_list(length=None)
    by_id = {s["student_id"]: s for s in students}

    return [
        {"student": by_id.get(p["student_id"]), "course": titles.get(p["course_id"], "Unknown Course")}
        for p in purchases
        if p["student_id"] in by_id
    ]


async def get_or_create_chat(db: AsyncIOMotorDatabase, student_id: str, tutor_id: str) -> dict:
    tutor = await db.accounts.find_one({"account_id": tutor_id, "role": AccountRole.TUTOR.value})
    if not tutor:
        raise HTTPException(status_code=404, detail="Tutor not found")

    chat = await db.chats.find_one({"student_id": student_id, "tutor_id": tutor_id}, {"_id": 0})
    if chat:
        return chat

    now = datetime.utcnow()
    chat = {
        "chat_id": generate_id("CHAT"),
        "student_id": student_id,
        "tutor_id": tutor_id,
        "message_ids": [],
        "unread_count": {"tutor": 0, "student": 0},
        "last_updated": now,
        "is_active": True,
        "created_at": now,
    }
    try:
        await db.chats.insert_one(chat)
    except DuplicateKeyError:
        # Concurrent request created the same pair first
        return await db.chats.find_one({"student_id": student_id, "tutor_id": tutor_id}, {"_id": 0})

    chat.pop("_id", None)
    return chat


async def get_participant_chat(db: AsyncIOMotorDatabase, actor: ActorContext, chat_id: str) -> dict:
    chat = await db.chats.find_one({"chat_id": chat_id}, {"_id": 0})
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")

    if actor.actor_id not in (chat["student_id"], chat["tutor_id"]):
        raise HTTPException(status_code=403, detail="You are not a participant in this chat")

    return chat


async def send_message(
    db: AsyncIOMotorDatabase,
    actor: ActorContext,
    chat_id: Optional[str],
    message_content: Optional[str],
    receiver_type: Optional[str],
    receiver_id: Optional[str],
    course_id: Optional[str] = None
) -> dict:
    """Persist a message, bump the receiver's unread counter and fan it out to the room"""
    if not chat_id or not message_content or not receiver_type or not receiver_id:
        raise HTTPException(
            status_code=400,
            detail="Chat ID, message content, receiver type, and receiver ID are required."
        )

    if receiver_type not in RECEIVER_TYPES:
        raise HTTPException(status_code=400, detail="receiver type must be Admin or Student")

    chat = await get_participant_chat(db, actor, chat_id)

    sender_type = SENDER_TYPES.get(actor.role)
    if sender_type is None:
        raise HTTPException(status_code=403, detail="Only students and tutors can send messages")

    other_party = chat["tutor_id"] if actor.actor_id == chat["student_id"] else chat["student_id"]
    if receiver_id != other_party:
        raise HTTPException(status_code=400, detail="Receiver is not part of this chat")

    now = datetime.utcnow()
    message = {
        "message_id": generate_id("MSG"),
        "chat_id": chat_id,
        "sender_type": sender_type,
        "sender_id": actor.actor_id,
        "receiver_type": receiver_type,
        "receiver_id": receiver_id,
        "course_id": course_id,
        "message": message_content,
        "is_active": True,
        "created_at": now,
    }
    await db.messages.insert_one(message)
    message.pop("_id", None)

    unread_field = "unread_count.tutor" if sender_type == "Student" else "unread_count.student"
    await db.chats.update_one(
        {"chat_id": chat_id},
        {
            "$push": {"message_ids": message["message_id"]},
            "$inc": {unread_field: 1},
            "$set": {"last_updated": now},
        }
    )

    await manager.broadcast(chat_id, {
        "event": "receiveMessage",
        "chatId": chat_id,
        "message": jsonable_encoder(message),
    })
    logger.info("Message sent in chat %s", chat_id)
    return message


async def get_messages(db: AsyncIOMotorDatabase, actor: ActorContext, chat_id: str) -> list:
    """Chat history, oldest first; reading resets the reader's unread counter"""
    await get_participant_chat(db, actor, chat_id)

    messages = await db.messages.find(
        {"chat_id": chat_id, "is_active": True}, {"_id": 0}
    ).sort("created_at", 1).to_list(length=None)

    reader = "student" if actor.role == Role.STUDENT else "tutor"
    await db.chats.update_one({"chat_id": chat_id}, {"$set": {f"unread_count.{reader}": 0}})
    return messages


async def get_chat_list(db: AsyncIOMotorDatabase, actor: ActorContext) -> list:
    field = "student_id" if actor.role == Role.STUDENT else "tutor_id"
    chats = await db.chats.find(
        {field: actor.actor_id, "is_active": {"$ne": False}}, {"_id": 0}
    ).sort("last_updated", -1).to_list(length=None)

    if actor.role == Role.STUDENT:
        people = await db.accounts.find(
            {"account_id": {"$in": [c["tutor_id"] for c in chats]}},
            {**PERSON_PROJECTION, "account_id": 1}
        ).to_list(length=None)
        by_id = {p["account_id"]: p for p in people}
        for chat in chats:
            chat["tutor"] = by_id.get(chat["tutor_id"])
    else:
        people = await db.students.find(
            {"student_id": {"$in": [c["student_id"] for c in chats]}},
            {**PERSON_PROJECTION, "student_id": 1}
        ).to_list(length=None)
        by_id = {p["student_id"]: p for p in people}
        for chat in chats:
            chat["student"] = by_id.get(chat["student_id"])

    return chats
