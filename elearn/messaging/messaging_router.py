import json
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core.database import get_db
from elearn.core.permissions import (
    ActorContext, Role, extract_bearer_token, get_current_student, get_current_tutor,
    require_roles, resolve_actor
)
from elearn.core.responses import success_response
from elearn.messaging import messaging_service as service
from elearn.messaging.manager import manager
from elearn.messaging.messaging_schemas import ChatStart, MessageSend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messaging"])

chat_participant = require_roles(Role.STUDENT, Role.TUTOR)


@router.get("/all-tutors")
async def list_tutors(
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    tutors = await service.list_tutors_for_student(db, student.actor_id)
    return success_response("These are the list of tutors whose course you have purchased", 200, tutors)


@router.get("/all-students")
async def list_students(
    tutor: ActorContext = Depends(get_current_tutor),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    students = await service.list_students_for_tutor(db, tutor.actor_id)
    return success_response("These are the students that have purchased your courses", 200, students)


@router.post("/chat")
async def start_chat(
    data: ChatStart,
    student: ActorContext = Depends(get_current_student),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    chat = await service.get_or_create_chat(db, student.actor_id, data.tutor_id)
    return success_response("Chat session retrieved", 200, chat)


@router.post("/send-messages")
async def send_message(
    data: MessageSend,
    actor: ActorContext = Depends(chat_participant),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    message = await service.send_message(
        db, actor, data.chat_id, data.message_content,
        data.receiver_type, data.receiver_id, data.course_id
    )
    return success_response("Message sent", 200, message)


@router.get("/chats")
async def chat_list(
    actor: ActorContext = Depends(chat_participant),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    chats = await service.get_chat_list(db, actor)
    return success_response("Chats retrieved", 200, chats)


@router.get("/chats/{chat_id}/messages")
async def chat_messages(
    chat_id: str,
    actor: ActorContext = Depends(chat_participant),
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    messages = await service.get_messages(db, actor, chat_id)
    return success_response("Messages retrieved", 200, messages)


@router.websocket("/ws/chat/{chat_id}")
async def chat_socket(
    websocket: WebSocket,
    chat_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db)
):
    # Token from the Authorization header, or ?token= for browsers
    token = extract_bearer_token(websocket.headers.get("authorization")) or websocket.query_params.get("token")
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        actor = await resolve_actor(db, token)
        chat = await service.get_participant_chat(db, actor, chat_id)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    other_party = chat["tutor_id"] if actor.actor_id == chat["student_id"] else chat["student_id"]
    receiver_type = "Admin" if actor.role == Role.STUDENT else "Student"

    await manager.connect(websocket, chat_id)
    logger.info("%s joined chat %s", actor.actor_id, chat_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
                content = frame.get("messageContent") if isinstance(frame, dict) else None
                await service.send_message(db, actor, chat_id, content, receiver_type, other_party)
            except ValueError:
                await websocket.send_json({"event": "error", "message": "Invalid message frame"})
            except HTTPException as e:
                await websocket.send_json({"event": "error", "message": e.detail})
    except WebSocketDisconnect:
        logger.info("%s left chat %s", actor.actor_id, chat_id)
    finally:
        manager.disconnect(websocket, chat_id)
