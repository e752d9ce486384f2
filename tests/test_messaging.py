import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from elearn.main import app
from elearn.messaging.manager import manager
from elearn.messaging.messaging_router import chat_socket

from conftest import auth, create_account, create_course, create_purchase, create_student


async def open_chat(client, db):
    tutor, tutor_token = await create_account(db)
    course = await create_course(db, tutor)
    student, student_token = await create_student(db)
    await create_purchase(db, student, course)

    res = await client.post("/api/v1/chat", json={"tutor_id": tutor["account_id"]}, headers=auth(student_token))
    chat = res.json()["data"]
    return chat, (student, student_token), (tutor, tutor_token)


async def test_contacts_follow_purchases(client, db):
    chat, (student, student_token), (tutor, tutor_token) = await open_chat(client, db)
    await create_account(db, email="stranger@example.com")

    res = await client.get("/api/v1/all-tutors", headers=auth(student_token))
    assert [t["account_id"] for t in res.json()["data"]] == [tutor["account_id"]]

    res = await client.get("/api/v1/all-students", headers=auth(tutor_token))
    entries = res.json()["data"]
    assert entries[0]["student"]["student_id"] == student["student_id"]
    assert entries[0]["course"] == "Intro to Python"


async def test_chat_is_reused(client, db):
    chat, (student, student_token), (tutor, _) = await open_chat(client, db)

    res = await client.post("/api/v1/chat", json={"tutor_id": tutor["account_id"]}, headers=auth(student_token))

    assert res.json()["data"]["chat_id"] == chat["chat_id"]
    assert await db.chats.count_documents({}) == 1


async def test_chat_with_unknown_tutor(client, db):
    _, token = await create_student(db)

    res = await client.post("/api/v1/chat", json={"tutor_id": "ACC_MISSING"}, headers=auth(token))

    assert res.status_code == 404


async def test_send_and_read_messages(client, db):
    chat, (student, student_token), (tutor, tutor_token) = await open_chat(client, db)

    res = await client.post("/api/v1/send-messages", json={
        "chat_id": chat["chat_id"],
        "message_content": "When is the next lecture?",
        "receiver_type": "Admin",
        "receiver_id": tutor["account_id"],
    }, headers=auth(student_token))
    assert res.status_code == 200
    assert res.json()["data"]["sender_type"] == "Student"

    stored = await db.chats.find_one({"chat_id": chat["chat_id"]})
    assert stored["unread_count"]["tutor"] == 1
    assert len(stored["message_ids"]) == 1

    res = await client.get("/api/v1/chats", headers=auth(tutor_token))
    assert res.json()["data"][0]["student"]["student_id"] == student["student_id"]

    res = await client.get(f"/api/v1/chats/{chat['chat_id']}/messages", headers=auth(tutor_token))
    assert [m["message"] for m in res.json()["data"]] == ["When is the next lecture?"]

    stored = await db.chats.find_one({"chat_id": chat["chat_id"]})
    assert stored["unread_count"]["tutor"] == 0


async def test_send_message_validation(client, db):
    chat, (student, student_token), (tutor, _) = await open_chat(client, db)
    base = {
        "chat_id": chat["chat_id"],
        "message_content": "Hi",
        "receiver_type": "Admin",
        "receiver_id": tutor["account_id"],
    }

    res = await client.post("/api/v1/send-messages", json={**base, "message_content": ""}, headers=auth(student_token))
    assert res.status_code == 400

    res = await client.post("/api/v1/send-messages", json={**base, "receiver_id": "ACC_OTHER"}, headers=auth(student_token))
    assert res.status_code == 400

    res = await client.post("/api/v1/send-messages", json={**base, "chat_id": "CHAT_MISSING"}, headers=auth(student_token))
    assert res.status_code == 404


async def test_outsider_cannot_read_chat(client, db):
    chat, _, _ = await open_chat(client, db)
    _, outsider_token = await create_student(db, email="eve@example.com")

    res = await client.get(f"/api/v1/chats/{chat['chat_id']}/messages", headers=auth(outsider_token))

    assert res.status_code == 403


async def test_websocket_round_trip(client, db):
    chat, (student, student_token), _ = await open_chat(client, db)
    ws_client = TestClient(app)

    with ws_client.websocket_connect(f"/api/v1/ws/chat/{chat['chat_id']}?token={student_token}") as ws:
        ws.send_text(json.dumps({"messageContent": "Hello over the socket"}))
        event = ws.receive_json()
        assert event["event"] == "receiveMessage"
        assert event["chatId"] == chat["chat_id"]
        assert event["message"]["message"] == "Hello over the socket"

        ws.send_text("not json")
        assert ws.receive_json() == {"event": "error", "message": "Invalid message frame"}

    assert await db.messages.count_documents({"chat_id": chat["chat_id"]}) == 1


async def test_websocket_rejects_bad_token(client, db):
    chat, _, _ = await open_chat(client, db)
    ws_client = TestClient(app)

    with pytest.raises(WebSocketDisconnect):
        with ws_client.websocket_connect(f"/api/v1/ws/chat/{chat['chat_id']}?token=garbage") as ws:
            ws.receive_json()


class BrokenSocket:
    """Accepts the connection, then fails on the first read"""

    def __init__(self, token):
        self.headers = {}
        self.query_params = {"token": token}
        self.accepted = False

    async def accept(self):
        self.accepted = True

    async def close(self, code=1000):
        pass

    async def receive_text(self):
        raise KeyError("text")

    async def send_json(self, data):
        pass


async def test_websocket_error_leaves_the_room(client, db):
    chat, (_, student_token), _ = await open_chat(client, db)
    socket = BrokenSocket(student_token)

    with pytest.raises(KeyError):
        await chat_socket(socket, chat["chat_id"], db)

    assert socket.accepted
    assert chat["chat_id"] not in manager.rooms
