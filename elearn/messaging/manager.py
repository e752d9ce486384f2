import logging
from typing import Dict, List

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ChatManager:
    """In-process chat rooms keyed by chat_id"""

    def __init__(self):
        self.rooms: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, chat_id: str):
        await websocket.accept()
        self.rooms.setdefault(chat_id, []).append(websocket)

    def disconnect(self, websocket: WebSocket, chat_id: str):
        if chat_id in self.rooms:
            if websocket in self.rooms[chat_id]:
                self.rooms[chat_id].remove(websocket)
            # Delete the room once the last participant leaves
            if not self.rooms[chat_id]:
                del self.rooms[chat_id]

    async def broadcast(self, chat_id: str, message: dict):
        # Copy: dead sockets are removed while iterating
        for connection in list(self.rooms.get(chat_id, [])):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.info("Dropping dead socket in chat %s: %s", chat_id, e)
                self.disconnect(connection, chat_id)


manager = ChatManager()
