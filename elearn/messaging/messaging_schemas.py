from pydantic import BaseModel
from typing import Optional


class ChatStart(BaseModel):
    tutor_id: str


class MessageSend(BaseModel):
    chat_id: Optional[str] = None
    message_content: Optional[str] = None
    receiver_type: Optional[str] = None
    receiver_id: Optional[str] = None
    course_id: Optional[str] = None
