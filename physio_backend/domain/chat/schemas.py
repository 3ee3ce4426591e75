"""Chat domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...models import ChatMessage, ChatThread


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=1000)
    messageType: Literal["text", "image", "file", "video-call-link"] = "text"
    fileUrl: Optional[str] = Field(default=None, max_length=500)
    fileName: Optional[str] = Field(default=None, max_length=255)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Message content is required")
        return v


class MessageResponse(BaseModel):
    id: int
    threadId: int
    senderId: int
    content: str
    messageType: str
    fileUrl: Optional[str] = None
    fileName: Optional[str] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, m: ChatMessage) -> "MessageResponse":
        return cls(
            id=m.id,
            threadId=m.thread_id,
            senderId=m.sender_id,
            content=m.content,
            messageType=m.message_type,
            fileUrl=m.file_url,
            fileName=m.file_name,
            createdAt=m.created_at,
        )


class ThreadResponse(BaseModel):
    id: int
    appointmentId: int
    participants: list[int]
    isActive: bool
    lastMessage: Optional[dict] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, t: ChatThread) -> "ThreadResponse":
        last_message = None
        if t.last_message_at is not None:
            last_message = {
                "content": t.last_message_content,
                "sender": t.last_message_sender_id,
                "timestamp": t.last_message_at,
            }
        return cls(
            id=t.id,
            appointmentId=t.appointment_id,
            participants=t.participant_ids,
            isActive=t.is_active,
            lastMessage=last_message,
            updatedAt=t.updated_at,
        )
