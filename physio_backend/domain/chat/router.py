"""Chat router - FastAPI endpoints for appointment chats"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...responses import success
from .schemas import MessageCreate, MessageResponse, ThreadResponse
from .service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chats", tags=["Chats"])


def get_chat_service(db: Session = Depends(get_db)) -> ChatService:
    """Dependency injection for ChatService"""
    return ChatService(db)


@router.get("")
async def list_threads(
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    """Chats the current user participates in"""
    threads = service.list_threads(current_user)
    return success(
        "Chats retrieved successfully",
        {"chats": [ThreadResponse.from_model(t) for t in threads]},
        results=len(threads),
    )


@router.get("/{thread_id}/messages")
async def list_messages(
    thread_id: int,
    before: Optional[int] = Query(None, description="Only messages with an id lower than this"),
    limit: int = Query(50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    messages = service.list_messages(current_user, thread_id, before_id=before, limit=limit)
    return success(
        "Messages retrieved successfully",
        {"messages": [MessageResponse.from_model(m) for m in messages]},
        results=len(messages),
    )


@router.post("/{thread_id}/messages", status_code=201)
async def post_message(
    thread_id: int,
    data: MessageCreate,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    message = service.post_message(
        current_user,
        thread_id,
        data.content,
        message_type=data.messageType,
        file_url=data.fileUrl,
        file_name=data.fileName,
    )
    return success("Message sent", {"message": MessageResponse.from_model(message)})
