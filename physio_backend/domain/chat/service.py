"""Chat service - Threads between the two parties of a confirmed appointment"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session, selectinload

from ...errors import ForbiddenError, InvalidStateError, NotFoundError
from ...models import ChatMessage, ChatParticipant, ChatThread, User

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ChatService:
    """Service layer for chat threads and their append-only message log"""

    def __init__(self, db: Session):
        self.db = db

    def create_thread(
        self, appointment_id: int, participant_ids: Iterable[int], commit: bool = True
    ) -> ChatThread:
        """
        Open the thread for an appointment. Returns the existing thread if one is already open.
        With commit=False the thread is only flushed, so it joins the caller's transaction.
        """
        existing = (
            self.db.query(ChatThread).filter(ChatThread.appointment_id == appointment_id).first()
        )
        if existing:
            return existing

        thread = ChatThread(appointment_id=appointment_id, is_active=True)
        thread.participants = [ChatParticipant(user_id=uid) for uid in dict.fromkeys(participant_ids)]
        self.db.add(thread)
        if commit:
            self.db.commit()
            self.db.refresh(thread)
        else:
            self.db.flush()

        logger.info(f"💬 Chat thread {thread.id} opened for appointment {appointment_id}")
        return thread

    def get_thread(self, actor: User, thread_id: int) -> ChatThread:
        thread = (
            self.db.query(ChatThread)
            .options(selectinload(ChatThread.participants))
            .filter(ChatThread.id == thread_id)
            .first()
        )
        if not thread:
            raise NotFoundError("Chat not found")
        if actor.id not in thread.participant_ids:
            raise ForbiddenError("You are not a participant in this chat")
        return thread

    def post_message(
        self,
        actor: User,
        thread_id: int,
        content: str,
        message_type: str = "text",
        file_url: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> ChatMessage:
        thread = self.get_thread(actor, thread_id)
        if not thread.is_active:
            raise InvalidStateError("This chat is closed")

        message = ChatMessage(
            thread_id=thread.id,
            sender_id=actor.id,
            content=content,
            message_type=message_type,
            file_url=file_url,
            file_name=file_name,
        )
        self.db.add(message)

        thread.last_message_content = content
        thread.last_message_sender_id = actor.id
        thread.last_message_at = datetime.utcnow()

        self.db.commit()
        self.db.refresh(message)
        return message

    def list_messages(
        self, actor: User, thread_id: int, before_id: Optional[int] = None, limit: int = 50
    ) -> list[ChatMessage]:
        """Page of messages older than before_id, returned oldest first"""
        thread = self.get_thread(actor, thread_id)
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        query = self.db.query(ChatMessage).filter(ChatMessage.thread_id == thread.id)
        if before_id is not None:
            query = query.filter(ChatMessage.id < before_id)

        page = query.order_by(ChatMessage.id.desc()).limit(limit).all()
        page.reverse()
        return page

    def list_threads(self, actor: User) -> list[ChatThread]:
        return (
            self.db.query(ChatThread)
            .join(ChatParticipant, ChatParticipant.thread_id == ChatThread.id)
            .options(selectinload(ChatThread.participants))
            .filter(ChatParticipant.user_id == actor.id)
            .order_by(ChatThread.updated_at.desc(), ChatThread.id.desc())
            .all()
        )

    def close_thread(self, appointment_id: int) -> None:
        """Stop accepting messages once the appointment is over. Does not commit."""
        self.db.query(ChatThread).filter(ChatThread.appointment_id == appointment_id).update(
            {"is_active": False}, synchronize_session=False
        )
