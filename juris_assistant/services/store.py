"""Persistence for conversations, messages and audit events.

Each operation runs in its own short session so that a failed write never
leaves shared session state behind for the next step of the request.
Nothing here spans tables in one transaction.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from juris_assistant.models import ChatEvent, Conversation, Message

logger = logging.getLogger(__name__)

SEQ_ATTEMPTS = 3

# Chronological order; seq and id settle equal timestamps
_MESSAGE_ORDER = (Message.created_at, Message.seq, Message.id)


class ChatStore:
    """SQLModel-backed store used by the chat service."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def count_recent_events(self, user_id: str, window_start: datetime) -> int:
        """Count audit events recorded for a user since `window_start`."""
        with Session(self.engine) as session:
            statement = select(func.count()).select_from(ChatEvent).where(
                ChatEvent.user_id == user_id,
                ChatEvent.created_at >= window_start,
            )
            return session.exec(statement).one()

    def create_conversation(self, user_id: str, title: str) -> str:
        with Session(self.engine) as session:
            conversation = Conversation(user_id=user_id, title=title)
            session.add(conversation)
            session.commit()
            return conversation.id

    def get_conversation(self, conversation_id: str, user_id: str) -> Optional[Conversation]:
        """Return the conversation if it exists and belongs to `user_id`."""
        with Session(self.engine) as session:
            statement = select(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.user_id == user_id,
            )
            return session.exec(statement).first()

    def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        user_id: Optional[str] = None,
    ) -> str:
        """
        Append one turn to a conversation and return its id.

        The turn gets the next seq of its conversation. A concurrent append
        that claimed the same seq is retried with a fresh one.
        """
        for attempt in range(1, SEQ_ATTEMPTS + 1):
            try:
                with Session(self.engine) as session:
                    last_seq = session.exec(
                        select(func.max(Message.seq)).where(
                            Message.conversation_id == conversation_id
                        )
                    ).one()
                    message = Message(
                        conversation_id=conversation_id,
                        user_id=user_id,
                        role=role,
                        content=content,
                        seq=(last_seq or 0) + 1,
                    )
                    session.add(message)
                    session.commit()
                    return message.id
            except IntegrityError:
                if attempt == SEQ_ATTEMPTS:
                    raise
                logger.warning(
                    f"Seq conflict appending to conversation {conversation_id}, "
                    f"retrying ({attempt}/{SEQ_ATTEMPTS})"
                )

    def fetch_recent_messages(
        self, conversation_id: str, limit: int, offset: int = 0
    ) -> list[Message]:
        """
        Get the newest `limit` messages of a conversation, skipping the
        `offset` newest ones.

        Returns:
            Messages in chronological order (oldest first)
        """
        with Session(self.engine) as session:
            statement = (
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(*(column.desc() for column in _MESSAGE_ORDER))
                .offset(offset)
                .limit(limit)
            )
            messages = list(session.exec(statement).all())
        messages.reverse()
        return messages

    def list_messages(
        self, conversation_id: str, limit: int = 50, offset: int = 0
    ) -> list[Message]:
        """Page backwards through a conversation; each page is oldest first."""
        return self.fetch_recent_messages(conversation_id, limit, offset=offset)

    def list_conversations(self, user_id: str, limit: int = 50) -> list[Conversation]:
        with Session(self.engine) as session:
            statement = (
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .order_by(Conversation.created_at.desc())
                .limit(limit)
            )
            return list(session.exec(statement).all())

    def append_audit_event(
        self,
        user_id: Optional[str],
        ip_hash: str,
        status_code: int,
        latency_ms: int,
        error_type: Optional[str],
        request_id: str,
    ) -> None:
        with Session(self.engine) as session:
            session.add(
                ChatEvent(
                    user_id=user_id,
                    ip_hash=ip_hash,
                    status_code=status_code,
                    latency_ms=latency_ms,
                    error_type=error_type,
                    request_id=request_id,
                )
            )
            session.commit()
