"""Conversation and Message SQLModel definitions for the JurisAcademy assistant.

Models:
- Conversation: titled chat thread owned by one user
- Message: one immutable turn in a conversation
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


ROLE_USER = "user"
ROLE_MODEL = "model"


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(SQLModel, table=True):
    """
    Conversation between a user and the assistant.

    Ownership: each conversation belongs to exactly one user via user_id.
    Created lazily on the first message; never deleted by the API.
    """
    __tablename__ = "conversations"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=36)
    user_id: str = Field(index=True, nullable=False)
    title: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Message(SQLModel, table=True):
    """
    Message in a conversation.

    Role: "user" or "model". User turns carry the author's user_id,
    model turns have none. Rows are append-only.

    Seq: per-conversation insertion counter, breaks created_at ties.
    """
    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("conversation_id", "seq"),)

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=36)
    conversation_id: str = Field(foreign_key="conversations.id", index=True, nullable=False)
    user_id: Optional[str] = Field(default=None, nullable=True)
    role: str = Field(max_length=20)
    content: str = Field()
    seq: Optional[int] = Field(default=None, nullable=True)
    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True), index=True
    )
