"""Audit record written once per chat request."""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from juris_assistant.models.conversation import utcnow


class ChatEvent(SQLModel, table=True):
    """
    Outcome of one request to a chat endpoint.

    user_id is null when the request failed before authentication.
    The rate limiter counts these rows per user over a trailing window.
    """
    __tablename__ = "chat_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[str] = Field(default=None, index=True, nullable=True)
    ip_hash: str = Field(max_length=64)
    status_code: int
    latency_ms: int
    error_type: Optional[str] = Field(default=None, max_length=64)
    request_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()), unique=True, max_length=36
    )
    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True), index=True
    )
