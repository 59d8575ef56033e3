"""FastAPI dependencies and startup wiring."""
from typing import Optional

from fastapi import Request
from sqlalchemy.engine import Engine

from juris_assistant.config import Settings, settings as default_settings
from juris_assistant.database import get_engine
from juris_assistant.services.chat_service import ChatService
from juris_assistant.services.identity import IdentityProvider
from juris_assistant.services.llm import ChatModel
from juris_assistant.services.store import ChatStore


def build_chat_service(
    settings: Optional[Settings] = None, engine: Optional[Engine] = None
) -> ChatService:
    """Construct the chat service and its collaborators once per process."""
    settings = settings or default_settings
    return ChatService(
        store=ChatStore(engine or get_engine()),
        identity=IdentityProvider(
            secret=settings.AUTH_JWT_SECRET,
            audience=settings.AUTH_JWT_AUDIENCE or None,
            algorithms=settings.AUTH_JWT_ALGORITHMS,
        ),
        model=ChatModel.from_settings(settings),
        settings=settings,
    )


def get_chat_service(request: Request) -> ChatService:
    """Chat service built at startup."""
    return request.app.state.chat_service


def get_client_origin(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
