"""Chat endpoint routes for the JurisAcademy assistant.

Provides:
- POST /api/chat - Send message to the assistant
- GET /api/chat/conversations - List the caller's conversations
- GET /api/chat/conversations/{id}/messages - Get a conversation's messages
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from juris_assistant.core.deps import get_chat_service, get_client_origin
from juris_assistant.services.chat_service import ChatService

router = APIRouter(prefix="/api", tags=["chat"])


class ChatResponse(BaseModel):
    """Response model for a chat message."""
    message: str
    messageId: str
    conversationId: str


class ErrorResponse(BaseModel):
    error: str


class ConversationSummary(BaseModel):
    id: str
    title: Optional[str]
    createdAt: Optional[str]


class MessageResponse(BaseModel):
    id: str
    role: str
    content: str
    createdAt: Optional[str]


async def read_json_body(request: Request) -> Any:
    """Decoded JSON body, or None when the body is missing or not JSON."""
    try:
        return await request.json()
    except ValueError:
        return None


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse},
               404: {"model": ErrorResponse}, 429: {"model": ErrorResponse},
               500: {"model": ErrorResponse}},
)
async def send_chat_message(
    request: Request,
    authorization: Optional[str] = Header(None),
    chat_service: ChatService = Depends(get_chat_service),
) -> JSONResponse:
    """
    Send message to the assistant.

    AI outages are not surfaced as errors: the reply is a fallback
    apology with status 200.

    Raises (as JSON {error}):
        400 if the payload is invalid
        401 if the bearer token is missing or invalid
        404 if conversationId is unknown or not owned
        429 if the rate limit is exceeded
        500 on unexpected failures
    """
    payload = await read_json_body(request)
    outcome = await run_in_threadpool(
        chat_service.handle_chat, payload, authorization, get_client_origin(request)
    )
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.get("/chat/conversations", response_model=list[ConversationSummary])
def list_conversations(
    authorization: Optional[str] = Header(None),
    chat_service: ChatService = Depends(get_chat_service),
) -> list[dict]:
    """List conversations for the authenticated user."""
    return chat_service.list_conversations(authorization)


@router.get(
    "/chat/conversations/{conversation_id}/messages",
    response_model=list[MessageResponse],
)
def get_conversation_messages(
    conversation_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    authorization: Optional[str] = Header(None),
    chat_service: ChatService = Depends(get_chat_service),
) -> list[dict]:
    """Get a page of one of the authenticated user's conversations.

    offset counts back from the newest message.
    """
    return chat_service.get_messages(
        authorization, conversation_id, limit=limit, offset=offset
    )
