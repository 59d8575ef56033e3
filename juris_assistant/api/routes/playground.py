"""Contract analysis playground route."""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from juris_assistant.api.routes.chat import ErrorResponse, read_json_body
from juris_assistant.core.deps import get_chat_service, get_client_origin
from juris_assistant.services.chat_service import ChatService

router = APIRouter(prefix="/api/playground", tags=["playground"])


class AnalysisResponse(BaseModel):
    analysis: str


@router.post(
    "/analyze",
    response_model=AnalysisResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse},
               429: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def analyze_contract(
    request: Request,
    authorization: Optional[str] = Header(None),
    chat_service: ChatService = Depends(get_chat_service),
) -> JSONResponse:
    """Identify risks and abusive clauses in a contract excerpt."""
    payload = await read_json_body(request)
    outcome = await run_in_threadpool(
        chat_service.handle_contract_analysis, payload, authorization, get_client_origin(request)
    )
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
