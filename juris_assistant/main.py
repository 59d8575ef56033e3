"""FastAPI application entry point for the JurisAcademy Assistant API."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from juris_assistant.api.routes.chat import router as chat_router
from juris_assistant.api.routes.playground import router as playground_router
from juris_assistant.config import settings
from juris_assistant.core.deps import build_chat_service
from juris_assistant.core.errors import ChatError, InternalError
from juris_assistant.core.logging import configure_logging
from juris_assistant.database import init_db
from juris_assistant.services.chat_service import ChatService

configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared chat service unless one was injected."""
    if getattr(app.state, "chat_service", None) is None:
        init_db()
        app.state.chat_service = build_chat_service(settings)
        logger.info("Chat service initialized")
    yield


def create_app(chat_service: Optional[ChatService] = None) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Sales/support assistant and contract playground for JurisAcademy",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.chat_service = chat_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    app.include_router(chat_router)
    app.include_router(playground_router)

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Requisição inválida."})

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Hide internal error details from clients."""
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": InternalError.default_message},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT") or 8000)
    logger.info(f"Starting JurisAcademy Assistant API on port {port}")
    uvicorn.run(app, host="0.0.0.0", port=port)
