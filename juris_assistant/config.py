"""Application settings loaded from environment variables and `.env`."""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the assistant API."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "JurisAcademy Assistant API"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./juris_assistant.db"

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT: float = 20.0

    # Bearer tokens issued by the auth backend
    AUTH_JWT_SECRET: str = "change-me"
    AUTH_JWT_AUDIENCE: str = "authenticated"
    AUTH_JWT_ALGORITHMS: List[str] = ["HS256"]

    # Rate limiting (per user, sliding window over chat_events)
    RATE_LIMIT_MAX_EVENTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # Chat
    MESSAGE_MAX_CHARS: int = 2000
    CONVERSATION_TITLE_CHARS: int = 30
    HISTORY_LIMIT: int = 10
    AI_TEMPERATURE: float = 0.7
    AI_MAX_ATTEMPTS: int = 2
    AI_BACKOFF_SECONDS: float = 1.0
    AI_DEADLINE_SECONDS: float = 25.0

    # Contract playground
    CONTRACT_MAX_CHARS: int = 3000

    # Audit
    IP_HASH_SALT: str = ""

    CORS_ORIGINS: List[str] = ["*"]


settings = Settings()
