"""Database engine construction and schema setup."""
import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from juris_assistant.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """Create a SQLModel engine for the configured database URL."""
    url = database_url or settings.DATABASE_URL
    kwargs = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    # Register table metadata
    from juris_assistant import models  # noqa: F401

    engine = engine or get_engine()
    SQLModel.metadata.create_all(engine)
    logger.info("Database tables ready")

