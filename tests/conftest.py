"""Shared fixtures: in-memory database, signed tokens and a scripted model."""
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from juris_assistant.config import Settings
from juris_assistant.database import create_db_engine, init_db
from juris_assistant.main import create_app
from juris_assistant.services.chat_service import ChatService
from juris_assistant.services.identity import IdentityProvider
from juris_assistant.services.store import ChatStore

TEST_SECRET = "test-jwt-secret"
DEFAULT_REPLY = "Para contratos, recomendo o curso Legal Ops Full Stack."


def make_token(user_id="user-1", secret=TEST_SECRET, audience="authenticated", expires_in=3600):
    """Sign an access token the way the auth backend does."""
    claims = {
        "aud": audience,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        "email": f"{user_id}@example.com",
    }
    if user_id is not None:
        claims["sub"] = user_id
    return jwt.encode(claims, secret, algorithm="HS256")


def bearer(user_id="user-1"):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


def all_rows(engine, model, order_by=None):
    with Session(engine) as session:
        statement = select(model)
        if order_by is not None:
            statement = statement.order_by(order_by)
        return list(session.exec(statement).all())


class FakeChatModel:
    """Scripted stand-in for ChatModel.

    Each queued item is returned as the reply, or raised if it is an
    exception. Once the queue is empty DEFAULT_REPLY is returned.
    """

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls = []

    def queue(self, *items):
        self.replies.extend(items)

    def converse(self, system_instruction, temperature, history, new_message, timeout=None):
        self.calls.append(
            {
                "system_instruction": system_instruction,
                "temperature": temperature,
                "history": list(history),
                "new_message": new_message,
                "timeout": timeout,
            }
        )
        item = self.replies.pop(0) if self.replies else DEFAULT_REPLY
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        AUTH_JWT_SECRET=TEST_SECRET,
        IP_HASH_SALT="test-salt",
        OPENAI_API_KEY="sk-test",
    )


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return ChatStore(engine)


@pytest.fixture
def model():
    return FakeChatModel()


@pytest.fixture
def sleeps():
    """Delays requested by the retry loop; nothing actually sleeps."""
    return []


@pytest.fixture
def chat_service(store, model, settings, sleeps):
    return ChatService(
        store=store,
        identity=IdentityProvider(secret=TEST_SECRET),
        model=model,
        settings=settings,
        sleep=sleeps.append,
    )


@pytest.fixture
def client(chat_service):
    return TestClient(create_app(chat_service))
