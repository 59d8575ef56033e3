"""Chat service layer for the JurisAcademy assistant.

Handles:
- Payload validation and bearer-token authentication
- Rate limiting (per user, trailing window over the audit trail)
- Conversation creation and message storage (user + model)
- Stateless model calls with bounded retry and graceful degradation
- Contract analysis for the playground
- Audit events for every request
"""
import hashlib
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from juris_assistant.core.errors import (
    AiServiceDegraded,
    ChatError,
    ConversationNotFound,
    InternalError,
    InvalidRequest,
    RateLimited,
    TransientModelError,
)
from juris_assistant.models import ROLE_MODEL, ROLE_USER, Conversation, Message
from juris_assistant.models.conversation import utcnow
from juris_assistant.services.identity import IdentityProvider
from juris_assistant.services.llm import ChatModel
from juris_assistant.services.retry import call_with_retry, linear_backoff
from juris_assistant.services.store import ChatStore

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = """Você é o Consultor Sênior de Carreira da 'JurisAcademy'.
Objetivo: VENDER e CONVERTER interessados em alunos, tirando dúvidas de forma persuasiva.

Nossos Cursos (Base de Conhecimento):
1. Prompt Engineering Jurídico (R$ 497, Iniciante) - Foco em produtividade e peças rápidas.
2. Compliance & Ética na IA (R$ 697, Intermediário) - Foco em consultoria e regulação.
3. Legal Ops Full Stack (R$ 997, Avançado) - Foco em automação e gestão.

Regras:
- Respostas curtas e objetivas (max 150 palavras).
- Use tom profissional mas acessível.
- Se não souber, peça para o aluno contatar o suporte humano.
- Não invente preços ou cursos fora desta lista."""

CONTRACT_ANALYSIS_INSTRUCTION = """Você é um advogado especialista em contratos da 'JurisAcademy'.
Analise textos jurídicos enviados por alunos em um ambiente de treinamento.

Regras:
- Identifique riscos, cláusulas abusivas e oportunidades de melhoria.
- Seja técnico mas direto, organizando a resposta em tópicos.
- Não trate a análise como parecer jurídico definitivo."""

CONTRACT_ANALYSIS_PROMPT = (
    "Analise o seguinte texto jurídico e identifique riscos, cláusulas abusivas "
    "ou oportunidades de melhoria. Seja técnico mas direto: \n\n{text}"
)

FALLBACK_REPLY = "Desculpe, estou com alta demanda no momento. Tente novamente em instantes."
EMPTY_REPLY = "Não consegui gerar uma resposta."
ANALYSIS_FALLBACK = "Erro ao analisar contrato. Tente novamente."

T = TypeVar("T", bound=BaseModel)


def _require_utf8(value: str) -> str:
    # JSON allows lone surrogate escapes, which cannot be stored
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("text is not valid UTF-8")
    return value


class ChatRequest(BaseModel):
    """Body of POST /api/chat."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")

    @field_validator("message", "conversation_id")
    @classmethod
    def check_encodable(cls, value: Optional[str]) -> Optional[str]:
        return value if value is None else _require_utf8(value)


class ContractAnalysisRequest(BaseModel):
    """Body of POST /api/playground/analyze."""
    text: str

    @field_validator("text")
    @classmethod
    def check_encodable(cls, value: str) -> str:
        return _require_utf8(value)


@dataclass
class ChatOutcome:
    """HTTP status and JSON body produced for one request."""
    status_code: int
    body: Dict[str, Any]


@dataclass
class _AuditContext:
    user_id: Optional[str] = None
    error_kind: Optional[str] = None


def hash_origin(origin: str, salt: str = "") -> str:
    """Privacy-preserving digest of the caller's network origin."""
    return hashlib.sha256(f"{salt}{origin}".encode("utf-8")).hexdigest()


def make_title(message: str, max_chars: int = 30) -> str:
    """Conversation title from the first characters of its first message."""
    text = message.strip()
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


class ChatService:
    """Service layer for chat operations.

    Holds no per-request or per-conversation state: every collaborator is
    injected at construction and all cross-request state lives in the store.
    """

    def __init__(
        self,
        store: ChatStore,
        identity: IdentityProvider,
        model: ChatModel,
        settings,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.identity = identity
        self.model = model
        self.settings = settings
        self.sleep = sleep
        self.clock = clock

    # --- Endpoints ---

    def handle_chat(
        self, payload: Any, authorization: Optional[str], origin: str
    ) -> ChatOutcome:
        """
        Process one user chat message.

        Flow:
        1. Validate payload
        2. Authenticate bearer token
        3. Check rate limit
        4. Get/create conversation
        5. Store user message
        6. Load recent history (excluding the message just stored)
        7. Call the model with retry; fall back to an apology on failure
        8. Store model reply
        9. Record audit event and return

        Args:
            payload: Decoded JSON body, or None if the body was not JSON
            authorization: Authorization header value
            origin: Caller's network origin, hashed before storage

        Returns:
            ChatOutcome with 200 and {message, messageId, conversationId},
            or the error status with {error}
        """
        return self._run_audited(
            origin, lambda audit: self._send_message(audit, payload, authorization)
        )

    def handle_contract_analysis(
        self, payload: Any, authorization: Optional[str], origin: str
    ) -> ChatOutcome:
        """Analyze a contract excerpt; 200 with {analysis} or the error status."""
        return self._run_audited(
            origin, lambda audit: self._analyze_contract(audit, payload, authorization)
        )

    def list_conversations(self, authorization: Optional[str], limit: int = 50) -> list[Dict[str, Any]]:
        """List the caller's conversations, newest first."""
        user = self.identity.authenticate(authorization)
        conversations = self.store.list_conversations(user.id, limit=limit)
        return [_serialize_conversation(c) for c in conversations]

    def get_messages(
        self,
        authorization: Optional[str],
        conversation_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Dict[str, Any]]:
        """
        Get messages of one of the caller's conversations, oldest first.

        Returns the newest `limit` turns after skipping the `offset` newest,
        so offset=0 always includes the latest reply.

        Raises:
            Unauthenticated: If the bearer token is missing or invalid
            ConversationNotFound: If the conversation is missing or not owned
        """
        user = self.identity.authenticate(authorization)
        if self.store.get_conversation(conversation_id, user.id) is None:
            raise ConversationNotFound()
        messages = self.store.list_messages(conversation_id, limit=limit, offset=offset)
        return [_serialize_message(m) for m in messages]

    # --- Request pipeline ---

    def _run_audited(
        self, origin: str, work: Callable[[_AuditContext], Dict[str, Any]]
    ) -> ChatOutcome:
        started = self.clock()
        audit = _AuditContext()

        try:
            body = work(audit)
            status_code = 200
        except ChatError as e:
            logger.warning(f"Chat request rejected ({e.status_code}): {e.message}")
            status_code = e.status_code
            audit.error_kind = e.error_kind
            body = {"error": e.message}
        except Exception:
            logger.exception(f"Unexpected error handling chat request for user {audit.user_id}")
            status_code = InternalError.status_code
            audit.error_kind = InternalError.error_kind
            body = {"error": InternalError.default_message}

        latency_ms = int((self.clock() - started) * 1000)
        self._record_event(audit, origin, status_code, latency_ms)
        return ChatOutcome(status_code=status_code, body=body)

    def _send_message(
        self, audit: _AuditContext, payload: Any, authorization: Optional[str]
    ) -> Dict[str, Any]:
        request = _parse(ChatRequest, payload)
        message = request.message
        if not message.strip() or len(message) > self.settings.MESSAGE_MAX_CHARS:
            raise InvalidRequest()

        user = self.identity.authenticate(authorization)
        audit.user_id = user.id
        self._enforce_rate_limit(user.id)

        conversation_id = self._resolve_conversation(user.id, request.conversation_id, message)
        user_message_id = self.store.append_message(
            conversation_id, ROLE_USER, message, user_id=user.id
        )
        history = self._build_history(conversation_id, exclude_id=user_message_id)

        try:
            reply = self._generate_reply(SYSTEM_INSTRUCTION, history, message)
        except AiServiceDegraded as e:
            logger.error(f"AI service degraded for user {user.id}: {e.message}")
            audit.error_kind = e.error_kind
            reply = FALLBACK_REPLY

        message_id = self.store.append_message(conversation_id, ROLE_MODEL, reply)

        logger.info(
            f"Chat message processed: user={user.id}, conversation={conversation_id}, "
            f"message_id={user_message_id}, response_id={message_id}"
        )
        return {
            "message": reply,
            "messageId": message_id,
            "conversationId": conversation_id,
        }

    def _analyze_contract(
        self, audit: _AuditContext, payload: Any, authorization: Optional[str]
    ) -> Dict[str, Any]:
        request = _parse(ContractAnalysisRequest, payload)
        if not request.text.strip():
            raise InvalidRequest("Texto do contrato não informado.")

        user = self.identity.authenticate(authorization)
        audit.user_id = user.id
        self._enforce_rate_limit(user.id)

        excerpt = request.text[: self.settings.CONTRACT_MAX_CHARS]
        try:
            analysis = self._generate_reply(
                CONTRACT_ANALYSIS_INSTRUCTION,
                [],
                CONTRACT_ANALYSIS_PROMPT.format(text=excerpt),
            )
        except AiServiceDegraded as e:
            logger.error(f"Contract analysis degraded for user {user.id}: {e.message}")
            audit.error_kind = e.error_kind
            analysis = ANALYSIS_FALLBACK

        return {"analysis": analysis}

    def _enforce_rate_limit(self, user_id: str) -> None:
        """
        Reject the request when the user is over the limit.

        A failing count query lets the request through; only a confirmed
        over-threshold count blocks it.
        """
        window_start = utcnow() - timedelta(seconds=self.settings.RATE_LIMIT_WINDOW_SECONDS)
        try:
            count = self.store.count_recent_events(user_id, window_start)
        except Exception as e:
            logger.warning(f"Rate limit check failed for user {user_id}: {e}")
            return

        if count > self.settings.RATE_LIMIT_MAX_EVENTS:
            raise RateLimited()

    def _resolve_conversation(
        self, user_id: str, conversation_id: Optional[str], message: str
    ) -> str:
        if not conversation_id:
            title = make_title(message, self.settings.CONVERSATION_TITLE_CHARS)
            return self.store.create_conversation(user_id, title)

        if self.store.get_conversation(conversation_id, user_id) is None:
            raise ConversationNotFound()
        return conversation_id

    def _build_history(self, conversation_id: str, exclude_id: str) -> list[Dict[str, str]]:
        """
        Load the context sent ahead of the current turn.

        The current user message is already stored; it is dropped here and
        sent once as the trailing turn. History plus the current message
        never exceeds HISTORY_LIMIT turns.
        """
        limit = self.settings.HISTORY_LIMIT
        rows = self.store.fetch_recent_messages(conversation_id, limit)
        turns = [
            {"role": row.role, "content": row.content}
            for row in rows
            if row.id != exclude_id
        ]
        return turns[max(len(turns) - (limit - 1), 0):]

    def _generate_reply(
        self, system_instruction: str, history: list[Dict[str, str]], message: str
    ) -> str:
        """
        Call the model, retrying transient failures.

        Raises:
            AiServiceDegraded: If attempts or the deadline run out, or the
                failure is not retryable
        """
        def attempt(timeout: Optional[float]) -> str:
            return self.model.converse(
                system_instruction,
                self.settings.AI_TEMPERATURE,
                history,
                message,
                timeout=timeout,
            )

        try:
            reply = call_with_retry(
                attempt,
                max_attempts=self.settings.AI_MAX_ATTEMPTS,
                is_retryable=lambda e: isinstance(e, TransientModelError),
                backoff=linear_backoff(self.settings.AI_BACKOFF_SECONDS),
                sleep=self.sleep,
                clock=self.clock,
                deadline_seconds=self.settings.AI_DEADLINE_SECONDS,
            )
        except Exception as e:
            raise AiServiceDegraded(f"{type(e).__name__}: {e}") from e

        return reply if reply.strip() else EMPTY_REPLY

    def _record_event(
        self, audit: _AuditContext, origin: str, status_code: int, latency_ms: int
    ) -> None:
        """Best-effort audit write; failures are logged and never propagate."""
        try:
            self.store.append_audit_event(
                user_id=audit.user_id,
                ip_hash=hash_origin(origin, self.settings.IP_HASH_SALT),
                status_code=status_code,
                latency_ms=latency_ms,
                error_type=audit.error_kind,
                request_id=str(uuid.uuid4()),
            )
        except Exception:
            logger.exception(f"Failed to record chat event for user {audit.user_id}")


def _parse(model: Type[T], payload: Any) -> T:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        logger.debug(f"Invalid {model.__name__} payload: {e}")
        raise InvalidRequest()


def _serialize_conversation(conversation: Conversation) -> Dict[str, Any]:
    return {
        "id": conversation.id,
        "title": conversation.title,
        "createdAt": _isoformat(conversation.created_at),
    }


def _serialize_message(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "createdAt": _isoformat(message.created_at),
    }


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO 8601 with offset; SQLite hands back naive UTC values."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
