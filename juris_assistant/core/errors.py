"""Error taxonomy for the chat endpoints.

Every failure the handler can produce is a `ChatError` carrying the HTTP
status returned to the client, a human-readable message and the
`error_type` tag written to the audit trail.
"""
from typing import Optional


class ChatError(Exception):
    """Base class for request failures surfaced to the caller."""

    status_code = 500
    error_kind = "INTERNAL_ERROR"
    default_message = "Erro interno do servidor."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRequest(ChatError):
    status_code = 400
    error_kind = "INVALID_REQUEST"
    default_message = "Mensagem inválida ou muito longa."


class Unauthenticated(ChatError):
    status_code = 401
    error_kind = "UNAUTHENTICATED"
    default_message = "Usuário não autenticado."


class ConversationNotFound(ChatError):
    status_code = 404
    error_kind = "CONVERSATION_NOT_FOUND"
    default_message = "Conversa não encontrada."


class RateLimited(ChatError):
    status_code = 429
    error_kind = "RATE_LIMITED"
    default_message = "Muitas requisições. Aguarde um minuto."


class AiServiceDegraded(ChatError):
    """The model stayed unavailable after retries.

    Recovered inside the service: the caller gets a 200 with a fallback
    reply and only the audit trail records the degradation.
    """

    status_code = 200
    error_kind = "AI_SERVICE_ERROR"
    default_message = "Serviço de IA indisponível."


class InternalError(ChatError):
    pass


class ModelError(Exception):
    """Failure talking to the language model."""


class TransientModelError(ModelError):
    """Upstream rate-limited or temporarily unavailable; safe to retry."""


class PermanentModelError(ModelError):
    """Any other model failure; never retried."""
