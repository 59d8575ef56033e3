"""Stateless chat calls to the OpenAI Chat Completions API.

No chat session is kept between calls: every call carries the system
instruction and the full conversational context it needs.
"""
import logging
from typing import Dict, Iterable, Optional

from openai import APIConnectionError, APIStatusError, OpenAI, OpenAIError, RateLimitError

from juris_assistant.core.errors import PermanentModelError, TransientModelError
from juris_assistant.models import ROLE_MODEL, ROLE_USER

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {429, 502, 503, 504}

_OPENAI_ROLES = {ROLE_USER: "user", ROLE_MODEL: "assistant"}


def is_transient_openai_error(error: Exception) -> bool:
    """Whether an OpenAI SDK error signals rate limiting or temporary unavailability."""
    if isinstance(error, (RateLimitError, APIConnectionError)):
        # APITimeoutError is an APIConnectionError
        return True
    if isinstance(error, APIStatusError):
        return error.status_code in TRANSIENT_STATUS_CODES
    return False


def to_openai_messages(history: Iterable[Dict[str, str]]) -> list[Dict[str, str]]:
    """
    Convert stored turns to OpenAI format.

    Args:
        history: Turns as {"role": "user" | "model", "content": "..."}

    Returns:
        List of messages as {"role": "user" | "assistant", "content": "..."}
    """
    return [
        {"role": _OPENAI_ROLES[turn["role"]], "content": turn["content"]}
        for turn in history
    ]


class ChatModel:
    """OpenAI-backed conversational model."""

    def __init__(
        self,
        client: OpenAI,
        model: str,
        default_timeout: Optional[float] = None,
    ):
        self.client = client
        self.model = model
        self.default_timeout = default_timeout

    @classmethod
    def from_settings(cls, settings) -> "ChatModel":
        # Retries are handled by call_with_retry, not by the SDK
        client = OpenAI(api_key=settings.OPENAI_API_KEY, max_retries=0)
        return cls(client, settings.OPENAI_MODEL, default_timeout=settings.OPENAI_TIMEOUT)

    def converse(
        self,
        system_instruction: str,
        temperature: float,
        history: Iterable[Dict[str, str]],
        new_message: str,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Send the current turn with its preceding context.

        Args:
            system_instruction: Persona and rules for the assistant
            temperature: Sampling temperature
            history: Earlier turns, oldest first, excluding `new_message`
            new_message: Current user turn
            timeout: Request timeout in seconds

        Returns:
            Reply text (may be empty)

        Raises:
            TransientModelError: Upstream rate-limited or temporarily unavailable
            PermanentModelError: Any other failure
        """
        messages = [
            {"role": "system", "content": system_instruction},
            *to_openai_messages(history),
            {"role": "user", "content": new_message},
        ]
        if self.default_timeout is not None:
            timeout = min(timeout, self.default_timeout) if timeout is not None else self.default_timeout

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                timeout=timeout,
            )
        except OpenAIError as e:
            if is_transient_openai_error(e):
                raise TransientModelError(str(e)) from e
            raise PermanentModelError(str(e)) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
