from juris_assistant.models.chat_event import ChatEvent
from juris_assistant.models.conversation import ROLE_MODEL, ROLE_USER, Conversation, Message

__all__ = ["ChatEvent", "Conversation", "Message", "ROLE_MODEL", "ROLE_USER"]
