"""Conversation memory for chat sessions."""
from docqa.memory.manager import ConversationManager

__all__ = ["ConversationManager"]
