"""Conversation memory for document chat sessions.

Handles session creation, message persistence, and the history window sent
to the chat model on each turn.
"""
import uuid
from typing import List, Dict, Any, Optional
import structlog

from docqa import config, db

logger = structlog.get_logger()


class ConversationManager:
    """Manages chat sessions and conversation history."""

    def __init__(self, context_window_size: int = None):
        """Initialize the conversation manager.

        Args:
            context_window_size: Number of recent messages to include in context
        """
        self.context_window_size = context_window_size or config.HISTORY_WINDOW

    def create_session(
        self,
        title: Optional[str] = None,
        document_ids: Optional[List[str]] = None,
    ) -> str:
        """Create a new chat session.

        Args:
            title: Optional title for the session
            document_ids: Documents the session is about

        Returns:
            The created session ID
        """
        session_id = str(uuid.uuid4())
        db.create_session(session_id, title, document_ids)
        logger.info("conversation_session_created", session_id=session_id)
        return session_id

    def add_exchange(self, session_id: str, question: str, answer: str) -> List[int]:
        """Persist a user question and the assistant answer together.

        Args:
            session_id: The session to add the messages to
            question: The user's message
            answer: The assistant's reply

        Returns:
            IDs of the two inserted messages
        """
        message_ids = db.add_messages(
            session_id,
            [
                {"role": "user", "content": question},
                {"role": "assistant", "content": answer},
            ],
        )
        logger.info(
            "conversation_exchange_added",
            session_id=session_id,
            message_ids=message_ids,
        )
        return message_ids

    def get_recent_messages(
        self, session_id: str, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Get recent messages for a session.

        Args:
            session_id: The session ID to get messages for
            limit: Maximum number of messages (defaults to context_window_size)

        Returns:
            List of message dictionaries in chronological order
        """
        limit = limit or self.context_window_size
        return db.get_recent_messages(session_id, limit)

    def get_all_messages(self, session_id: str) -> List[Dict[str, Any]]:
        """Get all messages for a session in chronological order."""
        return db.get_messages(session_id)

    def format_conversation_history(self, session_id: str) -> List[Dict[str, str]]:
        """Format recent conversation history for LLM context.

        Args:
            session_id: The session ID to format history for

        Returns:
            List of message dictionaries with 'role' and 'content' keys
        """
        messages = self.get_recent_messages(session_id)

        history = [{"role": msg["role"], "content": msg["content"]} for msg in messages]

        logger.debug(
            "conversation_history_formatted",
            session_id=session_id,
            message_count=len(history),
        )
        return history

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Get session details, or None if not found."""
        return db.get_session(session_id)

    def list_sessions(self, limit: int = 50) -> List[Dict[str, Any]]:
        """List all sessions, most recent first."""
        return db.list_sessions(limit)

    def delete_session(self, session_id: str) -> bool:
        """Delete a session and all its messages.

        Returns:
            True if deleted, False if not found
        """
        deleted = db.delete_session(session_id)
        if deleted:
            logger.info("conversation_session_deleted", session_id=session_id)
        return deleted

    def update_session_title(self, session_id: str, title: str) -> None:
        """Rename a session (titles are capped at 100 characters)."""
        title = title.strip()[:100]
        if db.update_session_title(session_id, title):
            logger.info("session_title_updated", session_id=session_id, title=title)
