"""Retrieval orchestration for document chat.

Handles:
- Concurrent per-document vector queries with failure isolation
- Context assembly in document order, then rank order
- Generation with recent session history
- Persisting the question/answer pair only after generation succeeds
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import structlog

from docqa import config, db
from docqa.llm_client import GroqClient, get_llm_client
from docqa.memory import ConversationManager
from docqa.rag.vector_store import QueryResult, VectorStoreClient, get_vector_store

logger = structlog.get_logger()

CONTEXT_SEPARATOR = "\n\n---\n\n"
NO_CONTENT_RESPONSE = "No relevant content found in the documents"


@dataclass
class ChatAnswer:
    """Outcome of one chat turn."""

    response: str
    session_id: Optional[str]
    session_title: Optional[str] = None
    found_context: bool = True
    sources: List[Dict[str, Any]] = field(default_factory=list)


class RetrievalOrchestrator:
    """Answers questions over a set of ready documents."""

    def __init__(
        self,
        vector_store: Optional[VectorStoreClient] = None,
        llm: Optional[GroqClient] = None,
        conversations: Optional[ConversationManager] = None,
        top_k: int = None,
    ):
        """Initialize the orchestrator.

        Args:
            vector_store: Vector store client (default singleton)
            llm: Generation client (default singleton)
            conversations: Session store (default ConversationManager)
            top_k: Chunks retrieved per document (default from config)
        """
        self.vector_store = vector_store or get_vector_store()
        self.llm = llm or get_llm_client()
        self.conversations = conversations or ConversationManager()
        self.top_k = top_k or config.RETRIEVAL_TOP_K

    async def _query_document(
        self, document: Dict[str, Any], question: str
    ) -> List[QueryResult]:
        """Query one document; failures are logged and yield no results."""
        collection_id = document.get("vector_store_id")
        if not collection_id:
            logger.warning("document_without_collection", document_id=document.get("id"))
            return []

        try:
            return await self.vector_store.query(collection_id, question, self.top_k)
        except Exception as e:
            logger.error(
                "document_query_failed",
                document_id=document.get("id"),
                collection_id=collection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

    async def retrieve(
        self, question: str, documents: List[Dict[str, Any]]
    ) -> List[QueryResult]:
        """Query every document concurrently.

        Args:
            question: The user's question
            documents: Document records with a vector_store_id

        Returns:
            Results in document order, then rank order
        """
        per_document = await asyncio.gather(
            *(self._query_document(document, question) for document in documents)
        )
        results = [result for results in per_document for result in results]

        logger.info(
            "retrieval_completed",
            documents=len(documents),
            results_returned=len(results),
        )
        return results

    @staticmethod
    def build_context(results: List[QueryResult]) -> str:
        """Join non-empty chunk texts with the context separator."""
        return CONTEXT_SEPARATOR.join(r.text for r in results if r.text and r.text.strip())

    async def answer(
        self,
        question: str,
        document_ids: List[str],
        session_id: Optional[str] = None,
    ) -> ChatAnswer:
        """Answer a question grounded in the selected documents.

        Callers must ensure every document is in the 'ready' state.

        Args:
            question: The user's question
            document_ids: Documents to search, in display order
            session_id: Existing chat session to continue, if any

        Returns:
            ChatAnswer; found_context is False when nothing was retrieved

        Raises:
            GenerationError: If the chat model fails (nothing is persisted)
        """
        documents = db.get_documents(document_ids)
        missing = set(document_ids) - {document["id"] for document in documents}
        if missing:
            logger.warning("documents_not_found", document_ids=sorted(missing))

        results = await self.retrieve(question, documents)
        context = self.build_context(results)

        if not context:
            logger.info("no_relevant_context_found", document_ids=document_ids)
            return ChatAnswer(
                response=NO_CONTENT_RESPONSE,
                session_id=session_id,
                found_context=False,
            )

        session = self.conversations.get_session(session_id) if session_id else None
        history = (
            self.conversations.format_conversation_history(session["id"]) if session else []
        )

        response = await self.llm.generate_response(question, context, history)

        if session is None:
            title = await self.llm.generate_title(question)
            session_id = self.conversations.create_session(title, document_ids)
            session = {"id": session_id, "title": title}

        self.conversations.add_exchange(session["id"], question, response)

        logger.info(
            "chat_turn_completed",
            session_id=session["id"],
            context_length=len(context),
            sources=len(results),
        )

        return ChatAnswer(
            response=response,
            session_id=session["id"],
            session_title=session.get("title"),
            found_context=True,
            sources=[
                {
                    "documentId": r.metadata.get("documentId"),
                    "chunkIndex": r.metadata.get("chunkIndex"),
                    "distance": round(r.distance, 4),
                }
                for r in results
            ],
        )


# Singleton instance for convenience
_orchestrator_instance: Optional[RetrievalOrchestrator] = None


def get_orchestrator() -> RetrievalOrchestrator:
    """Get a singleton orchestrator wired to the default clients."""
    global _orchestrator_instance
    if _orchestrator_instance is None:
        _orchestrator_instance = RetrievalOrchestrator()
    return _orchestrator_instance
