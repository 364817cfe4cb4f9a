"""Groq chat completion client wrapper with error handling."""
import httpx
from typing import List, Dict, Optional
import structlog

from docqa import config
from docqa.errors import GenerationError

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are a helpful assistant that answers questions based on the provided context from PDF documents.

Guidelines:
- Answer questions based ONLY on the provided context
- If the answer is not in the context, say "I don't have enough information in the provided documents to answer this question."
- Be concise but comprehensive
- If referencing specific information, mention it's from the documents
- Maintain a helpful and professional tone

Context from documents:
{context}"""

TITLE_PROMPT = (
    "Generate a short, descriptive title (max 6 words) for this chat based on "
    "the user's first question. Return only the title, nothing else."
)

DEFAULT_TITLE = "New Chat"
EMPTY_RESPONSE = "No response generated"


class GroqClient:
    """Async client for the Groq OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        model: str = None,
        timeout: float = None,
        history_window: int = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Groq client.

        Args:
            api_key: Groq API key (defaults to config.GROQ_API_KEY)
            base_url: API base URL (defaults to config.GROQ_BASE_URL)
            model: Chat model (defaults to config.CHAT_MODEL)
            timeout: Request timeout in seconds
            history_window: Prior messages sent with each question
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key if api_key is not None else config.GROQ_API_KEY
        self.base_url = (base_url or config.GROQ_BASE_URL).rstrip("/")
        self.model = model or config.CHAT_MODEL
        self.timeout = timeout or config.GENERATION_TIMEOUT
        self.history_window = history_window or config.HISTORY_WINDOW
        self.transport = transport

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
    ) -> Dict:
        """Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to the client's model)
            temperature: Sampling temperature
            max_tokens: Completion token limit
            top_p: Nucleus sampling parameter

        Returns:
            Response dict with 'choices'

        Raises:
            httpx.HTTPError: On API errors
            httpx.ConnectError: If the service is unreachable
            ValueError: If the body is not a JSON completion object
        """
        model = model or self.model

        payload = {
            "model": model,
            "messages": messages,
            "stream": False,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if top_p is not None:
            payload["top_p"] = top_p

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.api_key}"},
                transport=self.transport,
            ) as client:
                logger.info(
                    "groq_chat_request",
                    model=model,
                    message_count=len(messages),
                )

                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                )
                response.raise_for_status()

                data = response.json()
                if not isinstance(data, dict):
                    raise ValueError(f"Unexpected completion payload: {str(data)[:100]}")

                logger.info(
                    "groq_chat_response",
                    model=model,
                    response_length=len(self.message_content(data)),
                )

                return data

        except httpx.ConnectError as e:
            logger.error("groq_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error(
                "groq_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

    @staticmethod
    def message_content(data: Dict) -> str:
        """Pull the first choice's message text out of a completion."""
        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return ""
        message = choices[0].get("message")
        content = message.get("content") if isinstance(message, dict) else None
        return content if isinstance(content, str) else ""

    def build_messages(
        self,
        question: str,
        context: str,
        chat_history: Optional[List[Dict[str, str]]] = None,
    ) -> List[Dict[str, str]]:
        """Assemble system prompt with context, recent history and question."""
        history = list(chat_history or [])[-self.history_window:]
        return [
            {"role": "system", "content": SYSTEM_PROMPT.format(context=context)},
            *({"role": m["role"], "content": m["content"]} for m in history),
            {"role": "user", "content": question},
        ]

    async def generate_response(
        self,
        question: str,
        context: str,
        chat_history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """Answer a question grounded in retrieved context.

        Args:
            question: The user's question
            context: Retrieved document context
            chat_history: Prior messages; only the most recent are sent

        Returns:
            The assistant's answer

        Raises:
            GenerationError: If the completion request fails
        """
        messages = self.build_messages(question, context, chat_history)

        try:
            data = await self.chat(
                messages,
                temperature=0.1,
                max_tokens=1024,
                top_p=1,
            )
        except (httpx.HTTPError, ValueError) as e:
            raise GenerationError(f"Failed to generate response: {e}") from e

        return self.message_content(data) or EMPTY_RESPONSE

    async def generate_title(self, first_message: str) -> str:
        """Produce a short chat title from the first question.

        Falls back to "New Chat" on any failure.
        """
        messages = [
            {"role": "system", "content": TITLE_PROMPT},
            {"role": "user", "content": first_message},
        ]

        try:
            data = await self.chat(messages, temperature=0.3, max_tokens=50)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("title_generation_failed", error=str(e))
            return DEFAULT_TITLE

        return self.message_content(data).strip() or DEFAULT_TITLE


# Global client instance
_groq_instance: Optional[GroqClient] = None


def get_llm_client() -> GroqClient:
    """Get a singleton Groq client configured from the environment."""
    global _groq_instance
    if _groq_instance is None:
        _groq_instance = GroqClient()
    return _groq_instance
