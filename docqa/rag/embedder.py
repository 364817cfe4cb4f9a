"""Embedding client for the Hugging Face inference feature-extraction API.

Texts are embedded one request at a time with a fixed pause between
requests to stay under upstream rate limits. A failure on any text aborts
the whole batch.
"""
import asyncio
from typing import List, Optional
import httpx
import structlog

from docqa import config
from docqa.errors import EmbeddingError

logger = structlog.get_logger()


class EmbeddingClient:
    """Async client turning text into fixed-dimension vectors."""

    def __init__(
        self,
        api_key: str = None,
        model: str = None,
        base_url: str = None,
        request_delay: float = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the embedding client.

        Args:
            api_key: Hugging Face token (default from config)
            model: Sentence embedding model id (default from config)
            base_url: Inference base URL (default from config)
            request_delay: Seconds to wait between consecutive requests
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key if api_key is not None else config.HUGGINGFACE_API_KEY
        self.model = model or config.EMBEDDING_MODEL
        self.base_url = (base_url or config.HF_INFERENCE_URL).rstrip("/")
        self.request_delay = (
            request_delay if request_delay is not None else config.EMBEDDING_REQUEST_DELAY
        )
        self.timeout = timeout or config.EMBEDDING_TIMEOUT
        self.transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}/pipeline/feature-extraction"

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return httpx.AsyncClient(
            timeout=self.timeout, headers=headers, transport=self.transport
        )

    @staticmethod
    def normalize_response(data) -> List[float]:
        """Reduce a feature-extraction response to a single vector.

        Nested responses ([[...]]) yield their first element.

        Raises:
            EmbeddingError: If the payload is not a non-empty list of numbers
        """
        if isinstance(data, list) and data and isinstance(data[0], list):
            data = data[0]

        if not isinstance(data, list) or not data:
            raise EmbeddingError(f"Unexpected embedding response: {str(data)[:100]}")

        try:
            return [float(value) for value in data]
        except (TypeError, ValueError) as e:
            raise EmbeddingError(f"Non-numeric embedding returned: {e}") from e

    async def _request(self, client: httpx.AsyncClient, text: str) -> List[float]:
        logger.debug("embedding_request", model=self.model, text_length=len(text))

        response = await client.post(self.endpoint, json={"inputs": text})
        response.raise_for_status()

        embedding = self.normalize_response(response.json())

        logger.debug("embedding_response", model=self.model, dimension=len(embedding))
        return embedding

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed texts in order, one request per text.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in input order

        Raises:
            EmbeddingError: If any request fails (the batch is abandoned)
        """
        if not texts:
            return []

        embeddings = []

        async with self._client() as client:
            for i, text in enumerate(texts):
                if i > 0 and self.request_delay > 0:
                    await asyncio.sleep(self.request_delay)

                try:
                    embeddings.append(await self._request(client, text))
                except EmbeddingError as e:
                    logger.error(
                        "embedding_generation_failed",
                        index=i,
                        text_preview=text[:100],
                        error=str(e),
                    )
                    raise
                except (httpx.HTTPError, ValueError) as e:
                    logger.error(
                        "embedding_generation_failed",
                        index=i,
                        text_preview=text[:100],
                        error=str(e),
                        status_code=getattr(getattr(e, "response", None), "status_code", None),
                    )
                    raise EmbeddingError(f"Failed to generate embedding: {e}") from e

        logger.info("embeddings_generated", count=len(embeddings), model=self.model)
        return embeddings

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector
        """
        embeddings = await self.embed([text])
        return embeddings[0]


# Global client instance
_embedder_instance: Optional[EmbeddingClient] = None


def get_embedder() -> EmbeddingClient:
    """Get a singleton embedding client configured from the environment."""
    global _embedder_instance
    if _embedder_instance is None:
        _embedder_instance = EmbeddingClient()
    return _embedder_instance
