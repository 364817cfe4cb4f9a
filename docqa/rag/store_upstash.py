"""Upstash Vector REST backend.

The index is flat: there is no per-collection namespace, so collections
are told apart by id prefix and by the ``documentId`` metadata field.
"""
from typing import Any, Dict, List, Optional
import httpx
import structlog

from docqa import config
from docqa.errors import VectorBackendError

logger = structlog.get_logger()


class UpstashVectorBackend:
    """Async client for the Upstash Vector REST API."""

    RANGE_PAGE_SIZE = 1000

    def __init__(
        self,
        url: str = None,
        token: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the backend.

        Args:
            url: Index REST URL (default from config)
            token: Index REST token (default from config)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)

        Raises:
            ValueError: If URL or token is missing
        """
        self.url = (url or config.UPSTASH_VECTOR_REST_URL).rstrip("/")
        self.token = token or config.UPSTASH_VECTOR_REST_TOKEN
        self.timeout = timeout or config.VECTOR_TIMEOUT
        self.transport = transport

        if not self.url or not self.token:
            raise ValueError(
                "Upstash URL or token is not configured "
                "(UPSTASH_VECTOR_REST_URL / UPSTASH_VECTOR_REST_TOKEN)"
            )

    async def _call(self, operation: str, payload: Any) -> Any:
        """POST a command and return its ``result`` field.

        Raises:
            VectorBackendError: On transport, HTTP or API errors
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.token}"},
                transport=self.transport,
            ) as client:
                response = await client.post(f"{self.url}/{operation}", json=payload)
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            logger.error(
                "upstash_http_error",
                operation=operation,
                status_code=e.response.status_code,
                error=e.response.text[:200],
            )
            raise VectorBackendError(
                f"Upstash {operation} failed with HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("upstash_request_failed", operation=operation, error=str(e))
            raise VectorBackendError(f"Upstash {operation} failed: {e}") from e

        if isinstance(data, dict) and data.get("error"):
            logger.error("upstash_api_error", operation=operation, error=data["error"])
            raise VectorBackendError(f"Upstash {operation} failed: {data['error']}")

        return data.get("result") if isinstance(data, dict) else data

    async def upsert(self, records: List[Dict[str, Any]]) -> None:
        """Upsert records of the form {id, vector, metadata}."""
        if not records:
            return
        await self._call("upsert", records)
        logger.debug("upstash_upserted", count=len(records))

    async def query(
        self,
        vector: List[float],
        top_k: int,
        document_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return up to top_k matches as {id, score, metadata} dicts.

        Args:
            vector: Query vector
            top_k: Number of neighbours
            document_id: Restrict matches to this documentId metadata value
        """
        payload: Dict[str, Any] = {
            "vector": vector,
            "topK": top_k,
            "includeMetadata": True,
        }
        if document_id:
            payload["filter"] = f"documentId = '{document_id}'"

        result = await self._call("query", payload)
        return list(result or [])

    async def list_ids(self, prefix: str) -> List[str]:
        """Enumerate every vector id starting with prefix."""
        ids: List[str] = []
        cursor = "0"

        while True:
            page = await self._call(
                "range",
                {"cursor": cursor, "limit": self.RANGE_PAGE_SIZE, "prefix": prefix},
            ) or {}
            ids.extend(
                vector["id"]
                for vector in page.get("vectors", [])
                if str(vector.get("id", "")).startswith(prefix)
            )
            cursor = page.get("nextCursor") or ""
            if not cursor:
                break

        return ids

    async def delete(self, ids: List[str]) -> int:
        """Delete vectors by id; returns how many the backend removed."""
        if not ids:
            return 0
        result = await self._call("delete", ids) or {}
        return int(result.get("deleted", 0)) if isinstance(result, dict) else 0
