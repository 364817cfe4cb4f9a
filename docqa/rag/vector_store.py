"""Collection-oriented vector store client.

A collection is the set of records for one ingested document. The backing
index is flat, so a collection exists only as an id prefix plus the
``documentId`` metadata field. Every query filters on that field and
results from other collections are dropped, but isolation is only as strong
as the backend's filter support.

Backends are duck-typed and must provide async ``upsert(records)``,
``query(vector, top_k, document_id)``, ``list_ids(prefix)`` and
``delete(ids)``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import httpx
import structlog

from docqa import config
from docqa.errors import VectorBackendError
from docqa.rag.embedder import EmbeddingClient, get_embedder

logger = structlog.get_logger()


def vector_id(collection_id: str, chunk_index: int) -> str:
    """Deterministic record id for a chunk of a collection."""
    return f"{collection_id}_{chunk_index}"


@dataclass(frozen=True)
class VectorRecord:
    """A single embedded chunk ready for upsert."""

    id: str
    vector: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {"id": self.id, "vector": list(self.vector), "metadata": dict(self.metadata)}


@dataclass
class QueryResult:
    """A retrieved chunk with its similarity score."""

    id: str
    text: str
    score: float
    metadata: Dict[str, Any]

    @property
    def distance(self) -> float:
        """Distance derived from similarity (lower = more relevant)."""
        return 1 - self.score


class VectorStoreClient:
    """Batched upsert and top-K query over a flat vector backend."""

    def __init__(
        self,
        backend=None,
        embedder: Optional[EmbeddingClient] = None,
        batch_size: int = None,
    ):
        """Initialize the client.

        Args:
            backend: Vector backend (default chosen by config.VECTOR_BACKEND)
            embedder: Embedding client (default singleton)
            batch_size: Records per upsert request (default from config)
        """
        self.backend = backend if backend is not None else create_backend()
        self.embedder = embedder or get_embedder()
        self.batch_size = batch_size or config.UPSERT_BATCH_SIZE

    def build_records(
        self,
        collection_id: str,
        chunks: List[str],
        embeddings: List[List[float]],
        metadatas: Optional[List[Dict[str, Any]]] = None,
    ) -> List[VectorRecord]:
        """Pair chunks with vectors and merged metadata.

        Raises:
            ValueError: If the input lists differ in length
        """
        if len(embeddings) != len(chunks):
            raise ValueError(
                f"Got {len(embeddings)} embeddings for {len(chunks)} chunks"
            )
        if metadatas is not None and len(metadatas) != len(chunks):
            raise ValueError(
                f"Got {len(metadatas)} metadata entries for {len(chunks)} chunks"
            )

        records = []
        for index, (chunk, embedding) in enumerate(zip(chunks, embeddings)):
            metadata = dict(metadatas[index]) if metadatas else {}
            metadata.update(text=chunk, documentId=collection_id, chunkIndex=index)
            records.append(
                VectorRecord(
                    id=vector_id(collection_id, index),
                    vector=embedding,
                    metadata=metadata,
                )
            )
        return records

    async def upsert(
        self,
        collection_id: str,
        chunks: List[str],
        metadatas: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Embed and store chunks for a collection.

        Args:
            collection_id: Collection (document) identifier
            chunks: Chunk texts, in order
            metadatas: Optional per-chunk metadata, merged under the fixed fields

        Returns:
            Acknowledgement with upserted record and batch counts

        Raises:
            EmbeddingError: If embedding any chunk fails
            VectorBackendError: If the backend rejects a batch
        """
        if metadatas is not None and len(metadatas) != len(chunks):
            raise ValueError(
                f"Got {len(metadatas)} metadata entries for {len(chunks)} chunks"
            )

        logger.info("collection_upsert_started", collection_id=collection_id, chunks=len(chunks))

        embeddings = await self.embedder.embed(chunks)
        records = self.build_records(collection_id, chunks, embeddings, metadatas)

        batches = 0
        for start in range(0, len(records), self.batch_size):
            batch = records[start : start + self.batch_size]
            await self._backend_call(
                "upsert", self.backend.upsert([record.to_payload() for record in batch])
            )
            batches += 1
            logger.debug(
                "upsert_batch_written",
                collection_id=collection_id,
                batch=batches,
                size=len(batch),
            )

        logger.info(
            "collection_upserted",
            collection_id=collection_id,
            upserted=len(records),
            batches=batches,
        )
        return {"collection_id": collection_id, "upserted": len(records), "batches": batches}

    async def query(
        self, collection_id: str, query_text: str, top_k: int = 5
    ) -> List[QueryResult]:
        """Find the chunks of a collection closest to a query.

        Args:
            collection_id: Collection (document) identifier
            query_text: Natural-language query
            top_k: Number of results

        Returns:
            QueryResult list, most similar first

        Raises:
            EmbeddingError: If the query cannot be embedded
            VectorBackendError: If the backend query fails
        """
        query_vector = await self.embedder.embed_one(query_text)
        matches = await self._backend_call(
            "query", self.backend.query(query_vector, top_k, document_id=collection_id)
        )

        results = []
        for match in matches:
            metadata = match.get("metadata") or {}
            if metadata.get("documentId") != collection_id:
                logger.warning(
                    "foreign_vector_dropped",
                    collection_id=collection_id,
                    vector_id=match.get("id"),
                )
                continue
            results.append(
                QueryResult(
                    id=str(match.get("id")),
                    text=metadata.get("text") or "",
                    score=float(match.get("score", 0.0)),
                    metadata=metadata,
                )
            )

        logger.info(
            "collection_queried",
            collection_id=collection_id,
            top_k=top_k,
            results_found=len(results),
        )
        return results

    async def delete_collection(self, collection_id: str) -> int:
        """Best-effort removal of every record in a collection.

        Enumerates ids by prefix and deletes them in batches. Backend
        failures are logged and leave the remaining records in place.

        Returns:
            Number of records deleted
        """
        prefix = f"{collection_id}_"
        deleted = 0

        try:
            ids = await self._backend_call("list_ids", self.backend.list_ids(prefix))
            for start in range(0, len(ids), self.batch_size):
                batch = ids[start : start + self.batch_size]
                deleted += await self._backend_call("delete", self.backend.delete(batch))
        except VectorBackendError as e:
            logger.error(
                "collection_delete_failed",
                collection_id=collection_id,
                deleted=deleted,
                error=str(e),
            )
            return deleted

        logger.info("collection_deleted", collection_id=collection_id, deleted=deleted)
        return deleted

    @staticmethod
    async def _backend_call(operation: str, awaitable):
        """Await a backend call, mapping transport errors to VectorBackendError."""
        try:
            return await awaitable
        except VectorBackendError:
            raise
        except (httpx.HTTPError, RuntimeError, ValueError) as e:
            logger.error("vector_backend_failed", operation=operation, error=str(e))
            raise VectorBackendError(f"Vector backend {operation} failed: {e}") from e


def create_backend(name: str = None):
    """Build the configured vector backend.

    Args:
        name: "upstash" or "faiss" (default from config.VECTOR_BACKEND)

    Raises:
        ValueError: For an unknown backend name
    """
    name = (name or config.VECTOR_BACKEND).lower()

    if name == "upstash":
        from docqa.rag.store_upstash import UpstashVectorBackend

        return UpstashVectorBackend()

    if name == "faiss":
        from docqa.rag.store_faiss import FAISSVectorBackend

        backend = FAISSVectorBackend(persist=True)
        backend.init_or_load()
        return backend

    raise ValueError(f"Unknown vector backend: {name}")


# Singleton instance for convenience
_store_instance: Optional[VectorStoreClient] = None


def get_vector_store() -> VectorStoreClient:
    """Get or create a singleton vector store client.

    Returns:
        VectorStoreClient over the configured backend
    """
    global _store_instance
    if _store_instance is None:
        _store_instance = VectorStoreClient()
    return _store_instance
