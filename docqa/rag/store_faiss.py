"""Local FAISS vector backend.

Handles:
- Exact cosine search over L2-normalized vectors (flat inner-product index)
- String ids mapped onto FAISS int64 ids, overwritten on re-upsert
- Record metadata kept alongside the index
- Optional persistence of index and metadata to disk
"""
import json
from pathlib import Path
from typing import Any, Dict, List, Optional
import numpy as np
import faiss
import structlog

from docqa import config

logger = structlog.get_logger()


class FAISSVectorBackend:
    """In-process flat index speaking the same record shape as Upstash."""

    def __init__(
        self,
        index_dir: Path = None,
        dimension: Optional[int] = None,
        persist: bool = False,
    ):
        """Initialize the FAISS backend.

        Args:
            index_dir: Directory for index and metadata files (default from config)
            dimension: Vector dimension (detected from the first upsert if omitted)
            persist: Write index and metadata to disk after every change
        """
        self.index_dir = Path(index_dir) if index_dir else config.VECTOR_INDEX_DIR
        self.persist = persist

        self.index_path = self.index_dir / "vectors.index"
        self.metadata_path = self.index_dir / "metadata.json"

        self.index: Optional[faiss.Index] = None
        self.dimension: Optional[int] = None
        self._int_ids: Dict[str, int] = {}
        self._keys: Dict[int, str] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}
        self._next_id = 0

        if dimension is not None:
            self.init_new_index(dimension)

        logger.info(
            "faiss_backend_initialized",
            index_dir=str(self.index_dir),
            persist=self.persist,
        )

    def init_new_index(self, dimension: int) -> None:
        """Initialize an empty index of the given dimension."""
        self.dimension = dimension
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))
        self._int_ids = {}
        self._keys = {}
        self._metadata = {}
        self._next_id = 0

        logger.info("faiss_index_initialized", dimension=dimension, index_type="IndexFlatIP")

    def load_index(self) -> None:
        """Load index and metadata from disk.

        Raises:
            FileNotFoundError: If index files don't exist
            RuntimeError: If loading fails
        """
        if not self.index_path.exists():
            raise FileNotFoundError(f"Index not found: {self.index_path}")

        if not self.metadata_path.exists():
            raise FileNotFoundError(f"Metadata not found: {self.metadata_path}")

        try:
            with open(self.metadata_path, "r") as f:
                stored = json.load(f)
            self.index = faiss.read_index(str(self.index_path))
        except Exception as e:
            raise RuntimeError(f"Failed to load FAISS index: {e}") from e

        self.dimension = stored["dimension"]
        self._next_id = stored["next_id"]
        self._int_ids = {key: int(value) for key, value in stored["ids"].items()}
        self._keys = {value: key for key, value in self._int_ids.items()}
        self._metadata = stored["metadata"]

        logger.info(
            "faiss_index_loaded",
            dimension=self.dimension,
            vector_count=self.index.ntotal,
        )

    def save_index(self) -> None:
        """Save index and metadata to disk.

        Raises:
            RuntimeError: If save fails
        """
        if self.index is None:
            raise RuntimeError("No index to save. Upsert vectors or load an index first.")

        self.index_dir.mkdir(parents=True, exist_ok=True)

        try:
            faiss.write_index(self.index, str(self.index_path))
            with open(self.metadata_path, "w") as f:
                json.dump(
                    {
                        "dimension": self.dimension,
                        "next_id": self._next_id,
                        "ids": self._int_ids,
                        "metadata": self._metadata,
                    },
                    f,
                )
        except Exception as e:
            raise RuntimeError(f"Failed to save FAISS index: {e}") from e

        logger.info(
            "faiss_index_saved",
            index_path=str(self.index_path),
            vector_count=self.index.ntotal,
        )

    def init_or_load(self) -> None:
        """Load the on-disk index if one exists."""
        if self.index_path.exists() and self.metadata_path.exists():
            logger.info("existing_index_detected", path=str(self.index_path))
            self.load_index()

    @staticmethod
    def _prepare(vectors: List[List[float]]) -> np.ndarray:
        array = np.ascontiguousarray(np.array(vectors, dtype=np.float32))
        faiss.normalize_L2(array)
        return array

    async def upsert(self, records: List[Dict[str, Any]]) -> None:
        """Insert or overwrite records of the form {id, vector, metadata}.

        Raises:
            ValueError: On dimension mismatch
        """
        if not records:
            return

        # Last write wins for ids repeated within one call
        records = list({record["id"]: record for record in records}.values())

        if self.index is None:
            self.init_new_index(len(records[0]["vector"]))

        vectors = self._prepare([record["vector"] for record in records])
        if vectors.shape[1] != self.dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, "
                f"got {vectors.shape[1]}"
            )

        existing = [self._int_ids[r["id"]] for r in records if r["id"] in self._int_ids]
        if existing:
            self.index.remove_ids(np.array(existing, dtype=np.int64))

        int_ids = []
        for record in records:
            key = record["id"]
            if key not in self._int_ids:
                self._int_ids[key] = self._next_id
                self._keys[self._next_id] = key
                self._next_id += 1
            int_ids.append(self._int_ids[key])
            self._metadata[key] = dict(record.get("metadata") or {})

        self.index.add_with_ids(vectors, np.array(int_ids, dtype=np.int64))

        logger.info(
            "vectors_upserted",
            count=len(records),
            replaced=len(existing),
            total_vectors=self.index.ntotal,
        )

        if self.persist:
            self.save_index()

    async def query(
        self,
        vector: List[float],
        top_k: int,
        document_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return up to top_k matches as {id, score, metadata}, best first.

        Args:
            vector: Query vector
            top_k: Number of neighbours
            document_id: Restrict matches to this documentId metadata value
        """
        if self.index is None or self.index.ntotal == 0 or top_k <= 0:
            return []

        query_vector = self._prepare([vector])
        if query_vector.shape[1] != self.dimension:
            raise ValueError(
                f"Query dimension mismatch: expected {self.dimension}, "
                f"got {query_vector.shape[1]}"
            )

        # Filtered queries scan the whole index
        k = self.index.ntotal if document_id else min(top_k, self.index.ntotal)
        scores, indices = self.index.search(query_vector, k)

        matches = []
        for score, int_id in zip(scores[0].tolist(), indices[0].tolist()):
            if int_id < 0:
                continue
            key = self._keys[int_id]
            metadata = self._metadata.get(key, {})
            if document_id and metadata.get("documentId") != document_id:
                continue
            matches.append({"id": key, "score": float(score), "metadata": metadata})
            if len(matches) >= top_k:
                break

        return matches

    async def list_ids(self, prefix: str) -> List[str]:
        """Enumerate every vector id starting with prefix."""
        return sorted(key for key in self._int_ids if key.startswith(prefix))

    async def delete(self, ids: List[str]) -> int:
        """Delete vectors by id; returns how many were removed."""
        int_ids = [self._int_ids[key] for key in ids if key in self._int_ids]
        if not int_ids or self.index is None:
            return 0

        removed = int(self.index.remove_ids(np.array(int_ids, dtype=np.int64)))
        for int_id in int_ids:
            key = self._keys.pop(int_id)
            del self._int_ids[key]
            self._metadata.pop(key, None)

        logger.info("vectors_deleted", count=removed, total_vectors=self.index.ntotal)

        if self.persist:
            self.save_index()
        return removed
