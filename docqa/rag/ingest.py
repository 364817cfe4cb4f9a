"""Ingest pipeline for uploaded PDF documents.

Orchestrates:
- Document record creation and status transitions
- PDF text extraction
- Text chunking
- Embedding generation and vector upsert

A document moves from 'processing' to 'ready' or 'error' exactly once,
after the whole pipeline has finished or failed.
"""
import asyncio
import time
import uuid
from typing import Any, Dict, Optional
import structlog

from docqa import config, db
from docqa.errors import IngestionError
from docqa.rag.chunker import TextChunker
from docqa.rag.pdf_parser import PDFTextExtractor, get_extractor
from docqa.rag.vector_store import VectorStoreClient, get_vector_store

logger = structlog.get_logger()

PDF_MAGIC = b"%PDF"


def collection_name(document_id: str) -> str:
    """Vector collection id for a document."""
    return f"doc_{document_id}"


class IngestPipeline:
    """Pipeline for ingesting uploaded PDFs into the vector store."""

    def __init__(
        self,
        extractor: Optional[PDFTextExtractor] = None,
        vector_store: Optional[VectorStoreClient] = None,
        chunk_size: int = None,
        chunk_overlap: int = None,
        max_upload_bytes: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            extractor: PDF text extractor (default singleton)
            vector_store: Vector store client (default singleton)
            chunk_size: Chunk size in characters (default from config)
            chunk_overlap: Chunk overlap in characters (default from config)
            max_upload_bytes: Largest accepted upload (default from config)
        """
        self.extractor = extractor or get_extractor()
        self.vector_store = vector_store or get_vector_store()
        self.chunker = TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self.max_upload_bytes = max_upload_bytes or config.MAX_UPLOAD_BYTES

        logger.info(
            "ingest_pipeline_initialized",
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
        )

    def validate_upload(self, filename: str, data: bytes) -> None:
        """Reject uploads that cannot be processed.

        Raises:
            ValueError: If the file is empty, too large or not a PDF
        """
        if not data:
            raise ValueError("Uploaded file is empty")
        if len(data) > self.max_upload_bytes:
            raise ValueError(
                f"File size must be less than {self.max_upload_bytes // (1024 * 1024)}MB"
            )
        if not filename.lower().endswith(".pdf") and PDF_MAGIC not in data[:1024]:
            raise ValueError("Only PDF files are allowed")

    async def ingest_document(self, document_id: str, data: bytes) -> Dict[str, Any]:
        """Extract, chunk, embed and store one document.

        Args:
            document_id: Document record id
            data: Raw PDF bytes

        Returns:
            Dictionary with collection id, chunk count and extraction metadata

        Raises:
            EmbeddingError: If embedding fails
            VectorBackendError: If the vector backend rejects the upsert
        """
        # CPU-bound stages run in worker threads
        extracted = await asyncio.to_thread(self.extractor.extract, data)
        chunks = await asyncio.to_thread(self.chunker.split, extracted.text)

        if not chunks:
            # Every document keeps at least one searchable chunk
            chunks = [extracted.text.strip() or self.extractor.failure_sentinel().text]

        collection_id = collection_name(document_id)
        page_metadata = extracted.as_metadata()
        metadatas = [
            {**page_metadata, "documentId": collection_id, "chunkIndex": index}
            for index in range(len(chunks))
        ]

        ack = await self.vector_store.upsert(collection_id, chunks, metadatas)

        return {
            "collection_id": collection_id,
            "chunks_count": len(chunks),
            "upserted": ack["upserted"],
            "metadata": {
                "totalPages": extracted.page_count,
                "totalWords": extracted.word_count,
                "title": extracted.title,
                "extractionMethod": extracted.method,
            },
        }

    async def ingest_upload(self, filename: str, data: bytes) -> Dict[str, Any]:
        """Create a document record and ingest an uploaded PDF.

        Args:
            filename: Original file name
            data: Raw PDF bytes

        Returns:
            The ready document record plus extraction metadata

        Raises:
            ValueError: If the upload fails validation (no record is created)
            IngestionError: If any stage fails; the document is marked 'error'
        """
        self.validate_upload(filename, data)

        document_id = uuid.uuid4().hex
        db.create_document(
            document_id,
            filename=f"{document_id}_{int(time.time())}_{filename}",
            original_name=filename,
            file_size=len(data),
        )

        logger.info("ingesting_document", document_id=document_id, filename=filename, size=len(data))

        try:
            result = await self.ingest_document(document_id, data)
        except asyncio.CancelledError:
            logger.warning("document_ingestion_cancelled", document_id=document_id)
            db.update_document(document_id, status="error", chunks_count=0)
            raise
        except Exception as e:
            logger.error(
                "document_ingestion_failed",
                document_id=document_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            # Never leave a partial vector set behind an errored document
            await self.vector_store.delete_collection(collection_name(document_id))
            db.update_document(document_id, status="error", chunks_count=0)
            raise IngestionError(
                f"Failed to process document: {e}", document_id=document_id
            ) from e

        db.update_document(
            document_id,
            status="ready",
            chunks_count=result["chunks_count"],
            vector_store_id=result["collection_id"],
        )

        logger.info(
            "document_ingested",
            document_id=document_id,
            chunks_created=result["chunks_count"],
            extraction_method=result["metadata"]["extractionMethod"],
        )

        document = db.get_document(document_id)
        document["metadata"] = result["metadata"]
        return document

    async def delete_document(self, document_id: str) -> bool:
        """Remove a document's vectors (best-effort) and its record.

        Returns:
            True if the record existed
        """
        document = db.get_document(document_id)
        if document is None:
            return False

        collection_id = document.get("vector_store_id") or collection_name(document_id)
        deleted = await self.vector_store.delete_collection(collection_id)
        db.delete_document(document_id)

        logger.info("document_deleted", document_id=document_id, vectors_deleted=deleted)
        return True


# Convenience function for one-off uploads
async def ingest_pdf(filename: str, data: bytes) -> Dict[str, Any]:
    """Ingest a single PDF with default components (convenience function).

    Args:
        filename: Original file name
        data: Raw PDF bytes

    Returns:
        The ready document record
    """
    pipeline = IngestPipeline()
    return await pipeline.ingest_upload(filename, data)
