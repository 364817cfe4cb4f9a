"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- PDF text extraction with a raw-byte fallback chain
- Sentence-aware chunking with overlap
- Rate-limited embedding generation
- Vector storage (Upstash REST or local FAISS)
- Multi-document retrieval and answer generation
"""
