"""Ingestion and retrieval core for chatting with PDF documents."""

__version__ = "0.1.0"
