"""Sentence-aware text chunking with overlap for the RAG pipeline.

Character-based sizing to avoid tokenizer dependencies. Sentences are
packed greedily; a chunk that overflows seeds the next one with its
trailing words so context carries across the boundary.
"""
import re
from typing import List
from dataclasses import dataclass
import structlog

from docqa import config

logger = structlog.get_logger()

SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass
class TextChunk:
    """A chunk of extracted text and its position in the sequence."""

    content: str
    chunk_index: int


class TextChunker:
    """Greedy sentence packer with word-level overlap."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Maximum chunk size in characters (default from config)
            chunk_overlap: Overlap budget in characters (default from config)
        """
        self.chunk_size = chunk_size if chunk_size is not None else config.CHUNK_SIZE
        self.chunk_overlap = (
            chunk_overlap if chunk_overlap is not None else config.CHUNK_OVERLAP
        )

        # Validate parameters
        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be non-negative and less than "
                f"chunk size ({self.chunk_size})"
            )

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    @property
    def overlap_words(self) -> int:
        """Number of trailing words carried into the next chunk."""
        return self.chunk_overlap // 10

    def split_sentences(self, text: str) -> List[str]:
        """Collapse whitespace and split at . ! ? followed by whitespace."""
        clean = re.sub(r"\s+", " ", text or "").strip()
        if not clean:
            return []
        return [s for s in SENTENCE_BOUNDARY.split(clean) if s.strip()]

    def split(self, text: str) -> List[str]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk

        Returns:
            Ordered list of non-empty chunk strings
        """
        chunks: List[str] = []
        buffer = ""

        for sentence in self.split_sentences(text):
            candidate = f"{buffer} {sentence}" if buffer else sentence

            if len(candidate) <= self.chunk_size:
                buffer = candidate
                continue

            if buffer:
                chunks.append(buffer)
                seed = self._overlap_seed(buffer)

                if len(sentence) <= self.chunk_size:
                    buffer = f"{seed} {sentence}" if seed else sentence
                    continue

            # Sentence alone is longer than a chunk: cut hard windows
            buffer = self._split_long_sentence(sentence, chunks)

        if buffer:
            chunks.append(buffer)

        return [chunk for chunk in chunks if chunk.strip()]

    def _overlap_seed(self, chunk: str) -> str:
        if self.overlap_words <= 0:
            return ""
        return " ".join(chunk.split(" ")[-self.overlap_words:])

    def _split_long_sentence(self, sentence: str, chunks: List[str]) -> str:
        """Emit fixed windows of an oversized sentence; return the remainder.

        Each window is chunk_size characters and the next one starts
        chunk_overlap characters before the previous end.
        """
        step = self.chunk_size - self.chunk_overlap
        remainder = sentence

        while len(remainder) > self.chunk_size:
            chunks.append(remainder[: self.chunk_size])
            remainder = remainder[step:]

        logger.debug(
            "long_sentence_split",
            sentence_length=len(sentence),
            remainder_length=len(remainder),
        )
        return remainder

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into indexed chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects with contiguous indices from 0
        """
        pieces = self.split(text)
        chunks = [
            TextChunk(content=piece, chunk_index=index)
            for index, piece in enumerate(pieces)
        ]

        if chunks:
            logger.info(
                "text_chunked",
                text_length=len(text),
                chunk_count=len(chunks),
                avg_chunk_size=sum(len(c.content) for c in chunks) // len(chunks),
            )

        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


# Singleton instance for convenience
_chunker_instance = None


def get_chunker() -> TextChunker:
    """Get a singleton text chunker instance.

    Returns:
        TextChunker instance with default config
    """
    global _chunker_instance
    if _chunker_instance is None:
        _chunker_instance = TextChunker()
    return _chunker_instance


def chunk_text(text: str, chunk_size: int = None, chunk_overlap: int = None) -> List[str]:
    """Split text into chunk strings (convenience function).

    Args:
        text: Text to chunk
        chunk_size: Override the configured chunk size
        chunk_overlap: Override the configured overlap

    Returns:
        List of chunk strings
    """
    if chunk_size is None and chunk_overlap is None:
        return get_chunker().split(text)
    return TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap).split(text)
