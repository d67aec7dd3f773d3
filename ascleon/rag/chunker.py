"""Word-based text chunking for the RAG pipeline.

Chunks are fixed-size runs of whitespace-separated words with no overlap and
no sentence awareness.
"""
from dataclasses import dataclass
from typing import List

import structlog

from ascleon import config

logger = structlog.get_logger()


@dataclass
class TextChunk:
    """A chunk of text with its position in the source document."""

    content: str
    chunk_index: int
    word_count: int


def chunk_words(text: str, chunk_size: int = None) -> List[str]:
    """Split text into groups of ``chunk_size`` words joined by single spaces.

    The final group may be shorter. Empty or whitespace-only text yields no
    chunks.
    """
    if chunk_size is None:
        chunk_size = config.CHUNK_SIZE
    if chunk_size < 1:
        raise ValueError(f"Chunk size must be positive, got {chunk_size}")

    words = text.split() if text else []
    return [
        " ".join(words[start : start + chunk_size])
        for start in range(0, len(words), chunk_size)
    ]


class TextChunker:
    """Fixed-size word chunker."""

    def __init__(self, chunk_size: int = None):
        """Initialize the text chunker.

        Args:
            chunk_size: Words per chunk (default from config)
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size

        if self.chunk_size < 1:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")

        logger.info("chunker_initialized", chunk_size=self.chunk_size)

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into chunks with contiguous zero-based indices.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects in document order
        """
        pieces = chunk_words(text, self.chunk_size)

        chunks = [
            TextChunk(content=piece, chunk_index=index, word_count=len(piece.split()))
            for index, piece in enumerate(pieces)
        ]

        logger.info(
            "text_chunked",
            text_length=len(text or ""),
            chunk_count=len(chunks),
            word_count=sum(c.word_count for c in chunks),
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
                "total_words": 0,
                "min_chunk_words": 0,
                "max_chunk_words": 0,
            }

        sizes = [c.word_count for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_words": sum(sizes),
            "min_chunk_words": min(sizes),
            "max_chunk_words": max(sizes),
        }
