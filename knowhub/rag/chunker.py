"""Sentence-based text chunking with overlap for the RAG pipeline.

Sizes are measured in characters; the overlap carried into the next chunk
is approximated in whole words (roughly ten characters per word).
"""
from typing import List
from dataclasses import dataclass
import structlog

from knowhub import config
from knowhub.errors import ValidationError

logger = structlog.get_logger()

SENTENCE_SEPARATOR = ". "
CHARS_PER_WORD = 10


@dataclass
class TextChunk:
    """A chunk of text and how much of it was carried over from the previous chunk."""

    content: str
    chunk_index: int
    overlap_chars: int = 0

    @property
    def new_content(self) -> str:
        """The part of the chunk that did not appear in the previous chunk."""
        return self.content[self.overlap_chars:]


def _split_sentences(text: str) -> List[str]:
    """Split on ". " keeping the separator attached, so "".join() restores text."""
    parts = text.split(SENTENCE_SEPARATOR)
    sentences = [part + SENTENCE_SEPARATOR for part in parts[:-1]]
    if parts[-1]:
        sentences.append(parts[-1])
    return sentences


def _overlap_seed(content: str, overlap_size: int) -> str:
    words = content.split()
    overlap_words = overlap_size // CHARS_PER_WORD
    if overlap_words == 0 or len(words) <= overlap_words:
        return ""
    return " ".join(words[-overlap_words:]) + " "


def validate_chunk_params(chunk_size: int, overlap_size: int) -> None:
    if chunk_size <= 0:
        raise ValidationError(f"Chunk size must be positive, got {chunk_size}")
    if overlap_size < 0:
        raise ValidationError(f"Overlap must not be negative, got {overlap_size}")
    if overlap_size >= chunk_size:
        raise ValidationError(
            f"Overlap ({overlap_size}) must be less than chunk size ({chunk_size})"
        )


class TextChunker:
    """Sentence-accumulating chunker with word-granular overlap."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Target maximum chunk size in characters (default from config)
            chunk_overlap: Approximate overlap in characters (default from config)

        Raises:
            ValidationError: If the sizes are inconsistent
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        validate_chunk_params(self.chunk_size, self.chunk_overlap)

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks at sentence boundaries.

        A sentence is never cut: a single sentence longer than chunk_size
        becomes a chunk of its own.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects, indexed 0..n-1
        """
        if not text or not text.strip():
            return []

        chunks: List[TextChunk] = []
        buffer = ""
        seed_length = 0

        for sentence in _split_sentences(text):
            has_new_content = len(buffer) > seed_length
            if has_new_content and len(buffer) + len(sentence) > self.chunk_size:
                chunks.append(
                    TextChunk(
                        content=buffer,
                        chunk_index=len(chunks),
                        overlap_chars=seed_length,
                    )
                )
                buffer = _overlap_seed(buffer, self.chunk_overlap)
                seed_length = len(buffer)

            buffer += sentence

        if len(buffer) > seed_length:
            chunks.append(
                TextChunk(
                    content=buffer,
                    chunk_index=len(chunks),
                    overlap_chars=seed_length,
                )
            )

        logger.debug(
            "text_chunked",
            text_length=len(text),
            chunk_count=len(chunks),
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


def chunk_text(text: str, chunk_size: int, overlap_size: int) -> List[str]:
    """Chunk text and return only the chunk strings.

    Args:
        text: Text to chunk
        chunk_size: Target maximum chunk size in characters
        overlap_size: Approximate overlap in characters

    Returns:
        Ordered list of chunk texts (empty for empty text)
    """
    chunker = TextChunker(chunk_size=chunk_size, chunk_overlap=overlap_size)
    return [chunk.content for chunk in chunker.chunk_text(text)]
