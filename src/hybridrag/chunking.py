"""Document chunking strategies."""

from typing import TYPE_CHECKING

from .base import BaseChunker
from .config import ChunkingStrategy
from .document import Chunk, Document
from .exceptions import ConfigurationError
from .text import sentence_spans

if TYPE_CHECKING:
    from .config import RAGConfig


def _check_sizes(chunk_size: int, overlap: int) -> None:
    if chunk_size <= 0:
        raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0:
        raise ConfigurationError(f"overlap must not be negative, got {overlap}")
    if overlap >= chunk_size:
        raise ConfigurationError("Overlap must be less than chunk_size")


class FixedSizeChunker(BaseChunker):
    """Chunk documents into fixed-size pieces with optional overlap.

    Simple but effective chunking strategy that splits text into
    chunks of a specified character count.
    """

    name = ChunkingStrategy.FIXED_SIZE.value

    def __init__(
        self,
        chunk_size: int = 300,
        overlap: int = 50,
    ):
        """Initialize the fixed-size chunker.

        Args:
            chunk_size: Maximum characters per chunk
            overlap: Number of characters to overlap between chunks
        """
        _check_sizes(chunk_size, overlap)

        self.chunk_size = chunk_size
        self.overlap = overlap

    def split(self, text: str) -> list[tuple[int, int]]:
        """Slide a ``chunk_size`` window advancing by ``chunk_size - overlap``."""
        spans = []
        start = 0

        while start < len(text):
            end = min(start + self.chunk_size, len(text))
            spans.append((start, end))

            if end == len(text):
                break
            # Move start position, accounting for overlap
            start = end - self.overlap

        return spans


class SentenceChunker(BaseChunker):
    """Pack whole sentences into chunks of at most ``chunk_size`` characters.

    Each new chunk starts ``overlap`` characters before the end of the
    previous one, so context carries across boundaries. The carried
    overlap shrinks when the next sentence would otherwise not fit.
    Sentences longer than ``chunk_size`` are cut into fixed windows.
    """

    name = ChunkingStrategy.SENTENCE.value

    def __init__(
        self,
        chunk_size: int = 300,
        overlap: int = 50,
    ):
        """Initialize the sentence chunker.

        Args:
            chunk_size: Maximum characters per chunk
            overlap: Characters carried from the end of one chunk into the next
        """
        _check_sizes(chunk_size, overlap)

        self.chunk_size = chunk_size
        self.overlap = overlap

    def _units(self, text: str) -> list[tuple[int, int]]:
        """Sentence spans, with oversized sentences cut to ``chunk_size``."""
        units = []
        for start, end in sentence_spans(text):
            if end - start <= self.chunk_size:
                units.append((start, end))
                continue
            for piece_start in range(start, end, self.chunk_size):
                units.append((piece_start, min(piece_start + self.chunk_size, end)))
        return units

    def split(self, text: str) -> list[tuple[int, int]]:
        """Greedily pack sentences, carrying overlap into the next chunk."""
        units = self._units(text)
        if not units:
            return []

        spans = []
        start, end = units[0][0], units[0][0]

        for _, unit_end in units:
            if unit_end - start <= self.chunk_size:
                end = unit_end
                continue

            spans.append((start, end))
            # Units are contiguous and each fits in chunk_size, so the new
            # start never passes the previous end and always moves forward.
            start = max(end - self.overlap, unit_end - self.chunk_size)
            end = unit_end

        spans.append((start, end))
        return spans


def create_chunker(
    strategy: ChunkingStrategy | str = ChunkingStrategy.SENTENCE,
    chunk_size: int = 300,
    overlap: int = 50,
) -> BaseChunker:
    """
    Factory function to create chunkers.

    Args:
        strategy: 'fixed_size' or 'sentence'
        chunk_size: Maximum characters per chunk
        overlap: Overlap characters between chunks

    Returns:
        Configured chunker

    Raises:
        ConfigurationError: For an unknown strategy or invalid sizes
    """
    try:
        strategy = ChunkingStrategy(strategy)
    except ValueError:
        raise ConfigurationError(
            f"Unknown chunking strategy: {strategy}. "
            f"Supported: {', '.join(s.value for s in ChunkingStrategy)}"
        ) from None

    if strategy is ChunkingStrategy.FIXED_SIZE:
        return FixedSizeChunker(chunk_size=chunk_size, overlap=overlap)
    return SentenceChunker(chunk_size=chunk_size, overlap=overlap)


def chunk_text(
    text: str,
    config: "RAGConfig",
    document_id: str = "document",
) -> list[Chunk]:
    """Split ``text`` into chunks according to ``config``.

    Pure function: nothing is embedded or indexed.

    Args:
        text: Raw document text
        config: Supplies the strategy, chunk size and overlap
        document_id: ID used to derive chunk ids

    Returns:
        Chunks in document order (empty for empty text)
    """
    chunker = create_chunker(
        config.chunking_strategy,
        chunk_size=config.chunk_size,
        overlap=config.chunk_overlap,
    )
    return chunker.chunk(Document(id=document_id, content=text))
