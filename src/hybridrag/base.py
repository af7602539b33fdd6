"""Base classes and abstract interfaces for hybridrag components."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .document import Chunk, Document, ScoredResult, VectorRecord


class BaseEmbedding(ABC):
    """Abstract base class for embedding providers.

    Embedding providers convert text into dense vector representations.
    Repeated calls with identical text must return vectors whose cosine
    similarity to each other is close to 1.0.
    """

    @abstractmethod
    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of documents.

        Args:
            texts: List of text strings to embed

        Returns:
            List of embedding vectors, same length and order as ``texts``
        """
        pass

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        """Embed a single query.

        Args:
            text: Query text to embed

        Returns:
            Embedding vector
        """
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimension of the embedding vectors."""
        pass

    async def close(self) -> None:
        """Release any client resources."""


class BaseVectorStore(ABC):
    """Abstract base class for vector stores.

    Vector stores hold one ``VectorRecord`` per chunk id and answer top-K
    cosine similarity queries. Similarities are reported as
    ``(cosine + 1) / 2`` so they fall in [0, 1].
    """

    @property
    @abstractmethod
    def dimension(self) -> Optional[int]:
        """Fixed vector dimensionality, or None until the first insertion."""
        pass

    @abstractmethod
    async def upsert(self, record: "VectorRecord") -> None:
        """Insert a record, replacing any record with the same chunk id.

        Raises:
            DimensionMismatchError: If the vector length does not match the store
            ProviderError: If the backend fails
        """
        pass

    @abstractmethod
    async def search(
        self,
        query_vector: list[float],
        top_k: int = 5,
    ) -> list["ScoredResult"]:
        """Search for the chunks most similar to ``query_vector``.

        Args:
            query_vector: Query embedding vector
            top_k: Maximum number of results

        Returns:
            Results sorted by similarity, highest first
        """
        pass

    @abstractmethod
    async def delete(self, chunk_id: str) -> bool:
        """Delete the record for ``chunk_id``.

        Returns:
            True if a record was removed
        """
        pass

    @abstractmethod
    async def get(self, chunk_id: str) -> Optional["VectorRecord"]:
        """Get the record for ``chunk_id``, or None."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored records."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every record."""
        pass

    async def records(self) -> list["VectorRecord"]:
        """Return every stored record.

        Lets a pipeline rebuild its keyword index over a store that outlives
        the process. Stores that cannot enumerate their records return [].
        """
        return []

    async def close(self) -> None:
        """Release any backend resources."""


class BaseKeywordIndex(ABC):
    """Abstract base class for lexical (BM25) indices."""

    @abstractmethod
    async def upsert(
        self,
        chunk_id: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
        document_id: str = "",
    ) -> None:
        """Index ``content`` under ``chunk_id``, replacing earlier content."""
        pass

    @abstractmethod
    async def search(self, query: str, top_k: int = 5) -> list["ScoredResult"]:
        """Return the best BM25 matches for ``query``, highest first."""
        pass

    @abstractmethod
    async def delete(self, chunk_id: str) -> bool:
        """Remove ``chunk_id`` from the index."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Return the number of indexed chunks."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every indexed chunk."""
        pass


class BaseChunker(ABC):
    """Abstract base class for document chunkers.

    Subclasses compute chunk boundaries in ``split``; ``chunk`` turns the
    boundaries into ``Chunk`` objects.
    """

    name: str = "base"

    @abstractmethod
    def split(self, text: str) -> list[tuple[int, int]]:
        """Compute chunk boundaries.

        Args:
            text: Text to split

        Returns:
            ``(start, end)`` character offsets, in document order
        """
        pass

    def chunk(self, document: "Document") -> list["Chunk"]:
        """Split a document into chunks.

        Args:
            document: Document to chunk

        Returns:
            List of chunks
        """
        from .document import Chunk

        chunks = []
        for index, (start, end) in enumerate(self.split(document.content)):
            metadata = {
                **document.metadata,
                "document_id": document.id,
                "chunk_index": index,
                "chunker": self.name,
            }
            metadata.setdefault("source", document.id)

            chunks.append(Chunk(
                id=f"{document.id}_chunk_{index}",
                document_id=document.id,
                content=document.content[start:end],
                metadata=metadata,
                start_index=start,
                end_index=end,
            ))

        return chunks


class BaseReranker(ABC):
    """Abstract base class for reranking providers.

    A reranker scores (query, document) pairs jointly.
    """

    name: str = "reranker"

    @abstractmethod
    async def score(self, query: str, documents: list[str]) -> list[float]:
        """Score each document's relevance to ``query``.

        Args:
            query: Original query string
            documents: Candidate texts

        Returns:
            One score per document, same order as ``documents``
        """
        pass

    async def close(self) -> None:
        """Release any client resources."""
