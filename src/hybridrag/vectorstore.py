"""Vector store implementations."""

import asyncio
import heapq
import math
from typing import Any, Optional

from .base import BaseVectorStore
from .document import ScoredResult, VectorRecord
from .exceptions import ConfigurationError, DimensionMismatchError, ProviderError
from .utils.locks import KeyedLock
from .utils.logging import get_logger

logger = get_logger(__name__)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Calculate cosine similarity between two vectors."""
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    dot_product = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return dot_product / (norm_a * norm_b)


def similarity_to_score(cosine: float) -> float:
    """Map a cosine similarity in [-1, 1] onto [0, 1]."""
    return max(0.0, min(1.0, (cosine + 1.0) / 2.0))


class MemoryVectorStore(BaseVectorStore):
    """In-memory vector store for testing and small datasets.

    Stores all vectors in memory and performs an exact linear scan,
    keeping the top-K with a heap instead of sorting every candidate.
    """

    def __init__(self, dimension: Optional[int] = None) -> None:
        """Initialize the memory vector store.

        Args:
            dimension: Fixed dimensionality; taken from the first record if None
        """
        self._dimension = dimension
        self._records: dict[str, VectorRecord] = {}
        self._locks = KeyedLock()

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def _check_dimension(self, vector_length: int, chunk_id: Optional[str] = None) -> None:
        if self._dimension is not None and vector_length != self._dimension:
            raise DimensionMismatchError(self._dimension, vector_length, chunk_id)

    async def upsert(self, record: VectorRecord) -> None:
        """Add or replace the record for ``record.chunk_id``."""
        async with self._locks.hold(record.chunk_id):
            self._check_dimension(record.dimension, record.chunk_id)
            if self._dimension is None:
                self._dimension = record.dimension
            # Records are immutable, so readers see either the old or the new one
            self._records[record.chunk_id] = record

        logger.debug(f"Upserted vector for chunk {record.chunk_id}")

    async def search(
        self,
        query_vector: list[float],
        top_k: int = 5,
    ) -> list[ScoredResult]:
        """Search for similar chunks using cosine similarity."""
        if top_k <= 0 or not self._records:
            return []

        self._check_dimension(len(query_vector))
        snapshot = list(self._records.values())

        scored = (
            (cosine_similarity(query_vector, record.vector), record)
            for record in snapshot
        )
        best = heapq.nsmallest(
            top_k,
            scored,
            key=lambda item: (-item[0], item[1].chunk_id),
        )

        return [
            ScoredResult(
                chunk_id=record.chunk_id,
                document_id=record.document_id,
                content=record.content,
                metadata=dict(record.metadata),
                score=similarity_to_score(similarity),
            )
            for similarity, record in best
        ]

    async def delete(self, chunk_id: str) -> bool:
        """Delete the record for ``chunk_id``."""
        async with self._locks.hold(chunk_id):
            return self._records.pop(chunk_id, None) is not None

    async def get(self, chunk_id: str) -> Optional[VectorRecord]:
        """Get a record by its chunk ID."""
        return self._records.get(chunk_id)

    async def records(self) -> list[VectorRecord]:
        """Return every record, ordered by chunk ID."""
        return sorted(self._records.values(), key=lambda record: record.chunk_id)

    async def count(self) -> int:
        """Return the number of records."""
        return len(self._records)

    async def clear(self) -> None:
        """Clear all records."""
        self._records.clear()


class ChromaVectorStore(BaseVectorStore):
    """ChromaDB vector store implementation.

    Uses ChromaDB for persistent vector storage. Top-K queries map onto
    the collection's native nearest-neighbour search in cosine space.
    A pipeline reopened over a persisted collection rebuilds its keyword
    index from ``records()`` via ``RAGPipeline.restore``.
    Requires the 'vector' extra to be installed.
    """

    def __init__(
        self,
        collection_name: str = "hybridrag",
        persist_directory: Optional[str] = None,
        dimension: Optional[int] = None,
    ):
        """Initialize the ChromaDB vector store.

        Args:
            collection_name: Name of the ChromaDB collection
            persist_directory: Directory for persistent storage (None for in-memory)
            dimension: Fixed dimensionality; taken from the first record if None
        """
        self.collection_name = collection_name
        self.persist_directory = persist_directory
        self._dimension = dimension
        self._client = None
        self._collection = None
        self._locks = KeyedLock()

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def _get_client(self):
        """Get or create the ChromaDB client."""
        if self._client is None:
            try:
                import chromadb
            except ImportError:
                raise ImportError(
                    "ChromaDB vector store requires 'chromadb'. "
                    "Install it with: pip install hybridrag[vector]"
                )

            if self.persist_directory:
                self._client = chromadb.PersistentClient(path=self.persist_directory)
            else:
                self._client = chromadb.Client()

        return self._client

    def _get_collection(self):
        """Get or create the collection."""
        if self._collection is None:
            client = self._get_client()
            self._collection = client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        return self._collection

    async def _run(self, operation: str, func) -> Any:
        """Run a blocking call against the collection in the default executor.

        ``func`` receives the collection. Client and collection creation
        happen inside the call, so their faults are wrapped too.
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, lambda: func(self._get_collection()))
        except ImportError:
            raise
        except Exception as e:
            raise ProviderError(f"{operation} failed: {e}", provider="chroma") from e

    @staticmethod
    def _flatten_metadata(record: VectorRecord) -> dict[str, Any]:
        # Chroma only accepts scalar metadata values
        metadata: dict[str, Any] = {}
        for key, value in record.metadata.items():
            if isinstance(value, (str, int, float, bool)):
                metadata[key] = value
            elif value is not None:
                metadata[key] = str(value)
        metadata["document_id"] = record.document_id
        return metadata

    @staticmethod
    def _to_records(results) -> list[VectorRecord]:
        if not results or not results["ids"]:
            return []

        embeddings = results.get("embeddings")
        records = []
        for i, chunk_id in enumerate(results["ids"]):
            metadata = dict(results["metadatas"][i] or {}) if results["metadatas"] else {}
            vector = embeddings[i] if embeddings is not None and len(embeddings) > i else []
            records.append(VectorRecord(
                chunk_id=chunk_id,
                vector=tuple(float(v) for v in vector),
                content=results["documents"][i] if results["documents"] else "",
                document_id=metadata.pop("document_id", ""),
                metadata=metadata,
            ))
        return records

    async def upsert(self, record: VectorRecord) -> None:
        """Add or replace a record in ChromaDB."""
        async with self._locks.hold(record.chunk_id):
            if self._dimension is not None and record.dimension != self._dimension:
                raise DimensionMismatchError(self._dimension, record.dimension, record.chunk_id)

            await self._run(
                "upsert",
                lambda collection: collection.upsert(
                    ids=[record.chunk_id],
                    embeddings=[list(record.vector)],
                    documents=[record.content],
                    metadatas=[self._flatten_metadata(record)],
                ),
            )
            if self._dimension is None:
                self._dimension = record.dimension

        logger.debug(f"Upserted chunk {record.chunk_id} into collection '{self.collection_name}'")

    async def search(
        self,
        query_vector: list[float],
        top_k: int = 5,
    ) -> list[ScoredResult]:
        """Search for similar chunks in ChromaDB."""
        if top_k <= 0:
            return []
        if self._dimension is not None and len(query_vector) != self._dimension:
            raise DimensionMismatchError(self._dimension, len(query_vector))

        total = await self._run("count", lambda collection: collection.count())
        if total == 0:
            return []

        results = await self._run(
            "query",
            lambda collection: collection.query(
                query_embeddings=[list(query_vector)],
                n_results=min(top_k, total),
                include=["documents", "metadatas", "distances"],
            ),
        )

        search_results = []
        if results and results["ids"] and results["ids"][0]:
            for i, chunk_id in enumerate(results["ids"][0]):
                metadata = dict(results["metadatas"][0][i] or {}) if results["metadatas"] else {}
                document_id = metadata.pop("document_id", "")

                # Cosine distance is 1 - cosine similarity
                distance = results["distances"][0][i] if results["distances"] else 1.0
                search_results.append(ScoredResult(
                    chunk_id=chunk_id,
                    document_id=document_id,
                    content=results["documents"][0][i] if results["documents"] else "",
                    metadata=metadata,
                    score=similarity_to_score(1.0 - distance),
                ))

        search_results.sort(key=lambda r: (-r.score, r.chunk_id))
        return search_results

    async def delete(self, chunk_id: str) -> bool:
        """Delete a record from ChromaDB."""
        async with self._locks.hold(chunk_id):
            found = await self._run("get", lambda collection: collection.get(ids=[chunk_id]))
            if not found or not found["ids"]:
                return False
            await self._run("delete", lambda collection: collection.delete(ids=[chunk_id]))
            return True

    async def get(self, chunk_id: str) -> Optional[VectorRecord]:
        """Get a record by its chunk ID."""
        results = await self._run(
            "get",
            lambda collection: collection.get(
                ids=[chunk_id],
                include=["documents", "metadatas", "embeddings"],
            ),
        )
        records = self._to_records(results)
        return records[0] if records else None

    async def records(self) -> list[VectorRecord]:
        """Return every record persisted in the collection."""
        results = await self._run(
            "get",
            lambda collection: collection.get(include=["documents", "metadatas", "embeddings"]),
        )
        records = self._to_records(results)
        if records and self._dimension is None and records[0].vector:
            self._dimension = records[0].dimension
        return records

    async def count(self) -> int:
        """Return the number of records in the collection."""
        return await self._run("count", lambda collection: collection.count())

    async def clear(self) -> None:
        """Clear all records from the collection."""
        await self._run(
            "clear",
            lambda collection: self._get_client().delete_collection(self.collection_name),
        )
        self._collection = None


def create_vector_store(
    kind: str = "memory",
    *,
    dimension: Optional[int] = None,
    persist_directory: Optional[str] = None,
    collection_name: str = "hybridrag",
) -> BaseVectorStore:
    """
    Factory function to create vector stores.

    Args:
        kind: 'memory' or 'chroma'
        dimension: Optional fixed dimensionality
        persist_directory: Storage directory for durable backends
        collection_name: Collection name for durable backends

    Returns:
        Configured vector store
    """
    kind = kind.lower()

    if kind in ("memory", "in-memory", "in_memory"):
        return MemoryVectorStore(dimension=dimension)

    elif kind in ("chroma", "chromadb"):
        return ChromaVectorStore(
            collection_name=collection_name,
            persist_directory=persist_directory,
            dimension=dimension,
        )

    raise ConfigurationError(
        f"Unknown vector store: {kind}. Supported: 'memory', 'chroma'"
    )
