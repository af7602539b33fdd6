"""Hybrid retrieval pipeline."""

import asyncio
import time
from typing import Any, Awaitable, Optional

from .base import BaseChunker, BaseEmbedding, BaseKeywordIndex, BaseReranker, BaseVectorStore
from .chunking import create_chunker
from .config import FusionStrategy, RAGConfig, validate_config
from .document import (
    Chunk,
    Document,
    IngestionStage,
    IngestReport,
    IngestResult,
    QueryResult,
    QueryStage,
    ScoredResult,
    VectorRecord,
)
from .embeddings import create_embedding
from .exceptions import ConfigurationError, ProviderError, RAGError
from .fusion import fuse
from .keyword_index import MemoryKeywordIndex
from .reranker import RerankerAdapter, create_reranker
from .utils.locks import KeyedLock
from .utils.logging import get_logger
from .utils.retry import RetryConfig, call_with_retry
from .vectorstore import create_vector_store

logger = get_logger(__name__)


class _ChunkFailure(Exception):
    """First failure of a document ingestion."""

    def __init__(self, chunk_id: str, stage: IngestionStage, error: RAGError):
        self.chunk_id = chunk_id
        self.stage = stage
        self.error = error
        super().__init__(str(error))


class RAGPipeline:
    """Hybrid retrieval pipeline.

    Chunks documents, embeds every chunk and indexes it in both a vector
    store and a BM25 keyword index. Queries search both indices
    concurrently, fuse the two rankings with Reciprocal Rank Fusion and
    optionally rerank the fused candidates.

    Ingestion and query never raise for provider failures: they report
    them in ``IngestResult`` and ``QueryResult``.

    Example:
        ```python
        pipeline = RAGPipeline(RAGConfig(chunk_size=300, chunk_overlap=50))

        await pipeline.ingest_text(
            "Retrieval augmented generation grounds answers in documents.",
            document_id="doc-1",
        )

        result = await pipeline.query("retrieval augmented generation")
        for hit in result.results:
            print(hit.chunk_id, hit.score)
        ```
    """

    def __init__(
        self,
        config: Optional[RAGConfig] = None,
        embedding: Optional[BaseEmbedding] = None,
        vector_store: Optional[BaseVectorStore] = None,
        keyword_index: Optional[BaseKeywordIndex] = None,
        reranker: Optional[BaseReranker] = None,
        chunker: Optional[BaseChunker] = None,
    ):
        """Initialize the pipeline.

        Explicit components win; anything omitted is built from ``config``.

        Args:
            config: Pipeline configuration (defaults to ``RAGConfig()``)
            embedding: Embedding provider
            vector_store: Vector store backend
            keyword_index: Keyword index
            reranker: Reranking provider
            chunker: Document chunker

        Raises:
            ConfigurationError: If the configuration or components are inconsistent
        """
        self.config = config or RAGConfig()
        validate_config(self.config)

        self.chunker = chunker or create_chunker(
            self.config.chunking_strategy,
            chunk_size=self.config.chunk_size,
            overlap=self.config.chunk_overlap,
        )
        self.embedding = embedding or self._build_embedding()
        self.vector_store = vector_store or create_vector_store(
            self.config.vector_store,
            persist_directory=self.config.persist_directory,
            collection_name=self.config.collection_name,
        )
        self.keyword_index = keyword_index or MemoryKeywordIndex(
            k1=self.config.bm25_k1,
            b=self.config.bm25_b,
            remove_stopwords=self.config.remove_stopwords,
        )

        store_dimension = self.vector_store.dimension
        if store_dimension is not None and store_dimension != self.embedding.dimension:
            raise ConfigurationError(
                f"Vector store dimension ({store_dimension}) does not match "
                f"embedding dimension ({self.embedding.dimension})"
            )

        self.retry_config = RetryConfig(
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
        )

        if reranker is None and self.config.reranker_provider:
            reranker = create_reranker(
                self.config.reranker_provider,
                model=self.config.reranker_model,
            )
        if self.config.rerank_enabled and reranker is None:
            raise ConfigurationError("rerank_enabled requires a reranker")

        self.reranker = (
            RerankerAdapter(
                reranker,
                timeout=self.config.rerank_timeout,
                retry_config=self.retry_config,
            )
            if reranker is not None
            else None
        )

        # Shared by every ingestion so the provider sees a bounded load
        self._embedding_slots = asyncio.Semaphore(self.config.embedding_concurrency)
        self._document_locks = KeyedLock()
        self._document_chunks: dict[str, set[str]] = {}

    def _build_embedding(self) -> BaseEmbedding:
        if self.config.embedding_provider.lower() == "hashing":
            return create_embedding("hashing", dimension=self.config.embedding_dimension)
        return create_embedding(
            self.config.embedding_provider,
            model=self.config.embedding_model,
        )

    @property
    def _embedding_name(self) -> str:
        return type(self.embedding).__name__

    # Ingestion

    async def ingest(self, document: Document) -> IngestResult:
        """Chunk, embed and index a document.

        Chunks are embedded concurrently and each is indexed as soon as
        its vector arrives. The first failure aborts the document: chunks
        not yet started are skipped, chunks already indexed stay
        searchable. Re-ingesting a document id replaces its chunks.

        Args:
            document: Document to ingest

        Returns:
            Per-document outcome
        """
        async with self._document_locks.hold(document.id):
            result = await self._ingest(document)

        if result.success:
            logger.debug(f"Ingested document {document.id}: {result.chunk_count} chunks")
        else:
            logger.warning(
                f"Ingestion of document {document.id} failed at {result.failed_stage.value} "
                f"(chunk {result.failed_chunk_id}): {result.error}. "
                f"{result.chunk_count}/{result.total_chunks} chunks indexed"
            )
        return result

    async def _ingest(self, document: Document) -> IngestResult:
        previous = self._document_chunks.get(document.id, set())
        chunks = self.chunker.chunk(document)

        committed: list[str] = []
        failures: list[_ChunkFailure] = []
        abort = asyncio.Event()

        async def process(chunk: Chunk) -> None:
            try:
                if abort.is_set():
                    return
                async with self._embedding_slots:
                    if abort.is_set():
                        return
                    vector = await self._embed_chunk(chunk)
                await self._index_chunk(chunk, vector)
                committed.append(chunk.id)
            except _ChunkFailure as failure:
                failures.append(failure)
                abort.set()

        await asyncio.gather(*(process(chunk) for chunk in chunks))

        if failures:
            # Committed chunks are kept, so the document must stay deletable
            self._document_chunks[document.id] = previous | set(committed)
            failure = failures[0]
            return IngestResult(
                document_id=document.id,
                success=False,
                chunk_count=len(committed),
                total_chunks=len(chunks),
                failed_chunk_id=failure.chunk_id,
                failed_stage=failure.stage,
                error=str(failure.error),
            )

        current = {chunk.id for chunk in chunks}
        leftover = set()
        for chunk_id in sorted(previous - current):
            try:
                await self._remove_chunk(chunk_id)
            except RAGError as e:
                logger.warning(f"Could not remove stale chunk {chunk_id}: {e}")
                leftover.add(chunk_id)
        self._document_chunks[document.id] = current | leftover

        return IngestResult(
            document_id=document.id,
            success=True,
            chunk_count=len(chunks),
            total_chunks=len(chunks),
        )

    async def _embed_chunk(self, chunk: Chunk) -> tuple[float, ...]:
        try:
            vectors = await call_with_retry(
                lambda: self.embedding.embed_documents([chunk.content]),
                operation="embed_documents",
                timeout=self.config.embedding_timeout,
                retry_config=self.retry_config,
                provider=self._embedding_name,
            )
            if not vectors or len(vectors) != 1 or not vectors[0]:
                raise ProviderError(
                    "embedding provider returned no vector",
                    provider=self._embedding_name,
                )
            return tuple(float(v) for v in vectors[0])
        except RAGError as e:
            raise _ChunkFailure(chunk.id, IngestionStage.EMBEDDING, e) from e
        except (TypeError, ValueError) as e:
            error = ProviderError(f"malformed embedding: {e}", provider=self._embedding_name)
            raise _ChunkFailure(chunk.id, IngestionStage.EMBEDDING, error) from e

    async def _index_chunk(self, chunk: Chunk, vector: tuple[float, ...]) -> None:
        record = VectorRecord(
            chunk_id=chunk.id,
            vector=vector,
            content=chunk.content,
            document_id=chunk.document_id,
            metadata=chunk.metadata,
        )

        try:
            await call_with_retry(
                lambda: self.vector_store.upsert(record),
                operation="vector upsert",
                timeout=self.config.store_timeout,
                retry_config=self.retry_config,
                provider="vector_store",
            )
        except RAGError as e:
            raise _ChunkFailure(chunk.id, IngestionStage.INDEXING, e) from e

        try:
            await call_with_retry(
                lambda: self.keyword_index.upsert(
                    chunk.id,
                    chunk.content,
                    metadata=chunk.metadata,
                    document_id=chunk.document_id,
                ),
                operation="keyword upsert",
                timeout=self.config.store_timeout,
                retry_config=self.retry_config,
                provider="keyword_index",
            )
        except RAGError as e:
            # A chunk lives in both indices or in neither
            try:
                await call_with_retry(
                    lambda: self.vector_store.delete(chunk.id),
                    operation="vector delete",
                    timeout=self.config.store_timeout,
                    retry_config=self.retry_config,
                    provider="vector_store",
                )
            except RAGError as cleanup_error:
                logger.error(
                    f"Chunk {chunk.id} is left in the vector store only: {cleanup_error}"
                )
            raise _ChunkFailure(chunk.id, IngestionStage.INDEXING, e) from e

    async def _remove_chunk(self, chunk_id: str) -> bool:
        removed_vector = await call_with_retry(
            lambda: self.vector_store.delete(chunk_id),
            operation="vector delete",
            timeout=self.config.store_timeout,
            retry_config=self.retry_config,
            provider="vector_store",
        )
        removed_keyword = await call_with_retry(
            lambda: self.keyword_index.delete(chunk_id),
            operation="keyword delete",
            timeout=self.config.store_timeout,
            retry_config=self.retry_config,
            provider="keyword_index",
        )
        return bool(removed_vector or removed_keyword)

    async def ingest_many(self, documents: list[Document]) -> IngestReport:
        """Ingest several documents concurrently.

        Args:
            documents: Documents to ingest

        Returns:
            Report with one result per document, in input order
        """
        results = await asyncio.gather(*(self.ingest(document) for document in documents))
        report = IngestReport(results=list(results))

        logger.info(
            f"Ingested {report.succeeded}/{len(documents)} documents "
            f"({report.total_chunks} chunks, {report.failed} failed)"
        )
        return report

    async def ingest_text(
        self,
        content: str,
        document_id: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> IngestResult:
        """Ingest raw text as a document."""
        return await self.ingest(
            Document(id=document_id, content=content, metadata=metadata or {})
        )

    # Query

    async def _embed_query(self, query: str) -> list[float]:
        vector = await call_with_retry(
            lambda: self.embedding.embed_query(query),
            operation="embed_query",
            timeout=self.config.embedding_timeout,
            retry_config=self.retry_config,
            provider=self._embedding_name,
        )
        if not vector:
            raise ProviderError("embedding provider returned no vector", provider=self._embedding_name)
        try:
            return [float(v) for v in vector]
        except (TypeError, ValueError) as e:
            raise ProviderError(f"malformed embedding: {e}", provider=self._embedding_name) from e

    async def _vector_search(self, query_vector: list[float], limit: int) -> list[ScoredResult]:
        return await call_with_retry(
            lambda: self.vector_store.search(query_vector, top_k=limit),
            operation="vector search",
            timeout=self.config.store_timeout,
            retry_config=self.retry_config,
            provider="vector_store",
        )

    async def _keyword_search(self, query: str, limit: int) -> list[ScoredResult]:
        return await call_with_retry(
            lambda: self.keyword_index.search(query, top_k=limit),
            operation="keyword search",
            timeout=self.config.store_timeout,
            retry_config=self.retry_config,
            provider="keyword_index",
        )

    @staticmethod
    async def _settle(search: Optional[Awaitable[list[ScoredResult]]]):
        """Await one search leg, capturing its failure."""
        if search is None:
            return [], None
        try:
            return await search, None
        except RAGError as e:
            return [], e

    async def query(
        self,
        query: str,
        top_k: Optional[int] = None,
        strategy: Optional[FusionStrategy | str] = None,
        rerank: Optional[bool] = None,
    ) -> QueryResult:
        """Retrieve the chunks most relevant to ``query``.

        Args:
            query: Query string
            top_k: Number of results (defaults to ``config.top_k``)
            strategy: Which rankings to fuse (defaults to ``config.fusion_strategy``)
            rerank: Rerank the fused candidates (defaults to ``config.rerank_enabled``)

        Returns:
            Query outcome; check ``degraded`` for silent quality loss

        Raises:
            ConfigurationError: For a non-positive top_k, an unknown strategy, or
                reranking without a reranker
        """
        started = time.perf_counter()

        if top_k is None:
            top_k = self.config.top_k
        elif top_k <= 0:
            raise ConfigurationError(f"top_k must be positive, got {top_k}")
        try:
            strategy = FusionStrategy(strategy or self.config.fusion_strategy)
        except ValueError:
            raise ConfigurationError(f"Unknown fusion strategy: {strategy}") from None

        use_rerank = self.config.rerank_enabled if rerank is None else rerank
        if use_rerank and self.reranker is None:
            raise ConfigurationError("Reranking requested but no reranker is configured")

        def finish(**fields) -> QueryResult:
            return QueryResult(
                query=query,
                strategy=strategy.value,
                elapsed_ms=(time.perf_counter() - started) * 1000,
                **fields,
            )

        if not query.strip():
            return finish(stages=[QueryStage.DONE])

        candidate_limit = max(top_k, self.config.rerank_candidate_count) if use_rerank else top_k
        fetch_limit = candidate_limit * 2

        stages: list[QueryStage] = []
        warnings: list[str] = []
        degraded = False
        use_vector = strategy is not FusionStrategy.KEYWORD_ONLY
        use_keyword = strategy is not FusionStrategy.VECTOR_ONLY

        query_vector = None
        if use_vector:
            stages.append(QueryStage.EMBEDDING_QUERY)
            try:
                query_vector = await self._embed_query(query)
            except RAGError as e:
                if not self.config.degrade_on_embedding_failure:
                    logger.error(f"Query embedding failed: {e}")
                    return finish(stages=stages, error=f"Query embedding failed: {e}")

                message = f"Query embedding failed, using keyword search only: {e}"
                logger.warning(message)
                warnings.append(message)
                degraded = True
                use_vector = False
                use_keyword = True

        stages.append(QueryStage.DUAL_SEARCH)
        (vector_results, vector_error), (keyword_results, keyword_error) = await asyncio.gather(
            self._settle(self._vector_search(query_vector, fetch_limit) if use_vector else None),
            self._settle(self._keyword_search(query, fetch_limit) if use_keyword else None),
        )

        leg_errors = [
            (name, error)
            for name, error in (("Vector search", vector_error), ("Keyword search", keyword_error))
            if error is not None
        ]
        if len(leg_errors) == int(use_vector) + int(use_keyword):
            message = "; ".join(f"{name} failed: {error}" for name, error in leg_errors)
            logger.error(f"Query failed: {message}")
            return finish(stages=stages, warnings=warnings, degraded=degraded, error=message)

        for name, error in leg_errors:
            message = f"{name} failed, using the remaining ranking: {error}"
            logger.warning(message)
            warnings.append(message)
            degraded = True

        stages.append(QueryStage.FUSION)
        fused = fuse(vector_results, keyword_results, k=self.config.fusion_k, top_k=candidate_limit)

        results = fused[:top_k]
        reranked = False
        if use_rerank and fused:
            stages.append(QueryStage.RERANK)
            try:
                results = await self.reranker.rerank(query, fused, top_n=top_k)
                reranked = True
            except RAGError as e:
                message = f"Reranking failed, keeping fused order: {e}"
                logger.warning(message)
                warnings.append(message)
                degraded = True

        stages.append(QueryStage.DONE)
        return finish(
            results=results,
            stages=stages,
            warnings=warnings,
            degraded=degraded,
            reranked=reranked,
        )

    # Management

    async def delete_document(self, document_id: str) -> int:
        """Delete a document's chunks from both indices.

        Args:
            document_id: ID of the document to delete

        Returns:
            Number of chunks removed

        Raises:
            ProviderError: If a store fails; chunks not yet removed stay tracked
        """
        async with self._document_locks.hold(document_id):
            chunk_ids = self._document_chunks.pop(document_id, set())
            removed = 0

            for index, chunk_id in enumerate(sorted(chunk_ids)):
                try:
                    if await self._remove_chunk(chunk_id):
                        removed += 1
                except RAGError:
                    self._document_chunks[document_id] = set(sorted(chunk_ids)[index:])
                    raise

        logger.debug(f"Deleted document {document_id} ({removed} chunks)")
        return removed

    async def restore(self) -> int:
        """Rebuild the keyword index and document map from the vector store.

        A persistent vector store (``vector_store="chroma"`` with a
        ``persist_directory``) outlives the process, the keyword index and
        the document map do not. Call this once after building a pipeline
        over a store that already holds records, so that keyword search and
        ``delete_document`` cover them again.

        Returns:
            Number of chunks restored

        Raises:
            ConfigurationError: If the stored vectors do not match the embedding dimension
            ProviderError: If the vector store cannot be read
        """
        records = await call_with_retry(
            lambda: self.vector_store.records(),
            operation="vector scan",
            timeout=self.config.store_timeout,
            retry_config=self.retry_config,
            provider="vector_store",
        )

        store_dimension = self.vector_store.dimension
        if store_dimension is not None and store_dimension != self.embedding.dimension:
            raise ConfigurationError(
                f"Stored vectors have dimension {store_dimension}, "
                f"embedding dimension is {self.embedding.dimension}"
            )

        for record in records:
            await self.keyword_index.upsert(
                record.chunk_id,
                record.content,
                metadata=record.metadata,
                document_id=record.document_id,
            )
            self._document_chunks.setdefault(record.document_id, set()).add(record.chunk_id)

        logger.info(
            f"Restored {len(records)} chunks of {len(self._document_chunks)} documents "
            f"from {type(self.vector_store).__name__}"
        )
        return len(records)

    async def count_documents(self) -> int:
        """Return the number of indexed documents."""
        return len(self._document_chunks)

    async def count_chunks(self) -> int:
        """Return the number of indexed chunks."""
        return await self.vector_store.count()

    def document_chunk_ids(self, document_id: str) -> list[str]:
        """Return the chunk ids indexed for ``document_id``."""
        return sorted(self._document_chunks.get(document_id, set()))

    async def stats(self) -> dict[str, Any]:
        """Return index sizes and the active components."""
        return {
            "documents": await self.count_documents(),
            "vector_chunks": await self.vector_store.count(),
            "keyword_chunks": await self.keyword_index.count(),
            "embedding": self._embedding_name,
            "embedding_dimension": self.embedding.dimension,
            "vector_store": type(self.vector_store).__name__,
            "keyword_index": type(self.keyword_index).__name__,
            "reranker": self.reranker.provider.name if self.reranker else None,
            "chunker": self.chunker.name,
            "fusion_strategy": self.config.fusion_strategy.value,
        }

    async def clear(self) -> None:
        """Remove every document from both indices."""
        await self.vector_store.clear()
        await self.keyword_index.clear()
        self._document_chunks.clear()

    async def close(self) -> None:
        """Release provider and backend resources."""
        await self.embedding.close()
        await self.vector_store.close()
        if self.reranker is not None:
            await self.reranker.close()

    async def __aenter__(self) -> "RAGPipeline":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_pipeline(config: Optional[RAGConfig] = None, **overrides) -> RAGPipeline:
    """
    Build a pipeline from a configuration.

    Args:
        config: Base configuration (defaults to ``RAGConfig()``)
        **overrides: Configuration fields to replace

    Returns:
        Configured pipeline
    """
    config = config or RAGConfig()
    if overrides:
        config = config.replace(**overrides)
    return RAGPipeline(config)
