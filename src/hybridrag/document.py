"""Document, chunk and result data structures."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Document(BaseModel):
    """A document to be chunked and indexed.

    Documents are immutable once created. They are not stored by the
    engine; their identity lives on through the chunks they produce.

    Attributes:
        id: Caller-supplied unique identifier
        content: The text content of the document
        metadata: Arbitrary metadata inherited by every chunk
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    def __repr__(self) -> str:
        content_preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        return f"Document(id={self.id!r}, content={content_preview!r})"


class Chunk(BaseModel):
    """A contiguous segment of a document.

    ``content`` is exactly ``document.content[start_index:end_index]``.

    Attributes:
        id: Chunk identifier, ``{document_id}_chunk_{ordinal}``
        document_id: ID of the parent document
        content: The text content of the chunk
        metadata: Document metadata merged with chunk-local fields
        start_index: Start character offset in the original document
        end_index: End character offset (exclusive) in the original document
    """

    id: str
    document_id: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    start_index: int = 0
    end_index: int = 0

    def __repr__(self) -> str:
        content_preview = self.content[:30] + "..." if len(self.content) > 30 else self.content
        return f"Chunk(id={self.id!r}, doc_id={self.document_id!r}, content={content_preview!r})"


class VectorRecord(BaseModel):
    """An embedding stored in a vector store, one per chunk id."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    vector: tuple[float, ...]
    content: str = ""
    document_id: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def dimension(self) -> int:
        return len(self.vector)


class ScoredResult(BaseModel):
    """A ranked chunk returned by a search, fusion or rerank step.

    The meaning of ``score`` depends on the step that produced it: vector
    search reports ``(cosine + 1) / 2``, keyword search reports raw BM25,
    fusion reports the raw Reciprocal Rank Fusion value and reranking
    reports the provider's relevance score.

    Attributes:
        chunk_id: ID of the matching chunk
        document_id: ID of the parent document
        content: Chunk text
        metadata: Chunk metadata
        score: Score assigned by the producing step (higher is better)
        vector_rank: 1-based position in the vector ranking, if present
        keyword_rank: 1-based position in the keyword ranking, if present
        fusion_score: RRF value, once fused
        rerank_score: Reranker relevance, once reranked
    """

    chunk_id: str
    document_id: str = ""
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    score: float
    vector_rank: Optional[int] = None
    keyword_rank: Optional[int] = None
    fusion_score: Optional[float] = None
    rerank_score: Optional[float] = None

    def __repr__(self) -> str:
        return f"ScoredResult(chunk_id={self.chunk_id!r}, score={self.score:.4f})"


class IngestionStage(str, Enum):
    """Stages of the ingestion state machine."""

    IDLE = "idle"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    INDEXING = "indexing"


class QueryStage(str, Enum):
    """Stages of the query state machine."""

    EMBEDDING_QUERY = "embedding_query"
    DUAL_SEARCH = "dual_search"
    FUSION = "fusion"
    RERANK = "rerank"
    DONE = "done"


class IngestResult(BaseModel):
    """Outcome of ingesting a single document.

    A failed ingestion is not rolled back: ``chunk_count`` chunks were
    committed to both indices before the failure and remain searchable.
    """

    document_id: str
    success: bool
    chunk_count: int = 0
    total_chunks: int = 0
    failed_chunk_id: Optional[str] = None
    failed_stage: Optional[IngestionStage] = None
    error: Optional[str] = None


class IngestReport(BaseModel):
    """Outcome of ingesting a batch of documents."""

    results: list[IngestResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.success)

    @property
    def total_chunks(self) -> int:
        return sum(result.chunk_count for result in self.results)

    def failures(self) -> list[IngestResult]:
        """Return the results of documents that failed to ingest."""
        return [result for result in self.results if not result.success]


class QueryResult(BaseModel):
    """Outcome of a query.

    ``degraded`` is set whenever a stage fell back to a weaker strategy
    (keyword-only search after an embedding failure, a failed search leg,
    or fused order after a reranker failure). ``stages`` lists the query
    stages that ran, in order; a skipped rerank does not appear.
    """

    query: str
    results: list[ScoredResult] = Field(default_factory=list)
    strategy: str = "rrf"
    degraded: bool = False
    reranked: bool = False
    warnings: list[str] = Field(default_factory=list)
    error: Optional[str] = None
    elapsed_ms: float = 0.0
    stages: list[QueryStage] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None

    def chunk_ids(self) -> list[str]:
        """Return the result chunk ids in rank order."""
        return [result.chunk_id for result in self.results]
