"""Hybrid document retrieval.

This package provides:
- Document, chunk and result data structures
- Fixed-size and sentence-aware chunking
- Vector stores (memory, ChromaDB) and a BM25 keyword index
- Reciprocal Rank Fusion of vector and keyword rankings
- Reranking providers (term overlap, cross-encoder, Cohere)
- A pipeline that degrades instead of failing when a provider breaks

Example:
    ```python
    from hybridrag import RAGConfig, RAGPipeline

    pipeline = RAGPipeline(RAGConfig(chunk_size=300, chunk_overlap=50))

    await pipeline.ingest_text(
        "Retrieval augmented generation combines search with generation.",
        document_id="doc-1",
    )

    result = await pipeline.query("retrieval augmented generation")
    print(result.chunk_ids(), result.degraded)
    ```
"""

__version__ = "0.1.0"

from .base import BaseChunker, BaseEmbedding, BaseKeywordIndex, BaseReranker, BaseVectorStore
from .chunking import FixedSizeChunker, SentenceChunker, chunk_text, create_chunker
from .config import ChunkingStrategy, FusionStrategy, RAGConfig, load_config, validate_config
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
from .embeddings import HashingEmbedding, LocalEmbedding, OpenAIEmbedding, create_embedding
from .evaluation import (
    StrategyRun,
    StrategyScore,
    compare_strategies,
    evaluate,
    precision_at_k,
    recall_at_k,
    reciprocal_rank,
)
from .exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    ProviderError,
    ProviderTimeoutError,
    RAGError,
)
from .fusion import fuse, max_rrf_score, min_max_normalize, normalize_rrf, rrf_scores
from .keyword_index import MemoryKeywordIndex
from .pipeline import RAGPipeline, create_pipeline
from .reranker import (
    CohereReranker,
    CrossEncoderReranker,
    RerankerAdapter,
    TermOverlapReranker,
    create_reranker,
)
from .vectorstore import (
    ChromaVectorStore,
    MemoryVectorStore,
    cosine_similarity,
    create_vector_store,
)

__all__ = [
    # Base classes
    "BaseChunker",
    "BaseEmbedding",
    "BaseKeywordIndex",
    "BaseReranker",
    "BaseVectorStore",
    # Data structures
    "Chunk",
    "Document",
    "IngestionStage",
    "IngestReport",
    "IngestResult",
    "QueryResult",
    "QueryStage",
    "ScoredResult",
    "VectorRecord",
    # Configuration
    "ChunkingStrategy",
    "FusionStrategy",
    "RAGConfig",
    "load_config",
    "validate_config",
    # Errors
    "ConfigurationError",
    "DimensionMismatchError",
    "ProviderError",
    "ProviderTimeoutError",
    "RAGError",
    # Chunking
    "FixedSizeChunker",
    "SentenceChunker",
    "chunk_text",
    "create_chunker",
    # Embeddings
    "HashingEmbedding",
    "LocalEmbedding",
    "OpenAIEmbedding",
    "create_embedding",
    # Indices
    "ChromaVectorStore",
    "MemoryVectorStore",
    "MemoryKeywordIndex",
    "cosine_similarity",
    "create_vector_store",
    # Fusion
    "fuse",
    "max_rrf_score",
    "min_max_normalize",
    "normalize_rrf",
    "rrf_scores",
    # Reranking
    "CohereReranker",
    "CrossEncoderReranker",
    "RerankerAdapter",
    "TermOverlapReranker",
    "create_reranker",
    # Pipeline
    "RAGPipeline",
    "create_pipeline",
    # Evaluation
    "StrategyRun",
    "StrategyScore",
    "compare_strategies",
    "evaluate",
    "precision_at_k",
    "recall_at_k",
    "reciprocal_rank",
]
