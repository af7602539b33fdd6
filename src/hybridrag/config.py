"""
Configuration for the hybrid retrieval pipeline.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hybridrag.exceptions import ConfigurationError


class ChunkingStrategy(str, Enum):
    """How documents are split into chunks."""

    FIXED_SIZE = "fixed_size"
    SENTENCE = "sentence"


class FusionStrategy(str, Enum):
    """Which rankings feed Reciprocal Rank Fusion."""

    RRF = "rrf"
    VECTOR_ONLY = "vector_only"
    KEYWORD_ONLY = "keyword_only"


class RAGConfig(BaseModel):
    """Pipeline configuration.

    Constructed once when the pipeline is built and never mutated. Single
    field bounds are enforced by pydantic and reported as
    ``ConfigurationError``; cross-field rules are checked by
    ``validate_config`` when the pipeline is built.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Chunking
    chunk_size: int = Field(default=300, gt=0)
    chunk_overlap: int = Field(default=50, ge=0)
    chunking_strategy: ChunkingStrategy = ChunkingStrategy.SENTENCE

    # Fusion and ranking
    fusion_strategy: FusionStrategy = FusionStrategy.RRF
    fusion_k: int = Field(default=60, ge=0)
    top_k: int = Field(default=5, gt=0)
    rerank_enabled: bool = False
    rerank_candidate_count: int = Field(default=20, gt=0)

    # Keyword index
    bm25_k1: float = Field(default=1.2, ge=0.0)
    bm25_b: float = Field(default=0.75, ge=0.0, le=1.0)
    remove_stopwords: bool = False

    # Providers
    embedding_provider: str = "hashing"
    embedding_model: Optional[str] = None
    embedding_dimension: int = Field(default=256, gt=0)
    reranker_provider: Optional[str] = None
    reranker_model: Optional[str] = None

    # Vector store backend
    vector_store: str = "memory"
    persist_directory: Optional[str] = None
    collection_name: str = "hybridrag"

    # Concurrency, deadlines and retries
    embedding_concurrency: int = Field(default=4, gt=0)
    embedding_timeout: float = Field(default=30.0, gt=0)
    rerank_timeout: float = Field(default=30.0, gt=0)
    store_timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    retry_base_delay: float = Field(default=0.5, ge=0)
    retry_max_delay: float = Field(default=10.0, ge=0)

    degrade_on_embedding_failure: bool = True

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RAGConfig":
        """Build a configuration from a mapping."""
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Path) -> "RAGConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: str | Path) -> "RAGConfig":
        """Load configuration from file (YAML or JSON)."""
        path = Path(path)

        if path.suffix in (".yaml", ".yml"):
            return cls.from_yaml(path)
        elif path.suffix == ".json":
            with open(path) as f:
                data = json.load(f)
            return cls.from_dict(data)
        else:
            raise ConfigurationError(f"Unsupported config file format: {path.suffix}")

    def replace(self, **changes: Any) -> "RAGConfig":
        """Return a validated copy with ``changes`` applied."""
        return self.from_dict({**self.model_dump(), **changes})


def validate_config(config: RAGConfig) -> None:
    """Check the cross-field rules of a configuration.

    Raises:
        ConfigurationError: If the configuration cannot be used to build a pipeline
    """
    if config.chunk_overlap >= config.chunk_size:
        raise ConfigurationError(
            f"chunk_overlap ({config.chunk_overlap}) must be less than "
            f"chunk_size ({config.chunk_size})"
        )

    if config.rerank_enabled and config.rerank_candidate_count < config.top_k:
        raise ConfigurationError(
            f"rerank_candidate_count ({config.rerank_candidate_count}) must be at least "
            f"top_k ({config.top_k})"
        )

    if config.retry_max_delay < config.retry_base_delay:
        raise ConfigurationError("retry_max_delay must not be smaller than retry_base_delay")


def load_config(path: str | Path = "hybridrag.yaml") -> RAGConfig:
    """
    Load pipeline configuration from file.

    Args:
        path: Path to config file

    Returns:
        RAGConfig instance (defaults when the file does not exist)
    """
    path = Path(path)

    if not path.exists():
        return RAGConfig()

    config = RAGConfig.from_file(path)
    validate_config(config)
    return config
