"""Embedding model implementations."""

import asyncio
import hashlib
import math
from typing import Optional

from .base import BaseEmbedding
from .exceptions import ConfigurationError, ProviderError
from .text import tokenize
from .utils.logging import get_logger

logger = get_logger(__name__)


class HashingEmbedding(BaseEmbedding):
    """Deterministic bag-of-words embedding via feature hashing.

    Each token is hashed into one of ``dimension`` buckets with a sign
    taken from the same digest, and the result is L2-normalized. Texts
    sharing vocabulary get similar vectors, identical texts get identical
    vectors, and no model or network is needed. Useful for testing and as
    an offline default.
    """

    def __init__(self, dimension: int = 256, seed: int = 0):
        """Initialize the hashing embedding.

        Args:
            dimension: Dimension of the embedding vectors
            seed: Salt mixed into every hash
        """
        if dimension <= 0:
            raise ConfigurationError(f"dimension must be positive, got {dimension}")
        self._dimension = dimension
        self.seed = seed

    @property
    def dimension(self) -> int:
        return self._dimension

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension

        for token in tokenize(text):
            digest = hashlib.sha256(f"{self.seed}:{token}".encode()).digest()
            bucket = int.from_bytes(digest[:8], "big") % self._dimension
            sign = 1.0 if digest[8] & 1 else -1.0
            vector[bucket] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    async def embed_query(self, text: str) -> list[float]:
        return self._embed(text)


class OpenAIEmbedding(BaseEmbedding):
    """OpenAI embedding model.

    Uses OpenAI's embedding API (text-embedding-3-small/large). Any
    OpenAI-compatible endpoint works through ``base_url``.

    Note: Requires the 'openai' extra to be installed.
    """

    # Known model dimensions
    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        batch_size: int = 100,
        dimension: Optional[int] = None,
    ):
        """Initialize the OpenAI embedding model.

        Args:
            model: Model name (text-embedding-3-small, text-embedding-3-large)
            api_key: OpenAI API key (optional, uses env var if not provided)
            base_url: Optional base URL for API
            batch_size: Batch size for embedding documents
            dimension: Override for models missing from MODEL_DIMENSIONS
        """
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.batch_size = batch_size
        self._dimension = dimension
        self._client = None

    @property
    def dimension(self) -> int:
        if self._dimension is not None:
            return self._dimension
        return self.MODEL_DIMENSIONS.get(self.model, 1536)

    def _get_client(self):
        """Get or create the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                raise ImportError(
                    "OpenAI embedding requires the 'openai' package. "
                    "Install it with: pip install hybridrag[openai]"
                )

            kwargs = {}
            if self.api_key:
                kwargs["api_key"] = self.api_key
            if self.base_url:
                kwargs["base_url"] = self.base_url

            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def _create(self, texts: list[str]) -> list[list[float]]:
        client = self._get_client()
        try:
            response = await client.embeddings.create(model=self.model, input=texts)
        except Exception as e:
            raise ProviderError(f"embedding request failed: {e}", provider="openai") from e

        # The API may return items out of order; each carries its input index
        data = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in data]

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of documents using OpenAI API."""
        all_embeddings = []

        # Process in batches
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            all_embeddings.extend(await self._create(batch))

        return all_embeddings

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single query using OpenAI API."""
        embeddings = await self._create([text])
        return embeddings[0]

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class LocalEmbedding(BaseEmbedding):
    """Local embedding model using sentence-transformers.

    Runs entirely on the local machine; encoding happens in the default
    executor so the event loop is never blocked.

    Note: Requires the 'vector' extra to be installed.
    """

    # Known model dimensions
    MODEL_DIMENSIONS = {
        "all-MiniLM-L6-v2": 384,
        "all-mpnet-base-v2": 768,
        "paraphrase-multilingual-MiniLM-L12-v2": 384,
        "multi-qa-mpnet-base-dot-v1": 768,
    }

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        device: Optional[str] = None,
        normalize: bool = True,
    ):
        """Initialize the local embedding model.

        Args:
            model_name: Name of the sentence-transformers model
            device: Device to run on (cuda, cpu, mps). Auto-detected if None.
            normalize: Whether to normalize embeddings
        """
        self.model_name = model_name
        self.device = device
        self.normalize = normalize
        self._model = None

    @property
    def dimension(self) -> int:
        if self._model is not None:
            return self._model.get_sentence_embedding_dimension()
        return self.MODEL_DIMENSIONS.get(self.model_name, 384)

    def _get_model(self):
        """Get or load the sentence-transformers model."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError(
                    "Local embedding requires 'sentence-transformers'. "
                    "Install it with: pip install hybridrag[vector]"
                )

            self._model = SentenceTransformer(self.model_name, device=self.device)
            logger.info(f"Loaded embedding model: {self.model_name}")
        return self._model

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of documents using local model."""
        model = self._get_model()

        loop = asyncio.get_running_loop()
        embeddings = await loop.run_in_executor(
            None,
            lambda: model.encode(
                texts,
                normalize_embeddings=self.normalize,
                convert_to_numpy=True,
            ),
        )

        return embeddings.tolist()

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single query using local model."""
        embeddings = await self.embed_documents([text])
        return embeddings[0]


def create_embedding(
    provider: str = "hashing",
    model: Optional[str] = None,
    **kwargs,
) -> BaseEmbedding:
    """
    Factory function to create embedding providers.

    Args:
        provider: 'hashing', 'openai' or 'local'
        model: Model name for model-backed providers
        **kwargs: Provider-specific arguments

    Returns:
        Configured embedding provider
    """
    provider = provider.lower()

    if provider == "hashing":
        return HashingEmbedding(**kwargs)

    elif provider == "openai":
        if model:
            kwargs["model"] = model
        return OpenAIEmbedding(**kwargs)

    elif provider in ("local", "sentence-transformers"):
        if model:
            kwargs["model_name"] = model
        return LocalEmbedding(**kwargs)

    raise ConfigurationError(
        f"Unknown embedding provider: {provider}. "
        "Supported: 'hashing', 'openai', 'local'"
    )
