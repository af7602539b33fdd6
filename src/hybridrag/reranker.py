"""Reranker providers and the adapter that applies them to fused results."""

import asyncio
import math
import os
from typing import Optional

import httpx

from .base import BaseReranker
from .document import ScoredResult
from .exceptions import ConfigurationError, ProviderError
from .text import ENGLISH_STOPWORDS, tokenize
from .utils.logging import get_logger
from .utils.retry import RetryConfig, call_with_retry

logger = get_logger(__name__)


class TermOverlapReranker(BaseReranker):
    """In-process reranker scoring the share of query terms a document covers.

    Cheap and deterministic. Useful for testing and as a fallback when no
    model is available.
    """

    name = "term_overlap"

    def __init__(self, remove_stopwords: bool = True):
        self.stopwords = ENGLISH_STOPWORDS if remove_stopwords else None

    async def score(self, query: str, documents: list[str]) -> list[float]:
        query_terms = set(tokenize(query, self.stopwords))
        if not query_terms:
            return [0.0 for _ in documents]

        scores = []
        for document in documents:
            terms = set(tokenize(document, self.stopwords))
            scores.append(len(query_terms & terms) / len(query_terms))
        return scores


class CrossEncoderReranker(BaseReranker):
    """Reranker using a cross-encoder model.

    Uses a cross-encoder model from sentence-transformers for
    accurate relevance scoring.

    Note: Requires the 'vector' extra to be installed.
    """

    name = "cross_encoder"

    def __init__(
        self,
        model_name: str = "cross-encoder/ms-marco-MiniLM-L-6-v2",
        device: Optional[str] = None,
    ):
        """Initialize the cross-encoder reranker.

        Args:
            model_name: Name of the cross-encoder model
            device: Device to run on (cuda, cpu, mps)
        """
        self.model_name = model_name
        self.device = device
        self._model = None

    def _get_model(self):
        """Get or load the cross-encoder model."""
        if self._model is None:
            try:
                from sentence_transformers import CrossEncoder
            except ImportError:
                raise ImportError(
                    "CrossEncoder requires 'sentence-transformers'. "
                    "Install it with: pip install hybridrag[vector]"
                )

            self._model = CrossEncoder(self.model_name, device=self.device)
            logger.info(f"Loaded cross-encoder model: {self.model_name}")
        return self._model

    async def score(self, query: str, documents: list[str]) -> list[float]:
        """Score query-document pairs with the cross-encoder."""
        if not documents:
            return []

        model = self._get_model()
        pairs = [(query, document) for document in documents]

        # Score in thread pool
        loop = asyncio.get_running_loop()
        scores = await loop.run_in_executor(None, lambda: model.predict(pairs))

        return [float(score) for score in scores]


class CohereReranker(BaseReranker):
    """Reranker backed by the Cohere rerank HTTP API."""

    name = "cohere"

    DEFAULT_URL = "https://api.cohere.com/v2/rerank"

    def __init__(
        self,
        model: str = "rerank-v3.5",
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_URL,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the Cohere reranker.

        Args:
            model: Rerank model name
            api_key: API key (falls back to the COHERE_API_KEY env var)
            base_url: Rerank endpoint
            client: Pre-built HTTP client (one is created lazily if None)
        """
        self.model = model
        self.api_key = api_key or os.environ.get("COHERE_API_KEY")
        self.base_url = base_url
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            # Deadlines are applied by the caller
            self._client = httpx.AsyncClient(headers=headers, timeout=httpx.Timeout(None))
        return self._client

    async def score(self, query: str, documents: list[str]) -> list[float]:
        """Score documents through the rerank endpoint."""
        if not documents:
            return []

        payload = {
            "model": self.model,
            "query": query,
            "documents": documents,
            "top_n": len(documents),
        }

        try:
            response = await self._get_client().post(self.base_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise ProviderError(f"rerank request failed: {e}", provider=self.name) from e
        except ValueError as e:
            raise ProviderError(f"invalid JSON in rerank response: {e}", provider=self.name) from e

        # Results come back sorted by relevance; map them to input order
        scores: list[Optional[float]] = [None] * len(documents)
        try:
            for item in data["results"]:
                scores[item["index"]] = item["relevance_score"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"malformed rerank response: {e}", provider=self.name) from e

        if any(score is None for score in scores):
            raise ProviderError("rerank response is missing documents", provider=self.name)
        return scores

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class RerankerAdapter:
    """Apply a reranking provider to fused candidates.

    Calls the provider under a deadline with retries, validates what it
    returns and reorders the candidates by relevance. Any failure is
    raised as ``ProviderError`` so the caller can keep the fused order.
    """

    def __init__(
        self,
        provider: BaseReranker,
        timeout: Optional[float] = 30.0,
        retry_config: Optional[RetryConfig] = None,
    ):
        """Initialize the adapter.

        Args:
            provider: Reranking provider
            timeout: Deadline in seconds per provider call
            retry_config: Retry policy for provider calls
        """
        self.provider = provider
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()

    async def rerank(
        self,
        query: str,
        candidates: list[ScoredResult],
        top_n: Optional[int] = None,
    ) -> list[ScoredResult]:
        """Reorder ``candidates`` by provider relevance.

        Args:
            query: Original query string
            candidates: Fused results, best first
            top_n: Truncate to this many results (None keeps all)

        Returns:
            Reranked results; ``score`` and ``rerank_score`` hold the
            relevance, ``fusion_score`` keeps the RRF value

        Raises:
            ProviderError: On timeout, transport failure or a malformed response
        """
        if not candidates:
            return []

        documents = [candidate.content for candidate in candidates]
        scores = await call_with_retry(
            lambda: self.provider.score(query, documents),
            operation="rerank",
            timeout=self.timeout,
            retry_config=self.retry_config,
            provider=self.provider.name,
        )

        relevance = self._validate(scores, len(candidates))

        # sorted() is stable, so equal relevance keeps the fused order
        order = sorted(range(len(candidates)), key=lambda i: -relevance[i])
        if top_n is not None:
            order = order[:max(top_n, 0)]

        return [
            candidates[i].model_copy(update={
                "score": relevance[i],
                "rerank_score": relevance[i],
                "fusion_score": (
                    candidates[i].fusion_score
                    if candidates[i].fusion_score is not None
                    else candidates[i].score
                ),
            })
            for i in order
        ]

    def _validate(self, scores, expected: int) -> list[float]:
        if not isinstance(scores, (list, tuple)):
            raise ProviderError(
                f"expected a list of scores, got {type(scores).__name__}",
                provider=self.provider.name,
            )
        if len(scores) != expected:
            raise ProviderError(
                f"expected {expected} scores, got {len(scores)}",
                provider=self.provider.name,
            )

        relevance = []
        for score in scores:
            if isinstance(score, bool) or not isinstance(score, (int, float)):
                raise ProviderError(
                    f"non-numeric relevance score: {score!r}",
                    provider=self.provider.name,
                )
            if math.isnan(score):
                raise ProviderError("relevance score is NaN", provider=self.provider.name)
            relevance.append(float(score))
        return relevance

    async def close(self) -> None:
        await self.provider.close()


def create_reranker(
    name: str,
    model: Optional[str] = None,
    **kwargs,
) -> BaseReranker:
    """
    Factory function to create reranking providers.

    Args:
        name: 'term_overlap', 'cross_encoder' or 'cohere'
        model: Model name for model-backed providers
        **kwargs: Provider-specific arguments

    Returns:
        Configured reranking provider
    """
    name = name.lower().replace("-", "_")

    if name == "term_overlap":
        return TermOverlapReranker(**kwargs)

    elif name in ("cross_encoder", "crossencoder"):
        if model:
            kwargs["model_name"] = model
        return CrossEncoderReranker(**kwargs)

    elif name == "cohere":
        if model:
            kwargs["model"] = model
        return CohereReranker(**kwargs)

    raise ConfigurationError(
        f"Unknown reranker: {name}. Supported: 'term_overlap', 'cross_encoder', 'cohere'"
    )
