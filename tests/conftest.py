"""
Test configuration and fixtures.
"""

import asyncio

import pytest

from hybridrag import BaseEmbedding, BaseReranker, HashingEmbedding, RAGConfig
from hybridrag.exceptions import ProviderError


class FailingQueryEmbedding(HashingEmbedding):
    """Embeds documents normally but fails every query."""

    async def embed_query(self, text: str) -> list[float]:
        raise ProviderError("quota exceeded", provider="fake")


class FailingEmbedding(HashingEmbedding):
    """Fails on documents containing a marker word."""

    def __init__(self, marker: str = "poison", **kwargs):
        super().__init__(**kwargs)
        self.marker = marker

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        if any(self.marker in text for text in texts):
            raise ProviderError("embedding rejected", provider="fake")
        return await super().embed_documents(texts)


class SlowEmbedding(HashingEmbedding):
    """Sleeps before answering queries."""

    def __init__(self, delay: float = 1.0, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay

    async def embed_query(self, text: str) -> list[float]:
        await asyncio.sleep(self.delay)
        return await super().embed_query(text)


class CountingEmbedding(HashingEmbedding):
    """Tracks how many document embeddings run at the same time."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = 0
        self.active = 0
        self.peak = 0

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.01)
            return await super().embed_documents(texts)
        finally:
            self.active -= 1


class WrongDimensionEmbedding(BaseEmbedding):
    """Claims one dimension and returns another."""

    @property
    def dimension(self) -> int:
        return 4

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [[1.0, 0.0, 0.0] for _ in texts]

    async def embed_query(self, text: str) -> list[float]:
        return [1.0, 0.0, 0.0, 0.0]


class StaticReranker(BaseReranker):
    """Returns preset scores keyed by document text."""

    name = "static"

    def __init__(self, scores: dict[str, float], default: float = 0.0):
        self.scores = scores
        self.default = default
        self.calls = 0

    async def score(self, query: str, documents: list[str]) -> list[float]:
        self.calls += 1
        return [self.scores.get(document, self.default) for document in documents]


class SlowReranker(BaseReranker):
    """Never answers within a short deadline."""

    name = "slow"

    async def score(self, query: str, documents: list[str]) -> list[float]:
        await asyncio.sleep(10)
        return [1.0 for _ in documents]


class BrokenReranker(BaseReranker):
    """Returns a response of the wrong shape."""

    name = "broken"

    def __init__(self, response):
        self.response = response

    async def score(self, query: str, documents: list[str]):
        return self.response


@pytest.fixture
def fast_config():
    """Configuration that never sleeps between retries."""
    return RAGConfig(
        chunk_size=300,
        chunk_overlap=50,
        max_retries=0,
        embedding_timeout=1.0,
        rerank_timeout=0.05,
        store_timeout=1.0,
    )


@pytest.fixture
def sample_corpus():
    """Small corpus with distinct topics."""
    return {
        "doc-1": (
            "Retrieval augmented generation combines a retriever with a language model. "
            "The retriever finds relevant passages and the generator writes the answer. "
            "This grounds the output in source documents."
        ),
        "doc-2": (
            "Vector embeddings map text into a dense space where similar meanings "
            "are close together. Cosine similarity compares two embeddings."
        ),
        "doc-3": (
            "BM25 is a lexical ranking function. It scores documents by term frequency "
            "and inverse document frequency with length normalization."
        ),
        "doc-4": (
            "Sourdough bread needs a starter, flour, water and salt. "
            "Long fermentation develops flavour and an open crumb."
        ),
    }
