"""BM25 keyword index."""

import heapq
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional

from .base import BaseKeywordIndex
from .document import ScoredResult
from .text import ENGLISH_STOPWORDS, tokenize
from .utils.locks import KeyedLock
from .utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Posting:
    """Term statistics and payload for one indexed chunk."""

    term_freqs: Counter
    length: int
    content: str
    document_id: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


class MemoryKeywordIndex(BaseKeywordIndex):
    """In-memory BM25 index over chunks.

    Maintains per-chunk term frequencies and per-term document
    frequencies incrementally, so upserts and deletes never rescan
    the corpus.
    """

    def __init__(
        self,
        k1: float = 1.2,
        b: float = 0.75,
        remove_stopwords: bool = False,
    ):
        """Initialize the keyword index.

        Args:
            k1: BM25 k1 parameter (term frequency saturation)
            b: BM25 b parameter (document length normalization)
            remove_stopwords: Drop common English words from chunks and queries
        """
        self.k1 = k1
        self.b = b
        self.stopwords = ENGLISH_STOPWORDS if remove_stopwords else None
        self._postings: dict[str, _Posting] = {}
        self._doc_freqs: Counter = Counter()
        self._total_length = 0
        self._locks = KeyedLock()

    def _tokenize(self, text: str) -> list[str]:
        """Tokenize text into lowercase terms."""
        return tokenize(text, self.stopwords)

    def _retract(self, chunk_id: str) -> bool:
        posting = self._postings.pop(chunk_id, None)
        if posting is None:
            return False

        self._total_length -= posting.length
        for term in posting.term_freqs:
            self._doc_freqs[term] -= 1
            if self._doc_freqs[term] <= 0:
                del self._doc_freqs[term]
        return True

    async def upsert(
        self,
        chunk_id: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
        document_id: str = "",
    ) -> None:
        """Index a chunk, replacing its previous content if present."""
        tokens = self._tokenize(content)
        posting = _Posting(
            term_freqs=Counter(tokens),
            length=len(tokens),
            content=content,
            document_id=document_id,
            metadata=dict(metadata or {}),
        )

        async with self._locks.hold(chunk_id):
            self._retract(chunk_id)
            self._postings[chunk_id] = posting
            self._total_length += posting.length
            for term in posting.term_freqs:
                self._doc_freqs[term] += 1

        logger.debug(f"Indexed chunk {chunk_id} ({posting.length} tokens)")

    async def delete(self, chunk_id: str) -> bool:
        """Remove a chunk from the index."""
        async with self._locks.hold(chunk_id):
            return self._retract(chunk_id)

    def idf(self, term: str) -> float:
        """Inverse document frequency of ``term``."""
        df = self._doc_freqs.get(term, 0)
        n = len(self._postings)
        return math.log(1 + (n - df + 0.5) / (df + 0.5))

    def _score(self, query_terms: list[str], posting: _Posting, avg_length: float) -> float:
        """Calculate BM25 score for a chunk."""
        score = 0.0

        for term in query_terms:
            tf = posting.term_freqs.get(term, 0)
            if tf == 0:
                continue

            numerator = tf * (self.k1 + 1)
            denominator = tf + self.k1 * (
                1 - self.b + self.b * (posting.length / avg_length)
            )
            score += self.idf(term) * (numerator / denominator)

        return score

    def score(self, query: str, chunk_id: str) -> float:
        """Return the BM25 score of one chunk for ``query`` (0.0 if absent)."""
        posting = self._postings.get(chunk_id)
        if posting is None or not self._postings:
            return 0.0
        query_terms = list(dict.fromkeys(self._tokenize(query)))
        avg_length = self._total_length / len(self._postings) or 1.0
        return self._score(query_terms, posting, avg_length)

    async def search(self, query: str, top_k: int = 5) -> list[ScoredResult]:
        """Retrieve chunks using BM25."""
        # Distinct terms, query order preserved
        query_terms = list(dict.fromkeys(self._tokenize(query)))

        if not query_terms or not self._postings or top_k <= 0:
            return []

        snapshot = list(self._postings.items())
        avg_length = self._total_length / len(snapshot) or 1.0

        scores = []
        for chunk_id, posting in snapshot:
            score = self._score(query_terms, posting, avg_length)
            if score > 0:
                scores.append((score, chunk_id, posting))

        best = heapq.nsmallest(top_k, scores, key=lambda item: (-item[0], item[1]))

        return [
            ScoredResult(
                chunk_id=chunk_id,
                document_id=posting.document_id,
                content=posting.content,
                metadata=dict(posting.metadata),
                score=score,
            )
            for score, chunk_id, posting in best
        ]

    async def count(self) -> int:
        """Return the number of indexed chunks."""
        return len(self._postings)

    async def clear(self) -> None:
        """Clear the index."""
        self._postings.clear()
        self._doc_freqs.clear()
        self._total_length = 0

    def document_frequency(self, term: str) -> int:
        """Number of chunks containing ``term``."""
        return self._doc_freqs.get(term, 0)
