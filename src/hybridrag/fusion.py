"""Reciprocal Rank Fusion of vector and keyword rankings.

RRF works on rank positions only, so the incomparable score scales of
cosine similarity and BM25 never meet. Each ranking contributes
``1 / (k + rank)`` for every chunk it contains, with ``rank`` 1-based.

The fused ``score`` is the raw RRF value, not a probability. With two
rankings it is bounded by ``2 / (k + 1)``; use ``normalize_rrf`` or
``min_max_normalize`` when a [0, 1] value is needed.
"""

from typing import Optional, Sequence

from .document import ScoredResult

DEFAULT_FUSION_K = 60


def _rank_map(ranking: Sequence[ScoredResult]) -> dict[str, int]:
    """Map chunk id to its best 1-based position in ``ranking``."""
    ranks: dict[str, int] = {}
    for position, result in enumerate(ranking, start=1):
        ranks.setdefault(result.chunk_id, position)
    return ranks


def rrf_scores(
    rankings: Sequence[Sequence[ScoredResult]],
    k: int = DEFAULT_FUSION_K,
) -> dict[str, float]:
    """Compute the RRF score of every chunk id in ``rankings``.

    Args:
        rankings: Ranked result lists, best first
        k: RRF constant; larger values flatten the rank contributions

    Returns:
        Mapping of chunk id to summed ``1 / (k + rank)``
    """
    if k < 0:
        raise ValueError(f"RRF constant k must not be negative, got {k}")

    scores: dict[str, float] = {}
    for ranking in rankings:
        for chunk_id, rank in _rank_map(ranking).items():
            scores[chunk_id] = scores.get(chunk_id, 0.0) + 1.0 / (k + rank)
    return scores


def fuse(
    vector_ranking: Sequence[ScoredResult],
    keyword_ranking: Sequence[ScoredResult],
    k: int = DEFAULT_FUSION_K,
    top_k: Optional[int] = None,
) -> list[ScoredResult]:
    """Merge a vector ranking and a keyword ranking with RRF.

    Results are ordered by RRF score descending, ties broken by chunk id
    ascending, so the output is fully determined by the two inputs and
    does not depend on which argument is which.

    Args:
        vector_ranking: Results of the vector search, best first
        keyword_ranking: Results of the keyword search, best first
        k: RRF constant
        top_k: Truncate the fused list to this many results (None keeps all)

    Returns:
        Fused results; ``score`` and ``fusion_score`` hold the RRF value
    """
    scores = rrf_scores([vector_ranking, keyword_ranking], k)
    vector_ranks = _rank_map(vector_ranking)
    keyword_ranks = _rank_map(keyword_ranking)

    sources: dict[str, ScoredResult] = {}
    for result in list(vector_ranking) + list(keyword_ranking):
        sources.setdefault(result.chunk_id, result)

    ordered = sorted(scores, key=lambda chunk_id: (-scores[chunk_id], chunk_id))
    if top_k is not None:
        ordered = ordered[:max(top_k, 0)]

    return [
        sources[chunk_id].model_copy(update={
            "score": scores[chunk_id],
            "fusion_score": scores[chunk_id],
            "vector_rank": vector_ranks.get(chunk_id),
            "keyword_rank": keyword_ranks.get(chunk_id),
            "rerank_score": None,
        })
        for chunk_id in ordered
    ]


def max_rrf_score(k: int = DEFAULT_FUSION_K, rankings: int = 2) -> float:
    """Highest RRF value reachable: rank 1 in every ranking."""
    return rankings / (k + 1)


def normalize_rrf(
    results: Sequence[ScoredResult],
    k: int = DEFAULT_FUSION_K,
    rankings: int = 2,
) -> list[ScoredResult]:
    """Rescale RRF scores into [0, 1] by the best reachable score."""
    ceiling = max_rrf_score(k, rankings)
    return [
        result.model_copy(update={"score": result.score / ceiling})
        for result in results
    ]


def min_max_normalize(results: Sequence[ScoredResult]) -> list[ScoredResult]:
    """Rescale scores into [0, 1] relative to the given result set."""
    if not results:
        return []

    high = max(result.score for result in results)
    low = min(result.score for result in results)
    score_range = high - low

    return [
        result.model_copy(update={
            "score": (result.score - low) / score_range if score_range else 1.0,
        })
        for result in results
    ]
