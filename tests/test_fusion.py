"""Tests for Reciprocal Rank Fusion."""

import pytest

from hybridrag import ScoredResult, fuse, max_rrf_score, min_max_normalize, normalize_rrf, rrf_scores


def ranking(*chunk_ids: str) -> list[ScoredResult]:
    return [
        ScoredResult(chunk_id=chunk_id, content=f"text of {chunk_id}", score=1.0 / (i + 1))
        for i, chunk_id in enumerate(chunk_ids)
    ]


class TestRRFScores:
    """Tests for the n-way RRF primitive."""

    def test_sums_reciprocal_ranks(self):
        """Test each ranking adds 1 / (k + rank)."""
        scores = rrf_scores([ranking("a", "b"), ranking("b", "c")], k=60)

        assert scores["a"] == pytest.approx(1 / 61)
        assert scores["b"] == pytest.approx(1 / 62 + 1 / 61)
        assert scores["c"] == pytest.approx(1 / 62)

    def test_duplicate_ids_count_once(self):
        """Test a repeated id counts at its best position only."""
        scores = rrf_scores([ranking("a", "b", "a")], k=10)

        assert scores["a"] == pytest.approx(1 / 11)

    def test_negative_k_rejected(self):
        """Test k must not be negative."""
        with pytest.raises(ValueError):
            rrf_scores([ranking("a")], k=-1)


class TestFuse:
    """Tests for fusing a vector and a keyword ranking."""

    def test_both_rankings_beat_one(self):
        """Test a chunk found by both searches outranks single-source chunks."""
        fused = fuse(ranking("a", "b", "c"), ranking("c", "d"), k=60)

        assert fused[0].chunk_id == "c"
        assert fused[0].vector_rank == 3
        assert fused[0].keyword_rank == 1
        assert fused[0].score == pytest.approx(1 / 63 + 1 / 61)
        assert fused[0].fusion_score == fused[0].score

    def test_provenance(self):
        """Test ranks are None for rankings that missed a chunk."""
        fused = {r.chunk_id: r for r in fuse(ranking("a"), ranking("b"), k=60)}

        assert fused["a"].vector_rank == 1 and fused["a"].keyword_rank is None
        assert fused["b"].vector_rank is None and fused["b"].keyword_rank == 1
        assert fused["a"].content == "text of a"

    def test_deterministic(self):
        """Test identical inputs give identical output."""
        vector, keyword = ranking("a", "b", "c", "d"), ranking("d", "e", "a")

        first = fuse(vector, keyword, k=60)
        second = fuse(vector, keyword, k=60)

        assert [(r.chunk_id, r.score) for r in first] == [(r.chunk_id, r.score) for r in second]

    def test_fair_ties_by_chunk_id(self):
        """Test a chunk first in one ranking ties a chunk first in the other."""
        fused = fuse(ranking("zeta"), ranking("alpha"), k=60)

        assert [r.chunk_id for r in fused] == ["alpha", "zeta"]
        assert fused[0].score == fused[1].score

    def test_commutative(self):
        """Test swapping the inputs keeps ids, scores and order."""
        left, right = ranking("a", "b", "c"), ranking("c", "x", "b", "y")

        forward = fuse(left, right, k=20)
        backward = fuse(right, left, k=20)

        assert [(r.chunk_id, r.score) for r in forward] == [(r.chunk_id, r.score) for r in backward]

    def test_top_k(self):
        """Test output is truncated to top_k."""
        fused = fuse(ranking("a", "b", "c"), ranking("d", "e"), k=60, top_k=2)

        assert len(fused) == 2

    def test_single_ranking(self):
        """Test fusing with an empty ranking keeps the other's order."""
        fused = fuse(ranking("a", "b", "c"), [], k=60)

        assert [r.chunk_id for r in fused] == ["a", "b", "c"]
        assert all(r.keyword_rank is None for r in fused)

    def test_empty(self):
        """Test fusing two empty rankings."""
        assert fuse([], []) == []

    def test_scores_are_raw_rrf(self):
        """Test fused scores are not rescaled."""
        fused = fuse(ranking("a"), ranking("a"), k=60)

        assert fused[0].score == pytest.approx(2 / 61)
        assert fused[0].score == pytest.approx(max_rrf_score(60))


class TestNormalization:
    """Tests for bounded score views."""

    def test_normalize_rrf(self):
        """Test the best reachable score maps to 1.0."""
        fused = fuse(ranking("a", "b"), ranking("a", "c"), k=60)

        normalized = normalize_rrf(fused, k=60)

        assert normalized[0].score == pytest.approx(1.0)
        assert all(0.0 < r.score <= 1.0 for r in normalized)
        assert normalized[0].fusion_score == fused[0].fusion_score

    def test_min_max(self):
        """Test min-max scaling relative to the result set."""
        fused = fuse(ranking("a", "b", "c"), [], k=60)

        scaled = min_max_normalize(fused)

        assert scaled[0].score == pytest.approx(1.0)
        assert scaled[-1].score == pytest.approx(0.0)

    def test_min_max_constant(self):
        """Test a constant score set maps to 1.0."""
        scaled = min_max_normalize(fuse(ranking("a"), ranking("b"), k=60))

        assert [r.score for r in scaled] == [1.0, 1.0]
        assert min_max_normalize([]) == []
