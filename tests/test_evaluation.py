"""Tests for retrieval metrics and strategy comparison."""

import pytest

from conftest import FailingQueryEmbedding
from hybridrag import (
    Document,
    FusionStrategy,
    RAGPipeline,
    compare_strategies,
    evaluate,
    precision_at_k,
    recall_at_k,
    reciprocal_rank,
)


class TestMetrics:
    """Tests for ranking metrics."""

    def test_precision(self):
        """Test precision divides by k."""
        assert precision_at_k(["a", "b", "c"], {"a", "c"}, k=2) == 0.5
        assert precision_at_k(["a"], {"a"}, k=4) == 0.25
        assert precision_at_k(["a"], {"a"}, k=0) == 0.0

    def test_recall(self):
        """Test recall divides by the number of relevant ids."""
        assert recall_at_k(["a", "b", "c"], {"a", "c", "z"}, k=3) == pytest.approx(2 / 3)
        assert recall_at_k(["a", "b"], set(), k=2) == 0.0

    def test_reciprocal_rank(self):
        """Test the first relevant position determines the score."""
        assert reciprocal_rank(["x", "y", "a"], {"a"}) == pytest.approx(1 / 3)
        assert reciprocal_rank(["x"], {"a"}) == 0.0


class TestCompareStrategies:
    """Tests for running a query under several strategies."""

    @pytest.mark.asyncio
    async def test_runs_every_strategy(self, fast_config, sample_corpus):
        """Test one run per strategy with its own results."""
        pipeline = RAGPipeline(fast_config)
        await pipeline.ingest_many(
            [Document(id=doc_id, content=text) for doc_id, text in sample_corpus.items()]
        )

        runs = await compare_strategies(pipeline, "BM25 term frequency", top_k=3)

        assert [run.strategy for run in runs] == list(FusionStrategy)
        assert all(run.latency_ms >= 0 for run in runs)
        keyword_run = next(run for run in runs if run.strategy is FusionStrategy.KEYWORD_ONLY)
        assert keyword_run.document_ids() == ["doc-3"]

        scores = evaluate(runs, {"doc-3"}, k=1)
        for score in scores:
            if score.strategy is not FusionStrategy.VECTOR_ONLY:
                assert score.precision == 1.0
                assert score.mrr == 1.0

    @pytest.mark.asyncio
    async def test_degraded_runs_are_flagged(self, fast_config, sample_corpus):
        """Test runs that fell back are marked degraded."""
        pipeline = RAGPipeline(fast_config, embedding=FailingQueryEmbedding())
        await pipeline.ingest_many(
            [Document(id=doc_id, content=text) for doc_id, text in sample_corpus.items()]
        )

        runs = await compare_strategies(
            pipeline, "vector embeddings", strategies=[FusionStrategy.RRF, FusionStrategy.KEYWORD_ONLY]
        )
        scores = evaluate(runs, {"doc-2_chunk_0"}, k=1, level="chunk")

        assert [score.degraded for score in scores] == [True, False]
        assert [score.recall for score in scores] == [1.0, 1.0]

    def test_invalid_level(self):
        """Test unknown evaluation levels are rejected."""
        with pytest.raises(ValueError):
            evaluate([], set(), k=1, level="sentence")
