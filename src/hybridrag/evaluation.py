"""
Retrieval quality metrics and strategy comparison.
"""

from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from pydantic import BaseModel, Field

from hybridrag.config import FusionStrategy
from hybridrag.document import QueryResult
from hybridrag.utils.logging import get_logger

if TYPE_CHECKING:
    from hybridrag.pipeline import RAGPipeline

logger = get_logger(__name__)


def precision_at_k(retrieved: Sequence[str], relevant: Iterable[str], k: int) -> float:
    """Share of the top ``k`` retrieved ids that are relevant.

    The denominator is ``k`` even when fewer results came back.
    """
    if k <= 0:
        return 0.0
    relevant = set(relevant)
    hits = sum(1 for item in retrieved[:k] if item in relevant)
    return hits / k


def recall_at_k(retrieved: Sequence[str], relevant: Iterable[str], k: int) -> float:
    """Share of the relevant ids found in the top ``k`` retrieved ids."""
    relevant = set(relevant)
    if not relevant or k <= 0:
        return 0.0
    hits = len(relevant.intersection(retrieved[:k]))
    return hits / len(relevant)


def reciprocal_rank(retrieved: Sequence[str], relevant: Iterable[str]) -> float:
    """``1 / rank`` of the first relevant id, 0.0 if none was retrieved."""
    relevant = set(relevant)
    for rank, item in enumerate(retrieved, start=1):
        if item in relevant:
            return 1.0 / rank
    return 0.0


class StrategyRun(BaseModel):
    """One query executed under one fusion strategy."""

    strategy: FusionStrategy
    result: QueryResult

    @property
    def latency_ms(self) -> float:
        return self.result.elapsed_ms

    @property
    def degraded(self) -> bool:
        return self.result.degraded

    def chunk_ids(self) -> list[str]:
        return self.result.chunk_ids()

    def document_ids(self) -> list[str]:
        """Distinct document ids in rank order."""
        return list(dict.fromkeys(hit.document_id for hit in self.result.results))


class StrategyScore(BaseModel):
    """Quality metrics of a ``StrategyRun`` against labeled relevance."""

    strategy: FusionStrategy
    precision: float
    recall: float
    mrr: float
    latency_ms: float
    degraded: bool = False
    result_count: int = 0
    error: Optional[str] = None


async def compare_strategies(
    pipeline: "RAGPipeline",
    query: str,
    strategies: Optional[Sequence[FusionStrategy]] = None,
    top_k: Optional[int] = None,
) -> list[StrategyRun]:
    """
    Run the same query under several fusion strategies.

    Strategies run one after another so their latencies are comparable.

    Args:
        pipeline: Pipeline holding the indexed corpus
        query: Query string
        strategies: Strategies to run (defaults to every ``FusionStrategy``)
        top_k: Results per run (defaults to the pipeline's ``top_k``)

    Returns:
        One run per strategy, in the given order
    """
    strategies = list(strategies or FusionStrategy)
    runs = []

    for strategy in strategies:
        result = await pipeline.query(query, top_k=top_k, strategy=strategy)
        runs.append(StrategyRun(strategy=strategy, result=result))
        logger.debug(
            f"{strategy.value}: {len(result.results)} results in {result.elapsed_ms:.1f}ms"
        )

    return runs


def evaluate(
    runs: Sequence[StrategyRun],
    relevant: Iterable[str],
    k: int,
    level: str = "document",
) -> list[StrategyScore]:
    """
    Score strategy runs against a set of relevant ids.

    Args:
        runs: Runs from ``compare_strategies``
        relevant: Relevant document ids (or chunk ids with ``level="chunk"``)
        k: Cutoff for precision and recall
        level: 'document' or 'chunk'

    Returns:
        One score per run
    """
    if level not in ("document", "chunk"):
        raise ValueError(f"level must be 'document' or 'chunk', got {level!r}")

    relevant = set(relevant)
    scores = []

    for run in runs:
        retrieved = run.document_ids() if level == "document" else run.chunk_ids()
        scores.append(StrategyScore(
            strategy=run.strategy,
            precision=precision_at_k(retrieved, relevant, k),
            recall=recall_at_k(retrieved, relevant, k),
            mrr=reciprocal_rank(retrieved, relevant),
            latency_ms=run.latency_ms,
            degraded=run.degraded,
            result_count=len(run.result.results),
            error=run.result.error,
        ))

    return scores
