# services/tuning.py
"""Grid search over blend weights and the reranker toggle"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from config import settings
from core.domain import (
    EvaluationMetric, EvaluationQuery, RAGConfig, TuningReport, TuningResult
)
from services.evaluation import EvaluationHarness

logger = logging.getLogger(settings.LOGGER_NAME)

# Reference configurations for side-by-side comparison
PRESET_CONFIGS: Dict[str, RAGConfig] = {
    "vector_only": RAGConfig(vector_weight=1.0, bm25_weight=0.0, use_reranker=False, top_k=5),
    "hybrid_no_rerank": RAGConfig(vector_weight=0.6, bm25_weight=0.4, use_reranker=False, top_k=5),
    "hybrid_with_rerank": RAGConfig(vector_weight=0.6, bm25_weight=0.4, use_reranker=True, top_k=5),
    "bm25_heavy": RAGConfig(vector_weight=0.3, bm25_weight=0.7, use_reranker=False, top_k=5),
}


def combined_score(metric: EvaluationMetric, weights: Optional[Dict[str, float]] = None) -> float:
    """Weighted blend of precision, recall, MRR and NDCG."""
    weights = weights or settings.TUNING_SCORE_WEIGHTS
    return (
        weights.get("precision", 0.0) * metric.precision
        + weights.get("recall", 0.0) * metric.recall
        + weights.get("mrr", 0.0) * metric.mrr
        + weights.get("ndcg", 0.0) * metric.ndcg
    )


def recommend(best_score: float) -> str:
    if best_score > settings.QUALITY_GOOD_SCORE:
        return "Retrieval quality is good."
    if best_score > settings.QUALITY_FAIR_SCORE:
        return "Retrieval quality could improve; consider adding more documents or adjusting chunking."
    return "Retrieval quality is low; review document quality and structure."


class WeightTuner:
    """
    Evaluates every (vector weight, reranker on/off) combination with
    bm25_weight = 1 - vector_weight and keeps the best combined score.
    Any evaluation failure aborts the whole run.
    """

    def __init__(
        self,
        harness: EvaluationHarness,
        vector_weights: Optional[Sequence[float]] = None,
        reranker_options: Optional[Sequence[bool]] = None,
        top_k: Optional[int] = None,
        score_weights: Optional[Dict[str, float]] = None,
    ):
        self.harness = harness
        self.vector_weights = list(vector_weights or settings.TUNING_VECTOR_WEIGHTS)
        self.reranker_options = list(reranker_options or settings.TUNING_RERANKER_OPTIONS)
        self.top_k = top_k or settings.TUNING_TOP_K
        self.score_weights = dict(score_weights or settings.TUNING_SCORE_WEIGHTS)

    def grid(self) -> List[RAGConfig]:
        return [
            RAGConfig(
                vector_weight=vw,
                bm25_weight=round(1.0 - vw, 6),
                use_reranker=use_reranker,
                top_k=self.top_k,
            )
            for vw in self.vector_weights
            for use_reranker in self.reranker_options
        ]

    async def tune(
        self,
        owner_id: str,
        queries: List[EvaluationQuery],
        type_filter: Optional[Sequence[Any]] = None,
    ) -> TuningReport:
        configs = self.grid()
        logger.info(f"[TUNE] Evaluating {len(configs)} configurations on {len(queries)} queries")

        results: List[TuningResult] = []
        for config in configs:
            metrics = await self.harness.evaluate(owner_id, queries, config, type_filter)
            results.append(TuningResult(
                config=config,
                metrics=metrics,
                combined_score=combined_score(metrics, self.score_weights),
            ))

        results.sort(key=lambda r: r.combined_score, reverse=True)
        best = results[0]
        logger.info(
            f"[TUNE] Best: vw={best.config.vector_weight} bw={best.config.bm25_weight} "
            f"rerank={best.config.use_reranker} score={best.combined_score:.3f}"
        )
        return TuningReport(best_config=best.config, best_score=best.combined_score, results=results)

    async def auto_tune(
        self,
        owner_id: str,
        sample_size: Optional[int] = None,
        type_filter: Optional[Sequence[Any]] = None,
    ) -> TuningReport:
        """Synthesize an evaluation set from the owner's documents, then tune."""
        queries = await self.harness.generate_dataset(
            owner_id, sample_size or settings.AUTO_TUNE_SAMPLE_SIZE
        )
        return await self.tune(owner_id, queries, type_filter)

    async def compare_configs(
        self,
        owner_id: str,
        queries: List[EvaluationQuery],
        configs: Optional[Dict[str, RAGConfig]] = None,
        type_filter: Optional[Sequence[Any]] = None,
    ) -> Dict[str, TuningResult]:
        comparison: Dict[str, TuningResult] = {}
        for name, config in (configs or PRESET_CONFIGS).items():
            metrics = await self.harness.evaluate(owner_id, queries, config, type_filter)
            comparison[name] = TuningResult(
                config=config,
                metrics=metrics,
                combined_score=combined_score(metrics, self.score_weights),
            )
        return comparison
