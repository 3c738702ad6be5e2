# services/evaluation.py
"""Retrieval-quality metrics and the evaluation harness"""
import logging
import math
import re
from typing import Any, List, Optional, Sequence, Set

from config import settings
from core.domain import (
    EvaluationMetric, EvaluationQuery, GroundTruthMissingError, RAGConfig
)
from core.interfaces import IDocumentRepository
from services.rag_service import RAGService

logger = logging.getLogger(settings.LOGGER_NAME)

# ============= Metrics =============

def precision(retrieved: Sequence[str], relevant: Set[str]) -> float:
    if not retrieved:
        return 0.0
    return sum(1 for doc_id in retrieved if doc_id in relevant) / len(retrieved)


def recall(retrieved: Sequence[str], relevant: Set[str]) -> float:
    if not relevant:
        return 0.0
    return len(set(retrieved) & relevant) / len(relevant)


def reciprocal_rank(retrieved: Sequence[str], relevant: Set[str]) -> float:
    for rank, doc_id in enumerate(retrieved, start=1):
        if doc_id in relevant:
            return 1.0 / rank
    return 0.0


def ndcg(retrieved: Sequence[str], relevant: Set[str]) -> float:
    """
    Binary-relevance NDCG over the retrieved list.

    IDCG places min(|retrieved|, |relevant|) relevant items at the top,
    i.e. it assumes every relevant item fits in the retrieved window.
    """
    dcg = sum(
        1.0 / math.log2(i + 2)
        for i, doc_id in enumerate(retrieved)
        if doc_id in relevant
    )
    ideal_hits = min(len(retrieved), len(relevant))
    idcg = sum(1.0 / math.log2(i + 2) for i in range(ideal_hits))
    if idcg == 0:
        return 0.0
    return dcg / idcg


def average_metrics(metrics: List[EvaluationMetric]) -> EvaluationMetric:
    if not metrics:
        return EvaluationMetric()
    n = len(metrics)
    return EvaluationMetric(
        precision=sum(m.precision for m in metrics) / n,
        recall=sum(m.recall for m in metrics) / n,
        mrr=sum(m.mrr for m in metrics) / n,
        ndcg=sum(m.ndcg for m in metrics) / n,
        avg_relevance_score=sum(m.avg_relevance_score for m in metrics) / n,
    )

# ============= Harness =============

class EvaluationHarness:
    """Runs labeled (or synthesized) queries through search and averages the metrics."""

    def __init__(self, rag_service: RAGService, document_repo: IDocumentRepository):
        self.rag_service = rag_service
        self.document_repo = document_repo

    async def evaluate_query(
        self,
        owner_id: str,
        query: EvaluationQuery,
        config: RAGConfig,
        type_filter: Optional[Sequence[Any]] = None,
    ) -> EvaluationMetric:
        results = await self.rag_service.search(
            query.query, owner_id, type_filter=type_filter, config=config, record=False
        )
        retrieved = [r.id for r in results]
        relevant = set(query.relevant_ids)
        scores = [r.score for r in results]

        return EvaluationMetric(
            precision=precision(retrieved, relevant),
            recall=recall(retrieved, relevant),
            mrr=reciprocal_rank(retrieved, relevant),
            ndcg=ndcg(retrieved, relevant),
            avg_relevance_score=sum(scores) / len(scores) if scores else 0.0,
        )

    async def evaluate(
        self,
        owner_id: str,
        queries: List[EvaluationQuery],
        config: RAGConfig,
        type_filter: Optional[Sequence[Any]] = None,
    ) -> EvaluationMetric:
        """Mean of each metric across all queries."""
        per_query = [
            await self.evaluate_query(owner_id, q, config, type_filter)
            for q in queries
        ]
        averaged = average_metrics(per_query)
        logger.info(
            f"[EVAL] {len(queries)} queries, vw={config.vector_weight} bw={config.bm25_weight} "
            f"rerank={config.use_reranker}: P={averaged.precision:.3f} R={averaged.recall:.3f} "
            f"MRR={averaged.mrr:.3f} NDCG={averaged.ndcg:.3f}"
        )
        return averaged

    async def generate_dataset(
        self,
        owner_id: str,
        sample_size: Optional[int] = None,
    ) -> List[EvaluationQuery]:
        """
        Synthesize queries from the owner's stored documents.

        For each document (up to `sample_size`), the first sentence of each of
        its first two substantial paragraphs becomes a query whose only
        relevant id is that document.
        """
        sample_size = sample_size or settings.EVAL_SAMPLE_SIZE
        documents = await self.document_repo.list_by_owner(owner_id)
        if not documents:
            raise GroundTruthMissingError(f"No documents found for user {owner_id}")

        queries: List[EvaluationQuery] = []
        for doc in documents[:sample_size]:
            paragraphs = [
                p for p in doc.content.split("\n\n")
                if len(p.strip()) > settings.EVAL_PARAGRAPH_MIN_LENGTH
            ]
            for paragraph in paragraphs[:settings.EVAL_PARAGRAPHS_PER_DOCUMENT]:
                sentences = [
                    s for s in re.split(r"[.!?]", paragraph)
                    if len(s.strip()) > settings.EVAL_SENTENCE_MIN_LENGTH
                ]
                if sentences:
                    queries.append(EvaluationQuery(
                        query=sentences[0].strip()[:settings.EVAL_QUERY_MAX_LENGTH],
                        relevant_ids={doc.id},
                    ))
                if len(queries) >= sample_size:
                    break
            if len(queries) >= sample_size:
                break

        if not queries:
            raise GroundTruthMissingError(
                f"Documents of user {owner_id} have no paragraphs usable as queries"
            )

        logger.info(f"[EVAL] Generated {len(queries)} synthetic queries for {owner_id}")
        return queries
