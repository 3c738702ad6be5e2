# services/reranking.py
"""Reranker adapter with a declared fallback to pre-rerank order"""
import logging
from typing import List, Optional

from config import settings
from core.domain import RerankError, Result, SearchResult
from core.interfaces import IReranker

logger = logging.getLogger(settings.LOGGER_NAME)


class RerankerAdapter:
    """
    Wraps an optional IReranker.

    Never raises: any reranker failure yields the candidates sorted by
    their hybrid `combined_score`, truncated to top_k, inside a recovered
    Result.
    """

    def __init__(self, reranker: Optional[IReranker] = None):
        self.reranker = reranker

    @property
    def available(self) -> bool:
        return self.reranker is not None

    async def rerank(
        self,
        query: str,
        candidates: List[SearchResult],
        top_k: int,
        texts: Optional[List[str]] = None,
    ) -> Result[List[SearchResult]]:
        """
        Reorder candidates by reranker relevance.

        Args:
            texts: optional texts to score instead of candidate content
        """
        if not candidates or self.reranker is None:
            return Result.success(candidates[:top_k])

        documents = texts if texts is not None else [c.content for c in candidates]

        try:
            hits = await self.reranker.rerank(query, documents, top_k)
            reranked: List[SearchResult] = []
            for hit in hits:
                if not 0 <= hit.index < len(candidates):
                    raise RerankError(f"Reranker returned out-of-range index {hit.index}")
                result = candidates[hit.index]
                result.relevance_score = hit.relevance_score
                reranked.append(result)
            return Result.success(reranked[:top_k])

        except Exception as e:
            logger.warning(f"[RERANK] Falling back to hybrid order: {e}")
            for candidate in candidates:
                candidate.relevance_score = None
            fallback = sorted(candidates, key=lambda c: c.combined_score, reverse=True)
            return Result.recovered(fallback[:top_k], e)
