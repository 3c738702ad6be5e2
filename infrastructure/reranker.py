# infrastructure/reranker.py

"""Cross-encoder reranker implementation."""
import asyncio
import logging
import math
from typing import List, Optional

from sentence_transformers import CrossEncoder
from core.interfaces import IReranker
from core.domain import RerankError, RerankHit
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)


def _sigmoid(x: float) -> float:
    """Map raw cross-encoder logits to (0, 1)."""
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


class CrossEncoderReranker(IReranker):
    """Multilingual cross-encoder for semantic precision."""

    _model = None
    _model_name = None

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or settings.RERANK_MODEL_NAME

        if (CrossEncoderReranker._model is None or
                CrossEncoderReranker._model_name != self.model_name):
            self._load_model()

        self.model = CrossEncoderReranker._model

    def _load_model(self) -> None:
        """Load cross-encoder once per process."""
        try:
            logger.info(f"[RERANK] Loading {self.model_name}...")
            model = CrossEncoder(self.model_name)
            CrossEncoderReranker._model = model
            CrossEncoderReranker._model_name = self.model_name
            logger.info("[RERANK] Loaded successfully")
        except Exception as e:
            logger.error(f"[RERANK] Failed: {e}")
            raise RuntimeError(f"Could not load reranker: {e}")

    async def rerank(self, query: str, documents: List[str], top_n: int) -> List[RerankHit]:
        """Score (query, document) pairs and return the best `top_n` by relevance."""
        if not documents:
            return []

        if self.model is None:
            raise RerankError("Reranker model not loaded")

        try:
            pairs = [(query, text) for text in documents]
            scores = await asyncio.to_thread(self.model.predict, pairs)
        except Exception as e:
            raise RerankError(f"Cross-encoder scoring failed: {e}") from e

        hits = [
            RerankHit(index=i, relevance_score=_sigmoid(float(score)))
            for i, score in enumerate(scores)
        ]
        hits.sort(key=lambda h: h.relevance_score, reverse=True)
        return hits[:top_n]
