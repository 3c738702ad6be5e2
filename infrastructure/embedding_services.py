# infrastructure/embedding_services.py
"""Embedding generation with L2 normalization for consistent similarity scoring"""
import asyncio
import logging
import numpy as np
from typing import List, Optional
from sentence_transformers import SentenceTransformer

from core.domain import EmbeddingError
from core.interfaces import IEmbeddingService
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

class SentenceTransformerEmbedding(IEmbeddingService):
    """
    Multilingual sentence transformer producing unit vectors.

    With ||v|| = 1, cosine similarity is a plain dot product and chromadb's
    cosine distance maps to similarity as 1 - d, so the fixed fallback
    threshold means the same thing for every query.
    """

    _model: Optional[SentenceTransformer] = None  # Singleton cache

    def __init__(
        self,
        model_name: str = "paraphrase-multilingual-mpnet-base-v2",
        batch_size: Optional[int] = None,
    ):
        """Initializes the service, loading the heavy model only once."""
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE

        if SentenceTransformerEmbedding._model is None:
            try:
                logger.info(f"Attempting to load model {model_name} from local cache...")
                SentenceTransformerEmbedding._model = SentenceTransformer(
                    model_name,
                    local_files_only=True
                )
                logger.info(f"Successfully loaded {model_name} from local cache.")

            except Exception as e:
                logger.warning(
                    f"Model {model_name} not found in cache. Attempting online download. "
                    f"This may take a few minutes. Error: {e}"
                )
                SentenceTransformerEmbedding._model = SentenceTransformer(model_name)
                logger.info(f"Successfully downloaded and loaded {model_name}.")

        self.model = SentenceTransformerEmbedding._model

    @property
    def dimension(self) -> int:
        return int(self.model.get_sentence_embedding_dimension())

    def _l2_normalize(self, arr: np.ndarray) -> np.ndarray:
        """L2 normalize (N, D) vectors to unit length."""
        norms = np.linalg.norm(arr, axis=1, keepdims=True)
        norms[norms == 0] = 1e-12  # Avoid division by zero
        return arr / norms

    async def _encode(self, texts: List[str]) -> List[List[float]]:
        try:
            raw = await asyncio.to_thread(
                self.model.encode,
                texts,
                convert_to_tensor=False
            )
        except Exception as e:
            logger.error(f"[EMBED] Encoding failed for {len(texts)} texts: {e}")
            raise EmbeddingError(f"Embedding model failed: {e}") from e

        arr = np.array(raw, dtype="float32")
        if arr.ndim != 2 or arr.shape[0] != len(texts):
            raise EmbeddingError(f"Malformed embedding output with shape {arr.shape}")
        return self._l2_normalize(arr).tolist()

    async def embed(self, text: str) -> List[float]:
        """Generate an L2-normalized embedding for one text."""
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        vectors = await self._encode([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate L2-normalized embeddings, `batch_size` texts per model call."""
        embeddings: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            embeddings.extend(await self._encode(batch))
            logger.debug(f"[EMBED] Batch {start // self.batch_size + 1}: {len(batch)} texts")
        return embeddings
